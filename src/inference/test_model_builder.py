"""
Tests for the robust regression model builder.

Tests are organized by cost:
- Small: Configuration objects and payload validation (instant)
- Medium: PyMC graph construction, no sampling (< 5 seconds)
- Large: Generated quantities against closed-form densities
"""

import dataclasses

import numpy as np
import pytest
from scipy import stats

from inference.model_builder import (
    GENERATED_NAMES,
    PARAMETER_NAMES,
    ModelBuilder,
    ModelConfig,
    PriorSpec,
    RegressionData,
    generate_quantities,
)
from preprocessing.exceptions import InvalidDataError


def make_data(n_obs=10, n_predictors=2, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.standard_normal((n_obs, n_predictors))
    y = 1.0 + x @ np.arange(1.0, n_predictors + 1) + rng.standard_normal(n_obs)
    return RegressionData(x=x, y=y)


def make_posterior(n_chains, n_draws, n_predictors, seed=0):
    rng = np.random.default_rng(seed)
    shape = (n_chains, n_draws)
    return {
        "alpha": rng.normal(1.0, 0.1, shape),
        "beta": rng.normal(0.5, 0.1, shape + (n_predictors,)),
        "sigma": rng.uniform(0.5, 1.5, shape),
        "nu": rng.uniform(2.0, 30.0, shape),
    }


# ============================================================================
# SMALL TESTS: Configuration
# ============================================================================

def test_small_prior_spec():
    """Test PriorSpec defaults."""
    spec = PriorSpec()
    assert spec.intercept_scale == 10.0
    assert spec.coef_mean_scale == 5.0
    assert spec.sigma_scale == 5.0
    assert spec.df_loc == 1.0
    assert spec.df_scale == 29.0


def test_small_prior_spec_equality():
    assert PriorSpec() == PriorSpec()
    assert PriorSpec(sigma_scale=2.0) != PriorSpec()
    assert hash(PriorSpec()) == hash(PriorSpec())


def test_small_prior_spec_invalid():
    """Test that non-positive scales are rejected."""
    with pytest.raises(ValueError, match="sigma_scale"):
        PriorSpec(sigma_scale=0.0)
    with pytest.raises(ValueError, match="df_loc"):
        PriorSpec(df_loc=-1.0)


def test_small_config_defaults():
    config = ModelConfig(n_obs=10, n_predictors=3)
    assert config.predictors == ("x0", "x1", "x2")
    assert config.priors == PriorSpec()
    assert config.parameter_names == PARAMETER_NAMES
    assert config.generated_names == GENERATED_NAMES
    assert config.parameter_shapes()["beta"] == (3,)
    assert config.parameter_shapes()["y_rep"] == (10,)


def test_small_config_invalid_dims():
    """Test that invalid dimensions are rejected."""
    with pytest.raises(ValueError):
        ModelConfig(n_obs=0, n_predictors=2)
    with pytest.raises(ValueError):
        ModelConfig(n_obs=10, n_predictors=-1)
    with pytest.raises(ValueError, match="predictor names"):
        ModelConfig(n_obs=10, n_predictors=2, predictors=("a",))


def test_small_config_frozen():
    config = ModelConfig(n_obs=10, n_predictors=2)
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.n_obs = 20


def test_small_data_defaults():
    """Test the held-out row defaults to zeros."""
    data = make_data()
    assert data.n_obs == 10
    assert data.n_predictors == 2
    np.testing.assert_array_equal(data.x_new, [0.0, 0.0])
    with pytest.raises(ValueError):
        data.x[0, 0] = 5.0


def test_small_data_shape_errors():
    with pytest.raises(InvalidDataError, match="2-D"):
        RegressionData(x=np.zeros(5), y=np.zeros(5))
    with pytest.raises(InvalidDataError, match="y must have shape"):
        RegressionData(x=np.zeros((5, 2)), y=np.zeros(4))
    with pytest.raises(InvalidDataError, match="x_new"):
        RegressionData(x=np.zeros((5, 2)), y=np.zeros(5), x_new=np.zeros(3))


def test_small_with_held_out():
    """Test only the held-out row changes."""
    data = make_data()
    moved = data.with_held_out([1.0, -1.0])
    np.testing.assert_array_equal(moved.x_new, [1.0, -1.0])
    np.testing.assert_array_equal(moved.x, data.x)
    np.testing.assert_array_equal(data.x_new, [0.0, 0.0])


def test_small_check_against():
    data = make_data(n_obs=10, n_predictors=2)
    with pytest.raises(InvalidDataError, match="does not match"):
        data.check_against(ModelConfig(n_obs=10, n_predictors=3))


def test_small_get_model_before_build():
    mb = ModelBuilder(ModelConfig(n_obs=10, n_predictors=2))
    assert mb.model is None
    with pytest.raises(RuntimeError):
        mb.get_model()


# ============================================================================
# MEDIUM TESTS: PyMC graph
# ============================================================================

def test_medium_build_variables():
    """Test the model declares the expected random variables."""
    config = ModelConfig(n_obs=10, n_predictors=2, predictors=("age", "income"))
    mb = ModelBuilder(config)
    model = mb.build(make_data())

    free = {rv.name for rv in model.free_RVs}
    assert free == {"alpha", "mu_beta", "beta", "sigma", "nu_excess"}
    assert [rv.name for rv in model.observed_RVs] == ["y"]
    assert "nu" in {d.name for d in model.deterministics}
    assert list(model.coords["predictor"]) == ["age", "income"]
    assert mb.get_model() is model


def test_medium_build_rejects_mismatched_data():
    mb = ModelBuilder(ModelConfig(n_obs=12, n_predictors=2))
    with pytest.raises(InvalidDataError):
        mb.build(make_data(n_obs=10))


def test_medium_initial_point_finite():
    """Test the log density is finite at the initial point."""
    model = ModelBuilder(ModelConfig(n_obs=50, n_predictors=3)).build(make_data(50, 3))
    logp = model.compile_logp()(model.initial_point())
    assert np.isfinite(logp)


# ============================================================================
# LARGE TESTS: Generated quantities
# ============================================================================

def test_large_generated_shapes():
    data = make_data(n_obs=30, n_predictors=2)
    out = generate_quantities(make_posterior(3, 40, 2), data, np.random.default_rng(1))

    assert set(out) == set(GENERATED_NAMES)
    assert out["y_rep"].shape == (3, 40, 30)
    assert out["log_lik"].shape == (3, 40, 30)
    assert out["y_hat"].shape == (3, 40)


def test_large_log_lik_matches_student_t():
    """Test log_lik equals the Student-t log density draw by draw."""
    data = make_data(n_obs=8, n_predictors=2)
    posterior = make_posterior(2, 5, 2)
    out = generate_quantities(posterior, data, np.random.default_rng(2))

    c, d = 1, 3
    mu = posterior["alpha"][c, d] + data.x @ posterior["beta"][c, d]
    expected = stats.t.logpdf(
        data.y, df=posterior["nu"][c, d], loc=mu, scale=posterior["sigma"][c, d]
    )
    np.testing.assert_allclose(out["log_lik"][c, d], expected, rtol=1e-10)


def test_large_y_hat_centered_on_held_out_row():
    """Test y_hat is centered on alpha + x_new . beta."""
    data = make_data(n_obs=8, n_predictors=2).with_held_out([2.0, -1.0])
    shape = (4, 5000)
    posterior = {
        "alpha": np.full(shape, 1.0),
        "beta": np.broadcast_to([0.5, 0.25], shape + (2,)),
        "sigma": np.full(shape, 0.1),
        "nu": np.full(shape, 30.0),
    }
    out = generate_quantities(posterior, data, np.random.default_rng(3))
    assert np.mean(out["y_hat"]) == pytest.approx(1.0 + 1.0 - 0.25, abs=0.01)


def test_large_generated_deterministic():
    data = make_data()
    posterior = make_posterior(2, 10, 2)
    first = generate_quantities(posterior, data, np.random.default_rng(4))
    second = generate_quantities(posterior, data, np.random.default_rng(4))
    np.testing.assert_array_equal(first["y_rep"], second["y_rep"])
    np.testing.assert_array_equal(first["y_hat"], second["y_hat"])
