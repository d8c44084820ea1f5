"""
Unit tests for the fit / analyze / predict pipeline.

Tests cover:
- Fit produces artifacts and a diagnostic report without raising
- Forward prediction scales the new row with the fit-time statistics
- Data errors abort before any sampling
- Sampler failures propagate unchanged
- Synthetic data generation
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from inference import DiagnosticReport, DrawSet, SamplerFailureError
from prediction import ForwardPredictor, ModelArtifacts, RegressionPipeline
from preprocessing import DegenerateColumnError, InvalidDataError, ObservationTable, Standardizer
from simulation import SyntheticRegression


@pytest.fixture
def pipeline(stub_sampler) -> RegressionPipeline:
    return RegressionPipeline(stub_sampler, iterations=500, warmup=10)


@pytest.fixture
def fitted(pipeline, synthetic_table):
    return pipeline.fit(synthetic_table)


class TestFit:
    """Tests for the fitting phase."""

    def test_artifacts(self, fitted, synthetic_table) -> None:
        artifacts, report = fitted

        assert artifacts.table is synthetic_table
        assert artifacts.config.n_obs == 100
        assert artifacts.config.predictors == ("x0", "x1")
        assert artifacts.draw_set.n_chains == 4
        assert artifacts.draw_set.n_draws == 500
        assert isinstance(report, DiagnosticReport)
        assert report.converged, report.warnings

    def test_sampler_sees_standardized_predictors(self, fitted, stub_sampler) -> None:
        artifacts, _ = fitted
        data = stub_sampler.calls[0]
        assert_allclose(data.x.mean(axis=0), 0.0, atol=1e-12)
        assert_allclose(data.x.std(axis=0, ddof=1), 1.0)
        assert_array_equal(data.x_new, [0.0, 0.0])
        assert_array_equal(data.y, artifacts.table.y)

    def test_recovers_coefficients(self, fitted, generator) -> None:
        artifacts, _ = fitted
        beta = artifacts.draw_set.flatten("beta").mean(axis=0)
        assert_allclose(beta, generator.slopes, atol=0.5)

    def test_degenerate_column_aborts_before_sampling(self, pipeline, stub_sampler) -> None:
        x = np.column_stack([np.arange(10.0), np.full(10, 4.0)])
        table = ObservationTable(x=x, y=np.arange(10.0), predictors=["a", "b"])

        with pytest.raises(DegenerateColumnError):
            pipeline.fit(table)
        assert stub_sampler.calls == []

    def test_sampler_failure_propagates(self, failing_sampler, synthetic_table) -> None:
        with pytest.raises(SamplerFailureError, match="engine crashed"):
            RegressionPipeline(failing_sampler).fit(synthetic_table)
        assert failing_sampler.calls == 1

    def test_invalid_iterations(self, stub_sampler) -> None:
        with pytest.raises(ValueError):
            RegressionPipeline(stub_sampler, iterations=0)


class TestAnalyze:
    """Tests for the reporting surface."""

    def test_report_contents(self, pipeline, fitted) -> None:
        artifacts, report = fitted
        analysis = pipeline.analyze(artifacts, report=report, masses=(0.5, 0.9))

        assert list(analysis.ppc) == ["min", "max", "mean", "median"]
        assert {"alpha", "beta[0]", "beta[1]", "sigma", "nu"} <= set(analysis.hdi)
        assert set(analysis.hdi["alpha"]) == {0.5, 0.9}
        assert analysis.hdi_errors == {}
        assert analysis.diagnostics is report

    def test_mean_check_is_not_extreme(self, pipeline, fitted) -> None:
        artifacts, _ = fitted
        analysis = pipeline.analyze(artifacts, statistics=("mean",))
        assert analysis.ppc["mean"].p_value > 0.05

    def test_failed_hdi_is_isolated(self, pipeline, fitted) -> None:
        """Test a non-finite parameter loses its HDI while the rest of the report survives."""
        artifacts, report = fitted
        source = artifacts.draw_set
        draws = {name: np.array(source[name]) for name in source.names}
        draws["sigma"][0, 0] = np.nan
        broken = ModelArtifacts(
            table=artifacts.table,
            standardized=artifacts.standardized,
            config=artifacts.config,
            data=artifacts.data,
            draw_set=DrawSet(draws, sample_stats=source.sample_stats, generated=source.generated),
        )

        analysis = pipeline.analyze(broken, report=report, masses=(0.9,))

        assert set(analysis.hdi_errors) == {"sigma"}
        assert "non-finite" in analysis.hdi_errors["sigma"]
        assert "sigma" not in analysis.hdi
        assert {"alpha", "beta[0]", "beta[1]", "mu_beta", "nu"} <= set(analysis.hdi)
        assert list(analysis.ppc) == ["min", "max", "mean", "median"]
        assert analysis.to_dict()["hdi_errors"] == analysis.hdi_errors

    def test_too_few_draws_for_hdi(self, single_draw_sampler, synthetic_table) -> None:
        """Test a single-draw fit reports errors for every parameter instead of raising."""
        pipeline = RegressionPipeline(single_draw_sampler, iterations=1, warmup=0)
        artifacts, report = pipeline.fit(synthetic_table)

        assert artifacts.draw_set.total_draws == 1
        assert {"alpha", "energy"} <= set(report.errors)

        analysis = pipeline.analyze(artifacts, report=report)
        assert analysis.hdi == {}
        assert set(analysis.hdi_errors) == set(artifacts.draw_set.parameters)
        assert "at least 2" in analysis.hdi_errors["alpha"]
        assert set(analysis.ppc) == {"min", "max", "mean", "median"}

    def test_to_dict(self, pipeline, fitted) -> None:
        artifacts, report = fitted
        summary = pipeline.analyze(artifacts, report=report).to_dict()
        assert set(summary) == {"diagnostics", "ppc", "hdi", "hdi_errors"}
        assert summary["hdi"]["alpha"][0.9]["lower"] < summary["hdi"]["alpha"][0.9]["upper"]


class TestPredict:
    """Tests for forward prediction."""

    def test_scaled_row_uses_fit_statistics(self, pipeline, fitted, stub_sampler) -> None:
        artifacts, _ = fitted
        result = pipeline.predict(artifacts, {"x0": 12.0, "x1": -4.5})

        expected = Standardizer.apply([12.0, -4.5], artifacts.standardized.stats)
        assert_allclose(result.scaled_row, expected)
        assert_allclose(stub_sampler.calls[-1].x_new, expected)
        assert_array_equal(result.raw_row, [12.0, -4.5])

    def test_reuses_fit_payload(self, pipeline, fitted, stub_sampler) -> None:
        artifacts, _ = fitted
        pipeline.predict(artifacts, {"x0": 12.0, "x1": -4.5})

        assert len(stub_sampler.calls) == 2
        assert_array_equal(stub_sampler.calls[-1].x, artifacts.data.x)
        assert_array_equal(artifacts.data.x_new, [0.0, 0.0])

    def test_prediction_at_means(self, pipeline, fitted) -> None:
        """Test a row at the predictor means predicts about mean(y)."""
        artifacts, _ = fitted
        means = artifacts.standardized.stats.means
        result = pipeline.predict(artifacts, {"x0": means[0], "x1": means[1]})

        assert_allclose(result.scaled_row, 0.0, atol=1e-12)
        assert result.mean == pytest.approx(float(np.mean(artifacts.table.y)), abs=0.3)
        assert result.draws.shape == (4 * 500,)

    def test_same_seed_same_prediction(self, pipeline, fitted) -> None:
        artifacts, _ = fitted
        row = {"x0": 9.0, "x1": -3.0}
        first = pipeline.predict(artifacts, row)
        second = pipeline.predict(artifacts, row)
        assert_array_equal(first.draws, second.draws)

    def test_hdi_and_summary(self, pipeline, fitted) -> None:
        artifacts, _ = fitted
        result = pipeline.predict(artifacts, {"x0": 10.0, "x1": -4.0})

        interval = result.hdi(0.9)
        assert interval.lower < result.mean < interval.upper
        summary = result.to_dict()
        assert summary["n_draws"] == 2000
        assert set(summary["hdi"]) == {0.5, 0.9}

    def test_mismatched_row(self, pipeline, fitted, stub_sampler) -> None:
        artifacts, _ = fitted
        with pytest.raises(InvalidDataError):
            pipeline.predict(artifacts, {"x0": 1.0, "z": 2.0})
        assert len(stub_sampler.calls) == 1

    def test_non_numeric_row(self, pipeline, fitted) -> None:
        artifacts, _ = fitted
        with pytest.raises(InvalidDataError):
            pipeline.predict(artifacts, {"x0": "high", "x1": 2.0})

    def test_sampler_failure_propagates(self, fitted, failing_sampler) -> None:
        artifacts, _ = fitted
        predictor = ForwardPredictor(failing_sampler, iterations=10, warmup=10)
        with pytest.raises(SamplerFailureError):
            predictor.predict(
                artifacts.standardized.stats, artifacts.config, artifacts.data, [10.0, -4.0]
            )


class TestSyntheticRegression:
    """Tests for the synthetic data generator."""

    def test_table_shape(self, generator) -> None:
        table = generator.generate(n_obs=40, random_seed=1)
        assert table.n_obs == 40
        assert table.predictors == ["x0", "x1"]
        assert_allclose(table.x.mean(axis=0), [10.0, -4.0], atol=1.0)

    def test_reproducible(self, generator) -> None:
        first = generator.generate(n_obs=20, random_seed=3)
        second = generator.generate(n_obs=20, random_seed=3)
        assert_array_equal(first.x, second.x)
        assert_array_equal(first.y, second.y)

    def test_true_parameters(self, generator) -> None:
        assert generator.true_parameters == {"alpha": 3.0, "beta[0]": 1.5, "beta[1]": -2.0}

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            SyntheticRegression(intercept=0.0, slopes=[])
        with pytest.raises(ValueError):
            SyntheticRegression(intercept=0.0, slopes=[1.0], sigma=0.0)
        with pytest.raises(ValueError):
            SyntheticRegression(intercept=0.0, slopes=[1.0], predictor_loc=[0.0, 1.0])
