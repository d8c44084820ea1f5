"""
Shared fixtures.

StubSampler stands in for NUTS: it draws (alpha, beta) from the Gaussian
approximation around the least-squares fit, adds the remaining parameters,
then computes the real generated quantities. Fast and fully seeded.
"""

from typing import List

import numpy as np
import pytest

from inference.draws import DrawSet
from inference.exceptions import SamplerFailureError
from inference.model_builder import ModelConfig, RegressionData, generate_quantities
from inference.sampler import Sampler
from simulation.synthetic import SyntheticRegression


class StubSampler(Sampler):
    """Approximate posterior sampler for tests."""

    def __init__(self, chains: int = 4, random_seed: int = 0) -> None:
        self.chains = chains
        self.random_seed = random_seed
        self.calls: List[RegressionData] = []

    def sample(self, config: ModelConfig, data: RegressionData, iterations: int, warmup: int) -> DrawSet:
        self.calls.append(data)
        rng = np.random.default_rng(self.random_seed)
        shape = (self.chains, iterations)

        design = np.column_stack([np.ones(data.n_obs), data.x])
        coef, *_ = np.linalg.lstsq(design, data.y, rcond=None)
        resid = data.y - design @ coef
        sigma_hat = np.sqrt(resid @ resid / (data.n_obs - design.shape[1]))
        cov = sigma_hat ** 2 * np.linalg.inv(design.T @ design)

        theta = rng.multivariate_normal(coef, cov, size=shape)
        beta = theta[..., 1:]
        posterior = {
            "alpha": theta[..., 0],
            "beta": beta,
            "mu_beta": beta.mean(axis=-1) + 0.1 * rng.standard_normal(shape),
            "sigma": sigma_hat * np.exp(0.05 * rng.standard_normal(shape)),
            "nu": 5.0 + rng.exponential(5.0, size=shape),
        }
        generated = generate_quantities(posterior, data, rng)
        posterior.update(generated)

        sample_stats = {
            "diverging": np.zeros(shape, dtype=bool),
            "reached_max_treedepth": np.zeros(shape, dtype=bool),
            "energy": rng.standard_normal(shape),
        }
        return DrawSet(posterior, sample_stats=sample_stats, generated=tuple(generated))


class FailingSampler(Sampler):
    def __init__(self) -> None:
        self.calls = 0

    def sample(self, config, data, iterations, warmup):
        self.calls += 1
        raise SamplerFailureError("engine crashed")


@pytest.fixture
def stub_sampler() -> StubSampler:
    return StubSampler(chains=4, random_seed=11)


@pytest.fixture
def single_draw_sampler() -> StubSampler:
    return StubSampler(chains=1, random_seed=3)


@pytest.fixture
def failing_sampler() -> FailingSampler:
    return FailingSampler()


@pytest.fixture
def generator() -> SyntheticRegression:
    return SyntheticRegression(
        intercept=3.0,
        slopes=[1.5, -2.0],
        sigma=1.0,
        nu=5.0,
        predictor_loc=[10.0, -4.0],
        predictor_scale=[2.0, 0.5],
    )


@pytest.fixture
def synthetic_table(generator):
    return generator.generate(n_obs=100, random_seed=42)
