"""
End-to-end checks with the real NUTS sampler.

These run PyMC and take minutes; they are deselected by default.
Run with: pytest -m slow
"""

import numpy as np
import pytest

from inference import HDIEstimator, NUTSSampler
from prediction import RegressionPipeline
from simulation import SyntheticRegression

pytestmark = pytest.mark.slow


@pytest.fixture
def truth() -> SyntheticRegression:
    return SyntheticRegression(intercept=2.0, slopes=[1.0, -0.5], sigma=1.0, nu=5.0)


def test_fit_and_predict(truth):
    """Test one full fit / analyze / predict round on synthetic data."""
    table = truth.generate(n_obs=100, random_seed=0)
    pipeline = RegressionPipeline(
        NUTSSampler(chains=4, cores=1, random_seed=1), iterations=500, warmup=500
    )

    artifacts, report = pipeline.fit(table)
    assert report.n_divergences == 0
    assert max(report.rhat.values()) < 1.05

    analysis = pipeline.analyze(artifacts, report=report)
    assert set(analysis.ppc) == {"min", "max", "mean", "median"}

    means = artifacts.standardized.stats.means
    result = pipeline.predict(artifacts, {"x0": float(means[0]), "x1": float(means[1])})
    assert result.draws.shape == (2000,)
    assert result.mean == pytest.approx(truth.intercept, abs=0.5)


def test_hdi_coverage(truth):
    """Test 90% HDIs cover the true intercept and slopes at about the nominal rate."""
    sampler = NUTSSampler(chains=2, cores=1, random_seed=7)
    pipeline = RegressionPipeline(sampler, iterations=500, warmup=500)

    covered = []
    for trial in range(10):
        table = truth.generate(n_obs=100, random_seed=100 + trial)
        artifacts, _ = pipeline.fit(table)
        for name, value in truth.true_parameters.items():
            samples = artifacts.draw_set
            if name == "alpha":
                draws = samples.flatten("alpha")
            else:
                j = int(name[len("beta["):-1])
                draws = samples.flatten("beta")[:, j]
            covered.append(HDIEstimator.interval(draws, 0.9).contains(value))

    coverage = np.mean(covered)
    assert coverage >= 0.85, f"Coverage {coverage:.2f} over {len(covered)} intervals"
