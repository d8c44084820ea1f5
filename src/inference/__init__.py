"""
Bayesian inference module for robust hierarchical regression.

This module provides the sampling boundary and the post-sampling analysis:
1. ModelBuilder / ModelConfig: PyMC Student-t regression with priors
2. Sampler / NUTSSampler: posterior draws as an immutable DrawSet
3. ConvergenceDiagnostics: split Rhat, rank-normalized ESS, divergences,
   tree depth, E-BFMI
4. PosteriorPredictiveCheck: observed vs. replicated statistics
5. HDIEstimator: minimal-width credible intervals

**Usage:**
```python
from inference import ModelConfig, RegressionData, NUTSSampler
from inference import ConvergenceDiagnostics, PosteriorPredictiveCheck, HDIEstimator

config = ModelConfig(n_obs=100, n_predictors=2)
data = RegressionData(x=x_scaled, y=y)

draws = NUTSSampler(random_seed=1).sample(config, data, iterations=1000, warmup=1000)

report = ConvergenceDiagnostics().report(draws)
ppc = PosteriorPredictiveCheck.check(y, draws["y_rep"], "max")
hdi = HDIEstimator.interval(draws.flatten("alpha"), 0.9)
```
"""

from inference.diagnostics import (
    ConvergenceDiagnostics,
    DiagnosticReport,
    effective_sample_size,
    energy_bfmi,
    split_rhat,
)
from inference.draws import DrawSet
from inference.exceptions import ConvergenceWarning, InsufficientSampleError, SamplerFailureError
from inference.hdi import HDIEstimator, HDIResult
from inference.model_builder import ModelBuilder, ModelConfig, PriorSpec, RegressionData
from inference.ppc import PairedMeans, PosteriorPredictiveCheck, PPCResult
from inference.sampler import NUTSSampler, Sampler

__all__ = [
    "ModelBuilder",
    "ModelConfig",
    "PriorSpec",
    "RegressionData",
    "Sampler",
    "NUTSSampler",
    "DrawSet",
    "ConvergenceDiagnostics",
    "DiagnosticReport",
    "split_rhat",
    "effective_sample_size",
    "energy_bfmi",
    "PosteriorPredictiveCheck",
    "PPCResult",
    "PairedMeans",
    "HDIEstimator",
    "HDIResult",
    "SamplerFailureError",
    "InsufficientSampleError",
    "ConvergenceWarning",
]
