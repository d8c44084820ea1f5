"""
Sampler interface and the PyMC NUTS adapter.

The analysis pipeline only depends on the abstract Sampler:

    sample(config, data, iterations, warmup) -> DrawSet

NUTSSampler is the production implementation: it builds the PyMC model,
runs NUTS, converts the ArviZ InferenceData to a DrawSet and appends the
generated quantities (y_rep, log_lik, y_hat). Chains may run in parallel
inside PyMC; nothing here depends on that.

Engine failures surface as SamplerFailureError and are never retried.
"""

import abc
import logging
import time
from typing import Dict, Optional

import numpy as np
import pymc as pm
from numpy.typing import NDArray

from inference.draws import DrawSet
from inference.exceptions import SamplerFailureError
from inference.model_builder import ModelBuilder, ModelConfig, RegressionData, generate_quantities

logger = logging.getLogger(__name__)


class Sampler(abc.ABC):
    """Black-box posterior sampler for the regression model."""

    @abc.abstractmethod
    def sample(
        self,
        config: ModelConfig,
        data: RegressionData,
        iterations: int,
        warmup: int,
    ) -> DrawSet:
        """
        Draw from the posterior.

        Parameters
        ----------
        config : ModelConfig
            Model shape and priors
        data : RegressionData
            Standardized predictors, outcomes and held-out row
        iterations : int
            Post-warmup draws per chain
        warmup : int
            Warmup (tuning) iterations per chain, discarded

        Returns
        -------
        DrawSet
            Parameters, generated quantities and sampler statistics.

        Raises
        ------
        SamplerFailureError
            If the engine fails to return draws.
        """


class NUTSSampler(Sampler):
    """
    NUTS sampler backed by PyMC.

    Parameters
    ----------
    target_accept : float
        NUTS acceptance rate target (0.5-0.99). Default 0.9.
    max_treedepth : int
        Maximum tree depth for NUTS. Default 10 (2^10 = 1024 steps max).
    chains : int
        Number of chains. Default 4.
    cores : int, optional
        Parallel workers. Default: one per chain.
    random_seed : int, optional
        Seed for both PyMC and the generated quantities.
    progressbar : bool
        Show PyMC progress bar. Default False.
    """

    def __init__(
        self,
        target_accept: float = 0.9,
        max_treedepth: int = 10,
        chains: int = 4,
        cores: Optional[int] = None,
        random_seed: Optional[int] = None,
        progressbar: bool = False,
    ) -> None:
        if not (0.5 < target_accept < 1.0):
            raise ValueError(f"target_accept must be in (0.5, 1.0). Got {target_accept}")
        if max_treedepth < 5:
            raise ValueError(f"max_treedepth must be >= 5. Got {max_treedepth}")
        if chains < 1:
            raise ValueError(f"chains must be >= 1. Got {chains}")

        self.target_accept = target_accept
        self.max_treedepth = max_treedepth
        self.chains = chains
        self.cores = cores if cores is not None else chains
        self.random_seed = random_seed
        self.progressbar = progressbar

    def sample(
        self,
        config: ModelConfig,
        data: RegressionData,
        iterations: int = 1000,
        warmup: int = 1000,
    ) -> DrawSet:
        """Run NUTS and return the posterior as a DrawSet."""
        if iterations < 1 or warmup < 0:
            raise ValueError(
                f"iterations must be >= 1 and warmup >= 0. Got {iterations}, {warmup}"
            )

        model = ModelBuilder(config).build(data)

        logger.info(
            "Sampling: %d chains x (%d warmup + %d draws), N=%d K=%d",
            self.chains, warmup, iterations, data.n_obs, data.n_predictors,
        )
        start_time = time.time()
        try:
            with model:
                idata = pm.sample(
                    draws=iterations,
                    tune=warmup,
                    chains=self.chains,
                    cores=self.cores,
                    random_seed=self.random_seed,
                    progressbar=self.progressbar,
                    nuts={
                        "target_accept": self.target_accept,
                        "max_treedepth": self.max_treedepth,
                    },
                    return_inferencedata=True,
                    discard_tuned_samples=True,
                    compute_convergence_checks=False,
                )
        except Exception as exc:
            raise SamplerFailureError(f"PyMC sampling failed: {exc}") from exc
        sampling_time = time.time() - start_time
        logger.info("Sampling finished in %.1fs", sampling_time)

        return self._to_draw_set(idata, data, sampling_time)

    def _to_draw_set(self, idata, data: RegressionData, sampling_time: float) -> DrawSet:
        """Convert InferenceData and append generated quantities."""
        posterior = getattr(idata, "posterior", None)
        if posterior is None:
            raise SamplerFailureError("Sampler returned no posterior group")

        draws: Dict[str, NDArray[np.float64]] = {}
        for name in posterior.data_vars:
            draws[str(name)] = np.asarray(posterior[name].values, dtype=np.float64)

        missing = [name for name in ("alpha", "beta", "sigma", "nu") if name not in draws]
        if missing:
            raise SamplerFailureError(f"Sampler result is missing parameters: {missing}")
        if draws["alpha"].shape[1] == 0:
            raise SamplerFailureError("Sampler returned zero draws")

        sample_stats = self._extract_sample_stats(idata)

        rng = np.random.default_rng(self.random_seed)
        generated = generate_quantities(draws, data, rng)
        draws.update(generated)

        return DrawSet(
            draws=draws,
            sample_stats=sample_stats,
            generated=tuple(generated),
            sampling_time=sampling_time,
        )

    def _extract_sample_stats(self, idata) -> Dict[str, NDArray]:
        stats = idata.sample_stats
        out: Dict[str, NDArray] = {}
        if "diverging" in stats:
            out["diverging"] = np.asarray(stats["diverging"].values, dtype=bool)
        if "reached_max_treedepth" in stats:
            out["reached_max_treedepth"] = np.asarray(
                stats["reached_max_treedepth"].values, dtype=bool
            )
        elif "tree_depth" in stats:
            out["reached_max_treedepth"] = (
                np.asarray(stats["tree_depth"].values) >= self.max_treedepth
            )
        if "energy" in stats:
            out["energy"] = np.asarray(stats["energy"].values, dtype=np.float64)
        return out

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"NUTSSampler(target_accept={self.target_accept}, "
            f"max_treedepth={self.max_treedepth}, chains={self.chains}, "
            f"cores={self.cores}, random_seed={self.random_seed})"
        )
