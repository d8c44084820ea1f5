"""
Forward prediction for a new predictor row.

The new row is scaled with the fit-time column stats, placed in the held-out
slot of the original payload, and the model is sampled again from scratch.
The y_hat generated quantity of that second DrawSet is the posterior
predictive distribution for the row.

Cost: every prediction is a full re-sampling run (same iterations and warmup
as requested), not an incremental update of the fitted posterior.
"""

import logging
from dataclasses import dataclass
from typing import Dict

import numpy as np
from numpy.typing import NDArray

from inference.draws import DrawSet
from inference.hdi import HDIEstimator, HDIResult
from inference.model_builder import ModelConfig, RegressionData
from inference.sampler import Sampler
from preprocessing.standardizer import ColumnStats, Standardizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PredictiveDistribution:
    """
    Posterior predictive draws for one new input row.

    Attributes
    ----------
    draws : NDArray[np.float64]
        y_hat draws, chains pooled, shape (chain * draw,)
    raw_row : NDArray[np.float64]
        Predictor values as given
    scaled_row : NDArray[np.float64]
        Predictor values on the fit-time scale
    draw_set : DrawSet
        Full DrawSet of the prediction run, independent of the fit
    """

    draws: NDArray[np.float64]
    raw_row: NDArray[np.float64]
    scaled_row: NDArray[np.float64]
    draw_set: DrawSet

    @property
    def mean(self) -> float:
        return float(np.mean(self.draws))

    @property
    def std(self) -> float:
        return float(np.std(self.draws, ddof=1))

    def hdi(self, credible_mass: float = 0.9) -> HDIResult:
        return HDIEstimator.interval(self.draws, credible_mass)

    def to_dict(self, masses=(0.5, 0.9)) -> Dict[str, object]:
        return {
            "mean": self.mean,
            "std": self.std,
            "n_draws": int(self.draws.size),
            "hdi": {mass: self.hdi(mass).to_dict() for mass in masses},
        }


class ForwardPredictor:
    """
    Re-run the sampler with a held-out row and extract y_hat.

    Parameters
    ----------
    sampler : Sampler
        Engine used for the re-run
    iterations : int
        Post-warmup draws per chain. Default 1000.
    warmup : int
        Warmup iterations per chain. Default 1000.
    """

    def __init__(self, sampler: Sampler, iterations: int = 1000, warmup: int = 1000) -> None:
        if iterations < 1 or warmup < 0:
            raise ValueError(
                f"iterations must be >= 1 and warmup >= 0. Got {iterations}, {warmup}"
            )
        self.sampler = sampler
        self.iterations = iterations
        self.warmup = warmup

    def predict(
        self,
        stats: ColumnStats,
        config: ModelConfig,
        data: RegressionData,
        new_row: NDArray[np.float64],
    ) -> PredictiveDistribution:
        """
        Posterior predictive distribution for one new raw row.

        Parameters
        ----------
        stats : ColumnStats
            Column stats captured when the model was fitted
        config : ModelConfig
            Model config of the fit (unchanged)
        data : RegressionData
            Fitting payload; only its held-out row is replaced
        new_row : NDArray[np.float64]
            Raw predictor values ordered as stats.names, shape (K,)

        Returns
        -------
        PredictiveDistribution
        """
        raw_row = np.asarray(new_row, dtype=np.float64)
        scaled_row = Standardizer.apply(raw_row, stats)
        payload = data.with_held_out(scaled_row)

        logger.info("Forward prediction: re-sampling with held-out row %s", raw_row)
        draw_set = self.sampler.sample(config, payload, self.iterations, self.warmup)

        draws = draw_set.flatten("y_hat")
        logger.info(
            "Forward prediction: mean=%.4g over %d draws", float(np.mean(draws)), draws.size
        )
        return PredictiveDistribution(
            draws=draws,
            raw_row=raw_row,
            scaled_row=scaled_row,
            draw_set=draw_set,
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ForwardPredictor(sampler={self.sampler!r}, "
            f"iterations={self.iterations}, warmup={self.warmup})"
        )
