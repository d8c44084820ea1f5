"""
Posterior predictive checks.

Compares a statistic T of the observed outcome with the distribution of the
same statistic over replicated outcomes y_rep drawn from the fitted model.

Two-sided posterior predictive p-value (ties count on both sides):
    p = min(1, 2 * min(P(T_rep >= T_obs), P(T_rep <= T_obs)))

p near 1: observed statistic sits in the bulk of the replicates.
p near 0: observed statistic is in a tail the model rarely reproduces.
The p-value is a comparison primitive; callers pick their own threshold.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from preprocessing.exceptions import InvalidDataError

logger = logging.getLogger(__name__)

Statistic = Union[str, Callable[[NDArray[np.float64]], float]]

STATISTICS: Dict[str, Callable[..., NDArray[np.float64]]] = {
    "min": np.min,
    "max": np.max,
    "mean": np.mean,
    "median": np.median,
    "std": np.std,
}


@dataclass(frozen=True, eq=False)
class PPCResult:
    """Observed statistic vs. its replicated distribution."""

    statistic: str
    observed: float
    replicated: NDArray[np.float64]
    p_value: float

    @property
    def replicated_mean(self) -> float:
        return float(np.mean(self.replicated))

    def to_dict(self) -> dict:
        return {
            "statistic": self.statistic,
            "observed": self.observed,
            "replicated_mean": self.replicated_mean,
            "replicated_quantiles": {
                q: float(np.quantile(self.replicated, q)) for q in (0.05, 0.5, 0.95)
            },
            "p_value": self.p_value,
        }


@dataclass(frozen=True, eq=False)
class PairedMeans:
    """Per-observation posterior mean of y_rep next to the observed outcome."""

    observed: NDArray[np.float64]
    predicted_mean: NDArray[np.float64]

    @property
    def residuals(self) -> NDArray[np.float64]:
        return self.observed - self.predicted_mean


def two_sided_p_value(observed: float, replicated: NDArray[np.float64]) -> float:
    """Fraction of replicates at least as extreme as observed, both tails."""
    replicated = np.asarray(replicated, dtype=np.float64)
    upper = np.mean(replicated >= observed)
    lower = np.mean(replicated <= observed)
    return float(min(1.0, 2.0 * min(upper, lower)))


class PosteriorPredictiveCheck:
    """
    Posterior predictive checks for model validation.

    Compares observed data to draws from the posterior predictive
    distribution to assess whether the model generates plausible data.
    """

    @staticmethod
    def _prepare(
        observed: NDArray[np.float64], y_rep: NDArray[np.float64]
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
        observed = np.asarray(observed, dtype=np.float64)
        y_rep = np.asarray(y_rep, dtype=np.float64)
        if observed.ndim != 1:
            raise InvalidDataError(f"observed must be 1-D. Got shape {observed.shape}")

        # (chain, draw, N) -> (chain * draw, N)
        if y_rep.ndim == 3:
            y_rep = y_rep.reshape(-1, y_rep.shape[-1])
        if y_rep.ndim != 2 or y_rep.shape[1] != observed.shape[0]:
            raise InvalidDataError(
                f"y_rep must have shape (draws, {observed.shape[0]}). Got {y_rep.shape}"
            )
        if y_rep.shape[0] == 0:
            raise InvalidDataError("y_rep has no draws")
        return observed, y_rep

    @staticmethod
    def _resolve(statistic: Statistic) -> Tuple[str, Callable]:
        if isinstance(statistic, str):
            if statistic not in STATISTICS:
                raise ValueError(
                    f"Unknown statistic '{statistic}'. Choose from {sorted(STATISTICS)} "
                    f"or pass a callable."
                )
            return statistic, STATISTICS[statistic]
        if not callable(statistic):
            raise ValueError(f"statistic must be a name or a callable. Got {statistic!r}")
        return getattr(statistic, "__name__", repr(statistic)), statistic

    @classmethod
    def check(
        cls,
        observed: NDArray[np.float64],
        y_rep: NDArray[np.float64],
        statistic: Statistic = "mean",
        label: Optional[str] = None,
    ) -> PPCResult:
        """
        Compute a posterior predictive check for one statistic.

        Parameters
        ----------
        observed : NDArray[np.float64]
            Observed outcomes, shape (N,)
        y_rep : NDArray[np.float64]
            Replicated outcomes, shape (draws, N) or (chain, draw, N)
        statistic : str or callable
            Registered name (min, max, mean, median, std) or a reduction
            over an N-vector.
        label : str, optional
            Name stored on the result. Defaults to the statistic name or
            the callable's __name__.

        Returns
        -------
        PPCResult
        """
        observed, y_rep = cls._prepare(observed, y_rep)
        name, func = cls._resolve(statistic)
        if label is not None:
            name = label

        obs_value = float(func(observed))
        if isinstance(statistic, str):
            replicated = np.asarray(func(y_rep, axis=1), dtype=np.float64)
        else:
            replicated = np.array([func(row) for row in y_rep], dtype=np.float64)

        p_value = two_sided_p_value(obs_value, replicated)
        logger.debug("PPC %s: observed=%.4g p=%.3f", name, obs_value, p_value)
        return PPCResult(statistic=name, observed=obs_value, replicated=replicated, p_value=p_value)

    @classmethod
    def check_all(
        cls,
        observed: NDArray[np.float64],
        y_rep: NDArray[np.float64],
        statistics: Union[Sequence[Statistic], Mapping[str, Statistic]] = (
            "min", "max", "mean", "median",
        ),
    ) -> Dict[str, PPCResult]:
        """
        Run check() for several statistics, keyed by statistic name.

        A mapping supplies its own keys, which lets several lambdas or
        same-named callables be checked together.

        Raises
        ------
        ValueError
            If two statistics resolve to the same key.
        """
        if isinstance(statistics, Mapping):
            labelled = [(str(label), statistic) for label, statistic in statistics.items()]
        else:
            labelled = [(cls._resolve(statistic)[0], statistic) for statistic in statistics]

        results: Dict[str, PPCResult] = {}
        for label, statistic in labelled:
            if label in results:
                raise ValueError(
                    f"Duplicate statistic name '{label}'. Pass a mapping of "
                    f"unique names to statistics."
                )
            results[label] = cls.check(observed, y_rep, statistic, label=label)
        return results

    @classmethod
    def paired_means(
        cls,
        observed: NDArray[np.float64],
        y_rep: NDArray[np.float64],
    ) -> PairedMeans:
        """Posterior mean of y_rep per observation, for residual inspection."""
        observed, y_rep = cls._prepare(observed, y_rep)
        return PairedMeans(observed=observed, predicted_mean=np.mean(y_rep, axis=0))

    @staticmethod
    def summary(results: Mapping[str, PPCResult]) -> Dict[str, dict]:
        return {name: result.to_dict() for name, result in results.items()}
