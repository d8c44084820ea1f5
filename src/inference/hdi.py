"""
Highest-density intervals from a one-dimensional sample.

Minimal-width window search:
    sort the M draws, k = max(1, floor(p * M))
    i* = argmin_i (x_(i+k-1) - x_(i)),  i = 0..M-k
    HDI = [x_(i*), x_(i*+k-1)], reported mass k / M

The reported mass is k / M rather than p, because of discretization.

Limitation: the window search assumes a unimodal marginal. For a strongly
multimodal sample the single interval may cover low-density gaps between
modes; no multimodality detection is performed.
"""

import math
from dataclasses import dataclass
from typing import Dict, Sequence

import numpy as np
from numpy.typing import NDArray

from inference.draws import DrawSet
from inference.exceptions import InsufficientSampleError


@dataclass(frozen=True)
class HDIResult:
    """Interval bounds and the mass they actually contain."""

    lower: float
    upper: float
    credible_mass: float

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, value: float) -> bool:
        return self.lower <= value <= self.upper

    def to_dict(self) -> Dict[str, float]:
        return {"lower": self.lower, "upper": self.upper, "credible_mass": self.credible_mass}


class HDIEstimator:
    """Narrowest interval containing a given fraction of a sample."""

    @staticmethod
    def interval(sample: NDArray[np.float64], credible_mass: float = 0.9) -> HDIResult:
        """
        Compute the minimal-width interval.

        Parameters
        ----------
        sample : NDArray[np.float64]
            Draws of one scalar quantity. Any shape; flattened.
        credible_mass : float
            Target mass p, strictly between 0 and 1.

        Returns
        -------
        HDIResult
            Bounds with lower <= upper and mass floor(p * M) / M.

        Raises
        ------
        InsufficientSampleError
            If M < 2, p is not in (0, 1), or the sample has non-finite values.
        """
        if not (0.0 < credible_mass < 1.0):
            raise InsufficientSampleError(
                f"credible_mass must be strictly between 0 and 1. Got {credible_mass}"
            )

        ordered = np.sort(np.asarray(sample, dtype=np.float64).ravel())
        m = ordered.size
        if m < 2:
            raise InsufficientSampleError(f"HDI needs at least 2 draws. Got {m}")
        if not np.all(np.isfinite(ordered)):
            raise InsufficientSampleError("HDI sample contains non-finite values")

        k = max(1, int(math.floor(credible_mass * m)))
        widths = ordered[k - 1:] - ordered[: m - k + 1]
        i_min = int(np.argmin(widths))

        return HDIResult(
            lower=float(ordered[i_min]),
            upper=float(ordered[i_min + k - 1]),
            credible_mass=k / m,
        )

    @classmethod
    def intervals_for(
        cls,
        draw_set: DrawSet,
        name: str,
        masses: Sequence[float] = (0.9,),
    ) -> Dict[str, Dict[float, HDIResult]]:
        """
        HDIs for every scalar component of one variable, per credible mass.

        Returns
        -------
        Dict[str, Dict[float, HDIResult]]
            flat name (e.g. "beta[1]") -> mass -> interval
        """
        return {
            flat: {mass: cls.interval(values, mass) for mass in masses}
            for flat, values in draw_set.scalar_components([name])
        }
