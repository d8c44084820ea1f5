"""
Synthetic data for robust regression.

Generates observations from a known linear relationship with Student-t noise:

    x_ij ~ Normal(0, 1) * predictor_scale_j + predictor_loc_j
    y_i = intercept + Σ_j slope_j * z_ij + σ ε_i,   ε_i ~ StudentT(ν)

where z are the predictors standardized with the sample mean and sample
standard deviation, so that intercept and slopes are directly comparable to
the posterior of a model fitted on standardized predictors.
"""

from typing import Dict, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from preprocessing.table import ObservationTable


class SyntheticRegression:
    """
    Student-t linear regression data generator.

    Attributes
    ----------
    intercept : float
        True intercept (on standardized predictors)
    slopes : NDArray[np.float64]
        True slopes, shape (K,)
    sigma : float
        Noise scale
    nu : float
        Noise degrees of freedom
    """

    def __init__(
        self,
        intercept: float,
        slopes: Sequence[float],
        sigma: float = 1.0,
        nu: float = 5.0,
        predictor_loc: Optional[Sequence[float]] = None,
        predictor_scale: Optional[Sequence[float]] = None,
    ) -> None:
        """
        Initialize generator.

        Parameters
        ----------
        intercept : float
            True intercept
        slopes : Sequence[float]
            True slope per predictor (K >= 1)
        sigma : float
            Noise scale (> 0). Default 1.0.
        nu : float
            Noise degrees of freedom (> 0). Default 5.0.
        predictor_loc, predictor_scale : Sequence[float], optional
            Raw predictor location and scale. Defaults 0 and 1.
        """
        self.slopes = np.asarray(slopes, dtype=np.float64)
        if self.slopes.ndim != 1 or self.slopes.size < 1:
            raise ValueError(f"slopes must be a non-empty 1-D sequence. Got {slopes}")
        if sigma <= 0 or nu <= 0:
            raise ValueError(f"sigma and nu must be positive. Got sigma={sigma}, nu={nu}")

        k = self.slopes.size
        self.intercept = float(intercept)
        self.sigma = float(sigma)
        self.nu = float(nu)
        self.predictor_loc = (
            np.zeros(k) if predictor_loc is None else np.asarray(predictor_loc, dtype=np.float64)
        )
        self.predictor_scale = (
            np.ones(k) if predictor_scale is None else np.asarray(predictor_scale, dtype=np.float64)
        )
        if self.predictor_loc.shape != (k,) or self.predictor_scale.shape != (k,):
            raise ValueError(f"predictor_loc and predictor_scale must have shape ({k},)")

    @property
    def n_predictors(self) -> int:
        return self.slopes.size

    @property
    def true_parameters(self) -> Dict[str, float]:
        """Flattened names matching DrawSet.scalar_components()."""
        params = {"alpha": self.intercept}
        for j, slope in enumerate(self.slopes):
            params[f"beta[{j}]"] = float(slope)
        return params

    def generate(self, n_obs: int, random_seed: Optional[int] = None) -> ObservationTable:
        """
        Draw one synthetic table.

        Parameters
        ----------
        n_obs : int
            Number of rows (>= 2)
        random_seed : int, optional
            Random seed for reproducibility.

        Returns
        -------
        ObservationTable
            Predictors named x0..x{K-1}, outcome "y".
        """
        if n_obs < 2:
            raise ValueError(f"n_obs must be >= 2. Got {n_obs}")
        rng = np.random.default_rng(random_seed)

        x = rng.standard_normal((n_obs, self.n_predictors)) * self.predictor_scale + self.predictor_loc
        z = (x - x.mean(axis=0)) / x.std(axis=0, ddof=1)
        noise = self.sigma * rng.standard_t(self.nu, size=n_obs)
        y = self.intercept + z @ self.slopes + noise

        names = [f"x{j}" for j in range(self.n_predictors)]
        return ObservationTable(x=x, y=y, predictors=names)

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"SyntheticRegression(intercept={self.intercept}, slopes={self.slopes.tolist()}, "
            f"sigma={self.sigma}, nu={self.nu})"
        )
