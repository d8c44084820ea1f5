"""
Column-wise z-scoring of predictors.

    z_ij = (x_ij - m_j) / s_j

where m_j is the column mean and s_j the sample standard deviation (ddof=1)
captured at fit time. New rows are always scaled with the fit-time (m, s);
a row is never scaled by its own statistics, otherwise forward predictions
would live on a different scale from the fitted coefficients.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from preprocessing.exceptions import DegenerateColumnError, InvalidDataError
from preprocessing.table import ObservationTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ColumnStats:
    """Per-column location and scale captured by Standardizer.fit."""

    names: Tuple[str, ...]
    means: NDArray[np.float64]
    scales: NDArray[np.float64]

    def __post_init__(self) -> None:
        for arr in (self.means, self.scales):
            arr.setflags(write=False)

    @property
    def n_columns(self) -> int:
        return len(self.names)


@dataclass(frozen=True, eq=False)
class StandardizedMatrix:
    """Scaled N x K matrix and the stats used to produce it."""

    values: NDArray[np.float64]
    stats: ColumnStats

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape


class Standardizer:
    """
    Reversible z-scoring with fit-time statistics.

    Parameters
    ----------
    epsilon : float
        Smallest admissible column standard deviation. Default 1e-10.
    """

    def __init__(self, epsilon: float = 1e-10) -> None:
        if epsilon <= 0:
            raise ValueError(f"epsilon must be positive. Got {epsilon}")
        self.epsilon = epsilon

    def fit(
        self,
        columns: Union[ObservationTable, NDArray[np.float64]],
        names: Optional[Sequence[str]] = None,
    ) -> StandardizedMatrix:
        """
        Compute column statistics and scale the matrix.

        Parameters
        ----------
        columns : ObservationTable or NDArray[np.float64]
            Table, or raw predictor matrix of shape (N, K)
        names : Sequence[str], optional
            Column names for a raw matrix. Defaults to x0, x1, ...

        Returns
        -------
        StandardizedMatrix
            Scaled values with their ColumnStats.

        Raises
        ------
        DegenerateColumnError
            If a column standard deviation is below epsilon.
        """
        if isinstance(columns, ObservationTable):
            x = columns.x
            names = columns.predictors
        else:
            x = np.asarray(columns, dtype=np.float64)
            if x.ndim != 2:
                raise InvalidDataError(f"Expected a 2-D matrix. Got shape {x.shape}")
            if names is None:
                names = [f"x{j}" for j in range(x.shape[1])]

        if len(names) != x.shape[1]:
            raise InvalidDataError(f"Got {len(names)} names for {x.shape[1]} columns")
        if x.shape[0] < 2:
            raise InvalidDataError(f"Need at least 2 rows to standardize. Got {x.shape[0]}")

        means = np.mean(x, axis=0)
        scales = np.std(x, axis=0, ddof=1)

        for name, scale in zip(names, scales):
            if not np.isfinite(scale) or scale < self.epsilon:
                raise DegenerateColumnError(name, float(scale))

        stats = ColumnStats(names=tuple(names), means=means, scales=scales)
        values = self.apply_matrix(x, stats)
        logger.debug("Standardized %d columns: means=%s scales=%s", len(names), means, scales)
        return StandardizedMatrix(values=values, stats=stats)

    @staticmethod
    def apply(row: NDArray[np.float64], stats: ColumnStats) -> NDArray[np.float64]:
        """
        Scale one raw row with fit-time stats.

        Parameters
        ----------
        row : NDArray[np.float64]
            Raw predictor values ordered as stats.names, shape (K,)
        stats : ColumnStats
            Stats captured by fit()

        Returns
        -------
        NDArray[np.float64]
            Scaled row, shape (K,)
        """
        row = np.asarray(row, dtype=np.float64)
        if row.shape != (stats.n_columns,):
            raise InvalidDataError(
                f"Row must have shape ({stats.n_columns},). Got {row.shape}"
            )
        return (row - stats.means) / stats.scales

    @staticmethod
    def apply_matrix(x: NDArray[np.float64], stats: ColumnStats) -> NDArray[np.float64]:
        """Scale every row of x with fit-time stats."""
        x = np.asarray(x, dtype=np.float64)
        if x.ndim != 2 or x.shape[1] != stats.n_columns:
            raise InvalidDataError(
                f"Matrix must have shape (N, {stats.n_columns}). Got {x.shape}"
            )
        scaled = (x - stats.means) / stats.scales
        scaled.setflags(write=False)
        return scaled

    @staticmethod
    def inverse(scaled: NDArray[np.float64], stats: ColumnStats) -> NDArray[np.float64]:
        """Map scaled values (row or matrix) back to raw units."""
        return np.asarray(scaled, dtype=np.float64) * stats.scales + stats.means

    def __repr__(self) -> str:
        """String representation."""
        return f"Standardizer(epsilon={self.epsilon})"
