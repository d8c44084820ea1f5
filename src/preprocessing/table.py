"""
Observation table: validated outcome + predictor columns.

The table is the only entry point for raw data. Every check that guards the
Standardizer and the sampler happens here, so that downstream code can assume
a dense, finite, numeric N x K matrix and an N-vector outcome.

Accepted inputs:
- pandas DataFrame with one outcome column and K >= 1 predictor columns
- a sequence of row mappings (predictor name -> value) plus outcomes
"""

import logging
import numbers
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from preprocessing.exceptions import InvalidDataError

logger = logging.getLogger(__name__)


def _is_real_number(value) -> bool:
    """Reject bools and strings, which numpy would otherwise coerce."""
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, numbers.Real)


class ObservationTable:
    """
    Validated tabular observations for regression.

    Attributes
    ----------
    predictors : List[str]
        Predictor names, in column order
    x : NDArray[np.float64]
        Raw predictor matrix, shape (N, K)
    y : NDArray[np.float64]
        Outcome vector, shape (N,)
    """

    def __init__(
        self,
        x: NDArray[np.float64],
        y: NDArray[np.float64],
        predictors: Sequence[str],
        outcome: str = "y",
    ) -> None:
        x = np.array(x, dtype=np.float64)
        y = np.array(y, dtype=np.float64)
        predictors = [str(name) for name in predictors]

        if x.ndim != 2:
            raise InvalidDataError(f"Predictor matrix must be 2-D. Got shape {x.shape}")
        if y.ndim != 1:
            raise InvalidDataError(f"Outcome must be 1-D. Got shape {y.shape}")
        if x.shape[1] < 1:
            raise InvalidDataError("At least one predictor column is required")
        if x.shape[1] != len(predictors):
            raise InvalidDataError(
                f"Got {x.shape[1]} predictor columns but {len(predictors)} names"
            )
        if len(set(predictors)) != len(predictors):
            raise InvalidDataError(f"Duplicate predictor names: {predictors}")
        if outcome in predictors:
            raise InvalidDataError(f"Outcome '{outcome}' is also listed as a predictor")
        if x.shape[0] != y.shape[0]:
            raise InvalidDataError(
                f"Predictor rows ({x.shape[0]}) and outcomes ({y.shape[0]}) differ"
            )
        if x.shape[0] < 2:
            raise InvalidDataError(f"Need at least 2 observations. Got {x.shape[0]}")

        bad_cols = [name for j, name in enumerate(predictors) if not np.all(np.isfinite(x[:, j]))]
        if bad_cols:
            raise InvalidDataError(f"Missing or non-finite values in predictors: {bad_cols}")
        if not np.all(np.isfinite(y)):
            raise InvalidDataError(f"Missing or non-finite values in outcome '{outcome}'")

        x.setflags(write=False)
        y.setflags(write=False)
        self.x = x
        self.y = y
        self.predictors = predictors
        self.outcome = outcome

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        outcome: str,
        predictors: Optional[Sequence[str]] = None,
    ) -> "ObservationTable":
        """
        Build a table from a DataFrame.

        Parameters
        ----------
        frame : pd.DataFrame
            Raw data, one row per observation
        outcome : str
            Outcome column name
        predictors : Sequence[str], optional
            Predictor columns. If None, every column except the outcome.

        Raises
        ------
        InvalidDataError
            Missing columns, non-numeric columns or missing values.
        """
        if outcome not in frame.columns:
            raise InvalidDataError(f"Outcome column '{outcome}' not found")

        if predictors is None:
            predictors = [col for col in frame.columns if col != outcome]
        predictors = list(predictors)

        missing = [col for col in predictors if col not in frame.columns]
        if missing:
            raise InvalidDataError(f"Predictor columns not found: {missing}")

        for col in [outcome] + predictors:
            dtype = frame[col].dtype
            if pd.api.types.is_bool_dtype(dtype) or not pd.api.types.is_numeric_dtype(dtype):
                raise InvalidDataError(f"Column '{col}' is not numeric (dtype {dtype})")

        logger.debug("Table from frame: %d rows, predictors=%s", len(frame), predictors)
        return cls(
            x=frame[predictors].to_numpy(dtype=np.float64, na_value=np.nan),
            y=frame[outcome].to_numpy(dtype=np.float64, na_value=np.nan),
            predictors=predictors,
            outcome=outcome,
        )

    @classmethod
    def from_records(
        cls,
        rows: Sequence[Mapping[str, float]],
        outcomes: Sequence[float],
        outcome: str = "y",
    ) -> "ObservationTable":
        """
        Build a table from row mappings and a parallel outcome sequence.

        Every row must carry the same predictor names as the first row.
        """
        if len(rows) == 0:
            raise InvalidDataError("No rows supplied")
        if len(rows) != len(outcomes):
            raise InvalidDataError(
                f"Got {len(rows)} rows but {len(outcomes)} outcome values"
            )

        predictors = list(rows[0].keys())
        expected = set(predictors)
        for i, row in enumerate(rows):
            if set(row.keys()) != expected:
                raise InvalidDataError(
                    f"Row {i} has predictors {sorted(row.keys())}, expected {sorted(expected)}"
                )
            for name, value in row.items():
                if not _is_real_number(value):
                    raise InvalidDataError(f"Row {i}, predictor '{name}': non-numeric value {value!r}")

        for i, value in enumerate(outcomes):
            if value is None or not _is_real_number(value):
                raise InvalidDataError(f"Outcome {i}: non-numeric value {value!r}")

        x = np.array([[row[name] for name in predictors] for row in rows], dtype=np.float64)
        return cls(x=x, y=np.asarray(outcomes, dtype=np.float64), predictors=predictors, outcome=outcome)

    def validate_row(self, row: Mapping[str, float]) -> NDArray[np.float64]:
        """
        Check a forward-prediction row and order it like the table columns.

        The row has predictors only; an outcome key is rejected.
        """
        if set(row.keys()) != set(self.predictors):
            raise InvalidDataError(
                f"New row has predictors {sorted(row.keys())}, expected {sorted(self.predictors)}"
            )
        for name, value in row.items():
            if not _is_real_number(value):
                raise InvalidDataError(f"New row, predictor '{name}': non-numeric value {value!r}")

        values = np.array([row[name] for name in self.predictors], dtype=np.float64)
        if not np.all(np.isfinite(values)):
            raise InvalidDataError(f"New row has non-finite values: {dict(row)}")
        return values

    @property
    def n_obs(self) -> int:
        return self.x.shape[0]

    @property
    def n_predictors(self) -> int:
        return self.x.shape[1]

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ObservationTable(n_obs={self.n_obs}, predictors={self.predictors}, "
            f"outcome='{self.outcome}')"
        )
