"""
Data-validation errors raised before any sampling happens.

Both errors are fatal: they abort the fit and are reported immediately.
"""


class InvalidDataError(ValueError):
    """Missing values, mismatched column sets or non-numeric entries."""


class DegenerateColumnError(ValueError):
    """A predictor column has (near) zero standard deviation."""

    def __init__(self, column: str, scale: float) -> None:
        self.column = column
        self.scale = scale
        super().__init__(
            f"Predictor '{column}' is degenerate: standard deviation {scale:.3g} "
            f"is too small to standardize."
        )
