"""
Errors and warnings raised around sampling and post-sampling analysis.

Statistical-quality problems are never raised: they are collected as
ConvergenceWarning objects inside the diagnostic report.
"""

from typing import Optional


class SamplerFailureError(RuntimeError):
    """The sampling engine failed to return draws. Not retried here."""


class InsufficientSampleError(ValueError):
    """Too few draws (or chains) for one HDI or diagnostic computation."""


class ConvergenceWarning(UserWarning):
    """
    A convergence threshold was breached.

    Attributes
    ----------
    kind : str
        One of "rhat", "ess", "divergences", "treedepth", "energy"
    severity : str
        "fatal" for divergent transitions, "warning" otherwise
    parameter : str or None
        Flattened parameter name, None for sampler-level checks
    value : float
        Observed diagnostic value
    threshold : float
        Threshold that was breached
    """

    def __init__(
        self,
        kind: str,
        message: str,
        value: float,
        threshold: float,
        parameter: Optional[str] = None,
        severity: str = "warning",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.value = value
        self.threshold = threshold
        self.parameter = parameter
        self.severity = severity

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "parameter": self.parameter,
            "value": self.value,
            "threshold": self.threshold,
            "message": self.message,
        }

    def __repr__(self) -> str:
        """String representation."""
        return f"ConvergenceWarning({self.severity}: {self.message})"
