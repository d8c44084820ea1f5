"""
Convergence diagnostics computed from a DrawSet.

Key diagnostics:
- split Rhat: within vs. between half-chain variance; > 1.01 flags
  non-convergence
- ESS ratio: rank-normalized bulk effective sample size / nominal draws;
  < 0.1 flags inefficient sampling
- Divergences: any divergent transition is a fatal-severity warning
- Tree depth: any saturation of max_treedepth is a warning
- E-BFMI: mean energy Bayesian fraction of missing information < 0.2 is a
  warning

Nothing here halts the pipeline. Threshold breaches become ConvergenceWarning
entries in the DiagnosticReport; a computation that cannot run on the given
draws (too few chains / iterations) is recorded for that parameter only.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

from inference.draws import DrawSet
from inference.exceptions import ConvergenceWarning, InsufficientSampleError

logger = logging.getLogger(__name__)

MIN_CHAINS = 2
MIN_DRAWS = 4


def split_chains(samples: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Split each chain into its first and last halves.

    For an odd number of draws the middle draw is dropped.

    Parameters
    ----------
    samples : NDArray[np.float64]
        Shape (chains, draws)

    Returns
    -------
    NDArray[np.float64]
        Shape (2 * chains, draws // 2)
    """
    samples = np.asarray(samples, dtype=np.float64)
    n_half = samples.shape[1] // 2
    return np.concatenate([samples[:, :n_half], samples[:, -n_half:]], axis=0)


def _check_shape(samples: NDArray[np.float64]) -> NDArray[np.float64]:
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim != 2:
        raise InsufficientSampleError(
            f"Expected samples of shape (chains, draws). Got {samples.shape}"
        )
    n_chains, n_draws = samples.shape
    if n_chains < MIN_CHAINS:
        raise InsufficientSampleError(f"Need at least {MIN_CHAINS} chains. Got {n_chains}")
    if n_draws < MIN_DRAWS:
        raise InsufficientSampleError(
            f"Need at least {MIN_DRAWS} draws per chain to split chains. Got {n_draws}"
        )
    return samples


def split_rhat(samples: NDArray[np.float64]) -> float:
    """
    Compute split Rhat (potential scale reduction factor).

    With 2C half-chains of length n:
        W = mean of half-chain variances
        B = n * variance of half-chain means
        Rhat = sqrt(((n - 1) / n) * W + B / n) / sqrt(W)

    Parameters
    ----------
    samples : NDArray[np.float64]
        Posterior samples from multiple chains, shape (chains, draws).

    Returns
    -------
    rhat : float
        1.0 for frozen, identical chains; inf for frozen, different chains.

    Raises
    ------
    InsufficientSampleError
        Fewer than 2 chains or 4 draws per chain.
    """
    halves = split_chains(_check_shape(samples))
    n = halves.shape[1]

    chain_means = np.mean(halves, axis=1)
    B = n * np.var(chain_means, ddof=1)
    W = np.mean(np.var(halves, axis=1, ddof=1))

    if W <= 0.0:
        return 1.0 if B <= 0.0 else math.inf

    var_hat = ((n - 1) / n) * W + B / n
    return float(np.sqrt(var_hat) / np.sqrt(W))


def rank_normalize(samples: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Replace draws by normal scores of their pooled ranks.

        z = Φ^-1((r - 3/8) / (M + 1/4))

    with average ranks r over all M draws. Shape is preserved.
    """
    samples = np.asarray(samples, dtype=np.float64)
    ranks = stats.rankdata(samples, method="average").reshape(samples.shape)
    return stats.norm.ppf((ranks - 0.375) / (samples.size + 0.25))


def _autocovariance(chains: NDArray[np.float64]) -> NDArray[np.float64]:
    """Biased autocovariance of each chain via FFT, shape (chains, draws)."""
    n = chains.shape[1]
    centered = chains - chains.mean(axis=1, keepdims=True)
    n_fft = 2 ** int(math.ceil(math.log2(2 * n)))
    spectrum = np.fft.rfft(centered, n=n_fft, axis=1)
    acov = np.fft.irfft(spectrum * np.conjugate(spectrum), n=n_fft, axis=1)[:, :n]
    return acov.real / n


def effective_sample_size(samples: NDArray[np.float64]) -> float:
    """
    Rank-normalized split-chain (bulk) effective sample size.

    Chains are split first (odd lengths drop the middle draw), then the
    half-chains are rank-normalized together. Autocorrelations are combined across half-chains,
        ρ_t = 1 - (W - mean_c acov_c(t)) / var_plus,
    and the series is truncated with Geyer's initial positive sequence over
    lag pairs (ρ_2m + ρ_2m+1 > 0), then made monotone by Geyer's initial
    monotone sequence. With M total draws,
        τ = -1 + 2 Σ_{t<=max_t} ρ_t + ρ_{max_t+1},   τ >= 1 / log10(M),
        ESS = M / τ.
    The procedure is deterministic for identical input.

    Parameters
    ----------
    samples : NDArray[np.float64]
        Posterior samples, shape (chains, draws).

    Returns
    -------
    ess : float
        Effective sample size. Constant input returns M.
    """
    samples = _check_shape(samples)
    total = samples.size

    if np.ptp(samples) < np.finfo(np.float64).resolution:
        return float(total)

    halves = rank_normalize(split_chains(samples))
    n_chains, n_draws = halves.shape
    total = halves.size

    acov = _autocovariance(halves)
    chain_mean = halves.mean(axis=1)
    mean_var = np.mean(acov[:, 0]) * n_draws / (n_draws - 1.0)
    var_plus = mean_var * (n_draws - 1.0) / n_draws + np.var(chain_mean, ddof=1)

    rho = np.zeros(n_draws)
    rho_even = 1.0
    rho_odd = 1.0 - (mean_var - np.mean(acov[:, 1])) / var_plus
    rho[0] = rho_even
    rho[1] = rho_odd

    # Initial positive sequence
    t = 1
    while t < n_draws - 3 and rho_even + rho_odd > 0.0:
        rho_even = 1.0 - (mean_var - np.mean(acov[:, t + 1])) / var_plus
        rho_odd = 1.0 - (mean_var - np.mean(acov[:, t + 2])) / var_plus
        if rho_even + rho_odd >= 0.0:
            rho[t + 1] = rho_even
            rho[t + 2] = rho_odd
        t += 2

    max_t = t - 2
    if rho_even > 0.0:
        rho[max_t + 1] = rho_even

    # Initial monotone sequence
    t = 1
    while t <= max_t - 2:
        if rho[t + 1] + rho[t + 2] > rho[t - 1] + rho[t]:
            rho[t + 1] = (rho[t - 1] + rho[t]) / 2.0
            rho[t + 2] = rho[t + 1]
        t += 2

    tau = -1.0 + 2.0 * np.sum(rho[: max_t + 1]) + np.sum(rho[max_t + 1 : max_t + 2])
    tau = max(tau, 1.0 / np.log10(total))
    return float(total / tau)


def energy_bfmi(energy: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Energy Bayesian fraction of missing information, per chain.

        E-BFMI_c = Σ_i (E_i - E_{i-1})² / S  /  var(E)

    Parameters
    ----------
    energy : NDArray[np.float64]
        Hamiltonian energy per iteration, shape (chains, draws)
    """
    energy = np.asarray(energy, dtype=np.float64)
    if energy.ndim != 2 or energy.shape[1] < 2:
        raise InsufficientSampleError(
            f"E-BFMI needs energy of shape (chains, draws>=2). Got {energy.shape}"
        )
    numer = np.sum(np.diff(energy, axis=1) ** 2, axis=1) / energy.shape[1]
    denom = np.var(energy, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(denom > 0, numer / denom, np.inf)


@dataclass
class DiagnosticReport:
    """
    Structured convergence summary for one DrawSet.

    rhat / ess / ess_ratio are keyed by flattened parameter name. A
    parameter whose computation failed has NaN values and an entry in
    errors.
    """

    n_chains: int
    n_draws: int
    rhat: Dict[str, float] = field(default_factory=dict)
    ess: Dict[str, float] = field(default_factory=dict)
    ess_ratio: Dict[str, float] = field(default_factory=dict)
    n_divergences: int = 0
    n_max_treedepth: int = 0
    bfmi: List[float] = field(default_factory=list)
    warnings: List[ConvergenceWarning] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def mean_bfmi(self) -> float:
        return float(np.mean(self.bfmi)) if self.bfmi else math.nan

    @property
    def converged(self) -> bool:
        """True when no warning of any severity was raised."""
        return not self.warnings and not self.errors

    @property
    def has_fatal(self) -> bool:
        return any(w.severity == "fatal" for w in self.warnings)

    def to_dict(self) -> dict:
        return {
            "n_chains": self.n_chains,
            "n_draws": self.n_draws,
            "rhat": dict(self.rhat),
            "ess": dict(self.ess),
            "ess_ratio": dict(self.ess_ratio),
            "n_divergences": self.n_divergences,
            "n_max_treedepth": self.n_max_treedepth,
            "bfmi": list(self.bfmi),
            "mean_bfmi": self.mean_bfmi,
            "warnings": [w.to_dict() for w in self.warnings],
            "errors": dict(self.errors),
            "converged": self.converged,
        }

    def to_frame(self) -> pd.DataFrame:
        """Per-parameter table: rhat, ess, ess_ratio."""
        return pd.DataFrame(
            {"rhat": self.rhat, "ess": self.ess, "ess_ratio": self.ess_ratio}
        ).rename_axis("parameter")


class ConvergenceDiagnostics:
    """
    Build a DiagnosticReport from a DrawSet.

    Parameters
    ----------
    rhat_threshold : float
        Rhat above this flags the parameter. Default 1.01.
    ess_ratio_threshold : float
        ESS / total draws below this flags the parameter. Default 0.1.
    bfmi_threshold : float
        Mean E-BFMI below this is a warning. Default 0.2.
    """

    def __init__(
        self,
        rhat_threshold: float = 1.01,
        ess_ratio_threshold: float = 0.1,
        bfmi_threshold: float = 0.2,
    ) -> None:
        if rhat_threshold <= 1.0:
            raise ValueError(f"rhat_threshold must be > 1. Got {rhat_threshold}")
        if not (0.0 < ess_ratio_threshold <= 1.0):
            raise ValueError(f"ess_ratio_threshold must be in (0, 1]. Got {ess_ratio_threshold}")
        if bfmi_threshold <= 0.0:
            raise ValueError(f"bfmi_threshold must be positive. Got {bfmi_threshold}")

        self.rhat_threshold = rhat_threshold
        self.ess_ratio_threshold = ess_ratio_threshold
        self.bfmi_threshold = bfmi_threshold

    def report(
        self,
        draw_set: DrawSet,
        var_names: Optional[Sequence[str]] = None,
    ) -> DiagnosticReport:
        """
        Compute all diagnostics.

        Parameters
        ----------
        draw_set : DrawSet
            Posterior draws with sampler statistics
        var_names : Sequence[str], optional
            Variables to diagnose. Defaults to the model parameters.

        Returns
        -------
        DiagnosticReport
        """
        report = DiagnosticReport(n_chains=draw_set.n_chains, n_draws=draw_set.n_draws)

        for name, samples in draw_set.scalar_components(var_names):
            self._parameter_diagnostics(report, name, samples, draw_set.total_draws)

        self._sampler_diagnostics(report, draw_set)

        for warning in report.warnings:
            logger.warning("[%s] %s", warning.severity, warning.message)
        logger.info(
            "Diagnostics: %d parameters, %d warnings, %d errors",
            len(report.rhat), len(report.warnings), len(report.errors),
        )
        return report

    def _parameter_diagnostics(
        self,
        report: DiagnosticReport,
        name: str,
        samples: NDArray[np.float64],
        total: int,
    ) -> None:
        try:
            rhat = split_rhat(samples)
            ess = effective_sample_size(samples)
        except InsufficientSampleError as exc:
            logger.debug("Diagnostics skipped for %s: %s", name, exc)
            report.rhat[name] = math.nan
            report.ess[name] = math.nan
            report.ess_ratio[name] = math.nan
            report.errors[name] = str(exc)
            return

        ratio = ess / total
        report.rhat[name] = rhat
        report.ess[name] = ess
        report.ess_ratio[name] = ratio
        logger.debug("%s: rhat=%.4f ess=%.1f ratio=%.3f", name, rhat, ess, ratio)

        if rhat > self.rhat_threshold:
            report.warnings.append(ConvergenceWarning(
                kind="rhat",
                parameter=name,
                value=rhat,
                threshold=self.rhat_threshold,
                message=f"Rhat for {name} is {rhat:.3f} (> {self.rhat_threshold}); "
                        f"chains have not mixed.",
            ))
        if ratio < self.ess_ratio_threshold:
            report.warnings.append(ConvergenceWarning(
                kind="ess",
                parameter=name,
                value=ratio,
                threshold=self.ess_ratio_threshold,
                message=f"ESS ratio for {name} is {ratio:.3f} (< {self.ess_ratio_threshold}); "
                        f"sampling is inefficient.",
            ))

    def _sampler_diagnostics(self, report: DiagnosticReport, draw_set: DrawSet) -> None:
        """Aggregate divergences, tree-depth saturation and E-BFMI."""
        total = draw_set.total_draws

        if "diverging" in draw_set.sample_stats:
            report.n_divergences = int(np.sum(draw_set.stat("diverging")))
            if report.n_divergences > 0:
                report.warnings.append(ConvergenceWarning(
                    kind="divergences",
                    severity="fatal",
                    value=float(report.n_divergences),
                    threshold=0.0,
                    message=f"{report.n_divergences} of {total} transitions "
                            f"({report.n_divergences / total:.2%}) diverged.",
                ))

        if "reached_max_treedepth" in draw_set.sample_stats:
            report.n_max_treedepth = int(np.sum(draw_set.stat("reached_max_treedepth")))
            if report.n_max_treedepth > 0:
                report.warnings.append(ConvergenceWarning(
                    kind="treedepth",
                    value=float(report.n_max_treedepth),
                    threshold=0.0,
                    message=f"{report.n_max_treedepth} of {total} transitions "
                            f"saturated the maximum tree depth.",
                ))

        if "energy" in draw_set.sample_stats:
            try:
                report.bfmi = [float(v) for v in energy_bfmi(draw_set.stat("energy"))]
            except InsufficientSampleError as exc:
                report.errors["energy"] = str(exc)
                return
            if report.mean_bfmi < self.bfmi_threshold:
                report.warnings.append(ConvergenceWarning(
                    kind="energy",
                    value=report.mean_bfmi,
                    threshold=self.bfmi_threshold,
                    message=f"Mean E-BFMI is {report.mean_bfmi:.3f} "
                            f"(< {self.bfmi_threshold}); energy exploration is poor.",
                ))

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ConvergenceDiagnostics(rhat_threshold={self.rhat_threshold}, "
            f"ess_ratio_threshold={self.ess_ratio_threshold}, "
            f"bfmi_threshold={self.bfmi_threshold})"
        )
