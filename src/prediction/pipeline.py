"""
Two-phase regression pipeline: fit, then predict.

    fit(table) -> (ModelArtifacts, DiagnosticReport)
    analyze(artifacts) -> AnalysisReport
    predict(artifacts, new_row) -> PredictiveDistribution

Stages run synchronously and each consumes the complete output of the
previous one. Data-validation errors abort immediately; convergence problems
are reported, never enforced.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from inference.diagnostics import ConvergenceDiagnostics, DiagnosticReport
from inference.draws import DrawSet
from inference.exceptions import InsufficientSampleError
from inference.hdi import HDIEstimator, HDIResult
from inference.model_builder import ModelConfig, PriorSpec, RegressionData
from inference.ppc import PosteriorPredictiveCheck, PPCResult, Statistic
from inference.sampler import Sampler
from prediction.predictor import ForwardPredictor, PredictiveDistribution
from preprocessing.standardizer import StandardizedMatrix, Standardizer
from preprocessing.table import ObservationTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ModelArtifacts:
    """Everything produced by one fit, reused unchanged by predict()."""

    table: ObservationTable
    standardized: StandardizedMatrix
    config: ModelConfig
    data: RegressionData
    draw_set: DrawSet


@dataclass
class AnalysisReport:
    """Diagnostics, PPC results by statistic and HDIs by parameter and mass."""

    diagnostics: DiagnosticReport
    ppc: Dict[str, PPCResult] = field(default_factory=dict)
    hdi: Dict[str, Dict[float, HDIResult]] = field(default_factory=dict)
    hdi_errors: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "diagnostics": self.diagnostics.to_dict(),
            "ppc": PosteriorPredictiveCheck.summary(self.ppc),
            "hdi": {
                name: {mass: result.to_dict() for mass, result in per_mass.items()}
                for name, per_mass in self.hdi.items()
            },
            "hdi_errors": dict(self.hdi_errors),
        }


class RegressionPipeline:
    """
    Orchestrates standardization, sampling, diagnostics and prediction.

    Parameters
    ----------
    sampler : Sampler
        Posterior engine (NUTSSampler in production)
    priors : PriorSpec, optional
        Prior specification. If None, use defaults.
    iterations : int
        Post-warmup draws per chain. Default 1000.
    warmup : int
        Warmup iterations per chain. Default 1000.
    diagnostics : ConvergenceDiagnostics, optional
        Thresholds for the report. If None, use defaults.
    standardizer : Standardizer, optional
        If None, use defaults.
    """

    def __init__(
        self,
        sampler: Sampler,
        priors: Optional[PriorSpec] = None,
        iterations: int = 1000,
        warmup: int = 1000,
        diagnostics: Optional[ConvergenceDiagnostics] = None,
        standardizer: Optional[Standardizer] = None,
    ) -> None:
        if iterations < 1 or warmup < 0:
            raise ValueError(
                f"iterations must be >= 1 and warmup >= 0. Got {iterations}, {warmup}"
            )
        self.sampler = sampler
        self.priors = priors or PriorSpec()
        self.iterations = iterations
        self.warmup = warmup
        self.diagnostics = diagnostics or ConvergenceDiagnostics()
        self.standardizer = standardizer or Standardizer()

    def fit(self, table: ObservationTable) -> Tuple[ModelArtifacts, DiagnosticReport]:
        """
        Standardize, sample and diagnose.

        Raises
        ------
        DegenerateColumnError
            Zero-variance predictor.
        SamplerFailureError
            Engine failed to return draws.
        """
        logger.info("Fitting: %r", table)
        standardized = self.standardizer.fit(table)
        config = ModelConfig(
            n_obs=table.n_obs,
            n_predictors=table.n_predictors,
            predictors=tuple(table.predictors),
            priors=self.priors,
        )
        data = RegressionData(x=standardized.values, y=table.y)

        draw_set = self.sampler.sample(config, data, self.iterations, self.warmup)
        report = self.diagnostics.report(draw_set)

        artifacts = ModelArtifacts(
            table=table,
            standardized=standardized,
            config=config,
            data=data,
            draw_set=draw_set,
        )
        return artifacts, report

    def analyze(
        self,
        artifacts: ModelArtifacts,
        statistics: Union[Sequence[Statistic], Mapping[str, Statistic]] = (
            "min", "max", "mean", "median",
        ),
        masses: Sequence[float] = (0.5, 0.9, 0.95),
        report: Optional[DiagnosticReport] = None,
    ) -> AnalysisReport:
        """
        Build the full reporting surface for a fit.

        A failing HDI (too few draws) is recorded for that parameter only.
        """
        draw_set = artifacts.draw_set
        if report is None:
            report = self.diagnostics.report(draw_set)

        analysis = AnalysisReport(diagnostics=report)
        analysis.ppc = PosteriorPredictiveCheck.check_all(
            artifacts.table.y, draw_set["y_rep"], statistics
        )

        for name in draw_set.parameters:
            try:
                analysis.hdi.update(HDIEstimator.intervals_for(draw_set, name, masses))
            except InsufficientSampleError as exc:
                logger.warning("HDI skipped for %s: %s", name, exc)
                analysis.hdi_errors[name] = str(exc)

        return analysis

    def predict(
        self,
        artifacts: ModelArtifacts,
        new_row: Mapping[str, float],
    ) -> PredictiveDistribution:
        """
        Posterior predictive distribution for a new raw row.

        Raises
        ------
        InvalidDataError
            Row has different predictors or non-numeric values.
        SamplerFailureError
            Engine failed to return draws.
        """
        raw_row = artifacts.table.validate_row(new_row)
        predictor = ForwardPredictor(self.sampler, self.iterations, self.warmup)
        return predictor.predict(
            artifacts.standardized.stats, artifacts.config, artifacts.data, raw_row
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"RegressionPipeline(sampler={self.sampler!r}, iterations={self.iterations}, "
            f"warmup={self.warmup}, priors={self.priors})"
        )
