"""
Bayesian model builder: robust hierarchical linear regression in PyMC.

Mathematical model (predictors standardized, outcome on its raw scale):
    α ~ Normal(α0, s_α)                         # Intercept
    μ_β ~ Normal(μ0, s_μ)                       # Hyper-mean of coefficients
    β_k ~ Normal(μ_β, s_β),  k = 1..K           # Partially pooled slopes
    σ ~ HalfNormal(s_σ)                         # Error scale
    ν = ν0 + Exponential(mean=s_ν)              # Degrees of freedom
    y_i ~ StudentT(ν, α + x_i·β, σ)            # Likelihood

Generated quantities, computed per posterior draw:
    y_rep_i ~ StudentT(ν, α + x_i·β, σ)        # Replicated outcomes
    log_lik_i = log StudentT(y_i | ν, α + x_i·β, σ)
    y_hat ~ StudentT(ν, α + x_new·β, σ)         # Held-out row prediction
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pymc as pm
import pytensor.tensor as pt
from numpy.typing import NDArray
from scipy import stats

from preprocessing.exceptions import InvalidDataError

logger = logging.getLogger(__name__)

PARAMETER_NAMES = ("alpha", "mu_beta", "beta", "sigma", "nu")
GENERATED_NAMES = ("y_rep", "log_lik", "y_hat")


class PriorSpec:
    """Specification of priors for model parameters."""

    def __init__(
        self,
        # Intercept
        intercept_loc: float = 0.0,
        intercept_scale: float = 10.0,
        # Hyper-mean of coefficients
        coef_mean_loc: float = 0.0,
        coef_mean_scale: float = 5.0,
        # Per-predictor spread around the hyper-mean
        coef_scale: float = 5.0,
        # Error scale
        sigma_scale: float = 5.0,
        # Degrees of freedom
        df_loc: float = 1.0,
        df_scale: float = 29.0,
    ) -> None:
        """
        Initialize prior specification.

        Parameters
        ----------
        intercept_loc, intercept_scale : float
            Normal prior on the intercept. Default N(0, 10).
        coef_mean_loc, coef_mean_scale : float
            Normal prior on the coefficient hyper-mean. Default N(0, 5).
        coef_scale : float
            Spread of each coefficient around the hyper-mean. Default 5.
        sigma_scale : float
            HalfNormal scale of the error term. Default 5.
        df_loc : float
            Lower bound (shift) of the degrees of freedom. Default 1.
        df_scale : float
            Mean of the exponential excess over df_loc. Default 29
            (prior mean ν = 30, i.e. near-Gaussian unless data say otherwise).
        """
        scales = {
            "intercept_scale": intercept_scale,
            "coef_mean_scale": coef_mean_scale,
            "coef_scale": coef_scale,
            "sigma_scale": sigma_scale,
            "df_scale": df_scale,
        }
        for name, value in scales.items():
            if not value > 0:
                raise ValueError(f"{name} must be positive. Got {value}")
        if df_loc < 0:
            raise ValueError(f"df_loc must be >= 0. Got {df_loc}")

        self.intercept_loc = intercept_loc
        self.intercept_scale = intercept_scale
        self.coef_mean_loc = coef_mean_loc
        self.coef_mean_scale = coef_mean_scale
        self.coef_scale = coef_scale
        self.sigma_scale = sigma_scale
        self.df_loc = df_loc
        self.df_scale = df_scale

    def to_dict(self) -> Dict[str, float]:
        return dict(vars(self))

    def __eq__(self, other) -> bool:
        return isinstance(other, PriorSpec) and self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.to_dict().items())))

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"PriorSpec(α~N({self.intercept_loc}, {self.intercept_scale}), "
            f"μ_β~N({self.coef_mean_loc}, {self.coef_mean_scale}), "
            f"s_β={self.coef_scale}, σ~HN({self.sigma_scale}), "
            f"ν={self.df_loc}+Exp(mean={self.df_scale}))"
        )


@dataclass(frozen=True)
class ModelConfig:
    """
    Immutable model shape and priors, handed to the sampler.

    Attributes
    ----------
    n_obs : int
        Number of fitting observations (N)
    n_predictors : int
        Number of predictors (K)
    predictors : Tuple[str, ...]
        Predictor names, in column order
    priors : PriorSpec
        Prior hyperparameters
    """

    n_obs: int
    n_predictors: int
    predictors: Tuple[str, ...] = ()
    priors: PriorSpec = field(default_factory=PriorSpec)

    def __post_init__(self) -> None:
        if self.n_obs <= 0 or self.n_predictors <= 0:
            raise ValueError(
                f"All dimensions must be positive. Got "
                f"n_obs={self.n_obs}, n_predictors={self.n_predictors}"
            )
        if not self.predictors:
            object.__setattr__(
                self, "predictors", tuple(f"x{j}" for j in range(self.n_predictors))
            )
        elif len(self.predictors) != self.n_predictors:
            raise ValueError(
                f"Got {len(self.predictors)} predictor names for "
                f"n_predictors={self.n_predictors}"
            )

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return PARAMETER_NAMES

    @property
    def generated_names(self) -> Tuple[str, ...]:
        return GENERATED_NAMES

    def parameter_shapes(self) -> Dict[str, Tuple[int, ...]]:
        """Per-draw shape of every declared parameter and generated quantity."""
        return {
            "alpha": (),
            "mu_beta": (),
            "beta": (self.n_predictors,),
            "sigma": (),
            "nu": (),
            "y_rep": (self.n_obs,),
            "log_lik": (self.n_obs,),
            "y_hat": (),
        }


@dataclass(frozen=True, eq=False)
class RegressionData:
    """
    Data payload passed to the sampler.

    Attributes
    ----------
    x : NDArray[np.float64]
        Standardized predictors, shape (N, K)
    y : NDArray[np.float64]
        Outcomes, shape (N,)
    x_new : NDArray[np.float64]
        Standardized held-out row, shape (K,). Zeros when no forward input.
    """

    x: NDArray[np.float64]
    y: NDArray[np.float64]
    x_new: Optional[NDArray[np.float64]] = None

    def __post_init__(self) -> None:
        x = np.array(self.x, dtype=np.float64)
        y = np.array(self.y, dtype=np.float64)
        if x.ndim != 2:
            raise InvalidDataError(f"x must be 2-D. Got shape {x.shape}")
        if y.shape != (x.shape[0],):
            raise InvalidDataError(f"y must have shape ({x.shape[0]},). Got {y.shape}")

        if self.x_new is None:
            x_new = np.zeros(x.shape[1])
        else:
            x_new = np.array(self.x_new, dtype=np.float64)
        if x_new.shape != (x.shape[1],):
            raise InvalidDataError(f"x_new must have shape ({x.shape[1]},). Got {x_new.shape}")

        for name, arr in (("x", x), ("y", y), ("x_new", x_new)):
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def n_obs(self) -> int:
        return self.x.shape[0]

    @property
    def n_predictors(self) -> int:
        return self.x.shape[1]

    def with_held_out(self, x_new: NDArray[np.float64]) -> "RegressionData":
        """Same payload with only the held-out row replaced."""
        return replace(self, x_new=x_new)

    def check_against(self, config: ModelConfig) -> None:
        """Raise if the payload shape disagrees with the model config."""
        if (self.n_obs, self.n_predictors) != (config.n_obs, config.n_predictors):
            raise InvalidDataError(
                f"Data shape (N={self.n_obs}, K={self.n_predictors}) does not match "
                f"config (N={config.n_obs}, K={config.n_predictors})"
            )


class ModelBuilder:
    """
    Robust hierarchical regression model builder.

    Attributes
    ----------
    config : ModelConfig
        Model shape and priors
    model : pm.Model or None
        PyMC model (None until built)
    """

    def __init__(self, config: ModelConfig) -> None:
        self.config = config
        self.model: Optional[pm.Model] = None

    def build(self, data: RegressionData) -> pm.Model:
        """
        Build the PyMC model conditioned on the payload.

        The held-out row is not part of the PyMC graph; its prediction is a
        generated quantity (see generate_quantities).

        Parameters
        ----------
        data : RegressionData
            Standardized predictors and outcomes

        Returns
        -------
        model : pm.Model
            PyMC model ready for inference.
        """
        data.check_against(self.config)
        p = self.config.priors
        coords = {"predictor": list(self.config.predictors), "obs": np.arange(data.n_obs)}

        with pm.Model(coords=coords) as model:
            x = pm.Data("x", data.x, dims=("obs", "predictor"))

            alpha = pm.Normal("alpha", mu=p.intercept_loc, sigma=p.intercept_scale)
            mu_beta = pm.Normal("mu_beta", mu=p.coef_mean_loc, sigma=p.coef_mean_scale)
            beta = pm.Normal("beta", mu=mu_beta, sigma=p.coef_scale, dims="predictor")
            sigma = pm.HalfNormal("sigma", sigma=p.sigma_scale)
            nu_excess = pm.Exponential("nu_excess", lam=1.0 / p.df_scale)
            nu = pm.Deterministic("nu", p.df_loc + nu_excess)

            mu = alpha + pt.dot(x, beta)
            pm.StudentT("y", nu=nu, mu=mu, sigma=sigma, observed=data.y, dims="obs")

        logger.debug("Built model: N=%d K=%d priors=%r", data.n_obs, data.n_predictors, p)
        self.model = model
        return model

    def get_model(self) -> pm.Model:
        """
        Get the built model.

        Raises
        ------
        RuntimeError
            If model has not been built yet.
        """
        if self.model is None:
            raise RuntimeError("Model has not been built. Call .build() first.")
        return self.model

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"ModelBuilder(n_obs={self.config.n_obs}, "
            f"n_predictors={self.config.n_predictors}, priors={self.config.priors})"
        )


def generate_quantities(
    posterior: Dict[str, NDArray[np.float64]],
    data: RegressionData,
    rng: np.random.Generator,
) -> Dict[str, NDArray[np.float64]]:
    """
    Compute y_rep, log_lik and y_hat for every posterior draw.

    Parameters
    ----------
    posterior : Dict[str, NDArray[np.float64]]
        alpha, sigma, nu with shape (chain, draw); beta with (chain, draw, K)
    data : RegressionData
        Payload the draws were conditioned on
    rng : np.random.Generator
        Source of the Student-t noise

    Returns
    -------
    Dict[str, NDArray[np.float64]]
        y_rep and log_lik with shape (chain, draw, N); y_hat with (chain, draw)
    """
    alpha = posterior["alpha"]
    beta = posterior["beta"]
    sigma = posterior["sigma"]
    nu = posterior["nu"]

    mu = alpha[..., None] + np.einsum("cdk,nk->cdn", beta, data.x)
    nu_obs = np.broadcast_to(nu[..., None], mu.shape)
    sigma_obs = sigma[..., None]

    y_rep = mu + sigma_obs * rng.standard_t(nu_obs)
    log_lik = stats.t.logpdf(data.y, df=nu_obs, loc=mu, scale=sigma_obs)

    mu_new = alpha + beta @ data.x_new
    y_hat = mu_new + sigma * rng.standard_t(nu)

    return {"y_rep": y_rep, "log_lik": log_lik, "y_hat": y_hat}
