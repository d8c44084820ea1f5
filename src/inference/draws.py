"""
DrawSet: immutable container of posterior draws and sampler statistics.

Every array is indexed (chain, draw, *parameter_shape). Vector parameters are
flattened to scalar components named like "beta[0]" when a 3-D
(chain, iteration, parameter) view is needed.

A DrawSet is created by exactly one sampler invocation and never mutated;
all arrays are stored read-only.
"""

import types
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray


def _frozen(arr) -> NDArray:
    out = np.array(arr)
    out.setflags(write=False)
    return out


class DrawSet:
    """
    Posterior draws per chain and iteration.

    Attributes
    ----------
    n_chains : int
        Number of chains
    n_draws : int
        Post-warmup iterations per chain
    parameters : Tuple[str, ...]
        Model parameter names
    generated : Tuple[str, ...]
        Generated-quantity names (y_rep, log_lik, y_hat)
    sample_stats : Mapping[str, NDArray]
        Per-iteration sampler diagnostics, shape (chain, draw), read-only
    """

    def __init__(
        self,
        draws: Mapping[str, NDArray[np.float64]],
        sample_stats: Optional[Mapping[str, NDArray]] = None,
        generated: Sequence[str] = (),
        sampling_time: float = 0.0,
    ) -> None:
        """
        Initialize draw set.

        Parameters
        ----------
        draws : Mapping[str, NDArray[np.float64]]
            Name -> array of shape (chain, draw, *shape)
        sample_stats : Mapping[str, NDArray], optional
            Name -> array of shape (chain, draw)
        generated : Sequence[str]
            Which names in draws are generated quantities
        sampling_time : float
            Wall time of the sampler invocation (seconds)

        Raises
        ------
        ValueError
            If arrays disagree on (chain, draw) or have fewer than 2 dims.
        """
        if not draws:
            raise ValueError("DrawSet needs at least one variable")

        leading: Optional[Tuple[int, int]] = None
        frozen: Dict[str, NDArray[np.float64]] = {}
        for name, values in draws.items():
            arr = _frozen(np.asarray(values, dtype=np.float64))
            if arr.ndim < 2:
                raise ValueError(
                    f"'{name}' must have shape (chain, draw, ...). Got {arr.shape}"
                )
            if leading is None:
                leading = arr.shape[:2]
            elif arr.shape[:2] != leading:
                raise ValueError(
                    f"All chains must have equal length: '{name}' has (chain, draw)="
                    f"{arr.shape[:2]}, expected {leading}"
                )
            frozen[name] = arr

        stats: Dict[str, NDArray] = {}
        for name, values in (sample_stats or {}).items():
            arr = _frozen(values)
            if arr.shape != leading:
                raise ValueError(
                    f"Sample stat '{name}' must have shape {leading}. Got {arr.shape}"
                )
            stats[name] = arr

        unknown = [name for name in generated if name not in frozen]
        if unknown:
            raise ValueError(f"Generated quantities not in draws: {unknown}")

        self._draws = frozen
        self.sample_stats = types.MappingProxyType(stats)
        self.generated = tuple(generated)
        self.parameters = tuple(name for name in frozen if name not in self.generated)
        self.n_chains, self.n_draws = leading
        self.sampling_time = sampling_time

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._draws)

    @property
    def total_draws(self) -> int:
        return self.n_chains * self.n_draws

    def __contains__(self, name: str) -> bool:
        return name in self._draws

    def __getitem__(self, name: str) -> NDArray[np.float64]:
        try:
            return self._draws[name]
        except KeyError:
            raise KeyError(f"'{name}' not in draws. Available: {list(self._draws)}") from None

    def flatten(self, name: str) -> NDArray[np.float64]:
        """Pool chains: shape (chain * draw, *shape)."""
        arr = self[name]
        return arr.reshape(-1, *arr.shape[2:])

    def scalar_components(
        self, names: Optional[Sequence[str]] = None
    ) -> Iterator[Tuple[str, NDArray[np.float64]]]:
        """
        Yield (flat_name, values) for each scalar component.

        values has shape (chain, draw). Defaults to model parameters only.
        """
        for name in names if names is not None else self.parameters:
            arr = self[name]
            if arr.ndim == 2:
                yield name, arr
                continue
            for idx in np.ndindex(*arr.shape[2:]):
                label = ",".join(str(i) for i in idx)
                yield f"{name}[{label}]", arr[(slice(None), slice(None)) + idx]

    def flat_names(self, names: Optional[Sequence[str]] = None) -> List[str]:
        return [flat for flat, _ in self.scalar_components(names)]

    def to_array(self, names: Optional[Sequence[str]] = None) -> NDArray[np.float64]:
        """3-D view: (chain, iteration, flattened parameter)."""
        columns = [values for _, values in self.scalar_components(names)]
        return np.stack(columns, axis=-1)

    def stat(self, name: str) -> NDArray:
        """Sampler statistic, shape (chain, draw)."""
        if name not in self.sample_stats:
            raise KeyError(
                f"Sample stat '{name}' not reported by the sampler. "
                f"Available: {list(self.sample_stats)}"
            )
        return self.sample_stats[name]

    def to_inference_data(self):
        """
        Hand the draws to ArviZ (for plotting / presentation layers).

        Returns
        -------
        arviz.InferenceData
        """
        import arviz as az

        posterior = {name: np.asarray(self[name]) for name in self.parameters}
        predictive = {name: np.asarray(self[name]) for name in self.generated}
        stats = {name: np.asarray(values) for name, values in self.sample_stats.items()}
        return az.from_dict(
            posterior=posterior,
            posterior_predictive=predictive or None,
            sample_stats=stats or None,
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"DrawSet(chains={self.n_chains}, draws={self.n_draws}, "
            f"parameters={list(self.parameters)}, generated={list(self.generated)})"
        )
