"""Sampler output containers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .density import SiteLayout


@dataclass(frozen=True, slots=True)
class ChainDiagnostics:
    """Diagnostics for one chain.

    Parameters
    ----------
    method : str
        Sampler method identifier.
    n_iterations : int
        Total number of sampler iterations including warmup.
    n_warmup : int
        Number of discarded warmup iterations.
    n_kept_draws : int
        Number of retained draws after thinning.
    thin : int
        Thinning interval.
    n_accepted : int
        Number of accepted proposals over all iterations.
    acceptance_rate : float
        Proposal acceptance rate over all iterations.
    initialization : str
        Initialization strategy that produced the starting point.
    """

    method: str
    n_iterations: int
    n_warmup: int
    n_kept_draws: int
    thin: int
    n_accepted: int
    acceptance_rate: float
    initialization: str = "sample_prior"


@dataclass(frozen=True, slots=True)
class Chains:
    """Draws of every latent variable, indexable by ``(draw, variable, chain)``.

    Parameters
    ----------
    layout : SiteLayout
        Latent-site layout shared by all draws.
    values : numpy.ndarray
        Constrained draws with shape ``(n_draws, n_variables, n_chains)``.
    log_density : numpy.ndarray
        Log density of each draw, shape ``(n_draws, n_chains)``.
    mode : str
        ``"prior"`` or ``"posterior"``.
    diagnostics : tuple[ChainDiagnostics, ...]
        One entry per chain.
    random_seed : int | None
        Seed used for sampling.
    """

    layout: SiteLayout
    values: np.ndarray
    log_density: np.ndarray
    mode: str
    diagnostics: tuple[ChainDiagnostics, ...] = ()
    random_seed: int | None = None

    def __post_init__(self) -> None:
        if self.mode not in {"prior", "posterior"}:
            raise ValueError("mode must be 'prior' or 'posterior'")
        if self.values.ndim != 3:
            raise ValueError("values must have shape (n_draws, n_variables, n_chains)")
        if self.values.shape[1] != self.layout.size:
            raise ValueError(
                f"values have {self.values.shape[1]} variables; layout has {self.layout.size}"
            )
        if self.log_density.shape != (self.values.shape[0], self.values.shape[2]):
            raise ValueError("log_density must have shape (n_draws, n_chains)")
        if self.values.shape[0] == 0 or self.values.shape[2] == 0:
            raise ValueError("chains must contain at least one draw and one chain")

    @property
    def n_draws(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_chains(self) -> int:
        return int(self.values.shape[2])

    @property
    def variable_names(self) -> tuple[str, ...]:
        return self.layout.variable_names

    def __getitem__(self, key: Any) -> Any:
        return self.values[key]

    def get(self, variable_name: str) -> np.ndarray:
        """Return draws of one flat variable with shape ``(n_draws, n_chains)``."""

        try:
            index = self.variable_names.index(variable_name)
        except ValueError:
            available = ", ".join(self.variable_names)
            raise KeyError(f"unknown variable {variable_name!r}; available: {available}") from None
        return self.values[:, index, :]

    def site_values(self, draw: int, chain: int) -> dict[str, Any]:
        """Return site values of one draw, keyed by site name."""

        return self.layout.unflatten(self.values[draw, :, chain])


__all__ = ["ChainDiagnostics", "Chains"]
