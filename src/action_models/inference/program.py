"""Execution contexts for composed probabilistic programs.

A program is a plain callable ``program(ctx)`` that declares its random
variables through the context: ``ctx.sample`` for latent values and
``ctx.observe`` for conditioned data. The context decides where latent values
come from and accumulates log probabilities, so one program serves prior
draws, posterior density evaluation and replay.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from action_models.core.distributions import draw, log_probability

Program = Callable[["ProgramContext"], Any]


@dataclass(frozen=True, slots=True)
class Site:
    """One named random variable realized during a program run.

    Parameters
    ----------
    name : str
        Unique site name.
    distribution : Any
        Distribution the value was sampled from or scored against.
    value : Any
        Realized value.
    log_probability : float
        Log probability contributed to the run. Zero for unscored sites.
    observed : bool
        Whether the value was conditioning data.
    """

    name: str
    distribution: Any
    value: Any
    log_probability: float
    observed: bool


class ProgramContext(ABC):
    """Base execution context.

    Attributes
    ----------
    sites : dict[str, Site]
        Realized sites in execution order.
    log_prior : float
        Summed log probability of latent sites.
    log_likelihood : float
        Summed log probability of scored observed sites.
    rejected : bool
        Whether the run was rejected (probability zero).
    """

    def __init__(self, *, score_observations: bool = True) -> None:
        self.score_observations = score_observations
        self.sites: dict[str, Site] = {}
        self.log_prior = 0.0
        self.log_likelihood = 0.0
        self.rejected = False
        self.rejection_reason: str | None = None

    @property
    def log_joint(self) -> float:
        """Return total log probability, ``-inf`` for rejected runs."""

        if self.rejected:
            return float("-inf")
        return float(self.log_prior + self.log_likelihood)

    def sample(self, name: str, distribution: Any) -> Any:
        """Realize a latent site and return its value."""

        self._check_name(name)
        value = self._latent_value(name, distribution)
        log_prob = log_probability(distribution, value)
        self.log_prior += log_prob
        self.sites[name] = Site(name, distribution, value, log_prob, observed=False)
        return value

    def observe(self, name: str, distribution: Any, value: Any) -> Any:
        """Condition on ``value`` at an observed site and return it."""

        self._check_name(name)
        log_prob = log_probability(distribution, value) if self.score_observations else 0.0
        self.log_likelihood += log_prob
        self.sites[name] = Site(name, distribution, value, log_prob, observed=True)
        return value

    def reject(self, reason: str | None = None) -> None:
        """Give the current run probability zero."""

        self.rejected = True
        self.rejection_reason = reason

    def latent_sites(self) -> dict[str, Site]:
        """Return latent sites in execution order."""

        return {name: site for name, site in self.sites.items() if not site.observed}

    def latent_values(self) -> dict[str, Any]:
        """Return latent site values in execution order."""

        return {name: site.value for name, site in self.sites.items() if not site.observed}

    def _check_name(self, name: str) -> None:
        if name in self.sites:
            raise ValueError(f"duplicate site name {name!r}")

    @abstractmethod
    def _latent_value(self, name: str, distribution: Any) -> Any:
        """Return the value of latent site ``name``."""


class GenerativeContext(ProgramContext):
    """Context that draws latent values from their distributions.

    Parameters
    ----------
    rng : numpy.random.Generator
        Generator for latent draws.
    score_observations : bool, optional
        Whether observed sites contribute to ``log_likelihood``. Prior
        sampling leaves them unscored.
    """

    def __init__(self, rng: np.random.Generator, *, score_observations: bool = True) -> None:
        super().__init__(score_observations=score_observations)
        self.rng = rng

    def _latent_value(self, name: str, distribution: Any) -> Any:
        return draw(distribution, self.rng)


class ReplayContext(ProgramContext):
    """Context that reads latent values from a name-keyed mapping.

    Parameters
    ----------
    values : Mapping[str, Any]
        Latent values keyed by site name.
    score_observations : bool, optional
        Whether observed sites contribute to ``log_likelihood``.
    """

    def __init__(self, values: Mapping[str, Any], *, score_observations: bool = True) -> None:
        super().__init__(score_observations=score_observations)
        self.values = values

    def _latent_value(self, name: str, distribution: Any) -> Any:
        try:
            return self.values[name]
        except KeyError:
            raise KeyError(f"no value supplied for latent site {name!r}") from None


__all__ = [
    "GenerativeContext",
    "Program",
    "ProgramContext",
    "ReplayContext",
    "Site",
]
