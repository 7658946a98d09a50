"""Fitted-model container and its prior/posterior result slots."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from action_models.core.action_model import ActionModel

    from .assembler import ComposedProgram
    from .chains import Chains
    from .missing_actions import MissingActionPlan
    from .sessions import SessionData

RESULT_KINDS = ("prior", "posterior")


@dataclass(slots=True)
class ModelFitResult:
    """Sampler output plus lazily computed, cached extractions.

    Parameters
    ----------
    chains : Chains
        Prior or posterior draws.
    session_parameters : SessionParameters | None, optional
        Cached per-session parameter draws.
    state_trajectories : dict[tuple[str, ...], StateTrajectories], optional
        Cached state trajectories keyed by requested state names.
    """

    chains: Chains
    session_parameters: Any = None
    state_trajectories: dict[tuple[str, ...], Any] = field(default_factory=dict)


@dataclass(slots=True)
class ModelFit:
    """Composed program with its prior and posterior results.

    Parameters
    ----------
    program : ComposedProgram
        Program built by :func:`~action_models.inference.assembler.create_model`.
    prior, posterior : ModelFitResult | None, optional
        Sampling results. Replaced, with their caches, only by explicit
        resampling.
    """

    program: ComposedProgram
    prior: ModelFitResult | None = None
    posterior: ModelFitResult | None = None

    def __repr__(self) -> str:
        return (
            f"ModelFit(population_model_type={self.population_model_type!r}, "
            f"n_sessions={len(self.session_ids)}, parameter_names={list(self.parameter_names)!r}, "
            f"prior_sampled={self.prior is not None}, posterior_sampled={self.posterior is not None})"
        )

    @property
    def action_model(self) -> ActionModel:
        return self.program.action_model

    @property
    def session_data(self) -> SessionData:
        return self.program.session_data

    @property
    def session_ids(self) -> tuple[str, ...]:
        return self.program.session_data.session_ids

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Return estimated parameter names in population-model order."""

        return self.program.parameter_names

    @property
    def population_model_type(self) -> str:
        return self.program.population_model.population_model_type

    @property
    def missing_plan(self) -> MissingActionPlan:
        return self.program.missing_plan

    def result(self, which: str) -> ModelFitResult | None:
        """Return the ``"prior"`` or ``"posterior"`` result slot."""

        if which not in RESULT_KINDS:
            raise ValueError(f"which must be one of {RESULT_KINDS}; got {which!r}")
        return self.prior if which == "prior" else self.posterior

    def store(self, which: str, chains: Chains) -> ModelFitResult:
        """Replace one result slot, dropping its cached extractions."""

        if which not in RESULT_KINDS:
            raise ValueError(f"which must be one of {RESULT_KINDS}; got {which!r}")
        result = ModelFitResult(chains=chains)
        if which == "prior":
            self.prior = result
        else:
            self.posterior = result
        return result


__all__ = ["RESULT_KINDS", "ModelFit", "ModelFitResult"]
