"""Classify timesteps by missing-action policy before model assembly.

Every timestep gets a :class:`TimestepPlan`. Timesteps without missing action
components are ``NO_MISSING``; the others follow one dataset-wide policy,
``INFER`` (missing components become sampled latent values) or ``SKIP`` (the
step function still runs but missing components are neither scored nor
sampled). The plan is fixed once per dataset and shapes the composed program.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from enum import Enum

from action_models.core.errors import ActionModelsWarning

from .sessions import SessionData


class MissingActionPolicy(str, Enum):
    """Per-timestep handling of action data."""

    NO_MISSING = "no_missing"
    INFER = "infer"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class TimestepPlan:
    """Handling of one timestep's actions.

    Parameters
    ----------
    policy : MissingActionPolicy
        ``NO_MISSING`` when every component is observed.
    missing : tuple[bool, ...]
        Missing flag per declared action component.
    """

    policy: MissingActionPolicy
    missing: tuple[bool, ...]

    def __post_init__(self) -> None:
        if self.policy is MissingActionPolicy.NO_MISSING and any(self.missing):
            raise ValueError("NO_MISSING timesteps cannot have missing components")
        if self.policy is not MissingActionPolicy.NO_MISSING and not any(self.missing):
            raise ValueError(f"{self.policy.value} timesteps must have a missing component")


@dataclass(frozen=True, slots=True)
class MissingActionPlan:
    """Timestep plans for every session.

    Parameters
    ----------
    policy : MissingActionPolicy
        Dataset-wide policy: ``NO_MISSING`` when the dataset has no missing
        actions, otherwise ``INFER`` or ``SKIP``.
    timesteps : tuple[tuple[TimestepPlan, ...], ...]
        Per-session, per-timestep plans aligned with the session data.
    """

    policy: MissingActionPolicy
    timesteps: tuple[tuple[TimestepPlan, ...], ...]

    @property
    def n_missing(self) -> int:
        """Return the number of missing action components."""

        return int(
            sum(sum(plan.missing) for session in self.timesteps for plan in session)
        )

    def markers(self) -> tuple[tuple[MissingActionPolicy, ...], ...]:
        """Return per-session policy sequences."""

        return tuple(tuple(plan.policy for plan in session) for session in self.timesteps)


def resolve_missing_actions(
    session_data: SessionData,
    *,
    infer_missing_actions: bool = False,
    verbose: bool = True,
) -> MissingActionPlan:
    """Build the missing-action plan for a decomposed dataset.

    Parameters
    ----------
    session_data : SessionData
        Decomposed dataset.
    infer_missing_actions : bool, optional
        Whether missing actions are inferred (``True``) or skipped.
    verbose : bool, optional
        Whether to warn about policy fallbacks.

    Returns
    -------
    MissingActionPlan
        Deterministic plan for the given data and flag.
    """

    missing_masks = tuple(
        tuple(
            tuple(component is None for component in session_data.action_components(index, step))
            for step in range(len(session_data.actions[index]))
        )
        for index in range(session_data.n_sessions)
    )
    has_missing = any(any(mask) for session in missing_masks for mask in session)

    if not has_missing:
        if infer_missing_actions and verbose:
            warnings.warn(
                "infer_missing_actions is True but the dataset has no missing actions; "
                "no actions will be inferred",
                ActionModelsWarning,
                stacklevel=2,
            )
        policy = MissingActionPolicy.NO_MISSING
    elif infer_missing_actions:
        policy = MissingActionPolicy.INFER
    else:
        if verbose:
            warnings.warn(
                "the dataset has missing actions and infer_missing_actions is False; "
                "missing actions will be skipped",
                ActionModelsWarning,
                stacklevel=2,
            )
        policy = MissingActionPolicy.SKIP

    timesteps = tuple(
        tuple(
            TimestepPlan(
                policy=policy if any(mask) else MissingActionPolicy.NO_MISSING,
                missing=mask,
            )
            for mask in session
        )
        for session in missing_masks
    )
    return MissingActionPlan(policy=policy, timesteps=timesteps)


__all__ = [
    "MissingActionPlan",
    "MissingActionPolicy",
    "TimestepPlan",
    "resolve_missing_actions",
]
