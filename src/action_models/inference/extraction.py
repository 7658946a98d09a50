"""Reshape sampler output into per-session parameters and state trajectories.

Both extractions re-run parts of the composed program with the latent values
of each draw, so they address sessions and timesteps with exactly the names
used during sampling. Results are cached on the fitted model's result slot.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import numpy as np

from action_models.core.attributes import ModelAttributes
from action_models.core.errors import ActionModelsWarning, UnknownAttributeError

from .assembler import Rejected
from .chains import Chains
from .fit import ModelFit, ModelFitResult
from .missing_actions import MissingActionPolicy
from .program import ReplayContext
from .sampling import sample_posterior, sample_prior

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionParameters:
    """Parameter draws per session.

    Parameters
    ----------
    session_ids : tuple[str, ...]
        Sessions in dataset order.
    parameter_names : tuple[str, ...]
        Estimated parameters in population-model order.
    values : numpy.ndarray
        Draws with shape ``(n_sessions, n_parameters, n_draws, n_chains)``.
        ``float`` for scalar parameters, ``object`` when any value is an
        array.
    mode : str
        ``"prior"`` or ``"posterior"``.
    session_keys : tuple[Mapping[str, Any], ...], optional
        Grouping column values of each session. Empty when unknown.
    """

    session_ids: tuple[str, ...]
    parameter_names: tuple[str, ...]
    values: np.ndarray
    mode: str
    session_keys: tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self) -> None:
        expected = (len(self.session_ids), len(self.parameter_names))
        if self.values.ndim != 4 or self.values.shape[:2] != expected:
            raise ValueError(
                "values must have shape (n_sessions, n_parameters, n_draws, n_chains)"
            )
        _check_session_keys(self.session_ids, self.session_keys)

    @property
    def n_draws(self) -> int:
        return int(self.values.shape[2])

    @property
    def n_chains(self) -> int:
        return int(self.values.shape[3])

    def get(self, session_id: str, parameter_name: str) -> np.ndarray:
        """Return draws of one parameter in one session, ``(n_draws, n_chains)``."""

        return self.values[self._session_index(session_id), self._parameter_index(parameter_name)]

    def session(self, session_id: str) -> dict[str, np.ndarray]:
        """Return all parameter draws of one session keyed by parameter."""

        index = self._session_index(session_id)
        return {name: self.values[index, position] for position, name in enumerate(self.parameter_names)}

    def draw(self, session_index: int, draw: int, chain: int) -> tuple[Any, ...]:
        """Return the parameter tuple of one session at one draw."""

        return tuple(
            _python_value(self.values[session_index, position, draw, chain])
            for position in range(len(self.parameter_names))
        )

    def _session_index(self, session_id: str) -> int:
        try:
            return self.session_ids.index(session_id)
        except ValueError:
            raise KeyError(f"unknown session {session_id!r}") from None

    def _parameter_index(self, parameter_name: str) -> int:
        try:
            return self.parameter_names.index(parameter_name)
        except ValueError:
            available = ", ".join(self.parameter_names)
            raise KeyError(f"unknown parameter {parameter_name!r}; available: {available}") from None


@dataclass(frozen=True, slots=True)
class StateTrajectories:
    """Replayed state histories per state and session.

    Parameters
    ----------
    state_names : tuple[str, ...]
        Recorded states.
    session_ids : tuple[str, ...]
        Sessions in dataset order.
    values : Mapping[str, Mapping[str, numpy.ndarray]]
        ``values[state][session_id]`` has shape
        ``(n_draws, n_chains, n_timesteps + 1)``; index 0 on the last axis is
        the state after reset. Timesteps after a rejection hold ``nan``.
    mode : str
        ``"prior"`` or ``"posterior"``.
    session_keys : tuple[Mapping[str, Any], ...], optional
        Grouping column values of each session. Empty when unknown.
    """

    state_names: tuple[str, ...]
    session_ids: tuple[str, ...]
    values: Mapping[str, Mapping[str, np.ndarray]]
    mode: str
    session_keys: tuple[Mapping[str, Any], ...] = ()

    def __post_init__(self) -> None:
        _check_session_keys(self.session_ids, self.session_keys)

    def get(self, state_name: str, session_id: str) -> np.ndarray:
        """Return one state's trajectories in one session."""

        if state_name not in self.values:
            raise KeyError(f"unknown state {state_name!r}; available: {', '.join(self.state_names)}")
        by_session = self.values[state_name]
        if session_id not in by_session:
            raise KeyError(f"unknown session {session_id!r}")
        return by_session[session_id]


def _check_session_keys(session_ids: tuple[str, ...], session_keys: tuple[Mapping[str, Any], ...]) -> None:
    if session_keys and len(session_keys) != len(session_ids):
        raise ValueError("session_keys must have one entry per session")


def _python_value(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def _as_array(nested: list[Any], depth: int) -> np.ndarray:
    """Return a float array when every leaf is a scalar, otherwise objects.

    ``depth`` is the number of list levels above the leaves, so array-valued
    leaves never add dimensions.
    """

    shape: list[int] = []
    level: Any = nested
    for _ in range(depth):
        shape.append(len(level))
        level = level[0] if level else []
    array = np.empty(tuple(shape), dtype=object)
    for index in np.ndindex(*shape):
        leaf: Any = nested
        for position in index:
            leaf = leaf[position]
        array[index] = leaf
    if all(np.ndim(value) == 0 for value in array.flat):
        try:
            return array.astype(float)
        except (TypeError, ValueError):
            return array
    return array


def _ensure_result(
    model_fit: ModelFit,
    which: str,
    *,
    verbose: bool,
    sampling_options: Mapping[str, Any] | None,
) -> ModelFitResult:
    """Return a result slot, sampling it first when empty."""

    result = model_fit.result(which)
    if result is not None:
        return result
    if verbose:
        warnings.warn(
            f"the {which} has not been sampled yet; sampling it now",
            ActionModelsWarning,
            stacklevel=3,
        )
    options = dict(sampling_options) if sampling_options is not None else {}
    if which == "posterior":
        sample_posterior(model_fit, **options)
    else:
        sample_prior(model_fit, **options)
    result = model_fit.result(which)
    assert result is not None
    return result


def get_session_parameters(
    model_fit: ModelFit,
    which: str = "posterior",
    *,
    verbose: bool = True,
    sampling_options: Mapping[str, Any] | None = None,
) -> SessionParameters:
    """Return per-session parameter draws, computing and caching them once.

    Parameters
    ----------
    model_fit : ModelFit
        Fitted-model container.
    which : str, optional
        ``"posterior"`` or ``"prior"``.
    verbose : bool, optional
        Whether to warn when sampling is triggered.
    sampling_options : Mapping[str, Any] | None, optional
        Keyword arguments for the sampler when sampling is triggered.

    Returns
    -------
    SessionParameters
        The cached structure; repeated calls return the same object until
        the result slot is resampled.
    """

    result = _ensure_result(model_fit, which, verbose=verbose, sampling_options=sampling_options)
    if result.session_parameters is None:
        result.session_parameters = _extract_session_parameters(model_fit, result.chains)
    return result.session_parameters


def _extract_session_parameters(model_fit: ModelFit, chains: Chains) -> SessionParameters:
    program = model_fit.program
    n_sessions = len(model_fit.session_ids)
    n_parameters = len(model_fit.parameter_names)
    nested = [
        [[[None] * chains.n_chains for _ in range(chains.n_draws)] for _ in range(n_parameters)]
        for _ in range(n_sessions)
    ]
    for chain in range(chains.n_chains):
        for draw in range(chains.n_draws):
            ctx = ReplayContext(chains.site_values(draw, chain), score_observations=False)
            per_session = program.population_parameters(ctx)
            for session_index, parameters in enumerate(per_session):
                for position, value in enumerate(parameters):
                    nested[session_index][position][draw][chain] = value
    logger.debug("extracted parameters for %d sessions", n_sessions)
    return SessionParameters(
        session_ids=model_fit.session_ids,
        parameter_names=model_fit.parameter_names,
        values=_as_array(nested, 4),
        mode=chains.mode,
        session_keys=model_fit.session_data.session_keys,
    )


def get_state_trajectories(
    model_fit: ModelFit,
    state_names: str | Sequence[str],
    which: str = "posterior",
    *,
    n_jobs: int = 1,
    verbose: bool = True,
    sampling_options: Mapping[str, Any] | None = None,
) -> StateTrajectories:
    """Replay every session under every draw and record state histories.

    Each replay builds its own attribute tree with the draw's session
    parameters, stores the dataset's actions (inferred actions come from the
    draw) and samples nothing.

    Parameters
    ----------
    model_fit : ModelFit
        Fitted-model container.
    state_names : str | Sequence[str]
        States to record, including submodel states.
    which : str, optional
        ``"posterior"`` or ``"prior"``.
    n_jobs : int, optional
        Worker threads; sessions are replayed independently.
    verbose : bool, optional
        Whether to warn when sampling is triggered.
    sampling_options : Mapping[str, Any] | None, optional
        Keyword arguments for the sampler when sampling is triggered.

    Returns
    -------
    StateTrajectories
        Cached trajectories for the requested states.

    Raises
    ------
    UnknownAttributeError
        If a requested state is not declared by the action model.
    """

    names = (state_names,) if isinstance(state_names, str) else tuple(state_names)
    if not names:
        raise ValueError("state_names must not be empty")
    declared = model_fit.action_model.state_names
    for name in names:
        if name not in declared:
            raise UnknownAttributeError(name, "state", declared, location="the action model")
    if n_jobs <= 0:
        raise ValueError("n_jobs must be > 0")

    session_parameters = get_session_parameters(
        model_fit,
        which,
        verbose=verbose,
        sampling_options=sampling_options,
    )
    result = _ensure_result(model_fit, which, verbose=verbose, sampling_options=sampling_options)
    cached = result.state_trajectories.get(names)
    if cached is not None:
        return cached

    chains = result.chains
    needs_latent = model_fit.missing_plan.policy is MissingActionPolicy.INFER
    latent_values = (
        [[chains.site_values(draw, chain) for chain in range(chains.n_chains)] for draw in range(chains.n_draws)]
        if needs_latent
        else None
    )

    def replay(session_index: int) -> dict[str, np.ndarray]:
        return _replay_session(
            model_fit,
            session_index,
            names,
            session_parameters=session_parameters,
            latent_values=latent_values,
        )

    session_indices = range(len(model_fit.session_ids))
    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            per_session = list(executor.map(replay, session_indices))
    else:
        per_session = [replay(index) for index in session_indices]

    values = {
        name: {
            session_id: per_session[index][name]
            for index, session_id in enumerate(model_fit.session_ids)
        }
        for name in names
    }
    trajectories = StateTrajectories(
        state_names=names,
        session_ids=model_fit.session_ids,
        values=values,
        mode=chains.mode,
        session_keys=model_fit.session_data.session_keys,
    )
    result.state_trajectories[names] = trajectories
    return trajectories


def _replay_session(
    model_fit: ModelFit,
    session_index: int,
    names: tuple[str, ...],
    *,
    session_parameters: SessionParameters,
    latent_values: list[list[dict[str, Any]]] | None,
) -> dict[str, np.ndarray]:
    """Replay one session for all draws and chains."""

    program = model_fit.program
    n_timesteps = len(model_fit.session_data.observations[session_index])
    n_draws = session_parameters.n_draws
    n_chains = session_parameters.n_chains
    nested: dict[str, list[list[list[Any]]]] = {
        name: [[[] for _ in range(n_chains)] for _ in range(n_draws)] for name in names
    }

    for draw in range(n_draws):
        for chain in range(n_chains):
            histories = {name: nested[name][draw][chain] for name in names}

            def record(attributes: ModelAttributes) -> None:
                for name, history in histories.items():
                    value = attributes.get_states(name)
                    history.append(value.copy() if isinstance(value, np.ndarray) else value)

            outcome = program.replay_session(
                session_index,
                session_parameters.draw(session_index, draw, chain),
                latent_values[draw][chain] if latent_values is not None else {},
                recorder=record,
            )
            if isinstance(outcome, Rejected):
                logger.debug(outcome.describe())
            for history in histories.values():
                history.extend([np.nan] * (n_timesteps + 1 - len(history)))

    return {
        name: _as_array(
            [[[_missing_as_nan(value) for value in history] for history in per_draw] for per_draw in nested[name]],
            3,
        )
        for name in names
    }


def _missing_as_nan(value: Any) -> Any:
    return np.nan if value is None else value


__all__ = [
    "SessionParameters",
    "StateTrajectories",
    "get_session_parameters",
    "get_state_trajectories",
]
