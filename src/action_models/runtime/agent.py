"""Agent simulation engine.

An :class:`Agent` couples a shared :class:`~action_models.core.ActionModel`
with its own :class:`~action_models.core.ModelAttributes` and steps it forward
one observation at a time, sampling each action from the model's own
distributions.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import Any

import numpy as np

from action_models.core.action_model import ActionModel
from action_models.core.attributes import ModelAttributes
from action_models.core.distributions import draw
from action_models.core.errors import UnknownAttributeError


class Agent:
    """Live, resettable instance of an action model.

    Parameters
    ----------
    action_model : ActionModel
        Shared model specification.
    attributes : ModelAttributes
        Attribute tree owned by this agent.
    history_names : Sequence[str], optional
        State and action names whose values are recorded after every
        observation.
    rng : numpy.random.Generator | None, optional
        Generator used for action sampling.

    Notes
    -----
    Each recorded history holds ``n_timesteps + 1`` values: the value before
    the first observation followed by one value per observation. Agents are
    not safe for concurrent use.
    """

    def __init__(
        self,
        action_model: ActionModel,
        attributes: ModelAttributes,
        *,
        history_names: Sequence[str] = (),
        rng: np.random.Generator | None = None,
    ) -> None:
        self.action_model = action_model
        self.attributes = attributes
        self.rng = rng if rng is not None else np.random.default_rng()
        self.n_timesteps = 0
        self._history_kinds = _resolve_history_kinds(attributes, history_names)
        self.history: dict[str, list[Any]] = {}
        self._start_history()

    def __repr__(self) -> str:
        return (
            f"Agent(n_timesteps={self.n_timesteps}, parameters={self.get_parameters()!r}, "
            f"history={list(self.history)!r})"
        )

    def observe(self, observation: Any) -> Any:
        """Step the model with one observation and return the sampled action.

        Parameters
        ----------
        observation : Any
            One observation value, or a tuple with one value per declared
            observation.

        Returns
        -------
        Any
            Sampled action, or a tuple with one value per declared action.

        Raises
        ------
        RejectParameters
            Propagated unchanged when the step function rejects the current
            parameters.
        """

        distributions = self.action_model.step_distributions(self.attributes, observation)
        sampled = tuple(draw(distribution, self.rng) for distribution in distributions)
        action = sampled[0] if len(sampled) == 1 else sampled
        self.attributes.store_action(action)
        if self._history_kinds:
            self._record()
        self.n_timesteps += 1
        return action

    def reset(self) -> None:
        """Return to the declared initial condition and clear histories."""

        self.attributes.reset()
        self.n_timesteps = 0
        self._start_history()

    def get_history(self, name: str | Sequence[str] | None = None) -> Any:
        """Return recorded histories.

        Parameters
        ----------
        name : str | Sequence[str] | None, optional
            One recorded name, several names, or ``None`` for all.

        Returns
        -------
        Any
            A list of values for one name, otherwise a ``dict`` of lists.

        Raises
        ------
        UnknownAttributeError
            If a requested name is not recorded.
        """

        if name is None:
            return {key: list(values) for key, values in self.history.items()}
        if isinstance(name, str):
            return list(self._history_values(name))
        return {item: list(self._history_values(item)) for item in name}

    def get_parameters(self, name: str | Sequence[str] | None = None) -> Any:
        return self.attributes.get_parameters(name)

    def set_parameters(self, name: Any, value: Any = None) -> None:
        self.attributes.set_parameters(name, value)

    def get_states(self, name: str | Sequence[str] | None = None) -> Any:
        return self.attributes.get_states(name)

    def set_states(self, name: Any, value: Any = None) -> None:
        self.attributes.set_states(name, value)

    def get_actions(self, name: str | Sequence[str] | None = None) -> Any:
        return self.attributes.get_actions(name)

    def _history_values(self, name: str) -> list[Any]:
        if name not in self.history:
            raise UnknownAttributeError(
                name,
                "state",
                tuple(self.history),
                location="the agent's history",
            )
        return self.history[name]

    def _read(self, name: str) -> Any:
        value = (
            self.attributes.get_states(name)
            if self._history_kinds[name] == "state"
            else self.attributes.get_actions(name)
        )
        if isinstance(value, np.ndarray):
            return value.copy()
        return value

    def _start_history(self) -> None:
        self.history = {name: [self._read(name)] for name in self._history_kinds}

    def _record(self) -> None:
        for name, values in self.history.items():
            values.append(self._read(name))


def _resolve_history_kinds(attributes: ModelAttributes, names: Sequence[str]) -> dict[str, str]:
    """Map each recorded name to ``"state"`` or ``"action"``."""

    states = set(attributes.state_names())
    actions = set(attributes.action_names())
    kinds: dict[str, str] = {}
    for name in names:
        if name in states:
            kinds[name] = "state"
        elif name in actions:
            kinds[name] = "action"
        else:
            raise UnknownAttributeError(
                name,
                "state or action",
                attributes.state_names() + attributes.action_names(),
            )
    return kinds


def init_agent(
    action_model: ActionModel,
    *,
    save_history: bool | str | Sequence[str] = False,
    random_seed: int | None = None,
    float_type: type = float,
    int_type: type = int,
) -> Agent:
    """Create an agent at the model's declared defaults.

    Parameters
    ----------
    action_model : ActionModel
        Model to instantiate.
    save_history : bool | str | Sequence[str], optional
        ``True`` records every state and action, a name or sequence of names
        records those, ``False`` records nothing.
    random_seed : int | None, optional
        Seed for the agent's action-sampling generator.
    float_type, int_type : type, optional
        Numeric family of the attribute values.

    Returns
    -------
    Agent
        Fresh agent with ``n_timesteps == 0``.
    """

    attributes = action_model.initialize_attributes(float_type=float_type, int_type=int_type)
    if save_history is True:
        history_names: tuple[str, ...] = attributes.state_names() + attributes.action_names()
    elif save_history is False or save_history is None:
        history_names = ()
    elif isinstance(save_history, str):
        history_names = (save_history,)
    else:
        history_names = tuple(save_history)
    return Agent(
        action_model,
        attributes,
        history_names=history_names,
        rng=np.random.default_rng(random_seed),
    )


def _iter_observations(observations: Any) -> Iterable[Any]:
    """Yield per-timestep observations from sequences or 2D arrays."""

    if isinstance(observations, np.ndarray):
        if observations.ndim == 1:
            return (item.item() for item in observations)
        if observations.ndim == 2:
            return (tuple(row.tolist()) for row in observations)
        raise ValueError("observation arrays must be 1D or 2D")
    return observations


def iter_simulate(agent: Agent, observations: Any) -> Iterator[Any]:
    """Lazily observe each element of ``observations`` in order.

    The returned generator is single-use; each ``next`` performs one
    :meth:`Agent.observe`.
    """

    for observation in _iter_observations(observations):
        yield agent.observe(observation)


def simulate(agent: Agent, observations: Any) -> list[Any]:
    """Observe every element of ``observations`` and return all actions.

    Parameters
    ----------
    agent : Agent
        Agent to step forward. It is not reset first.
    observations : Any
        Sequence of observations (scalars or tuples), or an array whose rows
        are per-timestep observation tuples.

    Returns
    -------
    list[Any]
        Sampled actions in timestep order.
    """

    return list(iter_simulate(agent, observations))


__all__ = ["Agent", "init_agent", "iter_simulate", "simulate"]
