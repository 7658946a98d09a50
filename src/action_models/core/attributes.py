"""Mutable runtime attribute store for one agent or one session rollout.

A :class:`ModelAttributes` tree holds the current parameter, state and
previous-action values of an action model, plus an optional nested submodel
store it exclusively owns. Step functions read and write values through the
methods here (or the ``load_*``/``update_state`` helpers).
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from .errors import ModelSpecificationError, UnknownAttributeError
from .variables import (
    NO_ACTION,
    Action,
    InitialStateParameter,
    Parameter,
    State,
    Variable,
    initialize_variable,
)

ParameterDeclaration = Parameter | InitialStateParameter


@dataclass(frozen=True, slots=True)
class _ParameterLink:
    """Initial state resolved from a parameter's current value at reset."""

    parameter_name: str


class ModelAttributes:
    """Current parameter, state and action values of one model instance.

    Parameters
    ----------
    parameters : dict[str, Variable]
        Parameter variables keyed by name.
    states : dict[str, Variable]
        State variables keyed by name.
    actions : dict[str, Variable]
        Previous-action variables keyed by name, in declared order.
    initial_states : dict[str, Any]
        Reset values keyed by state name. Values linked to an
        :class:`~action_models.core.variables.InitialStateParameter` are read
        from the parameter at reset time.
    submodel : ModelAttributes | None, optional
        Owned attribute store of an embedded submodel.
    """

    __slots__ = ("parameters", "states", "actions", "initial_states", "submodel")

    def __init__(
        self,
        parameters: dict[str, Variable],
        states: dict[str, Variable],
        actions: dict[str, Variable],
        initial_states: dict[str, Any],
        submodel: ModelAttributes | None = None,
    ) -> None:
        self.parameters = parameters
        self.states = states
        self.actions = actions
        self.initial_states = initial_states
        self.submodel = submodel

    def __repr__(self) -> str:
        return (
            f"ModelAttributes(parameters={self.get_parameters()!r}, "
            f"states={self.get_states()!r}, actions={self.get_actions()!r})"
        )

    # names

    def parameter_names(self) -> tuple[str, ...]:
        """Return parameter names including the submodel's."""

        return self._names("parameter")

    def state_names(self) -> tuple[str, ...]:
        """Return state names including the submodel's."""

        return self._names("state")

    def action_names(self) -> tuple[str, ...]:
        """Return declared action names in order."""

        return tuple(self.actions)

    # getters

    def get_parameters(self, name: str | Sequence[str] | None = None) -> Any:
        """Return parameter values.

        Parameters
        ----------
        name : str | Sequence[str] | None, optional
            One name, several names, or ``None`` for every parameter including
            the submodel's.

        Returns
        -------
        Any
            One value for a single name, otherwise a ``dict`` keyed by name.

        Raises
        ------
        UnknownAttributeError
            If a requested name is neither declared here nor in the submodel.
        """

        return self._get("parameter", name)

    def get_states(self, name: str | Sequence[str] | None = None) -> Any:
        """Return state values; see :meth:`get_parameters`."""

        return self._get("state", name)

    def get_actions(self, name: str | Sequence[str] | None = None) -> Any:
        """Return previous-action values; see :meth:`get_parameters`."""

        return self._get("action", name)

    # setters

    def set_parameters(self, name: str | Sequence[str] | Mapping[str, Any], value: Any = None) -> None:
        """Assign parameter values.

        Accepts ``(name, value)``, parallel ``(names, values)`` sequences, or
        one mapping. Every name and value is validated before anything is
        assigned.

        Raises
        ------
        UnknownAttributeError
            Naming the first unknown name.
        AttributeTypeError
            If a value is incompatible with its declaration.
        """

        self._set("parameter", name, value)

    def set_states(self, name: str | Sequence[str] | Mapping[str, Any], value: Any = None) -> None:
        """Assign state values; see :meth:`set_parameters`."""

        self._set("state", name, value)

    def set_actions(self, name: str | Sequence[str] | Mapping[str, Any], value: Any = None) -> None:
        """Assign previous-action values; see :meth:`set_parameters`."""

        self._set("action", name, value)

    def store_action(self, value: Any) -> None:
        """Record realized action value(s) as the previous action.

        A tuple holds one value per declared action, in declared order.
        """

        names = tuple(self.actions)
        if len(names) == 1:
            if isinstance(value, tuple):
                if len(value) != 1:
                    raise ValueError(f"expected 1 action value, got {len(value)}")
                value = value[0]
            self.actions[names[0]].set(value)
            return
        if not isinstance(value, tuple) or len(value) != len(names):
            raise ValueError(
                f"expected a tuple of {len(names)} action values for actions {list(names)}"
            )
        coerced = [
            self.actions[action_name].coerce(item)
            for action_name, item in zip(names, value, strict=True)
        ]
        for action_name, item in zip(names, coerced, strict=True):
            self.actions[action_name].set(item)

    def reset(self) -> None:
        """Restore declared initial states and clear previous actions.

        States linked to an initial-state parameter take that parameter's
        current value. The submodel is reset recursively.
        """

        for state_name, initial in self.initial_states.items():
            if isinstance(initial, _ParameterLink):
                initial = self.parameters[initial.parameter_name].value
            if isinstance(initial, np.ndarray):
                initial = initial.copy()
            self.states[state_name].set(initial)
        for variable in self.actions.values():
            variable.set(NO_ACTION)
        if self.submodel is not None:
            self.submodel.reset()

    # internals

    def _table(self, kind: str) -> dict[str, Variable]:
        if kind == "parameter":
            return self.parameters
        if kind == "state":
            return self.states
        if kind == "action":
            return self.actions
        raise ValueError(f"unknown attribute kind {kind!r}")

    def _names(self, kind: str) -> tuple[str, ...]:
        own = tuple(self._table(kind))
        if self.submodel is None or kind == "action":
            return own
        return own + self.submodel._names(kind)

    def _find(self, kind: str, name: str) -> Variable | None:
        variable = self._table(kind).get(name)
        if variable is not None:
            return variable
        if self.submodel is not None:
            return self.submodel._find(kind, name)
        return None

    def _locate(self, kind: str, name: str) -> Variable:
        variable = self._find(kind, name)
        if variable is None:
            raise UnknownAttributeError(name, kind, self._names(kind))
        return variable

    def _get(self, kind: str, name: str | Sequence[str] | None) -> Any:
        if name is None:
            return {
                variable_name: self._locate(kind, variable_name).value
                for variable_name in self._names(kind)
            }
        if isinstance(name, str):
            return self._locate(kind, name).value
        return {item: self._locate(kind, item).value for item in name}

    def _set(self, kind: str, name: str | Sequence[str] | Mapping[str, Any], value: Any) -> None:
        if isinstance(name, str):
            self._locate(kind, name).set(value)
            return
        if isinstance(name, Mapping):
            names = tuple(name)
            values = tuple(name.values())
        else:
            names = tuple(name)
            if value is None or isinstance(value, str):
                raise ValueError("batch assignment requires a sequence of values")
            values = tuple(value)
            if len(names) != len(values):
                raise ValueError(
                    f"got {len(names)} names but {len(values)} values for {kind} assignment"
                )
        variables = [self._locate(kind, item) for item in names]
        coerced = [variable.coerce(item) for variable, item in zip(variables, values, strict=True)]
        for variable, item in zip(variables, coerced, strict=True):
            variable.set(item)


class Submodel(ABC):
    """Embeddable component with private parameters and states.

    Subclasses declare ``parameters`` and ``states`` and add the behavior the
    outer step function calls with ``attributes.submodel``.
    """

    parameters: Mapping[str, ParameterDeclaration] = {}
    states: Mapping[str, State] = {}

    def initialize_attributes(self, *, float_type: type = float, int_type: type = int) -> ModelAttributes:
        """Return a fresh attribute store for this submodel."""

        return build_model_attributes(
            self.parameters,
            self.states,
            {},
            float_type=float_type,
            int_type=int_type,
        )


def check_declarations(
    parameters: Mapping[str, ParameterDeclaration],
    states: Mapping[str, State],
    actions: Mapping[str, Action],
) -> None:
    """Validate declaration types and initial-state parameter links.

    Raises
    ------
    ModelSpecificationError
        If a declaration has the wrong type, names collide or an
        initial-state parameter references an unknown or incompatible state.
    """

    for name, declaration in parameters.items():
        if not isinstance(declaration, (Parameter, InitialStateParameter)):
            raise ModelSpecificationError(f"parameter {name!r} must be a Parameter declaration")
    for name, declaration in states.items():
        if not isinstance(declaration, State):
            raise ModelSpecificationError(f"state {name!r} must be a State declaration")
    for name, declaration in actions.items():
        if not isinstance(declaration, Action):
            raise ModelSpecificationError(f"action {name!r} must be an Action declaration")

    overlap = sorted(set(parameters) & set(states))
    if overlap:
        raise ModelSpecificationError(f"names used for both parameters and states: {overlap}")

    linked: dict[str, str] = {}
    for name, declaration in parameters.items():
        if not isinstance(declaration, InitialStateParameter):
            continue
        if declaration.state not in states:
            raise ModelSpecificationError(
                f"initial state parameter {name!r} refers to unknown state {declaration.state!r}; "
                f"available states: {sorted(states)}"
            )
        if declaration.state in linked:
            raise ModelSpecificationError(
                f"state {declaration.state!r} is initialized by both "
                f"{linked[declaration.state]!r} and {name!r}"
            )
        linked[declaration.state] = name
        state = states[declaration.state]
        if state.dtype is int and not declaration.discrete:
            raise ModelSpecificationError(
                f"initial state parameter {name!r} is continuous but state "
                f"{declaration.state!r} is integer"
            )
        if state.dtype is not object and state.shape != declaration.shape:
            raise ModelSpecificationError(
                f"initial state parameter {name!r} has shape {declaration.shape} but state "
                f"{declaration.state!r} has shape {state.shape}"
            )


def build_model_attributes(
    parameters: Mapping[str, ParameterDeclaration],
    states: Mapping[str, State],
    actions: Mapping[str, Action],
    submodel: Submodel | None = None,
    *,
    float_type: type = float,
    int_type: type = int,
) -> ModelAttributes:
    """Instantiate a fresh, reset attribute tree from declarations."""

    parameter_variables = {
        name: initialize_variable(name, declaration, float_type=float_type, int_type=int_type)
        for name, declaration in parameters.items()
    }
    state_variables = {
        name: initialize_variable(name, declaration, float_type=float_type, int_type=int_type)
        for name, declaration in states.items()
    }
    action_variables = {
        name: initialize_variable(name, declaration, float_type=float_type, int_type=int_type)
        for name, declaration in actions.items()
    }
    initial_states: dict[str, Any] = {
        name: declaration.initial_value for name, declaration in states.items()
    }
    for name, declaration in parameters.items():
        if isinstance(declaration, InitialStateParameter):
            initial_states[declaration.state] = _ParameterLink(name)

    nested = (
        submodel.initialize_attributes(float_type=float_type, int_type=int_type)
        if submodel is not None
        else None
    )
    attributes = ModelAttributes(
        parameters=parameter_variables,
        states=state_variables,
        actions=action_variables,
        initial_states=initial_states,
        submodel=nested,
    )
    attributes.reset()
    return attributes


def load_parameters(attributes: ModelAttributes) -> dict[str, Any]:
    """Return all parameter values, including the submodel's."""

    return attributes.get_parameters()


def load_states(attributes: ModelAttributes) -> dict[str, Any]:
    """Return all state values, including the submodel's."""

    return attributes.get_states()


def load_actions(attributes: ModelAttributes) -> dict[str, Any]:
    """Return previous-action values."""

    return attributes.get_actions()


def update_state(attributes: ModelAttributes, name: str, value: Any) -> None:
    """Assign one state value from inside a step function."""

    attributes.set_states(name, value)


__all__ = [
    "ModelAttributes",
    "Submodel",
    "build_model_attributes",
    "check_declarations",
    "load_actions",
    "load_parameters",
    "load_states",
    "update_state",
]
