"""Action model specification.

An :class:`ActionModel` pairs a step function
``step(attributes, observation_1, ..., observation_k)`` returning one
distribution (or one per declared action) with the declared parameter, state,
observation and action schemas. Construction validates the whole contract so
simulation and model assembly can rely on it without re-checking.
"""

from __future__ import annotations

import inspect
import warnings
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .attributes import ModelAttributes, Submodel, build_model_attributes, check_declarations
from .distributions import is_discrete, is_distribution
from .errors import ActionModelsWarning, ModelSpecificationError, RejectParameters
from .variables import Action, InitialStateParameter, Observation, Parameter, State

_DEFAULT_NAMES = {
    "parameter": "parameter",
    "state": "state",
    "observation": "observation",
    "action": "action",
}


def _normalize_declarations(raw: Any, *, kind: str, declaration_types: tuple[type, ...]) -> dict[str, Any]:
    """Coerce a declaration mapping or single declaration to a name-keyed dict."""

    if raw is None:
        return {}
    if isinstance(raw, declaration_types):
        default_name = _DEFAULT_NAMES[kind]
        warnings.warn(
            f"a single {kind} was given without a name; using the default name {default_name!r}",
            ActionModelsWarning,
            stacklevel=4,
        )
        return {default_name: raw}
    if not isinstance(raw, Mapping):
        raise ModelSpecificationError(f"{kind}s must be a mapping of names to declarations")
    out: dict[str, Any] = {}
    for name, declaration in raw.items():
        if not isinstance(name, str) or not name:
            raise ModelSpecificationError(f"{kind} names must be non-empty strings; got {name!r}")
        if not isinstance(declaration, declaration_types):
            raise ModelSpecificationError(
                f"{kind} {name!r} must be declared with "
                f"{' or '.join(item.__name__ for item in declaration_types)}"
            )
        out[name] = declaration
    return out


def normalize_step_output(result: Any, *, action_names: tuple[str, ...]) -> tuple[Any, ...]:
    """Return step function output as one distribution per declared action.

    Raises
    ------
    ModelSpecificationError
        If the output is not a distribution or a tuple of distributions of
        the declared length.
    """

    if is_distribution(result):
        if len(action_names) != 1:
            raise ModelSpecificationError(
                f"step function returned one distribution but {len(action_names)} actions "
                f"are declared: {list(action_names)}"
            )
        return (result,)
    if isinstance(result, (tuple, list)):
        if len(result) != len(action_names):
            raise ModelSpecificationError(
                f"step function returned {len(result)} distributions but {len(action_names)} "
                f"actions are declared: {list(action_names)}"
            )
        for action_name, item in zip(action_names, result, strict=True):
            if not is_distribution(item):
                raise ModelSpecificationError(
                    f"step function returned {item!r} for action {action_name!r}; expected a distribution"
                )
        return tuple(result)
    raise ModelSpecificationError(
        f"step function must return a distribution or a tuple of distributions; got {result!r}"
    )


@dataclass(frozen=True, slots=True)
class ActionModel:
    """Immutable action-model specification.

    Parameters
    ----------
    step : Callable[..., Any]
        Step function ``step(attributes, *observations)``. Its non-attributes
        positional arguments must match ``observations`` in name and order.
    parameters : Mapping[str, Parameter | InitialStateParameter]
        Parameter declarations.
    observations : Mapping[str, Observation]
        Observation declarations, in positional order.
    actions : Mapping[str, Action]
        Action declarations, in output order.
    states : Mapping[str, State] | None, optional
        State declarations.
    submodel : Submodel | None, optional
        Embedded submodel whose attributes live in ``attributes.submodel``.
    check_step : bool, optional
        Whether to probe the step function with default attributes and
        example observations at construction time.

    Raises
    ------
    ModelSpecificationError
        If the signature, declarations, probe output or submodel names are
        inconsistent.

    Notes
    -----
    Single declarations passed instead of mappings receive the default names
    ``parameter``, ``state``, ``observation`` and ``action`` with a warning.
    """

    step: Callable[..., Any]
    parameters: Mapping[str, Parameter | InitialStateParameter]
    observations: Mapping[str, Observation]
    actions: Mapping[str, Action]
    states: Mapping[str, State] | None = None
    submodel: Submodel | None = None
    check_step: bool = field(default=True, repr=False)

    def __post_init__(self) -> None:
        if not callable(self.step):
            raise ModelSpecificationError("step must be callable")
        parameters = _normalize_declarations(
            self.parameters,
            kind="parameter",
            declaration_types=(Parameter, InitialStateParameter),
        )
        states = _normalize_declarations(self.states, kind="state", declaration_types=(State,))
        observations = _normalize_declarations(
            self.observations,
            kind="observation",
            declaration_types=(Observation,),
        )
        actions = _normalize_declarations(self.actions, kind="action", declaration_types=(Action,))
        if not observations:
            raise ModelSpecificationError("at least one observation must be declared")
        if not actions:
            raise ModelSpecificationError("at least one action must be declared")

        check_declarations(parameters, states, actions)
        if self.submodel is not None:
            _check_submodel_names(self.submodel, parameters, states, actions)

        object.__setattr__(self, "parameters", MappingProxyType(parameters))
        object.__setattr__(self, "states", MappingProxyType(states))
        object.__setattr__(self, "observations", MappingProxyType(observations))
        object.__setattr__(self, "actions", MappingProxyType(actions))

        _check_step_signature(self.step, tuple(observations))
        if self.check_step:
            self._probe_step()

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Return outer and submodel parameter names."""

        names = tuple(self.parameters)
        if self.submodel is not None:
            names += tuple(self.submodel.parameters)
        return names

    @property
    def state_names(self) -> tuple[str, ...]:
        """Return outer and submodel state names."""

        names = tuple(self.states)
        if self.submodel is not None:
            names += tuple(self.submodel.states)
        return names

    @property
    def observation_names(self) -> tuple[str, ...]:
        return tuple(self.observations)

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(self.actions)

    def initialize_attributes(self, *, float_type: type = float, int_type: type = int) -> ModelAttributes:
        """Return a fresh attribute tree at every declared default."""

        return build_model_attributes(
            self.parameters,
            self.states,
            self.actions,
            self.submodel,
            float_type=float_type,
            int_type=int_type,
        )

    def split_observation(self, observation: Any) -> tuple[Any, ...]:
        """Return positional observation arguments for one timestep."""

        n_observations = len(self.observations)
        if n_observations == 1:
            if isinstance(observation, tuple):
                if len(observation) != 1:
                    raise ValueError(f"expected 1 observation value, got {len(observation)}")
                return observation
            return (observation,)
        if not isinstance(observation, (tuple, list)) or len(observation) != n_observations:
            raise ValueError(
                f"expected {n_observations} observation values for observations "
                f"{list(self.observations)}; got {observation!r}"
            )
        return tuple(observation)

    def step_distributions(self, attributes: ModelAttributes, observation: Any) -> tuple[Any, ...]:
        """Run the step function once and return one distribution per action."""

        result = self.step(attributes, *self.split_observation(observation))
        return normalize_step_output(result, action_names=self.action_names)

    def _probe_step(self) -> None:
        """Call the step function on default attributes and check its output."""

        attributes = self.initialize_attributes()
        probe = tuple(declaration.example_value() for declaration in self.observations.values())
        try:
            result = self.step(attributes, *probe)
        except RejectParameters as exc:
            raise ModelSpecificationError(
                "step function rejected the default parameter values"
            ) from exc
        except Exception as exc:
            raise ModelSpecificationError(
                f"step function failed when called with default attributes and observations {probe!r}: {exc}"
            ) from exc
        distributions = normalize_step_output(result, action_names=self.action_names)
        for (action_name, declaration), distribution in zip(
            self.actions.items(), distributions, strict=True
        ):
            _warn_action_type_mismatch(action_name, declaration, distribution)


def _check_step_signature(step: Callable[..., Any], observation_names: tuple[str, ...]) -> None:
    """Check that step arguments after ``attributes`` match the observations."""

    try:
        signature = inspect.signature(step)
    except (TypeError, ValueError):
        return

    arguments = list(signature.parameters.values())
    positional_kinds = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    positional = [item for item in arguments if item.kind in positional_kinds]
    has_var_positional = any(item.kind is inspect.Parameter.VAR_POSITIONAL for item in arguments)
    if not positional and not has_var_positional:
        raise ModelSpecificationError("step function must accept the attributes as first argument")

    for item in arguments:
        if item.kind is inspect.Parameter.KEYWORD_ONLY and item.default is inspect.Parameter.empty:
            raise ModelSpecificationError(
                f"step function has required keyword-only argument {item.name!r}"
            )

    argument_names = tuple(item.name for item in positional[1:])
    if has_var_positional:
        if argument_names != observation_names[: len(argument_names)]:
            raise ModelSpecificationError(
                f"step function arguments {list(argument_names)} do not match declared "
                f"observations {list(observation_names)}"
            )
        return
    required = tuple(
        item.name for item in positional[1:] if item.default is inspect.Parameter.empty
    )
    if argument_names != observation_names and required != observation_names:
        raise ModelSpecificationError(
            f"step function arguments {list(argument_names)} do not match declared "
            f"observations {list(observation_names)}"
        )


def _check_submodel_names(
    submodel: Submodel,
    parameters: Mapping[str, Any],
    states: Mapping[str, Any],
    actions: Mapping[str, Any],
) -> None:
    """Reject submodel names that shadow outer declarations."""

    if not isinstance(submodel, Submodel):
        raise ModelSpecificationError("submodel must be a Submodel instance")
    check_declarations(submodel.parameters, submodel.states, {})
    outer = set(parameters) | set(states) | set(actions)
    inner = set(submodel.parameters) | set(submodel.states)
    collisions = sorted(outer & inner)
    if collisions:
        raise ModelSpecificationError(
            f"submodel names collide with action model names: {collisions}"
        )


def _warn_action_type_mismatch(action_name: str, declaration: Action, distribution: Any) -> None:
    """Warn when a discrete action gets a continuous distribution or vice versa."""

    if declaration.dtype is object:
        return
    discrete = is_discrete(distribution)
    if declaration.dtype is int and not discrete:
        warnings.warn(
            f"action {action_name!r} is declared discrete but the step function returns a "
            f"continuous distribution",
            ActionModelsWarning,
            stacklevel=4,
        )
    elif declaration.dtype is float and discrete:
        warnings.warn(
            f"action {action_name!r} is declared continuous but the step function returns a "
            f"discrete distribution",
            ActionModelsWarning,
            stacklevel=4,
        )


__all__ = ["ActionModel", "normalize_step_output"]
