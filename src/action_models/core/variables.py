"""Declarations and typed runtime variables for action-model attributes.

Declarations are immutable metadata (default or initial value, semantic type,
discreteness, array shape). :func:`initialize_variable` turns one declaration
into a :class:`Variable`, a typed container bound to a numeric family so that
values used during inference can carry the float/int types the backend needs.
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral, Real
from typing import Any

import numpy as np

from .errors import AttributeTypeError, ModelSpecificationError

_SUPPORTED_DTYPES = (float, int, object)


class NoAction:
    """Placeholder held by an action before any action has been stored."""

    _instance: NoAction | None = None

    def __new__(cls) -> NoAction:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_ACTION"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "NO_ACTION"


NO_ACTION = NoAction()


def _is_array_value(value: Any) -> bool:
    """Return whether a raw value should be treated as an array."""

    return isinstance(value, (list, tuple, np.ndarray)) and np.ndim(value) > 0


def _value_shape(value: Any) -> tuple[int, ...] | None:
    """Return array shape, or ``None`` for scalars and missing values."""

    if value is None or not _is_array_value(value):
        return None
    return tuple(np.shape(value))


def _check_dtype(dtype: Any, *, field_name: str) -> None:
    if dtype not in _SUPPORTED_DTYPES:
        raise ModelSpecificationError(
            f"{field_name} must be one of float, int or object; got {dtype!r}"
        )


@dataclass(frozen=True, slots=True)
class Parameter:
    """Declared model parameter.

    Parameters
    ----------
    value : Any
        Default value, a real scalar or an array of reals.
    discrete : bool, optional
        Whether the parameter takes integer values.

    Raises
    ------
    ModelSpecificationError
        If ``value`` is not numeric or a discrete parameter has non-integral
        values.
    """

    value: Any
    discrete: bool = False

    def __post_init__(self) -> None:
        _validate_numeric_default(self.value, discrete=self.discrete, field_name="Parameter.value")

    @property
    def dtype(self) -> type:
        """Return the semantic element type."""

        return int if self.discrete else float

    @property
    def shape(self) -> tuple[int, ...] | None:
        """Return array shape, or ``None`` for scalar parameters."""

        return _value_shape(self.value)


@dataclass(frozen=True, slots=True)
class InitialStateParameter:
    """Parameter whose value initializes a state on every reset.

    Parameters
    ----------
    value : Any
        Default value.
    state : str
        Name of the state initialized by this parameter.
    discrete : bool, optional
        Whether the parameter takes integer values.
    """

    value: Any
    state: str
    discrete: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.state, str) or not self.state:
            raise ModelSpecificationError("InitialStateParameter.state must be a non-empty string")
        _validate_numeric_default(
            self.value,
            discrete=self.discrete,
            field_name="InitialStateParameter.value",
        )

    @property
    def dtype(self) -> type:
        return int if self.discrete else float

    @property
    def shape(self) -> tuple[int, ...] | None:
        return _value_shape(self.value)


@dataclass(frozen=True, slots=True)
class State:
    """Declared latent state.

    Parameters
    ----------
    initial_value : Any, optional
        Value restored on reset. ``None`` means the state starts missing.
    dtype : type, optional
        Element type, one of ``float``, ``int`` or ``object``.
    shape : tuple[int, ...] | None, optional
        Array shape. Inferred from ``initial_value`` when omitted.
    """

    initial_value: Any = None
    dtype: type = float
    shape: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        _check_dtype(self.dtype, field_name="State.dtype")
        inferred = _value_shape(self.initial_value)
        if self.shape is None and inferred is not None:
            object.__setattr__(self, "shape", inferred)
        elif self.shape is not None:
            object.__setattr__(self, "shape", tuple(int(size) for size in self.shape))
            if inferred is not None and inferred != self.shape:
                raise ModelSpecificationError(
                    f"State.initial_value shape {inferred} does not match declared shape {self.shape}"
                )


@dataclass(frozen=True, slots=True)
class Observation:
    """Declared observation input.

    Parameters
    ----------
    dtype : type, optional
        Element type, one of ``float``, ``int`` or ``object``.
    shape : tuple[int, ...] | None, optional
        Array shape for array-valued observations.
    example : Any, optional
        Value used when probing the step function at construction time.
        Defaults to zero of the declared type and shape.
    """

    dtype: type = float
    shape: tuple[int, ...] | None = None
    example: Any = None

    def __post_init__(self) -> None:
        _check_dtype(self.dtype, field_name="Observation.dtype")

    def example_value(self) -> Any:
        """Return the probe value for this observation."""

        if self.example is not None:
            return self.example
        element_type = int if self.dtype is int else float
        if self.shape is None:
            return element_type(0)
        return np.zeros(self.shape, dtype=element_type)


@dataclass(frozen=True, slots=True)
class Action:
    """Declared action output.

    Parameters
    ----------
    dtype : type, optional
        ``float`` for continuous actions, ``int`` for discrete actions, or
        ``object``.
    shape : tuple[int, ...] | None, optional
        Shape of multivariate actions.
    """

    dtype: type = float
    shape: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        _check_dtype(self.dtype, field_name="Action.dtype")


def _validate_numeric_default(value: Any, *, discrete: bool, field_name: str) -> None:
    """Validate a parameter default value."""

    array = np.asarray(value)
    if array.dtype.kind not in "biuf":
        raise ModelSpecificationError(f"{field_name} must be numeric; got {value!r}")
    if discrete and array.dtype.kind == "f" and not np.all(np.mod(array, 1) == 0):
        raise ModelSpecificationError(f"{field_name} must be integral for a discrete parameter")


def is_float_family(numeric_type: Any) -> bool:
    """Return whether ``numeric_type`` is a real floating type."""

    return isinstance(numeric_type, type) and issubclass(numeric_type, (float, np.floating))


def is_int_family(numeric_type: Any) -> bool:
    """Return whether ``numeric_type`` is an integer type."""

    return (
        isinstance(numeric_type, type)
        and issubclass(numeric_type, (int, np.integer))
        and not issubclass(numeric_type, bool)
    )


class Variable:
    """Typed runtime value for one parameter, state or action.

    Parameters
    ----------
    name : str
        Attribute name.
    kind : str
        ``"parameter"``, ``"state"`` or ``"action"``.
    dtype : type
        Semantic element type (``float``, ``int`` or ``object``).
    value : Any
        Initial value.
    shape : tuple[int, ...] | None, optional
        Declared array shape. ``None`` for scalars.
    is_array : bool, optional
        Whether the variable holds arrays. Shape is fixed by the declaration
        or, when undeclared, by the first array assignment.
    allow_missing : bool, optional
        Whether ``None`` and :data:`NO_ACTION` are accepted.
    float_type, int_type : type, optional
        Numeric family used for stored values.
    """

    __slots__ = (
        "name",
        "kind",
        "dtype",
        "shape",
        "is_array",
        "allow_missing",
        "float_type",
        "int_type",
        "_value",
    )

    def __init__(
        self,
        name: str,
        kind: str,
        dtype: type,
        value: Any,
        *,
        shape: tuple[int, ...] | None = None,
        is_array: bool = False,
        allow_missing: bool = False,
        float_type: type = float,
        int_type: type = int,
    ) -> None:
        if not is_float_family(float_type):
            raise AttributeTypeError(f"float_type must be a real floating type; got {float_type!r}")
        if not is_int_family(int_type):
            raise AttributeTypeError(f"int_type must be an integer type; got {int_type!r}")
        self.name = name
        self.kind = kind
        self.dtype = dtype
        self.shape = shape
        self.is_array = bool(is_array or shape is not None)
        self.allow_missing = allow_missing
        self.float_type = float_type
        self.int_type = int_type
        self._value = self.coerce(value)

    @property
    def value(self) -> Any:
        """Return the current value."""

        return self._value

    def set(self, value: Any) -> None:
        """Validate and assign a new value."""

        self._value = self.coerce(value)

    def coerce(self, value: Any) -> Any:
        """Return ``value`` converted to this variable's numeric family.

        Raises
        ------
        AttributeTypeError
            If ``value`` is incompatible with the declared type or shape.
        """

        if value is None or value is NO_ACTION:
            if self.allow_missing:
                return value
            raise AttributeTypeError(f"{self.kind} {self.name!r} does not accept missing values")
        if self.dtype is object:
            return value
        if self.is_array:
            return self._coerce_array(value)
        if _is_array_value(value):
            raise AttributeTypeError(
                f"{self.kind} {self.name!r} is scalar; got array with shape {np.shape(value)}"
            )
        return self._coerce_scalar(value)

    def _coerce_scalar(self, value: Any) -> Any:
        if isinstance(value, np.ndarray):
            value = value.item()
        if isinstance(value, bool) or not isinstance(value, Real):
            raise AttributeTypeError(
                f"{self.kind} {self.name!r} expects a {self.dtype.__name__} value; got {value!r}"
            )
        if self.dtype is int:
            if not isinstance(value, Integral):
                if not float(value).is_integer():
                    raise AttributeTypeError(
                        f"{self.kind} {self.name!r} expects an integer value; got {value!r}"
                    )
            return self.int_type(value)
        return self.float_type(value)

    def _coerce_array(self, value: Any) -> np.ndarray:
        if not _is_array_value(value):
            raise AttributeTypeError(
                f"{self.kind} {self.name!r} is array-valued; got scalar {value!r}"
            )
        array = np.asarray(value)
        if array.dtype.kind not in "iuf":
            raise AttributeTypeError(
                f"{self.kind} {self.name!r} expects numeric array values; got dtype {array.dtype}"
            )
        if self.shape is not None and array.shape != self.shape:
            raise AttributeTypeError(
                f"{self.kind} {self.name!r} has fixed shape {self.shape}; got {array.shape}"
            )
        if self.dtype is int:
            if array.dtype.kind == "f" and not np.all(np.mod(array, 1) == 0):
                raise AttributeTypeError(
                    f"{self.kind} {self.name!r} expects integer array values"
                )
            coerced = array.astype(self.int_type)
        else:
            coerced = array.astype(self.float_type)
        if self.shape is None:
            self.shape = coerced.shape
        return coerced

    def copy_value(self) -> Any:
        """Return a copy of the current value safe to keep in a history."""

        if isinstance(self._value, np.ndarray):
            return self._value.copy()
        return self._value

    def __repr__(self) -> str:
        return f"Variable({self.kind}={self.name!r}, value={self._value!r})"


def initialize_variable(
    name: str,
    declaration: Parameter | InitialStateParameter | State | Action,
    *,
    float_type: type = float,
    int_type: type = int,
) -> Variable:
    """Create a typed variable initialized from a declaration.

    Parameters
    ----------
    name : str
        Attribute name.
    declaration : Parameter | InitialStateParameter | State | Action
        Declaration to instantiate.
    float_type, int_type : type, optional
        Numeric family requested by the caller.

    Returns
    -------
    Variable
        Fresh variable holding the declaration's default value. Actions start
        at :data:`NO_ACTION`.

    Raises
    ------
    AttributeTypeError
        If the numeric family is unusable or the default value is incompatible
        with it.
    """

    if isinstance(declaration, (Parameter, InitialStateParameter)):
        return Variable(
            name,
            "parameter",
            declaration.dtype,
            declaration.value,
            shape=declaration.shape,
            float_type=float_type,
            int_type=int_type,
        )
    if isinstance(declaration, State):
        return Variable(
            name,
            "state",
            declaration.dtype,
            declaration.initial_value,
            shape=declaration.shape,
            allow_missing=True,
            float_type=float_type,
            int_type=int_type,
        )
    if isinstance(declaration, Action):
        return Variable(
            name,
            "action",
            declaration.dtype,
            NO_ACTION,
            shape=declaration.shape,
            allow_missing=True,
            float_type=float_type,
            int_type=int_type,
        )
    raise TypeError(f"cannot initialize a variable from {declaration!r}")


__all__ = [
    "NO_ACTION",
    "Action",
    "InitialStateParameter",
    "NoAction",
    "Observation",
    "Parameter",
    "State",
    "Variable",
    "initialize_variable",
    "is_float_family",
    "is_int_family",
]
