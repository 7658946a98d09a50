"""Tests for attribute declarations and typed runtime variables."""

from __future__ import annotations

import pickle

import numpy as np
import pytest

from action_models.core import (
    NO_ACTION,
    Action,
    AttributeTypeError,
    InitialStateParameter,
    ModelSpecificationError,
    NoAction,
    Observation,
    Parameter,
    State,
    Variable,
    initialize_variable,
)


def test_no_action_is_a_falsy_singleton() -> None:
    """The no-action placeholder should be unique, falsy and picklable."""

    assert NoAction() is NO_ACTION
    assert not NO_ACTION
    assert repr(NO_ACTION) == "NO_ACTION"
    assert pickle.loads(pickle.dumps(NO_ACTION)) is NO_ACTION


def test_parameter_declaration_reports_dtype_and_shape() -> None:
    """Parameter metadata should follow the default value."""

    scalar = Parameter(0.5)
    discrete = Parameter(3, discrete=True)
    vector = Parameter([0.1, 0.2, 0.3])

    assert scalar.dtype is float and scalar.shape is None
    assert discrete.dtype is int
    assert vector.shape == (3,)


def test_parameter_rejects_non_numeric_and_non_integral_defaults() -> None:
    """Parameter defaults must be numeric and integral when discrete."""

    with pytest.raises(ModelSpecificationError, match="must be numeric"):
        Parameter("fast")
    with pytest.raises(ModelSpecificationError, match="must be integral"):
        Parameter(1.5, discrete=True)


def test_initial_state_parameter_requires_state_name() -> None:
    """Initial-state parameters must name the state they initialize."""

    with pytest.raises(ModelSpecificationError, match="non-empty string"):
        InitialStateParameter(0.0, state="")


def test_state_infers_shape_from_initial_value() -> None:
    """Array states should take their shape from the initial value."""

    assert State(np.zeros(4)).shape == (4,)
    with pytest.raises(ModelSpecificationError, match="does not match declared shape"):
        State(np.zeros(4), shape=(2,))
    with pytest.raises(ModelSpecificationError, match="must be one of float, int or object"):
        State(0.0, dtype=str)


def test_observation_example_value_defaults_to_zero() -> None:
    """Probe values should be zero of the declared type and shape."""

    assert Observation(int).example_value() == 0
    assert isinstance(Observation(int).example_value(), int)
    np.testing.assert_array_equal(Observation(float, shape=(2,)).example_value(), np.zeros(2))
    assert Observation(example=(1, 2)).example_value() == (1, 2)


def test_scalar_variable_coerces_to_numeric_family() -> None:
    """Scalar variables should store values in the requested family."""

    variable = Variable("rate", "parameter", float, 1, float_type=np.float32)
    assert isinstance(variable.value, np.float32)

    variable.set(0.25)
    assert variable.value == pytest.approx(0.25)

    with pytest.raises(AttributeTypeError, match="expects a float value"):
        variable.set("high")
    with pytest.raises(AttributeTypeError, match="is scalar"):
        variable.set([1.0, 2.0])
    with pytest.raises(AttributeTypeError, match="does not accept missing values"):
        variable.set(None)


def test_integer_variable_rejects_fractional_values() -> None:
    """Integer variables accept integral floats only."""

    variable = Variable("count", "state", int, 2, allow_missing=True)
    variable.set(3.0)
    assert variable.value == 3 and isinstance(variable.value, int)

    with pytest.raises(AttributeTypeError, match="expects an integer value"):
        variable.set(3.5)


def test_array_variable_fixes_shape_after_first_assignment() -> None:
    """Array variables should keep the first assigned shape."""

    variable = Variable("values", "state", float, None, is_array=True, allow_missing=True)
    assert variable.value is None

    variable.set([1, 2, 3])
    assert variable.value.dtype == float
    assert variable.shape == (3,)

    with pytest.raises(AttributeTypeError, match="fixed shape"):
        variable.set([1.0, 2.0])
    with pytest.raises(AttributeTypeError, match="is array-valued"):
        variable.set(1.0)


def test_copy_value_detaches_arrays() -> None:
    """History copies should not alias the live array."""

    variable = Variable("values", "state", float, np.zeros(2), shape=(2,))
    copied = variable.copy_value()
    variable.value[0] = 5.0

    assert copied[0] == 0.0


def test_variable_rejects_unusable_numeric_families() -> None:
    """Numeric families must be real floating and integer types."""

    with pytest.raises(AttributeTypeError, match="float_type"):
        Variable("rate", "parameter", float, 0.1, float_type=int)
    with pytest.raises(AttributeTypeError, match="int_type"):
        Variable("count", "parameter", int, 1, int_type=bool)


def test_initialize_variable_maps_declarations() -> None:
    """Variables should start at declared defaults with their own rules."""

    parameter = initialize_variable("noise", Parameter(1.0))
    state = initialize_variable("value", State())
    action = initialize_variable("report", Action(float))
    vector = initialize_variable("weights", Parameter([1, 2]), float_type=np.float64)

    assert parameter.value == 1.0 and parameter.kind == "parameter"
    assert state.value is None and state.allow_missing
    assert action.value is NO_ACTION
    assert vector.value.dtype == np.float64
    assert vector.shape == (2,)

    with pytest.raises(TypeError, match="cannot initialize"):
        initialize_variable("observation", Observation())
