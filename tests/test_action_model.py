"""Tests for action-model construction and contract validation."""

from __future__ import annotations

import pytest
from scipy import stats

from action_models.core import (
    Action,
    ActionModel,
    ActionModelsWarning,
    ModelSpecificationError,
    Observation,
    Parameter,
    RejectParameters,
    State,
    Submodel,
    normalize_step_output,
)


def gaussian_report(attributes, observation):
    """Report the latest observation with Gaussian noise."""

    noise = attributes.get_parameters("action_noise")
    attributes.set_states("last", observation)
    return stats.norm(loc=observation, scale=noise)


def two_actions(attributes, cue, reward):
    """Return a choice and a confidence report."""

    return stats.bernoulli(0.5), stats.norm(loc=cue + reward, scale=1.0)


def _gaussian_model(**overrides):
    kwargs = {
        "parameters": {"action_noise": Parameter(1.0)},
        "states": {"last": State(0.0)},
        "observations": {"observation": Observation(float)},
        "actions": {"report": Action(float)},
    }
    kwargs.update(overrides)
    return ActionModel(gaussian_report, **kwargs)


def test_action_model_exposes_declared_names() -> None:
    """Name properties should follow declaration order."""

    model = ActionModel(
        two_actions,
        parameters={},
        observations={"cue": Observation(float), "reward": Observation(float)},
        actions={"choice": Action(int), "confidence": Action(float)},
    )

    assert model.observation_names == ("cue", "reward")
    assert model.action_names == ("choice", "confidence")
    assert model.parameter_names == ()
    assert model.split_observation((1.0, 0.0)) == (1.0, 0.0)


def test_action_model_declarations_are_read_only() -> None:
    """Declarations should not be mutable after construction."""

    model = _gaussian_model()

    with pytest.raises(TypeError):
        model.parameters["other"] = Parameter(0.0)


def test_single_unnamed_declaration_gets_default_name_with_warning() -> None:
    """Unnamed single declarations receive default names."""

    def step(attributes, observation):
        return stats.norm(loc=observation, scale=attributes.get_parameters("parameter"))

    with pytest.warns(ActionModelsWarning, match="default name 'parameter'"):
        model = ActionModel(
            step,
            parameters=Parameter(1.0),
            observations={"observation": Observation()},
            actions={"report": Action()},
        )

    assert model.parameter_names == ("parameter",)


def test_step_signature_must_match_observations() -> None:
    """Observation arguments must match declared names in order."""

    def step(attributes, reward, cue):
        return stats.norm()

    with pytest.raises(ModelSpecificationError, match="do not match declared observations"):
        ActionModel(
            step,
            parameters={},
            observations={"cue": Observation(), "reward": Observation()},
            actions={"report": Action()},
        )


def test_var_positional_step_is_accepted() -> None:
    """A step taking ``*observations`` should accept any declared names."""

    def step(attributes, *observations):
        return stats.norm(loc=sum(observations))

    model = ActionModel(
        step,
        parameters={},
        observations={"a": Observation(), "b": Observation()},
        actions={"report": Action()},
    )

    assert model.observation_names == ("a", "b")


def test_step_return_arity_is_checked() -> None:
    """The probe call should detect a wrong number of distributions."""

    def step(attributes, observation):
        return stats.norm(), stats.norm()

    with pytest.raises(ModelSpecificationError, match="returned 2 distributions but 1 actions"):
        ActionModel(
            step,
            parameters={},
            observations={"observation": Observation()},
            actions={"report": Action()},
        )


def test_step_must_return_distributions() -> None:
    """Non-distribution outputs should be rejected."""

    with pytest.raises(ModelSpecificationError, match="must return a distribution"):
        normalize_step_output(0.5, action_names=("report",))
    with pytest.raises(ModelSpecificationError, match="expected a distribution"):
        normalize_step_output((stats.norm(), "x"), action_names=("a", "b"))


def test_probe_failures_are_wrapped() -> None:
    """Errors and rejections during probing become specification errors."""

    def failing(attributes, observation):
        raise ZeroDivisionError("boom")

    def rejecting(attributes, observation):
        raise RejectParameters("bad default")

    for step in (failing, rejecting):
        with pytest.raises(ModelSpecificationError):
            ActionModel(
                step,
                parameters={},
                observations={"observation": Observation()},
                actions={"report": Action()},
            )


def test_check_step_false_skips_probe() -> None:
    """Probing can be disabled for steps that need real observations."""

    def step(attributes, observation):
        raise RuntimeError("needs data")

    model = ActionModel(
        step,
        parameters={},
        observations={"observation": Observation()},
        actions={"report": Action()},
        check_step=False,
    )

    assert model.action_names == ("report",)


def test_action_type_mismatch_warns() -> None:
    """Discrete actions with continuous distributions should warn."""

    with pytest.warns(ActionModelsWarning, match="declared discrete"):
        _gaussian_model(actions={"report": Action(int)})


def test_submodel_name_collisions_are_rejected() -> None:
    """Submodel names may not shadow outer declarations."""

    class Shadowing(Submodel):
        parameters = {"action_noise": Parameter(0.5)}
        states = {}

    with pytest.raises(ModelSpecificationError, match="collide"):
        _gaussian_model(submodel=Shadowing())


def test_initialize_attributes_returns_independent_trees() -> None:
    """Each call should build a separate attribute tree."""

    model = _gaussian_model()
    first = model.initialize_attributes()
    second = model.initialize_attributes()
    first.set_states("last", 3.0)

    assert second.get_states("last") == 0.0
    assert model.step_distributions(second, 2.0)[0].mean() == pytest.approx(2.0)
