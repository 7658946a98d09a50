"""Tests for agent simulation."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from action_models.core import (
    NO_ACTION,
    Action,
    ActionModel,
    Observation,
    Parameter,
    RejectParameters,
    State,
    UnknownAttributeError,
)
from action_models.runtime import init_agent, iter_simulate, simulate


def rescorla_wagner_report(attributes, observation):
    """Update the expected value and report it with Gaussian noise."""

    learning_rate = attributes.get_parameters("learning_rate")
    noise = attributes.get_parameters("action_noise")
    expected_value = attributes.get_states("expected_value")
    expected_value = expected_value + learning_rate * (observation - expected_value)
    attributes.set_states("expected_value", expected_value)
    return stats.norm(loc=expected_value, scale=noise)


def _report_model() -> ActionModel:
    return ActionModel(
        rescorla_wagner_report,
        parameters={"learning_rate": Parameter(0.1), "action_noise": Parameter(1.0)},
        states={"expected_value": State(0.0)},
        observations={"observation": Observation(float)},
        actions={"report": Action(float)},
    )


def test_observe_updates_state_and_samples_action() -> None:
    """Two observations of 1.0 should give expected values 0.1 and 0.19."""

    agent = init_agent(_report_model(), save_history=True, random_seed=3)

    first = agent.observe(1.0)
    assert agent.get_states("expected_value") == pytest.approx(0.1)
    assert isinstance(first, float)
    assert agent.get_actions("report") == first

    agent.observe(1.0)
    assert agent.get_states("expected_value") == pytest.approx(0.19)
    assert agent.n_timesteps == 2


def test_sampled_action_follows_model_distribution() -> None:
    """The first report should be a draw from Normal(0.1, 1.0)."""

    model = _report_model()
    agent = init_agent(model, random_seed=11)
    action = agent.observe(1.0)

    expected = stats.norm(loc=0.1, scale=1.0).rvs(random_state=np.random.default_rng(11))
    assert action == pytest.approx(expected)


def test_history_has_one_more_entry_than_timesteps() -> None:
    """Histories start with the pre-observation value."""

    agent = init_agent(_report_model(), save_history=["expected_value", "report"], random_seed=0)
    simulate(agent, [1.0, 1.0, 0.0])

    history = agent.get_history("expected_value")
    assert len(history) == agent.n_timesteps + 1 == 4
    assert history[:3] == pytest.approx([0.0, 0.1, 0.19])
    assert agent.get_history("report")[0] is NO_ACTION
    assert set(agent.get_history()) == {"expected_value", "report"}


def test_disabled_history_records_nothing() -> None:
    """Agents without history bookkeeping have no recorded names."""

    agent = init_agent(_report_model(), random_seed=0)
    agent.observe(1.0)

    assert agent.get_history() == {}
    with pytest.raises(UnknownAttributeError, match="agent's history"):
        agent.get_history("expected_value")


def test_unknown_history_name_fails_at_init() -> None:
    """History names must be declared states or actions."""

    with pytest.raises(UnknownAttributeError, match="'value'"):
        init_agent(_report_model(), save_history="value")


def test_reset_restores_initial_condition() -> None:
    """Reset should clear states, actions, history and the timestep count."""

    agent = init_agent(_report_model(), save_history="expected_value", random_seed=0)
    simulate(agent, [1.0, 1.0])
    agent.reset()

    assert agent.n_timesteps == 0
    assert agent.get_states("expected_value") == 0.0
    assert agent.get_actions("report") is NO_ACTION
    assert agent.get_history("expected_value") == [0.0]


def test_parameter_changes_apply_to_next_observation() -> None:
    """Parameters set on the agent drive later steps."""

    agent = init_agent(_report_model(), random_seed=0)
    agent.set_parameters("learning_rate", 0.5)
    agent.observe(1.0)

    assert agent.get_states("expected_value") == pytest.approx(0.5)


def test_iter_simulate_is_lazy() -> None:
    """Each ``next`` should perform exactly one observation."""

    agent = init_agent(_report_model(), random_seed=0)
    actions = iter_simulate(agent, [1.0, 1.0, 1.0])

    assert agent.n_timesteps == 0
    next(actions)
    assert agent.n_timesteps == 1
    assert len(list(actions)) == 2
    assert agent.n_timesteps == 3


def test_simulate_accepts_array_rows_for_multiple_observations() -> None:
    """2D arrays provide one observation tuple per row."""

    def step(attributes, cue, reward):
        return stats.bernoulli(0.9 if cue + reward > 0 else 0.1), stats.norm(loc=reward)

    model = ActionModel(
        step,
        parameters={},
        observations={"cue": Observation(float), "reward": Observation(float)},
        actions={"choice": Action(int), "report": Action(float)},
    )
    agent = init_agent(model, random_seed=5)
    actions = simulate(agent, np.array([[1.0, 0.0], [-1.0, 0.0]]))

    assert len(actions) == 2
    assert all(isinstance(item, tuple) and len(item) == 2 for item in actions)
    assert actions[-1][0] in (0, 1)


def test_rejection_propagates_during_simulation() -> None:
    """Step-function rejections are not caught by the agent."""

    def step(attributes, observation):
        if observation < 0:
            raise RejectParameters("negative observation")
        return stats.norm()

    model = ActionModel(
        step,
        parameters={},
        observations={"observation": Observation()},
        actions={"report": Action()},
    )
    agent = init_agent(model)

    with pytest.raises(RejectParameters, match="negative observation"):
        agent.observe(-1.0)
