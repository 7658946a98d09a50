"""Tests for per-session parameter and state-trajectory extraction."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from action_models.core import ActionModelsWarning, UnknownAttributeError
from action_models.inference import (
    RandomWalkMetropolisEngine,
    SessionParameters,
    create_model,
    get_session_parameters,
    get_state_trajectories,
    sample_posterior,
)
from action_models.models import rescorla_wagner_gaussian_report

DATA = {
    "id": ["A", "A", "A", "B", "B"],
    "obs": [1.0, 1.0, 0.0, 0.5, 0.5],
    "act": [0.2, 0.3, None, 0.1, 0.2],
}

SAMPLING = {
    "engine": RandomWalkMetropolisEngine(n_warmup=20),
    "n_samples": 15,
    "n_chains": 2,
    "random_seed": 3,
}


def _fit(**kwargs):
    return create_model(
        rescorla_wagner_gaussian_report(),
        {"learning_rate": stats.beta(2.0, 2.0), "action_noise": stats.halfnorm()},
        DATA,
        observation_cols="obs",
        action_cols="act",
        session_cols="id",
        verbose=False,
        **kwargs,
    )


def test_session_parameters_align_with_chains() -> None:
    """Session ``k`` reads element ``k`` of each population site."""

    fit = _fit()
    chains = sample_posterior(fit, **SAMPLING)

    parameters = get_session_parameters(fit)

    assert isinstance(parameters, SessionParameters)
    assert parameters.values.shape == (2, 2, 15, 2)
    assert parameters.session_keys == ({"id": "A"}, {"id": "B"})
    assert parameters.values.dtype == float
    np.testing.assert_allclose(parameters.get("id:B", "learning_rate"), chains.get("learning_rate[1]"))
    assert set(parameters.session("id:A")) == {"learning_rate", "action_noise"}
    assert parameters.draw(0, 0, 1) == (
        pytest.approx(chains.get("learning_rate[0]")[0, 1]),
        pytest.approx(chains.get("action_noise[0]")[0, 1]),
    )


def test_session_parameters_are_cached() -> None:
    """Repeated extraction returns the same object."""

    fit = _fit()
    sample_posterior(fit, **SAMPLING)

    first = get_session_parameters(fit)

    assert get_session_parameters(fit) is first
    with pytest.raises(KeyError, match="unknown session 'id:C'"):
        first.get("id:C", "learning_rate")
    with pytest.raises(KeyError, match="unknown parameter 'beta'"):
        first.get("id:A", "beta")


def test_missing_results_are_sampled_with_a_warning() -> None:
    """Extraction samples an empty result slot first."""

    fit = _fit()

    with pytest.warns(ActionModelsWarning, match="the prior has not been sampled yet"):
        parameters = get_session_parameters(
            fit,
            "prior",
            sampling_options={"n_samples": 10, "random_seed": 0},
        )

    assert fit.prior is not None
    assert parameters.mode == "prior"
    assert parameters.n_draws == 10 and parameters.n_chains == 1


def test_state_trajectories_replay_the_learning_rule() -> None:
    """Trajectories start at the reset value and follow each draw."""

    fit = _fit()
    sample_posterior(fit, **SAMPLING)

    trajectories = get_state_trajectories(fit, "expected_value", n_jobs=2)
    parameters = get_session_parameters(fit)

    session_a = trajectories.get("expected_value", "id:A")
    assert session_a.shape == (15, 2, 4)
    assert trajectories.get("expected_value", "id:B").shape == (15, 2, 3)
    np.testing.assert_allclose(session_a[:, :, 0], 0.0)

    learning_rate = parameters.get("id:A", "learning_rate")
    np.testing.assert_allclose(session_a[:, :, 1], learning_rate)
    np.testing.assert_allclose(session_a[:, :, 2], learning_rate + learning_rate * (1.0 - learning_rate))


def test_state_trajectories_are_cached_per_state_selection() -> None:
    """The same state names return the same object."""

    fit = _fit()
    sample_posterior(fit, **SAMPLING)

    first = get_state_trajectories(fit, ["expected_value"])

    assert get_state_trajectories(fit, ("expected_value",)) is first
    sample_posterior(fit, resample=True, **SAMPLING)
    assert get_state_trajectories(fit, ["expected_value"]) is not first


def test_inferred_actions_are_replayed_from_the_draw() -> None:
    """Replays with inferred actions keep every timestep."""

    fit = _fit(infer_missing_actions=True)
    sample_posterior(fit, **SAMPLING)

    trajectories = get_state_trajectories(fit, "expected_value")

    assert not np.isnan(trajectories.get("expected_value", "id:A")).any()


def test_state_trajectories_validate_arguments() -> None:
    """Unknown states and invalid job counts are rejected."""

    fit = _fit()

    with pytest.raises(UnknownAttributeError, match="state 'value' not found in the action model"):
        get_state_trajectories(fit, "value")
    with pytest.raises(ValueError, match="state_names must not be empty"):
        get_state_trajectories(fit, [])
    with pytest.raises(ValueError, match="n_jobs must be > 0"):
        get_state_trajectories(fit, "expected_value", n_jobs=0)
