"""Rescorla-Wagner expected-value submodel and a Gaussian report model."""

from __future__ import annotations

from typing import Any

import numpy as np
from scipy import stats

from action_models.core.action_model import ActionModel
from action_models.core.attributes import ModelAttributes, Submodel
from action_models.core.variables import Action, InitialStateParameter, Observation, Parameter, State


class RescorlaWagner(Submodel):
    """Expected-value learner embedded in an outer action model.

    Model Contract
    --------------
    Continuous observation ``o``
        ``expected_value <- expected_value + learning_rate * (o - expected_value)``.
    Binary observation ``o`` in ``{0, 1}``
        ``expected_value <- expected_value + learning_rate * (o - logistic(expected_value))``;
        the expected value lives on the log-odds scale.

    Parameters
    ----------
    learning_rate : float, optional
        Default learning rate.
    initial_value : float, optional
        Default expected value after reset, exposed as the
        ``initial_value`` parameter.
    binary : bool, optional
        Whether observations are binary outcomes.
    """

    def __init__(
        self,
        *,
        learning_rate: float = 0.1,
        initial_value: float = 0.0,
        binary: bool = False,
    ) -> None:
        self.binary = bool(binary)
        self.parameters = {
            "learning_rate": Parameter(float(learning_rate)),
            "initial_value": InitialStateParameter(float(initial_value), state="expected_value"),
        }
        self.states = {"expected_value": State(initial_value=float(initial_value))}

    def __repr__(self) -> str:
        return (
            f"RescorlaWagner(learning_rate={self.parameters['learning_rate'].value!r}, "
            f"initial_value={self.parameters['initial_value'].value!r}, binary={self.binary!r})"
        )

    @staticmethod
    def update(attributes: ModelAttributes, observation: Any, *, binary: bool = False) -> float:
        """Apply one update to the submodel store and return the new value.

        The rule is fixed by ``binary``, never by the observation's type.
        """

        expected_value = attributes.get_states("expected_value")
        learning_rate = attributes.get_parameters("learning_rate")
        if binary:
            prediction = 1.0 / (1.0 + np.exp(-expected_value))
        else:
            prediction = expected_value
        new_value = float(expected_value + learning_rate * (float(observation) - prediction))
        attributes.set_states("expected_value", new_value)
        return new_value

    @staticmethod
    def expected_value(attributes: ModelAttributes) -> float:
        return attributes.get_states("expected_value")


def _gaussian_report_step(attributes: ModelAttributes, observation: float) -> Any:
    """Update the expected value and report it with Gaussian noise."""

    new_value = RescorlaWagner.update(attributes.submodel, observation)
    action_noise = attributes.get_parameters("action_noise")
    return stats.norm(loc=new_value, scale=action_noise)


def _binary_gaussian_report_step(attributes: ModelAttributes, observation: int) -> Any:
    """Update the log-odds expected value and report it with Gaussian noise."""

    new_value = RescorlaWagner.update(attributes.submodel, observation, binary=True)
    action_noise = attributes.get_parameters("action_noise")
    return stats.norm(loc=new_value, scale=action_noise)


def rescorla_wagner_gaussian_report(
    *,
    learning_rate: float = 0.1,
    action_noise: float = 1.0,
    initial_value: float = 0.0,
    binary: bool = False,
) -> ActionModel:
    """Return an action model reporting a Rescorla-Wagner expected value.

    Parameters
    ----------
    learning_rate : float, optional
        Default learning rate of the embedded submodel.
    action_noise : float, optional
        Default standard deviation of the Gaussian report.
    initial_value : float, optional
        Default expected value after reset.
    binary : bool, optional
        Use the binary log-odds rule with an ``int`` observation instead of
        the continuous rule with a ``float`` observation.

    Returns
    -------
    ActionModel
        Model with one ``observation`` and one continuous ``report`` action;
        ``learning_rate``, ``initial_value`` and the ``expected_value`` state
        live in the submodel.
    """

    return ActionModel(
        _binary_gaussian_report_step if binary else _gaussian_report_step,
        parameters={"action_noise": Parameter(float(action_noise))},
        observations={"observation": Observation(int if binary else float)},
        actions={"report": Action(float)},
        submodel=RescorlaWagner(learning_rate=learning_rate, initial_value=initial_value, binary=binary),
    )


__all__ = ["RescorlaWagner", "rescorla_wagner_gaussian_report"]
