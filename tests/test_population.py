"""Tests for population models."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from action_models.core import Action, ActionModel, DatasetError, Observation, Parameter
from action_models.inference import (
    CustomPopulationModel,
    GenerativeContext,
    IndependentPopulationModel,
    PopulationModel,
    RandomWalkMetropolisEngine,
    Regression,
    RegressionPopulationModel,
    ReplayContext,
    create_model,
    decompose_sessions,
    get_session_parameters,
    sample_posterior,
)


def report_step(attributes, observation):
    """Report the observation with parameter noise."""

    return stats.norm(loc=observation, scale=attributes.get_parameters("noise"))


MODEL = ActionModel(
    report_step,
    parameters={"noise": Parameter(1.0), "rate": Parameter(0.5)},
    observations={"observation": Observation()},
    actions={"report": Action()},
)


def _sessions():
    return decompose_sessions(
        {
            "id": ["a", "a", "b", "c"],
            "group": ["g1", "g1", "g2", "g1"],
            "age": [20.0, 20.0, 30.0, 40.0],
            "obs": [0.0, 0.0, 0.0, 0.0],
            "act": [0.0, 0.0, 0.0, 0.0],
        },
        action_model=MODEL,
        observation_cols="obs",
        action_cols="act",
        session_cols="id",
    )


def test_independent_model_draws_one_value_per_session() -> None:
    """Each parameter is one site holding a vector over sessions."""

    population = IndependentPopulationModel({"noise": stats.halfnorm(), "rate": stats.beta(1, 1)})
    program = population.bind(_sessions())

    ctx = GenerativeContext(np.random.default_rng(0))
    per_session = program(ctx)

    assert isinstance(population, PopulationModel)
    assert population.parameter_names == ("noise", "rate")
    assert population.population_model_type == "independent"
    assert list(ctx.latent_sites()) == ["noise", "rate"]
    assert np.shape(ctx.sites["noise"].value) == (3,)
    assert len(per_session) == 3
    assert per_session[1] == (
        pytest.approx(ctx.sites["noise"].value[1]),
        pytest.approx(ctx.sites["rate"].value[1]),
    )


def test_independent_model_validates_priors() -> None:
    """Priors must be non-empty, unique and distributions."""

    with pytest.raises(ValueError, match="no parameters were specified in the prior"):
        IndependentPopulationModel({})
    with pytest.raises(ValueError, match="specified more than once"):
        IndependentPopulationModel([("noise", stats.norm()), ("noise", stats.norm())])
    with pytest.raises(ValueError, match="must be a distribution"):
        IndependentPopulationModel({"noise": 1.0})


def test_regression_uses_session_level_predictors() -> None:
    """Parameters follow the linear predictor under the inverse link."""

    population = RegressionPopulationModel(
        Regression("noise", predictors=("age",), inv_link="exp")
    )
    program = population.bind(_sessions())

    per_session = program(ReplayContext({"noise.beta": np.array([0.5, 0.01])}))

    expected = np.exp(0.5 + 0.01 * np.array([20.0, 30.0, 40.0]))
    assert [item[0] for item in per_session] == pytest.approx(expected.tolist())
    assert population.population_model_type == "regression"


def test_regression_random_intercepts_are_non_centered() -> None:
    """Random effects add ``sd * z`` per grouping level."""

    population = RegressionPopulationModel([Regression("rate", random_effects=("group",), inv_link="logistic")])
    program = population.bind(_sessions())

    ctx = GenerativeContext(np.random.default_rng(4))
    program(ctx)
    assert list(ctx.latent_sites()) == ["rate.beta", "rate.group.sd", "rate.group.z"]
    assert np.shape(ctx.sites["rate.group.z"].value) == (2,)

    per_session = program(
        ReplayContext({"rate.beta": np.array([0.0]), "rate.group.sd": 2.0, "rate.group.z": np.array([0.5, -0.5])})
    )
    expected = 1.0 / (1.0 + np.exp(-np.array([1.0, -1.0, 1.0])))
    assert [item[0] for item in per_session] == pytest.approx(expected.tolist())


def test_regression_random_slopes_scale_with_the_term_column() -> None:
    """Random slopes add ``x * sd * z`` per grouping level."""

    population = RegressionPopulationModel(
        Regression("rate", random_effects={"group": ("1", "age")})
    )
    program = population.bind(_sessions())

    ctx = GenerativeContext(np.random.default_rng(2))
    program(ctx)
    assert list(ctx.latent_sites()) == [
        "rate.beta",
        "rate.group.sd",
        "rate.group.z",
        "rate.group.age.sd",
        "rate.group.age.z",
    ]

    per_session = program(
        ReplayContext(
            {
                "rate.beta": np.array([1.0]),
                "rate.group.sd": 1.0,
                "rate.group.z": np.array([0.5, -0.5]),
                "rate.group.age.sd": 0.1,
                "rate.group.age.z": np.array([1.0, -2.0]),
            }
        )
    )
    # sessions a, b, c have group g1, g2, g1 and age 20, 30, 40
    expected = [1.0 + 0.5 + 20 * 0.1, 1.0 - 0.5 - 30 * 0.2, 1.0 + 0.5 + 40 * 0.1]
    assert [item[0] for item in per_session] == pytest.approx(expected)


def test_random_effect_terms_are_normalized() -> None:
    """Plain column names mean random intercepts only."""

    assert Regression("rate", random_effects=("group",)).random_effects == (("group", ("1",)),)
    assert Regression("rate", random_effects={"group": "age"}).random_effects == (("group", ("age",)),)
    with pytest.raises(ValueError, match="must have at least one term"):
        Regression("rate", random_effects={"group": ()})
    with pytest.raises(ValueError, match="duplicate terms"):
        Regression("rate", random_effects={"group": ("age", "age")})
    with pytest.raises(DatasetError, match="random-slope column 'group' must be numeric"):
        RegressionPopulationModel(Regression("rate", random_effects={"id": ("group",)})).bind(_sessions())


def test_regression_validates_inputs() -> None:
    """Unknown links, duplicate parameters and bad predictors fail."""

    with pytest.raises(ValueError, match="unknown inv_link"):
        Regression("noise", inv_link="probit")
    with pytest.raises(ValueError, match="more than one regression"):
        RegressionPopulationModel([Regression("noise"), Regression("noise")])
    with pytest.raises(DatasetError, match="predictor column 'group' must be numeric"):
        RegressionPopulationModel(Regression("noise", predictors=("group",))).bind(_sessions())


def test_custom_population_model_wraps_program() -> None:
    """Custom programs are used unchanged."""

    def program(ctx):
        shared = ctx.sample("shared_noise", stats.halfnorm())
        return [(shared,)] * 3

    population = CustomPopulationModel(program, ["noise"])

    assert population.bind(_sessions()) is program
    assert population.population_model_type == "custom"
    with pytest.raises(ValueError, match="must be unique"):
        CustomPopulationModel(program, ["noise", "noise"])


def report_mean_step(attributes, observation):
    """Report the session mean with small noise."""

    return stats.norm(loc=attributes.get_parameters("mu"), scale=0.1)


def test_regression_recovers_per_level_slopes() -> None:
    """Each subject's slope on ``x`` is recovered from its sessions."""

    rng = np.random.default_rng(7)
    true_slopes = {"a": 1.0, "b": -1.0}
    data: dict[str, list] = {"id": [], "x": [], "obs": [], "act": []}
    for subject, slope in true_slopes.items():
        for x in (0.0, 1.0):
            for _ in range(10):
                data["id"].append(subject)
                data["x"].append(x)
                data["obs"].append(0.0)
                data["act"].append(float(slope * x + 0.1 * rng.standard_normal()))

    fit = create_model(
        ActionModel(
            report_mean_step,
            parameters={"mu": Parameter(0.0)},
            observations={"observation": Observation()},
            actions={"report": Action()},
        ),
        Regression("mu", predictors=("x",), random_effects={"id": ("x",)}),
        data,
        observation_cols="obs",
        action_cols="act",
        session_cols=("id", "x"),
        verbose=False,
    )
    sample_posterior(
        fit,
        engine=RandomWalkMetropolisEngine(n_warmup=200, proposal_scale=0.02),
        n_samples=300,
        n_chains=1,
        init_params="map",
        random_seed=0,
    )

    parameters = get_session_parameters(fit)
    for subject, slope in true_slopes.items():
        difference = parameters.get(f"id:{subject}.x:1.0", "mu") - parameters.get(f"id:{subject}.x:0.0", "mu")
        assert float(np.median(difference)) == pytest.approx(slope, abs=0.15)
