"""Assemble an action model, a population model and a dataset into one program.

The composed program runs in a fixed order on every evaluation:

1. the population program yields one parameter tuple per session;
2. each session, in dataset order, gets a freshly built attribute tree with
   those parameters, is reset, and steps through its timesteps;
3. each timestep calls the step function and then, per its
   :class:`~action_models.inference.missing_actions.TimestepPlan`, observes
   known actions, samples missing ones (``INFER``) or leaves them unscored
   (``SKIP``).

Action sites are named ``<session>.timestep_<t>.<action>``, see
:mod:`action_models.core.naming`.
"""

from __future__ import annotations

import warnings
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from action_models.core.action_model import ActionModel
from action_models.core.attributes import ModelAttributes
from action_models.core.errors import ActionModelsWarning, RejectParameters, UnknownAttributeError
from action_models.core.naming import action_site_name, timestep_tag
from action_models.core.variables import NO_ACTION

from .fit import ModelFit
from .missing_actions import MissingActionPlan, MissingActionPolicy, resolve_missing_actions
from .population import (
    CustomPopulationModel,
    IndependentPopulationModel,
    PopulationModel,
    Regression,
    RegressionPopulationModel,
)
from .program import Program, ProgramContext, ReplayContext
from .sessions import ColumnSpec, SessionData, decompose_sessions


@dataclass(frozen=True, slots=True)
class Rejected:
    """Outcome of a session rollout stopped by a parameter rejection.

    Parameters
    ----------
    session_id : str
        Session whose step function rejected the parameters.
    timestep_index : int
        Zero-based timestep of the rejection.
    reason : str
        Message of the rejection signal.
    """

    session_id: str
    timestep_index: int
    reason: str

    def describe(self) -> str:
        return (
            f"parameters rejected in session {self.session_id!r} at "
            f"{timestep_tag(self.timestep_index)}: {self.reason}"
        )


StateRecorder = Callable[[ModelAttributes], None]


class ComposedProgram:
    """Population model plus per-session rollouts of an action model.

    Parameters
    ----------
    action_model : ActionModel
        Shared action model.
    population_model : PopulationModel
        Population model bound to ``session_data``.
    session_data : SessionData
        Decomposed dataset.
    missing_plan : MissingActionPlan
        Per-timestep missing-action handling.
    check_parameter_rejections : bool, optional
        Whether :class:`~action_models.core.errors.RejectParameters` gives
        the current draw probability zero instead of propagating.
    float_type, int_type : type, optional
        Numeric family of the attribute trees built per evaluation.

    Notes
    -----
    Every evaluation builds new attribute trees, so concurrent evaluations
    share no mutable state.
    """

    def __init__(
        self,
        *,
        action_model: ActionModel,
        population_model: PopulationModel,
        session_data: SessionData,
        missing_plan: MissingActionPlan,
        check_parameter_rejections: bool = False,
        float_type: type = float,
        int_type: type = int,
    ) -> None:
        if len(missing_plan.timesteps) != session_data.n_sessions:
            raise ValueError("missing_plan must have one entry per session")
        self.action_model = action_model
        self.population_model = population_model
        self.population_program: Program = population_model.bind(session_data)
        self.parameter_names = tuple(population_model.parameter_names)
        self.session_data = session_data
        self.missing_plan = missing_plan
        self.check_parameter_rejections = bool(check_parameter_rejections)
        self.float_type = float_type
        self.int_type = int_type

    def __call__(self, ctx: ProgramContext) -> None:
        parameters_per_session = self.population_parameters(ctx)
        for session_index, parameters in enumerate(parameters_per_session):
            outcome = self.run_session(ctx, session_index, parameters)
            if isinstance(outcome, Rejected):
                ctx.reject(outcome.describe())
                return

    def population_parameters(self, ctx: ProgramContext) -> list[tuple[Any, ...]]:
        """Run the population program and validate its per-session output.

        Raises
        ------
        ValueError
            If the output does not hold one tuple of ``len(parameter_names)``
            values per session.
        """

        raw = self.population_program(ctx)
        sessions = list(raw)
        n_sessions = self.session_data.n_sessions
        if len(sessions) != n_sessions:
            raise ValueError(
                f"population model returned {len(sessions)} parameter sets for {n_sessions} sessions"
            )
        out: list[tuple[Any, ...]] = []
        for session_id, values in zip(self.session_data.session_ids, sessions, strict=True):
            item = tuple(values) if isinstance(values, (tuple, list)) else (values,)
            if len(item) != len(self.parameter_names):
                raise ValueError(
                    f"population model returned {len(item)} values for session {session_id!r}; "
                    f"expected one per parameter {list(self.parameter_names)}"
                )
            out.append(item)
        return out

    def new_attributes(self, parameters: Sequence[Any]) -> ModelAttributes:
        """Return a fresh, reset attribute tree holding ``parameters``."""

        attributes = self.action_model.initialize_attributes(
            float_type=self.float_type,
            int_type=self.int_type,
        )
        attributes.set_parameters(self.parameter_names, tuple(parameters))
        attributes.reset()
        return attributes

    def run_session(
        self,
        ctx: ProgramContext,
        session_index: int,
        parameters: Sequence[Any],
        *,
        recorder: StateRecorder | None = None,
    ) -> Rejected | None:
        """Roll one session forward under ``ctx``.

        Parameters
        ----------
        ctx : ProgramContext
            Execution context receiving action sites.
        session_index : int
            Session position in the dataset.
        parameters : Sequence[Any]
            Values ordered like ``parameter_names``.
        recorder : Callable[[ModelAttributes], None] | None, optional
            Called once after reset and once after every timestep.

        Returns
        -------
        Rejected | None
            ``Rejected`` when rejection checking is enabled and the step
            function rejected the parameters, otherwise ``None``.
        """

        session_id = self.session_data.session_ids[session_index]
        try:
            attributes = self.new_attributes(parameters)
        except Exception as exc:
            exc.add_note(f"while assigning parameters for session {session_id!r}")
            raise
        if recorder is not None:
            recorder(attributes)

        observations = self.session_data.observations[session_index]
        plans = self.missing_plan.timesteps[session_index]
        for timestep_index, (observation, plan) in enumerate(zip(observations, plans, strict=True)):
            try:
                outcome = self._run_timestep(
                    ctx,
                    attributes,
                    session_index=session_index,
                    timestep_index=timestep_index,
                    observation=observation,
                    plan_policy=plan.policy,
                    missing=plan.missing,
                )
            except Exception as exc:
                exc.add_note(f"in session {session_id!r} at {timestep_tag(timestep_index)}")
                raise
            if outcome is not None:
                return outcome
            if recorder is not None:
                recorder(attributes)
        return None

    def _run_timestep(
        self,
        ctx: ProgramContext,
        attributes: ModelAttributes,
        *,
        session_index: int,
        timestep_index: int,
        observation: Any,
        plan_policy: MissingActionPolicy,
        missing: tuple[bool, ...],
    ) -> Rejected | None:
        session_id = self.session_data.session_ids[session_index]
        try:
            distributions = self.action_model.step_distributions(attributes, observation)
        except RejectParameters as exc:
            if not self.check_parameter_rejections:
                raise
            return Rejected(session_id=session_id, timestep_index=timestep_index, reason=str(exc))

        known = self.session_data.action_components(session_index, timestep_index)
        realized: list[Any] = []
        for action_name, distribution, value, is_missing in zip(
            self.action_model.action_names, distributions, known, missing, strict=True
        ):
            site = action_site_name(session_id, timestep_index, action_name)
            if not is_missing:
                realized.append(ctx.observe(site, distribution, value))
            elif plan_policy is MissingActionPolicy.INFER:
                realized.append(ctx.sample(site, distribution))
            else:
                realized.append(NO_ACTION)
        attributes.store_action(tuple(realized))
        return None

    def replay_session(
        self,
        session_index: int,
        parameters: Sequence[Any],
        latent_values: Mapping[str, Any],
        *,
        recorder: StateRecorder,
    ) -> Rejected | None:
        """Deterministically replay one session with fixed parameters.

        Known actions are stored as observed and inferred actions take their
        values from ``latent_values``; nothing is sampled.
        """

        ctx = ReplayContext(latent_values, score_observations=False)
        return self.run_session(ctx, session_index, parameters, recorder=recorder)


def _resolve_population_model(
    population_model: Any,
    parameter_names: Sequence[str] | None,
) -> PopulationModel:
    """Coerce supported population-model inputs."""

    if isinstance(population_model, Mapping):
        resolved: PopulationModel = IndependentPopulationModel(population_model)
    elif isinstance(population_model, Regression) or (
        isinstance(population_model, (list, tuple))
        and population_model
        and all(isinstance(item, Regression) for item in population_model)
    ):
        resolved = RegressionPopulationModel(population_model)
    elif isinstance(population_model, PopulationModel):
        resolved = population_model
    elif callable(population_model):
        if parameter_names is None:
            raise ValueError("parameter_names are required for a custom population program")
        return CustomPopulationModel(population_model, parameter_names)
    else:
        raise TypeError(f"unsupported population model {population_model!r}")

    if parameter_names is not None and tuple(parameter_names) != resolved.parameter_names:
        raise ValueError(
            f"parameter_names {list(parameter_names)} do not match the population model's "
            f"parameters {list(resolved.parameter_names)}"
        )
    return resolved


def _check_estimated_parameters(
    action_model: ActionModel,
    parameter_names: tuple[str, ...],
    *,
    verbose: bool,
) -> None:
    """Check estimated names exist and warn about fixed parameters."""

    declared = action_model.parameter_names
    for name in parameter_names:
        if name not in declared:
            raise UnknownAttributeError(name, "parameter", declared, location="the action model")
    fixed = [name for name in declared if name not in parameter_names]
    if fixed and verbose:
        warnings.warn(
            f"parameters {fixed} are not estimated and stay at their default values",
            ActionModelsWarning,
            stacklevel=3,
        )


def create_model(
    action_model: ActionModel,
    population_model: Any,
    data: Any,
    *,
    observation_cols: ColumnSpec,
    action_cols: ColumnSpec,
    session_cols: str | Sequence[str] = (),
    parameter_names: Sequence[str] | None = None,
    infer_missing_actions: bool = False,
    check_parameter_rejections: bool = False,
    verbose: bool = True,
    float_type: type = float,
    int_type: type = int,
) -> ModelFit:
    """Compose an action model, a population model and a dataset.

    Parameters
    ----------
    action_model : ActionModel
        Model of per-timestep behavior.
    population_model : Any
        A mapping of parameter name to prior (independent sessions), a
        :class:`Regression` or sequence of them, a :class:`PopulationModel`,
        or a custom program ``program(ctx)`` (requires ``parameter_names``).
    data : Any
        Tabular dataset, see :func:`~action_models.inference.sessions.as_columns`.
    observation_cols, action_cols : str | Sequence[str] | Mapping[str, str]
        Columns for the declared observations and actions.
    session_cols : str | Sequence[str], optional
        Grouping columns defining sessions.
    parameter_names : Sequence[str] | None, optional
        Estimated parameter names, in the order the population program
        yields them.
    infer_missing_actions : bool, optional
        Whether missing actions are inferred instead of skipped.
    check_parameter_rejections : bool, optional
        Whether parameter rejections give a draw probability zero.
    verbose : bool, optional
        Whether to emit informational warnings.
    float_type, int_type : type, optional
        Numeric family of attribute values during evaluation.

    Returns
    -------
    ModelFit
        Fitted-model container without samples.
    """

    population = _resolve_population_model(population_model, parameter_names)
    session_data = decompose_sessions(
        data,
        action_model=action_model,
        observation_cols=observation_cols,
        action_cols=action_cols,
        session_cols=session_cols,
    )
    missing_plan = resolve_missing_actions(
        session_data,
        infer_missing_actions=infer_missing_actions,
        verbose=verbose,
    )
    _check_estimated_parameters(action_model, tuple(population.parameter_names), verbose=verbose)
    program = ComposedProgram(
        action_model=action_model,
        population_model=population,
        session_data=session_data,
        missing_plan=missing_plan,
        check_parameter_rejections=check_parameter_rejections,
        float_type=float_type,
        int_type=int_type,
    )
    return ModelFit(program=program)


def create_single_session_model(
    action_model: ActionModel,
    priors: Mapping[str, Any],
    observations: Sequence[Any],
    actions: Sequence[Any],
    *,
    infer_missing_actions: bool = False,
    check_parameter_rejections: bool = False,
    verbose: bool = True,
) -> ModelFit:
    """Compose a model for one session given as plain sequences.

    Observations (and actions) are plain values for single
    observation (action) models and tuples otherwise. The session is
    grouped under column ``session`` with value ``1``.

    Raises
    ------
    ValueError
        If ``observations`` and ``actions`` differ in length.
    """

    if len(observations) != len(actions):
        raise ValueError(
            f"got {len(observations)} observations but {len(actions)} actions"
        )
    columns: dict[str, list[Any]] = {"session": [1] * len(observations)}
    for kind, names, values in (
        ("observation", action_model.observation_names, observations),
        ("action", action_model.action_names, actions),
    ):
        for position, name in enumerate(names):
            if len(names) == 1:
                columns[f"{kind}_{name}"] = list(values)
            else:
                columns[f"{kind}_{name}"] = [row[position] for row in values]
    return create_model(
        action_model,
        IndependentPopulationModel(priors, population_model_type="single_session"),
        columns,
        observation_cols=[f"observation_{name}" for name in action_model.observation_names],
        action_cols=[f"action_{name}" for name in action_model.action_names],
        session_cols=("session",),
        infer_missing_actions=infer_missing_actions,
        check_parameter_rejections=check_parameter_rejections,
        verbose=verbose,
    )


__all__ = [
    "ComposedProgram",
    "Rejected",
    "create_model",
    "create_single_session_model",
]
