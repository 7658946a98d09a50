"""Top-level package for ``action_models``.

The package is organized around one action-model specification used two ways:

1. an :class:`~action_models.runtime.agent.Agent` simulates actions by
   stepping the model over observations,
2. :func:`~action_models.inference.assembler.create_model` conditions the same
   model on a dataset of sessions under a population model, and the fitted
   model is sampled and then reduced to per-session parameters and replayed
   state trajectories.
"""

from .core.action_model import ActionModel
from .core.attributes import (
    ModelAttributes,
    Submodel,
    load_actions,
    load_parameters,
    load_states,
    update_state,
)
from .core.errors import (
    ActionModelsError,
    ActionModelsWarning,
    AttributeTypeError,
    DatasetError,
    ModelSpecificationError,
    RejectParameters,
    UnknownAttributeError,
)
from .core.variables import NO_ACTION, Action, InitialStateParameter, Observation, Parameter, State
from .inference import (
    ModelFit,
    RandomWalkMetropolisEngine,
    Regression,
    create_model,
    create_single_session_model,
    get_session_parameters,
    get_state_trajectories,
    sample_posterior,
    sample_prior,
    summarize_session_parameters,
    summarize_state_trajectories,
)
from .runtime.agent import Agent, init_agent, iter_simulate, simulate

__version__ = "0.1.0"

__all__ = [
    "NO_ACTION",
    "Action",
    "ActionModel",
    "ActionModelsError",
    "ActionModelsWarning",
    "Agent",
    "AttributeTypeError",
    "DatasetError",
    "InitialStateParameter",
    "ModelAttributes",
    "ModelFit",
    "ModelSpecificationError",
    "Observation",
    "Parameter",
    "RandomWalkMetropolisEngine",
    "Regression",
    "RejectParameters",
    "State",
    "Submodel",
    "UnknownAttributeError",
    "create_model",
    "create_single_session_model",
    "get_session_parameters",
    "get_state_trajectories",
    "init_agent",
    "iter_simulate",
    "load_actions",
    "load_parameters",
    "load_states",
    "sample_posterior",
    "sample_prior",
    "simulate",
    "summarize_session_parameters",
    "summarize_state_trajectories",
    "update_state",
]
