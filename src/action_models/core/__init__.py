"""Core declarations, attribute stores and action-model specification."""

from .action_model import ActionModel, normalize_step_output
from .attributes import (
    ModelAttributes,
    Submodel,
    build_model_attributes,
    check_declarations,
    load_actions,
    load_parameters,
    load_states,
    update_state,
)
from .distributions import (
    ProductDistribution,
    draw,
    iid,
    is_discrete,
    is_distribution,
    log_probability,
    support_bounds,
)
from .errors import (
    ActionModelsError,
    ActionModelsWarning,
    AttributeTypeError,
    DatasetError,
    ModelSpecificationError,
    RejectParameters,
    UnknownAttributeError,
)
from .variables import (
    NO_ACTION,
    Action,
    InitialStateParameter,
    NoAction,
    Observation,
    Parameter,
    State,
    Variable,
    initialize_variable,
)

__all__ = [
    "NO_ACTION",
    "Action",
    "ActionModel",
    "ActionModelsError",
    "ActionModelsWarning",
    "AttributeTypeError",
    "DatasetError",
    "InitialStateParameter",
    "ModelAttributes",
    "ModelSpecificationError",
    "NoAction",
    "Observation",
    "Parameter",
    "ProductDistribution",
    "RejectParameters",
    "State",
    "Submodel",
    "UnknownAttributeError",
    "Variable",
    "build_model_attributes",
    "check_declarations",
    "draw",
    "iid",
    "initialize_variable",
    "is_discrete",
    "is_distribution",
    "load_actions",
    "load_parameters",
    "load_states",
    "log_probability",
    "normalize_step_output",
    "support_bounds",
    "update_state",
]
