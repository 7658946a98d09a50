"""Model assembly, sampling and post-fit extraction."""

from .assembler import ComposedProgram, Rejected, create_model, create_single_session_model
from .chains import ChainDiagnostics, Chains
from .config import (
    CONFIG_SUFFIXES,
    SamplerSpec,
    load_sampler_spec,
    read_config_file,
    sample_posterior_from_config,
    sample_prior_from_config,
    sampler_spec_from_config,
)
from .density import ProgramDensity, SiteLayout, SiteSpec, generate
from .extraction import (
    SessionParameters,
    StateTrajectories,
    get_session_parameters,
    get_state_trajectories,
)
from .fit import RESULT_KINDS, ModelFit, ModelFitResult
from .mcmc import SAMPLING_MODES, InferenceEngine, RandomWalkMetropolisEngine
from .missing_actions import (
    MissingActionPlan,
    MissingActionPolicy,
    TimestepPlan,
    resolve_missing_actions,
)
from .population import (
    CustomPopulationModel,
    IndependentPopulationModel,
    PopulationModel,
    Regression,
    RegressionPopulationModel,
)
from .program import GenerativeContext, Program, ProgramContext, ReplayContext, Site
from .sampling import INIT_STRATEGIES, initial_points, sample_posterior, sample_prior
from .sessions import SessionData, as_columns, check_dataset, decompose_sessions, resolve_columns
from .summary import (
    ChainsSummary,
    VariableSummary,
    chains_summary_records,
    summarize_chains,
    summarize_session_parameters,
    summarize_state_trajectories,
    write_summary_csv,
)
from .transforms import (
    ParameterTransform,
    identity_transform,
    positive_log_transform,
    support_transform,
    unit_interval_logit_transform,
)

__all__ = [
    "CONFIG_SUFFIXES",
    "INIT_STRATEGIES",
    "RESULT_KINDS",
    "SAMPLING_MODES",
    "ChainDiagnostics",
    "Chains",
    "ChainsSummary",
    "ComposedProgram",
    "CustomPopulationModel",
    "GenerativeContext",
    "IndependentPopulationModel",
    "InferenceEngine",
    "MissingActionPlan",
    "MissingActionPolicy",
    "ModelFit",
    "ModelFitResult",
    "ParameterTransform",
    "PopulationModel",
    "Program",
    "ProgramContext",
    "ProgramDensity",
    "RandomWalkMetropolisEngine",
    "Regression",
    "RegressionPopulationModel",
    "Rejected",
    "ReplayContext",
    "SamplerSpec",
    "SessionData",
    "SessionParameters",
    "Site",
    "SiteLayout",
    "SiteSpec",
    "StateTrajectories",
    "TimestepPlan",
    "VariableSummary",
    "as_columns",
    "chains_summary_records",
    "check_dataset",
    "create_model",
    "create_single_session_model",
    "decompose_sessions",
    "generate",
    "get_session_parameters",
    "get_state_trajectories",
    "identity_transform",
    "initial_points",
    "load_sampler_spec",
    "positive_log_transform",
    "read_config_file",
    "resolve_columns",
    "resolve_missing_actions",
    "sample_posterior",
    "sample_posterior_from_config",
    "sample_prior",
    "sample_prior_from_config",
    "sampler_spec_from_config",
    "summarize_chains",
    "summarize_session_parameters",
    "summarize_state_trajectories",
    "support_transform",
    "unit_interval_logit_transform",
    "write_summary_csv",
]
