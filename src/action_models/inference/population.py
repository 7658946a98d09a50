"""Population models: how per-session parameters are generated.

A population model declares the names of the action-model parameters it
estimates and, once bound to a decomposed dataset, becomes a program that
returns one parameter tuple per session (in session order, with values in
``parameter_names`` order). Its internal latent sites are invisible to the
rest of the assembly.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import numpy as np
from scipy import stats
from scipy.special import expit

from action_models.core.distributions import ProductDistribution, as_python_value, iid, is_distribution
from action_models.core.errors import DatasetError
from action_models.core.naming import ID_SEPARATOR

from .program import Program, ProgramContext
from .sessions import SessionData

_INVERSE_LINKS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "identity": lambda value: value,
    "exp": np.exp,
    "logistic": expit,
}


@runtime_checkable
class PopulationModel(Protocol):
    """Protocol for population models."""

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Return estimated action-model parameter names, in output order."""

    @property
    def population_model_type(self) -> str:
        """Return a short label for the population structure."""

    def bind(self, session_data: SessionData) -> Program:
        """Return a program yielding one parameter tuple per session."""


def _session_tuples(
    parameter_names: tuple[str, ...],
    values: Mapping[str, np.ndarray],
    n_sessions: int,
) -> list[tuple[Any, ...]]:
    """Transpose per-parameter session vectors into per-session tuples."""

    return [
        tuple(as_python_value(np.asarray(values[name])[index]) for name in parameter_names)
        for index in range(n_sessions)
    ]


class IndependentPopulationModel:
    """Independent and identically distributed session parameters.

    Each estimated parameter has one prior and every session draws its value
    independently from it. The latent site of parameter ``p`` is named ``p``
    and holds one value per session, in session order.

    Parameters
    ----------
    priors : Mapping[str, Any]
        Prior distribution per estimated parameter.
    population_model_type : str, optional
        Label reported by the fitted model.

    Raises
    ------
    ValueError
        If no priors are given or a prior is not a distribution.
    """

    def __init__(self, priors: Mapping[str, Any], *, population_model_type: str = "independent") -> None:
        if isinstance(priors, Mapping):
            items = list(priors.items())
        else:
            items = list(priors)
        if not items:
            raise ValueError("no parameters were specified in the prior")
        names = [str(name) for name, _ in items]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"parameters specified more than once in the prior: {duplicates}")
        for name, prior in items:
            if not is_distribution(prior):
                raise ValueError(f"prior for parameter {name!r} must be a distribution; got {prior!r}")
        self.priors: dict[str, Any] = dict(items)
        self._population_model_type = population_model_type

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(self.priors)

    @property
    def population_model_type(self) -> str:
        return self._population_model_type

    def bind(self, session_data: SessionData) -> Program:
        n_sessions = session_data.n_sessions
        names = self.parameter_names
        priors = {name: iid(prior, n_sessions) for name, prior in self.priors.items()}

        def program(ctx: ProgramContext) -> list[tuple[Any, ...]]:
            values = {name: ctx.sample(name, prior) for name, prior in priors.items()}
            return _session_tuples(names, values, n_sessions)

        return program


@dataclass(frozen=True, slots=True)
class Regression:
    """Linear model for one action-model parameter across sessions.

    ``parameter[s] = inv_link(X[s] @ beta + sum_g sum_t x_t[s] * u_gt[level_g(s)])``
    with fixed effects from session-level predictor columns and, per grouping
    column ``g``, non-centered random effects ``u_gt = sd_gt * z_gt`` for
    each term ``t``. Term ``"1"`` is a random intercept (``x_t = 1``); any
    other term names a numeric column and gives a random slope.

    Parameters
    ----------
    parameter : str
        Estimated action-model parameter.
    predictors : tuple[str, ...], optional
        Numeric dataset columns used as fixed-effect predictors. Values are
        read from the first row of each session.
    random_effects : tuple[str, ...] | Mapping[str, Sequence[str]], optional
        Grouping columns whose levels get random intercepts, or a mapping of
        grouping column to terms, e.g. ``{"id": ("1", "x")}`` for a random
        intercept and a random slope on ``x`` per level of ``id``.
        Stored as ``((column, terms), ...)``.
    inv_link : str | Callable[[numpy.ndarray], numpy.ndarray], optional
        ``"identity"``, ``"exp"``, ``"logistic"`` or a callable.
    intercept_prior, coefficient_prior, sd_prior : Any, optional
        Priors for the intercept, each slope and each random-effect scale.
        Defaults are Student-t(3), Student-t(3) and half-normal(1).
    """

    parameter: str
    predictors: tuple[str, ...] = ()
    random_effects: tuple[str, ...] | Mapping[str, Sequence[str]] = ()
    inv_link: str | Callable[[np.ndarray], np.ndarray] = "identity"
    intercept_prior: Any = field(default=None)
    coefficient_prior: Any = field(default=None)
    sd_prior: Any = field(default=None)

    def __post_init__(self) -> None:
        if not self.parameter:
            raise ValueError("parameter must be a non-empty string")
        object.__setattr__(self, "predictors", tuple(self.predictors))
        object.__setattr__(self, "random_effects", _normalize_random_effects(self.random_effects))
        if isinstance(self.inv_link, str) and self.inv_link not in _INVERSE_LINKS:
            raise ValueError(
                f"unknown inv_link {self.inv_link!r}; expected one of {sorted(_INVERSE_LINKS)}"
            )
        if self.intercept_prior is None:
            object.__setattr__(self, "intercept_prior", stats.t(df=3))
        if self.coefficient_prior is None:
            object.__setattr__(self, "coefficient_prior", stats.t(df=3))
        if self.sd_prior is None:
            object.__setattr__(self, "sd_prior", stats.halfnorm())

    def link_function(self) -> Callable[[np.ndarray], np.ndarray]:
        """Return the inverse link as a callable."""

        if isinstance(self.inv_link, str):
            return _INVERSE_LINKS[self.inv_link]
        return self.inv_link


class RegressionPopulationModel:
    """Regression population model with optional random effects.

    Latent sites for a regression on parameter ``p`` are ``p.beta``
    (intercept then slopes). Per grouping column ``g`` a random intercept
    has the scale ``p.g.sd`` and standardized effects ``p.g.z``; a random
    slope on ``x`` has ``p.g.x.sd`` and ``p.g.x.z``.

    Parameters
    ----------
    regressions : Regression | Sequence[Regression]
        One regression per estimated parameter.
    """

    def __init__(self, regressions: Regression | Sequence[Regression]) -> None:
        items = (regressions,) if isinstance(regressions, Regression) else tuple(regressions)
        if not items:
            raise ValueError("at least one regression is required")
        names = [item.parameter for item in items]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"parameters with more than one regression: {duplicates}")
        self.regressions = items

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(item.parameter for item in self.regressions)

    @property
    def population_model_type(self) -> str:
        return "regression"

    def bind(self, session_data: SessionData) -> Program:
        n_sessions = session_data.n_sessions
        bound = [_bind_regression(item, session_data) for item in self.regressions]
        names = self.parameter_names

        def program(ctx: ProgramContext) -> list[tuple[Any, ...]]:
            values = {name: evaluate(ctx) for name, evaluate in zip(names, bound, strict=True)}
            return _session_tuples(names, values, n_sessions)

        return program


def _normalize_random_effects(
    random_effects: Sequence[str] | Mapping[str, Sequence[str]],
) -> tuple[tuple[str, tuple[str, ...]], ...]:
    """Return ``((column, terms), ...)`` with intercept-only defaults."""

    if isinstance(random_effects, Mapping):
        items = [(str(column), terms) for column, terms in random_effects.items()]
    elif isinstance(random_effects, str):
        items = [(random_effects, ("1",))]
    else:
        items = []
        for entry in random_effects:
            if isinstance(entry, str):
                items.append((entry, ("1",)))
            else:
                column, terms = entry
                items.append((str(column), terms))

    normalized: list[tuple[str, tuple[str, ...]]] = []
    for column, terms in items:
        terms = (terms,) if isinstance(terms, str) else tuple(str(term) for term in terms)
        if not terms:
            raise ValueError(f"random effect on {column!r} must have at least one term")
        if len(set(terms)) != len(terms):
            raise ValueError(f"random effect on {column!r} has duplicate terms {list(terms)}")
        normalized.append((column, terms))
    columns = [column for column, _ in normalized]
    if len(set(columns)) != len(columns):
        raise ValueError(f"random effects must name each grouping column once; got {columns}")
    return tuple(normalized)


def _numeric_column(session_data: SessionData, column: str, *, kind: str) -> np.ndarray:
    """Return one numeric value per session from its first row."""

    values = []
    for session_id, row in zip(session_data.session_ids, session_data.population_rows, strict=True):
        if column not in row:
            raise DatasetError(f"{kind} column {column!r} is not in the dataset")
        value = row[column]
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DatasetError(
                f"{kind} column {column!r} must be numeric; got {value!r} in session {session_id!r}"
            )
        values.append(float(value))
    return np.asarray(values, dtype=float)


def _bind_regression(regression: Regression, session_data: SessionData) -> Callable[[ProgramContext], np.ndarray]:
    """Precompute the design for one regression and return its evaluator."""

    rows = session_data.population_rows
    design_columns = [np.ones(len(rows), dtype=float)]
    for predictor in regression.predictors:
        design_columns.append(_numeric_column(session_data, predictor, kind="predictor"))
    design = np.column_stack(design_columns)
    beta_prior = ProductDistribution(
        [regression.intercept_prior] + [regression.coefficient_prior] * len(regression.predictors)
    )

    prefix = regression.parameter
    # (site prefix, level index per session, number of levels, term values per session)
    terms: list[tuple[str, np.ndarray, int, np.ndarray]] = []
    for column, column_terms in regression.random_effects:
        levels: dict[Any, int] = {}
        indices = []
        for row in rows:
            if column not in row:
                raise DatasetError(f"random-effect column {column!r} is not in the dataset")
            indices.append(levels.setdefault(row[column], len(levels)))
        level_indices = np.asarray(indices, dtype=int)
        for term in column_terms:
            if term == "1":
                site_prefix = f"{prefix}{ID_SEPARATOR}{column}"
                term_values = np.ones(len(rows), dtype=float)
            else:
                site_prefix = f"{prefix}{ID_SEPARATOR}{column}{ID_SEPARATOR}{term}"
                term_values = _numeric_column(session_data, term, kind="random-slope")
            terms.append((site_prefix, level_indices, len(levels), term_values))

    link = regression.link_function()

    def evaluate(ctx: ProgramContext) -> np.ndarray:
        beta = np.asarray(ctx.sample(f"{prefix}{ID_SEPARATOR}beta", beta_prior), dtype=float)
        linear = design @ beta
        for site_prefix, level_indices, n_levels, term_values in terms:
            scale = float(ctx.sample(f"{site_prefix}{ID_SEPARATOR}sd", regression.sd_prior))
            z_values = np.asarray(
                ctx.sample(f"{site_prefix}{ID_SEPARATOR}z", iid(stats.norm(), n_levels)),
                dtype=float,
            )
            linear = linear + term_values * scale * z_values[level_indices]
        return np.asarray(link(linear), dtype=float)

    return evaluate


class CustomPopulationModel:
    """User-supplied population program.

    Parameters
    ----------
    program : Callable[[ProgramContext], Sequence[tuple]]
        Program returning one tuple of values per session, ordered like
        ``parameter_names``.
    parameter_names : Sequence[str]
        Estimated parameter names.
    population_model_type : str, optional
        Label reported by the fitted model.
    """

    def __init__(
        self,
        program: Program,
        parameter_names: Sequence[str],
        *,
        population_model_type: str = "custom",
    ) -> None:
        if not callable(program):
            raise ValueError("program must be callable")
        names = tuple(str(name) for name in parameter_names)
        if not names:
            raise ValueError("parameter_names must not be empty")
        if len(set(names)) != len(names):
            raise ValueError("parameter_names must be unique")
        self.program = program
        self._parameter_names = names
        self._population_model_type = population_model_type

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return self._parameter_names

    @property
    def population_model_type(self) -> str:
        return self._population_model_type

    def bind(self, session_data: SessionData) -> Program:
        return self.program


__all__ = [
    "CustomPopulationModel",
    "IndependentPopulationModel",
    "PopulationModel",
    "Regression",
    "RegressionPopulationModel",
]
