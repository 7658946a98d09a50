"""Decompose tabular datasets into ordered per-session sequences.

Rows are grouped by the session columns in order of first appearance. Each
session keeps its rows in dataset order and yields aligned observation and
action sequences: plain values for single observation/action models, tuples
(one element per declared name) otherwise.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from numbers import Integral, Real
from typing import Any

import numpy as np

from action_models.core.action_model import ActionModel
from action_models.core.errors import DatasetError
from action_models.core.naming import session_id as build_session_id
from action_models.core.variables import Action, Observation

ColumnSpec = str | Sequence[str] | Mapping[str, str]


@dataclass(frozen=True, slots=True)
class SessionData:
    """Per-session observation and action sequences.

    Parameters
    ----------
    session_ids : tuple[str, ...]
        Canonical session ids in first-appearance order.
    session_cols : tuple[str, ...]
        Grouping columns used to build ``session_ids``.
    session_keys : tuple[dict[str, Any], ...]
        Grouping column values of each session, as found in the dataset.
    observation_names : tuple[str, ...]
        Declared observation names.
    action_names : tuple[str, ...]
        Declared action names.
    observations : tuple[tuple[Any, ...], ...]
        Per-session observation sequences.
    actions : tuple[tuple[Any, ...], ...]
        Per-session action sequences. ``None`` marks a missing action.
    row_indices : tuple[tuple[int, ...], ...]
        Dataset row indices of each session's timesteps.
    population_rows : tuple[dict[str, Any], ...]
        First dataset row of each session, used for session-level
        predictors.
    """

    session_ids: tuple[str, ...]
    session_cols: tuple[str, ...]
    session_keys: tuple[dict[str, Any], ...]
    observation_names: tuple[str, ...]
    action_names: tuple[str, ...]
    observations: tuple[tuple[Any, ...], ...]
    actions: tuple[tuple[Any, ...], ...]
    row_indices: tuple[tuple[int, ...], ...]
    population_rows: tuple[dict[str, Any], ...]

    def __post_init__(self) -> None:
        n_sessions = len(self.session_ids)
        if len(set(self.session_ids)) != n_sessions:
            raise DatasetError("session ids must be unique")
        for name, values in (
            ("session_keys", self.session_keys),
            ("observations", self.observations),
            ("actions", self.actions),
            ("row_indices", self.row_indices),
            ("population_rows", self.population_rows),
        ):
            if len(values) != n_sessions:
                raise DatasetError(f"{name} must have one entry per session")
        for index, (observations, actions) in enumerate(
            zip(self.observations, self.actions, strict=True)
        ):
            if len(observations) != len(actions):
                raise DatasetError(
                    f"session {self.session_ids[index]!r} has {len(observations)} observations "
                    f"but {len(actions)} actions"
                )

    @property
    def n_sessions(self) -> int:
        """Return the number of sessions."""

        return len(self.session_ids)

    @property
    def n_rows(self) -> int:
        """Return the total number of timesteps across sessions."""

        return int(sum(len(actions) for actions in self.actions))

    @property
    def multiple_observations(self) -> bool:
        return len(self.observation_names) > 1

    @property
    def multiple_actions(self) -> bool:
        return len(self.action_names) > 1

    def session_index(self, session_id: str) -> int:
        """Return the position of ``session_id``."""

        try:
            return self.session_ids.index(session_id)
        except ValueError:
            available = ", ".join(repr(item) for item in self.session_ids)
            raise KeyError(f"unknown session {session_id!r}; available: {available}") from None

    def action_components(self, session_index: int, timestep_index: int) -> tuple[Any, ...]:
        """Return one timestep's actions as a tuple of components."""

        value = self.actions[session_index][timestep_index]
        return value if self.multiple_actions else (value,)


def as_columns(data: Any) -> dict[str, list[Any]]:
    """Convert supported dataset inputs to a column mapping.

    Accepts a mapping of column name to values, a sequence of row mappings,
    or any object with ``to_dict(orient="list")`` such as a pandas
    ``DataFrame``.

    Raises
    ------
    DatasetError
        If the input is not tabular or columns have unequal lengths.
    """

    if hasattr(data, "to_dict") and hasattr(data, "columns"):
        raw = data.to_dict(orient="list")
    elif isinstance(data, Mapping):
        raw = data
    elif isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        if not data:
            raise DatasetError("dataset must contain at least one row")
        names = list(data[0])
        raw = {name: [] for name in names}
        for row_index, row in enumerate(data):
            if not isinstance(row, Mapping) or set(row) != set(names):
                raise DatasetError(f"row {row_index} does not have columns {names}")
            for name in names:
                raw[name].append(row[name])
    else:
        raise DatasetError(f"unsupported dataset type {type(data).__name__}")

    columns = {str(name): [_plain(value) for value in values] for name, values in raw.items()}
    lengths = {len(values) for values in columns.values()}
    if len(lengths) > 1:
        raise DatasetError(f"dataset columns must have equal lengths; got {sorted(lengths)}")
    if not columns or lengths == {0}:
        raise DatasetError("dataset must contain at least one row")
    return columns


def resolve_columns(spec: ColumnSpec, *, declared_names: tuple[str, ...], kind: str) -> tuple[str, ...]:
    """Map declared names to dataset columns in declared order.

    Parameters
    ----------
    spec : str | Sequence[str] | Mapping[str, str]
        One column, an ordered list of columns (matched to declarations by
        position), or a mapping of declared name to column.
    declared_names : tuple[str, ...]
        Declared observation or action names.
    kind : str
        ``"observation"`` or ``"action"``, for messages.

    Returns
    -------
    tuple[str, ...]
        One column per declared name, in declared order.

    Raises
    ------
    DatasetError
        If the number of columns differs from the number of declarations or
        a mapping does not cover exactly the declared names.
    """

    if isinstance(spec, str):
        columns: tuple[str, ...] = (spec,)
    elif isinstance(spec, Mapping):
        unknown = sorted(set(spec) - set(declared_names))
        missing = [name for name in declared_names if name not in spec]
        if unknown or missing:
            raise DatasetError(
                f"{kind} column mapping must cover declared {kind}s {list(declared_names)}; "
                f"unknown: {unknown}, missing: {missing}"
            )
        columns = tuple(str(spec[name]) for name in declared_names)
    else:
        columns = tuple(str(item) for item in spec)
    if len(columns) != len(declared_names):
        raise DatasetError(
            f"got {len(columns)} {kind} columns {list(columns)} but the action model declares "
            f"{len(declared_names)} {kind}s {list(declared_names)}"
        )
    return columns


def check_dataset(
    columns: Mapping[str, Sequence[Any]],
    *,
    action_model: ActionModel,
    observation_cols: tuple[str, ...],
    action_cols: tuple[str, ...],
    session_cols: tuple[str, ...],
) -> None:
    """Validate column presence and column value types.

    Raises
    ------
    DatasetError
        If a column is missing, a value does not match its declaration, or
        an action column holds NaN/Inf.
    """

    available = list(columns)
    for column in (*observation_cols, *action_cols, *session_cols):
        if column not in columns:
            raise DatasetError(f"column {column!r} is not in the dataset; available: {available}")

    for column, declaration in zip(observation_cols, action_model.observations.values(), strict=True):
        for row_index, value in enumerate(columns[column]):
            _check_observation_value(value, declaration, column=column, row_index=row_index)

    for column, declaration in zip(action_cols, action_model.actions.values(), strict=True):
        for row_index, value in enumerate(columns[column]):
            _check_action_value(value, declaration, column=column, row_index=row_index)

    for column in session_cols:
        for row_index, value in enumerate(columns[column]):
            if value is None or (isinstance(value, float) and np.isnan(value)):
                raise DatasetError(f"session column {column!r} is missing a value at row {row_index}")


def decompose_sessions(
    data: Any,
    *,
    action_model: ActionModel,
    observation_cols: ColumnSpec,
    action_cols: ColumnSpec,
    session_cols: str | Sequence[str] = (),
) -> SessionData:
    """Partition a dataset into per-session observation/action sequences.

    Parameters
    ----------
    data : Any
        Column mapping, sequence of row mappings, or a ``DataFrame``-like
        object.
    action_model : ActionModel
        Model whose declarations fix the observation and action layout.
    observation_cols, action_cols : str | Sequence[str] | Mapping[str, str]
        Dataset columns for the declared observations and actions.
    session_cols : str | Sequence[str], optional
        Grouping columns. No grouping gives a single session with id ``""``.

    Returns
    -------
    SessionData
        Ordered sessions and their sequences.

    Raises
    ------
    DatasetError
        If validation fails.
    """

    columns = as_columns(data)
    observation_columns = resolve_columns(
        observation_cols,
        declared_names=action_model.observation_names,
        kind="observation",
    )
    action_columns = resolve_columns(
        action_cols,
        declared_names=action_model.action_names,
        kind="action",
    )
    grouping = (session_cols,) if isinstance(session_cols, str) else tuple(session_cols)
    check_dataset(
        columns,
        action_model=action_model,
        observation_cols=observation_columns,
        action_cols=action_columns,
        session_cols=grouping,
    )

    n_rows = len(next(iter(columns.values())))
    groups: dict[tuple[Any, ...], list[int]] = {}
    for row_index in range(n_rows):
        key = tuple(columns[column][row_index] for column in grouping)
        groups.setdefault(key, []).append(row_index)

    observation_declarations = tuple(action_model.observations.values())
    action_declarations = tuple(action_model.actions.values())
    session_ids: list[str] = []
    session_keys: list[dict[str, Any]] = []
    observations: list[tuple[Any, ...]] = []
    actions: list[tuple[Any, ...]] = []
    population_rows: list[dict[str, Any]] = []
    for key, rows in groups.items():
        session_ids.append(build_session_id(grouping, key))
        session_keys.append(dict(zip(grouping, key, strict=True)))
        observations.append(
            tuple(_row_values(columns, observation_columns, observation_declarations, row) for row in rows)
        )
        actions.append(tuple(_row_values(columns, action_columns, action_declarations, row) for row in rows))
        population_rows.append({name: values[rows[0]] for name, values in columns.items()})

    return SessionData(
        session_ids=tuple(session_ids),
        session_cols=grouping,
        session_keys=tuple(session_keys),
        observation_names=action_model.observation_names,
        action_names=action_model.action_names,
        observations=tuple(observations),
        actions=tuple(actions),
        row_indices=tuple(tuple(rows) for rows in groups.values()),
        population_rows=tuple(population_rows),
    )


def _row_values(
    columns: Mapping[str, Sequence[Any]],
    names: tuple[str, ...],
    declarations: tuple[Observation | Action, ...],
    row: int,
) -> Any:
    """Return one row's converted value, or a tuple for several columns."""

    values = tuple(
        _convert_cell(columns[name][row], declaration)
        for name, declaration in zip(names, declarations, strict=True)
    )
    return values[0] if len(values) == 1 else values


def _convert_cell(value: Any, declaration: Observation | Action) -> Any:
    """Convert a validated cell to its declared element type.

    ``None`` (a missing action) and ``object`` declarations pass through.
    """

    if value is None or declaration.dtype is object:
        return value
    if declaration.shape is not None:
        return np.asarray(value, dtype=declaration.dtype)
    return declaration.dtype(value)


def _plain(value: Any) -> Any:
    """Convert numpy scalars to Python scalars."""

    if isinstance(value, np.generic):
        return value.item()
    return value


def _check_observation_value(value: Any, declaration: Observation, *, column: str, row_index: int) -> None:
    if value is None:
        raise DatasetError(f"observation column {column!r} has a missing value at row {row_index}")
    if declaration.dtype is object:
        return
    _check_numeric(value, declaration.dtype, declaration.shape, kind="observation", column=column, row_index=row_index)


def _check_action_value(value: Any, declaration: Action, *, column: str, row_index: int) -> None:
    if value is None or declaration.dtype is object:
        return
    array = np.asarray(value)
    if array.dtype.kind == "f" and not np.all(np.isfinite(array)):
        raise DatasetError(
            f"There are NaN or infinite values in the action column {column!r} (row {row_index}); "
            f"use None to mark missing actions"
        )
    _check_numeric(value, declaration.dtype, declaration.shape, kind="action", column=column, row_index=row_index)


def _check_numeric(
    value: Any,
    dtype: type,
    shape: tuple[int, ...] | None,
    *,
    kind: str,
    column: str,
    row_index: int,
) -> None:
    """Check one cell against a declared element type and shape."""

    if shape is not None:
        array = np.asarray(value)
        if array.shape != shape or array.dtype.kind not in "iuf":
            raise DatasetError(
                f"{kind} column {column!r} expects numeric arrays with shape {shape}; "
                f"got {value!r} at row {row_index}"
            )
        if dtype is int and array.dtype.kind == "f" and not np.all(np.mod(array, 1) == 0):
            raise DatasetError(
                f"{kind} column {column!r} expects integer values; got {value!r} at row {row_index}"
            )
        return
    if isinstance(value, bool) or not isinstance(value, Real):
        raise DatasetError(
            f"{kind} column {column!r} expects {dtype.__name__} values; got {value!r} at row {row_index}"
        )
    if dtype is int and not isinstance(value, Integral) and not float(value).is_integer():
        raise DatasetError(
            f"{kind} column {column!r} expects integer values; got {value!r} at row {row_index}"
        )


__all__ = [
    "SessionData",
    "as_columns",
    "check_dataset",
    "decompose_sessions",
    "resolve_columns",
]
