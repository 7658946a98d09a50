"""Summary records for sampler output and extracted quantities."""

from __future__ import annotations

import csv
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from .chains import Chains
from .extraction import SessionParameters, StateTrajectories

SummaryFunction = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class VariableSummary:
    """Summary statistics for one flat sampled variable.

    Parameters
    ----------
    variable_name : str
        Flattened variable identifier.
    mean : float
        Mean over draws and chains.
    std : float
        Standard deviation over draws and chains.
    quantiles : dict[float, float]
        Requested quantile values keyed by quantile probability.
    """

    variable_name: str
    mean: float
    std: float
    quantiles: dict[float, float]


@dataclass(frozen=True, slots=True)
class ChainsSummary:
    """Summary for all sampled variables."""

    mode: str
    n_draws: int
    n_chains: int
    variables: tuple[VariableSummary, ...]

    def by_name(self) -> dict[str, VariableSummary]:
        """Return variable summaries keyed by variable name."""

        return {item.variable_name: item for item in self.variables}


def summarize_chains(
    chains: Chains,
    *,
    quantiles: Sequence[float] = (0.05, 0.5, 0.95),
) -> ChainsSummary:
    """Summarize pooled draws of every flat variable.

    Parameters
    ----------
    chains : Chains
        Sampler output.
    quantiles : Sequence[float], optional
        Quantiles to report for each variable.

    Returns
    -------
    ChainsSummary
        Summary statistics for all variables.
    """

    q_values = tuple(float(value) for value in quantiles)
    for value in q_values:
        if value < 0.0 or value > 1.0:
            raise ValueError("quantiles must lie in [0, 1]")

    ddof = 1 if chains.n_draws * chains.n_chains > 1 else 0
    variables: list[VariableSummary] = []
    for variable_name in chains.variable_names:
        pooled = chains.get(variable_name).ravel()
        variables.append(
            VariableSummary(
                variable_name=variable_name,
                mean=float(np.mean(pooled)),
                std=float(np.std(pooled, ddof=ddof)),
                quantiles={value: float(np.quantile(pooled, value)) for value in q_values},
            )
        )
    return ChainsSummary(
        mode=chains.mode,
        n_draws=chains.n_draws,
        n_chains=chains.n_chains,
        variables=tuple(variables),
    )


def chains_summary_records(summary: ChainsSummary) -> list[dict[str, float | str]]:
    """Convert a chains summary into row records."""

    rows: list[dict[str, float | str]] = []
    for variable in summary.variables:
        row: dict[str, float | str] = {
            "variable_name": variable.variable_name,
            "mean": float(variable.mean),
            "std": float(variable.std),
            "n_draws": float(summary.n_draws),
            "n_chains": float(summary.n_chains),
        }
        for quantile, value in sorted(variable.quantiles.items()):
            row[f"q{quantile:.3f}"] = float(value)
        rows.append(row)
    return rows


def _summarize_draws(draws: np.ndarray, summary_function: SummaryFunction) -> Any:
    """Apply ``summary_function`` over pooled draws.

    Object arrays hold one array per draw; they are stacked so the summary is
    taken element-wise.
    """

    pooled = draws.ravel()
    if pooled.dtype == object:
        pooled = np.stack([np.asarray(item, dtype=float) for item in pooled])
    value = summary_function(pooled, axis=0)
    if np.ndim(value) == 0:
        return float(value)
    return np.asarray(value).tolist()


def _session_columns(
    session_id: str,
    session_index: int,
    session_keys: Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    if session_keys:
        return dict(session_keys[session_index])
    return {"session_id": session_id}


def summarize_session_parameters(
    session_parameters: SessionParameters,
    summary_function: SummaryFunction = np.median,
) -> list[dict[str, Any]]:
    """Return one row per session with a point summary per parameter.

    Parameters
    ----------
    session_parameters : SessionParameters
        Extracted per-session draws.
    summary_function : Callable, optional
        Reduction called as ``summary_function(draws, axis=0)``.

    Returns
    -------
    list[dict[str, Any]]
        Rows holding the session's grouping columns and one column per
        parameter. Without stored grouping values a ``session_id`` column is
        used instead.
    """

    rows: list[dict[str, Any]] = []
    for session_index, session_id in enumerate(session_parameters.session_ids):
        row = _session_columns(session_id, session_index, session_parameters.session_keys)
        for position, parameter_name in enumerate(session_parameters.parameter_names):
            row[parameter_name] = _summarize_draws(
                session_parameters.values[session_index, position],
                summary_function,
            )
        rows.append(row)
    return rows


def summarize_state_trajectories(
    trajectories: StateTrajectories,
    summary_function: SummaryFunction = np.median,
) -> list[dict[str, Any]]:
    """Return one row per session and timestep with a summary per state.

    Timestep 0 is the state after reset; timestep ``t`` follows the ``t``-th
    observation.
    """

    rows: list[dict[str, Any]] = []
    for session_index, session_id in enumerate(trajectories.session_ids):
        columns = _session_columns(session_id, session_index, trajectories.session_keys)
        per_state = {name: trajectories.get(name, session_id) for name in trajectories.state_names}
        n_points = next(iter(per_state.values())).shape[2]
        for timestep in range(n_points):
            row: dict[str, Any] = dict(columns)
            row["timestep"] = timestep
            for name, values in per_state.items():
                row[name] = _summarize_draws(values[:, :, timestep], summary_function)
            rows.append(row)
    return rows


def write_summary_csv(rows: list[dict[str, Any]], path: str | Path) -> Path:
    """Write summary rows to CSV.

    Parameters
    ----------
    rows : list[dict[str, Any]]
        Rows to write. Columns follow first appearance across rows.
    path : str | pathlib.Path
        Destination path.

    Returns
    -------
    pathlib.Path
        Output path.

    Raises
    ------
    ValueError
        If ``rows`` is empty.
    """

    if not rows:
        raise ValueError("rows must not be empty")

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames: list[str] = []
    seen: set[str] = set()
    for row in rows:
        for key in row:
            if key in seen:
                continue
            seen.add(key)
            fieldnames.append(str(key))

    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)

    return output_path


__all__ = [
    "ChainsSummary",
    "VariableSummary",
    "chains_summary_records",
    "summarize_chains",
    "summarize_session_parameters",
    "summarize_state_trajectories",
    "write_summary_csv",
]
