"""Tests for summaries of chains and extracted quantities."""

from __future__ import annotations

import csv
from pathlib import Path

import numpy as np
import pytest

from action_models.inference import (
    Chains,
    SessionParameters,
    SiteLayout,
    SiteSpec,
    StateTrajectories,
    chains_summary_records,
    identity_transform,
    summarize_chains,
    summarize_session_parameters,
    summarize_state_trajectories,
    write_summary_csv,
)


def _chains() -> Chains:
    layout = SiteLayout(
        (SiteSpec(name="alpha", shape=(2,), offset=0, discrete=False, transform=identity_transform()),)
    )
    values = np.stack(
        [
            np.column_stack([np.arange(4, dtype=float), np.full(4, 10.0)]),
            np.column_stack([np.arange(4, 8, dtype=float), np.full(4, 10.0)]),
        ],
        axis=2,
    )
    return Chains(layout=layout, values=values, log_density=np.zeros((4, 2)), mode="posterior")


def test_summarize_chains_pools_draws_across_chains() -> None:
    """Means, standard deviations and quantiles use every draw."""

    summary = summarize_chains(_chains(), quantiles=(0.5,))
    alpha_0 = summary.by_name()["alpha[0]"]

    assert summary.n_draws == 4 and summary.n_chains == 2
    assert alpha_0.mean == pytest.approx(3.5)
    assert alpha_0.std == pytest.approx(np.std(np.arange(8.0), ddof=1))
    assert alpha_0.quantiles[0.5] == pytest.approx(3.5)
    assert summary.by_name()["alpha[1]"].std == pytest.approx(0.0)

    with pytest.raises(ValueError, match="quantiles must lie in"):
        summarize_chains(_chains(), quantiles=(1.5,))


def test_chains_summary_records_have_quantile_columns() -> None:
    """Records hold one row per variable."""

    records = chains_summary_records(summarize_chains(_chains()))

    assert [row["variable_name"] for row in records] == ["alpha[0]", "alpha[1]"]
    assert set(records[0]) == {"variable_name", "mean", "std", "n_draws", "n_chains", "q0.050", "q0.500", "q0.950"}


def test_session_parameter_summary_recovers_grouping_columns() -> None:
    """Rows carry the stored grouping columns of each session."""

    values = np.zeros((2, 1, 3, 1))
    values[0, 0, :, 0] = [0.1, 0.2, 0.9]
    values[1, 0, :, 0] = [0.5, 0.5, 0.5]
    parameters = SessionParameters(
        session_ids=("subject:1.block:a", "subject:2.block:a"),
        parameter_names=("learning_rate",),
        values=values,
        mode="posterior",
        session_keys=({"subject": 1, "block": "a"}, {"subject": 2, "block": "a"}),
    )

    rows = summarize_session_parameters(parameters)

    assert rows[0] == {"subject": 1, "block": "a", "learning_rate": pytest.approx(0.2)}
    assert summarize_session_parameters(parameters, np.mean)[0]["learning_rate"] == pytest.approx(0.4)


def test_state_trajectory_summary_has_one_row_per_timestep() -> None:
    """Timestep 0 is the state after reset."""

    trajectory = np.array([[[0.0, 0.1, 0.19]], [[0.0, 0.3, 0.51]]])
    trajectories = StateTrajectories(
        state_names=("expected_value",),
        session_ids=("id:A",),
        values={"expected_value": {"id:A": trajectory}},
        mode="posterior",
        session_keys=({"id": "A"},),
    )

    rows = summarize_state_trajectories(trajectories, np.mean)

    assert [row["timestep"] for row in rows] == [0, 1, 2]
    assert rows[1] == {"id": "A", "timestep": 1, "expected_value": pytest.approx(0.2)}


def test_float_grouping_values_are_not_reparsed() -> None:
    """Grouping values containing dots stay intact in summary rows."""

    parameters = SessionParameters(
        session_ids=("dose:1.5",),
        parameter_names=("learning_rate",),
        values=np.full((1, 1, 2, 1), 0.3),
        mode="posterior",
        session_keys=({"dose": 1.5},),
    )
    trajectories = StateTrajectories(
        state_names=("expected_value",),
        session_ids=("dose:1.5",),
        values={"expected_value": {"dose:1.5": np.zeros((2, 1, 2))}},
        mode="posterior",
        session_keys=({"dose": 1.5},),
    )

    assert summarize_session_parameters(parameters) == [{"dose": 1.5, "learning_rate": pytest.approx(0.3)}]
    assert summarize_state_trajectories(trajectories)[1] == {"dose": 1.5, "timestep": 1, "expected_value": 0.0}


def test_summary_rows_fall_back_to_session_ids() -> None:
    """Without stored grouping values rows carry the session id."""

    parameters = SessionParameters(
        session_ids=("sub.01",),
        parameter_names=("learning_rate",),
        values=np.full((1, 1, 2, 1), 0.3),
        mode="posterior",
    )

    assert summarize_session_parameters(parameters)[0]["session_id"] == "sub.01"
    with pytest.raises(ValueError, match="session_keys must have one entry per session"):
        SessionParameters(
            session_ids=("a", "b"),
            parameter_names=("learning_rate",),
            values=np.zeros((2, 1, 1, 1)),
            mode="posterior",
            session_keys=({"id": "a"},),
        )


def test_write_summary_csv(tmp_path: Path) -> None:
    """CSV output keeps the column order of first appearance."""

    path = write_summary_csv(
        [{"id": "A", "learning_rate": 0.2}, {"id": "B", "learning_rate": 0.5, "note": "x"}],
        tmp_path / "out" / "summary.csv",
    )

    with path.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    assert list(rows[0]) == ["id", "learning_rate", "note"]
    assert rows[1]["learning_rate"] == "0.5"
    with pytest.raises(ValueError, match="rows must not be empty"):
        write_summary_csv([], tmp_path / "empty.csv")
