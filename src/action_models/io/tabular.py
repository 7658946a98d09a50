"""Tabular CSV I/O helpers for behavioral datasets.

Datasets are read into the column mapping accepted by
:func:`~action_models.inference.sessions.decompose_sessions`. Empty cells
become ``None`` so missing actions survive the round trip.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from action_models.core.errors import DatasetError
from action_models.inference.sessions import as_columns


def read_dataset_csv(
    path: str | Path,
    *,
    numeric_cols: Sequence[str] = (),
    integer_cols: Sequence[str] = (),
) -> dict[str, list[Any]]:
    """Read a dataset CSV into a column mapping.

    Parameters
    ----------
    path : str | pathlib.Path
        Input CSV path with a header row.
    numeric_cols : Sequence[str], optional
        Columns parsed as ``float``.
    integer_cols : Sequence[str], optional
        Columns parsed as ``int``.

    Returns
    -------
    dict[str, list[Any]]
        Column name to values in file order. Unlisted columns stay strings;
        empty cells are ``None`` in every column.

    Raises
    ------
    DatasetError
        If the header is missing, a listed column does not exist, or a cell
        cannot be parsed.
    """

    input_path = Path(path)
    with input_path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise DatasetError("CSV file must include a header row")
        fieldnames = list(reader.fieldnames)
        _require_columns(fieldnames, required=(*numeric_cols, *integer_cols))
        columns: dict[str, list[Any]] = {name: [] for name in fieldnames}
        for row_index, raw in enumerate(reader):
            for name in fieldnames:
                columns[name].append(
                    _parse_cell(
                        raw.get(name),
                        column=name,
                        row_index=row_index,
                        as_float=name in numeric_cols,
                        as_int=name in integer_cols,
                    )
                )
    return columns


def write_dataset_csv(data: Any, path: str | Path) -> Path:
    """Write a dataset (any input accepted by ``decompose_sessions``) to CSV.

    ``None`` values are written as empty cells.
    """

    columns = as_columns(data)
    names = list(columns)
    n_rows = len(columns[names[0]])

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=names)
        writer.writeheader()
        for row_index in range(n_rows):
            writer.writerow(
                {name: "" if columns[name][row_index] is None else columns[name][row_index] for name in names}
            )
    return output_path


def _parse_cell(raw: Any, *, column: str, row_index: int, as_float: bool, as_int: bool) -> Any:
    """Parse one cell with row-index context."""

    text = str(raw).strip() if raw is not None else ""
    if not text:
        return None
    try:
        if as_int:
            return int(text)
        if as_float:
            return float(text)
    except ValueError:
        kind = "an integer" if as_int else "a number"
        raise DatasetError(f"row {row_index}: column {column!r} must be {kind}; got {text!r}") from None
    return text


def _require_columns(fieldnames: Sequence[str], *, required: Sequence[str]) -> None:
    """Require all expected columns to exist in CSV header."""

    present = set(fieldnames)
    missing = [name for name in required if name not in present]
    if missing:
        raise DatasetError(f"CSV file missing required columns: {missing}")


def dataset_rows(columns: Mapping[str, Sequence[Any]]) -> list[dict[str, Any]]:
    """Convert a column mapping into row mappings."""

    names = list(columns)
    if not names:
        return []
    return [
        {name: columns[name][row_index] for name in names}
        for row_index in range(len(columns[names[0]]))
    ]


__all__ = ["dataset_rows", "read_dataset_csv", "write_dataset_csv"]
