"""Session and site naming shared by model assembly and extraction.

Identifiers built here are stable across runs: a composed model, its sampler
output and every extraction step derive the same names from the same session
ids and timestep indices.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

ID_SEPARATOR = "."
ID_COLUMN_SEPARATOR = ":"
_DEFAULT_SESSION_TAG = "session"
TIMESTEP_PREFIX = "timestep_"


def session_id(columns: Sequence[str], values: Sequence[Any]) -> str:
    """Build the canonical session id from grouping columns and values.

    Parameters
    ----------
    columns : Sequence[str]
        Grouping column names.
    values : Sequence[Any]
        Grouping values aligned with ``columns``.

    Returns
    -------
    str
        ``"<col>:<value>"`` pairs joined by ``"."``. Empty when no grouping
        columns are used.
    """

    return ID_SEPARATOR.join(
        f"{column}{ID_COLUMN_SEPARATOR}{value}"
        for column, value in zip(columns, values, strict=True)
    )


def session_tag(session_id_value: str) -> str:
    """Return the site-name prefix used for one session."""

    return session_id_value or _DEFAULT_SESSION_TAG


def timestep_tag(timestep_index: int) -> str:
    """Return the tag for a zero-based timestep index (tags are 1-based)."""

    if timestep_index < 0:
        raise ValueError("timestep_index must be >= 0")
    return f"{TIMESTEP_PREFIX}{int(timestep_index) + 1}"


def action_site_name(session_id_value: str, timestep_index: int, action_name: str) -> str:
    """Return the site name of one action component at one timestep."""

    return ID_SEPARATOR.join(
        (session_tag(session_id_value), timestep_tag(timestep_index), action_name)
    )


__all__ = [
    "ID_SEPARATOR",
    "action_site_name",
    "session_id",
    "timestep_tag",
]
