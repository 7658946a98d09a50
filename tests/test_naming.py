"""Tests for session and site naming."""

from __future__ import annotations

import pytest

from action_models.core import naming
from action_models.core.naming import action_site_name, session_id, timestep_tag


def test_session_id_joins_column_value_pairs() -> None:
    """Ids are ``col:value`` pairs joined by dots, empty without grouping."""

    assert session_id(("subject", "block"), (1, "a")) == "subject:1.block:a"
    assert session_id(("dose",), (1.5,)) == "dose:1.5"
    assert session_id((), ()) == ""


def test_action_site_names_use_one_based_timesteps() -> None:
    """Unnamed sessions get a default tag in site names."""

    assert timestep_tag(0) == "timestep_1"
    assert action_site_name("id:A", 1, "report") == "id:A.timestep_2.report"
    assert action_site_name("", 0, "report") == "session.timestep_1.report"
    with pytest.raises(ValueError, match="timestep_index must be >= 0"):
        timestep_tag(-1)


def test_naming_exports_only_builders() -> None:
    """Session ids are built here and never parsed back."""

    assert set(naming.__all__) == {"ID_SEPARATOR", "action_site_name", "session_id", "timestep_tag"}
