"""Tests for support-aware parameter transforms."""

from __future__ import annotations

import numpy as np
import pytest

from action_models.inference import (
    identity_transform,
    positive_log_transform,
    support_transform,
    unit_interval_logit_transform,
)


def test_identity_transform_leaves_values_unchanged() -> None:
    """Unbounded supports use the identity."""

    transform = support_transform(-np.inf, np.inf)

    assert transform.forward(np.array([1.5]))[0] == 1.5
    assert transform.log_abs_det_jacobian(np.array([3.0])) == 0.0
    assert identity_transform().inverse(2.0) == 2.0


def test_unit_interval_transform_round_trip() -> None:
    """Logit/sigmoid transform should be numerically stable."""

    transform = unit_interval_logit_transform()
    theta = np.array([0.01, 0.5, 0.99])

    np.testing.assert_allclose(transform.forward(transform.inverse(theta)), theta)
    assert transform.inverse(np.array([0.5]))[0] == pytest.approx(0.0)
    assert transform.log_abs_det_jacobian(np.array([0.0])) == pytest.approx(np.log(0.25))


def test_positive_transform_uses_log_scale() -> None:
    """Positive supports map through ``exp``."""

    transform = positive_log_transform()

    assert transform.forward(np.array([0.0]))[0] == pytest.approx(1.0)
    assert transform.inverse(np.array([np.e]))[0] == pytest.approx(1.0)
    assert transform.log_abs_det_jacobian(np.array([2.0])) == pytest.approx(2.0)


def test_mixed_supports_act_element_wise() -> None:
    """Each element follows its own bounds."""

    transform = support_transform(
        np.array([-np.inf, 1.0, -np.inf, 2.0]),
        np.array([np.inf, np.inf, 0.0, 6.0]),
    )
    z = np.array([0.3, 0.0, 0.0, 0.0])

    theta = transform.forward(z)

    np.testing.assert_allclose(theta, [0.3, 2.0, -1.0, 4.0])
    np.testing.assert_allclose(transform.inverse(theta), z, atol=1e-12)
    assert transform.log_abs_det_jacobian(z) == pytest.approx(np.log(4.0) - 2.0 * np.log(2.0))


def test_bounds_at_the_edge_stay_finite() -> None:
    """Inverse transforms clamp values on the boundary."""

    transform = unit_interval_logit_transform()

    assert np.all(np.isfinite(transform.inverse(np.array([0.0, 1.0]))))
    assert np.isfinite(positive_log_transform().inverse(np.array([0.0]))[0])


def test_invalid_bounds_are_rejected() -> None:
    """Lower bounds must be below upper bounds and eps positive."""

    with pytest.raises(ValueError, match="lower bounds must be below upper bounds"):
        support_transform(1.0, 1.0)
    with pytest.raises(ValueError, match="eps must be > 0"):
        support_transform(0.0, 1.0, eps=0.0)
