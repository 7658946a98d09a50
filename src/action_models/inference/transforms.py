"""Support-aware transforms between constrained and unconstrained space.

Samplers and optimizers move in unconstrained space ``z``; latent site values
``theta`` live on their distribution's support. Transforms act element-wise on
arrays and report the log absolute Jacobian of the forward map.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
from scipy.special import expit, logit


@dataclass(frozen=True, slots=True)
class ParameterTransform:
    """Bidirectional element-wise transform.

    Parameters
    ----------
    forward : Callable[[numpy.ndarray], numpy.ndarray]
        Maps unconstrained values ``z`` to constrained values ``theta``.
    inverse : Callable[[numpy.ndarray], numpy.ndarray]
        Maps constrained values ``theta`` back to ``z``.
    log_abs_det_jacobian : Callable[[numpy.ndarray], float]
        Log absolute Jacobian determinant of ``forward`` at ``z``.
    """

    forward: Callable[[np.ndarray], np.ndarray]
    inverse: Callable[[np.ndarray], np.ndarray]
    log_abs_det_jacobian: Callable[[np.ndarray], float]


def identity_transform() -> ParameterTransform:
    """Return identity transform for unconstrained values."""

    return ParameterTransform(
        forward=lambda value: np.asarray(value, dtype=float),
        inverse=lambda value: np.asarray(value, dtype=float),
        log_abs_det_jacobian=lambda value: 0.0,
    )


def support_transform(lower: np.ndarray | float, upper: np.ndarray | float, *, eps: float = 1e-12) -> ParameterTransform:
    """Return the transform mapping the real line onto ``[lower, upper]``.

    Elements with infinite bounds on both sides are left unchanged, elements
    bounded on one side use a shifted exponential and elements bounded on
    both sides use a scaled logistic.

    Parameters
    ----------
    lower, upper : numpy.ndarray | float
        Element-wise support bounds (``-inf``/``inf`` for unbounded).
    eps : float, optional
        Clamp keeping inverse transforms finite at the bounds.

    Returns
    -------
    ParameterTransform
        Element-wise transform.

    Raises
    ------
    ValueError
        If a lower bound is not below its upper bound.
    """

    if eps <= 0.0:
        raise ValueError("eps must be > 0")
    low = np.asarray(lower, dtype=float)
    high = np.asarray(upper, dtype=float)
    low, high = np.broadcast_arrays(low, high)
    if np.any(low >= high):
        raise ValueError("lower bounds must be below upper bounds")

    lower_only = np.isfinite(low) & ~np.isfinite(high)
    upper_only = ~np.isfinite(low) & np.isfinite(high)
    interval = np.isfinite(low) & np.isfinite(high)
    if not (lower_only.any() or upper_only.any() or interval.any()):
        return identity_transform()
    width = np.where(interval, high - low, 1.0)

    def forward(z_value: np.ndarray) -> np.ndarray:
        z = np.asarray(z_value, dtype=float)
        with np.errstate(over="ignore", invalid="ignore"):
            theta = z.copy()
            theta = np.where(lower_only, low + np.exp(z), theta)
            theta = np.where(upper_only, high - np.exp(z), theta)
            theta = np.where(interval, low + width * expit(z), theta)
        return theta

    def inverse(theta_value: np.ndarray) -> np.ndarray:
        theta = np.asarray(theta_value, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            z = theta.copy()
            z = np.where(lower_only, np.log(np.maximum(theta - low, eps)), z)
            z = np.where(upper_only, np.log(np.maximum(high - theta, eps)), z)
            unit = np.clip((theta - low) / width, eps, 1.0 - eps)
            z = np.where(interval, logit(unit), z)
        return z

    def log_abs_det_jacobian(z_value: np.ndarray) -> float:
        z = np.asarray(z_value, dtype=float)
        terms = np.zeros_like(z)
        terms = np.where(lower_only | upper_only, z, terms)
        # log(width) + log(sigmoid(z)) + log(1 - sigmoid(z))
        terms = np.where(
            interval,
            np.log(width) - np.logaddexp(0.0, -z) - np.logaddexp(0.0, z),
            terms,
        )
        return float(np.sum(terms))

    return ParameterTransform(forward=forward, inverse=inverse, log_abs_det_jacobian=log_abs_det_jacobian)


def unit_interval_logit_transform(*, eps: float = 1e-12) -> ParameterTransform:
    """Return logit/sigmoid transform for values constrained to ``(0, 1)``."""

    return support_transform(0.0, 1.0, eps=eps)


def positive_log_transform(*, eps: float = 1e-12) -> ParameterTransform:
    """Return exponential/log transform for positive values."""

    return support_transform(0.0, np.inf, eps=eps)


__all__ = [
    "ParameterTransform",
    "identity_transform",
    "positive_log_transform",
    "support_transform",
    "unit_interval_logit_transform",
]
