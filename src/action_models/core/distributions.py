"""Distribution helpers over ``scipy.stats`` frozen distributions.

Step functions and population priors return distribution objects. Any object
with ``rvs(random_state=...)`` and ``logpdf`` (continuous) or ``logpmf``
(discrete) is accepted, which covers frozen ``scipy.stats`` distributions.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np


def is_distribution(value: Any) -> bool:
    """Return whether ``value`` follows the distribution protocol."""

    return hasattr(value, "rvs") and (hasattr(value, "logpdf") or hasattr(value, "logpmf"))


def is_discrete(distribution: Any) -> bool:
    """Return whether ``distribution`` has integer support."""

    flag = getattr(distribution, "discrete", None)
    if isinstance(flag, bool):
        return flag
    return hasattr(distribution, "logpmf") and not hasattr(distribution, "logpdf")


def as_python_value(value: Any) -> Any:
    """Convert zero-dimensional numpy values to Python scalars."""

    array = np.asarray(value)
    if array.ndim == 0:
        return array.item()
    return array


def draw(distribution: Any, rng: np.random.Generator) -> Any:
    """Draw one value from ``distribution`` with an explicit generator."""

    return as_python_value(distribution.rvs(random_state=rng))


def log_probability(distribution: Any, value: Any) -> float:
    """Return the total log density/mass of ``value`` under ``distribution``.

    Parameters
    ----------
    distribution : Any
        Distribution object.
    value : Any
        Scalar or array value. Array values are scored element-wise and
        summed for vectorized univariate distributions.

    Returns
    -------
    float
        Log probability, ``-inf`` outside the support.
    """

    if is_discrete(distribution):
        log_values = distribution.logpmf(value)
    else:
        log_values = distribution.logpdf(value)
    total = float(np.sum(log_values))
    if np.isnan(total):
        return float("-inf")
    return total


def support_bounds(distribution: Any) -> tuple[np.ndarray, np.ndarray] | None:
    """Return element-wise lower/upper support bounds, if available.

    Multivariate ``scipy.stats`` distributions have no ``support`` method and
    return ``None``; callers treat them as unconstrained.
    """

    supports = getattr(distribution, "supports", None)
    if callable(supports):
        lower, upper = supports()
        return np.asarray(lower, dtype=float), np.asarray(upper, dtype=float)
    support = getattr(distribution, "support", None)
    if not callable(support):
        return None
    lower, upper = support()
    return np.asarray(lower, dtype=float), np.asarray(upper, dtype=float)


class ProductDistribution:
    """Independent product of univariate distributions.

    Draws are one-dimensional arrays with one element per component and the
    log probability is the sum of component log probabilities.

    Parameters
    ----------
    components : Sequence[Any]
        Univariate distributions. They must agree on discreteness.
    """

    def __init__(self, components: Sequence[Any]) -> None:
        items = tuple(components)
        if not items:
            raise ValueError("components must not be empty")
        for item in items:
            if not is_distribution(item):
                raise TypeError(f"component {item!r} is not a distribution")
        kinds = {is_discrete(item) for item in items}
        if len(kinds) != 1:
            raise ValueError("components must be all discrete or all continuous")
        self.components = items
        self.discrete = kinds.pop()

    def __len__(self) -> int:
        return len(self.components)

    def __repr__(self) -> str:
        return f"ProductDistribution(n={len(self.components)}, discrete={self.discrete})"

    def rvs(self, random_state: np.random.Generator | None = None) -> np.ndarray:
        rng = random_state if random_state is not None else np.random.default_rng()
        dtype = int if self.discrete else float
        return np.asarray(
            [component.rvs(random_state=rng) for component in self.components],
            dtype=dtype,
        )

    def logpdf(self, value: Any) -> float:
        array = np.asarray(value)
        if array.shape != (len(self.components),):
            raise ValueError(
                f"expected value with shape ({len(self.components)},), got {array.shape}"
            )
        return float(
            sum(
                log_probability(component, element)
                for component, element in zip(self.components, array, strict=True)
            )
        )

    logpmf = logpdf

    def supports(self) -> tuple[np.ndarray, np.ndarray]:
        lowers: list[float] = []
        uppers: list[float] = []
        for component in self.components:
            bounds = support_bounds(component)
            if bounds is None:
                lowers.append(-np.inf)
                uppers.append(np.inf)
            else:
                lowers.append(float(bounds[0]))
                uppers.append(float(bounds[1]))
        return np.asarray(lowers, dtype=float), np.asarray(uppers, dtype=float)


def iid(distribution: Any, size: int) -> ProductDistribution:
    """Return ``size`` independent copies of one univariate distribution."""

    if size <= 0:
        raise ValueError("size must be > 0")
    return ProductDistribution([distribution] * int(size))


__all__ = [
    "ProductDistribution",
    "as_python_value",
    "draw",
    "iid",
    "is_discrete",
    "is_distribution",
    "log_probability",
    "support_bounds",
]
