"""Prior and posterior sampling for fitted models.

Results are stored on the :class:`~action_models.inference.fit.ModelFit` and
returned from its cache on later calls unless ``resample=True``.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
from scipy.optimize import approx_fprime, minimize

from action_models.core.errors import ActionModelsWarning

from .chains import Chains
from .density import ProgramDensity
from .fit import ModelFit
from .mcmc import InferenceEngine, RandomWalkMetropolisEngine

logger = logging.getLogger(__name__)

INIT_STRATEGIES = ("sample_prior", "map", "mle")


def sample_posterior(
    model_fit: ModelFit,
    *,
    engine: InferenceEngine | None = None,
    n_samples: int = 1000,
    n_chains: int = 2,
    init_params: str | Mapping[str, Any] | Sequence[Mapping[str, Any]] = "sample_prior",
    resample: bool = False,
    random_seed: int | None = None,
    max_init_attempts: int = 10,
    verbose: bool = True,
) -> Chains:
    """Sample posterior draws and store them on ``model_fit``.

    Parameters
    ----------
    model_fit : ModelFit
        Fitted-model container.
    engine : InferenceEngine | None, optional
        Sampler. Defaults to :class:`RandomWalkMetropolisEngine`.
    n_samples : int, optional
        Retained draws per chain.
    n_chains : int, optional
        Number of chains.
    init_params : str | Mapping[str, Any] | Sequence[Mapping[str, Any]], optional
        ``"sample_prior"``, ``"map"``, ``"mle"``, explicit latent-site values
        for every chain, or one mapping per chain.
    resample : bool, optional
        Whether to discard an existing posterior and its cached extractions.
    random_seed : int | None, optional
        Seed for initialization and sampling.
    max_init_attempts : int, optional
        Fallback budget when initial points are degenerate.
    verbose : bool, optional
        Whether to warn about initialization fallbacks.

    Returns
    -------
    Chains
        Posterior draws.
    """

    if model_fit.posterior is not None and not resample:
        return model_fit.posterior.chains
    if max_init_attempts <= 0:
        raise ValueError("max_init_attempts must be > 0")

    sampler = engine if engine is not None else RandomWalkMetropolisEngine()
    rng = np.random.default_rng(random_seed)
    density = ProgramDensity.discover(model_fit.program, rng=rng)
    label, initial_values = initial_points(
        density,
        init_params=init_params,
        n_chains=n_chains,
        rng=rng,
        max_attempts=max_init_attempts,
        verbose=verbose,
    )
    logger.info(
        "sampling posterior: %d chains x %d draws over %d variables",
        n_chains,
        n_samples,
        density.layout.size,
    )
    chains = sampler.sample(
        density,
        mode="posterior",
        n_samples=n_samples,
        n_chains=n_chains,
        initial_values=initial_values,
        random_seed=random_seed,
        initialization=label,
    )
    model_fit.store("posterior", chains)
    return chains


def sample_prior(
    model_fit: ModelFit,
    *,
    engine: InferenceEngine | None = None,
    n_samples: int = 1000,
    n_chains: int = 1,
    resample: bool = False,
    random_seed: int | None = None,
) -> Chains:
    """Sample prior draws of every latent site and store them on ``model_fit``.

    Draws rejected by the model are redrawn. Observed actions are not
    scored, inferred actions are drawn from the model.
    """

    if model_fit.prior is not None and not resample:
        return model_fit.prior.chains

    sampler = engine if engine is not None else RandomWalkMetropolisEngine()
    rng = np.random.default_rng(random_seed)
    density = ProgramDensity.discover(model_fit.program, rng=rng)
    chains = sampler.sample(
        density,
        mode="prior",
        n_samples=n_samples,
        n_chains=n_chains,
        random_seed=random_seed,
        initialization="sample_prior",
    )
    model_fit.store("prior", chains)
    return chains


def initial_points(
    density: ProgramDensity,
    *,
    init_params: str | Mapping[str, Any] | Sequence[Mapping[str, Any]],
    n_chains: int,
    rng: np.random.Generator,
    max_attempts: int = 10,
    verbose: bool = True,
) -> tuple[str, list[dict[str, Any]]]:
    """Resolve one constrained starting point per chain.

    Degenerate starting points (non-finite log density or non-finite
    finite-difference gradient) fall back to fresh prior draws with a
    warning.

    Returns
    -------
    tuple[str, list[dict[str, Any]]]
        Strategy label and starting values per chain.

    Raises
    ------
    ValueError
        If the strategy is unknown, explicit values are incomplete, or no
        usable starting point was found within ``max_attempts``.
    """

    if n_chains <= 0:
        raise ValueError("n_chains must be > 0")
    if isinstance(init_params, str):
        if init_params not in INIT_STRATEGIES:
            raise ValueError(f"init_params must be one of {INIT_STRATEGIES} or explicit values")
        label = init_params
        points = [_strategy_point(density, init_params, rng) for _ in range(n_chains)]
    elif isinstance(init_params, Mapping):
        label = "explicit"
        points = [dict(init_params) for _ in range(n_chains)]
    else:
        label = "explicit"
        points = [dict(item) for item in init_params]
        if len(points) != n_chains:
            raise ValueError("init_params must have one mapping per chain")

    for point in points:
        density.layout.flatten(point)

    resolved: list[dict[str, Any]] = []
    for chain, point in enumerate(points):
        attempts = 0
        while _is_degenerate(density, point):
            attempts += 1
            if attempts > max_attempts:
                raise ValueError(
                    f"no initial point with finite log density and gradient found for chain {chain} "
                    f"after {max_attempts} attempts"
                )
            if verbose:
                warnings.warn(
                    f"initial point for chain {chain} has non-finite log density or gradient; "
                    f"falling back to a prior draw",
                    ActionModelsWarning,
                    stacklevel=3,
                )
            point = density.prior_draw(rng)
        resolved.append(point)
    return label, resolved


def _strategy_point(density: ProgramDensity, strategy: str, rng: np.random.Generator) -> dict[str, Any]:
    """Return a starting point for one named strategy."""

    start = density.prior_draw(rng)
    if strategy == "sample_prior" or density.layout.size == 0:
        return start
    objective = density.log_density if strategy == "map" else density.log_likelihood
    return _optimize(density, objective, start)


def _optimize(density: ProgramDensity, objective: Any, start: Mapping[str, Any]) -> dict[str, Any]:
    """Maximize ``objective`` over continuous coordinates from ``start``."""

    layout = density.layout
    z0 = layout.to_unconstrained(start)
    continuous = ~layout.discrete_mask
    if not continuous.any():
        return dict(start)

    def negative(free: np.ndarray) -> float:
        z = z0.copy()
        z[continuous] = free
        value = objective(z)
        if not np.isfinite(value):
            return 1e15
        return float(-value)

    result = minimize(negative, z0[continuous], method="L-BFGS-B")
    z = z0.copy()
    z[continuous] = np.asarray(result.x, dtype=float)
    constrained, _ = layout.from_unconstrained(z)
    return layout.unflatten(constrained)


def _is_degenerate(density: ProgramDensity, point: Mapping[str, Any], *, epsilon: float = 1e-6) -> bool:
    """Return whether ``point`` has non-finite log density or gradient."""

    layout = density.layout
    z0 = layout.to_unconstrained(point)
    if not np.isfinite(density.log_density(z0)):
        return True
    continuous = ~layout.discrete_mask
    if not continuous.any():
        return False

    def partial(free: np.ndarray) -> float:
        z = z0.copy()
        z[continuous] = free
        return density.log_density(z)

    with np.errstate(invalid="ignore", over="ignore"):
        gradient = approx_fprime(z0[continuous], partial, epsilon)
    return not bool(np.all(np.isfinite(gradient)))


__all__ = ["INIT_STRATEGIES", "initial_points", "sample_posterior", "sample_prior"]
