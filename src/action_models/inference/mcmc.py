"""Inference-engine protocol and a random-walk Metropolis engine.

Engines turn a :class:`~action_models.inference.density.ProgramDensity` into
:class:`~action_models.inference.chains.Chains`. The bundled engine runs a
Gaussian random walk on continuous coordinates in unconstrained space and a
symmetric +-1 walk on one discrete coordinate per iteration. Prior mode uses
exact ancestral sampling.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol, runtime_checkable

import numpy as np

from .chains import ChainDiagnostics, Chains
from .density import ProgramDensity, generate

logger = logging.getLogger(__name__)

SAMPLING_MODES = ("prior", "posterior")


@runtime_checkable
class InferenceEngine(Protocol):
    """Protocol for prior/posterior samplers over composed programs."""

    def sample(
        self,
        density: ProgramDensity,
        *,
        mode: str,
        n_samples: int,
        n_chains: int,
        initial_values: Sequence[Mapping[str, Any]] | None = None,
        random_seed: int | None = None,
        initialization: str = "explicit",
    ) -> Chains:
        """Return ``n_samples`` draws for each of ``n_chains`` chains."""


class RandomWalkMetropolisEngine:
    """Random-walk Metropolis sampler.

    Parameters
    ----------
    n_warmup : int, optional
        Number of discarded warmup iterations per chain.
    thin : int, optional
        Thinning interval for retained draws.
    proposal_scale : float, optional
        Default Gaussian proposal standard deviation in unconstrained space.
    proposal_scales : Mapping[str, float] | None, optional
        Per-site proposal scales keyed by site name.
    parallel_chains : int, optional
        Number of chains run concurrently on worker threads.
    max_prior_attempts : int, optional
        Redraw budget for rejected draws in prior mode.

    Notes
    -----
    Proposals with non-finite log density are always rejected, which covers
    draws rejected by the model.
    """

    method = "random_walk_metropolis"

    def __init__(
        self,
        *,
        n_warmup: int = 500,
        thin: int = 1,
        proposal_scale: float = 0.1,
        proposal_scales: Mapping[str, float] | None = None,
        parallel_chains: int = 1,
        max_prior_attempts: int = 100,
    ) -> None:
        if n_warmup < 0:
            raise ValueError("n_warmup must be >= 0")
        if thin <= 0:
            raise ValueError("thin must be > 0")
        if proposal_scale <= 0.0:
            raise ValueError("proposal_scale must be > 0")
        if parallel_chains <= 0:
            raise ValueError("parallel_chains must be > 0")
        if max_prior_attempts <= 0:
            raise ValueError("max_prior_attempts must be > 0")
        self.n_warmup = int(n_warmup)
        self.thin = int(thin)
        self.proposal_scale = float(proposal_scale)
        self.proposal_scales = dict(proposal_scales) if proposal_scales is not None else {}
        self.parallel_chains = int(parallel_chains)
        self.max_prior_attempts = int(max_prior_attempts)

    def sample(
        self,
        density: ProgramDensity,
        *,
        mode: str,
        n_samples: int,
        n_chains: int,
        initial_values: Sequence[Mapping[str, Any]] | None = None,
        random_seed: int | None = None,
        initialization: str = "explicit",
    ) -> Chains:
        """Sample prior or posterior draws.

        Parameters
        ----------
        density : ProgramDensity
            Composed program with its latent-site layout.
        mode : str
            ``"prior"`` or ``"posterior"``.
        n_samples : int
            Retained draws per chain.
        n_chains : int
            Number of chains.
        initial_values : Sequence[Mapping[str, Any]] | None, optional
            Constrained starting values per chain (posterior mode). Chains
            without one start from a prior draw.
        random_seed : int | None, optional
            Seed for deterministic sampling.
        initialization : str, optional
            Label recorded in the diagnostics.

        Returns
        -------
        Chains
            Draws with shape ``(n_samples, n_variables, n_chains)``.

        Raises
        ------
        ValueError
            If settings are invalid or a starting point has non-finite log
            density.
        """

        if mode not in SAMPLING_MODES:
            raise ValueError(f"mode must be one of {SAMPLING_MODES}")
        if n_samples <= 0:
            raise ValueError("n_samples must be > 0")
        if n_chains <= 0:
            raise ValueError("n_chains must be > 0")
        if initial_values is not None and len(initial_values) != n_chains:
            raise ValueError("initial_values must have one entry per chain")

        seeds = np.random.SeedSequence(random_seed).spawn(n_chains)
        if mode == "prior":
            runs = [
                self._sample_prior_chain(density, n_samples=n_samples, rng=np.random.default_rng(seed))
                for seed in seeds
            ]
        else:
            scales = _resolve_proposal_scales(density, self.proposal_scales, self.proposal_scale)

            def run(chain: int) -> tuple[np.ndarray, np.ndarray, ChainDiagnostics]:
                rng = np.random.default_rng(seeds[chain])
                start = initial_values[chain] if initial_values is not None else None
                label = initialization if start is not None else "sample_prior"
                if start is None:
                    start = density.prior_draw(rng, max_attempts=self.max_prior_attempts)
                return self._run_chain(
                    density,
                    z0=density.layout.to_unconstrained(start),
                    scales=scales,
                    n_samples=n_samples,
                    rng=rng,
                    chain=chain,
                    initialization=label,
                )

            if self.parallel_chains > 1 and n_chains > 1:
                with ThreadPoolExecutor(max_workers=min(self.parallel_chains, n_chains)) as executor:
                    runs = list(executor.map(run, range(n_chains)))
            else:
                runs = [run(chain) for chain in range(n_chains)]

        values = np.stack([item[0] for item in runs], axis=2)
        log_density = np.stack([item[1] for item in runs], axis=1)
        return Chains(
            layout=density.layout,
            values=values,
            log_density=log_density,
            mode=mode,
            diagnostics=tuple(item[2] for item in runs),
            random_seed=random_seed,
        )

    def _sample_prior_chain(
        self,
        density: ProgramDensity,
        *,
        n_samples: int,
        rng: np.random.Generator,
    ) -> tuple[np.ndarray, np.ndarray, ChainDiagnostics]:
        """Draw independent ancestral samples of the latent sites."""

        draws = np.empty((n_samples, density.layout.size), dtype=float)
        log_prior = np.empty(n_samples, dtype=float)
        for index in range(n_samples):
            ctx = generate(density.program, rng=rng, max_attempts=self.max_prior_attempts)
            draws[index] = density.layout.flatten(ctx.latent_values())
            log_prior[index] = ctx.log_prior
        diagnostics = ChainDiagnostics(
            method="ancestral_prior",
            n_iterations=n_samples,
            n_warmup=0,
            n_kept_draws=n_samples,
            thin=1,
            n_accepted=n_samples,
            acceptance_rate=1.0,
            initialization="sample_prior",
        )
        return draws, log_prior, diagnostics

    def _run_chain(
        self,
        density: ProgramDensity,
        *,
        z0: np.ndarray,
        scales: np.ndarray,
        n_samples: int,
        rng: np.random.Generator,
        chain: int,
        initialization: str,
    ) -> tuple[np.ndarray, np.ndarray, ChainDiagnostics]:
        """Run one Metropolis chain from ``z0``."""

        layout = density.layout
        continuous = ~layout.discrete_mask
        discrete_indices = np.flatnonzero(layout.discrete_mask)

        current = np.asarray(z0, dtype=float).copy()
        current_log_density = density.log_density(current)
        if not np.isfinite(current_log_density):
            raise ValueError(f"chain {chain} starts at a point with non-finite log density")

        n_iterations = int(self.n_warmup + n_samples * self.thin)
        accepted_total = 0
        draws = np.empty((n_samples, layout.size), dtype=float)
        kept_log_density = np.empty(n_samples, dtype=float)
        kept = 0
        logger.debug("chain %d: %d iterations over %d variables", chain, n_iterations, layout.size)

        for iteration in range(n_iterations):
            accepted = False
            if continuous.any():
                proposal = current.copy()
                proposal[continuous] += rng.normal(loc=0.0, scale=scales[continuous])
                proposal_log_density = density.log_density(proposal)
                if _metropolis_accept(
                    current_log_posterior=current_log_density,
                    proposal_log_posterior=proposal_log_density,
                    rng=rng,
                ):
                    current, current_log_density = proposal, proposal_log_density
                    accepted = True
            if discrete_indices.size:
                proposal = current.copy()
                index = int(rng.choice(discrete_indices))
                proposal[index] += 1.0 if rng.uniform() < 0.5 else -1.0
                proposal_log_density = density.log_density(proposal)
                if _metropolis_accept(
                    current_log_posterior=current_log_density,
                    proposal_log_posterior=proposal_log_density,
                    rng=rng,
                ):
                    current, current_log_density = proposal, proposal_log_density
                    accepted = True
            if accepted:
                accepted_total += 1

            if iteration >= self.n_warmup and ((iteration - self.n_warmup) % self.thin == 0):
                constrained, _ = layout.from_unconstrained(current)
                draws[kept] = constrained
                kept_log_density[kept] = current_log_density
                kept += 1

        acceptance_rate = float(accepted_total / n_iterations) if n_iterations else 0.0
        logger.info("chain %d finished: acceptance rate %.3f", chain, acceptance_rate)
        diagnostics = ChainDiagnostics(
            method=self.method,
            n_iterations=n_iterations,
            n_warmup=self.n_warmup,
            n_kept_draws=kept,
            thin=self.thin,
            n_accepted=accepted_total,
            acceptance_rate=acceptance_rate,
            initialization=initialization,
        )
        return draws, kept_log_density, diagnostics


def _resolve_proposal_scales(
    density: ProgramDensity,
    proposal_scales: Mapping[str, float],
    default_scale: float,
) -> np.ndarray:
    """Resolve per-coordinate proposal scales from per-site scales."""

    layout = density.layout
    unknown = sorted(set(proposal_scales) - set(layout.site_names))
    if unknown:
        raise ValueError(f"proposal_scales contains unknown sites: {unknown}")
    scales = np.full(layout.size, float(default_scale), dtype=float)
    for site in layout.sites:
        if site.name in proposal_scales:
            scales[site.offset : site.stop] = float(proposal_scales[site.name])
    if np.any(scales <= 0.0):
        raise ValueError("all proposal scales must be > 0")
    return scales


def _metropolis_accept(
    *,
    current_log_posterior: float,
    proposal_log_posterior: float,
    rng: np.random.Generator,
) -> bool:
    """Decide Metropolis acceptance for one proposal."""

    if not np.isfinite(proposal_log_posterior):
        return False
    if proposal_log_posterior >= current_log_posterior:
        return True

    log_alpha = float(proposal_log_posterior - current_log_posterior)
    return bool(np.log(rng.uniform(0.0, 1.0)) < log_alpha)


__all__ = ["InferenceEngine", "RandomWalkMetropolisEngine", "SAMPLING_MODES"]
