"""Tests for the random-walk Metropolis engine."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import stats

from action_models.inference import InferenceEngine, ProgramDensity, RandomWalkMetropolisEngine

FLIPS = [1, 1, 1, 0, 1, 1, 0, 1, 1, 1]


def coin_program(ctx):
    """Beta(2, 2) prior on a coin with ten observed flips."""

    p = ctx.sample("p", stats.beta(2.0, 2.0))
    for index, flip in enumerate(FLIPS):
        ctx.observe(f"flip_{index}", stats.bernoulli(p), flip)


def count_program(ctx):
    """Poisson count observed through Gaussian noise."""

    count = ctx.sample("count", stats.poisson(3.0))
    for index in range(5):
        ctx.observe(f"y_{index}", stats.norm(count, 0.3), 5.0)


def test_posterior_recovers_beta_bernoulli_mean() -> None:
    """Posterior draws should center on the conjugate posterior mean."""

    density = ProgramDensity.discover(coin_program, rng=np.random.default_rng(0))
    engine = RandomWalkMetropolisEngine(n_warmup=300, proposal_scale=0.8)

    chains = engine.sample(density, mode="posterior", n_samples=2000, n_chains=2, random_seed=7)

    assert isinstance(engine, InferenceEngine)
    assert chains.values.shape == (2000, 1, 2)
    assert chains.log_density.shape == (2000, 2)
    assert float(np.mean(chains.get("p"))) == pytest.approx(10.0 / 14.0, abs=0.05)
    assert all(item.method == "random_walk_metropolis" for item in chains.diagnostics)
    assert all(0.0 < item.acceptance_rate <= 1.0 for item in chains.diagnostics)


def test_discrete_sites_use_integer_walk() -> None:
    """Discrete latent values stay integer and find the likely count."""

    density = ProgramDensity.discover(count_program, rng=np.random.default_rng(1))
    engine = RandomWalkMetropolisEngine(n_warmup=200)

    chains = engine.sample(
        density,
        mode="posterior",
        n_samples=300,
        n_chains=1,
        initial_values=[{"count": 3}],
        random_seed=2,
    )

    draws = chains.get("count")
    np.testing.assert_array_equal(draws, np.rint(draws))
    assert np.median(draws) == 5.0
    assert chains.diagnostics[0].initialization == "explicit"


def test_prior_mode_draws_ancestrally() -> None:
    """Prior mode ignores the data and draws from the prior."""

    density = ProgramDensity.discover(coin_program, rng=np.random.default_rng(0))
    engine = RandomWalkMetropolisEngine()

    chains = engine.sample(density, mode="prior", n_samples=4000, n_chains=1, random_seed=3)

    assert chains.mode == "prior"
    assert chains.diagnostics[0].method == "ancestral_prior"
    assert float(np.mean(chains.get("p"))) == pytest.approx(0.5, abs=0.03)


def test_parallel_chains_match_sequential_chains() -> None:
    """Seeds are assigned per chain, so threading does not change draws."""

    density = ProgramDensity.discover(coin_program, rng=np.random.default_rng(0))
    starts = [{"p": 0.3}, {"p": 0.7}]

    sequential = RandomWalkMetropolisEngine(n_warmup=10).sample(
        density, mode="posterior", n_samples=50, n_chains=2, initial_values=starts, random_seed=5
    )
    parallel = RandomWalkMetropolisEngine(n_warmup=10, parallel_chains=2).sample(
        density, mode="posterior", n_samples=50, n_chains=2, initial_values=starts, random_seed=5
    )

    np.testing.assert_array_equal(sequential.values, parallel.values)


def test_thinning_keeps_requested_number_of_draws() -> None:
    """Iterations are warmup plus samples times thin."""

    density = ProgramDensity.discover(coin_program, rng=np.random.default_rng(0))
    engine = RandomWalkMetropolisEngine(n_warmup=5, thin=3)

    chains = engine.sample(density, mode="posterior", n_samples=10, n_chains=1, random_seed=0)

    assert chains.n_draws == 10
    assert chains.diagnostics[0].n_iterations == 35


def test_engine_validates_arguments() -> None:
    """Engine settings and sampling arguments are checked."""

    with pytest.raises(ValueError, match="n_warmup must be >= 0"):
        RandomWalkMetropolisEngine(n_warmup=-1)
    with pytest.raises(ValueError, match="thin must be > 0"):
        RandomWalkMetropolisEngine(thin=0)
    with pytest.raises(ValueError, match="proposal_scale must be > 0"):
        RandomWalkMetropolisEngine(proposal_scale=0.0)

    density = ProgramDensity.discover(coin_program, rng=np.random.default_rng(0))
    engine = RandomWalkMetropolisEngine()
    with pytest.raises(ValueError, match="mode must be one of"):
        engine.sample(density, mode="predictive", n_samples=1, n_chains=1)
    with pytest.raises(ValueError, match="initial_values must have one entry per chain"):
        engine.sample(density, mode="posterior", n_samples=1, n_chains=2, initial_values=[{"p": 0.5}])
    with pytest.raises(ValueError, match="unknown sites: \\['q'\\]"):
        RandomWalkMetropolisEngine(proposal_scales={"q": 1.0}).sample(
            density, mode="posterior", n_samples=1, n_chains=1
        )
