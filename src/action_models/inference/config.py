"""Config-driven posterior and prior sampling.

Config root layout (JSON or YAML)::

    sampler:
      n_samples: 1000
      n_chains: 2
      n_warmup: 500
      thin: 1
      init_params: sample_prior
      proposal_scale: 0.1
      proposal_scales: {learning_rate: 0.05}
      parallel_chains: 1
      random_seed: 7
      max_init_attempts: 10

Omitted keys keep the defaults of :func:`sample_posterior` and
:func:`sample_prior`; in particular an omitted ``n_chains`` gives two
posterior chains but one prior chain.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .chains import Chains
from .fit import ModelFit
from .mcmc import RandomWalkMetropolisEngine
from .sampling import INIT_STRATEGIES, sample_posterior, sample_prior

CONFIG_SUFFIXES: tuple[str, ...] = (".json", ".yaml", ".yml")

_SAMPLER_KEYS = (
    "n_samples",
    "n_chains",
    "n_warmup",
    "thin",
    "init_params",
    "proposal_scale",
    "proposal_scales",
    "parallel_chains",
    "random_seed",
    "max_init_attempts",
)


@dataclass(frozen=True, slots=True)
class SamplerSpec:
    """Parsed sampler settings.

    ``n_chains`` is ``None`` when the config leaves the chain count to the
    sampling entry point.
    """

    n_samples: int = 1000
    n_chains: int | None = None
    n_warmup: int = 500
    thin: int = 1
    init_params: str | dict[str, Any] = "sample_prior"
    proposal_scale: float = 0.1
    proposal_scales: dict[str, float] = field(default_factory=dict)
    parallel_chains: int = 1
    random_seed: int | None = None
    max_init_attempts: int = 10

    def build_engine(self) -> RandomWalkMetropolisEngine:
        """Return the engine configured by this spec."""

        return RandomWalkMetropolisEngine(
            n_warmup=self.n_warmup,
            thin=self.thin,
            proposal_scale=self.proposal_scale,
            proposal_scales=self.proposal_scales,
            parallel_chains=self.parallel_chains,
        )

    def chain_options(self) -> dict[str, int]:
        """Return ``n_chains`` as a keyword only when the config sets it."""

        return {} if self.n_chains is None else {"n_chains": self.n_chains}


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read a sampler config file whose root is an object.

    Parameters
    ----------
    path : str | pathlib.Path
        ``.json``, ``.yaml`` or ``.yml`` file.

    Raises
    ------
    ValueError
        If the suffix is unsupported or the root is not an object.
    """

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in CONFIG_SUFFIXES:
        raise ValueError(
            f"unsupported config file extension {suffix!r}; expected one of {', '.join(CONFIG_SUFFIXES)}"
        )
    with config_path.open("r", encoding="utf-8") as handle:
        raw = json.load(handle) if suffix == ".json" else yaml.safe_load(handle)
    if not isinstance(raw, dict):
        raise ValueError(f"sampler config {config_path.name!r} must hold an object at its root")
    return raw


def _section(raw: Any, field_name: str, allowed_keys: tuple[str, ...] | None = None) -> dict[str, Any]:
    """Return one config object, rejecting keys outside ``allowed_keys``."""

    if not isinstance(raw, Mapping):
        raise ValueError(f"{field_name} must be an object")
    if allowed_keys is not None:
        unknown = sorted(str(key) for key in raw if str(key) not in allowed_keys)
        if unknown:
            raise ValueError(f"{field_name} has unknown keys: {unknown}")
    return dict(raw)


def _count(sampler: Mapping[str, Any], key: str, default: int, *, minimum: int) -> int:
    raw = sampler.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"config.sampler.{key} must be an integer")
    if raw < minimum:
        raise ValueError(f"config.sampler.{key} must be >= {minimum}")
    return int(raw)


def _scale(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    if raw <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return float(raw)


def sampler_spec_from_config(config: Mapping[str, Any]) -> SamplerSpec:
    """Parse a sampler config mapping.

    Parameters
    ----------
    config : Mapping[str, Any]
        Config root with an optional ``sampler`` object.

    Returns
    -------
    SamplerSpec
        Parsed settings; omitted keys keep their defaults.

    Raises
    ------
    ValueError
        If keys are unknown or values are invalid. Messages name the dotted
        field path.
    """

    root = _section(config, "config", ("sampler",))
    sampler = _section(root.get("sampler", {}), "config.sampler", _SAMPLER_KEYS)
    defaults = SamplerSpec()

    init_params = sampler.get("init_params", defaults.init_params)
    if isinstance(init_params, str):
        if init_params not in INIT_STRATEGIES:
            raise ValueError(f"config.sampler.init_params must be one of {INIT_STRATEGIES} or an object")
    else:
        init_params = _section(init_params, "config.sampler.init_params")

    proposal_scales = {
        str(name): _scale(value, f"config.sampler.proposal_scales.{name}")
        for name, value in _section(sampler.get("proposal_scales", {}), "config.sampler.proposal_scales").items()
    }

    return SamplerSpec(
        n_samples=_count(sampler, "n_samples", defaults.n_samples, minimum=1),
        n_chains=_count(sampler, "n_chains", 1, minimum=1) if "n_chains" in sampler else None,
        n_warmup=_count(sampler, "n_warmup", defaults.n_warmup, minimum=0),
        thin=_count(sampler, "thin", defaults.thin, minimum=1),
        init_params=init_params,
        proposal_scale=_scale(sampler.get("proposal_scale", defaults.proposal_scale), "config.sampler.proposal_scale"),
        proposal_scales=proposal_scales,
        parallel_chains=_count(sampler, "parallel_chains", defaults.parallel_chains, minimum=1),
        random_seed=(
            _count(sampler, "random_seed", 0, minimum=0) if sampler.get("random_seed") is not None else None
        ),
        max_init_attempts=_count(sampler, "max_init_attempts", defaults.max_init_attempts, minimum=1),
    )


def load_sampler_spec(config: Mapping[str, Any] | str | Path) -> SamplerSpec:
    """Parse sampler settings from a mapping or a JSON/YAML file."""

    if isinstance(config, Mapping):
        return sampler_spec_from_config(config)
    return sampler_spec_from_config(read_config_file(config))


def sample_posterior_from_config(
    model_fit: ModelFit,
    config: Mapping[str, Any] | str | Path,
    *,
    resample: bool = False,
    verbose: bool = True,
) -> Chains:
    """Sample the posterior of ``model_fit`` with config-driven settings."""

    spec = load_sampler_spec(config)
    return sample_posterior(
        model_fit,
        engine=spec.build_engine(),
        n_samples=spec.n_samples,
        init_params=spec.init_params,
        resample=resample,
        random_seed=spec.random_seed,
        max_init_attempts=spec.max_init_attempts,
        verbose=verbose,
        **spec.chain_options(),
    )


def sample_prior_from_config(
    model_fit: ModelFit,
    config: Mapping[str, Any] | str | Path,
    *,
    resample: bool = False,
) -> Chains:
    """Sample the prior of ``model_fit`` with config-driven settings.

    Only ``n_samples``, ``n_chains`` and ``random_seed`` apply.
    """

    spec = load_sampler_spec(config)
    return sample_prior(
        model_fit,
        n_samples=spec.n_samples,
        resample=resample,
        random_seed=spec.random_seed,
        **spec.chain_options(),
    )


__all__ = [
    "CONFIG_SUFFIXES",
    "SamplerSpec",
    "load_sampler_spec",
    "read_config_file",
    "sample_posterior_from_config",
    "sample_prior_from_config",
    "sampler_spec_from_config",
]
