"""Log density of a composed program over a flat unconstrained vector.

The latent sites realized by one generative run fix the layout: every site
occupies a contiguous slice of the vector, continuous sites are mapped to
their support through :func:`~action_models.inference.transforms.support_transform`
and discrete sites keep their integer values.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import numpy as np

from action_models.core.distributions import as_python_value, is_discrete, support_bounds

from .program import GenerativeContext, Program, ProgramContext, ReplayContext, Site
from .transforms import ParameterTransform, identity_transform, support_transform


@dataclass(frozen=True, slots=True)
class SiteSpec:
    """Position and transform of one latent site in the flat vector.

    Parameters
    ----------
    name : str
        Site name.
    shape : tuple[int, ...]
        Value shape, ``()`` for scalars.
    offset : int
        Start index in the flat vector.
    discrete : bool
        Whether values are integers.
    transform : ParameterTransform
        Unconstrained-to-support transform (identity for discrete sites).
    """

    name: str
    shape: tuple[int, ...]
    offset: int
    discrete: bool
    transform: ParameterTransform

    @property
    def size(self) -> int:
        return int(np.prod(self.shape, dtype=int)) if self.shape else 1

    @property
    def stop(self) -> int:
        return self.offset + self.size

    def variable_names(self) -> tuple[str, ...]:
        """Return flat variable names, ``name[i]`` for array elements."""

        if not self.shape:
            return (self.name,)
        return tuple(
            f"{self.name}[{','.join(str(item) for item in index)}]"
            for index in np.ndindex(*self.shape)
        )


class SiteLayout:
    """Ordered latent-site layout of a program.

    Parameters
    ----------
    sites : tuple[SiteSpec, ...]
        Site specifications in program order.
    """

    def __init__(self, sites: tuple[SiteSpec, ...]) -> None:
        self.sites = sites
        self.size = sites[-1].stop if sites else 0
        self.by_name = {site.name: site for site in sites}
        self.variable_names = tuple(name for site in sites for name in site.variable_names())
        self.discrete_mask = np.zeros(self.size, dtype=bool)
        for site in sites:
            if site.discrete:
                self.discrete_mask[site.offset : site.stop] = True

    def __len__(self) -> int:
        return self.size

    @property
    def site_names(self) -> tuple[str, ...]:
        return tuple(site.name for site in self.sites)

    @classmethod
    def from_sites(cls, sites: Mapping[str, Site]) -> SiteLayout:
        """Build a layout from the latent sites of one program run."""

        specs: list[SiteSpec] = []
        offset = 0
        for name, site in sites.items():
            if site.observed:
                continue
            shape = tuple(np.shape(site.value))
            discrete = is_discrete(site.distribution)
            transform = identity_transform()
            if not discrete:
                bounds = support_bounds(site.distribution)
                if bounds is not None:
                    lower, upper = np.broadcast_arrays(*bounds)
                    if lower.shape not in ((), shape):
                        lower = np.broadcast_to(lower, shape)
                        upper = np.broadcast_to(upper, shape)
                    transform = support_transform(lower, upper)
            spec = SiteSpec(name=name, shape=shape, offset=offset, discrete=discrete, transform=transform)
            specs.append(spec)
            offset = spec.stop
        return cls(tuple(specs))

    def flatten(self, values: Mapping[str, Any]) -> np.ndarray:
        """Return constrained site values as one flat float vector.

        Raises
        ------
        ValueError
            If a site value is missing or has the wrong shape.
        """

        missing = [site.name for site in self.sites if site.name not in values]
        if missing:
            raise ValueError(f"missing values for latent sites: {missing}")
        vector = np.empty(self.size, dtype=float)
        for site in self.sites:
            array = np.asarray(values[site.name], dtype=float)
            if array.shape != site.shape:
                raise ValueError(
                    f"value for site {site.name!r} has shape {array.shape}; expected {site.shape}"
                )
            vector[site.offset : site.stop] = array.reshape(-1)
        return vector

    def unflatten(self, vector: np.ndarray) -> dict[str, Any]:
        """Return site values from a flat constrained vector."""

        values: dict[str, Any] = {}
        for site in self.sites:
            chunk = np.asarray(vector[site.offset : site.stop], dtype=float).reshape(site.shape)
            if site.discrete:
                chunk = np.rint(chunk).astype(int)
            values[site.name] = as_python_value(chunk)
        return values

    def to_unconstrained(self, values: Mapping[str, Any]) -> np.ndarray:
        """Map constrained site values to the unconstrained vector."""

        constrained = self.flatten(values)
        z = constrained.copy()
        for site in self.sites:
            if site.discrete:
                continue
            chunk = constrained[site.offset : site.stop].reshape(site.shape)
            z[site.offset : site.stop] = np.asarray(site.transform.inverse(chunk)).reshape(-1)
        return z

    def from_unconstrained(self, z: np.ndarray) -> tuple[np.ndarray, float]:
        """Map an unconstrained vector to constrained values.

        Returns
        -------
        tuple[numpy.ndarray, float]
            Flat constrained vector and the log absolute Jacobian.
        """

        vector = np.asarray(z, dtype=float)
        constrained = vector.copy()
        log_jacobian = 0.0
        for site in self.sites:
            if site.discrete:
                continue
            chunk = vector[site.offset : site.stop].reshape(site.shape)
            constrained[site.offset : site.stop] = np.asarray(site.transform.forward(chunk)).reshape(-1)
            log_jacobian += float(site.transform.log_abs_det_jacobian(chunk))
        return constrained, log_jacobian


class ProgramDensity:
    """Evaluate a composed program as a density over unconstrained vectors.

    Parameters
    ----------
    program : Program
        Composed program ``program(ctx)``.
    layout : SiteLayout
        Latent-site layout of ``program``.
    """

    def __init__(self, program: Program, layout: SiteLayout) -> None:
        self.program = program
        self.layout = layout

    @classmethod
    def discover(
        cls,
        program: Program,
        *,
        rng: np.random.Generator,
        max_attempts: int = 100,
    ) -> ProgramDensity:
        """Run ``program`` generatively until one draw is not rejected.

        Raises
        ------
        ValueError
            If every attempt was rejected.
        """

        ctx = generate(program, rng=rng, max_attempts=max_attempts)
        return cls(program, SiteLayout.from_sites(ctx.sites))

    def replay(self, values: Mapping[str, Any], *, score_observations: bool = True) -> ProgramContext:
        """Run the program with latent values fixed by name."""

        ctx = ReplayContext(values, score_observations=score_observations)
        self.program(ctx)
        return ctx

    def evaluate(self, z: np.ndarray) -> tuple[float, float, float]:
        """Return log prior, log likelihood and log Jacobian at ``z``.

        Rejected runs return ``-inf`` for the log likelihood.
        """

        constrained, log_jacobian = self.layout.from_unconstrained(z)
        if not np.all(np.isfinite(constrained)):
            return float("-inf"), float("-inf"), log_jacobian
        ctx = self.replay(self.layout.unflatten(constrained))
        if ctx.rejected:
            return float(ctx.log_prior), float("-inf"), log_jacobian
        return float(ctx.log_prior), float(ctx.log_likelihood), log_jacobian

    def log_density(self, z: np.ndarray) -> float:
        """Return the unnormalized log posterior in unconstrained space."""

        log_prior, log_likelihood, log_jacobian = self.evaluate(z)
        total = log_prior + log_likelihood + log_jacobian
        return float(total) if np.isfinite(total) else float("-inf")

    def log_likelihood(self, z: np.ndarray) -> float:
        """Return the log likelihood at ``z`` (no prior, no Jacobian)."""

        _, log_likelihood, _ = self.evaluate(z)
        return float(log_likelihood) if np.isfinite(log_likelihood) else float("-inf")

    def prior_draw(self, rng: np.random.Generator, *, max_attempts: int = 100) -> dict[str, Any]:
        """Return latent values from one non-rejected prior run."""

        return generate(self.program, rng=rng, max_attempts=max_attempts).latent_values()


def generate(
    program: Program,
    *,
    rng: np.random.Generator,
    score_observations: bool = False,
    max_attempts: int = 100,
) -> GenerativeContext:
    """Run ``program`` generatively, redrawing rejected runs.

    Raises
    ------
    ValueError
        If ``max_attempts`` consecutive runs were rejected.
    """

    if max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    reason = None
    for _ in range(max_attempts):
        ctx = GenerativeContext(rng, score_observations=score_observations)
        program(ctx)
        if not ctx.rejected:
            return ctx
        reason = ctx.rejection_reason
    raise ValueError(
        f"all {max_attempts} generative runs were rejected; last reason: {reason}"
    )


__all__ = ["ProgramDensity", "SiteLayout", "SiteSpec", "generate"]
