"""Participating media and Woodcock (delta) tracking.

A Medium combines a density field with an extinction coefficient per unit
density, an RGB single-scattering albedo and a phase function:

    sigma_t(x) = sigma_t * density(x)
    sigma_s(x) = albedo * sigma_t(x)

Free-flight distances are sampled with delta tracking against the
majorant sigma_t * max_density: tentative collisions are drawn from the
exponential distribution of the majorant and accepted with probability
sigma_t(x) / majorant, continuing from the rejected point otherwise. Since
the estimator is only unbiased when the majorant bounds the extinction
everywhere, a Medium refuses an explicit majorant below its field's bound.

Example:
    >>> fog = Medium(ConstantDensity(0.5), sigma_t=2.0)
    >>> fog.majorant
    1.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Sequence, Union

import numpy as np
import numpy.typing as npt

from voltrace.core.ray import FloatArray, Ray, as_vec3
from voltrace.media.density import ConstantDensity, DensityField
from voltrace.media.phase import HenyeyGreensteinPhase, IsotropicPhase

logger = logging.getLogger(__name__)

PhaseFunction = Union[IsotropicPhase, HenyeyGreensteinPhase]

# Draw callback: (step, rows) -> (u_distance, u_accept) for the given rows
UniformDraw = Callable[[int, npt.NDArray[np.intp]], tuple[FloatArray, FloatArray]]

# Safety cap on tentative collisions per tracking call
MAX_TRACKING_STEPS = 100_000


@dataclass(frozen=True, eq=False)
class MediumEvent:
    """Outcome of free-flight sampling for a single ray.

    Attributes:
        scattered: True if a real collision happened before t_max.
        distance: Collision distance when scattered, otherwise t_max.
    """

    scattered: bool
    distance: float


@dataclass
class MediumEvents:
    """Outcome of free-flight sampling for a batch of rays."""

    scattered: npt.NDArray[np.bool_]
    distance: FloatArray


@dataclass(frozen=True, eq=False)
class Medium:
    """A participating medium.

    Attributes:
        density: Density field over world space.
        sigma_t: Extinction coefficient per unit density.
        albedo: Single-scattering albedo (sigma_s / sigma_t) per RGB channel.
        phase: Phase function used at scattering events.
        majorant: Upper bound of the extinction. Derived from the density
            field when omitted.
        max_steps: Cap on tentative collisions per tracking call.

    Raises:
        ValueError: If coefficients are negative, the albedo leaves [0, 1]
            or an explicit majorant is below sigma_t * max_density.
    """

    density: DensityField = ConstantDensity(1.0)
    sigma_t: float = 1.0
    albedo: FloatArray = (1.0, 1.0, 1.0)
    phase: PhaseFunction = IsotropicPhase()
    majorant: float | None = None
    max_steps: int = MAX_TRACKING_STEPS

    def __post_init__(self) -> None:
        if not (self.sigma_t >= 0.0 and np.isfinite(self.sigma_t)):
            raise ValueError(f"sigma_t must be finite and non-negative, got {self.sigma_t}")
        albedo = as_vec3(self.albedo, "albedo")
        if np.any(albedo < 0.0) or np.any(albedo > 1.0):
            raise ValueError(
                f"Medium albedo values must be in [0, 1], got {tuple(albedo)}. "
                "Values > 1 would violate energy conservation."
            )
        object.__setattr__(self, "albedo", albedo)

        bound = float(self.sigma_t) * float(self.density.max_density())
        if self.majorant is None:
            object.__setattr__(self, "majorant", bound)
        elif self.majorant < bound:
            raise ValueError(
                f"Majorant {self.majorant} is below the extinction bound {bound}; "
                "delta tracking would be biased"
            )
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be positive, got {self.max_steps}")

    def extinction(self, points: FloatArray) -> FloatArray:
        """sigma_t(x) at points of shape (N, 3)."""
        return self.sigma_t * self.density.density(points)

    def sample_distances(
        self,
        origins: FloatArray,
        directions: FloatArray,
        t_max: FloatArray,
        draw: UniformDraw,
    ) -> MediumEvents:
        """Delta-track a batch of rays over [0, t_max].

        Args:
            origins: Segment start points, shape (N, 3).
            directions: Unit directions, shape (N, 3).
            t_max: Segment lengths, shape (N,).
            draw: Supplies uniforms for the still-active rows at each step.

        Returns:
            Per-ray scatter flags and distances (t_max for rays that exit).
        """
        n = len(origins)
        t = np.zeros(n)
        scattered = np.zeros(n, dtype=bool)
        active = t_max > 0.0
        if self.majorant <= 0.0:
            return MediumEvents(scattered, np.asarray(t_max, dtype=np.float64).copy())

        step = 0
        while np.any(active):
            if step >= self.max_steps:
                logger.debug(
                    "Delta tracking hit the %d step cap with %d rays still active",
                    self.max_steps,
                    np.count_nonzero(active),
                )
                break
            rows = np.flatnonzero(active)
            u_distance, u_accept = draw(step, rows)
            t[rows] -= np.log1p(-u_distance) / self.majorant

            exited = t[rows] >= t_max[rows]
            active[rows[exited]] = False
            rows = rows[~exited]
            u_accept = u_accept[~exited]

            if rows.size:
                points = origins[rows] + t[rows, None] * directions[rows]
                accept = u_accept * self.majorant < self.extinction(points)
                scattered[rows[accept]] = True
                active[rows[accept]] = False
            step += 1

        return MediumEvents(scattered, np.where(scattered, t, t_max))

    def sample_distance(self, ray: Ray, t_max: float, rng: np.random.Generator) -> MediumEvent:
        """Delta-track a single ray from its origin over [0, t_max].

        Args:
            ray: The ray; its direction must be unit length.
            t_max: Length of the segment inside the medium.
            rng: Source of uniform random numbers.
        """

        def draw(step: int, rows: npt.NDArray[np.intp]) -> tuple[FloatArray, FloatArray]:
            return rng.random(rows.size), rng.random(rows.size)

        events = self.sample_distances(ray.origin[None], ray.direction[None], np.array([float(t_max)]), draw)
        return MediumEvent(bool(events.scattered[0]), float(events.distance[0]))

    def transmittance(
        self,
        origins: FloatArray,
        directions: FloatArray,
        t_max: FloatArray,
        draw: UniformDraw,
    ) -> FloatArray:
        """Unbiased binary transmittance estimate (1 if no collision, else 0)."""
        events = self.sample_distances(origins, directions, t_max, draw)
        return np.where(events.scattered, 0.0, 1.0)


def homogeneous(
    density: float,
    albedo: Sequence[float] = (1.0, 1.0, 1.0),
    g: float = 0.0,
) -> Medium:
    """Constant-density medium with isotropic or Henyey-Greenstein phase."""
    phase: PhaseFunction = IsotropicPhase() if g == 0.0 else HenyeyGreensteinPhase(g)
    return Medium(ConstantDensity(density), sigma_t=1.0, albedo=albedo, phase=phase)
