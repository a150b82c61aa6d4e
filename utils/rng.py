"""
Seeded random number generation for reproducible simulations.

Every stochastic decision in a run draws from one numpy Generator owned by
the simulation state, created here from a SeedSequence. Two runs with the
same seed and the same dt sequence make identical draws.
"""

from typing import Tuple

import numpy as np


def create_generator(seed: int) -> np.random.Generator:
    """
    Create the PCG64 generator for a simulation run.

    Args:
        seed: Master seed (non-negative integer)

    Returns:
        numpy Generator seeded through SeedSequence

    Raises:
        ValueError: If the seed is negative
    """
    if seed < 0:
        raise ValueError("Seed must be a non-negative integer")
    return np.random.Generator(np.random.PCG64(np.random.SeedSequence(seed)))


def random_unit_vector(rng: np.random.Generator) -> Tuple[float, float, float]:
    """Draw a direction uniformly on the unit sphere."""
    z = rng.uniform(-1.0, 1.0)
    theta = rng.uniform(0.0, 2.0 * np.pi)
    r = float(np.sqrt(max(0.0, 1.0 - z * z)))
    return (r * float(np.cos(theta)), r * float(np.sin(theta)), float(z))


def random_point(
    rng: np.random.Generator,
    size: Tuple[float, float, float],
    margin: float = 0.0
) -> Tuple[float, float, float]:
    """Draw a uniform point inside the box [margin, size - margin]^3."""
    return tuple(
        float(rng.uniform(margin, max(margin, extent - margin)))
        for extent in size
    )


def jitter(
    rng: np.random.Generator,
    center: Tuple[float, float, float],
    spread: float
) -> Tuple[float, float, float]:
    """Gaussian scatter around ``center``."""
    offsets = rng.normal(0.0, spread, size=3)
    return (
        center[0] + float(offsets[0]),
        center[1] + float(offsets[1]),
        center[2] + float(offsets[2]),
    )
