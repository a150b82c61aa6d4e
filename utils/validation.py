"""
Custom validation utilities for simulation parameters.
"""

import math
import warnings
from typing import Any, Dict

from config import settings


def validate_initial_population(value: int) -> int:
    """
    Validate the initial bacterial population.

    Args:
        value: Number of bacteria to seed

    Returns:
        Validated population

    Raises:
        ValueError: If the population is negative or too large
    """
    if value < 0:
        raise ValueError("Initial population cannot be negative")
    if value > settings.max_initial_population:
        raise ValueError(f"Initial population cannot exceed {settings.max_initial_population}")
    return value


def validate_carrying_capacity(value: int) -> int:
    """
    Validate the bacterial carrying capacity.

    Raises:
        ValueError: If capacity is not positive or exceeds the bacteria cap
    """
    if value < 1:
        raise ValueError("Carrying capacity must be at least 1")
    if value > settings.max_bacteria:
        raise ValueError(f"Carrying capacity cannot exceed {settings.max_bacteria}")
    return value


def validate_immune_competence(value: float) -> float:
    """
    Validate host immune competence.

    Args:
        value: Competence multiplier (0 disables recruitment and antibodies)

    Returns:
        Validated competence

    Raises:
        ValueError: If competence is outside [0, 2]
    """
    if value < 0.0:
        raise ValueError("Immune competence cannot be negative")
    if value > 2.0:
        raise ValueError("Immune competence cannot exceed 2.0")
    return value


def validate_fraction(value: float, name: str = "value") -> float:
    """Validate a value in [0, 1]."""
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0")
    return value


def validate_speed(value: float) -> float:
    """
    Validate a simulation speed multiplier.

    Raises:
        ValueError: If speed is not in (0, max_speed]
    """
    if not math.isfinite(value):
        raise ValueError("Speed multiplier must be finite")
    if value <= 0.0:
        raise ValueError("Speed multiplier must be positive")
    if value > settings.max_speed:
        raise ValueError(f"Speed multiplier cannot exceed {settings.max_speed}")
    return value


def validate_time_step(value: float) -> float:
    """
    Validate a tick length in hours.

    Raises:
        ValueError: If dt is not a positive finite number
    """
    if not math.isfinite(value):
        raise ValueError("Time step must be finite")
    if value <= 0.0:
        raise ValueError("Time step must be positive")
    if value > 1.0:
        warnings.warn(
            f"Time step {value} h is very large; stochastic events are resolved per tick",
            UserWarning
        )
    return value


def validate_antibiotic_concentration(value: float) -> float:
    """
    Validate antibiotic concentration is not negative.

    Raises:
        ValueError: If concentration is invalid
    """
    if value < 0.0:
        raise ValueError("Antibiotic concentration cannot be negative")
    return value


def validate_seed(value: int) -> int:
    """Validate a random seed."""
    if value < 0:
        raise ValueError("Seed must be a non-negative integer")
    return value


def validate_simulation_parameters(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a complete set of simulation parameters.

    Args:
        parameters: Dictionary of simulation parameters

    Returns:
        Validated parameters dictionary

    Raises:
        ValueError: If any parameter is invalid
    """
    validators = {
        "initial_population": validate_initial_population,
        "carrying_capacity": validate_carrying_capacity,
        "immune_competence": validate_immune_competence,
        "atherosclerosis_level": lambda v: validate_fraction(v, "Atherosclerosis level"),
        "speed": validate_speed,
        "seed": validate_seed,
    }
    validated = {}
    for key, value in parameters.items():
        check = validators.get(key)
        validated[key] = check(value) if check else value
    return validated
