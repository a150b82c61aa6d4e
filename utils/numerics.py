"""
Numerical helpers shared by the physiology, pharmacology and diagnostics engines.

Rate equations in this project never raise on out-of-range input; they clamp
to safe bounds instead.
"""

import math

from scipy.special import expit

# Smallest denominator accepted by safe_divide
EPSILON = 1e-9


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]; NaN collapses to lower."""
    if value != value:
        return lower
    return max(lower, min(upper, value))


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` when the denominator is (nearly) zero."""
    if abs(denominator) < EPSILON:
        return default
    return numerator / denominator


def sigmoid(x: float, midpoint: float = 0.0, steepness: float = 1.0) -> float:
    """Logistic curve centred at ``midpoint``."""
    return float(expit(steepness * (x - midpoint)))


def hill(concentration: float, ec50: float, coefficient: float) -> float:
    """
    Hill dose-response: C^n / (EC50^n + C^n).

    Args:
        concentration: Free drug concentration (mg/L)
        ec50: Concentration producing half-maximal effect
        coefficient: Hill coefficient n

    Returns:
        Fractional effect in [0, 1]
    """
    if concentration <= 0.0:
        return 0.0
    if ec50 <= 0.0:
        return 1.0
    # Ratio form avoids overflow for large n
    ratio = (ec50 / concentration) ** coefficient
    return 1.0 / (1.0 + ratio)


def relax(current: float, target: float, rate: float, dt: float) -> float:
    """
    First-order relaxation toward ``target`` over ``dt``.

    Uses the exact exponential solution so the step never overshoots,
    whatever the size of ``rate * dt``.
    """
    if rate <= 0.0 or dt <= 0.0:
        return current
    return target + (current - target) * math.exp(-rate * dt)


def event_probability(rate: float, dt: float) -> float:
    """Probability of at least one Poisson event at ``rate`` within ``dt``."""
    if rate <= 0.0 or dt <= 0.0:
        return 0.0
    return 1.0 - math.exp(-rate * dt)


def saturating(value: float, half_saturation: float) -> float:
    """Michaelis-Menten style normalization value / (value + K)."""
    if value <= 0.0:
        return 0.0
    return value / (value + max(half_saturation, EPSILON))
