"""
Exceptions raised by the simulation engine.
"""


class SimulationError(Exception):
    """Unrecoverable failure during a tick; the controller terminates."""


class InvariantViolationError(SimulationError):
    """Internal consistency check failed (e.g. spatial index desync)."""


class ConfigurationError(ValueError):
    """Configuration rejected before it was applied."""
