"""
Pydantic schemas for commands, command outcomes and snapshots.
"""

from .errors import CommandResult, ErrorDetail
from .simulation import SimulationConfig
from .snapshot import SimulationSnapshot, build_snapshot

__all__ = [
    "CommandResult",
    "ErrorDetail",
    "SimulationConfig",
    "SimulationSnapshot",
    "build_snapshot",
]
