"""
Lifecycle state management for the simulation controller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional
from dataclasses import dataclass, asdict
from enum import Enum

logger = logging.getLogger(__name__)


class ControllerState(Enum):
    """Enumeration of controller lifecycle states."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    TERMINATED = "terminated"


# Allowed transitions; reset (-> IDLE) is permitted from every state
ALLOWED_TRANSITIONS: Dict[ControllerState, FrozenSet[ControllerState]] = {
    ControllerState.IDLE: frozenset({ControllerState.RUNNING, ControllerState.IDLE, ControllerState.TERMINATED}),
    ControllerState.RUNNING: frozenset({ControllerState.PAUSED, ControllerState.IDLE, ControllerState.TERMINATED}),
    ControllerState.PAUSED: frozenset({ControllerState.RUNNING, ControllerState.IDLE, ControllerState.TERMINATED}),
    ControllerState.TERMINATED: frozenset({ControllerState.IDLE}),
}


@dataclass
class StateTransition:
    """Record of one lifecycle transition."""
    from_state: ControllerState
    to_state: ControllerState
    tick: int
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert transition to dictionary format."""
        data = asdict(self)
        data['from_state'] = self.from_state.value
        data['to_state'] = self.to_state.value
        data['timestamp'] = self.timestamp.isoformat()
        return data


class InvalidTransitionError(ValueError):
    """Requested lifecycle transition is not in the transition table."""


class LifecycleManager:
    """
    Tracks the controller lifecycle.

    Every transition is checked against ALLOWED_TRANSITIONS, recorded and
    reported to registered observers.
    """

    def __init__(self, initial: ControllerState = ControllerState.IDLE):
        self.state = initial
        self.transitions: List[StateTransition] = []
        self.observers: List[Callable[[StateTransition], None]] = []

    def can_transition(self, target: ControllerState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: ControllerState, tick: int = 0, reason: str = "") -> StateTransition:
        """
        Move to ``target``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {target.value}"
            )
        record = StateTransition(
            from_state=self.state,
            to_state=target,
            tick=tick,
            reason=reason,
            timestamp=datetime.now(timezone.utc),
        )
        self.state = target
        self.transitions.append(record)
        logger.info(f"Simulation {record.from_state.value} -> {target.value} at tick {tick}"
                    + (f" ({reason})" if reason else ""))
        self._notify_observers(record)
        return record

    def add_state_observer(self, observer: Callable[[StateTransition], None]) -> None:
        self.observers.append(observer)

    def remove_state_observer(self, observer: Callable[[StateTransition], None]) -> None:
        if observer in self.observers:
            self.observers.remove(observer)

    def _notify_observers(self, record: StateTransition) -> None:
        for observer in list(self.observers):
            observer(record)

    @property
    def last_transition(self) -> Optional[StateTransition]:
        return self.transitions[-1] if self.transitions else None

    def history(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.transitions]
