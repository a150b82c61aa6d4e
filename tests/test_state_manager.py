"""
Tests for the controller lifecycle manager.
"""

import pytest

from utils.state_manager import ControllerState, InvalidTransitionError, LifecycleManager


class TestLifecycleManager:
    """Test lifecycle transitions."""

    def test_starts_idle(self):
        """Test the initial state."""
        manager = LifecycleManager()
        assert manager.state == ControllerState.IDLE
        assert manager.last_transition is None

    def test_run_pause_resume(self):
        """Test the normal run cycle."""
        manager = LifecycleManager()
        manager.transition(ControllerState.RUNNING, 0, "start")
        manager.transition(ControllerState.PAUSED, 5, "pause")
        manager.transition(ControllerState.RUNNING, 5, "start")
        assert manager.state == ControllerState.RUNNING
        assert [t["to_state"] for t in manager.history()] == ["running", "paused", "running"]
        assert manager.last_transition.tick == 5

    def test_terminated_only_resets(self):
        """Test TERMINATED only leaves through reset."""
        manager = LifecycleManager()
        manager.transition(ControllerState.RUNNING)
        manager.transition(ControllerState.TERMINATED, 3, "failure")
        for target in (ControllerState.RUNNING, ControllerState.PAUSED):
            with pytest.raises(InvalidTransitionError):
                manager.transition(target)
        manager.transition(ControllerState.IDLE, 3, "reset")
        assert manager.state == ControllerState.IDLE

    def test_idle_cannot_pause(self):
        """Test pausing requires a running simulation."""
        manager = LifecycleManager()
        assert not manager.can_transition(ControllerState.PAUSED)

    def test_observers(self):
        """Test observers receive transitions until removed."""
        manager = LifecycleManager()
        seen = []
        manager.add_state_observer(seen.append)
        manager.transition(ControllerState.RUNNING)
        manager.remove_state_observer(seen.append)
        manager.transition(ControllerState.PAUSED)
        assert len(seen) == 1
        assert seen[0].to_dict()["from_state"] == "idle"
