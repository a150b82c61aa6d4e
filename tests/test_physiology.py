"""
Tests for cardiovascular physiology and blood rheology.
"""

import pytest

from models.physiology import PhysiologyConfig, PhysiologyEngine
from models.population import create_bacterium
from models.profiles import BacterialSpecies
from models.spatial import Vector3
from models.state import RunParameters, SimulationState


def make_state(seed=1):
    return SimulationState.create(RunParameters(seed=seed))


def make_septic(state, bacteria=150):
    for i in range(bacteria):
        create_bacterium(state, BacterialSpecies.E_COLI, Vector3(5.0 * i, 150.0, 150.0), "E_coli-001")
    state.inflammatory.tnf_alpha = 2000.0
    state.inflammatory.endotoxin = 50.0
    return state


class TestPhysiologyConfig:
    """Test configuration validation."""

    def test_default_config_valid(self):
        """Test defaults construct."""
        config = PhysiologyConfig()
        assert sum(config.severity_weights) == pytest.approx(1.0)

    def test_invalid_weights(self):
        """Test severity weights must sum to one."""
        with pytest.raises(ValueError):
            PhysiologyConfig(severity_weights=(0.5, 0.5, 0.5))


class TestInfectionSeverity:
    """Test the severity index."""

    def test_zero_without_infection(self):
        """Test a healthy state has zero severity."""
        assert PhysiologyEngine().infection_severity(make_state()) == 0.0

    def test_increases_with_load(self):
        """Test severity is non-decreasing in bacterial load."""
        engine = PhysiologyEngine()
        low = make_septic(make_state(), bacteria=10)
        high = make_septic(make_state(), bacteria=100)
        assert 0.0 < engine.infection_severity(low) < engine.infection_severity(high) <= 1.0


class TestHemodynamics:
    """Test septic vasodilation and oxygen balance."""

    def test_healthy_baseline_is_stable(self):
        """Test a healthy host stays normotensive without hypoxia."""
        engine = PhysiologyEngine()
        state = make_state()
        for _ in range(50):
            engine.update(state, 0.1)
        cv = state.cardiovascular
        assert cv.tissue_hypoxia == 0.0
        assert 85.0 < cv.mean_arterial_pressure < 100.0

    def test_sepsis_causes_vasodilation(self):
        """Test severe infection lowers tone, resistance and pressure."""
        engine = PhysiologyEngine()
        healthy = make_state()
        septic = make_septic(make_state())
        for _ in range(50):
            engine.update(healthy, 0.1)
            engine.update(septic, 0.1)

        assert septic.cardiovascular.arterial_tone < healthy.cardiovascular.arterial_tone
        assert (septic.cardiovascular.systemic_vascular_resistance
                < healthy.cardiovascular.systemic_vascular_resistance)
        assert septic.cardiovascular.mean_arterial_pressure < 65.0
        assert septic.cardiovascular.heart_rate > healthy.cardiovascular.heart_rate


class TestRheology:
    """Test the delayed viscosity and flow coupling."""

    def test_viscosity_reads_previous_flow(self):
        """Test a low flow rate from the last tick raises viscosity."""
        engine = PhysiologyEngine()
        slow = make_state()
        normal = make_state()
        slow.rheology.flow_rate = 1.0
        engine.update(slow, 0.5)
        engine.update(normal, 0.5)
        assert slow.rheology.viscosity > normal.rheology.viscosity

    def test_clots_capped(self):
        """Test clot formation under platelet activation respects the cap."""
        engine = PhysiologyEngine()
        state = make_septic(make_state())
        for _ in range(400):
            engine.update(state, 0.1)
        assert 0 < len(state.clots) <= engine.config.max_clots
        assert 0.0 <= state.rheology.occlusion <= engine.config.max_occlusion
