"""
Tests for sepsis scoring, organ damage, vitals and statistics.
"""

import pytest

from models.diagnostics import ORGANS, DiagnosticsEngine, OrganDamage, SepsisWeights
from models.entities import Clot
from models.spatial import Vector3

NO_TOXICITY = {"nephrotoxicity": 0.0, "hepatotoxicity": 0.0}


class TestSepsisWeights:
    """Test weight validation."""

    def test_defaults_sum_to_one(self):
        """Test default weights are valid."""
        weights = SepsisWeights()
        assert weights.hypoxia + weights.cytokine + weights.organ_damage + weights.bacterial_load == pytest.approx(1.0)

    def test_invalid_weights(self):
        """Test weights must be non-negative and sum to one."""
        with pytest.raises(ValueError):
            SepsisWeights(hypoxia=0.5)
        with pytest.raises(ValueError):
            SepsisWeights(hypoxia=-0.1, cytokine=0.7)


class TestSepsisScore:
    """Test the composite score."""

    def test_healthy_is_zero(self):
        """Test no inputs give zero."""
        assert DiagnosticsEngine().sepsis_score(0.0, 0.0, 0.0, 0) == 0.0

    def test_bounded(self):
        """Test the score stays in [0, 1] for extreme inputs."""
        engine = DiagnosticsEngine()
        assert engine.sepsis_score(5.0, 1e9, 3.0, 10 ** 6) <= 1.0
        assert engine.sepsis_score(-1.0, -5.0, -1.0, -3) >= 0.0

    @pytest.mark.parametrize("position", range(4))
    def test_monotone_in_each_input(self, position):
        """Test raising any input never lowers the score."""
        engine = DiagnosticsEngine()
        base = [0.2, 100.0, 0.1, 50]
        steps = [0.1, 50.0, 0.1, 25]
        previous = engine.sepsis_score(*base)
        for _ in range(5):
            base[position] += steps[position]
            current = engine.sepsis_score(*base)
            assert current >= previous
            previous = current


class TestOrganDamage:
    """Test the organ damage ratchet."""

    def test_negative_ignored(self):
        """Test damage never decreases."""
        damage = OrganDamage(kidneys=0.3)
        damage.accumulate("kidneys", -0.2)
        assert damage.kidneys == 0.3
        damage.accumulate("kidneys", 2.0)
        assert damage.kidneys == 1.0

    def test_unknown_organ(self):
        """Test unknown organs raise."""
        with pytest.raises(KeyError):
            OrganDamage().accumulate("spleen", 0.1)

    def test_sofa_scores(self):
        """Test SOFA-like scores per organ."""
        damage = OrganDamage(heart=0.45, brain=1.0)
        scores = damage.sofa_scores()
        assert scores["heart"] == 2
        assert scores["brain"] == 4
        assert scores["lungs"] == 0
        assert set(scores) == set(ORGANS)

    def test_hypoxia_damages_and_recovery_keeps_damage(self, sim_state):
        """Test damage accrues under hypoxia and is kept after recovery."""
        engine = DiagnosticsEngine()
        sim_state.cardiovascular.tissue_hypoxia = 0.6
        for _ in range(10):
            engine.update_organ_damage(sim_state, 0.5, NO_TOXICITY)
        damaged = sim_state.organ_damage.to_dict()
        assert damaged["heart"] > 0.0
        assert damaged["brain"] > 0.0

        sim_state.cardiovascular.tissue_hypoxia = 0.0
        for _ in range(10):
            engine.update_organ_damage(sim_state, 0.5, NO_TOXICITY)
        for organ in ORGANS:
            assert getattr(sim_state.organ_damage, organ) >= damaged[organ]

    def test_drug_toxicity_damages_kidneys(self, sim_state):
        """Test nephrotoxicity lands on the kidneys."""
        engine = DiagnosticsEngine()
        engine.update_organ_damage(sim_state, 1.0, {"nephrotoxicity": 0.5, "hepatotoxicity": 0.0})
        assert sim_state.organ_damage.kidneys > 0.0
        assert sim_state.organ_damage.liver == 0.0


class TestUpdate:
    """Test the full diagnostics update."""

    def test_update_sets_score_vitals_and_stats(self, sim_state, add_bacterium):
        """Test the score, vitals and stats are refreshed together."""
        engine = DiagnosticsEngine()
        for i in range(3):
            add_bacterium(x=10.0 * i, strain_id="S_aureus-002")
        add_bacterium(strain_id="S_aureus-001")
        sim_state.inflammatory.tnf_alpha = 100.0
        sim_state.death_counts["antibiotic"] = 2

        stats = engine.update(sim_state, 0.1, NO_TOXICITY)
        assert sim_state.sepsis_score > 0.0
        assert sim_state.vitals.sepsis_score == sim_state.sepsis_score
        assert sim_state.vitals.temperature > 37.0
        assert stats.counts["bacterium"] == 4
        assert stats.unique_strains == 2
        assert stats.dominant_strain == "S_aureus-002"
        assert stats.bacteremia
        assert stats.deaths == {"antibiotic": 2}

    def test_dominant_strain_ties_alphabetical(self, sim_state, add_bacterium):
        """Test equal strain counts resolve alphabetically."""
        add_bacterium(strain_id="S_aureus-007")
        add_bacterium(strain_id="S_aureus-003")
        stats = DiagnosticsEngine().compute_statistics(sim_state)
        assert stats.dominant_strain == "S_aureus-003"

    def test_empty_population(self, sim_state):
        """Test statistics without bacteria."""
        stats = DiagnosticsEngine().compute_statistics(sim_state)
        assert stats.dominant_strain is None
        assert not stats.bacteremia
        assert stats.average_resistance == 0.0


def add_clots(state, count, fibrin=0.5):
    for i in range(count):
        clot = Clot(id=state.new_id(), position=Vector3(100.0 * i, 0.0, 150.0), fibrin=fibrin)
        state.clots[clot.id] = clot


class TestCoagulationRisk:
    """Test the disseminated coagulation risk."""

    def test_quiet_without_clots_or_endotoxin(self, sim_state):
        """Test a healthy state carries no risk."""
        assert DiagnosticsEngine().coagulation_risk(sim_state) == 0.0

    def test_few_clots_below_thresholds(self, sim_state):
        """Test a handful of small clots with active platelets is not a coagulopathy."""
        add_clots(sim_state, 3)
        sim_state.rheology.platelet_activation = 0.5
        assert DiagnosticsEngine().coagulation_risk(sim_state) == 0.0

    def test_clot_count_and_fibrin(self, sim_state):
        """Test many clots add per-clot risk plus fibrin consumption."""
        add_clots(sim_state, 5)
        sim_state.rheology.platelet_activation = 0.5
        assert DiagnosticsEngine().coagulation_risk(sim_state) == pytest.approx(0.8)

    def test_exhausted_platelets(self, sim_state):
        """Test low platelet activation counts only while clots persist."""
        sim_state.rheology.platelet_activation = 0.0
        engine = DiagnosticsEngine()
        assert engine.coagulation_risk(sim_state) == 0.0
        add_clots(sim_state, 1)
        assert engine.coagulation_risk(sim_state) == pytest.approx(0.2)

    def test_endotoxin_and_inflammation(self, sim_state):
        """Test endotoxin scales the risk and a cytokine surge adds to it."""
        engine = DiagnosticsEngine()
        sim_state.inflammatory.endotoxin = 4.0
        assert engine.coagulation_risk(sim_state) == pytest.approx(0.4)
        sim_state.inflammatory.tnf_alpha = 300.0
        assert engine.coagulation_risk(sim_state) == pytest.approx(0.5)

    def test_bounded_and_reported(self, sim_state):
        """Test the risk saturates at one and feeds the statistics."""
        add_clots(sim_state, 12, fibrin=1.0)
        sim_state.inflammatory.endotoxin = 20.0
        engine = DiagnosticsEngine()
        assert engine.coagulation_risk(sim_state) == 1.0
        assert engine.compute_statistics(sim_state).clotting_risk == 1.0
