"""
Tests for the host immune response.
"""

import pytest

from models.entities import Antibody, AntibodyType, FatDeposit, ImmuneCell, ImmuneCellType
from models.immune import ImmuneConfig, ImmuneResponseEngine
from models.profiles import BacterialSpecies
from models.spatial import Vector3


class FixedDraw:
    """Generator stand-in whose uniform draws are constant."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def add_cell(state, cell_type=ImmuneCellType.NEUTROPHIL, position=None, activation=0.2):
    cell = ImmuneCell(id=state.new_id(), cell_type=cell_type,
                      position=position or Vector3(500.0, 150.0, 150.0), activation=activation)
    state.immune_cells[cell.id] = cell
    return cell


class TestImmuneConfig:
    """Test configuration validation."""

    def test_invalid_radii(self):
        """Test sensing radius must cover the engagement radius."""
        with pytest.raises(ValueError):
            ImmuneConfig(sensing_radius=5.0, engagement_radius=10.0)

    def test_invalid_fraction(self):
        """Test neutrophil fraction bounds."""
        with pytest.raises(ValueError):
            ImmuneConfig(neutrophil_fraction=1.2)


class TestCytokines:
    """Test systemic inflammatory mediators."""

    def test_cytokines_rise_with_infection(self, sim_state, add_bacterium):
        """Test every mediator rises monotonically under a fixed load."""
        engine = ImmuneResponseEngine()
        for i in range(30):
            add_bacterium(x=10.0 * i)
        previous = sim_state.inflammatory.total_cytokines
        for _ in range(10):
            engine.update_cytokines(sim_state, 0.1)
            current = sim_state.inflammatory.total_cytokines
            assert current > previous
            previous = current
        assert sim_state.inflammatory.il10 > 0.0

    def test_quiet_without_infection(self, sim_state):
        """Test no load means no cytokines."""
        ImmuneResponseEngine().update_cytokines(sim_state, 1.0)
        assert sim_state.inflammatory.total_cytokines == 0.0

    def test_endotoxin_from_gram_negative_deaths(self, sim_state, add_bacterium):
        """Test only Gram-negative deaths shed endotoxin."""
        engine = ImmuneResponseEngine()
        engine.release_endotoxin(sim_state, [add_bacterium(species=BacterialSpecies.S_AUREUS)])
        assert sim_state.inflammatory.endotoxin == 0.0
        engine.release_endotoxin(sim_state, [add_bacterium(species=BacterialSpecies.E_COLI)])
        assert sim_state.inflammatory.endotoxin == pytest.approx(engine.config.endotoxin_per_lysis)

    def test_chemokine_hotspot_tracks_bacteria(self, sim_state, add_bacterium):
        """Test the chemokine field peaks where bacteria are."""
        engine = ImmuneResponseEngine()
        for _ in range(10):
            add_bacterium(x=850.0, y=250.0, z=50.0)
        engine.update_chemokine_field(sim_state, 0.1)
        assert engine.hotspot(sim_state) == engine.voxel_of(Vector3(850.0, 250.0, 50.0),
                                                             sim_state.chemokine_field.shape)


class TestPhagocytosis:
    """Test phagocyte engagements."""

    def test_probability_modifiers(self, sim_state, add_bacterium):
        """Test capsule evades and opsonization helps."""
        engine = ImmuneResponseEngine()
        cell = add_cell(sim_state)
        bare = add_bacterium()
        bare.genome.capsule = 0.0
        capsulated = add_bacterium()
        capsulated.genome.capsule = 0.8
        opsonized = add_bacterium()
        opsonized.genome.capsule = 0.8
        opsonized.opsonized = True

        assert engine.phagocytosis_probability(cell, capsulated) < engine.phagocytosis_probability(cell, bare)
        assert engine.phagocytosis_probability(cell, opsonized) > engine.phagocytosis_probability(cell, capsulated)

    def test_successful_engagement(self, sim_state, add_bacterium):
        """Test a successful engagement kills and activates."""
        engine = ImmuneResponseEngine()
        cell = add_cell(sim_state)
        bacterium = add_bacterium()
        sim_state.rng = FixedDraw(0.0)
        assert engine.attempt_phagocytosis(sim_state, cell, bacterium)
        assert bacterium.death_cause == "phagocytosis"
        assert cell.phagocytosed_count == 1
        assert cell.activation > engine.config.activation_baseline

    def test_failed_engagements_exhaust(self, sim_state, add_bacterium):
        """Test repeated failures drain the cell to death."""
        engine = ImmuneResponseEngine()
        cell = add_cell(sim_state)
        bacterium = add_bacterium()
        sim_state.rng = FixedDraw(0.999)
        for _ in range(10):
            assert not engine.attempt_phagocytosis(sim_state, cell, bacterium)
        assert bacterium.is_alive()
        assert not cell.is_alive()

    def test_neutrophil_clears_nearby_bacterium(self, sim_state, add_bacterium, index_for):
        """Test a hunting neutrophil eventually engulfs an adjacent bacterium."""
        engine = ImmuneResponseEngine()
        bacterium = add_bacterium()
        bacterium.genome.capsule = 0.0
        bacterium.opsonized = True
        add_cell(sim_state, position=Vector3(505.0, 150.0, 150.0), activation=1.0)
        for _ in range(20):
            if not bacterium.is_alive():
                break
            engine.update(sim_state, index_for(), 0.01)
        assert bacterium.death_cause == "phagocytosis"


class TestRecruitment:
    """Test cell recruitment."""

    def test_recruitment_under_inflammation(self, sim_state):
        """Test phagocytes are recruited while cytokines exceed the threshold."""
        engine = ImmuneResponseEngine()
        sim_state.inflammatory.tnf_alpha = 1000.0
        recruited = engine.recruit(sim_state, 1.0)
        assert recruited > 0
        assert all(cell.cell_type.is_phagocyte for cell in sim_state.immune_cells.values())
        assert len(sim_state.immune_cells) <= sim_state.params.max_immune_cells

    def test_no_recruitment_without_competence(self, sim_state):
        """Test an immunocompromised host recruits nothing."""
        engine = ImmuneResponseEngine()
        sim_state.params.immune_competence = 0.0
        sim_state.inflammatory.tnf_alpha = 1000.0
        assert engine.recruit(sim_state, 1.0) == 0
        assert not sim_state.immune_cells


class TestAdaptiveImmunity:
    """Test the adaptive lag and antibody production."""

    def test_antibody_delay(self, sim_state, add_bacterium):
        """Test strains become eligible only after the adaptive lag."""
        engine = ImmuneResponseEngine()
        bacterium = add_bacterium()
        engine.record_exposures(sim_state)
        sim_state.elapsed = engine.config.antibody_delay - 0.1
        assert engine.eligible_strains(sim_state) == []
        sim_state.elapsed = engine.config.antibody_delay
        assert engine.eligible_strains(sim_state) == [bacterium.strain_id]

    def test_no_antibodies_without_competence(self, sim_state, add_bacterium):
        """Test competence zero disables the adaptive arm."""
        engine = ImmuneResponseEngine()
        add_bacterium()
        add_cell(sim_state, ImmuneCellType.B_CELL)
        engine.record_exposures(sim_state)
        sim_state.params.immune_competence = 0.0
        sim_state.elapsed = 500.0
        assert engine.produce_antibodies(sim_state, 5.0) == 0

    def test_class_switch(self, sim_state, add_bacterium):
        """Test IgM comes first and IgG after the class switch."""
        engine = ImmuneResponseEngine()
        add_bacterium()
        add_cell(sim_state, ImmuneCellType.B_CELL)
        engine.record_exposures(sim_state)

        sim_state.elapsed = 30.0
        assert engine.produce_antibodies(sim_state, 5.0) > 0
        assert {a.antibody_type for a in sim_state.antibodies.values()} == {AntibodyType.IGM}

        sim_state.antibodies.clear()
        sim_state.elapsed = 100.0
        assert engine.produce_antibodies(sim_state, 5.0) > 0
        assert {a.antibody_type for a in sim_state.antibodies.values()} == {AntibodyType.IGG}


def add_antibody(state, target_strain, capacity, position=None):
    antibody = Antibody(id=state.new_id(), antibody_type=AntibodyType.IGG, target_strain=target_strain,
                        position=position or Vector3(505.0, 150.0, 150.0),
                        neutralization_capacity=capacity)
    state.antibodies[antibody.id] = antibody
    return antibody


class TestAntibodies:
    """Test antibody binding and neutralization."""

    def test_full_capacity_neutralizes(self, sim_state, add_bacterium, index_for):
        """Test a bound antibody with capacity one kills its target."""
        engine = ImmuneResponseEngine()
        bacterium = add_bacterium()
        antibody = add_antibody(sim_state, bacterium.strain_id, 1.0)
        events = engine.update(sim_state, index_for(), 0.01)
        assert events["neutralized"] == 1
        assert not bacterium.is_alive()
        assert bacterium.death_cause == "antibody"
        assert antibody.consumed
        assert not antibody.is_alive()

    def test_zero_capacity_opsonizes(self, sim_state, add_bacterium, index_for):
        """Test a bound antibody that fails to neutralize coats its target."""
        engine = ImmuneResponseEngine()
        bacterium = add_bacterium()
        antibody = add_antibody(sim_state, bacterium.strain_id, 0.0)
        events = engine.update(sim_state, index_for(), 0.01)
        assert events["neutralized"] == 0
        assert bacterium.is_alive()
        assert bacterium.opsonized
        assert antibody.consumed

    def test_other_strain_ignored(self, sim_state, add_bacterium, index_for):
        """Test an antibody never binds a strain it was not raised against."""
        engine = ImmuneResponseEngine()
        bacterium = add_bacterium()
        antibody = add_antibody(sim_state, "unrelated-strain", 1.0)
        events = engine.update(sim_state, index_for(), 0.01)
        assert events["neutralized"] == 0
        assert bacterium.is_alive()
        assert not bacterium.opsonized
        assert not antibody.consumed
        assert antibody.remaining_lifetime == pytest.approx(24.0 - 0.01)


class TestCellularSupport:
    """Test T-cell help, foam-cell formation and target selection."""

    def test_t_cell_boosts_nearby_phagocytes(self, sim_state, index_for):
        """Test T-cells raise activation only within their help radius."""
        engine = ImmuneResponseEngine()
        add_cell(sim_state, ImmuneCellType.T_CELL, position=Vector3(500.0, 150.0, 150.0))
        near = add_cell(sim_state, position=Vector3(540.0, 150.0, 150.0))
        far = add_cell(sim_state, position=Vector3(900.0, 150.0, 150.0))
        engine.update(sim_state, index_for(), 0.1)
        assert near.activation > engine.config.activation_baseline
        assert far.activation == pytest.approx(engine.config.activation_baseline)

    def test_macrophage_becomes_foam_cell(self, sim_state, index_for):
        """Test macrophages next to an oxidized deposit turn into foam cells."""
        engine = ImmuneResponseEngine(ImmuneConfig(foam_cell_rate=5000.0))
        deposit = FatDeposit(id=sim_state.new_id(), position=Vector3(500.0, 5.0, 150.0), oxidized=True)
        sim_state.fat_deposits[deposit.id] = deposit
        macrophage = add_cell(sim_state, ImmuneCellType.MACROPHAGE,
                              position=Vector3(500.0, 10.0, 150.0), activation=0.9)
        neutrophil = add_cell(sim_state, position=Vector3(500.0, 10.0, 155.0))
        engine.update(sim_state, index_for(), 0.01)
        assert macrophage.foam_cell
        assert macrophage.activation == pytest.approx(engine.config.activation_baseline)
        assert not neutrophil.foam_cell
        assert deposit.foam_cells == 1

    def test_intact_deposit_leaves_macrophages(self, sim_state, index_for):
        """Test a deposit that has not oxidized recruits no foam cells."""
        engine = ImmuneResponseEngine(ImmuneConfig(foam_cell_rate=5000.0))
        deposit = FatDeposit(id=sim_state.new_id(), position=Vector3(500.0, 5.0, 150.0))
        sim_state.fat_deposits[deposit.id] = deposit
        macrophage = add_cell(sim_state, ImmuneCellType.MACROPHAGE, position=Vector3(500.0, 10.0, 150.0))
        engine.update(sim_state, index_for(), 0.01)
        assert not macrophage.foam_cell
        assert deposit.foam_cells == 0

    def test_hunt_prefers_opsonized_target(self, sim_state, add_bacterium, index_for):
        """Test a phagocyte chases a coated bacterium over a closer bare one."""
        engine = ImmuneResponseEngine()
        add_bacterium(x=520.0)
        coated = add_bacterium(x=570.0)
        coated.opsonized = True
        cell = add_cell(sim_state)
        engine.update(sim_state, index_for(), 0.001)
        assert cell.target_id == coated.id

    def test_hunt_falls_back_to_nearest(self, sim_state, add_bacterium, index_for):
        """Test the nearest bacterium is chosen when none is coated."""
        engine = ImmuneResponseEngine()
        nearest = add_bacterium(x=520.0)
        add_bacterium(x=570.0)
        cell = add_cell(sim_state)
        engine.update(sim_state, index_for(), 0.001)
        assert cell.target_id == nearest.id
