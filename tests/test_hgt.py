"""
Tests for horizontal gene transfer.
"""

import pytest

from models.hgt import GeneTransferEngine, HGTConfig, HGTMechanism
from models.profiles import AntibioticClass, PhageLibraryId


def set_resistance(bacterium, level):
    for drug_class in AntibioticClass:
        bacterium.genome.resistance[drug_class] = level


class TestHGTConfig:
    """Test configuration validation."""

    def test_invalid_radii(self):
        """Test transduction radius must cover the contact radius."""
        with pytest.raises(ValueError):
            HGTConfig(contact_radius=10.0, transduction_radius=5.0)

    def test_invalid_probability(self):
        """Test probability fields are bounded."""
        with pytest.raises(ValueError):
            HGTConfig(gene_transfer_chance=1.5)


class TestDonorSearch:
    """Test donor selection through the spatial index."""

    def test_conjugation_partner(self, add_bacterium, sim_state, index_for):
        """Test a different strain in contact is a conjugation donor."""
        engine = GeneTransferEngine()
        recipient = add_bacterium(strain_id="S_aureus-001")
        donor = add_bacterium(x=503.0, strain_id="S_aureus-002")
        found = engine.find_donor(sim_state, index_for(), recipient)
        assert found is not None
        assert found[0] is donor
        assert found[1] == HGTMechanism.CONJUGATION
        assert found[2] == pytest.approx(3.0)

    def test_same_strain_ignored(self, add_bacterium, sim_state, index_for):
        """Test clone mates do not exchange genes."""
        engine = GeneTransferEngine()
        recipient = add_bacterium(strain_id="S_aureus-001")
        add_bacterium(x=502.0, strain_id="S_aureus-001")
        assert engine.find_donor(sim_state, index_for(), recipient) is None

    def test_transduction_needs_lysogen(self, add_bacterium, sim_state, index_for):
        """Test beyond contact range only lysogens donate."""
        engine = GeneTransferEngine()
        recipient = add_bacterium(strain_id="S_aureus-001")
        distant = add_bacterium(x=515.0, strain_id="S_aureus-002")
        assert engine.find_donor(sim_state, index_for(), recipient) is None

        distant.prophage = PhageLibraryId.PHAGE_K
        found = engine.find_donor(sim_state, index_for(), recipient)
        assert found[1] == HGTMechanism.TRANSDUCTION


class TestTransfer:
    """Test resistance transfer."""

    def test_transfer_only_raises(self, add_bacterium, sim_state):
        """Test transfer copies higher donor levels and never lowers."""
        engine = GeneTransferEngine(HGTConfig(gene_transfer_chance=1.0))
        donor = add_bacterium(strain_id="S_aureus-002")
        recipient = add_bacterium(strain_id="S_aureus-001")
        set_resistance(donor, 0.9)
        set_resistance(recipient, 0.1)
        recipient.genome.resistance[AntibioticClass.GLYCOPEPTIDE] = 0.95

        genes = engine.transfer(sim_state, donor, recipient, HGTMechanism.CONJUGATION)
        assert AntibioticClass.GLYCOPEPTIDE.value not in genes
        assert len(genes) == len(AntibioticClass) - 1
        assert recipient.genome.resistance[AntibioticClass.BETA_LACTAM] == pytest.approx(0.9)
        assert recipient.genome.resistance[AntibioticClass.GLYCOPEPTIDE] == 0.95

    def test_round_founds_new_strain(self, add_bacterium, sim_state, index_for):
        """Test a successful transfer gives the recipient a new strain."""
        engine = GeneTransferEngine(HGTConfig(hgt_rate=1000.0, gene_transfer_chance=1.0))
        resistant = add_bacterium(strain_id="resistant-line")
        susceptible = add_bacterium(x=502.0, strain_id="susceptible-line")
        set_resistance(resistant, 0.9)
        set_resistance(susceptible, 0.1)

        events = engine.execute_round(sim_state, index_for(), 1.0)
        assert len(events) == 1
        event = events[0]
        assert event.donor_id == resistant.id
        assert event.recipient_id == susceptible.id
        assert susceptible.strain_id == event.recipient_strain
        assert susceptible.strain_id not in ("resistant-line", "susceptible-line")
        assert event.to_dict()["mechanism"] == "conjugation"
