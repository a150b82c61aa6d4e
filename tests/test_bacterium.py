"""
Tests for the Bacterium and Genome records.
"""

from models.bacterium import Bacterium, Genome, LOCUS_BOUNDS
from models.profiles import AntibioticClass, BacterialSpecies, PhageLibraryId, SPECIES_PROFILES


class TestGenome:
    """Test genome construction and copying."""

    def test_from_profile(self):
        """Test wild-type genomes follow the species profile."""
        profile = SPECIES_PROFILES[BacterialSpecies.E_COLI]
        genome = Genome.from_profile(profile)
        assert genome.resistance[AntibioticClass.GLYCOPEPTIDE] == 1.0
        assert genome.capsule == profile.capsule
        assert genome.motility == 1.0
        assert not genome.crispr

    def test_copy_is_independent(self):
        """Test copied genomes do not share the resistance dict."""
        genome = Genome()
        clone = genome.copy()
        clone.resistance[AntibioticClass.BETA_LACTAM] = 0.9
        assert genome.resistance[AntibioticClass.BETA_LACTAM] == 0.0

    def test_loci_and_mean_resistance(self):
        """Test locus listing and mean resistance."""
        genome = Genome(resistance={c: 0.5 for c in AntibioticClass})
        assert genome.continuous_loci() == list(LOCUS_BOUNDS)
        assert genome.mean_resistance == 0.5


class TestBacterium:
    """Test bacterium life state."""

    def test_alive_until_killed(self):
        """Test kill marks the cause once."""
        bacterium = Bacterium(id=1, species=BacterialSpecies.S_AUREUS, strain_id="S_aureus-001")
        assert bacterium.is_alive()
        bacterium.kill("antibiotic")
        bacterium.kill("phagocytosis")
        assert not bacterium.is_alive()
        assert bacterium.death_cause == "antibiotic"

    def test_zero_energy_or_integrity_is_dead(self):
        """Test depleted energy or integrity kills."""
        assert not Bacterium(id=1, species=BacterialSpecies.E_COLI, strain_id="a", energy=0.0).is_alive()
        assert not Bacterium(id=2, species=BacterialSpecies.E_COLI, strain_id="a", integrity=0.0).is_alive()

    def test_lysogen_flag_and_dict(self):
        """Test prophage carriage and serialization."""
        bacterium = Bacterium(id=4, species=BacterialSpecies.E_COLI, strain_id="E_coli-001",
                              prophage=PhageLibraryId.LAMBDA)
        assert bacterium.is_lysogen
        data = bacterium.to_dict()
        assert data["species"] == "E_coli"
        assert data["genome"]["resistance"]["glycopeptide"] == 0.0
