"""
Tests for species, antibiotic and phage profile tables.
"""

import logging

import pytest

from models.profiles import (
    ANTIBIOTIC_PROFILES, Antibiotic, AntibioticClass, BacterialSpecies, DEFAULT_SPECIES,
    PHAGE_LIBRARY, PhageLibraryId, SPECIES_PROFILES, generate_phage_cocktail,
    get_species_profile, parse_antibiotic, parse_phage_library, resolve_species,
    select_optimal_phage,
)


class TestProfileTables:
    """Test the profile tables are complete."""

    def test_every_member_has_a_profile(self):
        """Test no enum member is missing from its table."""
        assert set(SPECIES_PROFILES) == set(BacterialSpecies)
        assert set(ANTIBIOTIC_PROFILES) == set(Antibiotic)
        assert set(PHAGE_LIBRARY) == set(PhageLibraryId)

    def test_default_resistance_covers_all_classes(self):
        """Test every species lists resistance for every drug class."""
        for profile in SPECIES_PROFILES.values():
            assert set(profile.default_resistance) == set(AntibioticClass)

    def test_gram_negative_release_endotoxin(self):
        """Test LPS release follows the Gram stain."""
        assert SPECIES_PROFILES[BacterialSpecies.E_COLI].releases_endotoxin
        assert not SPECIES_PROFILES[BacterialSpecies.S_AUREUS].releases_endotoxin


class TestLookups:
    """Test string lookups and fallbacks."""

    def test_unknown_species_falls_back_with_warning(self, caplog):
        """Test unknown species resolve to the default profile."""
        with caplog.at_level(logging.WARNING, logger="models.profiles"):
            profile = get_species_profile("Y_pestis")
        assert profile is SPECIES_PROFILES[DEFAULT_SPECIES]
        assert "Y_pestis" in caplog.text

    def test_known_species_resolve(self):
        """Test enum values and members both resolve."""
        assert resolve_species("E_coli") == BacterialSpecies.E_COLI
        assert resolve_species(BacterialSpecies.K_PNEUMONIAE) == BacterialSpecies.K_PNEUMONIAE

    def test_parse_antibiotic(self):
        """Test antibiotic ids parse case-insensitively and unknown ids raise."""
        assert parse_antibiotic("Vancomycin") == Antibiotic.VANCOMYCIN
        with pytest.raises(ValueError):
            parse_antibiotic("aspirin")

    def test_parse_phage_library(self):
        """Test library ids parse and unknown ids raise."""
        assert parse_phage_library("T7") == PhageLibraryId.T7
        with pytest.raises(ValueError):
            parse_phage_library("phage_X")


class TestPhageSelection:
    """Test phage choice helpers."""

    def test_optimal_phage_matches_host(self):
        """Test the selected phage infects the host."""
        assert select_optimal_phage(BacterialSpecies.S_AUREUS) == PhageLibraryId.PHAGE_K
        assert select_optimal_phage(BacterialSpecies.E_COLI) == PhageLibraryId.T7
        assert select_optimal_phage(BacterialSpecies.E_FAECALIS) is None

    def test_cocktail_covers_hosts(self):
        """Test the cocktail covers each host with at most the cap."""
        cocktail = generate_phage_cocktail(
            [BacterialSpecies.E_COLI, BacterialSpecies.P_AERUGINOSA, BacterialSpecies.S_AUREUS]
        )
        assert len(cocktail) <= 3
        for species in (BacterialSpecies.E_COLI, BacterialSpecies.P_AERUGINOSA, BacterialSpecies.S_AUREUS):
            assert any(PHAGE_LIBRARY[p].infects(species) for p in cocktail)
