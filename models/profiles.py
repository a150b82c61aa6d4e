"""
Species, antibiotic and phage profile tables.

Profiles are keyed by enum members rather than free-form strings, and the
module refuses to import if a member is missing its profile. Lookups from
user-supplied strings go through the ``resolve_*`` helpers, which fall back
to a documented default (and log a warning) for unknown species.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class BacterialSpecies(Enum):
    """Bloodstream pathogens supported by the simulation."""
    S_AUREUS = "S_aureus"
    E_COLI = "E_coli"
    P_AERUGINOSA = "P_aeruginosa"
    K_PNEUMONIAE = "K_pneumoniae"
    S_PYOGENES = "S_pyogenes"
    E_FAECALIS = "E_faecalis"


class AntibioticClass(Enum):
    """Drug classes; resistance is tracked per class."""
    BETA_LACTAM = "beta_lactam"
    GLYCOPEPTIDE = "glycopeptide"
    FLUOROQUINOLONE = "fluoroquinolone"
    AMINOGLYCOSIDE = "aminoglycoside"
    CEPHALOSPORIN = "cephalosporin"


class Antibiotic(Enum):
    """Administrable antibiotics."""
    PENICILLIN = "penicillin"
    VANCOMYCIN = "vancomycin"
    CIPROFLOXACIN = "ciprofloxacin"
    GENTAMICIN = "gentamicin"
    CEFTRIAXONE = "ceftriaxone"


class PhageStrategy(Enum):
    """Phage life cycle."""
    LYTIC = "lytic"
    LYSOGENIC = "lysogenic"


class PhageLibraryId(Enum):
    """Therapeutic phages available for injection."""
    PHAGE_K = "phage_K"
    T7 = "T7"
    COCKTAIL_1 = "cocktail_1"
    LAMBDA = "lambda"


class TherapyMode(Enum):
    """Phage therapy modes."""
    OFF = "off"
    TARGETED = "targeted"
    COCKTAIL = "cocktail"


@dataclass(frozen=True)
class SpeciesProfile:
    """Baseline traits of a bacterial species."""
    name: str
    gram_positive: bool
    virulence: float
    division_time: float  # hours
    speed: float  # µm/h random-walk speed
    adherence: float
    capsule: float
    toxin_production: float
    quorum_neighbors: int  # neighbours within quorum radius to trigger biofilm
    default_resistance: Dict[AntibioticClass, float] = field(default_factory=dict)

    @property
    def releases_endotoxin(self) -> bool:
        """Gram-negative cell walls carry LPS."""
        return not self.gram_positive


@dataclass(frozen=True)
class AntibioticProfile:
    """Pharmacokinetic and pharmacodynamic parameters of one antibiotic."""
    name: str
    drug_class: AntibioticClass
    half_life: float  # hours
    ec50: float  # mg/L
    hill_coefficient: float
    max_kill_rate: float  # per hour at full effect
    tissue_penetration: float
    gram_positive_coverage: float
    gram_negative_coverage: float
    standard_dose: float  # peak plasma concentration, mg/L
    therapeutic_range: Tuple[float, float]
    nephrotoxicity: float  # per hour at saturating concentration
    hepatotoxicity: float

    def coverage(self, gram_positive: bool) -> float:
        return self.gram_positive_coverage if gram_positive else self.gram_negative_coverage


@dataclass(frozen=True)
class PhageProfile:
    """Therapeutic phage parameters."""
    name: str
    hosts: Tuple[BacterialSpecies, ...]
    strategy: PhageStrategy
    burst_size: int
    latency_period: float  # hours
    adsorption_rate: float
    specificity: float
    resistance_breaking: bool

    def infects(self, species: BacterialSpecies) -> bool:
        return species in self.hosts


def _resistance(beta_lactam, glycopeptide, fluoroquinolone, aminoglycoside, cephalosporin):
    return {
        AntibioticClass.BETA_LACTAM: beta_lactam,
        AntibioticClass.GLYCOPEPTIDE: glycopeptide,
        AntibioticClass.FLUOROQUINOLONE: fluoroquinolone,
        AntibioticClass.AMINOGLYCOSIDE: aminoglycoside,
        AntibioticClass.CEPHALOSPORIN: cephalosporin,
    }


SPECIES_PROFILES: Dict[BacterialSpecies, SpeciesProfile] = {
    BacterialSpecies.S_AUREUS: SpeciesProfile(
        name="Staphylococcus aureus", gram_positive=True, virulence=0.8, division_time=0.5,
        speed=20.0, adherence=0.7, capsule=0.4, toxin_production=0.7, quorum_neighbors=6,
        default_resistance=_resistance(0.7, 0.05, 0.3, 0.2, 0.4),
    ),
    BacterialSpecies.E_COLI: SpeciesProfile(
        name="Escherichia coli", gram_positive=False, virulence=0.6, division_time=0.33,
        speed=60.0, adherence=0.4, capsule=0.3, toxin_production=0.4, quorum_neighbors=4,
        default_resistance=_resistance(0.9, 1.0, 0.35, 0.25, 0.3),
    ),
    BacterialSpecies.P_AERUGINOSA: SpeciesProfile(
        name="Pseudomonas aeruginosa", gram_positive=False, virulence=0.7, division_time=0.58,
        speed=80.0, adherence=0.8, capsule=0.5, toxin_production=0.6, quorum_neighbors=5,
        default_resistance=_resistance(1.0, 1.0, 0.4, 0.35, 0.8),
    ),
    BacterialSpecies.K_PNEUMONIAE: SpeciesProfile(
        name="Klebsiella pneumoniae", gram_positive=False, virulence=0.65, division_time=0.42,
        speed=15.0, adherence=0.5, capsule=0.8, toxin_production=0.3, quorum_neighbors=4,
        default_resistance=_resistance(1.0, 1.0, 0.4, 0.3, 0.45),
    ),
    BacterialSpecies.S_PYOGENES: SpeciesProfile(
        name="Streptococcus pyogenes", gram_positive=True, virulence=0.75, division_time=0.47,
        speed=20.0, adherence=0.6, capsule=0.5, toxin_production=0.8, quorum_neighbors=6,
        default_resistance=_resistance(0.0, 0.0, 0.25, 0.4, 0.05),
    ),
    BacterialSpecies.E_FAECALIS: SpeciesProfile(
        name="Enterococcus faecalis", gram_positive=True, virulence=0.5, division_time=0.55,
        speed=15.0, adherence=0.7, capsule=0.2, toxin_production=0.2, quorum_neighbors=7,
        default_resistance=_resistance(0.4, 0.3, 0.5, 0.6, 1.0),
    ),
}

# Used when a species or strain cannot be resolved
DEFAULT_SPECIES = BacterialSpecies.S_AUREUS
DEFAULT_SPECIES_PROFILE = SPECIES_PROFILES[DEFAULT_SPECIES]

ANTIBIOTIC_PROFILES: Dict[Antibiotic, AntibioticProfile] = {
    Antibiotic.PENICILLIN: AntibioticProfile(
        name="Penicillin G", drug_class=AntibioticClass.BETA_LACTAM, half_life=0.5,
        ec50=0.5, hill_coefficient=2.0, max_kill_rate=4.0, tissue_penetration=0.8,
        gram_positive_coverage=0.8, gram_negative_coverage=0.3, standard_dose=8.0,
        therapeutic_range=(0.1, 10.0), nephrotoxicity=0.002, hepatotoxicity=0.002,
    ),
    Antibiotic.VANCOMYCIN: AntibioticProfile(
        name="Vancomycin", drug_class=AntibioticClass.GLYCOPEPTIDE, half_life=6.0,
        ec50=8.0, hill_coefficient=1.8, max_kill_rate=3.0, tissue_penetration=0.7,
        gram_positive_coverage=0.95, gram_negative_coverage=0.0, standard_dose=25.0,
        therapeutic_range=(10.0, 20.0), nephrotoxicity=0.02, hepatotoxicity=0.002,
    ),
    Antibiotic.CIPROFLOXACIN: AntibioticProfile(
        name="Ciprofloxacin", drug_class=AntibioticClass.FLUOROQUINOLONE, half_life=4.0,
        ec50=0.8, hill_coefficient=1.5, max_kill_rate=6.0, tissue_penetration=0.9,
        gram_positive_coverage=0.7, gram_negative_coverage=0.85, standard_dose=3.0,
        therapeutic_range=(0.5, 3.0), nephrotoxicity=0.003, hepatotoxicity=0.006,
    ),
    Antibiotic.GENTAMICIN: AntibioticProfile(
        name="Gentamicin", drug_class=AntibioticClass.AMINOGLYCOSIDE, half_life=2.0,
        ec50=2.0, hill_coefficient=2.0, max_kill_rate=8.0, tissue_penetration=0.6,
        gram_positive_coverage=0.6, gram_negative_coverage=0.8, standard_dose=10.0,
        therapeutic_range=(4.0, 10.0), nephrotoxicity=0.03, hepatotoxicity=0.001,
    ),
    Antibiotic.CEFTRIAXONE: AntibioticProfile(
        name="Ceftriaxone", drug_class=AntibioticClass.CEPHALOSPORIN, half_life=8.0,
        ec50=10.0, hill_coefficient=1.6, max_kill_rate=5.0, tissue_penetration=0.85,
        gram_positive_coverage=0.85, gram_negative_coverage=0.9, standard_dose=100.0,
        therapeutic_range=(20.0, 100.0), nephrotoxicity=0.002, hepatotoxicity=0.01,
    ),
}

PHAGE_LIBRARY: Dict[PhageLibraryId, PhageProfile] = {
    PhageLibraryId.PHAGE_K: PhageProfile(
        name="Phage K", hosts=(BacterialSpecies.S_AUREUS,), strategy=PhageStrategy.LYTIC,
        burst_size=100, latency_period=0.5, adsorption_rate=0.8, specificity=0.9,
        resistance_breaking=True,
    ),
    PhageLibraryId.T7: PhageProfile(
        name="T7 Phage", hosts=(BacterialSpecies.E_COLI,), strategy=PhageStrategy.LYTIC,
        burst_size=150, latency_period=20.0 / 60.0, adsorption_rate=0.9, specificity=0.95,
        resistance_breaking=False,
    ),
    PhageLibraryId.COCKTAIL_1: PhageProfile(
        name="Phage Cocktail", hosts=(BacterialSpecies.P_AERUGINOSA, BacterialSpecies.K_PNEUMONIAE),
        strategy=PhageStrategy.LYTIC, burst_size=80, latency_period=40.0 / 60.0,
        adsorption_rate=0.7, specificity=0.7, resistance_breaking=True,
    ),
    PhageLibraryId.LAMBDA: PhageProfile(
        name="Lambda-like", hosts=(BacterialSpecies.E_COLI, BacterialSpecies.K_PNEUMONIAE),
        strategy=PhageStrategy.LYSOGENIC, burst_size=50, latency_period=1.0,
        adsorption_rate=0.6, specificity=0.8, resistance_breaking=False,
    ),
}


def _check_tables() -> None:
    """Every enum member must have a profile."""
    for enum_type, table in ((BacterialSpecies, SPECIES_PROFILES),
                             (Antibiotic, ANTIBIOTIC_PROFILES),
                             (PhageLibraryId, PHAGE_LIBRARY)):
        missing = [member for member in enum_type if member not in table]
        if missing:
            raise RuntimeError(f"Missing {enum_type.__name__} profiles: {missing}")
    for species, profile in SPECIES_PROFILES.items():
        if set(profile.default_resistance) != set(AntibioticClass):
            raise RuntimeError(f"Incomplete default resistance for {species.value}")


_check_tables()


def get_species_profile(species: Union[BacterialSpecies, str, None]) -> SpeciesProfile:
    """
    Look up a species profile.

    Unknown species fall back to DEFAULT_SPECIES_PROFILE with a warning.
    """
    resolved = resolve_species(species)
    return SPECIES_PROFILES[resolved]


def resolve_species(species: Union[BacterialSpecies, str, None]) -> BacterialSpecies:
    """Resolve a species name, falling back to DEFAULT_SPECIES when unknown."""
    if isinstance(species, BacterialSpecies):
        return species
    try:
        return BacterialSpecies(species)
    except ValueError:
        logger.warning(
            f"Unknown species profile '{species}', falling back to {DEFAULT_SPECIES.value}"
        )
        return DEFAULT_SPECIES


def parse_antibiotic(antibiotic: Union[Antibiotic, str]) -> Antibiotic:
    """
    Parse an antibiotic id.

    Raises:
        ValueError: If the id is not a known antibiotic
    """
    if isinstance(antibiotic, Antibiotic):
        return antibiotic
    try:
        return Antibiotic(str(antibiotic).lower())
    except ValueError:
        known = ", ".join(member.value for member in Antibiotic)
        raise ValueError(f"Unknown antibiotic '{antibiotic}'. Known antibiotics: {known}")


def parse_phage_library(library: Union[PhageLibraryId, str]) -> PhageLibraryId:
    """
    Parse a phage library id.

    Raises:
        ValueError: If the id is not in the library
    """
    if isinstance(library, PhageLibraryId):
        return library
    try:
        return PhageLibraryId(library)
    except ValueError:
        known = ", ".join(member.value for member in PhageLibraryId)
        raise ValueError(f"Unknown phage library '{library}'. Known phages: {known}")


def select_optimal_phage(
    species: BacterialSpecies,
    crispr: bool = False,
    restriction_modification: bool = False
) -> Optional[PhageLibraryId]:
    """
    Pick the best-scoring phage for a host.

    Score is adsorption × specificity, penalised by the host's phage defences
    and boosted for resistance-breaking phages against CRISPR hosts.
    """
    best_id: Optional[PhageLibraryId] = None
    best_score = 0.0
    for library_id, phage in PHAGE_LIBRARY.items():
        if not phage.infects(species):
            continue
        score = phage.adsorption_rate * phage.specificity
        if crispr:
            score *= 0.3
            if phage.resistance_breaking:
                score *= 1.5
        if restriction_modification:
            score *= 0.5
        if score > best_score:
            best_score = score
            best_id = library_id
    return best_id


def generate_phage_cocktail(species: Iterable[BacterialSpecies], max_phages: int = 3) -> List[PhageLibraryId]:
    """Collect up to ``max_phages`` library phages covering the given hosts."""
    cocktail: List[PhageLibraryId] = []
    covered = set()
    for target in species:
        if target in covered or len(cocktail) >= max_phages:
            continue
        # One phage per uncovered host, best scoring first
        choice = select_optimal_phage(target)
        if choice is not None and choice not in cocktail:
            cocktail.append(choice)
            covered.update(PHAGE_LIBRARY[choice].hosts)
    return cocktail
