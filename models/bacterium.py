"""
Bacterium class for individual bacterial cells in the bloodstream simulation.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from .profiles import AntibioticClass, BacterialSpecies, SpeciesProfile, PhageLibraryId
from .spatial import Vector3


# Valid range per continuous genome locus
LOCUS_BOUNDS: Dict[str, tuple] = {
    "toxin_production": (0.0, 1.0),
    "capsule": (0.0, 1.0),
    "adhesins": (0.0, 1.0),
    "motility": (0.0, 1.0),
    "biofilm_genes": (0.0, 1.0),
    "growth_rate": (0.5, 1.5),
}
RESISTANCE_BOUNDS = (0.0, 1.0)


@dataclass
class Genome:
    """
    Ordered set of mutable trait loci.

    Attributes:
        resistance: Resistance factor (0-1) per antibiotic class
        toxin_production: Exotoxin output (0-1)
        capsule: Polysaccharide capsule thickness; evades phagocytosis (0-1)
        adhesins: Surface adhesins; drive wall adherence (0-1)
        motility: Flagellar motility multiplier (0-1)
        biofilm_genes: Capacity to form biofilm (0-1)
        growth_rate: Division-rate multiplier (0.5-1.5)
        crispr: CRISPR phage defence
        restriction_modification: Restriction-modification phage defence
    """
    resistance: Dict[AntibioticClass, float] = field(
        default_factory=lambda: {drug_class: 0.0 for drug_class in AntibioticClass}
    )
    toxin_production: float = 0.5
    capsule: float = 0.3
    adhesins: float = 0.5
    motility: float = 0.5
    biofilm_genes: float = 0.3
    growth_rate: float = 1.0
    crispr: bool = False
    restriction_modification: bool = False

    @classmethod
    def from_profile(cls, profile: SpeciesProfile) -> 'Genome':
        """Build the wild-type genome of a species."""
        return cls(
            resistance=dict(profile.default_resistance),
            toxin_production=profile.toxin_production,
            capsule=profile.capsule,
            adhesins=profile.adherence,
            motility=1.0 if profile.speed >= 50.0 else 0.5,
            biofilm_genes=profile.adherence * 0.6,
        )

    @staticmethod
    def continuous_loci() -> List[str]:
        """Names of the continuous loci in genome order."""
        return list(LOCUS_BOUNDS)

    def copy(self) -> 'Genome':
        return Genome(
            resistance=dict(self.resistance),
            toxin_production=self.toxin_production,
            capsule=self.capsule,
            adhesins=self.adhesins,
            motility=self.motility,
            biofilm_genes=self.biofilm_genes,
            growth_rate=self.growth_rate,
            crispr=self.crispr,
            restriction_modification=self.restriction_modification,
        )

    @property
    def mean_resistance(self) -> float:
        return sum(self.resistance.values()) / len(self.resistance)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resistance": {k.value: v for k, v in self.resistance.items()},
            "toxin_production": self.toxin_production,
            "capsule": self.capsule,
            "adhesins": self.adhesins,
            "motility": self.motility,
            "biofilm_genes": self.biofilm_genes,
            "growth_rate": self.growth_rate,
            "crispr": self.crispr,
            "restriction_modification": self.restriction_modification,
        }


@dataclass
class Bacterium:
    """
    Individual bacterium in the bloodstream.

    Attributes:
        id: Unique entity identifier
        species: Bacterial species
        strain_id: Strain identifier; changes when resistance loci mutate
        position: Position in the vessel (µm)
        velocity: Velocity (µm/h)
        genome: Mutable trait loci
        integrity: Cell wall / outer membrane integrity (0-1); zero kills
        energy: Metabolic energy (0-1); zero kills
        age: Age in hours
        generation: Generations since seeding
        parent_id: ID of the mother cell (lineage tracking)
    """

    id: int
    species: BacterialSpecies
    strain_id: str
    position: Vector3 = field(default_factory=Vector3)
    velocity: Vector3 = field(default_factory=Vector3)
    genome: Genome = field(default_factory=Genome)
    integrity: float = 1.0
    energy: float = 0.8
    age: float = 0.0
    generation: int = 0
    parent_id: Optional[int] = None

    # Behavioural state
    adherent: bool = False
    biofilm: bool = False
    opsonized: bool = False
    phage_infected: Optional[PhageLibraryId] = None
    lysis_timer: float = 0.0
    prophage: Optional[PhageLibraryId] = None

    # Set when killed outright (phagocytosis, lysis, antibiotic, antibody)
    death_cause: Optional[str] = None

    def is_alive(self) -> bool:
        """A bacterium dies when integrity or energy reaches zero, or when killed."""
        return self.death_cause is None and self.integrity > 0.0 and self.energy > 0.0

    def kill(self, cause: str) -> None:
        """Mark the bacterium dead; it is removed at the end of the tick."""
        if self.death_cause is None:
            self.death_cause = cause

    def resistance_to(self, drug_class: AntibioticClass) -> float:
        """Resistance factor against a drug class."""
        return self.genome.resistance.get(drug_class, 0.0)

    @property
    def is_lysogen(self) -> bool:
        return self.prophage is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "species": self.species.value,
            "strain_id": self.strain_id,
            "position": self.position.as_tuple(),
            "integrity": self.integrity,
            "energy": self.energy,
            "age": self.age,
            "generation": self.generation,
            "biofilm": self.biofilm,
            "genome": self.genome.to_dict(),
        }

    def __str__(self) -> str:
        return (f"Bacterium(id={self.id}, species={self.species.value}, "
                f"strain={self.strain_id}, integrity={self.integrity:.2f}, energy={self.energy:.2f})")

    def __repr__(self) -> str:
        return self.__str__()
