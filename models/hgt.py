"""
Horizontal Gene Transfer (HGT) implementation for the bloodstream simulation.

Bacteria in contact with a bacterium of a different strain may acquire part
of its resistance profile (plasmid conjugation). Lysogens can additionally
pass resistance over a longer range through transducing phage particles.
Contacts are found through the spatial index built for the current tick.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from .bacterium import Bacterium
from .profiles import AntibioticClass
from .spatial import SpatialIndex
from utils.numerics import clamp, event_probability

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


class HGTMechanism(Enum):
    """Types of horizontal gene transfer mechanisms."""
    CONJUGATION = "conjugation"  # Direct cell contact via pili
    TRANSDUCTION = "transduction"  # Transfer via prophage-derived particles


@dataclass
class HGTConfig:
    """Configuration for horizontal gene transfer simulation."""

    # Attempt rate per bacterium per hour
    hgt_rate: float = 0.02

    # Distance thresholds (µm)
    contact_radius: float = 5.0
    transduction_radius: float = 20.0
    transduction_multiplier: float = 0.5

    # Per resistance locus
    gene_transfer_chance: float = 0.3
    transfer_fraction: float = 1.0  # 1.0 copies the donor level outright

    # Environmental factors
    stress_factor_multiplier: float = 2.0  # Increase HGT under antibiotic stress

    # Genetic compatibility factors
    same_species_multiplier: float = 1.0
    different_species_multiplier: float = 0.5

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.hgt_rate < 0:
            raise ValueError("HGT rate cannot be negative")
        if self.contact_radius <= 0 or self.transduction_radius < self.contact_radius:
            raise ValueError("Transduction radius must be at least the (positive) contact radius")
        for name in ("gene_transfer_chance", "transfer_fraction", "transduction_multiplier",
                     "same_species_multiplier", "different_species_multiplier"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0")
        if self.stress_factor_multiplier < 1.0:
            raise ValueError("Stress factor multiplier must be at least 1.0")


@dataclass
class HGTEvent:
    """Record of a horizontal gene transfer event."""
    tick: int
    donor_id: int
    recipient_id: int
    mechanism: HGTMechanism
    distance: float
    genes_transferred: List[str] = field(default_factory=list)
    recipient_strain: str = ""

    def to_dict(self) -> Dict:
        """Convert event to dictionary for serialization."""
        return {
            "tick": self.tick,
            "donor_id": self.donor_id,
            "recipient_id": self.recipient_id,
            "mechanism": self.mechanism.value,
            "distance": self.distance,
            "genes_transferred": list(self.genes_transferred),
            "recipient_strain": self.recipient_strain,
        }


class GeneTransferEngine:
    """Engine for contact-driven resistance transfer between strains."""

    def __init__(self, config: HGTConfig = None):
        self.config = config or HGTConfig()

    def attempt_probability(self, recipient: Bacterium, stress: float, dt: float) -> float:
        stress_multiplier = 1.0 + clamp(stress, 0.0, 1.0) * (self.config.stress_factor_multiplier - 1.0)
        return event_probability(self.config.hgt_rate * stress_multiplier, dt)

    def find_donor(
        self,
        state: 'SimulationState',
        index: SpatialIndex,
        recipient: Bacterium
    ) -> Optional[Tuple[Bacterium, HGTMechanism, float]]:
        """
        Nearest alive bacterium of a different strain in range.

        Conjugation partners (contact radius) win over transducing lysogens
        further away; ties break on lowest id.
        """
        cfg = self.config
        best: Optional[Tuple[int, float, int, HGTMechanism]] = None
        for candidate_id in index.query_radius(recipient.position, cfg.transduction_radius):
            donor = state.bacteria.get(candidate_id)
            if donor is None or donor.id == recipient.id or not donor.is_alive():
                continue
            if donor.strain_id == recipient.strain_id:
                continue
            distance = recipient.position.distance_to(donor.position)
            if distance <= cfg.contact_radius:
                mechanism = HGTMechanism.CONJUGATION
            elif donor.is_lysogen:
                mechanism = HGTMechanism.TRANSDUCTION
            else:
                continue
            rank = (0 if mechanism == HGTMechanism.CONJUGATION else 1, distance, candidate_id, mechanism)
            if best is None or rank[:3] < best[:3]:
                best = rank
        if best is None:
            return None
        _, distance, donor_id, mechanism = best
        return state.bacteria[donor_id], mechanism, distance

    def transfer(
        self,
        state: 'SimulationState',
        donor: Bacterium,
        recipient: Bacterium,
        mechanism: HGTMechanism
    ) -> List[str]:
        """
        Copy resistance loci from donor to recipient.

        Each class transfers with ``gene_transfer_chance`` (scaled by species
        compatibility and mechanism) and only ever raises the recipient's level.
        """
        cfg = self.config
        chance = cfg.gene_transfer_chance
        chance *= cfg.same_species_multiplier if donor.species == recipient.species else cfg.different_species_multiplier
        if mechanism == HGTMechanism.TRANSDUCTION:
            chance *= cfg.transduction_multiplier

        transferred = []
        for drug_class in AntibioticClass:
            if state.rng.random() >= chance:
                continue
            own = recipient.genome.resistance[drug_class]
            theirs = donor.genome.resistance[drug_class]
            if theirs <= own:
                continue
            recipient.genome.resistance[drug_class] = clamp(own + cfg.transfer_fraction * (theirs - own), 0.0, 1.0)
            transferred.append(drug_class.value)
        return transferred

    def execute_round(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> List[HGTEvent]:
        """
        Run one tick of horizontal transfer over the population.

        Returns:
            Successful transfer events
        """
        events: List[HGTEvent] = []
        for recipient in list(state.bacteria.values()):
            if not recipient.is_alive():
                continue
            stress = state.antibiotic_stress.get(recipient.id, 0.0)
            if state.rng.random() >= self.attempt_probability(recipient, stress, dt):
                continue
            match = self.find_donor(state, index, recipient)
            if match is None:
                continue
            donor, mechanism, distance = match
            genes = self.transfer(state, donor, recipient, mechanism)
            if not genes:
                continue
            recipient.strain_id = state.new_strain_id(recipient.species)
            events.append(HGTEvent(
                tick=state.tick,
                donor_id=donor.id,
                recipient_id=recipient.id,
                mechanism=mechanism,
                distance=distance,
                genes_transferred=genes,
                recipient_strain=recipient.strain_id,
            ))
        if events:
            logger.debug(f"{len(events)} HGT events at tick {state.tick}")
        return events
