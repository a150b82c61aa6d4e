"""
Population seeding and division for the bloodstream bacteria.
"""

import logging
import math
from typing import List, Optional, TYPE_CHECKING
from dataclasses import dataclass

from .bacterium import Bacterium, Genome
from .entities import FatDeposit, Nutrient
from .profiles import BacterialSpecies, get_species_profile, resolve_species
from .spatial import Vector3, apply_boundaries
from utils.rng import jitter, random_point

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


@dataclass
class PopulationConfig:
    """Configuration for growth, metabolism and quorum sensing."""

    # Reproduction
    reproduction_energy_threshold: float = 0.6
    survival_floor: float = 0.2  # minimum integrity to divide
    daughter_offset: float = 1.0  # µm

    # Metabolism (per hour)
    uptake_rate: float = 0.5
    basal_cost: float = 0.1
    stress_energy_cost: float = 0.3
    integrity_repair_rate: float = 0.05
    plasma_nutrient: float = 0.8
    patch_bonus: float = 0.2
    feeding_radius: float = 40.0  # µm
    patch_consumption: float = 0.01  # amount per bacterium-hour
    patch_refill_rate: float = 0.5  # 1/h

    # Movement
    flow_advection: float = 20.0  # µm/h per L/min of flow
    wall_contact_distance: float = 10.0
    adhesion_rate: float = 0.5  # 1/h at full adhesins

    # Quorum sensing
    quorum_interval: int = 10  # ticks
    quorum_radius: float = 30.0
    biofilm_gene_threshold: float = 0.3

    # Seeding
    seed_margin: float = 10.0

    def __post_init__(self):
        """Validate configuration parameters."""
        if not 0 < self.reproduction_energy_threshold <= 1:
            raise ValueError("Reproduction energy threshold must be in (0, 1]")
        if not 0 <= self.survival_floor < 1:
            raise ValueError("Survival floor must be in [0, 1)")
        if self.quorum_interval < 1:
            raise ValueError("Quorum interval must be at least one tick")
        if self.quorum_radius <= 0 or self.feeding_radius <= 0:
            raise ValueError("Radii must be positive")
        if self.uptake_rate < 0 or self.basal_cost < 0:
            raise ValueError("Metabolic rates cannot be negative")


def create_bacterium(
    state: 'SimulationState',
    species: BacterialSpecies,
    position: Vector3,
    strain_id: Optional[str] = None
) -> Bacterium:
    """Create a wild-type bacterium and add it to the state."""
    profile = get_species_profile(species)
    bacterium = Bacterium(
        id=state.new_id(),
        species=species,
        strain_id=strain_id or state.new_strain_id(species),
        position=position,
        genome=Genome.from_profile(profile),
    )
    state.bacteria[bacterium.id] = bacterium
    return bacterium


def seed_bacteria(
    state: 'SimulationState',
    species,
    count: int,
    config: PopulationConfig = None
) -> List[Bacterium]:
    """
    Seed ``count`` wild-type bacteria of one strain at random positions.

    Unknown species fall back to the default profile. Seeding never exceeds
    the carrying capacity.

    Returns:
        Bacteria created
    """
    config = config or PopulationConfig()
    species = resolve_species(species)
    room = state.params.carrying_capacity - state.alive_bacteria_count()
    if count > room:
        logger.warning(f"Seeding {count} bacteria would exceed carrying capacity; seeding {max(0, room)}")
        count = max(0, room)
    if count <= 0:
        return []

    strain_id = state.new_strain_id(species)
    created = [
        create_bacterium(
            state, species, Vector3(*random_point(state.rng, state.world_size, config.seed_margin)), strain_id
        )
        for _ in range(count)
    ]
    logger.info(f"Seeded {len(created)} {species.value} bacteria as strain {strain_id}")
    return created


def seed_nutrients(state: 'SimulationState', count: int, config: PopulationConfig = None) -> List[Nutrient]:
    """Place nutrient patches along the vessel."""
    config = config or PopulationConfig()
    patches = []
    for _ in range(count):
        patch = Nutrient(
            id=state.new_id(),
            position=Vector3(*random_point(state.rng, state.world_size, config.seed_margin)),
        )
        state.nutrients[patch.id] = patch
        patches.append(patch)
    return patches


def seed_fat_deposits(state: 'SimulationState', level: float) -> List[FatDeposit]:
    """Seed wall deposits in proportion to the atherosclerosis level (0-1)."""
    count = int(round(10 * level))
    width, height, depth = state.world_size
    deposits = []
    for _ in range(count):
        position = Vector3(
            float(state.rng.uniform(0.0, width)),
            float(state.rng.choice([0.0, height])),
            float(state.rng.uniform(0.0, depth)),
        )
        deposit = FatDeposit(id=state.new_id(), position=position, size=10.0 + 20.0 * level)
        state.fat_deposits[deposit.id] = deposit
        deposits.append(deposit)
    if deposits:
        logger.info(f"Seeded {len(deposits)} fat deposits (atherosclerosis level {level:.2f})")
    return deposits


def reproduction_probability(
    bacterium: Bacterium,
    fitness: float,
    population: int,
    carrying_capacity: int,
    dt: float
) -> float:
    """
    Division probability over ``dt``.

    1 - exp(-growth_rate * ln2 / division_time * fitness * (1 - N/K) * dt);
    zero at or above carrying capacity.
    """
    if carrying_capacity <= 0 or population >= carrying_capacity:
        return 0.0
    division_time = get_species_profile(bacterium.species).division_time
    rate = bacterium.genome.growth_rate * math.log(2.0) / division_time
    rate *= fitness * (1.0 - population / carrying_capacity)
    if rate <= 0.0:
        return 0.0
    return 1.0 - math.exp(-rate * dt)


def divide(state: 'SimulationState', mother: Bacterium, config: PopulationConfig = None) -> Bacterium:
    """
    Split a bacterium in two.

    The daughter inherits a copy of the genome and wall integrity; energy is
    shared equally. Mutation is applied by the caller.
    """
    config = config or PopulationConfig()
    mother.energy /= 2.0
    position = Vector3(*jitter(state.rng, mother.position.as_tuple(), config.daughter_offset))
    apply_boundaries(position, None, state.world_size)
    daughter = Bacterium(
        id=state.new_id(),
        species=mother.species,
        strain_id=mother.strain_id,
        position=position,
        genome=mother.genome.copy(),
        integrity=mother.integrity,
        energy=mother.energy,
        generation=mother.generation + 1,
        parent_id=mother.id,
        prophage=mother.prophage,
    )
    state.bacteria[daughter.id] = daughter
    return daughter
