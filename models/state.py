"""
Simulation state container.

One ``SimulationState`` holds everything that changes during a run: entity
collections keyed by integer id, the physiological records, drug states, the
chemokine field, the strain registry and the random generator. The
controller owns it and hands it to each engine for one phase of a tick;
engines never keep a reference between ticks.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import numpy as np

from .bacterium import Bacterium
from .diagnostics import OrganDamage, PatientVitals, SimulationStats
from .entities import Antibody, Clot, FatDeposit, ImmuneCell, Nutrient, Phage
from .immune import InflammatoryState, chemokine_grid_shape
from .mutation import MutationTracker
from .pharmacology import DrugState
from .physiology import BloodRheology, CardiovascularState
from .profiles import Antibiotic, BacterialSpecies, DEFAULT_SPECIES, TherapyMode
from .spatial import Vector3
from config.settings import settings
from utils.rng import create_generator

logger = logging.getLogger(__name__)


@dataclass
class RunParameters:
    """Run-level parameters set through ``configure``."""
    species: BacterialSpecies = DEFAULT_SPECIES
    initial_population: int = 0
    immune_competence: float = 1.0
    carrying_capacity: int = settings.max_bacteria
    max_immune_cells: int = settings.max_immune_cells
    max_phages: int = settings.max_phages
    max_antibodies: int = settings.max_antibodies
    therapy_mode: TherapyMode = TherapyMode.OFF
    evolution_enabled: bool = True
    atherosclerosis_level: float = 0.0
    nutrient_supply: float = 1.0
    nutrient_patches: int = 8
    seed: int = settings.default_seed


@dataclass
class SimulationState:
    """
    Mutable state of one simulation run.

    Entity dicts are filled in id order, and ids come from a single monotonic
    counter, so iterating any dict visits entities in creation order.
    """
    world_size: Tuple[float, float, float]
    params: RunParameters
    rng: np.random.Generator
    chemokine_field: np.ndarray

    bacteria: Dict[int, Bacterium] = field(default_factory=dict)
    immune_cells: Dict[int, ImmuneCell] = field(default_factory=dict)
    antibodies: Dict[int, Antibody] = field(default_factory=dict)
    phages: Dict[int, Phage] = field(default_factory=dict)
    clots: Dict[int, Clot] = field(default_factory=dict)
    fat_deposits: Dict[int, FatDeposit] = field(default_factory=dict)
    nutrients: Dict[int, Nutrient] = field(default_factory=dict)

    cardiovascular: CardiovascularState = field(default_factory=CardiovascularState)
    rheology: BloodRheology = field(default_factory=BloodRheology)
    inflammatory: InflammatoryState = field(default_factory=InflammatoryState)
    organ_damage: OrganDamage = field(default_factory=OrganDamage)
    vitals: PatientVitals = field(default_factory=PatientVitals)
    stats: SimulationStats = field(default_factory=SimulationStats)
    sepsis_score: float = 0.0

    drugs: Dict[Antibiotic, DrugState] = field(default_factory=dict)
    strain_exposure: Dict[str, float] = field(default_factory=dict)
    antibiotic_stress: Dict[int, float] = field(default_factory=dict)
    immune_pressure: float = 0.0
    death_counts: Dict[str, int] = field(default_factory=dict)
    mutation_tracker: MutationTracker = field(default_factory=MutationTracker)

    tick: int = 0
    elapsed: float = 0.0
    seeded: bool = False
    next_id: int = 1
    strain_counters: Dict[BacterialSpecies, int] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        params: Optional[RunParameters] = None,
        world_size: Tuple[float, float, float] = settings.world_size,
        voxel_size: float = 100.0
    ) -> 'SimulationState':
        """Fresh state with baseline physiology and a newly seeded generator."""
        params = params or RunParameters()
        return cls(
            world_size=tuple(world_size),
            params=params,
            rng=create_generator(params.seed),
            chemokine_field=np.zeros(chemokine_grid_shape(world_size, voxel_size)),
        )

    def new_id(self) -> int:
        """Allocate the next entity id."""
        entity_id = self.next_id
        self.next_id += 1
        return entity_id

    def new_strain_id(self, species: BacterialSpecies) -> str:
        """Allocate the next strain label of a species, e.g. ``S_aureus-002``."""
        number = self.strain_counters.get(species, 0) + 1
        self.strain_counters[species] = number
        return f"{species.value}-{number:03d}"

    def alive_bacteria_count(self) -> int:
        return sum(1 for bacterium in self.bacteria.values() if bacterium.is_alive())

    @staticmethod
    def alive_count(collection: Dict[int, Any]) -> int:
        return sum(1 for entity in collection.values() if entity.is_alive())

    def collections(self) -> List[Dict[int, Any]]:
        return [self.bacteria, self.immune_cells, self.antibodies, self.phages,
                self.clots, self.fat_deposits, self.nutrients]

    def positioned_entities(self) -> List[Tuple[int, Vector3]]:
        """(id, position) of every alive entity, sorted by id."""
        entries = [
            (entity_id, entity.position)
            for collection in self.collections()
            for entity_id, entity in collection.items()
            if entity.is_alive()
        ]
        entries.sort(key=lambda entry: entry[0])
        return entries

    def compact(self) -> List[Bacterium]:
        """
        Remove dead entities from every collection.

        Returns:
            Bacteria removed this call, in id order
        """
        dead_bacteria = [b for b in self.bacteria.values() if not b.is_alive()]
        for bacterium in dead_bacteria:
            cause = bacterium.death_cause or ("starvation" if bacterium.energy <= 0.0 else "cell_wall_failure")
            self.death_counts[cause] = self.death_counts.get(cause, 0) + 1
            del self.bacteria[bacterium.id]

        removed = len(dead_bacteria)
        for collection in self.collections()[1:]:
            dead_ids = [entity_id for entity_id, entity in collection.items() if not entity.is_alive()]
            for entity_id in dead_ids:
                del collection[entity_id]
            removed += len(dead_ids)
        if removed:
            logger.debug(f"Compacted {removed} dead entities at tick {self.tick}")
        return dead_bacteria
