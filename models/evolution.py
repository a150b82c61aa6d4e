"""
Bacterial evolution engine.

Runs the bacterial phase of a tick: movement with flow advection and wall
adhesion, metabolism from plasma and local nutrient patches, quorum sensing
and biofilm formation, fitness-limited reproduction with mutation, horizontal
gene transfer and death.
"""

import logging
from typing import Dict, List, TYPE_CHECKING

from .bacterium import Bacterium
from .fitness import FitnessCalculator, FitnessConfig
from .hgt import GeneTransferEngine, HGTConfig, HGTEvent
from .mutation import MutationConfig, MutationEngine
from .population import PopulationConfig, divide, reproduction_probability
from .profiles import get_species_profile
from .spatial import SpatialIndex, apply_boundaries
from utils.numerics import clamp, event_probability
from utils.rng import random_unit_vector

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


class BacterialEvolutionEngine:
    """Engine for bacterial movement, growth, evolution and death."""

    def __init__(
        self,
        population_config: PopulationConfig = None,
        mutation_config: MutationConfig = None,
        hgt_config: HGTConfig = None,
        fitness_config: FitnessConfig = None
    ):
        self.config = population_config or PopulationConfig()
        self.mutation_engine = MutationEngine(mutation_config)
        self.hgt_engine = GeneTransferEngine(hgt_config)
        self.fitness_calculator = FitnessCalculator(fitness_config)

    def update(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> Dict[str, int]:
        """
        Run the bacterial phase of one tick.

        The spatial index reflects positions at the start of the tick.

        Returns:
            Event counts for the tick
        """
        self.move(state, dt)
        self.refill_nutrients(state, dt)
        availability = self.metabolize(state, index, dt)
        biofilm = 0
        if state.tick % self.config.quorum_interval == 0:
            biofilm = self.quorum_sensing(state, index)
        births, mutations = self.reproduce(state, availability, dt)

        hgt_events: List[HGTEvent] = []
        if state.params.evolution_enabled:
            hgt_events = self.hgt_engine.execute_round(state, index, dt)

        deaths = self.mark_deaths(state)
        return {
            "births": births,
            "mutations": mutations,
            "hgt_events": len(hgt_events),
            "new_biofilm": biofilm,
            "deaths": deaths,
        }

    def move(self, state: 'SimulationState', dt: float) -> None:
        """Random walk plus advection along +x; adherent cells stay put."""
        cfg = self.config
        flow_speed = cfg.flow_advection * state.rheology.flow_rate
        _, height, depth = state.world_size
        for bacterium in state.bacteria.values():
            if not bacterium.is_alive() or bacterium.adherent:
                continue
            speed = get_species_profile(bacterium.species).speed * bacterium.genome.motility
            direction = random_unit_vector(state.rng)
            bacterium.velocity.x = direction[0] * speed + flow_speed
            bacterium.velocity.y = direction[1] * speed
            bacterium.velocity.z = direction[2] * speed
            bacterium.position.x += bacterium.velocity.x * dt
            bacterium.position.y += bacterium.velocity.y * dt
            bacterium.position.z += bacterium.velocity.z * dt
            apply_boundaries(bacterium.position, bacterium.velocity, state.world_size)

            position = bacterium.position
            wall_distance = min(position.y, height - position.y, position.z, depth - position.z)
            if wall_distance <= cfg.wall_contact_distance:
                rate = cfg.adhesion_rate * bacterium.genome.adhesins
                if state.rng.random() < event_probability(rate, dt):
                    bacterium.adherent = True

    def refill_nutrients(self, state: 'SimulationState', dt: float) -> None:
        """Blood flow refills patches toward capacity at the supply rate."""
        refill = self.config.patch_refill_rate * state.params.nutrient_supply * dt
        for patch in state.nutrients.values():
            patch.amount = min(patch.capacity, patch.amount + refill)

    def metabolize(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> Dict[int, float]:
        """
        Update energy, integrity and age from nutrient availability and stress.

        Returns:
            Nutrient availability (0-1) per bacterium id
        """
        cfg = self.config
        plasma = cfg.plasma_nutrient * state.params.nutrient_supply
        availability: Dict[int, float] = {}
        for bacterium in state.bacteria.values():
            if not bacterium.is_alive():
                continue
            local = plasma
            patch_id = index.nearest(
                bacterium.position, cfg.feeding_radius,
                lambda i: i in state.nutrients and state.nutrients[i].amount > 0.0,
            )
            if patch_id is not None:
                patch = state.nutrients[patch_id]
                patch.amount = max(0.0, patch.amount - cfg.patch_consumption * dt)
                local += cfg.patch_bonus
            local = clamp(local, 0.0, 1.0)
            availability[bacterium.id] = local

            stress = state.antibiotic_stress.get(bacterium.id, 0.0)
            gain = cfg.uptake_rate * local
            cost = cfg.basal_cost + cfg.stress_energy_cost * stress
            bacterium.energy = clamp(bacterium.energy + (gain - cost) * dt, 0.0, 1.0)
            if stress <= 0.0:
                bacterium.integrity = min(1.0, bacterium.integrity + cfg.integrity_repair_rate * dt)
            bacterium.age += dt
        return availability

    def quorum_sensing(self, state: 'SimulationState', index: SpatialIndex) -> int:
        """
        Switch crowded bacteria with biofilm capacity into biofilm.

        Returns:
            Bacteria that entered biofilm
        """
        cfg = self.config
        entered = 0
        for bacterium in state.bacteria.values():
            if not bacterium.is_alive() or bacterium.biofilm:
                continue
            if bacterium.genome.biofilm_genes <= cfg.biofilm_gene_threshold:
                continue
            neighbours = sum(
                1 for other_id in index.query_radius(bacterium.position, cfg.quorum_radius)
                if other_id != bacterium.id
                and other_id in state.bacteria and state.bacteria[other_id].is_alive()
            )
            if neighbours >= get_species_profile(bacterium.species).quorum_neighbors:
                bacterium.biofilm = True
                bacterium.adherent = True
                entered += 1
        if entered:
            logger.debug(f"{entered} bacteria entered biofilm at tick {state.tick}")
        return entered

    def fitness_of(self, state: 'SimulationState', bacterium: Bacterium, availability: float) -> float:
        return self.fitness_calculator.calculate_fitness(
            bacterium,
            availability,
            antibiotic_stress=state.antibiotic_stress.get(bacterium.id, 0.0),
            immune_pressure=state.immune_pressure,
        ).final_fitness

    def reproduce(self, state: 'SimulationState', availability: Dict[int, float], dt: float) -> tuple:
        """
        Divide eligible bacteria without ever passing carrying capacity.

        Returns:
            (births, mutations) for the tick
        """
        cfg = self.config
        capacity = state.params.carrying_capacity
        population = state.alive_bacteria_count()
        births = 0
        mutation_count = 0

        for mother in list(state.bacteria.values()):
            if population >= capacity:
                break
            if mother.id not in availability or not mother.is_alive():
                continue
            if mother.energy <= cfg.reproduction_energy_threshold or mother.integrity <= cfg.survival_floor:
                continue
            fitness = self.fitness_of(state, mother, availability[mother.id])
            probability = reproduction_probability(mother, fitness, population, capacity, dt)
            if state.rng.random() >= probability:
                continue

            daughter = divide(state, mother, cfg)
            population += 1
            births += 1
            if state.params.evolution_enabled:
                stress = state.antibiotic_stress.get(mother.id, 0.0)
                mutations = self.mutation_engine.mutate(daughter.genome, state.rng, stress, daughter.id, state.tick)
                if mutations:
                    state.mutation_tracker.record(mutations)
                    mutation_count += len(mutations)
                    if MutationEngine.changes_strain(mutations):
                        daughter.strain_id = state.new_strain_id(daughter.species)
        return births, mutation_count

    def mark_deaths(self, state: 'SimulationState') -> int:
        """Record the cause for bacteria that ran out of energy or integrity."""
        deaths = 0
        for bacterium in state.bacteria.values():
            if bacterium.death_cause is not None:
                continue
            if bacterium.energy <= 0.0:
                bacterium.kill("starvation")
                deaths += 1
            elif bacterium.integrity <= 0.0:
                bacterium.kill("cell_wall_failure")
                deaths += 1
        return deaths
