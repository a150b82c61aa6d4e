"""
Mutation system for bacterial evolution in the bloodstream.

This module models per-locus genome mutation at division: resistance loci,
virulence and surface loci, motility, biofilm capacity, growth rate and the
phage-defence switches. Every mutated value is clamped to its locus range.
"""

from typing import Dict, List, Optional, Any, Tuple, TYPE_CHECKING
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .bacterium import Genome, LOCUS_BOUNDS, RESISTANCE_BOUNDS
from .profiles import AntibioticClass
from utils.numerics import clamp


class MutationType(Enum):
    """Loci families that can mutate."""
    RESISTANCE = "resistance"
    VIRULENCE = "virulence"
    SURFACE = "surface"
    MOTILITY = "motility"
    BIOFILM = "biofilm"
    GROWTH = "growth"
    PHAGE_DEFENSE = "phage_defense"


LOCUS_TYPES: Dict[str, MutationType] = {
    "toxin_production": MutationType.VIRULENCE,
    "capsule": MutationType.SURFACE,
    "adhesins": MutationType.SURFACE,
    "motility": MutationType.MOTILITY,
    "biofilm_genes": MutationType.BIOFILM,
    "growth_rate": MutationType.GROWTH,
    "crispr": MutationType.PHAGE_DEFENSE,
    "restriction_modification": MutationType.PHAGE_DEFENSE,
}


@dataclass
class MutationConfig:
    """Configuration for mutation parameters."""
    mutation_rate: float = 0.001  # Per locus per division
    mutation_step: float = 0.05  # Max shift of a continuous locus
    gene_flip_probability: float = 0.1  # Chance a mutated boolean locus flips

    # Environmental modifier (SOS response under antibiotic stress)
    stress_mutation_multiplier: float = 5.0

    def __post_init__(self):
        """Validate configuration parameters."""
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError("Mutation rate must be between 0.0 and 1.0")
        if self.mutation_step < 0:
            raise ValueError("Mutation step cannot be negative")
        if not 0.0 <= self.gene_flip_probability <= 1.0:
            raise ValueError("Gene flip probability must be between 0.0 and 1.0")
        if self.stress_mutation_multiplier < 1.0:
            raise ValueError("Stress mutation multiplier must be at least 1.0")


@dataclass
class Mutation:
    """Represents a single locus change."""
    locus: str
    mutation_type: MutationType
    old_value: Any
    new_value: Any
    bacterium_id: Optional[int] = None
    tick: int = 0

    @property
    def description(self) -> str:
        if isinstance(self.new_value, bool):
            state = "gained" if self.new_value else "lost"
            return f"{self.locus} {state}"
        return f"{self.locus}: {self.old_value:.3f} -> {self.new_value:.3f}"


class MutationEngine:
    """Engine for generating and applying genome mutations."""

    def __init__(self, config: MutationConfig = None):
        self.config = config or MutationConfig()

    def effective_rate(self, stress: float = 0.0) -> float:
        """Per-locus mutation probability, raised under stress."""
        multiplier = 1.0 + clamp(stress, 0.0, 1.0) * (self.config.stress_mutation_multiplier - 1.0)
        return min(1.0, self.config.mutation_rate * multiplier)

    def mutate(
        self,
        genome: Genome,
        rng: np.random.Generator,
        stress: float = 0.0,
        bacterium_id: Optional[int] = None,
        tick: int = 0
    ) -> List[Mutation]:
        """
        Mutate a genome in place, locus by locus in genome order.

        Args:
            genome: Genome to mutate (typically a daughter's copy)
            rng: Simulation random generator
            stress: Current antibiotic stress (0-1)
            bacterium_id: Owner, recorded on each mutation
            tick: Current tick, recorded on each mutation

        Returns:
            Mutations that changed a value
        """
        rate = self.effective_rate(stress)
        if rate <= 0.0:
            return []
        step = self.config.mutation_step
        mutations: List[Mutation] = []

        for drug_class in AntibioticClass:
            if rng.random() < rate:
                old = genome.resistance[drug_class]
                new = clamp(old + rng.uniform(-step, step), *RESISTANCE_BOUNDS)
                if new != old:
                    genome.resistance[drug_class] = new
                    mutations.append(Mutation(
                        f"resistance.{drug_class.value}", MutationType.RESISTANCE, old, new, bacterium_id, tick
                    ))

        for locus, bounds in LOCUS_BOUNDS.items():
            if rng.random() < rate:
                old = getattr(genome, locus)
                new = clamp(old + rng.uniform(-step, step), *bounds)
                if new != old:
                    setattr(genome, locus, new)
                    mutations.append(Mutation(locus, LOCUS_TYPES[locus], old, new, bacterium_id, tick))

        for locus in ("crispr", "restriction_modification"):
            if rng.random() < rate and rng.random() < self.config.gene_flip_probability:
                old = getattr(genome, locus)
                setattr(genome, locus, not old)
                mutations.append(Mutation(locus, MutationType.PHAGE_DEFENSE, old, not old, bacterium_id, tick))

        return mutations

    @staticmethod
    def changes_strain(mutations: List[Mutation]) -> bool:
        """Resistance or phage-defence changes found a new strain."""
        return any(m.mutation_type in (MutationType.RESISTANCE, MutationType.PHAGE_DEFENSE) for m in mutations)


class MutationTracker:
    """Tracks mutation counts across a run."""

    def __init__(self):
        self.type_counts: Dict[MutationType, int] = {}
        self.total = 0

    def record(self, mutations: List[Mutation]) -> None:
        for mutation in mutations:
            self.type_counts[mutation.mutation_type] = self.type_counts.get(mutation.mutation_type, 0) + 1
        self.total += len(mutations)

    def get_mutation_statistics(self) -> Dict[str, Any]:
        return {
            "total_mutations": self.total,
            "mutation_types": {k.value: v for k, v in self.type_counts.items()},
        }
