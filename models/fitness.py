"""
Fitness Value Computation.

Reproductive fitness of a bacterium is nutrient availability minus stress.
Stress combines antibiotic effect, immune pressure, the metabolic burden of
toxin production and the cost of carried resistance.
"""

from typing import Dict, Optional
from dataclasses import dataclass, field
from enum import Enum

from .bacterium import Bacterium
from .resistance import ResistanceCostCalculator, ResistanceCostConfig
from utils.numerics import clamp


class FitnessComponent(Enum):
    """Types of fitness components."""
    NUTRIENT = "nutrient"        # Nutrient availability
    ANTIBIOTIC = "antibiotic"    # Drug stress
    IMMUNE = "immune"            # Phagocyte pressure
    TOXIN = "toxin"              # Toxin production burden
    RESISTANCE = "resistance"    # Resistance/defence cost


@dataclass
class FitnessWeights:
    """Weights for the stress components."""

    antibiotic: float = 1.0
    immune: float = 0.3
    toxin: float = 0.1
    resistance: float = 1.0

    def validate(self) -> None:
        """Validate weight values."""
        weights = [self.antibiotic, self.immune, self.toxin, self.resistance]
        if any(w < 0 for w in weights):
            raise ValueError("All fitness weights must be non-negative")


@dataclass
class FitnessConfig:
    """Configuration for fitness calculations."""

    weights: FitnessWeights = field(default_factory=FitnessWeights)
    resistance_costs: ResistanceCostConfig = field(default_factory=ResistanceCostConfig)

    # Fitness bounds
    min_fitness: float = 0.0
    max_fitness: float = 1.0

    def validate(self) -> None:
        """Validate configuration parameters."""
        self.weights.validate()
        self.resistance_costs.validate()
        if not 0 <= self.min_fitness < self.max_fitness:
            raise ValueError("Invalid fitness bounds")


@dataclass
class FitnessCalculationResult:
    """Result of a fitness calculation."""
    final_fitness: float
    component_values: Dict[FitnessComponent, float] = field(default_factory=dict)

    @property
    def total_stress(self) -> float:
        return sum(v for k, v in self.component_values.items() if k != FitnessComponent.NUTRIENT)


class FitnessCalculator:
    """Computes bacterial fitness from local conditions."""

    def __init__(self, config: FitnessConfig = None):
        self.config = config or FitnessConfig()
        self.config.validate()
        self.resistance_calculator = ResistanceCostCalculator(self.config.resistance_costs)

    def calculate_fitness(
        self,
        bacterium: Bacterium,
        nutrient_availability: float,
        antibiotic_stress: float = 0.0,
        immune_pressure: float = 0.0
    ) -> FitnessCalculationResult:
        """
        Calculate fitness for one bacterium.

        Args:
            bacterium: Bacterium to evaluate
            nutrient_availability: Local nutrient level (0-1)
            antibiotic_stress: Strongest drug effect on this cell this tick (0-1)
            immune_pressure: Systemic phagocyte pressure (0-1)

        Returns:
            Fitness clamped to the configured bounds with its components
        """
        weights = self.config.weights
        components = {
            FitnessComponent.NUTRIENT: clamp(nutrient_availability, 0.0, 1.0),
            FitnessComponent.ANTIBIOTIC: weights.antibiotic * clamp(antibiotic_stress, 0.0, 1.0),
            FitnessComponent.IMMUNE: weights.immune * clamp(immune_pressure, 0.0, 1.0),
            FitnessComponent.TOXIN: weights.toxin * bacterium.genome.toxin_production,
            FitnessComponent.RESISTANCE: weights.resistance * self.resistance_calculator.calculate_cost(bacterium.genome),
        }
        result = FitnessCalculationResult(final_fitness=0.0, component_values=components)
        raw = components[FitnessComponent.NUTRIENT] - result.total_stress
        result.final_fitness = clamp(raw, self.config.min_fitness, self.config.max_fitness)
        return result
