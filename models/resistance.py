"""
Resistance Cost Calculation.

Carrying resistance determinants and phage-defence systems costs the cell
growth. The cost enters the fitness function as a stress term.
"""

from typing import Dict
from dataclasses import dataclass

from .bacterium import Genome


@dataclass
class ResistanceCostConfig:
    """Configuration for resistance cost calculations."""

    # Cost per unit of resistance, summed over drug classes
    per_resistance_cost: float = 0.1

    # Fixed costs of phage defence systems
    crispr_cost: float = 0.15
    restriction_modification_cost: float = 0.1

    # Upper bound on the total cost
    max_cost: float = 0.5

    def validate(self) -> None:
        """Validate configuration parameters."""
        costs = [self.per_resistance_cost, self.crispr_cost, self.restriction_modification_cost]
        if any(cost < 0 or cost > 1 for cost in costs):
            raise ValueError("Costs must be between 0.0 and 1.0")
        if not 0 <= self.max_cost <= 1:
            raise ValueError("Max cost must be between 0.0 and 1.0")


class ResistanceCostCalculator:
    """Computes the fitness cost of a genome's resistance and defence loci."""

    def __init__(self, config: ResistanceCostConfig = None):
        self.config = config or ResistanceCostConfig()
        self.config.validate()

    def cost_breakdown(self, genome: Genome) -> Dict[str, float]:
        """Cost per contributing determinant (before the cap)."""
        return {
            "resistance": self.config.per_resistance_cost * sum(genome.resistance.values()),
            "crispr": self.config.crispr_cost if genome.crispr else 0.0,
            "restriction_modification": (
                self.config.restriction_modification_cost if genome.restriction_modification else 0.0
            ),
        }

    def calculate_cost(self, genome: Genome) -> float:
        """Total fitness cost, capped at ``max_cost``."""
        return min(self.config.max_cost, sum(self.cost_breakdown(genome).values()))
