"""
Pydantic schemas for simulation configuration commands.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models.profiles import TherapyMode, parse_antibiotic
from utils.validation import (
    validate_antibiotic_concentration,
    validate_carrying_capacity,
    validate_fraction,
    validate_immune_competence,
    validate_initial_population,
    validate_seed,
)


class SimulationConfig(BaseModel):
    """Configuration applied by ``configure`` at the start of the next tick."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "initial_population": 50,
                "species": "S_aureus",
                "antibiotics": ["vancomycin"],
                "therapy_mode": "off",
                "immune_competence": 1.0,
            }
        },
    )

    initial_population: int = Field(
        default=0,
        description="Bacteria seeded at the first tick (0-500)"
    )
    species: str = Field(
        default="S_aureus",
        description="Species of the seeded bacteria; unknown names fall back to S_aureus"
    )
    antibiotics: List[str] = Field(
        default_factory=list,
        description="Antibiotics administered at the standard dose"
    )
    antibiotic_concentration: Optional[float] = Field(
        default=None,
        description="Override of the administered plasma concentration (mg/L)"
    )
    dosing_interval: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Repeat dosing interval in hours"
    )
    therapy_mode: TherapyMode = Field(
        default=TherapyMode.OFF,
        description="Phage therapy mode"
    )
    immune_competence: float = Field(
        default=1.0,
        description="Host immune competence (0 disables recruitment and antibodies)"
    )
    carrying_capacity: Optional[int] = Field(
        default=None,
        description="Maximum bacterial population; defaults to the bacteria cap"
    )
    evolution_enabled: bool = Field(
        default=True,
        description="Enable mutation and horizontal gene transfer"
    )
    atherosclerosis_level: float = Field(
        default=0.0,
        description="Seeded fat deposit burden (0-1)"
    )
    nutrient_supply: float = Field(
        default=1.0,
        ge=0.0,
        le=2.0,
        description="Plasma nutrient supply multiplier"
    )
    nutrient_patches: int = Field(
        default=8,
        ge=0,
        le=50,
        description="Number of local nutrient patches"
    )
    seed: Optional[int] = Field(
        default=None,
        description="Random seed; keeps the current seed when omitted"
    )

    @field_validator('initial_population')
    @classmethod
    def check_initial_population(cls, v):
        return validate_initial_population(v)

    @field_validator('antibiotics')
    @classmethod
    def check_antibiotics(cls, v):
        return [parse_antibiotic(item).value for item in v]

    @field_validator('antibiotic_concentration')
    @classmethod
    def check_concentration(cls, v):
        return v if v is None else validate_antibiotic_concentration(v)

    @field_validator('immune_competence')
    @classmethod
    def check_immune_competence(cls, v):
        return validate_immune_competence(v)

    @field_validator('carrying_capacity')
    @classmethod
    def check_carrying_capacity(cls, v):
        return v if v is None else validate_carrying_capacity(v)

    @field_validator('atherosclerosis_level')
    @classmethod
    def check_atherosclerosis_level(cls, v):
        return validate_fraction(v, "Atherosclerosis level")

    @field_validator('seed')
    @classmethod
    def check_seed(cls, v):
        return v if v is None else validate_seed(v)

    @model_validator(mode='after')
    def check_population_fits(self):
        """Seeded population must fit under the carrying capacity."""
        if self.carrying_capacity is not None and self.initial_population > self.carrying_capacity:
            raise ValueError(
                f"Initial population {self.initial_population} exceeds carrying capacity {self.carrying_capacity}"
            )
        return self
