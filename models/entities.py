"""
Non-bacterial entities of the bloodstream simulation.

Immune cells, antibodies, phages, clots, fat deposits and nutrient patches.
Every entity carries an integer id from the shared id counter of the
simulation state and a position in the vessel volume.
"""

from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from .profiles import PhageLibraryId
from .spatial import Vector3


class EntityKind(Enum):
    """Entity categories exposed to renderers."""
    BACTERIUM = "bacterium"
    IMMUNE_CELL = "immune_cell"
    ANTIBODY = "antibody"
    PHAGE = "phage"
    CLOT = "clot"
    FAT_DEPOSIT = "fat_deposit"
    NUTRIENT = "nutrient"


class ImmuneCellType(Enum):
    """Types of immune cells."""
    NEUTROPHIL = "neutrophil"
    MACROPHAGE = "macrophage"
    T_CELL = "t_cell"
    B_CELL = "b_cell"

    @property
    def is_phagocyte(self) -> bool:
        return self in (ImmuneCellType.NEUTROPHIL, ImmuneCellType.MACROPHAGE)


class AntibodyType(Enum):
    """Immunoglobulin isotypes produced by B-cells."""
    IGM = "IgM"
    IGG = "IgG"


# Lifespan (hours) and speed (µm/h) per immune cell type
IMMUNE_LIFESPANS: Dict[ImmuneCellType, float] = {
    ImmuneCellType.NEUTROPHIL: 300.0,
    ImmuneCellType.MACROPHAGE: 2400.0,
    ImmuneCellType.T_CELL: 8760.0,
    ImmuneCellType.B_CELL: 8760.0,
}

IMMUNE_SPEEDS: Dict[ImmuneCellType, float] = {
    ImmuneCellType.NEUTROPHIL: 1200.0,
    ImmuneCellType.MACROPHAGE: 600.0,
    ImmuneCellType.T_CELL: 400.0,
    ImmuneCellType.B_CELL: 300.0,
}


@dataclass
class ImmuneCell:
    """
    Immune cell patrolling the bloodstream.

    ``recruited_from`` is the chemokine-field voxel that triggered recruitment.
    It is a lookup key, the field itself stays owned by the simulation state.
    """
    id: int
    cell_type: ImmuneCellType
    position: Vector3 = field(default_factory=Vector3)
    velocity: Vector3 = field(default_factory=Vector3)
    activation: float = 0.2
    energy: float = 1.0
    age: float = 0.0
    lifespan: float = 300.0
    failed_engagements: int = 0
    phagocytosed_count: int = 0
    target_id: Optional[int] = None
    recruited_from: Optional[Tuple[int, int, int]] = None
    foam_cell: bool = False
    alive: bool = True

    def is_alive(self) -> bool:
        return self.alive and self.energy > 0.0 and self.age < self.lifespan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "cell_type": self.cell_type.value,
            "position": self.position.as_tuple(),
            "activation": self.activation,
            "energy": self.energy,
            "phagocytosed_count": self.phagocytosed_count,
        }


@dataclass
class Antibody:
    """Antibody targeting one bacterial strain."""
    id: int
    antibody_type: AntibodyType
    target_strain: str
    position: Vector3 = field(default_factory=Vector3)
    neutralization_capacity: float = 0.3
    remaining_lifetime: float = 24.0
    consumed: bool = False

    def is_alive(self) -> bool:
        return not self.consumed and self.remaining_lifetime > 0.0


@dataclass
class Phage:
    """Therapeutic or burst-released bacteriophage."""
    id: int
    library_id: PhageLibraryId
    position: Vector3 = field(default_factory=Vector3)
    lifetime_remaining: float = 2.0
    attached_to: Optional[int] = None
    generation: int = 0
    destroyed: bool = False

    def is_alive(self) -> bool:
        if self.destroyed:
            return False
        # Attached phages live on inside the host until lysis
        return self.attached_to is not None or self.lifetime_remaining > 0.0


@dataclass
class Clot:
    """Intravascular clot partially occluding the vessel."""
    id: int
    position: Vector3 = field(default_factory=Vector3)
    radius: float = 10.0
    fibrin: float = 0.5
    occlusion: float = 0.05
    age: float = 0.0

    def is_alive(self) -> bool:
        return self.fibrin > 0.0


@dataclass
class FatDeposit:
    """Atherosclerotic lipid deposit on the vessel wall."""
    id: int
    position: Vector3 = field(default_factory=Vector3)
    size: float = 10.0
    oxidized: bool = False
    foam_cells: int = 0
    rupture_risk: float = 0.0

    def is_alive(self) -> bool:
        return self.size > 0.0


@dataclass
class Nutrient:
    """
    Local nutrient patch delivered by blood flow.

    A depleted patch stays in place and is refilled at the supply rate.
    """
    id: int
    position: Vector3 = field(default_factory=Vector3)
    amount: float = 1.0
    capacity: float = 1.0

    def is_alive(self) -> bool:
        return self.amount >= 0.0
