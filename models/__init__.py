"""
Models package for the bloodstream infection simulation.

This package contains the entity records and the engines for:
- Spatial indexing of the vessel volume
- Bacteria, immune cells, antibodies, phages, clots and nutrients
- Cardiovascular physiology and blood rheology
- Antibiotic pharmacokinetics and pharmacodynamics
- Innate and adaptive immune response
- Bacterial growth, mutation and horizontal gene transfer
- Phage therapy
- Clinical diagnostics
"""

from .bacterium import Bacterium, Genome
from .diagnostics import DiagnosticsEngine, OrganDamage, PatientVitals, SepsisWeights, SimulationStats
from .entities import Antibody, Clot, EntityKind, FatDeposit, ImmuneCell, ImmuneCellType, Nutrient, Phage
from .errors import ConfigurationError, InvariantViolationError, SimulationError
from .evolution import BacterialEvolutionEngine
from .hgt import GeneTransferEngine, HGTConfig, HGTEvent, HGTMechanism
from .immune import ImmuneResponseEngine, InflammatoryState
from .pharmacology import DrugState, PharmacologyEngine
from .phage import PhageTherapyEngine
from .physiology import BloodRheology, CardiovascularState, PhysiologyEngine
from .profiles import Antibiotic, AntibioticClass, BacterialSpecies, PhageLibraryId, TherapyMode
from .spatial import BoundaryCondition, SpatialIndex, Vector3
from .state import RunParameters, SimulationState

__all__ = [
    # Entities
    "Bacterium", "Genome", "ImmuneCell", "ImmuneCellType", "Antibody", "Phage",
    "Clot", "FatDeposit", "Nutrient", "EntityKind",

    # Profiles
    "BacterialSpecies", "Antibiotic", "AntibioticClass", "PhageLibraryId", "TherapyMode",

    # Spatial system
    "SpatialIndex", "Vector3", "BoundaryCondition",

    # State
    "SimulationState", "RunParameters", "CardiovascularState", "BloodRheology",
    "InflammatoryState", "DrugState", "OrganDamage", "PatientVitals", "SimulationStats",

    # Engines
    "PhysiologyEngine", "PharmacologyEngine", "ImmuneResponseEngine", "BacterialEvolutionEngine",
    "GeneTransferEngine", "HGTConfig", "HGTEvent", "HGTMechanism", "PhageTherapyEngine",
    "DiagnosticsEngine", "SepsisWeights",

    # Errors
    "SimulationError", "InvariantViolationError", "ConfigurationError",
]
