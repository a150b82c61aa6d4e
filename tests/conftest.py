"""
Pytest fixtures for engine and controller testing.
"""

import pytest

from models.population import create_bacterium
from models.profiles import BacterialSpecies
from models.spatial import SpatialIndex, Vector3
from models.state import RunParameters, SimulationState
from services.simulation_service import SimulationController
from utils.rng import create_generator


@pytest.fixture
def rng():
    """Seeded random generator."""
    return create_generator(42)


@pytest.fixture
def run_params():
    """Run parameters with a small carrying capacity."""
    return RunParameters(seed=42, carrying_capacity=200)


@pytest.fixture
def sim_state(run_params):
    """Empty simulation state with baseline physiology."""
    return SimulationState.create(run_params)


@pytest.fixture
def add_bacterium(sim_state):
    """Factory placing a wild-type bacterium into ``sim_state``."""
    def _add(x=500.0, y=150.0, z=150.0, species=BacterialSpecies.S_AUREUS, strain_id=None):
        return create_bacterium(sim_state, species, Vector3(x, y, z), strain_id)
    return _add


@pytest.fixture
def index_for(sim_state):
    """Factory building a spatial index over the current state."""
    def _build():
        index = SpatialIndex(sim_state.world_size)
        index.rebuild(sim_state.positioned_entities())
        return index
    return _build


@pytest.fixture
def controller():
    """Idle controller with the default seed."""
    return SimulationController(seed=42)


@pytest.fixture
def growth_config():
    """Configuration for an untreated infection in an immunocompromised host."""
    return {
        "initial_population": 20,
        "species": "S_aureus",
        "immune_competence": 0.0,
        "carrying_capacity": 200,
        "seed": 7,
    }
