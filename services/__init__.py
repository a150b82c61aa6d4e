"""
Services package for the simulation controller.
"""

from .simulation_service import SimulationController, SimulationEngines

__all__ = [
    'SimulationController',
    'SimulationEngines',
]
