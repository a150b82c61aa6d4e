"""
Engine settings and configuration.
"""

import os
from typing import Tuple

class Settings:
    """Engine settings"""

    # Engine identity
    engine_title: str = "Bacteremia Simulation Engine"
    engine_version: str = "1.0.0"
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # World volume (µm): x runs along the vessel, y/z across it
    world_size: Tuple[float, float, float] = (1000.0, 300.0, 300.0)

    # Time stepping (hours)
    default_dt: float = float(os.getenv("DEFAULT_DT", str(1.0 / 60.0)))
    max_speed: float = float(os.getenv("MAX_SPEED", "20.0"))

    # Entity caps
    max_bacteria: int = int(os.getenv("MAX_BACTERIA", "500"))
    max_immune_cells: int = int(os.getenv("MAX_IMMUNE_CELLS", "200"))
    max_phages: int = int(os.getenv("MAX_PHAGES", "600"))
    max_antibodies: int = int(os.getenv("MAX_ANTIBODIES", "300"))
    max_initial_population: int = 500

    # Spatial index
    octree_max_entities: int = 8
    octree_max_depth: int = 6

    # Reproducibility
    default_seed: int = int(os.getenv("SIMULATION_SEED", "42"))

    # Logging Configuration
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

# Create global settings instance
settings = Settings()
