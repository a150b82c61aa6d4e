"""
Host immune response.

This module covers the innate and adaptive arms of the simulation:

- systemic cytokines (TNF-α, IL-6, IL-1β, IL-10) and endotoxin, each relaxing
  toward a production/clearance balance;
- a coarse chemokine field on a voxel grid, deposited by bacteria and
  smoothed with scipy.ndimage, which places recruited phagocytes and steers
  them when no bacterium is in sensing range;
- phagocyte movement, phagocytosis and exhaustion, resolved through the
  spatial index;
- per-strain adaptive lag, B-cell antibody production (IgM, then IgG after
  class switch), antibody neutralization and opsonization;
- T-cell help and foam-cell formation on oxidized fat deposits.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
from dataclasses import dataclass, asdict

import numpy as np
from scipy import ndimage

from .bacterium import Bacterium
from .entities import (
    Antibody, AntibodyType, ImmuneCell, ImmuneCellType, IMMUNE_LIFESPANS, IMMUNE_SPEEDS
)
from .profiles import get_species_profile
from .spatial import SpatialIndex, Vector3, apply_boundaries
from utils.numerics import clamp, event_probability, relax, saturating
from utils.rng import jitter, random_unit_vector

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


@dataclass
class InflammatoryState:
    """Systemic inflammatory mediators (pg/mL; endotoxin in EU/mL)."""
    tnf_alpha: float = 0.0
    il6: float = 0.0
    il1_beta: float = 0.0
    il10: float = 0.0
    endotoxin: float = 0.0

    @property
    def total_cytokines(self) -> float:
        return self.tnf_alpha + self.il6 + self.il1_beta + self.il10

    @property
    def pro_inflammatory(self) -> float:
        return self.tnf_alpha + self.il6 + self.il1_beta

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["total_cytokines"] = self.total_cytokines
        return data


@dataclass
class ImmuneConfig:
    """Configuration for immune response parameters."""

    # Cytokine kinetics (production per hour, clearance 1/h)
    tnf_per_bacterium: float = 1.0
    tnf_per_endotoxin: float = 10.0
    tnf_per_macrophage: float = 5.0
    tnf_clearance: float = 0.8
    il6_per_tnf: float = 0.5
    il6_per_bacterium: float = 0.2
    il6_clearance: float = 0.4
    il1_per_endotoxin: float = 8.0
    il1_per_macrophage: float = 3.0
    il1_per_bacterium: float = 0.3
    il1_clearance: float = 0.7
    il10_per_tnf: float = 0.3
    il10_clearance: float = 0.3
    endotoxin_per_lysis: float = 0.05
    endotoxin_clearance: float = 0.5

    # Chemokine field
    voxel_size: float = 100.0  # µm
    chemokine_deposit: float = 1.0  # per bacterium-hour, virulence weighted
    chemokine_decay: float = 0.5  # 1/h
    chemokine_diffusion: float = 2.0  # 1/h blend toward smoothed field

    # Recruitment
    recruitment_threshold: float = 20.0  # total cytokine
    recruitment_rate: float = 0.05  # cells/h per unit cytokine above threshold
    neutrophil_fraction: float = 0.7
    recruitment_spread: float = 30.0  # µm

    # Movement and phagocytosis
    sensing_radius: float = 150.0
    engagement_radius: float = 12.0
    phagocytosis_base: float = 0.3
    capsule_evasion: float = 1.0
    opsonization_bonus: float = 1.5
    activation_gain: float = 0.1
    activation_baseline: float = 0.2
    activation_decay: float = 0.05  # 1/h
    failure_energy_cost: float = 0.15

    # Adaptive immunity
    antibody_delay: float = 24.0  # hours from first exposure of a strain
    class_switch_delay: float = 72.0
    b_cell_target: int = 4
    t_cell_target: int = 4
    antibody_rate: float = 2.0  # antibodies/h per B-cell
    antibody_speed: float = 200.0  # µm/h
    binding_radius: float = 15.0
    igm_neutralization: float = 0.3
    igg_neutralization: float = 0.5
    igm_lifetime: float = 48.0
    igg_lifetime: float = 96.0
    t_cell_help_radius: float = 80.0
    t_cell_help_rate: float = 0.2  # activation/h

    # Atherosclerosis
    foam_cell_rate: float = 0.5  # 1/h

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.engagement_radius <= 0 or self.sensing_radius < self.engagement_radius:
            raise ValueError("Sensing radius must be at least the (positive) engagement radius")
        if not 0 <= self.neutrophil_fraction <= 1:
            raise ValueError("Neutrophil fraction must be between 0.0 and 1.0")
        if not 0 < self.phagocytosis_base <= 1:
            raise ValueError("Base phagocytosis probability must be in (0, 1]")
        if self.antibody_delay < 0 or self.class_switch_delay < 0:
            raise ValueError("Adaptive delays cannot be negative")
        if self.voxel_size <= 0:
            raise ValueError("Voxel size must be positive")


def chemokine_grid_shape(world_size: Tuple[float, float, float], voxel_size: float) -> Tuple[int, int, int]:
    """Voxel grid dimensions covering the world volume."""
    return tuple(max(1, int(np.ceil(extent / voxel_size))) for extent in world_size)


class ImmuneResponseEngine:
    """Engine for cytokine signalling, recruitment, phagocytosis and antibodies."""

    def __init__(self, config: ImmuneConfig = None):
        self.config = config or ImmuneConfig()

    # ------------------------------------------------------------------
    # Inflammation
    # ------------------------------------------------------------------
    def release_endotoxin(self, state: 'SimulationState', dead: List[Bacterium]) -> None:
        """Gram-negative deaths shed LPS into the blood."""
        for bacterium in dead:
            if get_species_profile(bacterium.species).releases_endotoxin:
                state.inflammatory.endotoxin += self.config.endotoxin_per_lysis

    def update_cytokines(self, state: 'SimulationState', dt: float) -> None:
        """
        Relax each cytokine toward its production/clearance balance.

        Targets are non-decreasing in bacterial load, so under a growing
        infection every mediator rises monotonically.
        """
        cfg = self.config
        inflammation = state.inflammatory
        load = sum(
            get_species_profile(b.species).virulence
            for b in state.bacteria.values() if b.is_alive()
        )
        macrophage_activation = sum(
            cell.activation for cell in state.immune_cells.values()
            if cell.cell_type == ImmuneCellType.MACROPHAGE and cell.is_alive()
        )

        tnf_target = (cfg.tnf_per_bacterium * load
                      + cfg.tnf_per_endotoxin * inflammation.endotoxin
                      + cfg.tnf_per_macrophage * macrophage_activation) / cfg.tnf_clearance
        inflammation.tnf_alpha = max(0.0, relax(inflammation.tnf_alpha, tnf_target, cfg.tnf_clearance, dt))

        il6_target = (cfg.il6_per_tnf * inflammation.tnf_alpha + cfg.il6_per_bacterium * load) / cfg.il6_clearance
        inflammation.il6 = max(0.0, relax(inflammation.il6, il6_target, cfg.il6_clearance, dt))

        il1_target = (cfg.il1_per_endotoxin * inflammation.endotoxin
                      + cfg.il1_per_macrophage * macrophage_activation
                      + cfg.il1_per_bacterium * load) / cfg.il1_clearance
        inflammation.il1_beta = max(0.0, relax(inflammation.il1_beta, il1_target, cfg.il1_clearance, dt))

        il10_target = cfg.il10_per_tnf * inflammation.tnf_alpha / cfg.il10_clearance
        inflammation.il10 = max(0.0, relax(inflammation.il10, il10_target, cfg.il10_clearance, dt))

        inflammation.endotoxin = max(0.0, relax(inflammation.endotoxin, 0.0, cfg.endotoxin_clearance, dt))

    def update_chemokine_field(self, state: 'SimulationState', dt: float) -> None:
        """Deposit, decay and diffuse the chemokine field."""
        cfg = self.config
        field = state.chemokine_field
        shape = field.shape
        for bacterium in state.bacteria.values():
            if not bacterium.is_alive():
                continue
            voxel = self.voxel_of(bacterium.position, shape)
            field[voxel] += cfg.chemokine_deposit * get_species_profile(bacterium.species).virulence * dt
        field *= np.exp(-cfg.chemokine_decay * dt)
        blend = min(1.0, cfg.chemokine_diffusion * dt)
        if blend > 0:
            smoothed = ndimage.uniform_filter(field, size=3, mode="nearest")
            field *= (1.0 - blend)
            field += blend * smoothed

    def voxel_of(self, position: Vector3, shape: Tuple[int, ...]) -> Tuple[int, int, int]:
        size = self.config.voxel_size
        return tuple(
            int(clamp(value // size, 0, extent - 1))
            for value, extent in zip(position.as_tuple(), shape)
        )

    def voxel_center(self, voxel: Tuple[int, int, int]) -> Vector3:
        size = self.config.voxel_size
        return Vector3(*((index + 0.5) * size for index in voxel))

    def hotspot(self, state: 'SimulationState') -> Tuple[int, int, int]:
        """Voxel with the highest chemokine concentration (first on ties)."""
        field = state.chemokine_field
        return tuple(int(i) for i in np.unravel_index(int(np.argmax(field)), field.shape))

    # ------------------------------------------------------------------
    # Recruitment
    # ------------------------------------------------------------------
    def recruit(self, state: 'SimulationState', dt: float) -> int:
        """
        Spawn phagocytes in proportion to cytokine excess, plus lymphocytes
        once the adaptive lag for any strain has elapsed.

        Returns:
            Number of cells recruited
        """
        cfg = self.config
        competence = state.params.immune_competence
        if competence <= 0:
            return 0

        recruited = 0
        capacity = state.params.max_immune_cells - state.alive_count(state.immune_cells)
        excess = state.inflammatory.total_cytokines - cfg.recruitment_threshold
        if excess > 0 and capacity > 0:
            expected = cfg.recruitment_rate * competence * excess * dt
            count = min(int(state.rng.poisson(expected)), capacity)
            if count:
                voxel = self.hotspot(state)
                for _ in range(count):
                    is_neutrophil = state.rng.random() < cfg.neutrophil_fraction
                    cell_type = ImmuneCellType.NEUTROPHIL if is_neutrophil else ImmuneCellType.MACROPHAGE
                    self._spawn_cell(state, cell_type, voxel)
                recruited += count

        if self.eligible_strains(state):
            for cell_type, target in ((ImmuneCellType.B_CELL, cfg.b_cell_target),
                                      (ImmuneCellType.T_CELL, cfg.t_cell_target)):
                present = sum(1 for cell in state.immune_cells.values()
                              if cell.cell_type == cell_type and cell.is_alive())
                wanted = int(round(target * competence))
                if present < wanted and state.alive_count(state.immune_cells) < state.params.max_immune_cells:
                    self._spawn_cell(state, cell_type, self.hotspot(state))
                    recruited += 1
        return recruited

    def _spawn_cell(self, state: 'SimulationState', cell_type: ImmuneCellType, voxel: Tuple[int, int, int]) -> ImmuneCell:
        center = self.voxel_center(voxel)
        position = Vector3(*jitter(state.rng, center.as_tuple(), self.config.recruitment_spread))
        apply_boundaries(position, None, state.world_size)
        cell = ImmuneCell(
            id=state.new_id(),
            cell_type=cell_type,
            position=position,
            activation=self.config.activation_baseline,
            lifespan=IMMUNE_LIFESPANS[cell_type],
            recruited_from=voxel,
        )
        state.immune_cells[cell.id] = cell
        return cell

    # ------------------------------------------------------------------
    # Adaptive immunity
    # ------------------------------------------------------------------
    def record_exposures(self, state: 'SimulationState') -> None:
        """Register the first exposure time of every strain present."""
        for bacterium in state.bacteria.values():
            if bacterium.is_alive() and bacterium.strain_id not in state.strain_exposure:
                state.strain_exposure[bacterium.strain_id] = state.elapsed

    def eligible_strains(self, state: 'SimulationState') -> List[str]:
        """Strains whose adaptive lag has elapsed, sorted for deterministic choice."""
        if state.params.immune_competence <= 0:
            return []
        return sorted(
            strain for strain, first_seen in state.strain_exposure.items()
            if state.elapsed - first_seen >= self.config.antibody_delay
        )

    def produce_antibodies(self, state: 'SimulationState', dt: float) -> int:
        """B-cells secrete antibodies against strains past the adaptive lag."""
        cfg = self.config
        strains = self.eligible_strains(state)
        if not strains:
            return 0
        produced = 0
        for cell in state.immune_cells.values():
            if cell.cell_type != ImmuneCellType.B_CELL or not cell.is_alive():
                continue
            count = int(state.rng.poisson(cfg.antibody_rate * dt))
            for _ in range(count):
                if state.alive_count(state.antibodies) >= state.params.max_antibodies:
                    return produced
                strain = strains[int(state.rng.integers(len(strains)))]
                exposure_age = state.elapsed - state.strain_exposure[strain]
                switched = exposure_age >= cfg.class_switch_delay
                antibody = Antibody(
                    id=state.new_id(),
                    antibody_type=AntibodyType.IGG if switched else AntibodyType.IGM,
                    target_strain=strain,
                    position=cell.position.copy(),
                    neutralization_capacity=cfg.igg_neutralization if switched else cfg.igm_neutralization,
                    remaining_lifetime=cfg.igg_lifetime if switched else cfg.igm_lifetime,
                )
                state.antibodies[antibody.id] = antibody
                produced += 1
        return produced

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------
    def update(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> Dict[str, int]:
        """
        Run one immune phase.

        Returns:
            Event counts for the tick
        """
        self.update_cytokines(state, dt)
        self.update_chemokine_field(state, dt)
        self.record_exposures(state)

        events = {"recruited": 0, "phagocytosed": 0, "neutralized": 0, "antibodies": 0}
        gradient = np.gradient(state.chemokine_field) if min(state.chemokine_field.shape) > 1 else None

        for cell in state.immune_cells.values():
            if not cell.is_alive():
                continue
            cell.age += dt
            cell.activation = relax(cell.activation, self.config.activation_baseline, self.config.activation_decay, dt)
            if cell.cell_type.is_phagocyte and not cell.foam_cell:
                if self._hunt(state, index, cell, gradient, dt):
                    events["phagocytosed"] += 1
            else:
                self._patrol(state, cell, gradient, IMMUNE_SPEEDS[cell.cell_type] * dt)
                if cell.cell_type == ImmuneCellType.T_CELL:
                    self._t_cell_help(state, index, cell, dt)

        events["neutralized"] = self._update_antibodies(state, index, dt)
        self._form_foam_cells(state, index, dt)
        events["antibodies"] = self.produce_antibodies(state, dt)
        events["recruited"] = self.recruit(state, dt)
        state.immune_pressure = saturating(
            float(sum(1 for c in state.immune_cells.values() if c.cell_type.is_phagocyte and c.is_alive())),
            20.0,
        )
        return events

    def _alive_bacterium(self, state: 'SimulationState', entity_id: int) -> bool:
        bacterium = state.bacteria.get(entity_id)
        return bacterium is not None and bacterium.is_alive()

    def _hunt(self, state: 'SimulationState', index: SpatialIndex, cell: ImmuneCell,
              gradient: Optional[List[np.ndarray]], dt: float) -> bool:
        cfg = self.config
        # Antibody-coated bacteria within sensing range are chased first
        target_id = index.nearest(
            cell.position, cfg.sensing_radius,
            lambda i: self._alive_bacterium(state, i) and state.bacteria[i].opsonized,
        )
        if target_id is None:
            target_id = index.nearest(
                cell.position, cfg.sensing_radius, lambda i: self._alive_bacterium(state, i)
            )
        cell.target_id = target_id
        step = IMMUNE_SPEEDS[cell.cell_type] * dt
        if target_id is None:
            self._patrol(state, cell, gradient, step)
            return False

        target = state.bacteria[target_id]
        cell.position.step_toward(target.position, step)
        if cell.position.distance_to(target.position) > cfg.engagement_radius:
            return False
        return self.attempt_phagocytosis(state, cell, target)

    def phagocytosis_probability(self, cell: ImmuneCell, bacterium: Bacterium) -> float:
        """Capture probability from activation, capsule evasion and opsonization."""
        cfg = self.config
        probability = cfg.phagocytosis_base * (0.5 + cell.activation)
        probability *= 1.0 - bacterium.genome.capsule * cfg.capsule_evasion
        if bacterium.opsonized:
            probability *= cfg.opsonization_bonus
        return clamp(probability, 0.01, 0.9)

    def attempt_phagocytosis(self, state: 'SimulationState', cell: ImmuneCell, bacterium: Bacterium) -> bool:
        """Resolve one engagement; failure drains the cell's energy."""
        if state.rng.random() < self.phagocytosis_probability(cell, bacterium):
            bacterium.kill("phagocytosis")
            cell.activation = clamp(cell.activation + self.config.activation_gain, 0.0, 1.0)
            cell.phagocytosed_count += 1
            cell.target_id = None
            return True
        cell.failed_engagements += 1
        cell.energy = max(0.0, cell.energy - self.config.failure_energy_cost)
        if cell.energy <= 0.0:
            cell.alive = False
            logger.debug(f"Immune cell {cell.id} exhausted after {cell.failed_engagements} failed engagements")
        return False

    def _patrol(self, state: 'SimulationState', cell: ImmuneCell,
                gradient: Optional[List[np.ndarray]], step: float) -> None:
        """Climb the chemokine gradient, or wander when it is flat."""
        direction = None
        if gradient is not None:
            voxel = self.voxel_of(cell.position, state.chemokine_field.shape)
            vector = np.array([g[voxel] for g in gradient], dtype=float)
            norm = float(np.linalg.norm(vector))
            if norm > 1e-12:
                direction = vector / norm
        if direction is None:
            direction = random_unit_vector(state.rng)
        cell.position.x += float(direction[0]) * step
        cell.position.y += float(direction[1]) * step
        cell.position.z += float(direction[2]) * step
        apply_boundaries(cell.position, cell.velocity, state.world_size)

    def _t_cell_help(self, state: 'SimulationState', index: SpatialIndex, cell: ImmuneCell, dt: float) -> None:
        for other_id in sorted(index.query_radius(cell.position, self.config.t_cell_help_radius)):
            other = state.immune_cells.get(other_id)
            if other is not None and other.cell_type.is_phagocyte and other.is_alive():
                other.activation = clamp(other.activation + self.config.t_cell_help_rate * dt, 0.0, 1.0)

    def _update_antibodies(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> int:
        cfg = self.config
        neutralized = 0
        for antibody in state.antibodies.values():
            if not antibody.is_alive():
                continue
            antibody.remaining_lifetime -= dt
            target_id = index.nearest(
                antibody.position, cfg.sensing_radius,
                lambda i: self._alive_bacterium(state, i) and state.bacteria[i].strain_id == antibody.target_strain,
            )
            if target_id is None:
                direction = random_unit_vector(state.rng)
                antibody.position.x += direction[0] * cfg.antibody_speed * dt
                antibody.position.y += direction[1] * cfg.antibody_speed * dt
                antibody.position.z += direction[2] * cfg.antibody_speed * dt
                apply_boundaries(antibody.position, None, state.world_size)
                continue
            target = state.bacteria[target_id]
            antibody.position.step_toward(target.position, cfg.antibody_speed * dt)
            if antibody.position.distance_to(target.position) > cfg.binding_radius:
                continue
            antibody.consumed = True
            if state.rng.random() < antibody.neutralization_capacity:
                target.kill("antibody")
                neutralized += 1
            else:
                target.opsonized = True
        return neutralized

    def _form_foam_cells(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> None:
        probability = event_probability(self.config.foam_cell_rate, dt)
        for deposit in state.fat_deposits.values():
            if not deposit.oxidized:
                continue
            radius = deposit.size + self.config.engagement_radius
            for cell_id in sorted(index.query_radius(deposit.position, radius)):
                cell = state.immune_cells.get(cell_id)
                if (cell is None or cell.cell_type != ImmuneCellType.MACROPHAGE
                        or cell.foam_cell or not cell.is_alive()):
                    continue
                if state.rng.random() < probability:
                    cell.foam_cell = True
                    cell.activation = self.config.activation_baseline
                    deposit.foam_cells += 1
