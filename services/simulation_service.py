"""
Simulation controller for the bloodstream infection engine.

The controller owns the simulation state, the spatial index and the engines,
and runs the per-tick pipeline:

1. apply queued commands
2. physiology (hemodynamics, rheology, coagulation)
3. spatial index rebuild and consistency check
4. immune response, pharmacology, phage therapy
5. bacterial evolution (movement, growth, mutation, transfer, death)
6. compaction of dead entities
7. diagnostics
8. snapshot

A tick runs on a deep copy of the state and is committed only when every
phase succeeds. Commands are validated when issued and take effect at the
start of the next tick.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from config.settings import settings
from models.diagnostics import DiagnosticsEngine
from models.errors import ConfigurationError, InvariantViolationError, SimulationError
from models.evolution import BacterialEvolutionEngine
from models.immune import ImmuneResponseEngine
from models.pharmacology import PharmacologyEngine
from models.phage import PhageTherapyEngine
from models.physiology import PhysiologyEngine
from models.population import seed_bacteria, seed_fat_deposits, seed_nutrients
from models.profiles import (
    TherapyMode, parse_antibiotic, parse_phage_library, resolve_species
)
from models.spatial import SpatialIndex
from models.state import RunParameters, SimulationState
from schemas.errors import CommandResult
from schemas.simulation import SimulationConfig
from schemas.snapshot import SimulationSnapshot, build_snapshot
from utils.rng import create_generator
from utils.state_manager import ControllerState, LifecycleManager
from utils.validation import validate_initial_population, validate_speed, validate_time_step

logger = logging.getLogger(__name__)


@dataclass
class SimulationEngines:
    """The engines run by the controller, one per subsystem."""
    physiology: PhysiologyEngine = field(default_factory=PhysiologyEngine)
    pharmacology: PharmacologyEngine = field(default_factory=PharmacologyEngine)
    immune: ImmuneResponseEngine = field(default_factory=ImmuneResponseEngine)
    phage: PhageTherapyEngine = field(default_factory=PhageTherapyEngine)
    evolution: BacterialEvolutionEngine = field(default_factory=BacterialEvolutionEngine)
    diagnostics: DiagnosticsEngine = field(default_factory=DiagnosticsEngine)


class SimulationController:
    """Controller managing one bloodstream infection simulation."""

    def __init__(
        self,
        seed: Optional[int] = None,
        debug: Optional[bool] = None,
        world_size: Optional[Tuple[float, float, float]] = None
    ):
        """
        Create an idle controller with baseline physiology and no entities.

        Args:
            seed: Random seed (defaults to ``settings.default_seed``)
            debug: Raise on spatial index desync instead of self-healing
                (defaults to ``settings.debug``)
            world_size: Vessel volume in µm (defaults to ``settings.world_size``)

        Raises:
            ConfigurationError: If the world size is not three positive extents
        """
        self.debug = settings.debug if debug is None else debug
        self.world_size = tuple(world_size or settings.world_size)
        if len(self.world_size) != 3 or any(extent <= 0 for extent in self.world_size):
            raise ConfigurationError(f"World size must be three positive extents, got {self.world_size}")
        self.params = RunParameters(seed=settings.default_seed if seed is None else seed)
        self.lifecycle = LifecycleManager()
        self._pending: List[Tuple[str, Any]] = []
        self._initialize()

    def _initialize(self) -> None:
        """Fresh engines, index and state for the current parameters."""
        self.speed = 1.0
        self.engines = SimulationEngines()
        self.index = SpatialIndex(
            self.world_size,
            max_entities=settings.octree_max_entities,
            max_depth=settings.octree_max_depth,
        )
        self._state = SimulationState.create(
            copy.deepcopy(self.params),
            self.world_size,
            self.engines.immune.config.voxel_size,
        )
        self._snapshot = build_snapshot(self._state, self.lifecycle.state.value, self.speed)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def state(self) -> ControllerState:
        return self.lifecycle.state

    def snapshot(self) -> SimulationSnapshot:
        """Immutable view of the last committed tick."""
        lifecycle = self.lifecycle.state.value
        if self._snapshot.lifecycle != lifecycle or self._snapshot.speed != self.speed:
            self._snapshot = self._snapshot.model_copy(update={"lifecycle": lifecycle, "speed": self.speed})
        return self._snapshot

    def get_status(self) -> Dict[str, Any]:
        """Summary of lifecycle and progress."""
        return {
            "state": self.lifecycle.state.value,
            "tick": self._state.tick,
            "elapsed_hours": self._state.elapsed,
            "speed": self.speed,
            "pending_commands": [name for name, _ in self._pending],
            "transitions": self.lifecycle.history(),
        }

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------
    def start(self) -> CommandResult:
        """IDLE/PAUSED -> RUNNING."""
        if self.lifecycle.state not in (ControllerState.IDLE, ControllerState.PAUSED):
            return CommandResult.rejected(
                f"Cannot start from {self.lifecycle.state.value}", error_type="invalid_state"
            )
        self.lifecycle.transition(ControllerState.RUNNING, self._state.tick, "start")
        return CommandResult.ok("Simulation running")

    def pause(self) -> CommandResult:
        """RUNNING -> PAUSED."""
        if self.lifecycle.state != ControllerState.RUNNING:
            return CommandResult.rejected(
                f"Cannot pause from {self.lifecycle.state.value}", error_type="invalid_state"
            )
        self.lifecycle.transition(ControllerState.PAUSED, self._state.tick, "pause")
        return CommandResult.ok("Simulation paused")

    def reset(self) -> CommandResult:
        """
        Any state -> IDLE.

        Clears every entity collection and all physiological and drug state,
        drops queued commands and reseeds the generator. The configured run
        parameters are kept, so the next start re-seeds the same infection.
        """
        self._pending.clear()
        self.lifecycle.transition(ControllerState.IDLE, self._state.tick, "reset")
        self._initialize()
        return CommandResult.ok("Simulation reset")

    def _reject_if_terminated(self) -> Optional[CommandResult]:
        if self.lifecycle.state == ControllerState.TERMINATED:
            return CommandResult.rejected("Simulation terminated; reset required", error_type="invalid_state")
        return None

    # ------------------------------------------------------------------
    # Configuration commands
    # ------------------------------------------------------------------
    def configure(self, config: Union[SimulationConfig, Dict[str, Any]]) -> CommandResult:
        """
        Validate a configuration and queue it for the next tick.

        Nothing is applied when validation fails. Once the infection is seeded, a
        carrying capacity below the live population (plus queued additions)
        is rejected.
        """
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        if not isinstance(config, SimulationConfig):
            try:
                config = SimulationConfig.model_validate(config)
            except ValidationError as e:
                logger.warning(f"Configuration rejected: {e.error_count()} error(s)")
                return CommandResult.from_validation_error(e)

        capacity = config.carrying_capacity or settings.max_bacteria
        population = self._projected_population()
        if capacity < population:
            logger.warning(f"Configuration rejected: carrying capacity {capacity} below population {population}")
            return CommandResult.rejected(
                f"Carrying capacity {capacity} is below the current population of {population}",
                field="carrying_capacity", value=capacity,
            )

        # Parameters are copied now so later edits to the caller's object do not leak in
        self._pending.append(("configure", config.model_copy(deep=True)))
        self.params = self._merge_params(self.params, config)
        return CommandResult.ok("Configuration queued for next tick")

    def _projected_population(self) -> int:
        """Alive bacteria plus those queued by add_bacteria, as of the next tick."""
        if not self._state.seeded:
            return 0
        queued = sum(payload[1] for name, payload in self._pending if name == "add_bacteria")
        return self._state.alive_bacteria_count() + queued

    def set_speed(self, multiplier: float) -> CommandResult:
        """Set the dt multiplier, within (0, max_speed]."""
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        try:
            self.speed = validate_speed(float(multiplier))
        except (TypeError, ValueError) as e:
            return CommandResult.rejected(str(e), field="speed", value=multiplier)
        return CommandResult.ok(f"Speed set to {self.speed}x")

    def select_antibiotic(
        self,
        antibiotic_id: str,
        concentration: Optional[float] = None,
        dosing_interval: Optional[float] = None
    ) -> CommandResult:
        """Queue administration of an antibiotic (standard dose by default)."""
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        try:
            antibiotic = parse_antibiotic(antibiotic_id)
        except ValueError as e:
            return CommandResult.rejected(str(e), field="antibiotic", value=antibiotic_id)
        if concentration is not None and concentration < 0:
            return CommandResult.rejected("Antibiotic concentration cannot be negative",
                                          field="concentration", value=concentration)
        if dosing_interval is not None and dosing_interval <= 0:
            return CommandResult.rejected("Dosing interval must be positive",
                                          field="dosing_interval", value=dosing_interval)
        self._pending.append(("administer", (antibiotic, concentration, dosing_interval)))
        return CommandResult.ok(f"{antibiotic.value} queued")

    def remove_antibiotic(self, antibiotic_id: str) -> CommandResult:
        """Queue discontinuation of an antibiotic."""
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        try:
            antibiotic = parse_antibiotic(antibiotic_id)
        except ValueError as e:
            return CommandResult.rejected(str(e), field="antibiotic", value=antibiotic_id)
        self._pending.append(("discontinue", antibiotic))
        return CommandResult.ok(f"{antibiotic.value} discontinuation queued")

    def add_bacteria(self, species: str, count: int) -> CommandResult:
        """Queue seeding of additional bacteria (unknown species fall back to the default)."""
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        try:
            count = validate_initial_population(int(count))
        except (TypeError, ValueError) as e:
            return CommandResult.rejected(str(e), field="count", value=count)
        self._pending.append(("add_bacteria", (resolve_species(species), count)))
        return CommandResult.ok(f"{count} bacteria queued")

    def inject_phages(self, library_id: Optional[str] = None) -> CommandResult:
        """Queue a phage injection; None picks phages by therapy mode."""
        rejected = self._reject_if_terminated()
        if rejected:
            return rejected
        library = None
        if library_id is not None:
            try:
                library = parse_phage_library(library_id)
            except ValueError as e:
                return CommandResult.rejected(str(e), field="library_id", value=library_id)
        if self.params.therapy_mode == TherapyMode.OFF:
            return CommandResult.rejected("Phage therapy is off", field="therapy_mode",
                                          value=TherapyMode.OFF.value)
        self._pending.append(("inject_phages", library))
        return CommandResult.ok("Phage injection queued")

    @staticmethod
    def _merge_params(params: RunParameters, config: SimulationConfig) -> RunParameters:
        return RunParameters(
            species=resolve_species(config.species),
            initial_population=config.initial_population,
            immune_competence=config.immune_competence,
            carrying_capacity=config.carrying_capacity or settings.max_bacteria,
            max_immune_cells=params.max_immune_cells,
            max_phages=params.max_phages,
            max_antibodies=params.max_antibodies,
            therapy_mode=config.therapy_mode,
            evolution_enabled=config.evolution_enabled,
            atherosclerosis_level=config.atherosclerosis_level,
            nutrient_supply=config.nutrient_supply,
            nutrient_patches=config.nutrient_patches,
            seed=params.seed if config.seed is None else config.seed,
        )

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------
    def tick(self, dt: Optional[float] = None) -> SimulationSnapshot:
        """
        Advance the simulation by ``dt`` hours (times the speed multiplier).

        Outside RUNNING this is a no-op that logs a warning and returns the
        unchanged snapshot.

        Raises:
            ValueError: If dt is not a positive finite number; nothing changes
            SimulationError: If a phase fails; the pre-tick state is kept and
                the controller is TERMINATED
        """
        if self.lifecycle.state != ControllerState.RUNNING:
            logger.warning(f"tick() ignored while {self.lifecycle.state.value}")
            return self.snapshot()

        dt = validate_time_step(settings.default_dt if dt is None else dt)
        effective_dt = dt * self.speed
        work = copy.deepcopy(self._state)
        try:
            self._run_pipeline(work, effective_dt)
        except Exception as e:
            self.lifecycle.transition(ControllerState.TERMINATED, self._state.tick, f"{type(e).__name__}: {e}")
            logger.exception(f"Tick {self._state.tick + 1} failed; simulation terminated")
            if isinstance(e, SimulationError):
                raise
            raise SimulationError(f"Tick {self._state.tick + 1} failed: {e}") from e

        self._state = work
        self._pending.clear()
        self._snapshot = build_snapshot(work, self.lifecycle.state.value, self.speed)
        return self._snapshot

    def run(self, ticks: int, dt: Optional[float] = None) -> SimulationSnapshot:
        """Tick repeatedly; stops early if the controller leaves RUNNING."""
        snapshot = self.snapshot()
        for _ in range(ticks):
            if self.lifecycle.state != ControllerState.RUNNING:
                break
            snapshot = self.tick(dt)
        return snapshot

    def _run_pipeline(self, state: SimulationState, dt: float) -> None:
        engines = self.engines
        self._apply_pending(state)
        if not state.seeded:
            self._seed(state)
        state.antibiotic_stress = {}

        severity = engines.physiology.update(state, dt)
        self._rebuild_index(state)
        immune_events = engines.immune.update(state, self.index, dt)
        antibiotic_kills = engines.pharmacology.update(state, dt)
        phage_events = engines.phage.update(state, self.index, dt)
        evolution_events = engines.evolution.update(state, self.index, dt)

        dead = state.compact()
        engines.immune.release_endotoxin(state, dead)

        state.tick += 1
        state.elapsed += dt
        engines.diagnostics.update(state, dt, engines.pharmacology.total_toxicity(state))
        logger.debug(
            f"Tick {state.tick}: severity={severity:.3f} immune={immune_events} "
            f"antibiotic_kills={antibiotic_kills} phage={phage_events} evolution={evolution_events}"
        )

    def _apply_pending(self, state: SimulationState) -> None:
        engines = self.engines
        for name, payload in self._pending:
            if name == "configure":
                self._apply_configuration(state, payload)
            elif name == "administer":
                antibiotic, concentration, interval = payload
                engines.pharmacology.administer(state, antibiotic, concentration, interval)
            elif name == "discontinue":
                engines.pharmacology.discontinue(state, payload)
            elif name == "add_bacteria":
                species, count = payload
                seed_bacteria(state, species, count, engines.evolution.config)
            elif name == "inject_phages":
                engines.phage.inject(state, payload)

    def _apply_configuration(self, state: SimulationState, config: SimulationConfig) -> None:
        params = self._merge_params(state.params, config)
        if params.seed != state.params.seed:
            state.rng = create_generator(params.seed)
        state.params = params
        for antibiotic_id in config.antibiotics:
            self.engines.pharmacology.administer(
                state, parse_antibiotic(antibiotic_id), config.antibiotic_concentration, config.dosing_interval
            )
        logger.info(
            f"Configuration applied: {params.initial_population} {params.species.value}, "
            f"therapy={params.therapy_mode.value}, competence={params.immune_competence}"
        )

    def _seed(self, state: SimulationState) -> None:
        """Seed the configured infection, nutrient patches and fat deposits."""
        params = state.params
        config = self.engines.evolution.config
        seed_nutrients(state, params.nutrient_patches, config)
        seed_fat_deposits(state, params.atherosclerosis_level)
        seed_bacteria(state, params.species, params.initial_population, config)
        if params.therapy_mode != TherapyMode.OFF:
            self.engines.phage.inject(state)
        state.seeded = True

    def _rebuild_index(self, state: SimulationState) -> None:
        """
        Rebuild the spatial index from every alive entity and verify it.

        Raises:
            InvariantViolationError: On desync when debug is enabled
        """
        entities = state.positioned_entities()
        rejected = self.index.rebuild(entities)
        if rejected == 0 and self.index.contains_exactly(entity_id for entity_id, _ in entities):
            return
        message = f"Spatial index desync at tick {state.tick}: {rejected} of {len(entities)} entities rejected"
        if self.debug:
            raise InvariantViolationError(message)
        logger.warning(f"{message}; expanding bounds and rebuilding")
        self.index.expand_to_fit(position for _, position in entities)
        self.index.rebuild(entities)
