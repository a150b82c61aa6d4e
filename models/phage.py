"""
Phage therapy engine.

Phages are injected from the library, diffuse with a bias toward matching
hosts, and attach to a host within the engagement radius. CRISPR and
restriction-modification systems may block attachment; a blocked or failed
attempt destroys the phage. Attached phages run a latency countdown on the
host, after which the host lyses and releases a burst of progeny. Lysogenic
phages can instead integrate as a prophage.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, TYPE_CHECKING
from dataclasses import dataclass

from .bacterium import Bacterium
from .entities import Phage
from .profiles import (
    BacterialSpecies, PHAGE_LIBRARY, PhageLibraryId, PhageProfile, PhageStrategy, TherapyMode,
    generate_phage_cocktail, select_optimal_phage,
)
from .spatial import SpatialIndex, Vector3, apply_boundaries
from utils.rng import jitter, random_point, random_unit_vector

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


@dataclass
class PhageConfig:
    """Configuration for phage therapy parameters."""
    injection_size: int = 50  # phages per library per injection
    diffusion_speed: float = 300.0  # µm/h
    sensing_radius: float = 100.0
    engagement_radius: float = 5.0
    diffusion_lifetime: float = 2.0  # hours
    lysogeny_probability: float = 0.3
    crispr_block: float = 0.8
    restriction_block: float = 0.5
    resistance_breaking_factor: float = 0.5  # fraction of blocking left against breaking phages
    burst_spread: float = 5.0  # µm
    max_cocktail_size: int = 3

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.injection_size < 0:
            raise ValueError("Injection size cannot be negative")
        if self.engagement_radius <= 0 or self.sensing_radius < self.engagement_radius:
            raise ValueError("Sensing radius must be at least the (positive) engagement radius")
        for name in ("lysogeny_probability", "crispr_block", "restriction_block", "resistance_breaking_factor"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0")
        if self.diffusion_lifetime <= 0:
            raise ValueError("Diffusion lifetime must be positive")


class PhageTherapyEngine:
    """Engine for phage injection, attachment, lysis and burst release."""

    def __init__(self, config: PhageConfig = None):
        self.config = config or PhageConfig()

    # ------------------------------------------------------------------
    # Injection
    # ------------------------------------------------------------------
    def choose_phages(self, state: 'SimulationState') -> List[PhageLibraryId]:
        """Phages to inject for the current therapy mode and infection."""
        alive = [b for b in state.bacteria.values() if b.is_alive()]
        if not alive or state.params.therapy_mode == TherapyMode.OFF:
            return []
        species_counts = Counter(b.species for b in alive)
        order = list(BacterialSpecies)
        ranked = sorted(species_counts, key=lambda s: (-species_counts[s], order.index(s)))

        if state.params.therapy_mode == TherapyMode.COCKTAIL:
            return generate_phage_cocktail(ranked, self.config.max_cocktail_size)

        dominant = ranked[0]
        hosts = [b for b in alive if b.species == dominant]
        crispr = sum(1 for b in hosts if b.genome.crispr) * 2 > len(hosts)
        restriction = sum(1 for b in hosts if b.genome.restriction_modification) * 2 > len(hosts)
        chosen = select_optimal_phage(dominant, crispr, restriction)
        return [chosen] if chosen is not None else []

    def inject(
        self,
        state: 'SimulationState',
        library_id: Optional[PhageLibraryId] = None,
        count: Optional[int] = None
    ) -> int:
        """
        Inject phages at random positions.

        Args:
            state: Simulation state
            library_id: Specific library phage, or None to choose by therapy mode
            count: Phages per library phage (defaults to ``injection_size``)

        Returns:
            Number of phages injected
        """
        libraries = [library_id] if library_id is not None else self.choose_phages(state)
        per_library = self.config.injection_size if count is None else count
        injected = 0
        for library in libraries:
            room = state.params.max_phages - state.alive_count(state.phages)
            for _ in range(min(per_library, max(0, room))):
                position = Vector3(*random_point(state.rng, state.world_size))
                self._spawn(state, library, position, generation=0)
                injected += 1
        if injected:
            names = ", ".join(library.value for library in libraries)
            logger.info(f"Injected {injected} phages ({names}) at tick {state.tick}")
        elif libraries:
            logger.warning("Phage injection skipped: phage cap reached")
        return injected

    def _spawn(self, state: 'SimulationState', library: PhageLibraryId, position: Vector3, generation: int) -> Phage:
        phage = Phage(
            id=state.new_id(),
            library_id=library,
            position=position,
            lifetime_remaining=self.config.diffusion_lifetime,
            generation=generation,
        )
        state.phages[phage.id] = phage
        return phage

    # ------------------------------------------------------------------
    # Per-tick update
    # ------------------------------------------------------------------
    def update(self, state: 'SimulationState', index: SpatialIndex, dt: float) -> Dict[str, int]:
        """
        Run one phage phase.

        Returns:
            Event counts for the tick
        """
        events = {"attached": 0, "blocked": 0, "failed": 0, "lysed": 0,
                  "lysogenized": 0, "released": 0, "decayed": 0}
        if state.params.therapy_mode == TherapyMode.OFF:
            return events

        self._advance_infections(state, dt, events)
        for phage in list(state.phages.values()):
            if not phage.is_alive() or phage.attached_to is not None:
                continue
            phage.lifetime_remaining -= dt
            if phage.lifetime_remaining <= 0.0:
                phage.destroyed = True
                events["decayed"] += 1
                continue
            self._diffuse_and_attach(state, index, phage, dt, events)
        return events

    def _advance_infections(self, state: 'SimulationState', dt: float, events: Dict[str, int]) -> None:
        """Count down latency on infected hosts and lyse those that are due."""
        attached: Dict[int, List[Phage]] = {}
        for phage in state.phages.values():
            if phage.is_alive() and phage.attached_to is not None:
                attached.setdefault(phage.attached_to, []).append(phage)

        for host_id, phages in attached.items():
            host = state.bacteria.get(host_id)
            if host is None or not host.is_alive():
                # Host died of something else; the phage dies with it
                for phage in phages:
                    phage.destroyed = True
                continue
            for phage in phages:
                phage.position = host.position.copy()
            host.lysis_timer -= dt
            if host.lysis_timer <= 0.0:
                self.lyse(state, host, phages, events)

    def lyse(self, state: 'SimulationState', host: Bacterium, phages: List[Phage], events: Dict[str, int]) -> int:
        """Kill the host and release progeny, capped at ``max_phages``."""
        library = host.phage_infected
        profile = PHAGE_LIBRARY[library]
        generation = max(phage.generation for phage in phages) + 1
        for phage in phages:
            phage.destroyed = True
        host.kill("phage_lysis")
        host.phage_infected = None
        events["lysed"] += 1

        room = state.params.max_phages - state.alive_count(state.phages)
        released = min(profile.burst_size, max(0, room))
        for _ in range(released):
            position = Vector3(*jitter(state.rng, host.position.as_tuple(), self.config.burst_spread))
            apply_boundaries(position, None, state.world_size)
            self._spawn(state, library, position, generation)
        events["released"] += released
        logger.debug(f"Bacterium {host.id} lysed by {library.value}, released {released} phages")
        return released

    def _susceptible(self, state: 'SimulationState', entity_id: int, profile: PhageProfile,
                     library: PhageLibraryId) -> bool:
        host = state.bacteria.get(entity_id)
        if host is None or not host.is_alive() or host.phage_infected is not None:
            return False
        # Superinfection immunity of lysogens
        if host.prophage == library:
            return False
        return profile.infects(host.species)

    def block_probability(self, host: Bacterium, profile: PhageProfile) -> float:
        """Probability that host defences stop the phage."""
        cfg = self.config
        passthrough = 1.0
        if host.genome.crispr:
            passthrough *= 1.0 - cfg.crispr_block
        if host.genome.restriction_modification:
            passthrough *= 1.0 - cfg.restriction_block
        blocked = 1.0 - passthrough
        if profile.resistance_breaking:
            blocked *= cfg.resistance_breaking_factor
        return blocked

    def _diffuse_and_attach(self, state: 'SimulationState', index: SpatialIndex, phage: Phage,
                            dt: float, events: Dict[str, int]) -> None:
        cfg = self.config
        profile = PHAGE_LIBRARY[phage.library_id]
        step = cfg.diffusion_speed * dt
        host_id = index.nearest(
            phage.position, cfg.sensing_radius,
            lambda i: self._susceptible(state, i, profile, phage.library_id),
        )
        if host_id is None:
            direction = random_unit_vector(state.rng)
            phage.position.x += direction[0] * step
            phage.position.y += direction[1] * step
            phage.position.z += direction[2] * step
            apply_boundaries(phage.position, None, state.world_size)
            return

        host = state.bacteria[host_id]
        phage.position.step_toward(host.position, step)
        if phage.position.distance_to(host.position) > cfg.engagement_radius:
            return

        if state.rng.random() < self.block_probability(host, profile):
            phage.destroyed = True
            events["blocked"] += 1
            return
        if state.rng.random() >= profile.adsorption_rate:
            phage.destroyed = True
            events["failed"] += 1
            return

        if profile.strategy == PhageStrategy.LYSOGENIC and state.rng.random() < cfg.lysogeny_probability:
            host.prophage = phage.library_id
            phage.destroyed = True
            events["lysogenized"] += 1
            return

        phage.attached_to = host.id
        phage.position = host.position.copy()
        host.phage_infected = phage.library_id
        host.lysis_timer = profile.latency_period
        events["attached"] += 1
