"""
Antibiotic pharmacokinetics and pharmacodynamics.

PK: plasma concentration decays by half-life, C(t+dt) = C(t) * 2^(-dt/t_half),
which is exact for any split of the elapsed time. PD: a Hill dose-response
gives the fractional effect, reduced by the bacterium's resistance to the
drug class and attenuated by tissue penetration, spectrum coverage and
biofilm. Kill decisions are stochastic draws from the simulation RNG.
"""

import logging
from typing import Any, Dict, Iterable, Optional, TYPE_CHECKING
from dataclasses import dataclass

from .bacterium import Bacterium
from .profiles import ANTIBIOTIC_PROFILES, Antibiotic, AntibioticClass, AntibioticProfile, get_species_profile
from utils.numerics import clamp, event_probability, hill

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)

BETA_LACTAM_CLASSES = (AntibioticClass.BETA_LACTAM, AntibioticClass.CEPHALOSPORIN)


@dataclass
class DrugState:
    """
    PK/PD state of one administered antibiotic.

    Attributes:
        antibiotic: Drug identifier
        concentration: Current free plasma concentration (mg/L)
        dose: Concentration added per administration (mg/L)
        dosing_interval: Hours between repeat doses; None for a single bolus
        time_since_dose: Hours since the last administration
        nephrotoxicity: Cumulative kidney toxicity (0-1)
        hepatotoxicity: Cumulative liver toxicity (0-1)
    """
    antibiotic: Antibiotic
    concentration: float = 0.0
    dose: float = 0.0
    dosing_interval: Optional[float] = None
    time_since_dose: float = 0.0
    nephrotoxicity: float = 0.0
    hepatotoxicity: float = 0.0

    @property
    def profile(self) -> AntibioticProfile:
        return ANTIBIOTIC_PROFILES[self.antibiotic]

    @property
    def in_therapeutic_range(self) -> bool:
        low, high = self.profile.therapeutic_range
        return low <= self.concentration <= high

    def to_dict(self) -> Dict[str, Any]:
        return {
            "antibiotic": self.antibiotic.value,
            "concentration": self.concentration,
            "dose": self.dose,
            "dosing_interval": self.dosing_interval,
            "nephrotoxicity": self.nephrotoxicity,
            "hepatotoxicity": self.hepatotoxicity,
        }


@dataclass
class PharmacologyConfig:
    """Configuration for PK/PD parameters."""
    min_active_concentration: float = 1e-3  # mg/L below which a drug is inactive
    biofilm_penetration: float = 0.3
    synergy_factor: float = 1.5  # beta-lactam + aminoglycoside
    sublethal_damage: float = 0.5  # integrity lost per hour at full effect
    toxicity_half_saturation: float = 1.0  # multiple of the therapeutic maximum

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.min_active_concentration < 0:
            raise ValueError("Minimum active concentration cannot be negative")
        if not 0 <= self.biofilm_penetration <= 1:
            raise ValueError("Biofilm penetration must be between 0.0 and 1.0")
        if self.synergy_factor < 1:
            raise ValueError("Synergy factor must be at least 1.0")
        if self.toxicity_half_saturation <= 0:
            raise ValueError("Toxicity half-saturation must be positive")


def decay_concentration(concentration: float, half_life: float, dt: float) -> float:
    """Exponential elimination over ``dt`` hours."""
    if half_life <= 0:
        return 0.0
    return concentration * 2.0 ** (-dt / half_life)


class PharmacologyEngine:
    """Engine for antibiotic kinetics, killing and toxicity."""

    def __init__(self, config: PharmacologyConfig = None):
        self.config = config or PharmacologyConfig()

    # ------------------------------------------------------------------
    # Dosing
    # ------------------------------------------------------------------
    def administer(
        self,
        state: 'SimulationState',
        antibiotic: Antibiotic,
        concentration: Optional[float] = None,
        dosing_interval: Optional[float] = None
    ) -> DrugState:
        """
        Administer a dose, topping up any drug already on board.

        Args:
            state: Simulation state
            antibiotic: Drug to give
            concentration: Plasma concentration added (defaults to the standard dose)
            dosing_interval: Optional repeat interval in hours

        Returns:
            The drug's PK/PD state
        """
        profile = ANTIBIOTIC_PROFILES[antibiotic]
        dose = profile.standard_dose if concentration is None else concentration
        if dose < 0:
            raise ValueError("Dose cannot be negative")

        drug = state.drugs.get(antibiotic)
        if drug is None:
            drug = DrugState(antibiotic=antibiotic)
            state.drugs[antibiotic] = drug
        drug.concentration += dose
        drug.dose = dose
        drug.time_since_dose = 0.0
        if dosing_interval is not None:
            drug.dosing_interval = dosing_interval
        logger.info(f"Administered {profile.name} at {dose:.2f} mg/L (tick {state.tick})")
        return drug

    def discontinue(self, state: 'SimulationState', antibiotic: Antibiotic) -> None:
        """Stop a drug; accumulated toxicity stays on record."""
        drug = state.drugs.get(antibiotic)
        if drug is not None:
            drug.concentration = 0.0
            drug.dosing_interval = None
            logger.info(f"Discontinued {drug.profile.name} (tick {state.tick})")

    def active_drugs(self, state: 'SimulationState') -> Iterable[DrugState]:
        """Drugs above the activity threshold, in a fixed order."""
        for antibiotic in Antibiotic:
            drug = state.drugs.get(antibiotic)
            if drug is not None and drug.concentration >= self.config.min_active_concentration:
                yield drug

    # ------------------------------------------------------------------
    # Per-tick update
    # ------------------------------------------------------------------
    def update(self, state: 'SimulationState', dt: float) -> int:
        """
        Apply kinetics, toxicity and killing for one tick.

        Returns:
            Number of bacteria killed this tick
        """
        self._update_kinetics(state, dt)
        active = list(self.active_drugs(state))
        if not active:
            return 0

        synergy = self.synergy_multiplier(active)
        killed = 0
        for bacterium in state.bacteria.values():
            if not bacterium.is_alive():
                continue
            for drug in active:
                effect = self.effect_against(bacterium, drug, synergy)
                if effect <= 0.0:
                    continue
                previous = state.antibiotic_stress.get(bacterium.id, 0.0)
                state.antibiotic_stress[bacterium.id] = max(previous, effect)
                if self.resolve_kill(state, bacterium, drug, effect, dt):
                    killed += 1
                    break
        if killed:
            logger.debug(f"Antibiotics killed {killed} bacteria at tick {state.tick}")
        return killed

    def _update_kinetics(self, state: 'SimulationState', dt: float) -> None:
        for antibiotic in Antibiotic:
            drug = state.drugs.get(antibiotic)
            if drug is None:
                continue
            profile = drug.profile
            # Toxicity accrues on the concentration at the start of the step
            self._accumulate_toxicity(drug, profile, dt)
            drug.concentration = decay_concentration(drug.concentration, profile.half_life, dt)
            drug.time_since_dose += dt
            if drug.dosing_interval and drug.time_since_dose >= drug.dosing_interval:
                drug.concentration += drug.dose
                drug.time_since_dose -= drug.dosing_interval
            if drug.concentration < self.config.min_active_concentration:
                drug.concentration = 0.0

    def _accumulate_toxicity(self, drug: DrugState, profile: AntibioticProfile, dt: float) -> None:
        if drug.concentration <= 0.0:
            return
        half_saturation = profile.therapeutic_range[1] * self.config.toxicity_half_saturation
        exposure = drug.concentration / (drug.concentration + half_saturation)
        drug.nephrotoxicity = clamp(
            drug.nephrotoxicity + profile.nephrotoxicity * exposure * (1.0 - drug.nephrotoxicity) * dt, 0.0, 1.0
        )
        drug.hepatotoxicity = clamp(
            drug.hepatotoxicity + profile.hepatotoxicity * exposure * (1.0 - drug.hepatotoxicity) * dt, 0.0, 1.0
        )

    def synergy_multiplier(self, active: Iterable[DrugState]) -> float:
        """Beta-lactam plus aminoglycoside cover is synergistic."""
        classes = {drug.profile.drug_class for drug in active}
        if classes.intersection(BETA_LACTAM_CLASSES) and AntibioticClass.AMINOGLYCOSIDE in classes:
            return self.config.synergy_factor
        return 1.0

    def effect_against(self, bacterium: Bacterium, drug: DrugState, synergy: float = 1.0) -> float:
        """
        Fractional drug effect on one bacterium.

        Hill response scaled by (1 - resistance), tissue penetration, spectrum
        coverage and biofilm protection, clamped to [0, 1].
        """
        profile = drug.profile
        effect = hill(drug.concentration, profile.ec50, profile.hill_coefficient)
        effect *= 1.0 - bacterium.resistance_to(profile.drug_class)
        effect *= profile.tissue_penetration
        effect *= profile.coverage(get_species_profile(bacterium.species).gram_positive)
        if bacterium.biofilm:
            effect *= self.config.biofilm_penetration
        return clamp(effect * synergy, 0.0, 1.0)

    def resolve_kill(
        self,
        state: 'SimulationState',
        bacterium: Bacterium,
        drug: DrugState,
        effect: float,
        dt: float
    ) -> bool:
        """Draw the kill decision; survivors take sublethal wall damage."""
        kill_probability = event_probability(drug.profile.max_kill_rate * effect, dt)
        if state.rng.random() < kill_probability:
            bacterium.kill("antibiotic")
            return True
        bacterium.integrity = clamp(
            bacterium.integrity - self.config.sublethal_damage * effect * dt, 0.0, 1.0
        )
        return False

    def total_toxicity(self, state: 'SimulationState') -> Dict[str, float]:
        """Combined nephro/hepato toxicity across all drugs given, capped at 1."""
        nephro = sum(drug.nephrotoxicity for drug in state.drugs.values())
        hepato = sum(drug.hepatotoxicity for drug in state.drugs.values())
        return {"nephrotoxicity": min(1.0, nephro), "hepatotoxicity": min(1.0, hepato)}
