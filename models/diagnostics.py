"""
Clinical diagnostics derived from the simulation state.

The sepsis score is a weighted composite of tissue hypoxia, systemic cytokine
burden, mean organ damage and bacterial load. Each term is normalized to
[0, 1] and the weights are named configuration fields, so the score itself
lies in [0, 1] and is non-decreasing in every input.

Organ damage accumulates from hypoxia, hypotension, cytokine burden and drug
toxicity and never decreases within a run.
"""

import logging
from collections import Counter
from typing import Any, Dict, Optional, TYPE_CHECKING
from dataclasses import dataclass, field, asdict

from .entities import EntityKind
from .profiles import AntibioticClass
from utils.numerics import clamp, relax, safe_divide, saturating

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)

ORGANS = ("heart", "lungs", "kidneys", "liver", "brain")


@dataclass
class SepsisWeights:
    """Weights of the sepsis score terms; must sum to 1."""
    hypoxia: float = 0.3
    cytokine: float = 0.3
    organ_damage: float = 0.2
    bacterial_load: float = 0.2

    def __post_init__(self):
        """Validate weight values."""
        weights = [self.hypoxia, self.cytokine, self.organ_damage, self.bacterial_load]
        if any(w < 0 for w in weights):
            raise ValueError("Sepsis weights must be non-negative")
        if abs(sum(weights) - 1.0) > 1e-6:
            raise ValueError("Sepsis weights must sum to 1.0")


@dataclass
class DiagnosticsConfig:
    """Configuration for scores, organ damage and vitals."""

    weights: SepsisWeights = field(default_factory=SepsisWeights)
    cytokine_half_saturation: float = 200.0  # pg/mL
    load_reference: float = 500.0  # bacteria counted as full load

    # Organ damage rates (per hour at full exposure)
    hypoxia_damage_rate: float = 0.05
    cytokine_damage_rate: float = 0.02
    hypotension_damage_rate: float = 0.04
    toxicity_damage_rate: float = 0.1
    hypotension_threshold: float = 65.0  # mmHg

    # Vitals
    vitals_rate: float = 2.0  # 1/h
    acute_phase_rate: float = 0.2  # 1/h, CRP and PCT
    cytokine_storm_threshold: float = 500.0

    # Disseminated intravascular coagulation risk
    dic_clot_threshold: int = 3  # simultaneous clots before factor consumption
    dic_risk_per_clot: float = 0.1
    dic_fibrin_threshold: float = 2.0  # fibrin bound up in clots
    dic_fibrin_risk: float = 0.3
    dic_platelet_floor: float = 0.2  # exhausted platelets while clots persist
    dic_platelet_risk: float = 0.2
    dic_endotoxin_threshold: float = 1.0  # EU/mL
    dic_endotoxin_risk: float = 0.1  # per EU/mL
    dic_inflammation_threshold: float = 200.0  # pg/mL pro-inflammatory
    dic_inflammation_risk: float = 0.1

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.cytokine_half_saturation <= 0 or self.load_reference <= 0:
            raise ValueError("Normalization constants must be positive")
        rates = [self.hypoxia_damage_rate, self.cytokine_damage_rate,
                 self.hypotension_damage_rate, self.toxicity_damage_rate]
        if any(rate < 0 for rate in rates):
            raise ValueError("Organ damage rates cannot be negative")


@dataclass
class OrganDamage:
    """Per-organ damage accumulators (0-1); a one-way ratchet."""
    heart: float = 0.0
    lungs: float = 0.0
    kidneys: float = 0.0
    liver: float = 0.0
    brain: float = 0.0

    def accumulate(self, organ: str, amount: float) -> None:
        """Add damage; negative amounts are ignored."""
        if organ not in ORGANS:
            raise KeyError(f"Unknown organ '{organ}'")
        if amount > 0:
            setattr(self, organ, clamp(getattr(self, organ) + amount, 0.0, 1.0))

    @property
    def mean(self) -> float:
        return sum(getattr(self, organ) for organ in ORGANS) / len(ORGANS)

    def sofa_scores(self) -> Dict[str, int]:
        """SOFA-like 0-4 score per organ."""
        return {organ: min(4, int(getattr(self, organ) * 5.0)) for organ in ORGANS}

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class PatientVitals:
    """Bedside vitals and laboratory values."""
    temperature: float = 37.0  # °C
    heart_rate: float = 75.0
    respiratory_rate: float = 14.0
    spo2: float = 98.0  # %
    systolic_bp: float = 120.0
    diastolic_bp: float = 80.0
    mean_arterial_pressure: float = 93.0
    wbc_count: float = 7.5  # 10^9/L
    crp: float = 1.0  # mg/L
    procalcitonin: float = 0.05  # ng/mL
    lactate: float = 1.0  # mmol/L
    sofa: Dict[str, int] = field(default_factory=lambda: {organ: 0 for organ in ORGANS})
    overall_health: float = 100.0
    sepsis_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sofa"] = dict(self.sofa)
        return data


@dataclass
class SimulationStats:
    """Aggregate statistics of one tick."""
    tick: int = 0
    elapsed_hours: float = 0.0
    counts: Dict[str, int] = field(default_factory=dict)
    sepsis_score: float = 0.0
    unique_strains: int = 0
    dominant_strain: Optional[str] = None
    average_resistance: float = 0.0
    biofilm_coverage: float = 0.0
    lysogenic_bacteria: int = 0
    viscosity: float = 3.5
    bacteremia: bool = False
    clotting_risk: float = 0.0
    cytokine_storm: bool = False
    deaths: Dict[str, int] = field(default_factory=dict)
    mutations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["counts"] = dict(self.counts)
        data["deaths"] = dict(self.deaths)
        return data


class DiagnosticsEngine:
    """Derives scores, organ damage, vitals and statistics from the state."""

    def __init__(self, config: DiagnosticsConfig = None):
        self.config = config or DiagnosticsConfig()

    def sepsis_score(
        self,
        hypoxia: float,
        total_cytokines: float,
        organ_damage_mean: float,
        bacterial_count: int
    ) -> float:
        """
        Weighted sepsis composite.

        Args:
            hypoxia: Tissue hypoxia fraction (0-1)
            total_cytokines: Sum of systemic cytokines (pg/mL)
            organ_damage_mean: Mean organ damage (0-1)
            bacterial_count: Alive bacteria

        Returns:
            Score in [0, 1]
        """
        cfg = self.config
        w = cfg.weights
        score = (
            w.hypoxia * clamp(hypoxia, 0.0, 1.0)
            + w.cytokine * saturating(total_cytokines, cfg.cytokine_half_saturation)
            + w.organ_damage * clamp(organ_damage_mean, 0.0, 1.0)
            + w.bacterial_load * min(1.0, max(0.0, bacterial_count / cfg.load_reference))
        )
        return clamp(score, 0.0, 1.0)

    def update(self, state: 'SimulationState', dt: float, toxicity: Dict[str, float]) -> SimulationStats:
        """
        Advance organ damage and vitals, then recompute the score and stats.

        Args:
            state: Simulation state
            dt: Step in hours
            toxicity: Cumulative ``nephrotoxicity``/``hepatotoxicity`` (0-1)
        """
        self.update_organ_damage(state, dt, toxicity)
        score = self.sepsis_score(
            state.cardiovascular.tissue_hypoxia,
            state.inflammatory.total_cytokines,
            state.organ_damage.mean,
            state.alive_bacteria_count(),
        )
        state.sepsis_score = score
        self.update_vitals(state, dt)
        state.stats = self.compute_statistics(state)
        logger.debug(f"Tick {state.tick}: sepsis={score:.3f} bacteria={state.stats.counts.get('bacterium', 0)}")
        return state.stats

    def update_organ_damage(self, state: 'SimulationState', dt: float, toxicity: Dict[str, float]) -> None:
        cfg = self.config
        cv = state.cardiovascular
        hypoxia = cv.tissue_hypoxia
        cytokine_burden = saturating(state.inflammatory.total_cytokines, cfg.cytokine_half_saturation)
        hypotension = clamp(
            safe_divide(cfg.hypotension_threshold - cv.mean_arterial_pressure, cfg.hypotension_threshold - 20.0),
            0.0, 1.0
        )
        desaturation = clamp(1.0 - cv.oxygen_saturation, 0.0, 1.0)
        nephro = toxicity.get("nephrotoxicity", 0.0)
        hepato = toxicity.get("hepatotoxicity", 0.0)

        exposure = {
            "heart": cfg.hypoxia_damage_rate * hypoxia + cfg.hypotension_damage_rate * hypotension
            + cfg.cytokine_damage_rate * cytokine_burden,
            "lungs": cfg.hypoxia_damage_rate * (hypoxia + desaturation) + cfg.cytokine_damage_rate * cytokine_burden,
            "kidneys": cfg.hypotension_damage_rate * hypotension + cfg.toxicity_damage_rate * nephro
            + cfg.cytokine_damage_rate * cytokine_burden,
            "liver": cfg.toxicity_damage_rate * hepato + cfg.hypoxia_damage_rate * hypoxia
            + cfg.cytokine_damage_rate * cytokine_burden,
            "brain": cfg.hypoxia_damage_rate * hypoxia + cfg.hypotension_damage_rate * hypotension,
        }
        for organ in ORGANS:
            # Damage grows toward 1 and saturates there
            current = getattr(state.organ_damage, organ)
            state.organ_damage.accumulate(organ, exposure[organ] * (1.0 - current) * dt)

    def update_vitals(self, state: 'SimulationState', dt: float) -> None:
        cfg = self.config
        vitals = state.vitals
        cv = state.cardiovascular
        inflammation = state.inflammatory
        bacteria = state.alive_bacteria_count()

        fever = saturating(inflammation.pro_inflammatory, 150.0)
        vitals.temperature = clamp(relax(vitals.temperature, 37.0 + 3.0 * fever, cfg.vitals_rate, dt), 35.0, 42.0)
        vitals.heart_rate = cv.heart_rate
        respiratory_target = 14.0 + 12.0 * cv.tissue_hypoxia + 8.0 * fever
        vitals.respiratory_rate = clamp(relax(vitals.respiratory_rate, respiratory_target, cfg.vitals_rate, dt), 8.0, 40.0)
        vitals.spo2 = clamp(cv.oxygen_saturation * 100.0, 50.0, 100.0)

        pulse_pressure = 40.0 * safe_divide(cv.stroke_volume, 70.0, 1.0)
        vitals.mean_arterial_pressure = cv.mean_arterial_pressure
        vitals.diastolic_bp = max(10.0, cv.mean_arterial_pressure - pulse_pressure / 3.0)
        vitals.systolic_bp = vitals.diastolic_bp + pulse_pressure

        il6_burden = saturating(inflammation.il6, 100.0)
        vitals.wbc_count = clamp(relax(vitals.wbc_count, 7.5 + 15.0 * il6_burden, cfg.vitals_rate, dt), 0.5, 40.0)
        vitals.crp = relax(vitals.crp, 1.0 + 200.0 * il6_burden, cfg.acute_phase_rate, dt)
        pct_target = 0.05 + 10.0 * saturating(float(bacteria), 100.0) + 5.0 * saturating(inflammation.endotoxin, 5.0)
        vitals.procalcitonin = relax(vitals.procalcitonin, pct_target, cfg.acute_phase_rate, dt)
        vitals.lactate = clamp(relax(vitals.lactate, 1.0 + 9.0 * cv.tissue_hypoxia, cfg.vitals_rate, dt), 0.5, 20.0)

        vitals.sofa = state.organ_damage.sofa_scores()
        vitals.overall_health = 100.0 * (1.0 - state.organ_damage.mean)
        vitals.sepsis_score = state.sepsis_score

    def coagulation_risk(self, state: 'SimulationState') -> float:
        """
        Risk of disseminated intravascular coagulation, in [0, 1].

        Many simultaneous clots and fibrin bound up in them signal consumption
        of clotting factors. Endotoxin and pro-inflammatory cytokines add their
        own tissue-factor drive.
        """
        cfg = self.config
        clots = [c for c in state.clots.values() if c.is_alive()]
        risk = 0.0
        if len(clots) > cfg.dic_clot_threshold:
            risk += cfg.dic_risk_per_clot * len(clots)
        if sum(c.fibrin for c in clots) > cfg.dic_fibrin_threshold:
            risk += cfg.dic_fibrin_risk
        if clots and state.rheology.platelet_activation < cfg.dic_platelet_floor:
            risk += cfg.dic_platelet_risk
        endotoxin = state.inflammatory.endotoxin
        if endotoxin > cfg.dic_endotoxin_threshold:
            risk += cfg.dic_endotoxin_risk * endotoxin
        if state.inflammatory.pro_inflammatory > cfg.dic_inflammation_threshold:
            risk += cfg.dic_inflammation_risk
        return clamp(risk, 0.0, 1.0)

    def compute_statistics(self, state: 'SimulationState') -> SimulationStats:
        """Aggregate counts and population statistics for the current tick."""
        cfg = self.config
        alive = [b for b in state.bacteria.values() if b.is_alive()]
        counts = {
            EntityKind.BACTERIUM.value: len(alive),
            EntityKind.IMMUNE_CELL.value: state.alive_count(state.immune_cells),
            EntityKind.ANTIBODY.value: state.alive_count(state.antibodies),
            EntityKind.PHAGE.value: state.alive_count(state.phages),
            EntityKind.CLOT.value: state.alive_count(state.clots),
            EntityKind.FAT_DEPOSIT.value: state.alive_count(state.fat_deposits),
            EntityKind.NUTRIENT.value: state.alive_count(state.nutrients),
        }

        strains = Counter(b.strain_id for b in alive)
        dominant = None
        if strains:
            # Most common strain, ties broken alphabetically
            dominant = min(strains.items(), key=lambda item: (-item[1], item[0]))[0]
        average_resistance = 0.0
        if alive:
            average_resistance = sum(
                b.genome.resistance[drug_class] for b in alive for drug_class in AntibioticClass
            ) / (len(alive) * len(AntibioticClass))

        return SimulationStats(
            tick=state.tick,
            elapsed_hours=state.elapsed,
            counts=counts,
            sepsis_score=state.sepsis_score,
            unique_strains=len(strains),
            dominant_strain=dominant,
            average_resistance=average_resistance,
            biofilm_coverage=safe_divide(sum(1 for b in alive if b.biofilm), len(alive)),
            lysogenic_bacteria=sum(1 for b in alive if b.is_lysogen),
            viscosity=state.rheology.viscosity,
            bacteremia=len(alive) > 0,
            clotting_risk=self.coagulation_risk(state),
            cytokine_storm=state.inflammatory.total_cytokines >= cfg.cytokine_storm_threshold,
            deaths=dict(state.death_counts),
            mutations=state.mutation_tracker.total,
        )
