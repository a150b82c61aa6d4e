"""
Cardiovascular and blood rheology model.

This module integrates the host's hemodynamics each tick: arterial tone and
systemic vascular resistance respond to infection severity (septic
vasodilation), stroke volume and cardiac output follow from preload,
afterload and contractility, and oxygen delivery is compared against demand
to drive tissue hypoxia. Blood viscosity and flow rate are coupled through a
one-tick-delayed feedback: viscosity reads the flow rate of the previous
tick, and the new flow rate reads the new viscosity. The loop is stepped
explicitly and never solved to a fixed point.

Clot formation/fibrinolysis and atherosclerotic fat deposits are updated
here as well, since they feed the rheology.
"""

import logging
from typing import Any, Dict, TYPE_CHECKING
from dataclasses import dataclass, asdict

from .entities import Clot, FatDeposit
from .spatial import Vector3
from utils.numerics import clamp, event_probability, relax, safe_divide, saturating, sigmoid

if TYPE_CHECKING:
    from .state import SimulationState

logger = logging.getLogger(__name__)


@dataclass
class CardiovascularState:
    """Hemodynamic state of the patient; owned by the physiology engine."""
    heart_rate: float = 75.0  # bpm
    stroke_volume: float = 70.0  # mL
    cardiac_output: float = 5.25  # L/min
    mean_arterial_pressure: float = 93.0  # mmHg
    systemic_vascular_resistance: float = 1300.0  # dyn·s/cm^5
    arterial_tone: float = 0.5
    arterial_oxygen_content: float = 20.0  # mL O2/dL
    oxygen_saturation: float = 0.98
    oxygen_delivery: float = 1050.0  # mL/min
    oxygen_demand: float = 250.0  # mL/min
    tissue_hypoxia: float = 0.0  # fraction 0-1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BloodRheology:
    """Blood flow properties."""
    viscosity: float = 3.5  # cP
    flow_rate: float = 5.0  # L/min
    hematocrit: float = 0.45
    platelet_activation: float = 0.0
    clot_load: float = 0.0
    occlusion: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PhysiologyConfig:
    """Configuration for hemodynamic and rheology parameters."""

    # Baselines
    heart_rate_base: float = 75.0
    stroke_volume_base: float = 70.0
    svr_base: float = 1300.0
    svr_min: float = 300.0
    svr_floor: float = 0.4  # SVR fraction at zero tone
    svr_gain: float = 1.2  # SVR fraction per unit tone
    tone_base: float = 0.5
    central_venous_pressure: float = 8.0
    map_base: float = 93.0
    hemoglobin: float = 15.0  # g/dL
    pao2: float = 95.0  # mmHg
    sao2_base: float = 0.98

    # Septic response
    max_vasodilation: float = 0.7
    severity_midpoint: float = 0.5
    severity_steepness: float = 10.0
    tone_rate: float = 2.0  # 1/h
    heart_rate_rate: float = 3.0  # 1/h
    tachycardia_gain: float = 0.5
    septic_depression: float = 0.45
    venous_pooling: float = 0.35
    lung_injury: float = 0.15

    # Oxygen balance
    demand_base: float = 250.0
    demand_gain: float = 0.8
    max_extraction: float = 0.6
    hypoxia_rate: float = 1.5  # 1/h

    # Severity index
    severity_load_half: float = 150.0  # bacteria at half-maximal load term
    severity_cytokine_half: float = 200.0
    severity_endotoxin_half: float = 5.0
    severity_weights: tuple = (0.4, 0.4, 0.2)  # load, cytokine, endotoxin

    # Rheology
    viscosity_base: float = 3.5
    viscosity_rate: float = 1.0
    clot_viscosity_gain: float = 0.8
    low_flow_viscosity_gain: float = 0.6
    flow_base: float = 5.0
    hematocrit_base: float = 0.45
    hemolysis_gain: float = 0.15

    # Coagulation
    platelet_rate: float = 1.0
    clot_threshold: float = 0.35
    clot_formation_rate: float = 2.0  # clots/h per unit activation above threshold
    fibrinolysis_rate: float = 0.1  # fibrin/h
    fibrin_growth_rate: float = 0.3
    max_clots: int = 20
    max_occlusion: float = 0.9

    # Atherosclerosis
    fat_oxidation_rate: float = 0.05  # 1/h
    rupture_rate: float = 0.2  # 1/h at full rupture risk

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.svr_min <= 0:
            raise ValueError("Minimum vascular resistance must be positive")
        if not 0 < self.max_extraction <= 1:
            raise ValueError("Maximum oxygen extraction must be in (0, 1]")
        if not 0 <= self.max_vasodilation < 1:
            raise ValueError("Maximum vasodilation must be in [0, 1)")
        if len(self.severity_weights) != 3 or abs(sum(self.severity_weights) - 1.0) > 1e-6:
            raise ValueError("Severity weights must be three values summing to 1.0")
        if any(rate < 0 for rate in (self.tone_rate, self.heart_rate_rate, self.hypoxia_rate,
                                     self.viscosity_rate, self.platelet_rate)):
            raise ValueError("Relaxation rates cannot be negative")


class PhysiologyEngine:
    """Engine updating cardiovascular state and blood rheology."""

    def __init__(self, config: PhysiologyConfig = None):
        self.config = config or PhysiologyConfig()

    def infection_severity(self, state: 'SimulationState') -> float:
        """
        Infection severity index in [0, 1].

        Non-decreasing in bacterial load, systemic cytokines and endotoxin.
        """
        cfg = self.config
        w_load, w_cytokine, w_endotoxin = cfg.severity_weights
        load = saturating(float(state.alive_bacteria_count()), cfg.severity_load_half)
        cytokines = saturating(state.inflammatory.total_cytokines, cfg.severity_cytokine_half)
        endotoxin = saturating(state.inflammatory.endotoxin, cfg.severity_endotoxin_half)
        return clamp(w_load * load + w_cytokine * cytokines + w_endotoxin * endotoxin, 0.0, 1.0)

    def update(self, state: 'SimulationState', dt: float) -> float:
        """
        Advance hemodynamics, rheology and coagulation by ``dt`` hours.

        Returns:
            Infection severity used for this tick
        """
        severity = self.infection_severity(state)
        self._update_cardiovascular(state, severity, dt)
        self._update_coagulation(state, severity, dt)
        self._update_fat_deposits(state, severity, dt)
        self._update_rheology(state, severity, dt)
        return severity

    def _update_cardiovascular(self, state: 'SimulationState', severity: float, dt: float) -> None:
        cfg = self.config
        cv = state.cardiovascular

        # Vasodilation: tone falls with a sigmoid of severity
        tone_target = cfg.tone_base * (
            1.0 - cfg.max_vasodilation * sigmoid(severity, cfg.severity_midpoint, cfg.severity_steepness)
        )
        cv.arterial_tone = clamp(relax(cv.arterial_tone, tone_target, cfg.tone_rate, dt), 0.05, 1.0)
        cv.systemic_vascular_resistance = max(
            cfg.svr_min, cfg.svr_base * (cfg.svr_floor + cfg.svr_gain * cv.arterial_tone)
        )

        # Compensatory tachycardia
        hr_target = cfg.heart_rate_base * (1.0 + cfg.tachycardia_gain * severity)
        cv.heart_rate = clamp(relax(cv.heart_rate, hr_target, cfg.heart_rate_rate, dt), 40.0, 180.0)

        # Stroke volume from preload/afterload proxies
        preload = clamp(
            1.0 - cfg.venous_pooling * (1.0 - safe_divide(cv.arterial_tone, cfg.tone_base, 1.0)), 0.2, 1.2
        )
        afterload = safe_divide(cv.systemic_vascular_resistance, cfg.svr_base, 1.0)
        contractility = clamp(1.0 - cfg.septic_depression * severity, 0.2, 1.0)
        cv.stroke_volume = cfg.stroke_volume_base * preload * contractility * 2.0 / (1.0 + afterload)
        cv.cardiac_output = cv.heart_rate * cv.stroke_volume / 1000.0
        cv.mean_arterial_pressure = clamp(
            cv.cardiac_output * cv.systemic_vascular_resistance / 80.0 + cfg.central_venous_pressure,
            20.0, 160.0
        )

        # Oxygen delivery versus demand
        cv.oxygen_saturation = clamp(cfg.sao2_base * (1.0 - cfg.lung_injury * severity), 0.5, 1.0)
        cv.arterial_oxygen_content = 1.34 * cfg.hemoglobin * cv.oxygen_saturation + 0.003 * cfg.pao2
        cv.oxygen_delivery = cv.cardiac_output * cv.arterial_oxygen_content * 10.0
        cv.oxygen_demand = cfg.demand_base * (1.0 + cfg.demand_gain * severity)

        critical_delivery = cv.oxygen_demand / cfg.max_extraction
        if cv.oxygen_delivery < critical_delivery:
            hypoxia_target = 1.0 - safe_divide(cv.oxygen_delivery, critical_delivery, 0.0)
        else:
            hypoxia_target = 0.0
        cv.tissue_hypoxia = clamp(relax(cv.tissue_hypoxia, hypoxia_target, cfg.hypoxia_rate, dt), 0.0, 1.0)

    def _update_coagulation(self, state: 'SimulationState', severity: float, dt: float) -> None:
        cfg = self.config
        rheology = state.rheology

        oxidized = sum(1 for deposit in state.fat_deposits.values() if deposit.oxidized)
        endothelial_damage = 0.5 * saturating(state.inflammatory.endotoxin, cfg.severity_endotoxin_half)
        endothelial_damage += 0.05 * oxidized
        activation_target = clamp(0.8 * severity + endothelial_damage, 0.0, 1.0)
        rheology.platelet_activation = relax(
            rheology.platelet_activation, activation_target, cfg.platelet_rate, dt
        )

        # Existing clots grow while platelets are active and dissolve by fibrinolysis
        for clot in state.clots.values():
            clot.age += dt
            growth = cfg.fibrin_growth_rate * max(0.0, rheology.platelet_activation - cfg.clot_threshold)
            clot.fibrin = clamp(clot.fibrin + (growth - cfg.fibrinolysis_rate) * dt, 0.0, 1.0)
            clot.occlusion = 0.1 * clot.fibrin
            clot.radius = 5.0 + 15.0 * clot.fibrin

        excess = rheology.platelet_activation - cfg.clot_threshold
        if excess > 0 and len(state.clots) < cfg.max_clots:
            if state.rng.random() < event_probability(cfg.clot_formation_rate * excess, dt):
                self._form_clot(state, None)

    def _form_clot(self, state: 'SimulationState', position: Vector3 = None) -> Clot:
        if position is None:
            width, height, depth = state.world_size
            # Clots nucleate on the vessel wall
            position = Vector3(
                float(state.rng.uniform(0.0, width)),
                float(state.rng.choice([0.0, height])),
                float(state.rng.uniform(0.0, depth)),
            )
        clot = Clot(id=state.new_id(), position=position)
        state.clots[clot.id] = clot
        logger.debug(f"Clot {clot.id} formed at tick {state.tick}")
        return clot

    def _update_fat_deposits(self, state: 'SimulationState', severity: float, dt: float) -> None:
        cfg = self.config
        for deposit in state.fat_deposits.values():
            if not deposit.oxidized:
                if state.rng.random() < event_probability(cfg.fat_oxidation_rate * (1.0 + severity), dt):
                    deposit.oxidized = True
                continue
            deposit.rupture_risk = clamp(0.05 * deposit.foam_cells + 0.3 * severity, 0.0, 1.0)
            if len(state.clots) < cfg.max_clots:
                if state.rng.random() < event_probability(cfg.rupture_rate * deposit.rupture_risk, dt):
                    logger.info(f"Plaque rupture at fat deposit {deposit.id}, tick {state.tick}")
                    self._form_clot(state, deposit.position.copy())
                    deposit.rupture_risk = 0.0

    def _update_rheology(self, state: 'SimulationState', severity: float, dt: float) -> None:
        cfg = self.config
        rheology = state.rheology
        cv = state.cardiovascular

        rheology.clot_load = min(1.0, sum(clot.occlusion for clot in state.clots.values()))
        rheology.occlusion = min(cfg.max_occlusion, rheology.clot_load)
        hematocrit_target = cfg.hematocrit_base * (1.0 - cfg.hemolysis_gain * severity)
        rheology.hematocrit = relax(rheology.hematocrit, hematocrit_target, 0.5, dt)

        # Low-flow term uses last tick's flow rate
        low_flow = max(0.0, 1.0 - safe_divide(rheology.flow_rate, cfg.flow_base, 1.0))
        viscosity_target = (
            cfg.viscosity_base
            * (rheology.hematocrit / cfg.hematocrit_base)
            * (1.0 + cfg.clot_viscosity_gain * rheology.clot_load)
            * (1.0 + cfg.low_flow_viscosity_gain * low_flow)
        )
        rheology.viscosity = clamp(
            relax(rheology.viscosity, viscosity_target, cfg.viscosity_rate, dt), 2.5, 8.0
        )

        relative_pressure = safe_divide(cv.mean_arterial_pressure, cfg.map_base, 1.0)
        relative_viscosity = safe_divide(rheology.viscosity, cfg.viscosity_base, 1.0)
        rheology.flow_rate = clamp(
            cfg.flow_base * safe_divide(relative_pressure, relative_viscosity, 1.0) * (1.0 - rheology.occlusion),
            1.0, 15.0
        )
