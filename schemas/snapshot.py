"""
Immutable per-tick snapshot of the simulation.

Snapshots are frozen pydantic models built from plain values copied out of
the simulation state, so nothing in a snapshot aliases engine data.
``snapshot.model_dump()`` gives plain dicts for renderers.
"""

from typing import Literal, Optional, Tuple, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from models.diagnostics import ORGANS

if TYPE_CHECKING:
    from models.state import SimulationState

Vec3 = Tuple[float, float, float]


class FrozenView(BaseModel):
    """Base for snapshot views."""
    model_config = ConfigDict(frozen=True)


class BacteriumView(FrozenView):
    kind: Literal["bacterium"] = "bacterium"
    id: int
    position: Vec3
    species: str
    strain_id: str
    integrity: float
    energy: float
    generation: int
    biofilm: bool
    adherent: bool
    opsonized: bool
    phage_infected: Optional[str] = None
    prophage: Optional[str] = None
    mean_resistance: float


class ImmuneCellView(FrozenView):
    kind: Literal["immune_cell"] = "immune_cell"
    id: int
    position: Vec3
    cell_type: str
    activation: float
    energy: float
    phagocytosed_count: int
    foam_cell: bool


class AntibodyView(FrozenView):
    kind: Literal["antibody"] = "antibody"
    id: int
    position: Vec3
    antibody_type: str
    target_strain: str


class PhageView(FrozenView):
    kind: Literal["phage"] = "phage"
    id: int
    position: Vec3
    library_id: str
    attached_to: Optional[int] = None
    generation: int


class ClotView(FrozenView):
    kind: Literal["clot"] = "clot"
    id: int
    position: Vec3
    radius: float
    occlusion: float


class FatDepositView(FrozenView):
    kind: Literal["fat_deposit"] = "fat_deposit"
    id: int
    position: Vec3
    size: float
    oxidized: bool
    foam_cells: int


class NutrientView(FrozenView):
    kind: Literal["nutrient"] = "nutrient"
    id: int
    position: Vec3
    amount: float


class CardiovascularView(FrozenView):
    heart_rate: float
    stroke_volume: float
    cardiac_output: float
    mean_arterial_pressure: float
    systemic_vascular_resistance: float
    arterial_tone: float
    arterial_oxygen_content: float
    oxygen_saturation: float
    oxygen_delivery: float
    oxygen_demand: float
    tissue_hypoxia: float


class RheologyView(FrozenView):
    viscosity: float
    flow_rate: float
    hematocrit: float
    platelet_activation: float
    clot_load: float
    occlusion: float


class InflammatoryView(FrozenView):
    tnf_alpha: float
    il6: float
    il1_beta: float
    il10: float
    endotoxin: float
    total_cytokines: float


class OrganDamageView(FrozenView):
    heart: float
    lungs: float
    kidneys: float
    liver: float
    brain: float
    mean: float


class VitalsView(FrozenView):
    temperature: float
    heart_rate: float
    respiratory_rate: float
    spo2: float
    systolic_bp: float
    diastolic_bp: float
    mean_arterial_pressure: float
    wbc_count: float
    crp: float
    procalcitonin: float
    lactate: float
    sofa: Tuple[Tuple[str, int], ...]
    overall_health: float
    sepsis_score: float


class DrugView(FrozenView):
    antibiotic: str
    concentration: float
    dose: float
    dosing_interval: Optional[float] = None
    nephrotoxicity: float
    hepatotoxicity: float
    in_therapeutic_range: bool


class StatsView(FrozenView):
    tick: int
    elapsed_hours: float
    counts: Tuple[Tuple[str, int], ...]
    sepsis_score: float
    unique_strains: int
    dominant_strain: Optional[str] = None
    average_resistance: float
    biofilm_coverage: float
    lysogenic_bacteria: int
    viscosity: float
    bacteremia: bool
    clotting_risk: float
    cytokine_storm: bool
    deaths: Tuple[Tuple[str, int], ...]
    mutations: int = 0


class SimulationSnapshot(FrozenView):
    """Complete, detached view of one tick."""
    tick: int = Field(description="Completed ticks")
    elapsed_hours: float = Field(description="Simulated time in hours")
    lifecycle: str = Field(description="Controller lifecycle state")
    speed: float = Field(description="Speed multiplier applied to dt")
    sepsis_score: float
    bacteria: Tuple[BacteriumView, ...]
    immune_cells: Tuple[ImmuneCellView, ...]
    antibodies: Tuple[AntibodyView, ...]
    phages: Tuple[PhageView, ...]
    clots: Tuple[ClotView, ...]
    fat_deposits: Tuple[FatDepositView, ...]
    nutrients: Tuple[NutrientView, ...]
    cardiovascular: CardiovascularView
    rheology: RheologyView
    inflammatory: InflammatoryView
    organ_damage: OrganDamageView
    vitals: VitalsView
    drugs: Tuple[DrugView, ...]
    stats: StatsView


def build_snapshot(state: 'SimulationState', lifecycle: str, speed: float) -> SimulationSnapshot:
    """Copy the current state into a frozen snapshot."""
    cv = state.cardiovascular
    rheology = state.rheology
    inflammation = state.inflammatory
    damage = state.organ_damage
    vitals = state.vitals
    stats = state.stats

    return SimulationSnapshot(
        tick=state.tick,
        elapsed_hours=state.elapsed,
        lifecycle=lifecycle,
        speed=speed,
        sepsis_score=state.sepsis_score,
        bacteria=tuple(
            BacteriumView(
                id=b.id, position=b.position.as_tuple(), species=b.species.value, strain_id=b.strain_id,
                integrity=b.integrity, energy=b.energy, generation=b.generation, biofilm=b.biofilm,
                adherent=b.adherent, opsonized=b.opsonized,
                phage_infected=b.phage_infected.value if b.phage_infected else None,
                prophage=b.prophage.value if b.prophage else None,
                mean_resistance=b.genome.mean_resistance,
            )
            for b in state.bacteria.values() if b.is_alive()
        ),
        immune_cells=tuple(
            ImmuneCellView(
                id=c.id, position=c.position.as_tuple(), cell_type=c.cell_type.value,
                activation=c.activation, energy=c.energy, phagocytosed_count=c.phagocytosed_count,
                foam_cell=c.foam_cell,
            )
            for c in state.immune_cells.values() if c.is_alive()
        ),
        antibodies=tuple(
            AntibodyView(id=a.id, position=a.position.as_tuple(), antibody_type=a.antibody_type.value,
                         target_strain=a.target_strain)
            for a in state.antibodies.values() if a.is_alive()
        ),
        phages=tuple(
            PhageView(id=p.id, position=p.position.as_tuple(), library_id=p.library_id.value,
                      attached_to=p.attached_to, generation=p.generation)
            for p in state.phages.values() if p.is_alive()
        ),
        clots=tuple(
            ClotView(id=c.id, position=c.position.as_tuple(), radius=c.radius, occlusion=c.occlusion)
            for c in state.clots.values() if c.is_alive()
        ),
        fat_deposits=tuple(
            FatDepositView(id=f.id, position=f.position.as_tuple(), size=f.size, oxidized=f.oxidized,
                           foam_cells=f.foam_cells)
            for f in state.fat_deposits.values() if f.is_alive()
        ),
        nutrients=tuple(
            NutrientView(id=n.id, position=n.position.as_tuple(), amount=n.amount)
            for n in state.nutrients.values() if n.is_alive()
        ),
        cardiovascular=CardiovascularView(**cv.to_dict()),
        rheology=RheologyView(**rheology.to_dict()),
        inflammatory=InflammatoryView(**inflammation.to_dict()),
        organ_damage=OrganDamageView(mean=damage.mean, **damage.to_dict()),
        vitals=VitalsView(
            temperature=vitals.temperature,
            heart_rate=vitals.heart_rate,
            respiratory_rate=vitals.respiratory_rate,
            spo2=vitals.spo2,
            systolic_bp=vitals.systolic_bp,
            diastolic_bp=vitals.diastolic_bp,
            mean_arterial_pressure=vitals.mean_arterial_pressure,
            wbc_count=vitals.wbc_count,
            crp=vitals.crp,
            procalcitonin=vitals.procalcitonin,
            lactate=vitals.lactate,
            sofa=tuple((organ, vitals.sofa.get(organ, 0)) for organ in ORGANS),
            overall_health=vitals.overall_health,
            sepsis_score=vitals.sepsis_score,
        ),
        drugs=tuple(
            DrugView(
                antibiotic=drug.antibiotic.value, concentration=drug.concentration, dose=drug.dose,
                dosing_interval=drug.dosing_interval, nephrotoxicity=drug.nephrotoxicity,
                hepatotoxicity=drug.hepatotoxicity, in_therapeutic_range=drug.in_therapeutic_range,
            )
            for drug in state.drugs.values()
        ),
        stats=StatsView(
            tick=stats.tick,
            elapsed_hours=stats.elapsed_hours,
            counts=tuple(sorted(stats.counts.items())),
            sepsis_score=stats.sepsis_score,
            unique_strains=stats.unique_strains,
            dominant_strain=stats.dominant_strain,
            average_resistance=stats.average_resistance,
            biofilm_coverage=stats.biofilm_coverage,
            lysogenic_bacteria=stats.lysogenic_bacteria,
            viscosity=stats.viscosity,
            bacteremia=stats.bacteremia,
            clotting_risk=stats.clotting_risk,
            cytokine_storm=stats.cytokine_storm,
            deaths=tuple(sorted(stats.deaths.items())),
            mutations=stats.mutations,
        ),
    )
