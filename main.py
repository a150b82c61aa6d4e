"""
Main entry point for the headless bacteremia simulation runner.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from config import settings
from services.simulation_service import SimulationController


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"{settings.engine_title} v{settings.engine_version} (headless runner)"
    )
    parser.add_argument("--species", default="S_aureus", help="Bacterial species to seed")
    parser.add_argument("--population", type=int, default=50, help="Initial bacterial population")
    parser.add_argument("--antibiotic", action="append", default=[],
                        help="Antibiotic to administer (repeatable)")
    parser.add_argument("--therapy-mode", default="off", choices=["off", "targeted", "cocktail"],
                        help="Phage therapy mode")
    parser.add_argument("--ticks", type=int, default=60, help="Number of ticks to run")
    parser.add_argument("--dt", type=float, default=settings.default_dt, help="Tick length in hours")
    parser.add_argument("--seed", type=int, default=settings.default_seed, help="Random seed")
    parser.add_argument("--debug", action="store_true", help="Fail fast on internal consistency errors")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger = logging.getLogger("main")

    controller = SimulationController(seed=args.seed, debug=args.debug)
    result = controller.configure({
        "initial_population": args.population,
        "species": args.species,
        "antibiotics": args.antibiotic,
        "therapy_mode": args.therapy_mode,
    })
    if not result.accepted:
        for error in result.errors:
            logger.error(f"{error.field}: {error.message}")
        return 2

    controller.start()
    snapshot = controller.run(args.ticks, args.dt)
    stats = snapshot.stats
    summary = {
        "tick": snapshot.tick,
        "elapsed_hours": round(snapshot.elapsed_hours, 3),
        "counts": dict(stats.counts),
        "sepsis_score": round(snapshot.sepsis_score, 4),
        "dominant_strain": stats.dominant_strain,
        "average_resistance": round(stats.average_resistance, 4),
        "mean_arterial_pressure": round(snapshot.cardiovascular.mean_arterial_pressure, 1),
        "overall_health": round(snapshot.vitals.overall_health, 1),
    }
    logger.info(f"Run complete after {snapshot.tick} ticks")
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
