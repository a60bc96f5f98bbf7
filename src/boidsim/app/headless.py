from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.flock import Flock
from ..sim.core.modes import FlockMode
from ..sim.types.metrics import FlockMetrics

logger = logging.getLogger(__name__)

_HEADER = [
    "tick",
    "mode",
    "population",
    "avg_speed",
    "avg_neighbors",
    "compactness",
    "neighbor_checks",
    "kills",
    "respawns",
    "generation",
    "tick_ms",
]


def _format_row(mode: FlockMode, metrics: FlockMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        mode.value,
        metrics.population,
        f"{metrics.average_speed:.4f}",
        f"{metrics.average_neighbors:.4f}",
        f"{metrics.compactness:.4f}",
        metrics.neighbor_checks,
        metrics.kills,
        metrics.respawns,
        metrics.generation,
        f"{tick_ms:.3f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    mode: str = FlockMode.NORMAL.value,
    config_path: Optional[Path] = None,
    summary_path: Optional[Path] = None,
) -> Flock:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    flock = Flock(config)
    flock.set_mode(mode)
    logger.info("running %d steps in %s mode with seed %d", steps, flock.mode.value, config.seed)

    tick_ms_series: list[float] = []
    speed_series: list[float] = []
    neighbor_series: list[float] = []
    compactness_series: list[float] = []
    kills = 0

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    try:
        for tick in range(steps):
            metrics = flock.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            speed_series.append(metrics.average_speed)
            neighbor_series.append(metrics.average_neighbors)
            compactness_series.append(metrics.compactness)
            kills += metrics.kills
            if writer:
                writer.writerow(_format_row(flock.mode, metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        summary = {
            "steps": steps,
            "seed": config.seed,
            "mode": flock.mode.value,
            "deterministic_log": deterministic_log,
            "final_population": len(flock.agents),
            "kills": kills,
            "generation": flock.generation,
            "tick_ms": _summary_stats(tick_ms_series),
            "average_speed": _summary_stats(speed_series),
            "average_neighbors": _summary_stats(neighbor_series),
            "compactness": _summary_stats(compactness_series),
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return flock


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless boids simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--mode", choices=[mode.value for mode in FlockMode], default=FlockMode.NORMAL.value)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON file for run summary stats.")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        mode=args.mode,
        config_path=args.config,
        summary_path=args.summary,
    )


if __name__ == "__main__":
    main()
