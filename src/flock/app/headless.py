from __future__ import annotations

import argparse
import csv
import json
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..sim.core.config import SimulationConfig
from ..sim.core.pool import ExecutorKind, TickPool
from ..sim.core.world import World
from ..sim.systems.rules import RuleKind, parse_rule_kind
from ..sim.types.metrics import TickMetrics
from ..sim.utils.logger import get_logger

_HEADER = [
    "rule",
    "tick",
    "population",
    "evaluated",
    "faults",
    "neighbor_checks",
    "mean_speed",
    "mean_steering",
    "tick_ms",
]

_DEFAULT_RULES = [RuleKind.AVOID.value, RuleKind.ATTRACT.value]


def _format_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.rule,
        metrics.tick,
        metrics.population,
        metrics.evaluated,
        metrics.faults,
        metrics.neighbor_checks,
        f"{metrics.mean_speed:.4f}",
        f"{metrics.mean_steering:.4f}",
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
    rules: Sequence[str],
    n_boids: Optional[int],
    ticks: int,
    seed: Optional[int] = None,
    log_path: Optional[Path] = None,
    summary_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
    workers: Optional[int] = None,
    deterministic_log: bool = False,
    executor: Optional[str] = None,
) -> Dict[str, Any]:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    if workers is not None:
        config.workers = workers
    if executor is not None:
        config.executor = executor
    if n_boids is not None:
        if n_boids < 1:
            raise ValueError(f"population size must be positive, got {n_boids}")
        config.population_size = n_boids
    kinds = [parse_rule_kind(rule) for rule in rules] or [parse_rule_kind(config.rule)]

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    summary: Dict[str, Any] = {
        "boids": config.population_size,
        "ticks": ticks,
        "seed": config.seed,
        "workers": config.workers,
        "executor": config.executor,
        "rules": {},
    }
    try:
        with TickPool(config.workers, config.chunk_size, config.executor) as pool:
            for kind in kinds:
                world = World.create(kind, config.population_size, config=config, pool=pool)
                logger.info("running {} ticks of {} over {:,} boids", ticks, kind.value, world.population.size())
                tick_ms_series: List[float] = []
                faults = 0
                neighbor_checks = 0
                for result in world.run(ticks):
                    if result.cancelled or result.metrics is None:
                        break
                    metrics = result.metrics
                    tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
                    tick_ms_series.append(tick_ms)
                    faults += metrics.faults
                    neighbor_checks += metrics.neighbor_checks
                    if writer:
                        writer.writerow(_format_row(metrics, tick_ms))
                if faults:
                    logger.warning("{}: {} per-boid faults over {} ticks", kind.value, faults, ticks)
                summary["rules"][kind.value] = {
                    "ticks_run": len(tick_ms_series),
                    "faults": faults,
                    "neighbor_checks": neighbor_checks,
                    "tick_ms": _summary_stats(tick_ms_series),
                }
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return summary


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Headless boids simulation")
    parser.add_argument(
        "--rule",
        dest="rules",
        action="append",
        choices=[kind.value for kind in RuleKind],
        default=None,
        help="Rule to run; repeat to run several worlds (default: avoid, then attract).",
    )
    parser.add_argument("--boids", type=int, default=None, help="Population size (positive).")
    parser.add_argument("--ticks", type=int, default=1)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None, help="Worker threads per tick (<=1 runs inline).")
    parser.add_argument(
        "--executor",
        choices=[kind.value for kind in ExecutorKind],
        default=None,
        help="Run tick chunks on threads (default) or on worker processes.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-tick metrics")
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON file for run summary stats.")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    get_logger(level=args.log_level)
    if args.boids is not None and args.boids < 1:
        parser.error("--boids must be a positive integer")
    run_headless(
        args.rules if args.rules is not None else _DEFAULT_RULES,
        args.boids,
        args.ticks,
        seed=args.seed,
        log_path=args.log,
        summary_path=args.summary,
        config_path=args.config,
        workers=args.workers,
        deterministic_log=args.deterministic_log,
        executor=args.executor,
    )


if __name__ == "__main__":
    main()
