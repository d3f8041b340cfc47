from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from .pool import parse_executor_kind


@dataclass
class AvoidConfig:
    n_nearest: int = 3
    weight: float = 1.0
    min_distance: float = 1e-3


@dataclass
class AttractConfig:
    weight: float = 1.0


@dataclass
class AlignConfig:
    n_nearest: int = 3
    weight: float = 1.0


@dataclass
class SimulationConfig:
    seed: int = 42
    population_size: int = 1000
    time_step: float = 0.05
    max_speed: float = 4.0
    # Side of the square boids are scattered over at start-up.
    world_size: float = 100.0
    cell_size: float = 5.0
    spawn_speed: float = 1.0
    rule: str = "avoid"
    workers: int = 10
    # Indices handed to a worker per task.
    chunk_size: int = 256
    # "thread" or "process"; processes receive a pickled copy of each tick's snapshot.
    executor: str = "thread"
    config_version: str = "v1"
    avoid: AvoidConfig = field(default_factory=AvoidConfig)
    attract: AttractConfig = field(default_factory=AttractConfig)
    align: AlignConfig = field(default_factory=AlignConfig)

    def __post_init__(self) -> None:
        if self.population_size < 0:
            raise ValueError(f"population_size must be non-negative, got {self.population_size}")
        if self.workers < 0:
            raise ValueError(f"workers must be non-negative, got {self.workers}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {self.chunk_size}")
        if self.cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {self.cell_size}")
        parse_executor_kind(self.executor)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    def to_yaml(self, path: Path) -> None:
        Path(path).write_text(yaml.safe_dump(asdict(self), sort_keys=False))


def load_config(raw: Dict[str, Any]) -> SimulationConfig:
    avoid = AvoidConfig(**raw.get("avoid", {}))
    attract = AttractConfig(**raw.get("attract", {}))
    align = AlignConfig(**raw.get("align", {}))
    sim_values = {k: v for k, v in raw.items() if k not in {"avoid", "attract", "align"}}
    return SimulationConfig(avoid=avoid, attract=attract, align=align, **sim_values)
