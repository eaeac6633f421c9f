# Copyright (c) 2025, Lanegrid Authors
"""
Launch configuration for the grid interpreter.

Environment overrides (read by ``LaunchConfig.from_env``):
    LANEGRID_SCHEDULE     sequential | reversed | shuffled | threaded
    LANEGRID_BLOCK_SIZE   lanes per block (power of two)
    LANEGRID_NUM_WORKERS  worker threads for the threaded schedule
    LANEGRID_SEED         seed for the shuffled schedule
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)


DEFAULT_BLOCK_SIZE = 128

SCHEDULES = ("sequential", "reversed", "shuffled", "threaded")


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass
class LaunchConfig:
    """Configuration for one grid launch.

    Attributes:
        block_size: Lanes per block. Must be a power of two so the tree
            reduction halves down to a single lane.
        schedule: Block execution order. ``sequential`` runs blocks in
            row-major grid order, ``reversed`` backwards, ``shuffled`` in a
            seeded random order with lane order also shuffled every phase,
            ``threaded`` on a thread pool.
        num_workers: Thread pool size for ``threaded`` (None = os.cpu_count()).
        seed: Seed for ``shuffled``.
        validate: Run host-side shape validation in the functional API.
    """

    block_size: int = DEFAULT_BLOCK_SIZE
    schedule: str = "sequential"
    num_workers: Optional[int] = None
    seed: int = 0
    validate: bool = True

    def __post_init__(self):
        if not isinstance(self.block_size, int) or not is_power_of_two(self.block_size):
            raise ValueError(f"block_size must be a power of two, got {self.block_size}")
        if self.schedule not in SCHEDULES:
            raise ValueError(f"Unknown schedule '{self.schedule}'. Expected one of {SCHEDULES}")
        if self.num_workers is not None and self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")

    @property
    def workers(self) -> int:
        return self.num_workers or os.cpu_count() or 1

    @classmethod
    def from_env(cls, **overrides) -> "LaunchConfig":
        """Default config with LANEGRID_* environment overrides applied.

        Invalid environment values are logged and ignored. Keyword overrides
        take precedence over the environment and are validated strictly.
        """
        values = {}

        schedule = os.environ.get("LANEGRID_SCHEDULE")
        if schedule:
            if schedule in SCHEDULES:
                values["schedule"] = schedule
            else:
                logger.warning(f"Ignoring LANEGRID_SCHEDULE={schedule!r}, expected one of {SCHEDULES}")

        for env_name, key, check in (
            ("LANEGRID_BLOCK_SIZE", "block_size", is_power_of_two),
            ("LANEGRID_NUM_WORKERS", "num_workers", lambda n: n >= 1),
            ("LANEGRID_SEED", "seed", lambda n: True),
        ):
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning(f"Ignoring {env_name}={raw!r}, expected an integer")
                continue
            if not check(value):
                logger.warning(f"Ignoring {env_name}={raw!r}, value out of range")
                continue
            values[key] = value

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown LaunchConfig fields: {sorted(unknown)}")
        values.update(overrides)
        return cls(**values)


__all__ = ["LaunchConfig", "DEFAULT_BLOCK_SIZE", "SCHEDULES", "is_power_of_two"]
