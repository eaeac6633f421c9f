# Copyright (c) 2025, Lanegrid Authors
"""
Grid launcher for scheduled ops.

Usage:
    from lanegrid.grid import Grid, LaunchConfig
    from lanegrid.kernels.layer_norm import LayerNormOp

    op = LayerNormOp.schedule(x=x, w=w, b=b)
    Grid(op, LaunchConfig(schedule="shuffled")).run()
"""

import logging
import time
from typing import Optional

from .config import LaunchConfig
from .interpreter import Dim3, launch
from .ops import ScheduledOp

logger = logging.getLogger(__name__)


class Grid:
    """Runs one scheduled op over its grid.

    The grid is counted in blocks. The number of invocations along x is
    ``grid[0] * block[0]``, matching a dispatch that folds the lane index
    into the x dimension.
    """

    def __init__(self, op: ScheduledOp, config: Optional[LaunchConfig] = None):
        self.op = op
        self.config = config or LaunchConfig.from_env()

    @property
    def grid(self) -> Dim3:
        """Grid dimensions (blocks)."""
        return self.op.grid_dim

    @property
    def block(self) -> Dim3:
        """Block dimensions (lanes)."""
        return (self.config.block_size, 1, 1)

    @property
    def invocations(self) -> Dim3:
        gx, gy, gz = self.grid
        return (gx * self.config.block_size, gy, gz)

    def run(self) -> None:
        """Execute every block. Lane exceptions propagate unchanged."""
        op_name = self.op.op_cls.__name__
        logger.debug(
            f"Launching {op_name}: grid={self.grid} block={self.block} "
            f"schedule={self.config.schedule} params={sorted(self.op.params)}"
        )
        start = time.perf_counter()
        num_blocks = launch(
            self.op.op_cls.lane,
            self.grid,
            self.op.kernel_args(),
            shared_storage=self.op.op_cls.shared_storage,
            config=self.config,
        )
        elapsed_ms = (time.perf_counter() - start) * 1e3
        logger.debug(f"{op_name} finished: {num_blocks} blocks in {elapsed_ms:.2f} ms")


__all__ = ["Grid"]
