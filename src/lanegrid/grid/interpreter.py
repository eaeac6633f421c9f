# Copyright (c) 2025, Lanegrid Authors
"""
Software SIMT interpreter.

A lane program is a generator function. Each bare ``yield`` is a full-block
barrier: no lane of the block continues past it until every lane of the
block has reached it. Writes to shared memory made before a barrier are
visible to every lane after it.

    def lane(ctx, x):
        sketch = ctx.shared["sketch"]
        sketch[ctx.thread_idx] = x[ctx.thread_idx]
        yield                                  # barrier
        if ctx.thread_idx == 0:
            ...

Blocks never synchronize with each other. The order in which blocks run,
and the order in which lanes of a block run within one phase (the interval
between two barriers), are chosen by the schedule; a race-free kernel gives
the same result under every schedule.
"""

import inspect
import itertools
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import LaunchConfig
from .errors import BarrierDivergenceError
from .memory import SharedMemory


Dim3 = Tuple[int, int, int]


@dataclass(frozen=True)
class LaneContext:
    """Per-lane builtins, the equivalent of thread/block/grid indices."""

    thread_idx: int
    block_idx: Dim3
    block_dim: int
    grid_dim: Dim3
    shared: SharedMemory

    @property
    def global_idx(self) -> Dim3:
        """Global invocation id: x folds block and lane, y/z are the block's."""
        bx, by, bz = self.block_idx
        return (bx * self.block_dim + self.thread_idx, by, bz)


LaneProgram = Callable[..., Iterator[Any]]
SharedFactory = Callable[[int], SharedMemory]


def _no_shared(block_dim: int) -> SharedMemory:
    return SharedMemory()


def _spawn_lanes(
    lane_fn: LaneProgram,
    block_idx: Dim3,
    block_dim: int,
    grid_dim: Dim3,
    buffers: Dict[str, Any],
    shared: SharedMemory,
) -> List[Iterator[Any]]:
    """Start one generator per lane of a block, all sharing ``shared``."""
    lanes = []
    for tid in range(block_dim):
        ctx = LaneContext(
            thread_idx=tid,
            block_idx=block_idx,
            block_dim=block_dim,
            grid_dim=grid_dim,
            shared=shared,
        )
        lane = lane_fn(ctx, **buffers)
        if not inspect.isgenerator(lane):
            raise TypeError(f"Lane program {lane_fn.__name__} must be a generator function")
        lanes.append(lane)
    return lanes


def run_block(
    lane_fn: LaneProgram,
    block_idx: Dim3,
    block_dim: int,
    grid_dim: Dim3,
    buffers: Dict[str, Any],
    shared_storage: SharedFactory = _no_shared,
    rng: Optional[random.Random] = None,
) -> int:
    """Run one block to completion. Returns the number of barriers crossed.

    Every phase advances each pending lane up to its next barrier. Lanes run
    in index order, or in a fresh random order per phase when ``rng`` is set.

    Raises:
        BarrierDivergenceError: some lanes returned while others wait at a
            barrier.
    """
    lanes = _spawn_lanes(lane_fn, block_idx, block_dim, grid_dim, buffers, shared_storage(block_dim))

    pending: List[int] = list(range(block_dim))
    phase = 0
    while pending:
        order = pending
        if rng is not None:
            order = list(pending)
            rng.shuffle(order)

        waiting, finished = [], []
        for tid in order:
            try:
                next(lanes[tid])
                waiting.append(tid)
            except StopIteration:
                finished.append(tid)

        if waiting and finished:
            raise BarrierDivergenceError(block_idx, phase, len(finished), len(waiting))
        pending = sorted(waiting)
        if pending:
            phase += 1
    return phase


def block_order(grid_dim: Dim3, config: LaunchConfig) -> List[Dim3]:
    """Blocks in the order the schedule runs them (x fastest, then y, then z)."""
    gx, gy, gz = grid_dim
    blocks = [(x, y, z) for z, y, x in itertools.product(range(gz), range(gy), range(gx))]
    if config.schedule == "reversed":
        blocks.reverse()
    elif config.schedule == "shuffled":
        random.Random(config.seed).shuffle(blocks)
    return blocks


def launch(
    lane_fn: LaneProgram,
    grid_dim: Dim3,
    buffers: Dict[str, Any],
    shared_storage: SharedFactory = _no_shared,
    config: Optional[LaunchConfig] = None,
) -> int:
    """Run ``lane_fn`` over every block of ``grid_dim``. Returns the block count.

    Launch parameters are not validated against the buffers: a mismatched
    grid only shows up as ``OutOfBoundsError`` from a ``DeviceBuffer``.
    Exceptions raised by a lane propagate unchanged.
    """
    config = config or LaunchConfig()
    blocks = block_order(grid_dim, config)
    block_dim = config.block_size

    if config.schedule == "threaded":
        def _run(block_idx: Dim3) -> int:
            return run_block(lane_fn, block_idx, block_dim, grid_dim, buffers, shared_storage)

        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            # list() re-raises the first failure in submission order
            list(pool.map(_run, blocks))
        return len(blocks)

    if config.schedule == "shuffled":
        for i, block_idx in enumerate(blocks):
            rng = random.Random(config.seed * 1_000_003 + i)
            run_block(lane_fn, block_idx, block_dim, grid_dim, buffers, shared_storage, rng=rng)
        return len(blocks)

    for block_idx in blocks:
        run_block(lane_fn, block_idx, block_dim, grid_dim, buffers, shared_storage)
    return len(blocks)


def interleave_blocks(
    lane_fn: LaneProgram,
    block_indices: Sequence[Dim3],
    block_dim: int,
    grid_dim: Dim3,
    buffers: Dict[str, Any],
    shared_storage: SharedFactory = _no_shared,
) -> None:
    """Run several blocks with their phases interleaved, round-robin.

    Phase k of every listed block runs before phase k+1 of any of them,
    which exercises the case where blocks are resident at the same time.
    """
    states = []
    for block_idx in block_indices:
        lanes = _spawn_lanes(lane_fn, block_idx, block_dim, grid_dim, buffers, shared_storage(block_dim))
        states.append((block_idx, lanes, list(range(block_dim))))

    phase = 0
    while any(pending for _, _, pending in states):
        next_states = []
        for block_idx, lanes, pending in states:
            waiting, finished = [], []
            for tid in pending:
                try:
                    next(lanes[tid])
                    waiting.append(tid)
                except StopIteration:
                    finished.append(tid)
            if waiting and finished:
                raise BarrierDivergenceError(block_idx, phase, len(finished), len(waiting))
            next_states.append((block_idx, lanes, waiting))
        states = next_states
        phase += 1


__all__ = [
    "Dim3",
    "LaneContext",
    "LaneProgram",
    "run_block",
    "block_order",
    "launch",
    "interleave_blocks",
]
