# Copyright (c) 2025, Lanegrid Authors
"""
Software SIMT grid: lanes, blocks, barriers and block-shared memory.

Key pieces:
- Lane programs: generator functions where ``yield`` is a block barrier
- Block-local SharedMemory: allocated fresh for every block
- Tree reduction over shared scratch with a barrier per halving step
- Views: strided sub-regions of larger buffers
- Batches: stacking, splitting and token-packing of request tensors
- Schedules: sequential, reversed, shuffled and threaded block execution

Example:
    from lanegrid.grid import Grid, LaunchConfig
    from lanegrid.kernels.matmul_int8 import QuantizedMatMulOp

    op = QuantizedMatMulOp.schedule(matrix=..., input=x, output=y, ...)
    Grid(op, LaunchConfig(block_size=128)).run()
"""

from .batch import Cursor, TensorStack, load_batch, pack_cursors, pack_stack, repeat, split, stack
from .config import LaunchConfig, DEFAULT_BLOCK_SIZE, SCHEDULES
from .core import Grid
from .errors import (
    TensorError,
    EmptyError,
    DataTypeError,
    SizeError,
    ShapeError,
    SliceOutOfRangeError,
    BatchOutOfRangeError,
    DeviceError,
    ContiguousError,
    AlignmentError,
    LaunchError,
    BarrierDivergenceError,
    OutOfBoundsError,
)
from .interpreter import LaneContext, run_block, launch, interleave_blocks
from .memory import DeviceBuffer, SharedMemory
from .ops import Op, ScheduledOp, TensorMeta
from .reduction import reduce_step, tree_reduce
from .tensor_spec import VEC_WIDTH, Shape, View, compute_index

__all__ = [
    # Launch
    "Grid",
    "LaunchConfig",
    "DEFAULT_BLOCK_SIZE",
    "SCHEDULES",
    "LaneContext",
    "run_block",
    "launch",
    "interleave_blocks",
    # Ops
    "Op",
    "ScheduledOp",
    "TensorMeta",
    # Memory
    "DeviceBuffer",
    "SharedMemory",
    # Reduction
    "reduce_step",
    "tree_reduce",
    # Batches
    "repeat",
    "split",
    "stack",
    "load_batch",
    "Cursor",
    "pack_stack",
    "pack_cursors",
    "TensorStack",
    # Views
    "VEC_WIDTH",
    "Shape",
    "View",
    "compute_index",
    # Errors
    "TensorError",
    "EmptyError",
    "DataTypeError",
    "SizeError",
    "ShapeError",
    "SliceOutOfRangeError",
    "BatchOutOfRangeError",
    "DeviceError",
    "ContiguousError",
    "AlignmentError",
    "LaunchError",
    "BarrierDivergenceError",
    "OutOfBoundsError",
]
