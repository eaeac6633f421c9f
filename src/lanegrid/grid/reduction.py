# Copyright (c) 2025, Lanegrid Authors
"""
Block-wide tree reduction over shared scratch.

Every lane of a block has written its partial value to ``scratch[lane]``
and passed a barrier. The reduction then halves the active range,
``stride = P/2, P/4, ..., 1``; at each step lanes below ``stride`` add
their upper neighbour, and the whole block passes a barrier before the next
step reads the result. The sum ends up in ``scratch[0]``.

The tree shape depends only on ``P``, so the floating-point accumulation
order is the same on every run and under every schedule.

    def lane(ctx, ...):
        sketch[ctx.thread_idx] = local_sum
        yield
        yield from tree_reduce(ctx.thread_idx, ctx.block_dim, sketch)
        if ctx.thread_idx == 0:
            total = sketch[0]
"""

from typing import Iterator

from .config import is_power_of_two
from .memory import DeviceBuffer


def reduce_step(index: int, stride: int, *scratch: DeviceBuffer) -> Iterator[None]:
    """One halving step: ``scratch[index] += scratch[index + stride]``, then barrier."""
    if index < stride:
        for buf in scratch:
            buf[index] = buf[index] + buf[index + stride]
    yield


def tree_reduce(index: int, block_size: int, *scratch: DeviceBuffer) -> Iterator[None]:
    """Reduce one or more scratch arrays of ``block_size`` entries into entry 0.

    All arrays share the same sequence of barriers. Must be driven with
    ``yield from`` by every lane of the block.
    """
    if not is_power_of_two(block_size):
        raise ValueError(f"block_size must be a power of two, got {block_size}")
    stride = block_size // 2
    while stride >= 1:
        yield from reduce_step(index, stride, *scratch)
        stride //= 2


__all__ = ["reduce_step", "tree_reduce"]
