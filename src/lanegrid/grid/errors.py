# Copyright (c) 2025, Lanegrid Authors
"""
Error types for host-side validation and the grid interpreter.

Kernels themselves have no error channel. Everything here is raised either
by ``Op.schedule`` (shape/dtype validation before a launch), by
``DeviceBuffer`` (out-of-bounds detection), or by the interpreter when a
lane program breaks the barrier protocol.
"""

from typing import Any, Tuple


# =============================================================================
# Tensor Errors (host-side validation)
# =============================================================================


class TensorError(ValueError):
    """Base class for tensor shape, size and dtype mismatches."""


class EmptyError(TensorError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"tensor '{name}' must not be empty")


class DataTypeError(TensorError):
    def __init__(self, name: str, expected: Any, actual: Any):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"data type mismatch for '{name}': expected {expected}, got {actual}")


class SizeError(TensorError):
    def __init__(self, name: str, expected: int, actual: int):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"data size not match for '{name}': {expected} vs. {actual}")


class ShapeError(TensorError):
    def __init__(self, expected: Tuple[int, ...], actual: Tuple[int, ...]):
        self.expected = tuple(expected)
        self.actual = tuple(actual)
        super().__init__(f"tensor shape {self.actual} doesn't match {self.expected}")


class SliceOutOfRangeError(TensorError):
    def __init__(self, dim: int, start: int, end: int):
        self.dim = dim
        self.start = start
        self.end = end
        super().__init__(f"slice {start}..{end} out of range for dimension size {dim}")


class BatchOutOfRangeError(TensorError):
    def __init__(self, batch: int, max: int):
        self.batch = batch
        self.max = max
        super().__init__(f"batch {batch} out of range of max {max}")


class DeviceError(TensorError):
    def __init__(self, name: str, device):
        self.name = name
        self.device = device
        super().__init__(f"tensor '{name}' must be on the CPU, got {device}")


class ContiguousError(TensorError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"tensor '{name}' must be contiguous")


class AlignmentError(TensorError):
    def __init__(self, name: str, value: int, multiple: int = 4):
        self.name = name
        self.value = value
        self.multiple = multiple
        super().__init__(f"'{name}' must be a multiple of {multiple}, got {value}")


# =============================================================================
# Launch Errors (interpreter)
# =============================================================================


class LaunchError(RuntimeError):
    """Base class for failures detected while running a grid."""


class BarrierDivergenceError(LaunchError):
    """Some lanes of a block returned while others were waiting at a barrier."""

    def __init__(self, block_idx: Tuple[int, int, int], phase: int, finished: int, waiting: int):
        self.block_idx = block_idx
        self.phase = phase
        super().__init__(
            f"barrier divergence in block {block_idx} at phase {phase}: "
            f"{finished} lanes returned while {waiting} lanes wait at a barrier"
        )


class OutOfBoundsError(IndexError):
    """Access outside a device buffer. Negative indices never wrap."""

    def __init__(self, name: str, index: int, size: int):
        self.name = name
        self.index = index
        self.size = size
        super().__init__(f"out-of-bounds access to '{name}': index {index}, size {size}")


__all__ = [
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
