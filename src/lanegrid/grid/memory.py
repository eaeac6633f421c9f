# Copyright (c) 2025, Lanegrid Authors
"""
Device buffers and block-shared memory for the grid interpreter.

``DeviceBuffer`` wraps a flat torch tensor and addresses it in groups of
``vec_width`` elements, the way a shader addresses ``array<vec4<f32>>`` or
``array<u32>``. Every access is bounds-checked: an index outside
``[0, len(buffer))`` raises ``OutOfBoundsError`` instead of wrapping or
touching a neighbouring allocation.

``SharedMemory`` is the per-block scratch region. A fresh instance is built
for every block of every launch, so nothing carries over between blocks or
between invocations.
"""

from typing import Dict

import torch

from .errors import AlignmentError, ContiguousError, OutOfBoundsError


class DeviceBuffer:
    """Bounds-checked view of a flat tensor in groups of ``vec_width`` elements.

    Reads return a copy (a register load). For ``vec_width == 1`` reads return
    a 0-d tensor; otherwise a ``(vec_width,)`` tensor.
    """

    def __init__(self, tensor: torch.Tensor, name: str = "buffer", vec_width: int = 4):
        if not tensor.is_contiguous():
            raise ContiguousError(name)
        tensor = tensor.view(-1)
        if tensor.numel() % vec_width != 0:
            raise AlignmentError(f"{name}.numel", tensor.numel(), vec_width)
        self.tensor = tensor
        self.name = name
        self.vec_width = vec_width
        self._groups = tensor.view(-1, vec_width)

    def __len__(self) -> int:
        return self._groups.shape[0]

    def _check(self, index: int) -> None:
        if index < 0 or index >= self._groups.shape[0]:
            raise OutOfBoundsError(self.name, index, self._groups.shape[0])

    def __getitem__(self, index: int) -> torch.Tensor:
        self._check(index)
        if self.vec_width == 1:
            return self._groups[index, 0].clone()
        return self._groups[index].clone()

    def __setitem__(self, index: int, value) -> None:
        self._check(index)
        if self.vec_width == 1:
            self._groups[index, 0] = value
        else:
            self._groups[index] = value

    def __repr__(self) -> str:
        return (
            f"DeviceBuffer(name={self.name!r}, len={len(self)}, "
            f"vec_width={self.vec_width}, dtype={self.tensor.dtype})"
        )


class SharedMemory:
    """Block-local scratch arrays, indexed by name.

    Example:
        shared = SharedMemory()
        sketch = shared.array("sketch", 128)          # 128 x vec4<f32>
        mean = shared.array("mean", 1, vec_width=1)   # one f32 scalar
    """

    def __init__(self):
        self._arrays: Dict[str, DeviceBuffer] = {}

    def array(
        self,
        name: str,
        length: int,
        vec_width: int = 4,
        dtype: torch.dtype = torch.float32,
    ) -> DeviceBuffer:
        """Allocate a zero-initialised array of ``length`` groups."""
        if name in self._arrays:
            raise ValueError(f"Shared array '{name}' already allocated")
        buf = DeviceBuffer(torch.zeros(length * vec_width, dtype=dtype), name=name, vec_width=vec_width)
        self._arrays[name] = buf
        return buf

    def __getitem__(self, name: str) -> DeviceBuffer:
        if name not in self._arrays:
            raise KeyError(f"Shared array '{name}' not allocated. Available: {list(self._arrays)}")
        return self._arrays[name]

    def __contains__(self, name: str) -> bool:
        return name in self._arrays

    @property
    def nbytes(self) -> int:
        return sum(buf.tensor.numel() * buf.tensor.element_size() for buf in self._arrays.values())


__all__ = ["DeviceBuffer", "SharedMemory"]
