# Copyright (c) 2025, Lanegrid Authors
"""
Host-side batch assembly for embedding tensors.

Kernels consume (B, T, C) tensors, i.e. ``Shape(C, T, B)``. These helpers
build such tensors from per-request pieces and take them apart again.
Axis numbers follow ``Shape``: 0 is the innermost (channel) axis, 1 the
token axis, 2 the batch axis, 3 the unused outer axis.

    stack([a, b])            # (B_a, T, C) + (B_b, T, C) -> (B_a + B_b, T, C)
    split(x, axis=2)         # one (1, T, C) tensor per batch
    repeat(x, axis=1, times=n)  # tile the token axis n times

``TensorStack`` packs requests of different lengths along the token axis
of a single batch, and records where each request starts in a ``Cursor``.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

import torch

from .errors import BatchOutOfRangeError, EmptyError, ShapeError
from .tensor_spec import Shape


def _expand(t: torch.Tensor, axis: int) -> torch.Tensor:
    """Prepend unit dims until ``axis`` exists; returns the tensor."""
    if not 0 <= axis < 4:
        raise ValueError(f"axis must be in [0, 4), got {axis}")
    while t.dim() <= axis:
        t = t.unsqueeze(0)
    return t


def _torch_dim(t: torch.Tensor, axis: int) -> int:
    return t.dim() - 1 - axis


def repeat(t: torch.Tensor, axis: int, times: int) -> torch.Tensor:
    """Tile ``t`` ``times`` times along ``axis``.

    Every block spanned by the axes up to and including ``axis`` is repeated
    in place, so repeating the token axis of (B, T, C) gives
    (B, times * T, C) with each batch's tokens cycled.
    """
    t = _expand(t, axis)
    reps = [1] * t.dim()
    reps[_torch_dim(t, axis)] = times
    return t.repeat(*reps)


def split(t: torch.Tensor, axis: int) -> List[torch.Tensor]:
    """Split into unit slices along ``axis``. Axes past 3 return ``[t]``."""
    if axis >= 4:
        return [t]
    t = _expand(t, axis)
    return [piece.contiguous() for piece in t.split(1, dim=_torch_dim(t, axis))]


def stack(batches: Sequence[torch.Tensor]) -> torch.Tensor:
    """Concatenate (B_i, T, C) tensors along the batch axis."""
    if not batches:
        raise EmptyError("batches")
    first = Shape.from_torch(_expand(batches[0], 2).shape)
    pieces = []
    for batch in batches:
        batch = _expand(batch, 2)
        shape = Shape.from_torch(batch.shape)
        expected = Shape(first.x, first.y, shape.z, 1)
        if shape != expected:
            raise ShapeError(expected, shape)
        pieces.append(batch.reshape(shape.z, shape.y, shape.x))
    return torch.cat(pieces, dim=0)


def load_batch(target: torch.Tensor, host: torch.Tensor, batch: int) -> None:
    """Copy one (T, C) request into batch slot ``batch`` of a (B, T, C) tensor."""
    shape = Shape.from_torch(_expand(target, 2).shape)
    host_shape = Shape.from_torch(_expand(host, 2).shape)
    if host_shape != Shape(shape.x, shape.y, 1, 1):
        raise ShapeError(Shape(shape.x, shape.y, 1, 1), host_shape)
    if not 0 <= batch < shape.z:
        raise BatchOutOfRangeError(batch, shape.z)
    target.view(shape.z, shape.y, shape.x)[batch].copy_(host.reshape(shape.y, shape.x))


# =============================================================================
# Token stacks
# =============================================================================


def _as_int32(word: int) -> int:
    return word - (1 << 32) if word >= (1 << 31) else word


@dataclass(frozen=True)
class Cursor:
    """Location of one request inside a token stack."""

    batch: int
    token: int
    len: int

    def pack(self) -> int:
        """Word layout: byte 0 batch, bytes 1-2 first token, byte 3 length.

        Fields are truncated to their widths. Returned as a signed 32-bit value.
        """
        word = (self.batch & 0xFF) | ((self.token & 0xFFFF) << 8) | ((self.len & 0xFF) << 24)
        return _as_int32(word)


def pack_stack(cursors: Sequence[Cursor]) -> torch.Tensor:
    """One packed word per non-empty request (int32)."""
    return torch.tensor([c.pack() for c in cursors if c.len > 0], dtype=torch.int32)


def pack_cursors(cursors: Sequence[Cursor]) -> torch.Tensor:
    """One packed word per token, naming the request the token belongs to (int32)."""
    words = [c.pack() for c in cursors if c.len > 0 for _ in range(c.len)]
    return torch.tensor(words, dtype=torch.int32)


@dataclass
class TensorStack:
    """Requests of shape (T_i, C) packed into one (1, sum T_i, C) tensor.

    Attributes:
        tensor: (1, A, C) packed tokens
        cursors: one Cursor per input request, empty requests included
    """

    tensor: torch.Tensor
    cursors: List[Cursor] = field(default_factory=list)

    @classmethod
    def from_batches(cls, batches: Sequence[torch.Tensor]) -> "TensorStack":
        if not batches:
            raise EmptyError("batches")
        channels = Shape.from_torch(_expand(batches[0], 1).shape).x
        cursors = []
        pieces = []
        token = 0
        for index, batch in enumerate(batches):
            shape = Shape.from_torch(_expand(batch, 1).shape)
            if shape != Shape(channels, shape.y, 1, 1):
                raise ShapeError(Shape(channels, shape.y, 1, 1), shape)
            cursors.append(Cursor(batch=index, token=token, len=shape.y))
            pieces.append(batch.reshape(shape.y, channels))
            token += shape.y
        tensor = torch.cat(pieces, dim=0).reshape(1, token, channels)
        return cls(tensor=tensor, cursors=cursors)

    @property
    def num_batch(self) -> int:
        """Number of input requests."""
        return len(self.cursors)

    @property
    def num_active_batch(self) -> int:
        """Number of non-empty input requests."""
        return sum(1 for c in self.cursors if c.len > 0)

    @property
    def num_token(self) -> int:
        return self.tensor.shape[1]

    def batch(self, index: int) -> torch.Tensor:
        """Tokens of request ``index`` as a (T_i, C) view of the stack."""
        if not 0 <= index < self.num_batch:
            raise BatchOutOfRangeError(index, self.num_batch)
        cursor = self.cursors[index]
        return self.tensor[0, cursor.token:cursor.token + cursor.len]

    def stack_words(self) -> torch.Tensor:
        return pack_stack(self.cursors)

    def cursor_words(self) -> torch.Tensor:
        return pack_cursors(self.cursors)


__all__ = [
    "repeat",
    "split",
    "stack",
    "load_batch",
    "Cursor",
    "pack_stack",
    "pack_cursors",
    "TensorStack",
]
