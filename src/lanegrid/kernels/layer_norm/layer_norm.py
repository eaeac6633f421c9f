# Copyright (c) 2025, Lanegrid Authors
"""
LayerNorm Op for the grid interpreter.

Normalizes every (batch, token) row of an embedding tensor across channels
and applies a packed-half affine correction, in place:

    mean   = sum(x) / C
    invstd = 1 / sqrt(sum(x²) / C - mean² + eps)
    y      = (x - mean) * invstd * w + b

One block per (token, batch); grid = (1, T, B). The block's lanes stride
over the row in 4-wide groups (group i is visited by lane i % P), reduce
sum and sum of squares together through shared scratch, and lane 0
publishes mean/invstd to the block before the write-back pass.

The variance is the two-moment estimate E[x²] - E[x]². It loses precision
when |mean| is large relative to the spread and can come out slightly
negative, in which case invstd is NaN. ``eps`` defaults to 0.0.

Tensor declarations:
    x: (B, T, C) float32, read 4-wide, normalized in place
    w: (C/2,) int32, two binary16 weights per word, read 2 words at a time
    b: (C/2,) int32, two binary16 biases per word, read 2 words at a time

Requirements (checked by schedule()):
    C > 0, C % 4 == 0, x holds B*T*C values, w and b hold C/2 words

Usage:
    from lanegrid.kernels.layer_norm import LayerNormOp
    from lanegrid.grid import Grid

    op = LayerNormOp.schedule(x=x, w=w_packed, b=b_packed)
    Grid(op).run()
"""

from typing import Any, Dict, Optional

import torch

from lanegrid.grid.config import LaunchConfig
from lanegrid.grid.core import Grid
from lanegrid.grid.errors import AlignmentError, EmptyError, ShapeError, SizeError, TensorError
from lanegrid.grid.memory import SharedMemory
from lanegrid.grid.ops import Op
from lanegrid.grid.reduction import tree_reduce
from lanegrid.kernels.utils.pack import unpack2x16float


def _fold(v: torch.Tensor) -> torch.Tensor:
    """Horizontal sum of a vec4, left to right."""
    return ((v[0] + v[1]) + v[2]) + v[3]


class LayerNormOp(Op):
    """In-place channel LayerNorm with packed-half affine parameters."""

    reads = {
        "x": (torch.float32, 4),
        "w": (torch.int32, 2),
        "b": (torch.int32, 2),
    }
    writes = {"x": (torch.float32, 4)}

    @classmethod
    def resolve_params(
        cls,
        tensors: Dict[str, torch.Tensor],
        validate: bool = True,
        C: Optional[int] = None,
        T: Optional[int] = None,
        B: Optional[int] = None,
        eps: float = 0.0,
    ) -> Dict[str, Any]:
        x = tensors["x"]
        if C is None or T is None or B is None:
            if x.dim() != 3:
                raise ShapeError(("B", "T", "C"), tuple(x.shape))
            B_, T_, C_ = x.shape
            B = B_ if B is None else B
            T = T_ if T is None else T
            C = C_ if C is None else C

        if validate:
            if x.numel() == 0:
                raise EmptyError("x")
            if C <= 0:
                raise TensorError(f"channel count must be positive, got C={C}")
            if C % 4 != 0:
                raise AlignmentError("C", C)
            if x.dim() == 3 and tuple(x.shape) != (B, T, C):
                raise ShapeError((B, T, C), tuple(x.shape))
            if x.numel() != B * T * C:
                raise SizeError("x", B * T * C, x.numel())
            for name in ("w", "b"):
                if tensors[name].numel() != C // 2:
                    raise SizeError(name, C // 2, tensors[name].numel())

        return {"C": int(C), "T": int(T), "B": int(B), "eps": float(eps)}

    @classmethod
    def grid_dim(cls, C: int, T: int, B: int, **params):
        return (1, T, B)

    @staticmethod
    def shared_storage(block_dim: int) -> SharedMemory:
        shared = SharedMemory()
        shared.array("sum", block_dim)
        shared.array("sum_squared", block_dim)
        shared.array("mean", 1, vec_width=1)
        shared.array("deviation", 1, vec_width=1)
        return shared

    @staticmethod
    def lane(ctx, x, w, b, C, T, B, eps):
        stride = C // 4
        index = ctx.thread_idx
        _, token, batch = ctx.block_idx
        base = (batch * T + token) * stride

        sum_ = ctx.shared["sum"]
        sum_squared = ctx.shared["sum_squared"]
        mean_ = ctx.shared["mean"]
        deviation_ = ctx.shared["deviation"]

        # Pass 1: per-lane partial moments
        local_sum = torch.zeros(4, dtype=torch.float32)
        local_sum_squared = torch.zeros(4, dtype=torch.float32)
        for i in range(index, stride, ctx.block_dim):
            value = x[base + i]
            local_sum = local_sum + value
            local_sum_squared = local_sum_squared + value * value
        sum_[index] = local_sum
        sum_squared[index] = local_sum_squared
        yield

        yield from tree_reduce(index, ctx.block_dim, sum_, sum_squared)

        if index == 0:
            mean = _fold(sum_[0]) / C
            variance = _fold(sum_squared[0]) / C - mean * mean
            mean_[0] = mean
            deviation_[0] = 1.0 / torch.sqrt(variance + eps)
        yield

        # Pass 2: normalize and apply the affine correction
        mean = mean_[0]
        deviation = deviation_[0]
        for i in range(index, stride, ctx.block_dim):
            value = x[base + i] - mean
            ww = unpack2x16float(w[i]).reshape(4)
            bb = unpack2x16float(b[i]).reshape(4)
            x[base + i] = torch.addcmul(bb, value * deviation, ww)


def layer_norm_(
    x: torch.Tensor,
    w: torch.Tensor,
    b: torch.Tensor,
    *,
    eps: float = 0.0,
    config: Optional[LaunchConfig] = None,
) -> torch.Tensor:
    """Normalize ``x`` (B, T, C) in place with packed-half ``w``/``b``. Returns ``x``."""
    config = config or LaunchConfig.from_env()
    op = LayerNormOp.schedule(validate=config.validate, x=x, w=w, b=b, eps=eps)
    Grid(op, config).run()
    return x


__all__ = ["LayerNormOp", "layer_norm_"]
