# Copyright (c) 2025, Lanegrid Authors
"""
Quantized MatMul Op for the grid interpreter.

Projects every (batch, token) row of an input tensor (C channels) through a
(R, C) weight matrix held as 8-bit codes, reconstructed on the fly:

    W[r, c] = row_mean[r] + col_mean[c] + row_range[r] * col_range[c] * code[r, c]
    y[b, t, r] = sum_c W[r, c] * x[b, t, c]

One block per (row group, token, batch); grid = (R/4, T, B). Each block
produces 4 consecutive outputs: its lanes stride over the C/4 column chunks,
accumulate a vec4 of partial dot products (one component per row), and tree
reduce them through shared scratch. Lane 0 writes the result.

Input and output are addressed through Views, so the op can read a slice of
a larger tensor and write into a slice of another one without touching the
surrounding elements.

Tensor declarations:
    matrix:    (R, C/4) int32 packed codes, read one word at a time
    col_mean:  (C,) float32, read 4-wide
    col_range: (C,) float32, read 4-wide
    row_mean:  (R,) float32, read 4-wide
    row_range: (R,) float32, read 4-wide
    input:     parent tensor of ``source``, float32, read 4-wide
    output:    parent tensor of ``destination``, float32, written 4-wide

Requirements (checked by schedule()):
    C % 4 == 0, R % 4 == 0, factor sizes match, views 4-aligned along x and
    within their parents, source.shape == (C, T, B), destination.shape == (R, T, B)

Usage:
    from lanegrid.kernels.matmul_int8 import QuantizedMatMulOp
    from lanegrid.grid import Grid

    op = QuantizedMatMulOp.schedule(
        matrix=q.matrix, col_mean=q.col_mean, col_range=q.col_range,
        row_mean=q.row_mean, row_range=q.row_range,
        input=x, output=y,
    )
    Grid(op).run()
"""

from typing import Any, Dict, Optional

import torch

from lanegrid.grid.config import LaunchConfig
from lanegrid.grid.core import Grid
from lanegrid.grid.errors import AlignmentError, ShapeError, SizeError, TensorError
from lanegrid.grid.memory import SharedMemory
from lanegrid.grid.ops import Op
from lanegrid.grid.reduction import tree_reduce
from lanegrid.grid.tensor_spec import Shape, View, compute_index, view_or_full
from lanegrid.kernels.utils.pack import unpack4x8unorm

from .quant import QuantizedMatrix


def _dot4(m: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
    """Row-wise dot products of a (4, 4) matrix with a vec4, left to right."""
    p = m * x
    return ((p[:, 0] + p[:, 1]) + p[:, 2]) + p[:, 3]


def _check_view(name: str, view: View, numel: int) -> None:
    view.check_alignment(name)
    view.check_bounds(name)
    if numel != view.stride.numel():
        raise SizeError(name, view.stride.numel(), numel)


class QuantizedMatMulOp(Op):
    """y = dequantize(W_q) @ x over (batch, token) rows, addressed through views."""

    reads = {
        "matrix": (torch.int32, 1),
        "col_mean": (torch.float32, 4),
        "col_range": (torch.float32, 4),
        "row_mean": (torch.float32, 4),
        "row_range": (torch.float32, 4),
        "input": (torch.float32, 4),
    }
    writes = {"output": (torch.float32, 4)}

    @classmethod
    def resolve_params(
        cls,
        tensors: Dict[str, torch.Tensor],
        validate: bool = True,
        C: Optional[int] = None,
        R: Optional[int] = None,
        source: Optional[View] = None,
        destination: Optional[View] = None,
    ) -> Dict[str, Any]:
        matrix = tensors["matrix"]
        if C is None:
            C = tensors["col_mean"].numel()
        if R is None:
            R = tensors["row_mean"].numel()

        source = view_or_full(source, _embedding_shape(tensors["input"], C))
        destination = view_or_full(destination, _embedding_shape(tensors["output"], R))
        T, B = source.shape.y, source.shape.z

        if validate:
            if C <= 0 or R <= 0:
                raise TensorError(f"matrix dimensions must be positive, got C={C}, R={R}")
            if C % 4 != 0:
                raise AlignmentError("C", C)
            if R % 4 != 0:
                raise AlignmentError("R", R)
            if matrix.numel() != R * C // 4:
                raise SizeError("matrix", R * C // 4, matrix.numel())
            for name, expected in (("col_mean", C), ("col_range", C), ("row_mean", R), ("row_range", R)):
                if tensors[name].numel() != expected:
                    raise SizeError(name, expected, tensors[name].numel())
            _check_view("source", source, tensors["input"].numel())
            _check_view("destination", destination, tensors["output"].numel())
            if source.shape != Shape(C, T, B, 1):
                raise ShapeError(Shape(C, T, B, 1), source.shape)
            if destination.shape != Shape(R, T, B, 1):
                raise ShapeError(Shape(R, T, B, 1), destination.shape)

        return {
            "C": int(C),
            "R": int(R),
            "T": int(T),
            "B": int(B),
            "source": source,
            "destination": destination,
        }

    @classmethod
    def grid_dim(cls, R: int, T: int, B: int, **params):
        return (R // 4, T, B)

    @staticmethod
    def shared_storage(block_dim: int) -> SharedMemory:
        shared = SharedMemory()
        shared.array("sketch", block_dim)
        return shared

    @staticmethod
    def lane(ctx, matrix, col_mean, col_range, row_mean, row_range, input, output, C, R, T, B, source, destination):
        stride = C // 4
        index = ctx.thread_idx
        channel = ctx.global_idx[0] // ctx.block_dim
        _, token, batch = ctx.block_idx

        sketch = ctx.shared["sketch"]

        bb = compute_index(source, batch, token, 0)
        cb = channel * 4 * stride
        myc = row_mean[channel]
        ryc = row_range[channel]

        local_sum = torch.zeros(4, dtype=torch.float32)
        for i in range(index, stride, ctx.block_dim):
            x = input[bb + i]
            mxi = col_mean[i]
            rxi = col_range[i]
            rows = []
            for j in range(4):
                code = unpack4x8unorm(matrix[cb + j * stride + i])
                rows.append(torch.addcmul(myc[j] + mxi, code, ryc[j] * rxi))
            local_sum = local_sum + _dot4(torch.stack(rows), x)
        sketch[index] = local_sum
        yield

        yield from tree_reduce(index, ctx.block_dim, sketch)

        if index == 0:
            output[compute_index(destination, batch, token, channel)] = sketch[0]


def _embedding_shape(t: torch.Tensor, channels: int) -> Shape:
    """Shape (channels, T, B) of a (B, T, channels) or flat tensor."""
    if t.dim() == 3:
        return Shape.from_torch(t.shape)
    if t.dim() == 2:
        return Shape(t.shape[1], t.shape[0], 1)
    rows = t.numel() // channels if channels else 0
    return Shape(channels, rows, 1)


def matmul_int8(
    x: torch.Tensor,
    qmatrix: QuantizedMatrix,
    *,
    out: Optional[torch.Tensor] = None,
    source: Optional[View] = None,
    destination: Optional[View] = None,
    config: Optional[LaunchConfig] = None,
) -> torch.Tensor:
    """Project ``x`` through a quantized matrix.

    Args:
        x: (B, T, C) float32, or the parent tensor of ``source``
        qmatrix: (R, C) quantized weights
        out: Output (parent) tensor. Allocated as zeros (B, T, R) if omitted;
            required when ``destination`` is given.
        source: Region of ``x`` to read. Default: all of it.
        destination: Region of ``out`` to write. Default: all of it.
        config: Launch configuration. Default: LaunchConfig.from_env().

    Returns:
        ``out``
    """
    config = config or LaunchConfig.from_env()
    R, C = qmatrix.shape
    if out is None:
        if destination is not None:
            raise TypeError("matmul_int8() needs 'out' when 'destination' is given")
        src = view_or_full(source, _embedding_shape(x, C))
        out = torch.zeros(src.shape.z, src.shape.y, R, dtype=torch.float32, device=x.device)

    op = QuantizedMatMulOp.schedule(
        validate=config.validate,
        matrix=qmatrix.matrix,
        col_mean=qmatrix.col_mean,
        col_range=qmatrix.col_range,
        row_mean=qmatrix.row_mean,
        row_range=qmatrix.row_range,
        input=x,
        output=out,
        C=C,
        R=R,
        source=source,
        destination=destination,
    )
    Grid(op, config).run()
    return out


__all__ = ["QuantizedMatMulOp", "matmul_int8"]
