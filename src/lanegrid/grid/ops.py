# Copyright (c) 2025, Lanegrid Authors
"""
Op protocol for grid kernels.

Subclass ``Op``, declare the buffers the kernel touches, and implement the
lane program and its shared storage::

    class ScaleOp(Op):
        reads  = {"x": (torch.float32, 4)}
        writes = {"x": (torch.float32, 4)}

        @classmethod
        def resolve_params(cls, tensors, validate=True, **params):
            return {"n": tensors["x"].numel() // 4}

        @classmethod
        def grid_dim(cls, n, **params):
            return (1, 1, 1)

        @staticmethod
        def lane(ctx, x, n):
            for i in range(ctx.thread_idx, n, ctx.block_dim):
                x[i] = x[i] * 2.0
            yield

    scheduled = ScaleOp.schedule(x=tensor)
    Grid(scheduled).run()

Declarations map a buffer name to ``(dtype, vec_width)``: the torch dtype
the buffer must have, and how many elements one kernel access covers
(4 for ``vec4<f32>``, 2 for a pair of packed words, 1 for a word).
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Tuple

import torch

from .errors import ContiguousError, DataTypeError, DeviceError
from .interpreter import Dim3
from .memory import DeviceBuffer, SharedMemory


# =============================================================================
# Tensor Metadata
# =============================================================================


@dataclass
class TensorMeta:
    """Metadata for a tensor captured at schedule() time."""

    name: str
    shape: Tuple[int, ...]
    dtype: torch.dtype
    vec_width: int
    numel: int
    is_output: bool


def _build_tensor_list(reads, writes) -> List[Tuple[str, torch.dtype, int, bool]]:
    """Ordered unique (name, dtype, vec_width, is_output) from reads/writes."""
    seen = {}
    for decls, is_output in ((reads, False), (writes, True)):
        for name, (dtype, vec_width) in decls.items():
            if name in seen:
                prev_dtype, prev_width, _ = seen[name]
                if (prev_dtype, prev_width) != (dtype, vec_width):
                    raise TypeError(f"Conflicting declarations for '{name}': {seen[name][:2]} vs {(dtype, vec_width)}")
                seen[name] = (dtype, vec_width, True)
            else:
                seen[name] = (dtype, vec_width, is_output)
    return [(name, dtype, width, out) for name, (dtype, width, out) in seen.items()]


# =============================================================================
# Scheduled Operation
# =============================================================================


@dataclass
class ScheduledOp:
    """An operation bound to its buffers and launch geometry.

    Attributes:
        op_cls: Operation class (must be Op subclass)
        grid_dim: Number of blocks along (x, y, z)
        buffers: Device buffers by op-local name
        params: Scalar kernel parameters (dims, views, eps, ...)
        tensor_metas: Per-tensor metadata captured at schedule time
    """

    op_cls: type
    grid_dim: Dim3
    buffers: Dict[str, DeviceBuffer]
    params: Dict[str, Any] = field(default_factory=dict)
    tensor_metas: Dict[str, TensorMeta] = field(default_factory=dict)

    @property
    def total_blocks(self) -> int:
        gx, gy, gz = self.grid_dim
        return gx * gy * gz

    def kernel_args(self) -> Dict[str, Any]:
        return {**self.buffers, **self.params}


# =============================================================================
# Operation Protocol
# =============================================================================


class Op:
    """Base class for grid-executable operations.

    Class attributes:
        reads:  Dict of buffer name -> (dtype, vec_width)
        writes: Dict of buffer name -> (dtype, vec_width)

    Subclasses implement:
        resolve_params(tensors, validate, **params): infer and check scalar
            parameters from the bound tensors. Only raise when ``validate``.
        grid_dim(**params): blocks along (x, y, z).
        shared_storage(block_dim): fresh block-local SharedMemory.
        lane(ctx, **buffers_and_params): generator lane program.
    """

    reads: ClassVar[Dict[str, Tuple[torch.dtype, int]]] = {}
    writes: ClassVar[Dict[str, Tuple[torch.dtype, int]]] = {}

    _TENSORS: ClassVar[List[Tuple[str, torch.dtype, int, bool]]] = []

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._TENSORS = _build_tensor_list(cls.reads, cls.writes)

    @classmethod
    def schedule(cls, validate: bool = True, **kwargs) -> ScheduledOp:
        """Bind tensors and parameters, validate them, and compute the grid.

        Args:
            validate: Check dtypes, sizes and alignment. With False only
                CPU placement and contiguity are required (buffers are flat
                views); mismatches surface later as OutOfBoundsError or
                wrong results.
            **kwargs: Every declared tensor by name, plus op parameters.
        """
        tensors = {}
        metas = {}
        for name, dtype, vec_width, is_output in cls._TENSORS:
            if name not in kwargs:
                raise TypeError(f"{cls.__name__}.schedule() missing tensor '{name}'")
            t = kwargs.pop(name)
            if not isinstance(t, torch.Tensor):
                raise TypeError(f"'{name}' must be a torch.Tensor, got {type(t)}")
            if validate and t.dtype != dtype:
                raise DataTypeError(name, dtype, t.dtype)
            if t.device.type != "cpu":
                raise DeviceError(name, t.device)
            if not t.is_contiguous():
                raise ContiguousError(name)
            tensors[name] = t
            metas[name] = TensorMeta(
                name=name,
                shape=tuple(t.shape),
                dtype=t.dtype,
                vec_width=vec_width,
                numel=t.numel(),
                is_output=is_output,
            )

        params = cls.resolve_params(tensors, validate=validate, **kwargs)
        buffers = {
            name: DeviceBuffer(tensors[name], name=name, vec_width=vec_width)
            for name, _, vec_width, _ in cls._TENSORS
        }
        return ScheduledOp(
            op_cls=cls,
            grid_dim=tuple(cls.grid_dim(**params)),
            buffers=buffers,
            params=params,
            tensor_metas=metas,
        )

    @classmethod
    def resolve_params(cls, tensors: Dict[str, torch.Tensor], validate: bool = True, **params) -> Dict[str, Any]:
        return dict(params)

    @classmethod
    def grid_dim(cls, **params) -> Dim3:
        raise NotImplementedError(f"{cls.__name__} must implement grid_dim()")

    @staticmethod
    def shared_storage(block_dim: int) -> SharedMemory:
        """Block-local scratch. Default: none."""
        return SharedMemory()

    @staticmethod
    def lane(ctx, **kwargs):
        """Lane program. Must be a generator function (``yield`` = barrier)."""
        raise NotImplementedError("Op subclasses must implement lane()")


__all__ = ["Op", "ScheduledOp", "TensorMeta"]
