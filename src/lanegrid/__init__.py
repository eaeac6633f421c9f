# Copyright (c) 2025, Lanegrid Authors
"""Lanegrid: GPU compute kernels run on a software SIMT grid.

Lanegrid executes workgroup-style kernels (lanes, blocks, barriers and
block-shared scratch) on the host with PyTorch tensors, so their
synchronization and indexing can be checked without a GPU. It ships a
channel LayerNorm with packed-half affine parameters and a matmul over
rank-1 dequantized int8 weights.

Example:
    >>> import torch
    >>> import lanegrid
    >>>
    >>> x = torch.randn(2, 3, 64)
    >>> w = lanegrid.pack2x16float(torch.ones(64))
    >>> b = lanegrid.pack2x16float(torch.zeros(64))
    >>> lanegrid.layer_norm_(x, w, b)
    >>>
    >>> q = lanegrid.QuantizedMatrix.from_codes(codes, col_mean, col_range, row_mean, row_range)
    >>> y = lanegrid.matmul_int8(x, q)
"""

__version__ = "0.1.0"

from lanegrid.grid import (
    Grid,
    LaunchConfig,
    Shape,
    View,
    compute_index,
    TensorError,
    LaunchError,
    OutOfBoundsError,
)
from lanegrid.kernels import (
    LayerNormOp,
    layer_norm_,
    QuantizedMatMulOp,
    QuantizedMatrix,
    matmul_int8,
)
from lanegrid.kernels.utils import (
    pack2x16float,
    unpack2x16float,
    pack4x8unorm,
    unpack4x8unorm,
)

__all__ = [
    # Launch
    "Grid",
    "LaunchConfig",
    # Views
    "Shape",
    "View",
    "compute_index",
    # Kernels
    "LayerNormOp",
    "layer_norm_",
    "QuantizedMatMulOp",
    "QuantizedMatrix",
    "matmul_int8",
    # Codecs
    "pack2x16float",
    "unpack2x16float",
    "pack4x8unorm",
    "unpack4x8unorm",
    # Errors
    "TensorError",
    "LaunchError",
    "OutOfBoundsError",
    "__version__",
]
