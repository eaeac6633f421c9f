# Copyright (c) 2025, Lanegrid Authors
from .layer_norm import LayerNormOp, layer_norm_
from .matmul_int8 import QuantizedMatMulOp, QuantizedMatrix, matmul_int8

__all__ = [
    "LayerNormOp",
    "layer_norm_",
    "QuantizedMatMulOp",
    "QuantizedMatrix",
    "matmul_int8",
]
