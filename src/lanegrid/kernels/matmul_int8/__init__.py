# Copyright (c) 2025, Lanegrid Authors
"""Rank-1 dequantized int8 matmul kernel for the grid interpreter."""

from .matmul_int8 import QuantizedMatMulOp, matmul_int8
from .quant import QuantizedMatrix

__all__ = ["QuantizedMatMulOp", "QuantizedMatrix", "matmul_int8"]
