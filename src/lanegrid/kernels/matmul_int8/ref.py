# Copyright (c) 2025, Lanegrid Authors
"""Reference quantized matmul implementations for testing and benchmarking.

Provides PyTorch and Triton reference implementations of the rank-1
dequantized projection, for correctness verification against the grid
QuantizedMatMulOp.
"""

import torch

from .quant import QuantizedMatrix


# =============================================================================
# PyTorch Reference
# =============================================================================


def matmul_int8_pytorch(x: torch.Tensor, qmatrix: QuantizedMatrix, dtype=torch.float32) -> torch.Tensor:
    """Pure PyTorch reference: ``x @ dequantize(W_q).T``.

    Args:
        x: (..., C) float32
        qmatrix: (R, C) quantized weights
        dtype: accumulation dtype (torch.float64 for a golden value)

    Returns:
        (..., R) float32
    """
    w = qmatrix.dequantize(dtype)
    return torch.matmul(x.to(dtype), w.t()).to(torch.float32)


# =============================================================================
# Triton Reference (optional)
# =============================================================================

try:
    import triton
    import triton.language as tl

    HAS_TRITON = True
except ImportError:
    HAS_TRITON = False


if HAS_TRITON:

    @triton.jit
    def _matmul_int8_kernel(
        X,
        Wq,
        CM,
        CR,
        RM,
        RR,
        Y,
        n_rows,
        n_words,
        stride_xm,
        stride_ym,
        BLOCK_R: tl.constexpr,
        BLOCK_W: tl.constexpr,
    ):
        pid_m = tl.program_id(0)
        pid_r = tl.program_id(1)

        rows = pid_r * BLOCK_R + tl.arange(0, BLOCK_R)
        row_mask = rows < n_rows
        rm = tl.load(RM + rows, mask=row_mask, other=0.0)
        rr = tl.load(RR + rows, mask=row_mask, other=0.0)

        X += pid_m * stride_xm
        acc = tl.zeros((BLOCK_R,), dtype=tl.float32)
        for w0 in range(0, n_words, BLOCK_W):
            word_idx = w0 + tl.arange(0, BLOCK_W)
            word_mask = word_idx < n_words
            words = tl.load(
                Wq + rows[:, None] * n_words + word_idx[None, :],
                mask=row_mask[:, None] & word_mask[None, :],
                other=0,
            )
            for k in tl.static_range(4):
                cols = word_idx * 4 + k
                cm = tl.load(CM + cols, mask=word_mask, other=0.0)
                cr = tl.load(CR + cols, mask=word_mask, other=0.0)
                x = tl.load(X + cols, mask=word_mask, other=0.0)
                code = ((words >> (8 * k)) & 0xFF).to(tl.float32) / 255.0
                w = code * (rr[:, None] * cr[None, :]) + (rm[:, None] + cm[None, :])
                acc += tl.sum(w * x[None, :], axis=1)

        tl.store(Y + pid_m * stride_ym + rows, acc, mask=row_mask)

    def matmul_int8_triton(x: torch.Tensor, qmatrix: QuantizedMatrix, BLOCK_R: int = 16, BLOCK_W: int = 32):
        """Triton quantized projection.

        Args:
            x: (M, C) float32, CUDA, contiguous
            qmatrix: (R, C) quantized weights on the same device

        Returns:
            (M, R) float32
        """
        M, C = x.shape
        R = qmatrix.rows
        y = torch.empty(M, R, dtype=torch.float32, device=x.device)
        grid = (M, triton.cdiv(R, BLOCK_R))
        _matmul_int8_kernel[grid](
            x, qmatrix.matrix,
            qmatrix.col_mean, qmatrix.col_range,
            qmatrix.row_mean, qmatrix.row_range,
            y,
            R, C // 4,
            x.stride(0), y.stride(0),
            BLOCK_R=BLOCK_R,
            BLOCK_W=BLOCK_W,
        )
        return y


__all__ = [
    "matmul_int8_pytorch",
    "HAS_TRITON",
]

if HAS_TRITON:
    __all__.extend(["matmul_int8_triton"])
