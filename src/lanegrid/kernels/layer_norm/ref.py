# Copyright (c) 2025, Lanegrid Authors
"""Reference LayerNorm implementations for testing and benchmarking.

Provides PyTorch and Triton reference implementations of the channel
LayerNorm with packed-half affine parameters, for correctness verification
against the grid LayerNormOp.
"""

import torch

from lanegrid.kernels.utils.pack import unpack2x16float


# =============================================================================
# PyTorch Reference
# =============================================================================


def layer_norm_pytorch(x, w, b, eps=0.0, dtype=torch.float32):
    """Pure PyTorch LayerNorm forward reference (out-of-place).

    Uses the same two-moment variance as the kernel, accumulated in
    ``dtype`` (pass torch.float64 for a high-precision golden value).

    Args:
        x: (..., C) float32
        w: (C/2,) int32 packed half pairs
        b: (C/2,) int32 packed half pairs
        eps: float

    Returns:
        (..., C) float32
    """
    x_f = x.to(dtype)
    w_f = unpack2x16float(w).reshape(-1).to(dtype)
    b_f = unpack2x16float(b).reshape(-1).to(dtype)

    mean = x_f.mean(-1, keepdim=True)
    variance = x_f.pow(2).mean(-1, keepdim=True) - mean * mean
    out = (x_f - mean) / torch.sqrt(variance + eps) * w_f + b_f
    return out.to(torch.float32)


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
    def _layer_norm_forward_kernel(
        X,
        X_row_stride: tl.constexpr,
        W,
        B,
        n_cols: tl.constexpr,
        eps: tl.constexpr,
        BLOCK_SIZE: tl.constexpr,
    ):
        row_idx = tl.program_id(0)
        col_offsets = tl.arange(0, BLOCK_SIZE)
        mask = col_offsets < n_cols

        X += row_idx * X_row_stride

        X_row = tl.load(X + col_offsets, mask=mask, other=0).to(tl.float32)
        W_row = tl.load(W + col_offsets, mask=mask, other=0).to(tl.float32)
        B_row = tl.load(B + col_offsets, mask=mask, other=0).to(tl.float32)

        mean = tl.sum(X_row, axis=0) / n_cols
        variance = tl.sum(X_row * X_row, axis=0) / n_cols - mean * mean
        inv_std = 1.0 / tl.sqrt(variance + eps)
        output = (X_row - mean) * inv_std * W_row + B_row
        tl.store(X + col_offsets, output, mask=mask)

    def layer_norm_triton(x, w, b, eps=0.0):
        """Triton LayerNorm forward (in place).

        Args:
            x: (M, C) float32, CUDA, contiguous. Normalized in place.
            w: (C/2,) int32 packed half pairs, CUDA.
            b: (C/2,) int32 packed half pairs, CUDA.
            eps: float

        Returns:
            x
        """
        M, C = x.shape
        w_f = unpack2x16float(w).reshape(-1).contiguous()
        b_f = unpack2x16float(b).reshape(-1).contiguous()
        BLOCK_SIZE = triton.next_power_of_2(C)
        num_warps = min(max(BLOCK_SIZE // 256, 1), 32)
        _layer_norm_forward_kernel[(M,)](
            x, x.stride(0),
            w_f, b_f,
            C, eps,
            BLOCK_SIZE=BLOCK_SIZE,
            num_warps=num_warps,
        )
        return x


__all__ = [
    "layer_norm_pytorch",
    "HAS_TRITON",
]

if HAS_TRITON:
    __all__.extend(["layer_norm_triton"])
