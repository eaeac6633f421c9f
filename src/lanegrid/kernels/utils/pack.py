# Copyright (c) 2025, Lanegrid Authors
"""
Packed Storage Codecs
=====================

Two packed formats stored in 32-bit words (held in ``torch.int32``):

- half2: two IEEE binary16 values per word. The first value sits in bits
  0..15, the second in bits 16..31. Used for the layer-norm affine
  parameters.
- unorm4x8: four 8-bit normalized codes per word. Byte k (bits 8k..8k+7)
  holds code k, decoding to ``code / 255`` in [0, 1]. Used for the
  quantized matrix.

All bit manipulation is done in int64 so the layout does not depend on host
byte order.

Usage:
    from lanegrid.kernels.utils.pack import pack2x16float, unpack2x16float

    words = pack2x16float(torch.tensor([1.0, -2.0, 0.5, 4.0]))   # int32[2]
    unpack2x16float(words)                                        # float32[2, 2]
"""

import torch


_U32 = 1 << 32
_I32_MAX = (1 << 31) - 1


def _to_int32(words: torch.Tensor) -> torch.Tensor:
    """Reinterpret unsigned 32-bit values (held in int64) as int32."""
    return torch.where(words > _I32_MAX, words - _U32, words).to(torch.int32)


def _to_uint32(words: torch.Tensor) -> torch.Tensor:
    return words.to(torch.int64) & (_U32 - 1)


# =============================================================================
# half2
# =============================================================================


def unpack2x16float(words: torch.Tensor) -> torch.Tensor:
    """Decode packed half pairs.

    Args:
        words: int32 tensor of any shape (...).

    Returns:
        float32 tensor (..., 2): [low half, high half] of each word.
    """
    w = _to_uint32(words)
    halves = torch.stack([w & 0xFFFF, (w >> 16) & 0xFFFF], dim=-1)
    halves = torch.where(halves >= 0x8000, halves - 0x10000, halves).to(torch.int16)
    return halves.view(torch.float16).to(torch.float32)


def pack2x16float(values: torch.Tensor) -> torch.Tensor:
    """Encode values as packed half pairs (round to nearest binary16).

    Args:
        values: float tensor (..., 2k).

    Returns:
        int32 tensor (..., k).
    """
    if values.shape[-1] % 2 != 0:
        raise ValueError(f"last dimension must be even, got {values.shape[-1]}")
    h = values.to(torch.float16).reshape(*values.shape[:-1], -1, 2).contiguous()
    bits = h.view(torch.int16).to(torch.int64) & 0xFFFF
    return _to_int32(bits[..., 0] | (bits[..., 1] << 16))


# =============================================================================
# unorm4x8
# =============================================================================


def unpack4x8unorm(words: torch.Tensor) -> torch.Tensor:
    """Decode four 8-bit normalized codes per word.

    Args:
        words: int32 tensor of any shape (...).

    Returns:
        float32 tensor (..., 4) with values code / 255.
    """
    return unpack4x8(words).to(torch.float32) / 255.0


def unpack4x8(words: torch.Tensor) -> torch.Tensor:
    """Raw byte codes (..., 4) as uint8, byte 0 first."""
    w = _to_uint32(words)
    codes = torch.stack([(w >> (8 * k)) & 0xFF for k in range(4)], dim=-1)
    return codes.to(torch.uint8)


def pack4x8(codes: torch.Tensor) -> torch.Tensor:
    """Pack raw byte codes (..., 4k) into int32 words (..., k)."""
    if codes.shape[-1] % 4 != 0:
        raise ValueError(f"last dimension must be a multiple of 4, got {codes.shape[-1]}")
    c = codes.to(torch.int64).reshape(*codes.shape[:-1], -1, 4)
    if bool((c < 0).any()) or bool((c > 255).any()):
        raise ValueError("codes must be in [0, 255]")
    word = c[..., 0] | (c[..., 1] << 8) | (c[..., 2] << 16) | (c[..., 3] << 24)
    return _to_int32(word)


def pack4x8unorm(values: torch.Tensor) -> torch.Tensor:
    """Encode values in [0, 1] as 8-bit normalized codes.

    Each value is clamped to [0, 1] and stored as ``floor(0.5 + 255 * v)``.
    """
    v = values.to(torch.float32).clamp(0.0, 1.0)
    codes = torch.floor(0.5 + 255.0 * v).to(torch.int64)
    return pack4x8(codes)


__all__ = [
    "unpack2x16float",
    "pack2x16float",
    "unpack4x8unorm",
    "unpack4x8",
    "pack4x8",
    "pack4x8unorm",
]
