# Copyright (c) 2025, Lanegrid Authors
"""Shared kernel utilities (packed storage codecs)."""

from .pack import (
    unpack2x16float,
    pack2x16float,
    unpack4x8unorm,
    unpack4x8,
    pack4x8,
    pack4x8unorm,
)

__all__ = [
    "unpack2x16float",
    "pack2x16float",
    "unpack4x8unorm",
    "unpack4x8",
    "pack4x8",
    "pack4x8unorm",
]
