# Copyright (c) 2025, Lanegrid Authors
"""Channel LayerNorm kernel for the grid interpreter."""

from .layer_norm import LayerNormOp, layer_norm_

__all__ = ["LayerNormOp", "layer_norm_"]
