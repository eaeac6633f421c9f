# Copyright (c) 2025, Lanegrid Authors
"""
Rank-1 affine int8 weight storage.

A (R, C) weight matrix is stored as 8-bit normalized codes plus four factor
vectors, and reconstructed as

    W[r, c] = row_mean[r] + col_mean[c] + row_range[r] * col_range[c] * code[r, c] / 255

Codes are packed four per int32 word, row-major: word ``r * (C/4) + j``
holds columns ``4j..4j+3`` of row ``r``, column ``4j+k`` in byte ``k``.

Deriving the factors from a float matrix (calibration) is not done here;
``from_codes`` only packs codes and factors computed elsewhere.
"""

from dataclasses import dataclass

import torch

from lanegrid.grid.errors import AlignmentError, DataTypeError, ShapeError, SizeError
from lanegrid.kernels.utils.pack import pack4x8, unpack4x8


@dataclass
class QuantizedMatrix:
    """Packed int8 codes and dequantization factors of an (R, C) matrix.

    Attributes:
        matrix: (R, C/4) int32 packed codes
        col_mean: (C,) float32 per-input-column bias
        col_range: (C,) float32 per-input-column scale
        row_mean: (R,) float32 per-output-row bias
        row_range: (R,) float32 per-output-row scale
    """

    matrix: torch.Tensor
    col_mean: torch.Tensor
    col_range: torch.Tensor
    row_mean: torch.Tensor
    row_range: torch.Tensor

    def __post_init__(self):
        self.validate()

    @property
    def rows(self) -> int:
        return self.matrix.shape[0]

    @property
    def cols(self) -> int:
        return self.matrix.shape[1] * 4

    @property
    def shape(self):
        """Logical (R, C)."""
        return (self.rows, self.cols)

    def validate(self) -> None:
        if self.matrix.dtype != torch.int32:
            raise DataTypeError("matrix", torch.int32, self.matrix.dtype)
        if self.matrix.dim() != 2:
            raise ShapeError(("R", "C/4"), tuple(self.matrix.shape))
        if self.rows % 4 != 0:
            raise AlignmentError("R", self.rows)
        for name, expected in (
            ("col_mean", self.cols),
            ("col_range", self.cols),
            ("row_mean", self.rows),
            ("row_range", self.rows),
        ):
            t = getattr(self, name)
            if t.dtype != torch.float32:
                raise DataTypeError(name, torch.float32, t.dtype)
            if t.numel() != expected:
                raise SizeError(name, expected, t.numel())

    @classmethod
    def from_codes(
        cls,
        codes: torch.Tensor,
        col_mean: torch.Tensor,
        col_range: torch.Tensor,
        row_mean: torch.Tensor,
        row_range: torch.Tensor,
    ) -> "QuantizedMatrix":
        """Pack (R, C) byte codes with their factors."""
        if codes.dim() != 2:
            raise ShapeError(("R", "C"), tuple(codes.shape))
        R, C = codes.shape
        if C % 4 != 0:
            raise AlignmentError("C", C)
        return cls(
            matrix=pack4x8(codes).contiguous(),
            col_mean=col_mean.to(torch.float32).reshape(-1).contiguous(),
            col_range=col_range.to(torch.float32).reshape(-1).contiguous(),
            row_mean=row_mean.to(torch.float32).reshape(-1).contiguous(),
            row_range=row_range.to(torch.float32).reshape(-1).contiguous(),
        )

    def codes(self) -> torch.Tensor:
        """Unpacked (R, C) uint8 codes."""
        return unpack4x8(self.matrix).reshape(self.rows, self.cols)

    def dequantize(self, dtype: torch.dtype = torch.float32) -> torch.Tensor:
        """Reconstructed (R, C) matrix, computed in ``dtype``."""
        code = self.codes().to(dtype) / 255.0
        rm = self.row_mean.to(dtype)[:, None]
        rr = self.row_range.to(dtype)[:, None]
        cm = self.col_mean.to(dtype)[None, :]
        cr = self.col_range.to(dtype)[None, :]
        return code * (rr * cr) + (rm + cm)

    def to(self, device) -> "QuantizedMatrix":
        return QuantizedMatrix(
            matrix=self.matrix.to(device),
            col_mean=self.col_mean.to(device),
            col_range=self.col_range.to(device),
            row_mean=self.row_mean.to(device),
            row_range=self.row_range.to(device),
        )


__all__ = ["QuantizedMatrix"]
