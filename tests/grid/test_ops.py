# Copyright (c) 2025, Lanegrid Authors
"""Tests for the Op protocol: declarations, schedule() checks and Grid launch."""

import logging

import pytest
import torch

from lanegrid.grid import Grid, LaunchConfig, Op
from lanegrid.grid.errors import ContiguousError, DataTypeError, DeviceError, SizeError


class ScaleOp(Op):
    reads = {"x": (torch.float32, 4), "factor": (torch.float32, 1)}
    writes = {"x": (torch.float32, 4)}

    @classmethod
    def resolve_params(cls, tensors, validate=True, n=None):
        n = tensors["x"].numel() // 4 if n is None else n
        if validate and tensors["factor"].numel() != 1:
            raise SizeError("factor", 1, tensors["factor"].numel())
        return {"n": n}

    @classmethod
    def grid_dim(cls, n, **params):
        return (1, 1, 1)

    @staticmethod
    def lane(ctx, x, factor, n):
        for i in range(ctx.thread_idx, n, ctx.block_dim):
            x[i] = x[i] * factor[0]
        yield


def test_tensor_declarations_merge_reads_and_writes():
    assert ScaleOp._TENSORS == [
        ("x", torch.float32, 4, True),
        ("factor", torch.float32, 1, False),
    ]


def test_conflicting_declarations_rejected():
    with pytest.raises(TypeError):
        class BadOp(Op):
            reads = {"x": (torch.float32, 4)}
            writes = {"x": (torch.float32, 1)}


def test_schedule_and_run(caplog):
    x = torch.arange(40, dtype=torch.float32)
    op = ScaleOp.schedule(x=x, factor=torch.tensor([2.0]))
    assert op.grid_dim == (1, 1, 1)
    assert op.total_blocks == 1
    assert op.params == {"n": 10}
    assert op.tensor_metas["x"].is_output
    assert not op.tensor_metas["factor"].is_output

    grid = Grid(op, LaunchConfig(block_size=4))
    assert grid.block == (4, 1, 1)
    assert grid.invocations == (4, 1, 1)
    with caplog.at_level(logging.DEBUG, logger="lanegrid.grid.core"):
        grid.run()
    torch.testing.assert_close(x, torch.arange(40, dtype=torch.float32) * 2)
    assert any("ScaleOp" in r.getMessage() for r in caplog.records)


def test_schedule_missing_tensor():
    with pytest.raises(TypeError, match="factor"):
        ScaleOp.schedule(x=torch.zeros(4))


def test_schedule_checks_dtype_only_when_validating():
    x = torch.zeros(4, dtype=torch.float64)
    with pytest.raises(DataTypeError):
        ScaleOp.schedule(x=x, factor=torch.ones(1))
    ScaleOp.schedule(validate=False, x=x, factor=torch.ones(1))


def test_schedule_requires_contiguous():
    with pytest.raises(ContiguousError):
        ScaleOp.schedule(validate=False, x=torch.zeros(4, 4).t(), factor=torch.ones(1))


def test_resolve_params_validation():
    with pytest.raises(SizeError):
        ScaleOp.schedule(x=torch.zeros(8), factor=torch.ones(2))


@pytest.mark.parametrize("validate", [True, False])
def test_schedule_requires_cpu_tensors(validate):
    x = torch.zeros(4, device="meta")
    with pytest.raises(DeviceError, match="'x' must be on the CPU, got meta"):
        ScaleOp.schedule(validate=validate, x=x, factor=torch.ones(1))
