# Copyright (c) 2025, Lanegrid Authors
"""Tests for host-side batch assembly: stack/split/repeat and token stacks."""

import pytest
import torch

from lanegrid.grid.batch import (
    Cursor,
    TensorStack,
    load_batch,
    pack_cursors,
    pack_stack,
    repeat,
    split,
    stack,
)
from lanegrid.grid.errors import BatchOutOfRangeError, EmptyError, ShapeError


def _chunks():
    return torch.arange(10, dtype=torch.float32).reshape(2, 1, 5)


# =============================================================================
# repeat / split / stack
# =============================================================================


def test_repeat_token_axis_cycles_each_batch():
    y = repeat(_chunks(), axis=1, times=3)
    assert y.shape == (2, 3, 5)
    assert y.reshape(-1).tolist() == [0, 1, 2, 3, 4] * 3 + [5, 6, 7, 8, 9] * 3


def test_repeat_channel_axis():
    y = repeat(_chunks(), axis=0, times=3)
    assert y.shape == (2, 1, 15)
    assert y.reshape(-1).tolist() == [0, 1, 2, 3, 4] * 3 + [5, 6, 7, 8, 9] * 3


def test_repeat_batch_axis_tiles_whole_tensor():
    y = repeat(_chunks(), axis=2, times=3)
    assert y.shape == (6, 1, 5)
    assert y.reshape(-1).tolist() == list(range(10)) * 3


def test_repeat_adds_missing_axes():
    y = repeat(torch.arange(4.0), axis=2, times=2)
    assert y.shape == (2, 1, 4)


def test_repeat_rejects_bad_axis():
    with pytest.raises(ValueError):
        repeat(_chunks(), axis=4, times=2)


def test_split_batch_axis():
    x = torch.arange(24, dtype=torch.float32).reshape(3, 2, 4)
    pieces = split(x, axis=2)
    assert len(pieces) == 3
    for i, piece in enumerate(pieces):
        assert piece.shape == (1, 2, 4)
        assert piece.is_contiguous()
        assert torch.equal(piece[0], x[i])


def test_split_channel_axis_gives_contiguous_columns():
    x = torch.arange(8, dtype=torch.float32).reshape(2, 4)
    pieces = split(x, axis=0)
    assert len(pieces) == 4
    assert all(p.is_contiguous() for p in pieces)
    assert pieces[1].reshape(-1).tolist() == [1.0, 5.0]


def test_split_past_last_axis_returns_input():
    x = torch.zeros(2, 2, 4)
    pieces = split(x, axis=4)
    assert len(pieces) == 1
    assert pieces[0] is x


def test_stack_then_split_restores_batches():
    a = torch.randn(2, 3, 8)
    b = torch.randn(1, 3, 8)
    x = stack([a, b])
    assert x.shape == (3, 3, 8)
    pieces = split(x, axis=2)
    assert torch.equal(torch.cat(pieces[:2]), a)
    assert torch.equal(pieces[2], b)


def test_stack_promotes_single_requests():
    x = stack([torch.ones(3, 8), torch.zeros(3, 8)])
    assert x.shape == (2, 3, 8)
    assert x[0].eq(1).all() and x[1].eq(0).all()


def test_stack_rejects_mismatched_shapes():
    with pytest.raises(ShapeError):
        stack([torch.zeros(1, 3, 8), torch.zeros(1, 2, 8)])
    with pytest.raises(ShapeError):
        stack([torch.zeros(1, 3, 8), torch.zeros(1, 3, 4)])


def test_stack_rejects_empty_list():
    with pytest.raises(EmptyError):
        stack([])


def test_load_batch_fills_one_slot():
    target = torch.zeros(3, 2, 4)
    host = torch.arange(8, dtype=torch.float32).reshape(2, 4)
    load_batch(target, host, 1)
    assert torch.equal(target[1], host)
    assert target[0].eq(0).all() and target[2].eq(0).all()


def test_load_batch_out_of_range():
    with pytest.raises(BatchOutOfRangeError, match="batch 3 out of range of max 3"):
        load_batch(torch.zeros(3, 2, 4), torch.zeros(2, 4), 3)


def test_load_batch_rejects_wrong_request_shape():
    with pytest.raises(ShapeError):
        load_batch(torch.zeros(3, 2, 4), torch.zeros(3, 4), 0)


# =============================================================================
# Cursors and token stacks
# =============================================================================


def test_cursor_pack_layout():
    word = Cursor(batch=3, token=0x1234, len=7).pack()
    assert word == 3 | (0x1234 << 8) | (7 << 24)


def test_cursor_pack_truncates_and_wraps_to_int32():
    word = Cursor(batch=0x1FF, token=0x12345, len=0xFF).pack()
    assert word == (0xFF | (0x2345 << 8) | (0xFF << 24)) - (1 << 32)
    assert word < 0


def test_pack_stack_and_cursors_skip_empty_requests():
    cursors = [Cursor(0, 0, 2), Cursor(1, 2, 0), Cursor(2, 2, 3)]
    stack_words = pack_stack(cursors)
    cursor_words = pack_cursors(cursors)
    assert stack_words.dtype == torch.int32
    assert stack_words.tolist() == [cursors[0].pack(), cursors[2].pack()]
    assert cursor_words.tolist() == [cursors[0].pack()] * 2 + [cursors[2].pack()] * 3


def test_tensor_stack_from_batches():
    requests = [torch.randn(2, 8), torch.randn(0, 8), torch.randn(3, 8)]
    ts = TensorStack.from_batches(requests)

    assert ts.tensor.shape == (1, 5, 8)
    assert ts.cursors == [Cursor(0, 0, 2), Cursor(1, 2, 0), Cursor(2, 2, 3)]
    assert ts.num_batch == 3
    assert ts.num_active_batch == 2
    assert ts.num_token == 5
    for i, request in enumerate(requests):
        assert torch.equal(ts.batch(i), request)
    assert ts.stack_words().tolist() == pack_stack(ts.cursors).tolist()
    assert ts.cursor_words().shape == (5,)


def test_tensor_stack_batch_is_a_view():
    ts = TensorStack.from_batches([torch.zeros(2, 4), torch.zeros(1, 4)])
    ts.batch(1).fill_(5.0)
    assert ts.tensor[0, 2].eq(5.0).all()
    assert ts.tensor[0, :2].eq(0.0).all()


def test_tensor_stack_batch_out_of_range():
    ts = TensorStack.from_batches([torch.zeros(1, 4)])
    with pytest.raises(BatchOutOfRangeError):
        ts.batch(1)
    with pytest.raises(BatchOutOfRangeError):
        ts.batch(-1)


def test_tensor_stack_rejects_mixed_channels_and_empty_input():
    with pytest.raises(ShapeError):
        TensorStack.from_batches([torch.zeros(1, 4), torch.zeros(1, 8)])
    with pytest.raises(EmptyError):
        TensorStack.from_batches([])
