# Copyright (c) 2025, Lanegrid Authors
import pytest
import torch

from lanegrid.grid.errors import AlignmentError, SizeError, SliceOutOfRangeError
from lanegrid.grid.tensor_spec import Shape, View, compute_index


def test_shape_from_torch():
    assert Shape.from_torch((2, 3, 8)) == Shape(8, 3, 2, 1)
    assert Shape.from_torch((16,)) == Shape(16, 1, 1, 1)
    with pytest.raises(ValueError):
        Shape.from_torch((1, 2, 3, 4, 5))


def test_shape_numel_and_index():
    shape = Shape(8, 3, 2)
    assert shape.numel() == 48
    assert shape.shape_index(0) == 0
    assert shape.shape_index(5, 1, 1) == (1 * 3 + 1) * 8 + 5
    t = torch.arange(48).reshape(2, 3, 8)
    assert t.reshape(-1)[shape.shape_index(5, 2, 1)] == t[1, 2, 5]


def test_full_view_index_matches_contiguous_layout():
    shape = Shape(16, 3, 2)
    view = View.full(shape)
    assert view.is_contiguous()
    for batch in range(2):
        for token in range(3):
            for element in range(4):
                expected = shape.shape_index(element * 4, token, batch) // 4
                assert compute_index(view, batch, token, element) == expected


def test_compute_index_formula():
    view = View(stride=Shape(16, 5, 3), offset=Shape(4, 1, 2), shape=Shape(8, 2, 1))
    # ((2 + 0) * 5 + 1 + 1) * (16 / 4) + 4 / 4 + 1
    assert compute_index(view, 0, 1, 1) == 12 * 4 + 1 + 1


def test_from_slice():
    view = View.from_slice(Shape(16, 5, 3), x=slice(4, 12), y=slice(1, 3), z=2)
    assert view.stride == Shape(16, 5, 3, 1)
    assert view.offset == Shape(4, 1, 2, 0)
    assert view.shape == Shape(8, 2, 1, 1)
    assert not view.is_contiguous()


def test_from_slice_full_axes():
    parent = Shape(8, 4, 2)
    assert View.from_slice(parent) == View.full(parent)
    assert View.from_slice(parent, ..., None) == View.full(parent)


@pytest.mark.parametrize("x", [slice(0, 20), slice(6, 4), 16])
def test_from_slice_out_of_range(x):
    with pytest.raises(SliceOutOfRangeError):
        View.from_slice(Shape(16, 2, 2), x=x)


def test_from_slice_rejects_steps():
    with pytest.raises(ValueError):
        View.from_slice(Shape(16, 2, 2), x=slice(0, 16, 2))


def test_alignment_check():
    View.from_slice(Shape(16, 2), x=slice(4, 12)).check_alignment()
    with pytest.raises(AlignmentError):
        View.from_slice(Shape(16, 2), x=slice(2, 10)).check_alignment("source")
    with pytest.raises(AlignmentError):
        View.full(Shape(6, 2)).check_alignment()


def test_hand_built_view_bounds_ignore_w():
    # Shape defaults w to 1, so a hand-built offset has offset.w == 1
    view = View(stride=Shape(16, 1, 1), offset=Shape(8, 0, 0), shape=Shape(8, 1, 1))
    assert view.offset.w == 1
    view.check_bounds("source")
    assert not view.is_contiguous()
    assert View(stride=Shape(8, 2), offset=Shape(0, 0, 0), shape=Shape(8, 2)).is_contiguous()


@pytest.mark.parametrize(
    "offset, shape",
    [
        (Shape(12, 0, 0), Shape(8, 1, 1)),
        (Shape(0, 1, 0), Shape(16, 1, 1)),
        (Shape(0, 0, 0), Shape(16, 1, 2)),
        (Shape(-4, 0, 0), Shape(8, 1, 1)),
    ],
)
def test_check_bounds_rejects_regions_outside_parent(offset, shape):
    view = View(stride=Shape(16, 1, 1), offset=offset, shape=shape)
    with pytest.raises(SliceOutOfRangeError):
        view.check_bounds()


def test_pack_layout():
    view = View.from_slice(Shape(16, 5, 3), x=slice(4, 12), y=slice(1, 3), z=2)
    words = view.pack()
    assert words.dtype == torch.int32
    assert words.tolist() == [16, 5, 3, 1, 4, 1, 2, 0, 8, 2, 1, 1]
    assert View.unpack(words) == view


def test_unpack_wrong_size():
    with pytest.raises(SizeError):
        View.unpack(torch.zeros(8, dtype=torch.int32))
