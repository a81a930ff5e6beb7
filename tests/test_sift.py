"""PYTEST_DONT_REWRITE: engine stubs here raise bare asserts whose message is inspected."""

import numpy as np
import pytest

import siftfastpy
from siftfastpy import sift as sift_module
from siftfastpy.config import SiftFastConfig
from siftfastpy.errors import (
    CoercionError,
    FormatError,
    InvariantViolation,
    ShapeError,
    SiftFastError,
)
from siftfastpy.image import Image
from siftfastpy.params import SiftParameters
from siftfastpy.sift import SiftFast

from conftest import KEYPOINTS, FakeEngine


def _engine_with(n):
    return FakeEngine([(i, 2 * i, 0.0, 1.0 + i, i, 1.0) for i in range(n)])


@pytest.mark.parametrize("n", [0, 1, 3, 17])
def test_detect_keypoints_row_counts(n):
    engine = _engine_with(n)
    frames, desc = SiftFast(engine=engine).detect_keypoints(np.zeros((6, 5)))
    assert frames.shape == (n, 4)
    assert desc.shape == (n, 128)
    assert frames.dtype == desc.dtype == np.float32
    assert engine.calls["release_internal_state"] == 1
    assert not engine.records


def test_detect_keypoints_empty_result_is_not_none(empty_engine):
    frames, desc = SiftFast(engine=empty_engine).detect_keypoints(np.zeros((4, 4)))
    assert frames is not None and desc is not None
    assert frames.shape == (0, 4) and desc.shape == (0, 128)


def test_detect_keypoints_values(sift, fake_engine):
    frames, desc = sift.detect_keypoints(np.zeros((4, 8), np.uint8))
    assert np.array_equal(frames, np.array([k[:4] for k in KEYPOINTS[::-1]], np.float32))
    np.testing.assert_allclose(desc[:, 0], [2, 1, 0])
    assert fake_engine.events == ["detect", "release_list", "release_internal_state"]


def test_blank_image_gives_empty_frame_table(empty_engine):
    frames = SiftFast(engine=empty_engine).detect_keypoint_frames(np.zeros((4, 8)))
    assert frames.shape == (0, 6)
    assert empty_engine.calls["release_internal_state"] == 1


def test_detect_keypoint_frames(sift, fake_engine):
    frames = sift.detect_keypoint_frames(Image(8, 8))
    assert np.array_equal(frames, np.array(KEYPOINTS[::-1], np.float32))
    assert fake_engine.calls["detect_frames_only"] == 1
    assert fake_engine.calls["release_list"] == 1


def test_compute_descriptors_reverses_rows(sift, fake_engine):
    table = np.array(KEYPOINTS, np.float32)
    frames, desc = sift.compute_descriptors(np.zeros((16, 16)), table)
    assert np.array_equal(frames, table[::-1, :4])
    np.testing.assert_allclose(desc[:, 0], table[::-1, 0])
    # locally built records are never handed to the engine's release
    assert fake_engine.calls["release_list"] == 0
    assert fake_engine.calls["release_internal_state"] == 1
    (described,) = fake_engine.described
    assert len(described) == 3
    assert all(addr % 16 == 0 for addr in described)


def test_compute_descriptors_honours_record_alignment(fake_engine):
    sift = SiftFast(engine=fake_engine, config=SiftFastConfig(record_alignment=64))
    sift.compute_descriptors(np.zeros((8, 8)), np.array(KEYPOINTS, np.float32))
    assert all(addr % 64 == 0 for addr in fake_engine.described[0])


def test_detect_then_describe_restores_detection_order(sift):
    frames6 = sift.detect_keypoint_frames(np.zeros((8, 8)))
    frames, _ = sift.compute_descriptors(np.zeros((8, 8)), frames6)
    assert np.array_equal(frames, frames6[::-1, :4])


@pytest.mark.parametrize(
    "table", [np.zeros((3, 0)), np.zeros((0, 4)), np.zeros((0, 2, 6)), np.zeros((0,))]
)
def test_empty_but_misshaped_frames_are_rejected(sift, fake_engine, table):
    with pytest.raises(ShapeError):
        sift.compute_descriptors(np.zeros((8, 8)), table)
    assert fake_engine.calls["compute_descriptors"] == 0
    assert fake_engine.calls["release_internal_state"] == 1


@pytest.mark.parametrize("table", [np.zeros((0, 6)), []])
def test_compute_descriptors_without_frames_skips_engine(sift, fake_engine, table):
    frames, desc = sift.compute_descriptors(np.zeros((8, 8)), table)
    assert frames.shape == (0, 4) and desc.shape == (0, 128)
    assert fake_engine.calls["compute_descriptors"] == 0
    assert fake_engine.calls["release_internal_state"] == 1


def test_marshal_failure_still_releases_state(sift, fake_engine, monkeypatch):
    def broken(head):
        raise InvariantViolation("index < numkeys", "marshal.py", 1, "keypoints_to_tables")

    monkeypatch.setattr(sift_module, "keypoints_to_tables", broken)
    with pytest.raises(InvariantViolation):
        sift.detect_keypoints(np.zeros((8, 8)))
    assert fake_engine.calls["release_list"] == 1
    assert fake_engine.calls["release_internal_state"] == 1
    assert not fake_engine.records


def test_assertion_in_engine_is_translated(fake_engine, monkeypatch):
    def failing(image):
        assert image.rows < 0, "image.rows < 0"

    monkeypatch.setattr(fake_engine, "detect", failing)
    with pytest.raises(InvariantViolation) as ei:
        SiftFast(engine=fake_engine).detect_keypoints(np.zeros((8, 8)))
    err = ei.value
    assert err.expr == "image.rows < 0"
    assert err.filename.endswith("test_sift.py")
    assert err.line > 0
    assert str(err).startswith("siftfast: [")
    assert isinstance(err.__cause__, AssertionError)
    assert fake_engine.calls["release_internal_state"] == 1


def test_memory_error_becomes_allocation_error(fake_engine, monkeypatch):
    def oom(image):
        raise MemoryError

    monkeypatch.setattr(fake_engine, "detect_frames_only", oom)
    with pytest.raises(siftfastpy.AllocationError):
        SiftFast(engine=fake_engine).detect_keypoint_frames(np.zeros((8, 8)))
    assert fake_engine.calls["release_internal_state"] == 1


def test_input_errors_surface_as_runtime_errors(sift, fake_engine):
    with pytest.raises(ShapeError):
        sift.detect_keypoints(np.zeros((2, 2, 2)))
    with pytest.raises(FormatError):
        sift.detect_keypoints(np.zeros((2, 2), np.complex128))
    with pytest.raises(ShapeError):
        sift.compute_descriptors(np.zeros((4, 4)), np.zeros((2, 4)))
    with pytest.raises(RuntimeError):
        sift.compute_descriptors(np.zeros((4, 4)), [[0, 0, 0, "x", 0, 0]])
    assert fake_engine.calls["detect"] == 0
    assert fake_engine.calls["compute_descriptors"] == 0
    assert fake_engine.calls["release_internal_state"] == 4


def test_checkerboard_padding_is_not_read(sift, fake_engine):
    board = (np.indices((4, 4)).sum(axis=0) % 2 * 255).astype(np.int32)
    im = Image.from_array(board)
    assert im.stride == 4
    sift.compute_descriptors(im, np.array(KEYPOINTS, np.float32))
    np.testing.assert_allclose(fake_engine.seen_pixels[-1], board / 255.0, rtol=1e-6)

    wide = Image.from_array(np.tile(board, (1, 2))[:, :6])
    assert wide.as_struct().stride == 8
    padded = wide.buffer.reshape(4, 8)
    np.testing.assert_allclose(padded[:, :6], np.tile(board, (1, 2))[:, :6] / 255.0, rtol=1e-6)
    assert not padded[:, 6:].any()
    wide.set_data(np.full((4, 6), 200, np.uint8))
    padded = wide.buffer.reshape(4, 8)
    assert not padded[:, 6:].any()
    np.testing.assert_allclose(padded[:, :6], 200 / 255.0, rtol=1e-6)


def test_parameters_round_trip(sift, fake_engine):
    params = sift.get_parameters()
    assert params == SiftParameters()
    params.scales = 5
    params.PeakThresh = 0.02
    sift.set_parameters(params)
    got = sift.get_parameters()
    assert got.scales == 5
    assert got.peak_thresh == pytest.approx(0.02)


def test_set_parameters_rejects_other_types(sift):
    with pytest.raises(CoercionError):
        sift.set_parameters({"scales": 3})


def test_release_all_resources(sift, fake_engine):
    sift.detect_keypoint_frames(np.zeros((4, 4)))
    sift.release_all_resources()
    assert fake_engine.calls["release_all_resources"] == 1


def test_module_level_functions(monkeypatch):
    engine = FakeEngine(KEYPOINTS)
    monkeypatch.setattr(siftfastpy, "_default", None)
    siftfastpy.set_default_engine(engine)
    frames, desc = siftfastpy.GetKeypoints(np.zeros((4, 4)))
    assert frames.shape == (3, 4)
    frames6 = siftfastpy.detect_keypoint_frames(np.zeros((4, 4)))
    frames, desc = siftfastpy.GetKeypointDescriptors(np.zeros((4, 4)), frames6)
    assert np.array_equal(frames, frames6[::-1, :4])
    siftfastpy.SetSiftParameters(SiftParameters(scales=4))
    assert siftfastpy.GetSiftParameters().scales == 4
    siftfastpy.DestroyAllResources()
    assert engine.calls["release_all_resources"] == 1
    assert siftfastpy.get_default().engine is engine


def test_all_errors_share_one_category():
    for cls in (ShapeError, FormatError, CoercionError, InvariantViolation):
        assert issubclass(cls, SiftFastError)
        assert issubclass(cls, RuntimeError)
