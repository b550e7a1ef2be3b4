"""
Tests for frames, frame sources and the frame filter.
"""

from pathlib import Path

import laspy
import numpy as np
import pytest

from helpers import translation

from loop_registration.frames import (
    Frame,
    FrameFilter,
    InMemoryFrameSource,
    LasFrameSource,
    create_classification_mask,
    voxel_downsample,
)


def _write_las(path: Path, points: np.ndarray, classification: np.ndarray) -> None:
    header = laspy.LasHeader(point_format=6, version="1.4")
    header.offsets = points.min(axis=0)
    header.scales = np.array([0.001, 0.001, 0.001])
    las = laspy.LasData(header)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]
    las.classification = classification
    las.write(str(path))


@pytest.fixture
def las_dir(tmp_path):
    rng = np.random.default_rng(0)
    for i in range(5):
        pts = rng.uniform(0, 10, size=(200, 3)) + i
        classes = np.where(np.arange(200) % 2 == 0, 2, 1).astype(np.uint8)
        _write_las(tmp_path / f"frame_{i:03d}.las", pts, classes)
    return tmp_path


class TestFrame:
    def test_points_must_be_n_by_3(self):
        with pytest.raises(ValueError):
            Frame(0, np.zeros((4, 2)))

    def test_classification_length_must_match(self):
        with pytest.raises(ValueError):
            Frame(0, np.zeros((4, 3)), classification=np.zeros(3))

    def test_transformed_returns_new_frame(self):
        frame = Frame(3, np.zeros((2, 3)))
        moved = frame.transformed(translation(1.0, 2.0, 3.0))
        assert moved.index == 3
        assert np.allclose(moved.points, [[1.0, 2.0, 3.0]] * 2)
        assert np.allclose(frame.points, 0.0)

    def test_centroid_of_empty_frame(self):
        assert np.array_equal(Frame(0, np.empty((0, 3))).centroid(), np.zeros(3))


class TestInMemoryFrameSource:
    def test_stream_is_half_open_and_strided(self):
        source = InMemoryFrameSource.from_arrays([np.full((1, 3), i, dtype=float) for i in range(10)])
        assert [f.index for f in source.stream(2, 8, 2)] == [2, 4, 6]
        assert len(source) == 10

    def test_stream_past_the_end_yields_existing_frames(self):
        source = InMemoryFrameSource.from_arrays([np.zeros((1, 3))] * 5)
        assert [f.index for f in source.stream(3, 20)] == [3, 4]

    def test_streams_are_restartable(self):
        source = InMemoryFrameSource.from_arrays([np.zeros((1, 3))] * 3)
        assert [f.index for f in source.stream(0, 3)] == [f.index for f in source.stream(0, 3)]

    def test_invalid_step(self):
        source = InMemoryFrameSource.from_arrays([np.zeros((1, 3))])
        with pytest.raises(ValueError):
            list(source.stream(0, 1, 0))


class TestLasFrameSource:
    def test_frames_are_indexed_by_sorted_file_order(self, las_dir):
        source = LasFrameSource(las_dir)
        assert len(source) == 5
        frames = list(source.stream(1, 5, 2))
        assert [f.index for f in frames] == [1, 3]
        assert len(frames[0]) == 200
        assert frames[0].classification is not None

    def test_ground_only(self, las_dir):
        source = LasFrameSource(las_dir, ground_only=True)
        frame = source.read_frame(0)
        assert len(frame) == 100
        assert np.all(frame.classification == 2)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LasFrameSource(tmp_path / "missing")


class TestFrameFilter:
    def test_classification_and_cap(self):
        classes = np.array([2, 1, 2, 2, 6, 2], dtype=np.uint8)
        frame = Frame(0, np.arange(18, dtype=float).reshape(6, 3), classification=classes)
        filtered = FrameFilter(ground_only=True, max_points=3).filter_frame(frame)
        assert len(filtered) == 3
        assert np.all(filtered.classification == 2)

    def test_range_crop(self):
        pts = np.array([[0.5, 0.0, 0.0], [5.0, 0.0, 0.0], [50.0, 0.0, 0.0]])
        filtered = FrameFilter(min_range=1.0, max_range=10.0).filter_frame(Frame(0, pts))
        assert np.allclose(filtered.points, [[5.0, 0.0, 0.0]])

    def test_filter_keeps_length_and_order(self):
        frames = [Frame(i, np.zeros((5, 3))) for i in range(4)]
        FrameFilter(min_range=1.0).filter(frames)
        assert [f.index for f in frames] == [0, 1, 2, 3]
        assert all(len(f) == 0 for f in frames)

    def test_voxel_downsample(self):
        pts = np.array([[0.1, 0.1, 0.1], [0.2, 0.2, 0.2], [3.0, 3.0, 3.0]])
        assert len(voxel_downsample(pts, 1.0)) == 2
        filtered = FrameFilter(voxel_size=1.0).filter_frame(Frame(0, pts))
        assert len(filtered) == 2

    def test_subsampling_is_seeded(self):
        frame = Frame(7, np.random.default_rng(1).normal(size=(100, 3)))
        a = FrameFilter(max_points=10, seed=3).filter_frame(frame)
        b = FrameFilter(max_points=10, seed=3).filter_frame(frame)
        assert np.array_equal(a.points, b.points)

    def test_invalid_range(self):
        with pytest.raises(ValueError):
            FrameFilter(min_range=5.0, max_range=1.0)


def test_classification_mask_filter_overrides_ground_only():
    classes = np.array([1, 2, 6])
    assert create_classification_mask(classes, ground_only=True, classification_filter=[6]).tolist() == [
        False,
        False,
        True,
    ]
