"""
Tests for edge selection (fixed and balanced) and loop-set construction.
"""

import numpy as np
import pytest

from helpers import make_source

from loop_registration.errors import ConsistencyError, InvalidConfigurationError
from loop_registration.frames.frame import Frame
from loop_registration.frames.source import InMemoryFrameSource
from loop_registration.registration.edges import (
    EdgeBalancer,
    EdgeSelector,
    build_loop_set,
    centroid_distance,
)


def _frames_at(positions):
    return [Frame(index=i, points=np.array([[x, 0.0, 0.0]])) for i, x in enumerate(positions)]


class TestFixedEdges:
    def test_full_range_gives_eleven_edges(self):
        selector = EdgeSelector(0, 100, 1, 10)
        edges = selector.select()
        assert edges == list(range(0, 101, 10))
        assert len(edges) == 11

    def test_trailing_partial_loop_is_dropped(self):
        edges = EdgeSelector(0, 95, 1, 10).select()
        assert edges == list(range(0, 91, 10))
        assert len(edges) == 10

    def test_read_step_scales_loop_size(self):
        selector = EdgeSelector(5, 65, 2, 10)
        assert selector.read_loop_size == 20
        assert selector.select() == [5, 25, 45, 65]

    def test_range_shorter_than_one_loop_is_rejected(self):
        with pytest.raises(InvalidConfigurationError):
            EdgeSelector(0, 5, 1, 10).select()

    @pytest.mark.parametrize(
        "args",
        [(0, 100, 1, 0), (0, 100, 0, 10), (50, 50, 1, 10), (60, 50, 1, 10)],
    )
    def test_invalid_parameters(self, args):
        with pytest.raises(InvalidConfigurationError):
            EdgeSelector(*args)

    def test_edge_frames_match_edges(self):
        source = make_source(101)
        selector = EdgeSelector(0, 100, 1, 10)
        edges = selector.select(source)
        frames = selector.collect_edge_frames(source, edges)
        assert [f.index for f in frames] == edges

        loop_set = build_loop_set(edges, frames)
        assert len(loop_set) == 10
        assert len(frames) == len(loop_set) + 1

    def test_short_source_raises_consistency_error(self):
        source = make_source(95)  # frames 0..94, so edge 100 is missing
        selector = EdgeSelector(0, 100, 1, 10)
        edges = selector.select(source)
        frames = selector.collect_edge_frames(source, edges)
        with pytest.raises(ConsistencyError):
            build_loop_set(edges, frames)


class TestEdgeBalancer:
    def test_even_motion_gives_even_edges(self):
        frames = _frames_at(np.arange(21, dtype=float))
        edges = EdgeBalancer().balance(iter(frames), 5)
        assert edges == [0, 5, 10, 15, 20]

    @pytest.mark.parametrize("target_count", [2, 3, 10, 25])
    def test_returns_target_count_edges(self, target_count):
        edges = EdgeBalancer().balance(make_source(101).stream(0, 101, 1), target_count)
        assert len(edges) == target_count
        assert edges[0] == 0
        assert edges[-1] == 100

    def test_edges_follow_travelled_distance(self):
        # Slow for the first ten frames, fast afterwards
        positions = np.concatenate([np.arange(10) * 0.1, 0.9 + np.arange(1, 11) * 1.0])
        edges = EdgeBalancer().balance(iter(_frames_at(positions)), 3)
        assert edges[0] == 0
        assert edges[-1] == len(positions) - 1
        assert len(edges) == 3
        # Half the distance is covered only after the slow segment
        assert edges[1] > 10

    def test_no_motion_falls_back_to_even_spacing(self):
        frames = _frames_at(np.zeros(11))
        assert EdgeBalancer().balance(iter(frames), 3) == [0, 5, 10]

    def test_edges_are_strictly_increasing(self):
        # All motion happens in one step, so every target falls on the same frame
        positions = np.concatenate([np.zeros(10), [100.0], np.full(10, 100.0)])
        edges = EdgeBalancer().balance(iter(_frames_at(positions)), 4)
        assert len(edges) == 4
        assert all(b > a for a, b in zip(edges, edges[1:]))
        assert edges[0] == 0 and edges[-1] == len(positions) - 1

    def test_more_edges_than_frames(self):
        edges = EdgeBalancer().balance(iter(_frames_at(np.arange(4, dtype=float))), 10)
        assert edges == [0, 1, 2, 3]

    def test_too_few_frames(self):
        with pytest.raises(InvalidConfigurationError):
            EdgeBalancer().balance(iter(_frames_at([0.0])), 5)

    @pytest.mark.parametrize("target_count", [0, 1])
    def test_too_few_edges_requested(self, target_count):
        with pytest.raises(InvalidConfigurationError):
            EdgeBalancer().balance(iter(_frames_at(np.arange(5, dtype=float))), target_count)

    def test_custom_metric(self):
        calls = []

        def metric(previous, current):
            calls.append((previous.index, current.index))
            return 1.0

        EdgeBalancer(metric).balance(iter(_frames_at(np.zeros(4))), 2)
        assert calls == [(0, 1), (1, 2), (2, 3)]

    def test_centroid_distance(self):
        a = Frame(0, np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
        b = Frame(1, np.array([[3.0, 4.0, 0.0], [3.0, 4.0, 0.0]]))
        assert centroid_distance(a, b) == pytest.approx(np.hypot(2.0, 4.0))


class TestBalancedSelection:
    def test_positions_are_mapped_to_frame_indices(self):
        frames = [Frame(index=i, points=np.array([[float(i), 0.0, 0.0]])) for i in range(10, 51)]
        source = InMemoryFrameSource(frames)
        selector = EdgeSelector(10, 51, 2, 5, edge_balancing=True)
        edges = selector.select(source)
        # Strided stream 10, 12, ..., 50 has 21 frames: 5 edges, 4 loops
        assert edges == [10, 20, 30, 40, 50]

        edge_frames = selector.collect_edge_frames(source, edges)
        assert [f.index for f in edge_frames] == edges
        assert len(build_loop_set(edges, edge_frames)) == 4

    def test_loop_size_is_the_number_of_edges(self):
        source = make_source(101)
        edges = EdgeSelector(0, 101, 1, 10, edge_balancing=True).select(source)
        assert len(edges) == 10
        assert edges[0] == 0 and edges[-1] == 100

    def test_balancing_needs_a_source(self):
        with pytest.raises(InvalidConfigurationError):
            EdgeSelector(0, 100, 1, 10, edge_balancing=True).select()
