"""
Tests for the global edge alignment: composition order and seam continuity.
"""

import numpy as np
import pytest

from helpers import ScriptedAligner, ShortAligner, make_source, rot_z, translation

from loop_registration.errors import ConsistencyError, StageError
from loop_registration.registration.edge_alignment import GlobalEdgeAligner
from loop_registration.registration.edges import EdgeSelector, build_loop_set
from loop_registration.registration.loop import LoopState


EDGE_COARSE = rot_z(10.0)
EDGE_REFINE = translation(1.0, 0.5, 0.0)


@pytest.fixture
def edges():
    source = make_source(31)
    selector = EdgeSelector(0, 30, 1, 10)
    edge_indices = selector.select(source)
    edge_frames = selector.collect_edge_frames(source, edge_indices)
    return build_loop_set(edge_indices, edge_frames), edge_frames


def _power(T, k):
    return np.linalg.matrix_power(T, k)


def test_all_loops_get_edges(edges):
    loop_set, edge_frames = edges
    aligned = GlobalEdgeAligner(ScriptedAligner(EDGE_COARSE), ScriptedAligner(EDGE_REFINE)).align(
        loop_set, edge_frames
    )
    assert len(aligned) == 3
    assert aligned.all_in(LoopState.EDGES_SET)
    assert [l.boundary_indices for l in aligned] == [(0, 10), (10, 20), (20, 30)]
    for i, loop in enumerate(aligned):
        assert loop.boundary_frames[0].index == edge_frames[i].index
        assert loop.boundary_frames[1].index == edge_frames[i + 1].index


def test_refinement_is_applied_after_coarse(edges):
    loop_set, edge_frames = edges
    aligned = GlobalEdgeAligner(ScriptedAligner(EDGE_COARSE), ScriptedAligner(EDGE_REFINE)).align(
        loop_set, edge_frames
    )

    assert np.allclose(aligned[0].boundary_transforms[0], np.eye(4))
    for i, loop in enumerate(aligned):
        k = i + 1
        expected = _power(EDGE_REFINE, k) @ _power(EDGE_COARSE, k)
        wrong_order = _power(EDGE_COARSE, k) @ _power(EDGE_REFINE, k)
        assert np.allclose(loop.boundary_transforms[1], expected)
        assert not np.allclose(loop.boundary_transforms[1], wrong_order)


def test_adjacent_loops_share_seam_transform(edges):
    loop_set, edge_frames = edges
    aligned = GlobalEdgeAligner(ScriptedAligner(EDGE_COARSE), ScriptedAligner(EDGE_REFINE)).align(
        loop_set, edge_frames
    )
    for left, right in zip(aligned, list(aligned)[1:]):
        assert left.end_index == right.start_index
        assert np.array_equal(left.boundary_transforms[1], right.boundary_transforms[0])


def test_boundary_keypoints_are_start_edge_coarse_keypoints(edges):
    loop_set, edge_frames = edges
    aligned = GlobalEdgeAligner(ScriptedAligner(EDGE_COARSE), ScriptedAligner(EDGE_REFINE)).align(
        loop_set, edge_frames
    )
    for i, loop in enumerate(aligned):
        # Stored in the starting edge frame's own coordinates
        assert np.allclose(loop.boundary_keypoints.points, edge_frames[i].points[:5])
        assert not np.allclose(loop.boundary_keypoints.points, edge_frames[i + 1].points[:5])


def test_both_stages_start_from_identity(edges):
    loop_set, edge_frames = edges
    coarse, refine = ScriptedAligner(EDGE_COARSE), ScriptedAligner(EDGE_REFINE)
    GlobalEdgeAligner(coarse, refine).align(loop_set, edge_frames)

    assert len(coarse.calls) == 1 and len(refine.calls) == 1
    assert coarse.calls[0][0] == len(edge_frames)
    assert np.array_equal(coarse.calls[0][1], np.eye(4))
    assert np.array_equal(refine.calls[0][1], np.eye(4))


def test_edge_frame_count_must_match_loops(edges):
    loop_set, edge_frames = edges
    with pytest.raises(ConsistencyError):
        GlobalEdgeAligner(ScriptedAligner(), ScriptedAligner()).align(loop_set, edge_frames[:-1])


def test_edges_cannot_be_aligned_twice(edges):
    loop_set, edge_frames = edges
    aligner = GlobalEdgeAligner(ScriptedAligner(), ScriptedAligner())
    aligned = aligner.align(loop_set, edge_frames)
    with pytest.raises(ConsistencyError):
        aligner.align(aligned, edge_frames)


def test_short_aligner_output_is_a_stage_error(edges):
    loop_set, edge_frames = edges
    with pytest.raises(StageError):
        GlobalEdgeAligner(ShortAligner(), ScriptedAligner()).align(loop_set, edge_frames)
    with pytest.raises(StageError):
        GlobalEdgeAligner(ScriptedAligner(), ShortAligner()).align(loop_set, edge_frames)
