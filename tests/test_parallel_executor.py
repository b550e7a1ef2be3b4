"""
Unit tests for parallel loop processing.

Tests LoopParallelExecutor for ordering, sequential fallback and error
propagation.
"""

from pathlib import Path
import sys

import pytest

# Ensure src is importable
sys.path.append(str(Path(__file__).parent.parent / "src"))

from loop_registration.errors import StageError
from loop_registration.registration.loop import Loop, LoopSet
from loop_registration.registration.parallel import LoopParallelExecutor


# Module-level worker functions for pickling compatibility
def _start_index_worker(loop):
    """Worker that returns the loop's start index."""
    return loop.start_index


def _slow_start_worker(loop):
    """Worker with random delay so completion order differs from input order."""
    import random
    import time

    time.sleep(random.uniform(0.001, 0.01))
    return loop.start_index * 2


def _error_worker(loop):
    """Worker that fails on the second loop."""
    if loop.start_index == 10:
        raise StageError(f"Intentional error on loop {loop.start_index}")
    return loop.start_index


def _loops(n):
    return LoopSet.from_edge_indices([10 * i for i in range(n + 1)]).loops


class TestLoopParallelExecutor:
    def test_executor_initialization(self):
        assert LoopParallelExecutor().n_workers >= 1
        assert LoopParallelExecutor(n_workers=4).n_workers == 4
        # Minimum workers (should be at least 1)
        assert LoopParallelExecutor(n_workers=0).n_workers == 1

    def test_sequential_fallback_one_worker(self):
        results = LoopParallelExecutor(n_workers=1).map_loops(_loops(5), _start_index_worker)
        assert results == [0, 10, 20, 30, 40]

    def test_sequential_fallback_one_loop(self):
        results = LoopParallelExecutor(n_workers=4).map_loops(_loops(1), _slow_start_worker)
        assert results == [0]

    def test_parallel_processing_order_preserved(self):
        results = LoopParallelExecutor(n_workers=2).map_loops(_loops(10), _slow_start_worker)
        assert results == [20 * i for i in range(10)]

    def test_empty_loop_list(self):
        assert LoopParallelExecutor(n_workers=4).map_loops([], _start_index_worker) == []

    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_worker_error_aborts(self, n_workers):
        with pytest.raises(StageError, match="Intentional error"):
            LoopParallelExecutor(n_workers=n_workers).map_loops(_loops(4), _error_worker)

    def test_progress_callback(self):
        progress_calls = []

        def progress_callback(completed, total):
            progress_calls.append((completed, total))

        LoopParallelExecutor(n_workers=2).map_loops(
            _loops(5), _start_index_worker, progress_callback=progress_callback
        )
        assert len(progress_calls) == 5
        assert progress_calls[-1] == (5, 5)

    def test_results_can_be_loops(self):
        loops = [Loop(0, 10), Loop(10, 20)]
        results = LoopParallelExecutor(n_workers=2).map_loops(loops, _identity_worker)
        assert [l.boundary_indices for l in results] == [(0, 10), (10, 20)]


def _identity_worker(loop):
    return loop
