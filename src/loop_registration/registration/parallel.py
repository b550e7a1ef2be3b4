"""
Parallel execution of per-loop processing.

Loops only read their own boundary data once edges are aligned, so they can
be processed in separate worker processes. Results are returned in loop
order regardless of completion order.
"""

from __future__ import annotations

import logging
import time
from multiprocessing import Pool, cpu_count
from typing import Any, Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def _worker_wrapper(args: Tuple[int, Any, Callable]) -> Tuple[int, Any, Optional[BaseException]]:
    """
    Run one loop in a worker process.

    Must be at module level for pickling. Exceptions are returned rather
    than raised so the parent can report every failure before aborting.
    """
    idx, item, worker_fn = args
    try:
        return (idx, worker_fn(item), None)
    except Exception as e:
        logger.error(f"Worker error on loop {idx}: {type(e).__name__}: {e}")
        return (idx, None, e)


class LoopParallelExecutor:
    """
    Map a worker function over loops, sequentially or with a process pool.

    Example:
        executor = LoopParallelExecutor(n_workers=4)
        processed = executor.map_loops(loop_set.loops, processor.process)
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Args:
            n_workers: Number of worker processes. If None, uses cpu_count - 1
                to leave one core for coordination. Minimum is 1.
        """
        if n_workers is None:
            n_workers = max(1, cpu_count() - 1)
        else:
            n_workers = max(1, int(n_workers))
        self.n_workers = n_workers
        logger.info(
            f"Initialized LoopParallelExecutor with {self.n_workers} workers "
            f"(total CPUs: {cpu_count()})"
        )

    def map_loops(
        self,
        loops: Sequence[Any],
        worker_fn: Callable,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> List[Any]:
        """
        Apply ``worker_fn`` to every loop and return results in input order.

        The first failure aborts the run: sequentially it is raised at once,
        in parallel it is raised after all failures have been logged.

        Args:
            loops: Items to process
            worker_fn: Picklable callable, ``worker_fn(loop) -> result``
            progress_callback: Optional ``callback(completed, total)``

        Returns:
            List of results in the same order as ``loops``
        """
        n_loops = len(loops)
        if n_loops == 0:
            logger.warning("No loops to process")
            return []

        start_time = time.time()

        if self.n_workers == 1 or n_loops == 1:
            logger.info(f"Processing {n_loops} loops sequentially")
            results = []
            for i, loop in enumerate(loops):
                try:
                    results.append(worker_fn(loop))
                except Exception as e:
                    logger.error(f"Error processing loop {i}: {e}")
                    raise
                if progress_callback:
                    progress_callback(i + 1, n_loops)
                self._log_progress(i + 1, n_loops, start_time)
            return results

        return self._parallel_map(loops, worker_fn, progress_callback, start_time)

    def _parallel_map(
        self,
        loops: Sequence[Any],
        worker_fn: Callable,
        progress_callback: Optional[Callable[[int, int], None]],
        start_time: float,
    ) -> List[Any]:
        n_loops = len(loops)
        logger.info(f"Processing {n_loops} loops with {self.n_workers} workers")
        worker_args = [(i, loop, worker_fn) for i, loop in enumerate(loops)]

        results_dict = {}
        errors = []
        with Pool(processes=min(self.n_workers, n_loops)) as pool:
            for completed, (idx, result, error) in enumerate(
                pool.imap_unordered(_worker_wrapper, worker_args), start=1
            ):
                if error is not None:
                    errors.append((idx, error))
                else:
                    results_dict[idx] = result
                if progress_callback:
                    progress_callback(completed, n_loops)
                self._log_progress(completed, n_loops, start_time)

        if errors:
            errors.sort(key=lambda item: item[0])
            logger.error(f"{len(errors)} loops failed out of {n_loops}")
            for idx, error in errors[:5]:
                logger.error(f"  Loop {idx}: {type(error).__name__}: {error}")
            if len(errors) > 5:
                logger.error(f"  ... and {len(errors) - 5} more errors")
            raise errors[0][1]

        return [results_dict[i] for i in range(n_loops)]

    @staticmethod
    def _log_progress(completed: int, total: int, start_time: float) -> None:
        if completed % 10 == 0 or completed == total:
            elapsed = max(time.time() - start_time, 1e-9)
            rate = completed / elapsed
            eta = (total - completed) / rate if rate > 0 else 0
            logger.info(
                f"Progress: {completed}/{total} loops "
                f"({100 * completed / total:.1f}%) - "
                f"Rate: {rate:.2f} loops/s - ETA: {eta:.1f}s"
            )
