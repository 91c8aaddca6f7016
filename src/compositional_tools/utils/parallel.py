# compositional_tools/utils/parallel.py
"""
Independent-task pool for Monte-Carlo draws and permutation chunks.

Tasks share no state. Each receives its own child seed, so results are the
same whatever the number of workers.
"""

import logging
import multiprocessing
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
from tqdm import tqdm

logger = logging.getLogger(__name__)


SeedLike = Union[int, np.random.SeedSequence, None]


def spawn_seeds(seed: SeedLike, n: int) -> List[np.random.SeedSequence]:
    """Derive ``n`` independent seed sequences from a run seed or a parent sequence."""
    if isinstance(seed, np.random.SeedSequence):
        return seed.spawn(n)
    return np.random.SeedSequence(seed).spawn(n)


def resolve_n_jobs(n_jobs: Optional[int]) -> int:
    """None or -1 means one worker per CPU."""
    if n_jobs is None or n_jobs == -1:
        return multiprocessing.cpu_count()
    return max(1, int(n_jobs))


def run_tasks(func: Callable, task_args: Sequence[tuple], n_jobs: int = 1,
              desc: Optional[str] = None, progress: bool = False) -> list:
    """
    Run ``func(*args)`` for every entry of ``task_args``.

    Results come back in submission order. The first failing task aborts the
    run: pending tasks are cancelled and the exception propagates.

    Args:
        func: Module-level callable (must be picklable for worker processes)
        task_args: One argument tuple per task
        n_jobs: Number of worker processes; 1 runs inline
        desc: Progress bar label
        progress: Show a tqdm progress bar

    Returns:
        List of task results
    """
    n_jobs = resolve_n_jobs(n_jobs)
    n_tasks = len(task_args)

    if n_jobs == 1 or n_tasks <= 1:
        iterator = tqdm(task_args, desc=desc, disable=not progress)
        return [func(*args) for args in iterator]

    max_workers = min(n_jobs, n_tasks)
    logger.debug(f"Running {n_tasks} tasks on {max_workers} worker processes")
    results = [None] * n_tasks
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(func, *args): i for i, args in enumerate(task_args)}
        try:
            for future in tqdm(as_completed(futures), total=n_tasks, desc=desc, disable=not progress):
                results[futures[future]] = future.result()
        except Exception:
            for future in futures:
                future.cancel()
            raise
    return results
