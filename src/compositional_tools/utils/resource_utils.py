# compositional_tools/utils/resource_utils.py
import functools
import logging
import threading
import time

import psutil

logger = logging.getLogger(__name__)


def _process_tree_rss(proc):
    """Resident memory of a process and its worker children, in bytes."""
    rss = proc.memory_info().rss
    for child in proc.children(recursive=True):
        try:
            rss += child.memory_info().rss
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return rss


class PeakMemoryMonitor:
    """Samples resident memory on a background thread and keeps the maximum."""

    def __init__(self, interval=0.1):
        self.interval = interval
        self.peak = 0
        self._proc = psutil.Process()
        self._stop = threading.Event()
        self._thread = None

    def _run(self):
        while not self._stop.is_set():
            self.peak = max(self.peak, _process_tree_rss(self._proc))
            self._stop.wait(self.interval)

    def start(self):
        self.peak = _process_tree_rss(self._proc)
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return self

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
        self.peak = max(self.peak, _process_tree_rss(self._proc))
        return self.peak


def track_peak_memory(func):
    """Decorator logging wall time and peak memory (MB) of a call."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        monitor = PeakMemoryMonitor().start()
        start = time.time()
        try:
            return func(*args, **kwargs)
        finally:
            peak = monitor.stop()
            logger.info(f"{func.__name__}: peak memory {peak / (1024 ** 2):.1f} MB, "
                        f"elapsed {time.time() - start:.1f}s")
    return wrapper
