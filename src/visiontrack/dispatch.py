"""
Hand-off between the tracking worker and the presentation context.

The processor runs its whole frame loop on one worker thread and reports
through a delegate. OpenCV windows must be driven from the main thread, so
the delegate the processor sees is a QueuedDelegate: every call becomes a
message on a bounded queue, and the main thread drains it with pump().

    worker thread                         main thread
    ─────────────                         ───────────
    processor.perform_tracking()
      └─ delegate.display_frame(...)  ──►  queue  ──►  pump() ─► target.display_frame(...)
"""

import logging
import queue
import threading
from collections import deque
from typing import Callable, Deque, Optional, Tuple

from .processor import VisionTrackerProcessorDelegate


class QueuedDelegate(VisionTrackerProcessorDelegate):
    """
    Delegate that defers every call to whoever calls pump().

    At most `max_pending` frames and `max_pending` counters are held; a new
    one pushes out the oldest of its kind. did_finish_tracking() is never
    dropped.
    """

    DEFAULT_MAX_PENDING = 8
    COALESCED = ("display_frame", "display_frame_counter")

    def __init__(self, target: VisionTrackerProcessorDelegate,
                 max_pending: int = DEFAULT_MAX_PENDING):
        self.target = target
        self.max_pending = max(1, max_pending)
        self.dropped = 0
        self._messages: Deque[Tuple[str, tuple]] = deque()
        self._lock = threading.Lock()
        self.logger = logging.getLogger("QueuedDelegate")

    def display_frame(self, frame, transform, rects):
        self._put("display_frame", (frame, transform, rects))

    def display_frame_counter(self, frame_index: int):
        self._put("display_frame_counter", (frame_index,))

    def did_finish_tracking(self):
        self._put("did_finish_tracking", ())

    def _put(self, method: str, args: tuple):
        with self._lock:
            self._messages.append((method, args))
            if method in self.COALESCED:
                self._drop_stale(method)

    def _drop_stale(self, method: str):
        count = sum(1 for name, _ in self._messages if name == method)
        while count > self.max_pending:
            for index, (name, _) in enumerate(self._messages):
                if name == method:
                    del self._messages[index]
                    break
            count -= 1
            self.dropped += 1
            self.logger.debug(f"Presentation behind, dropped a stale {method}")

    def pump(self, max_messages: Optional[int] = None) -> int:
        """
        Dispatch queued calls to the target, in order, without blocking.

        Returns:
            Number of calls dispatched
        """
        dispatched = 0
        while max_messages is None or dispatched < max_messages:
            with self._lock:
                if not self._messages:
                    break
                method, args = self._messages.popleft()
            getattr(self.target, method)(*args)
            dispatched += 1
        return dispatched

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._messages)


class WorkQueue:
    """
    Serial work queue backed by one daemon thread.

    Jobs run one at a time in submission order, so two tracking runs
    submitted back to back never overlap.
    """

    def __init__(self, name: str = "visiontrack.work",
                 on_error: Optional[Callable[[BaseException], None]] = None):
        self.name = name
        self.on_error = on_error
        self._jobs: "queue.Queue" = queue.Queue()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger(name)

    def start(self):
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def submit(self, job: Callable[[], None]):
        if not self._running:
            self.start()
        self._jobs.put(job)

    def _run(self):
        while True:
            job = self._jobs.get()
            if job is None:
                break
            try:
                job()
            except Exception as e:
                self.logger.exception(f"Job failed: {e}")
                if self.on_error is not None:
                    self.on_error(e)
            finally:
                self._jobs.task_done()
        self._jobs.task_done()

    def join(self):
        """Block until every submitted job has run."""
        self._jobs.join()

    def stop(self, timeout: float = 1.0):
        if not self._running:
            return
        self._running = False
        self._jobs.put(None)
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
