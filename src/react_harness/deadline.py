# deadline.py
# Per-execution time budget and cancellation signal.
#
# The loop has exactly two suspension points: the completion call and the
# tool invocation. Both go through Deadline.run(), which waits at most the
# remaining time. On expiry the deadline reports itself cancelled so cooperative
# callees can stop, and the in-flight call is abandoned, never killed.

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TypeVar

from react_harness.errors import Cancelled, DeadlineExceeded

T = TypeVar("T")


class Deadline:
    """
    Monotonic deadline plus a cancellation signal.

    Owned by one execution. `cancel` may be a caller-supplied event so an
    external signal can interrupt work in flight. The deadline only reads
    that event; expiry and cancel() are recorded on private events so a
    shared caller event outlives any single execution untouched.
    """

    POLL_INTERVAL = 0.05

    def __init__(self, timeout: float, cancel: threading.Event | None = None) -> None:
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout
        self._caller = cancel
        self._stopped = threading.Event()
        self._expired = threading.Event()
        self._pool: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    def _interrupted(self) -> bool:
        return self._stopped.is_set() or (self._caller is not None and self._caller.is_set())

    @property
    def cancelled(self) -> bool:
        """True once the caller cancelled or the time budget ran out."""
        return self._interrupted() or self._expired.is_set() or self.remaining() <= 0.0

    def cancel(self) -> None:
        """Cancel this execution only. A caller-supplied event is left alone."""
        self._stopped.set()

    def check(self, during: str = "execution") -> None:
        """Raise Cancelled or DeadlineExceeded if work must stop."""
        if self._interrupted():
            raise Cancelled(self.timeout, during)
        if self._expired.is_set() or self.remaining() <= 0.0:
            raise DeadlineExceeded(self.timeout, during)

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------

    def run(self, fn: Callable[[], T], during: str) -> T:
        """
        Call fn() and wait for it for at most the remaining time.

        Exceptions raised by fn propagate unchanged. On expiry `cancelled`
        turns true, the worker is left to finish on its own and
        DeadlineExceeded is raised.
        """
        self.check(during)
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="react-harness")
        future = self._pool.submit(fn)
        while not self._interrupted():
            done, _ = wait([future], timeout=min(self.POLL_INTERVAL, self.remaining()))
            if done:
                return future.result()
            if self.remaining() <= 0.0:
                break

        interrupted = self._interrupted()
        self._expired.set()
        # The abandoned worker may still be busy; the next call needs a fresh one.
        self._pool.shutdown(wait=False, cancel_futures=True)
        self._pool = None
        if interrupted:
            raise Cancelled(self.timeout, during)
        raise DeadlineExceeded(self.timeout, during)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
