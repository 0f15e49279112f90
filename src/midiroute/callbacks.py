"""
Error-isolated deferred dispatch.

Bound actions are not run inside the MIDI callback. They are submitted to a
DispatchQueue and run afterwards, in submission order, by whoever drives the
host loop. A failing action is logged with its traceback and never reaches
the caller or stops later actions.
"""

import queue
from typing import Any, Callable, NamedTuple, Optional

from midiroute.logging_config import get_logger

logger = get_logger(__name__)


class DeferredCall(NamedTuple):
    callback: Callable[..., Any]
    args: tuple
    description: str


class DispatchQueue:
    """
    Single-consumer FIFO of deferred calls.

    submit() may be called from any thread; process_pending() must only be
    called from the host thread.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: queue.Queue[DeferredCall] = queue.Queue(maxsize=maxsize)
        self._executed = 0
        self._failed = 0
        self._dropped = 0

    def submit(self, callback: Callable[..., Any], *args: Any, description: Optional[str] = None) -> bool:
        """
        Schedule a call for the next process_pending().

        Args:
            callback: Callable to run
            *args: Arguments to pass
            description: Label used in error logs (defaults to the callable's name)

        Returns:
            True if queued, False if the queue was full
        """
        label = description or getattr(callback, "__name__", repr(callback))
        try:
            self._queue.put_nowait(DeferredCall(callback, args, label))
            return True
        except queue.Full:
            self._dropped += 1
            if self._dropped % 100 == 1:
                logger.warning(f"Dropped {self._dropped} deferred actions (queue full)")
            return False

    def process_pending(self) -> int:
        """
        Run every call queued so far, oldest first.

        Calls submitted while draining run in the same pass.

        Returns:
            Number of calls run (including failed ones)
        """
        count = 0
        while True:
            try:
                call = self._queue.get_nowait()
            except queue.Empty:
                break
            self._safe_call(call)
            count += 1
        return count

    def clear(self) -> int:
        """Discard pending calls without running them. Returns how many were dropped."""
        count = 0
        while True:
            try:
                self._queue.get_nowait()
                count += 1
            except queue.Empty:
                break
        return count

    def __len__(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> dict[str, int]:
        return {
            "executed": self._executed,
            "failed": self._failed,
            "dropped": self._dropped,
            "queued": self._queue.qsize(),
        }

    def _safe_call(self, call: DeferredCall) -> None:
        """
        Execute a deferred call with exception isolation.

        Errors are logged with a traceback and counted, never raised.
        """
        try:
            call.callback(*call.args)
            self._executed += 1
        except Exception as e:
            self._failed += 1
            logger.exception(f"Error while processing MIDI action '{call.description}': {e}")
