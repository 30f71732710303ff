"""Cooperative cancellation driven by process signals."""

import signal
import threading
from contextlib import contextmanager

from k3s_manager.exceptions import OperationCancelled
from k3s_manager.logging_config import get_logger

logger = get_logger(__name__)

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGHUP, signal.SIGQUIT, signal.SIGTERM)


class CancellationToken:
    """Shared flag that stops a workflow before its next step."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; return True early if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(
                "Operation cancelled",
                f"Received {self.reason}; the step in progress was allowed to finish. "
                "Rerun the command to continue.",
            )


@contextmanager
def cancel_on_signals(token: CancellationToken, signals=CANCEL_SIGNALS):
    """Cancel ``token`` when one of ``signals`` arrives, restoring handlers on exit.

    Must be entered from the main thread.
    """

    def _handler(signum, frame):
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, stopping after the current step")
        token.cancel(name)

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
