"""
Cooperative cancellation for the watch loop.

Signal handlers only flip a flag; the poller observes it between cycles and
cleanup then runs on the main thread, never concurrently with a log read.
"""

from __future__ import annotations

import signal
import threading
from typing import Dict, Iterable, Optional

from changestream.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationToken:
    """Thread-safe one-shot cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds; True once cancelled."""
        return self._event.wait(timeout)


def install_signal_handlers(
    token: CancellationToken,
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
) -> Dict[signal.Signals, object]:
    """
    Route termination signals to ``token``. Returns the previous handlers.

    Must be called from the main thread.
    """
    previous: Dict[signal.Signals, object] = {}

    def _handler(signum: int, frame: object) -> None:
        del frame
        name = signal.Signals(signum).name
        log.info(f"Received {name}, stopping...", extra={"signal": name})
        token.cancel(reason=name)

    for sig in signals:
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_signal_handlers(previous: Dict[signal.Signals, object]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)  # type: ignore[arg-type]


__all__ = [
    "CancellationToken",
    "install_signal_handlers",
    "restore_signal_handlers",
]
