"""Cooperative cancellation for a ralph run.

Signal handlers only flip a CancellationToken; the agent runner and the
backoff sleep observe it and raise Interrupted, so summary and exit logic
stay in ordinary control flow.

cancel() takes no locks, so it is safe inside a signal handler; sleep()
polls the flag instead of blocking on it.
"""

import signal
import subprocess
import time
from collections.abc import Iterator
from contextlib import contextmanager

from ralph.errors import Interrupted

# Longest delay between a cancel and a sleeping caller noticing it
_POLL_INTERVAL = 0.1


class CancellationToken:
    """Cancellation flag plus the subprocess currently in flight.

    There is only ever one thing in flight, so a single attached process
    is enough.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._process: subprocess.Popen | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation and terminate the attached subprocess."""
        self._cancelled = True
        process = self._process
        if process is not None and process.poll() is None:
            process.terminate()

    def attach(self, process: subprocess.Popen) -> None:
        """Track a subprocess so cancel() can terminate it.

        A process attached after cancellation is terminated immediately.
        """
        self._process = process
        if self.cancelled and process.poll() is None:
            process.terminate()

    def detach(self) -> None:
        self._process = None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Interrupted()

    def sleep(self, seconds: float) -> None:
        """Sleep for up to ``seconds``, raising Interrupted if cancelled."""
        deadline = time.monotonic() + seconds
        while True:
            self.raise_if_cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(remaining, _POLL_INTERVAL))


@contextmanager
def handle_signals(
    token: CancellationToken,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[CancellationToken]:
    """Route the given signals to ``token.cancel()`` for the duration.

    Previous handlers are restored on exit.

    Usage:
        token = CancellationToken()
        with handle_signals(token):
            ...  # SIGINT now cancels instead of raising KeyboardInterrupt
    """

    def _on_signal(signum: int, frame: object) -> None:
        token.cancel()

    previous = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _on_signal)
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
