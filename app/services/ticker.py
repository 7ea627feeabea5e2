"""Cancellable periodic counter for the quiz display clock."""
import threading
from typing import Optional


class DisplayTicker:
    """
    Count ticks on a background thread at a fixed cadence.

    The count is for display only. Missed or delayed ticks make it drift,
    so nothing authoritative may be derived from it.
    """

    def __init__(self, interval: float = 1.0):
        if interval <= 0:
            raise ValueError("Tick interval must be positive")
        self.interval = interval
        self.ticks = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def seconds(self) -> float:
        return self.ticks * self.interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="display-ticker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval * 2)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.ticks += 1

    def __enter__(self) -> "DisplayTicker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
