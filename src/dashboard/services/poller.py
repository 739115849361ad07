"""Interval polling for dashboard views.

Dashboards refresh by re-fetching on a fixed interval (30 seconds by
default) instead of holding a push subscription. ``Poller`` runs one fetch
immediately, then one per interval on a daemon thread until stopped.

Example Usage:
    ```python
    poller = Poller(
        lambda: beds.get_bed_board(unit_id=unit_id),
        interval_seconds=settings.poll_interval_seconds,
        on_data=render_board,
        on_error=lambda message: console.print(f"[red]{message}[/red]"),
    )
    poller.start()
    ...
    poller.stop()
    ```
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from src.domain.ports import ServiceResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30


class Poller:
    """Calls ``fetch`` on an interval and hands results to callbacks.

    Parameters:
        fetch: Callable returning a ServiceResult
        interval_seconds: Seconds between fetches (must be positive)
        on_data: Called with ``result.data`` after each successful fetch
        on_error: Called with the error message after each failed fetch

    A failed fetch keeps the previous ``last_result``; the loop keeps going.
    """

    def __init__(
        self,
        fetch: Callable[[], ServiceResult],
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        on_data: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[str], None]] = None
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.fetch = fetch
        self.interval_seconds = interval_seconds
        self.on_data = on_data
        self.on_error = on_error

        self.last_result: Any = None
        self.last_updated: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> bool:
        """Fetch once and dispatch to the callbacks; returns True on success."""
        try:
            result = self.fetch()
        except Exception as e:
            logger.error(f"Poll fetch raised: {str(e)}", exc_info=True)
            self._record_error(f"Fetch failed: {str(e)}")
            return False

        if result.is_failure():
            logger.warning(f"Poll fetch failed: {result.error.message}")
            self._record_error(result.error.message)
            return False

        with self._lock:
            self.last_result = result.data
            self.last_updated = datetime.now(timezone.utc)
            self.last_error = None
        if self.on_data:
            try:
                self.on_data(result.data)
            except Exception as e:
                logger.error(f"Poll callback raised: {str(e)}", exc_info=True)
                self._record_error(f"Callback failed: {str(e)}")
                return False
        return True

    def _record_error(self, message: str) -> None:
        with self._lock:
            self.last_error = message
        if self.on_error:
            self.on_error(message)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.poll_once()
            if self._stop.wait(self.interval_seconds):
                break

    def start(self) -> None:
        """Start polling in the background (no-op when already running)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="dashboard-poller", daemon=True)
        self._thread.start()
        logger.debug(f"Poller started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop polling and wait for the in-flight fetch to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Poller stopped")
