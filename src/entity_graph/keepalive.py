"""Background liveness probe for the database."""

import threading
from typing import Any

import structlog

from entity_graph.database import Database

logger = structlog.get_logger()


class KeepAlive:
    """Periodically pings the database from a daemon thread.

    A failed ping is logged and the probe waits for its next interval; it never
    raises into the caller.
    """

    def __init__(self, database: Database, interval: float = 600.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.database = database
        self.interval = interval
        self.failures = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="entity-graph-keepalive", daemon=True)
        self._thread.start()
        logger.debug("Keep-alive started", interval=self.interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None
        logger.debug("Keep-alive stopped")

    def probe(self) -> bool:
        """Ping once. Returns False instead of raising on failure."""
        try:
            self.database.ping()
        except Exception as e:
            self.failures += 1
            logger.error("Database ping failed", error=str(e), failures=self.failures)
            return False
        logger.debug("Database ping sent")
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.probe()

    def __enter__(self) -> "KeepAlive":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
