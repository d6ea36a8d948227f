"""
keysync daemon — periodic and on-demand key sync.

Three things ask for a sync cycle: startup, the interval timer, and
SIGHUP. All of them go through a single-slot TriggerQueue that one
worker drains, so cycles never overlap and a burst of triggers
collapses into at most one extra cycle.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from datetime import datetime, timezone
from typing import Optional

from .errors import KeySyncError
from .fetcher import KeyFetcher
from .models import ReconcileResult, SyncConfig
from .updater import sync_keys

logger = logging.getLogger("keysync.daemon")


class TriggerQueue:
    """Bounded queue holding at most one pending sync request."""

    def __init__(self) -> None:
        self._queue: queue.Queue[str] = queue.Queue(maxsize=1)

    def trigger(self, reason: str) -> bool:
        """Request a cycle without blocking.

        Returns:
            False if a cycle was already pending and this one collapsed into it.
        """
        try:
            self._queue.put_nowait(reason)
        except queue.Full:
            logger.debug("Sync already pending, dropping %s trigger", reason)
            return False
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[str]:
        """Take the pending request, or None after *timeout* seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> bool:
        return not self._queue.empty()


class DaemonState:
    """Thread-safe record of sync activity.

    Only the worker writes; snapshot() may be called from anywhere.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.started_at: Optional[datetime] = None
        self.last_sync: Optional[datetime] = None
        self.cycles_completed: int = 0
        self.cycles_failed: int = 0
        self.keys_added: int = 0
        self.keys_removed: int = 0
        self.errors: list[str] = []
        self.running: bool = False

    def snapshot(self) -> dict:
        """Return a serializable snapshot of current state."""
        with self._lock:
            return {
                "running": self.running,
                "started_at": self.started_at.isoformat() if self.started_at else None,
                "last_sync": self.last_sync.isoformat() if self.last_sync else None,
                "cycles_completed": self.cycles_completed,
                "cycles_failed": self.cycles_failed,
                "keys_added": self.keys_added,
                "keys_removed": self.keys_removed,
                "recent_errors": self.errors[-10:],
            }

    def record_sync(self, result: ReconcileResult) -> None:
        """Record a successful cycle."""
        with self._lock:
            self.last_sync = datetime.now(timezone.utc)
            self.cycles_completed += 1
            self.keys_added += len(result.added)
            self.keys_removed += len(result.removed)

    def record_error(self, error: str) -> None:
        """Record a failed cycle, keeping only the last 50 errors."""
        with self._lock:
            self.cycles_failed += 1
            ts = datetime.now(timezone.utc).isoformat()
            self.errors.append(f"[{ts}] {error}")
            if len(self.errors) > 50:
                self.errors = self.errors[-50:]


class SyncService:
    """Long-running key sync.

    Args:
        config: Sync configuration.
        fetcher: KeyFetcher to use, built from the config if omitted.
        trigger_queue: Queue feeding the worker, created if omitted.
    """

    def __init__(
        self,
        config: SyncConfig,
        fetcher: Optional[KeyFetcher] = None,
        trigger_queue: Optional[TriggerQueue] = None,
    ):
        self.config = config
        self.fetcher = fetcher or KeyFetcher(config.url_template, timeout=config.request_timeout)
        self.queue = trigger_queue or TriggerQueue()
        self.state = DaemonState()
        self._stop_event = threading.Event()
        self._reload_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self, install_signals: bool = True) -> None:
        """Queue the startup cycle and start the timer and reload threads."""
        if install_signals:
            self._setup_signals()

        self.state.running = True
        self.state.started_at = datetime.now(timezone.utc)

        logger.info(
            "Syncing keys for %s into %s every %ss",
            self.config.identity,
            self.config.authorized_keys_path,
            f"{self.config.sync_interval:g}",
        )

        self.queue.trigger("startup")

        workers = [
            ("timer", self._timer_loop),
            ("reload", self._reload_loop),
        ]
        for name, target in workers:
            t = threading.Thread(target=target, name=f"keysync-{name}", daemon=True)
            t.start()
            self._threads.append(t)

    def stop(self) -> None:
        """Stop the background threads and log the final state."""
        self._stop_event.set()
        self._reload_event.set()
        self.state.running = False

        for t in self._threads:
            t.join(timeout=5)
        self._threads = []

        logger.info("Stopped: %s", self.state.snapshot())

    def request_stop(self) -> None:
        """Ask run_forever() to return after the current cycle."""
        self._stop_event.set()

    def request_reload(self) -> None:
        """Ask for an immediate extra cycle."""
        self._reload_event.set()

    def run_forever(self) -> None:
        """Drain the trigger queue until stopped.

        Cycles run one at a time in the calling thread; a cycle in
        progress always completes before a stop takes effect.
        """
        try:
            while not self._stop_event.is_set():
                reason = self.queue.wait(timeout=1)
                if reason is None or self._stop_event.is_set():
                    continue
                self.run_cycle(reason)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def run_cycle(self, reason: str = "manual") -> bool:
        """Run one sync cycle, logging and recording the outcome.

        Returns:
            True if the cycle succeeded.
        """
        logger.debug("Sync cycle (%s)", reason)
        try:
            result = sync_keys(self.config, self.fetcher)
        except KeySyncError as exc:
            logger.error("sync failed: %s", exc)
            self.state.record_error(str(exc))
            return False

        self.state.record_sync(result)
        if result.changed:
            logger.info(
                "Sync (%s) complete: %d added, %d removed",
                reason,
                len(result.added),
                len(result.removed),
            )
        return True

    def _timer_loop(self) -> None:
        """Trigger a cycle every sync_interval seconds."""
        while not self._stop_event.wait(timeout=self.config.sync_interval):
            self.queue.trigger("interval")

    def _reload_loop(self) -> None:
        """Turn reload requests from the signal handler into triggers."""
        while True:
            self._reload_event.wait()
            if self._stop_event.is_set():
                break
            self._reload_event.clear()
            logger.info("Reload requested")
            self.queue.trigger("reload")

    def _setup_signals(self) -> None:
        """Register SIGHUP for reload and SIGTERM/SIGINT for shutdown."""
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, self._handle_reload)
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self._handle_stop)

    def _handle_reload(self, signum, frame):
        self.request_reload()

    def _handle_stop(self, signum, frame):
        logger.info("Received signal %s — stopping", signal.Signals(signum).name)
        self.request_stop()


def run_once(config: SyncConfig, fetcher: Optional[KeyFetcher] = None) -> tuple[int, Optional[ReconcileResult]]:
    """Run a single sync cycle.

    Returns:
        Tuple of exit status (0, or the error kind's exit code) and the
        result when the cycle succeeded.
    """
    try:
        result = sync_keys(config, fetcher)
    except KeySyncError as exc:
        logger.error("sync failed: %s", exc)
        return exc.exit_code, None
    return 0, result
