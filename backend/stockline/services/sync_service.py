# Overview: Connectivity-driven replay of the offline queue, plus the pending-count state shown to operators.

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from .notifications import LogNotifier, Notifier
from .offline_queue import OfflineQueue, QueueStorageError, SyncResult

log = logging.getLogger(__name__)

OFFLINE_WARNING = "You are offline. Changes will be saved locally and synced when online."
QUEUED_NOTICE = "Change saved locally. Will sync when online."


class ConnectivityProbe:
    """
    Online when the backend health endpoint answers 2xx within the timeout.
    Any transport error or non-2xx status counts as offline.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def is_online(self) -> bool:
        try:
            if self._client is not None:
                response = self._client.get(self.url, timeout=self.timeout)
            else:
                response = httpx.get(self.url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            log.debug("Health check to %s failed: %s", self.url, exc)
            return False
        if not response.is_success:
            log.debug("Health check to %s returned %s", self.url, response.status_code)
        return response.is_success


class StaticConnectivity:
    """Connectivity source driven by hand (tests, forced offline mode)."""

    def __init__(self, online: bool = True):
        self.online = online

    def is_online(self) -> bool:
        return self.online


class SyncCoordinator:
    """
    Bridges connectivity transitions to the offline queue.

    Single-threaded: tick() is the only scheduling point. Each tick probes
    connectivity, runs the matching transition handler when the state changed,
    and refreshes the pending count once per poll interval, so the count
    tracks queue growth even while the terminal stays offline.
    """

    def __init__(
        self,
        queue: OfflineQueue,
        connectivity,
        notifier: Notifier | None = None,
        *,
        poll_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.connectivity = connectivity
        self.notifier = notifier or LogNotifier()
        self.poll_interval = poll_interval
        self._clock = clock

        self._online = bool(connectivity.is_online())
        self._syncing = False
        self._queue_count = 0
        self._last_poll: float | None = None
        self.refresh_queue_count()

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def queue_count(self) -> int:
        return self._queue_count

    def state(self) -> dict:
        return {
            "is_online": self._online,
            "is_syncing": self._syncing,
            "queue_count": self._queue_count,
        }

    def indicator_label(self) -> str | None:
        """Status badge text; None when there is nothing to show."""
        if self._syncing:
            return "Syncing..."
        if self._online:
            if self._queue_count == 0:
                return None
            return f"Online ({self._queue_count} pending)"
        if self._queue_count:
            return f"Offline ({self._queue_count} saved)"
        return "Offline"

    def refresh_queue_count(self) -> int:
        """Re-read the pending count; an unreadable queue keeps the last known count."""
        try:
            self._queue_count = self.queue.count()
        except QueueStorageError as exc:
            log.error("Could not read offline queue: %s", exc.message)
        self._last_poll = self._clock()
        return self._queue_count

    def _drain(self) -> SyncResult | None:
        pending = self.refresh_queue_count()
        if not pending:
            return None

        self._syncing = True
        self.notifier.info(f"Syncing {pending} offline changes...")
        result = None
        try:
            result = self.queue.sync()
            if result.success > 0:
                self.notifier.success(f"Synced {result.success} offline changes successfully")
            if result.failed > 0:
                self.notifier.error(f"Failed to sync {result.failed} changes")
        except Exception:
            log.exception("Offline sync pass failed")
            self.notifier.error("Failed to sync offline changes")
        finally:
            self._syncing = False
            self.refresh_queue_count()
        return result

    def handle_online(self) -> SyncResult | None:
        self._online = True
        return self._drain()

    def handle_offline(self) -> None:
        self._online = False
        self.notifier.warning(OFFLINE_WARNING)

    def sync_now(self) -> SyncResult | None:
        """Manual sync pass, independent of connectivity transitions."""
        return self._drain()

    def queue_operation(self, op_type: str, table: str, data: dict) -> str:
        """Enqueue a write; it is only dispatched by a later sync pass."""
        operation_id = self.queue.add(op_type, table, data)
        self.refresh_queue_count()
        self.notifier.info(QUEUED_NOTICE)
        return operation_id

    def tick(self) -> dict:
        online = bool(self.connectivity.is_online())
        if online and not self._online:
            self.handle_online()
        elif not online and self._online:
            self.handle_offline()

        if self._last_poll is None or self._clock() - self._last_poll >= self.poll_interval:
            self.refresh_queue_count()
        return self.state()

    def run(self, iterations: int | None = None, sleep: Callable[[float], None] = time.sleep) -> None:
        """Loop tick() every poll interval; forever unless iterations is given."""
        done = 0
        while iterations is None or done < iterations:
            self.tick()
            done += 1
            if iterations is None or done < iterations:
                sleep(self.poll_interval)


def build_sync_coordinator(app, queue: OfflineQueue, connectivity=None, notifier: Notifier | None = None) -> SyncCoordinator:
    if connectivity is None:
        connectivity = ConnectivityProbe(
            app.config["HEALTH_CHECK_URL"],
            timeout=app.config.get("HEALTH_CHECK_TIMEOUT_SECONDS", 5.0),
        )
    return SyncCoordinator(
        queue,
        connectivity,
        notifier,
        poll_interval=app.config.get("QUEUE_POLL_INTERVAL_SECONDS", 5.0),
    )
