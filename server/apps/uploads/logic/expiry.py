"""Time-based eviction of stored files.

The tracker keeps one deadline per stored name in memory and deletes the
file through the content store once the deadline passes. Nothing is
persisted: on startup :meth:`ExpiryTracker.reconcile` rebuilds the
schedule from file modification times and removes files that expired
while the process was not running.

Entry lifecycle: Scheduled -> Fired -> Removed. An entry is created by
``schedule()`` (after a successful put, or during reconciliation) and is
removed exactly once, either when it fires or through ``discard()``.
"""

import heapq
import logging
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Final, final

from server.apps.uploads.infrastructure.storage import ContentStore
from server.apps.uploads.models import (
    ExpiryEntry,
    ReconcileReport,
    RetentionPolicy,
)

logger = logging.getLogger(__name__)

# Upper bound for a single worker sleep, so wall-clock jumps are absorbed
_MAX_WAIT_SECONDS: Final = 60.0
_RETRY_DELAY_SECONDS: Final = 60.0


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()


@final
class ExpiryTracker:
    """Schedules and performs deletion of stored files.

    All state changes happen under the content store's lock, the same lock
    that guards puts and deletes, so eviction never races an upload.
    """

    def __init__(
        self,
        store: ContentStore,
        policy: RetentionPolicy,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the tracker.

        Args:
            store: Content store that owns the files.
            policy: Retention duration and ignore list.
            clock: Returns the current Unix timestamp.
        """
        self._store = store
        self._policy = policy
        self._clock = clock
        self._deadlines: dict[str, float] = {}
        # Min-heap of (deadline, name); entries not matching _deadlines are stale
        self._queue: list[tuple[float, str]] = []
        self._wakeup = threading.Condition(store.lock)
        self._worker: threading.Thread | None = None
        self._stopping = False

    @property
    def policy(self) -> RetentionPolicy:
        """Retention policy in effect."""
        return self._policy

    @property
    def is_running(self) -> bool:
        """Whether the background worker thread is alive."""
        return self._worker is not None and self._worker.is_alive()

    def schedule(
        self,
        name: str,
        written_at: float | None = None,
    ) -> ExpiryEntry | None:
        """Schedule deletion of a stored file.

        Scheduling an already tracked name keeps its original deadline.

        Args:
            name: Stored file name.
            written_at: Unix timestamp of the file's last write. Defaults
                to now.

        Returns:
            The tracked ExpiryEntry, or None if the name is on the ignore
            list.
        """
        if self._policy.is_ignored(name):
            logger.debug('Not scheduling ignored file: %s', name)
            return None

        with self._wakeup:
            existing = self._deadlines.get(name)
            if existing is not None:
                return ExpiryEntry(name=name, deadline=existing)

            if written_at is None:
                written_at = self._clock()
            deadline = self._policy.deadline_for(written_at)

            self._deadlines[name] = deadline
            heapq.heappush(self._queue, (deadline, name))
            if self._queue[0] == (deadline, name):
                # New earliest deadline: let the worker recompute its sleep
                self._wakeup.notify_all()

            logger.info(
                'Scheduled expiry of %s at %s',
                name,
                _format_timestamp(deadline),
            )
            return ExpiryEntry(name=name, deadline=deadline)

    def discard(self, name: str) -> bool:
        """Stop tracking a name without deleting its file.

        Used when the file was removed through another path.

        Args:
            name: Stored file name.

        Returns:
            True if the name was tracked.
        """
        with self._wakeup:
            return self._deadlines.pop(name, None) is not None

    def deadline_for(self, name: str) -> float | None:
        """Get the tracked deadline for a name.

        Args:
            name: Stored file name.

        Returns:
            Unix timestamp of the deadline, or None if not tracked.
        """
        with self._wakeup:
            return self._deadlines.get(name)

    def tracked_names(self) -> frozenset[str]:
        """Get every currently scheduled name.

        Returns:
            Frozen set of names.
        """
        with self._wakeup:
            return frozenset(self._deadlines)

    def fire_due(self, now: float | None = None) -> list[str]:
        """Delete every file whose deadline has passed.

        Files are deleted strictly by their tracked name. A failed delete
        keeps the entry and retries it later.

        Args:
            now: Unix timestamp to compare against. Defaults to the clock.

        Returns:
            Names removed by this pass.
        """
        removed = []
        with self._wakeup:
            if now is None:
                now = self._clock()

            while self._queue and self._queue[0][0] <= now:
                deadline, name = heapq.heappop(self._queue)
                if self._deadlines.get(name) != deadline:
                    continue

                try:
                    self._store.delete(name)
                except OSError:
                    retry_at = now + _RETRY_DELAY_SECONDS
                    logger.warning(
                        'Eviction of %s failed, retrying at %s',
                        name,
                        _format_timestamp(retry_at),
                    )
                    self._deadlines[name] = retry_at
                    heapq.heappush(self._queue, (retry_at, name))
                    continue

                del self._deadlines[name]
                removed.append(name)
                logger.info('Evicted expired file: %s', name)
        return removed

    def reconcile(
        self,
        now: float | None = None,
        *,
        dry_run: bool = False,
    ) -> ReconcileReport:
        """Rebuild the schedule from the store and purge overdue files.

        Scans the storage directory once. Ignored names are skipped,
        files whose deadline already passed are deleted, and every other
        file is scheduled from its modification time.

        Args:
            now: Unix timestamp to compare against. Defaults to the clock.
            dry_run: Only report overdue files; delete and schedule nothing.

        Returns:
            ReconcileReport with removed names and counters.
        """
        removed = []
        scheduled = 0
        ignored = 0

        with self._wakeup:
            if now is None:
                now = self._clock()

            for name, written_at in sorted(self._store.list_all()):
                if self._policy.is_ignored(name):
                    ignored += 1
                    continue

                if self._policy.deadline_for(written_at) < now:
                    if not dry_run:
                        self._store.delete(name)
                        self._deadlines.pop(name, None)
                        logger.info('Removed overdue file: %s', name)
                    removed.append(name)
                    continue

                if not dry_run:
                    self.schedule(name, written_at)
                scheduled += 1

        report = ReconcileReport(
            removed=tuple(removed),
            scheduled=scheduled,
            ignored=ignored,
        )
        logger.info(
            'Reconciled store%s: %d removed, %d scheduled, %d ignored',
            ' (dry run)' if dry_run else '',
            len(report.removed),
            report.scheduled,
            report.ignored,
        )
        return report

    def start(self) -> None:
        """Start the background worker that fires deadlines."""
        with self._wakeup:
            if self.is_running:
                return
            self._stopping = False
            self._worker = threading.Thread(
                target=self._run,
                name='expiry-tracker',
                daemon=True,
            )
            self._worker.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background worker.

        Args:
            timeout: Seconds to wait for the worker to exit.
        """
        with self._wakeup:
            self._stopping = True
            self._wakeup.notify_all()
            worker = self._worker

        if worker is not None:
            worker.join(timeout)

        with self._wakeup:
            # A concurrent start() may already have replaced the worker
            if self._worker is worker:
                self._worker = None

    def _run(self) -> None:
        logger.info('Expiry tracker started')
        with self._wakeup:
            while not self._stopping:
                try:
                    self.fire_due()
                except Exception:
                    logger.exception('Expiry pass failed')
                self._wakeup.wait(self._next_wait())
        logger.info('Expiry tracker stopped')

    def _next_wait(self) -> float:
        if not self._queue:
            return _MAX_WAIT_SECONDS
        remaining = self._queue[0][0] - self._clock()
        return min(max(remaining, 0.0), _MAX_WAIT_SECONDS)
