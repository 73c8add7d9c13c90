"""
Polling emitter: turns change log entries into change events.

The cursor (``last_id``) is explicit state of :class:`ChangeEmitter`. A single
read step is available as :func:`poll_cycle` so it can be driven with an
injected reader and cursor.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Tuple

from changestream.capture.diff import diff, load_image
from changestream.domain.models import ACTIONS, ChangeEvent, ChangeLogEntry
from changestream.errors import StorageError
from changestream.lifecycle import CancellationToken
from changestream.utils.logging import get_logger

log = get_logger(__name__)

EventSink = Callable[[ChangeEvent], None]


class LogReader(Protocol):
    """Anything exposing the log store's read path."""

    def read_from(self, cursor: int, limit: Optional[int] = None) -> List[ChangeLogEntry]:
        ...


def to_event(entry: ChangeLogEntry) -> ChangeEvent:
    """
    Build the change event for one log entry.

    Updates carry ``changed_fields``; inserts and deletes carry their images.
    Malformed images degrade to empty records instead of failing the entry.
    """
    if entry.action not in ACTIONS:
        raise StorageError(f"Entry {entry.id} has unknown action '{entry.action}'")
    context = {"entry_id": entry.id, "table": entry.table_name}
    common = dict(
        id=entry.id,
        table=entry.table_name,
        action=entry.action,
        row_id=entry.row_id,
        timestamp=entry.timestamp,
    )
    if entry.action == "update":
        return ChangeEvent(**common, changed_fields=diff(entry.new_image, entry.old_image, context))
    return ChangeEvent(
        **common,
        new_image=load_image(entry.new_image, context) if entry.new_image is not None else None,
        old_image=load_image(entry.old_image, context) if entry.old_image is not None else None,
    )


def poll_cycle(
    reader: LogReader,
    cursor: int,
    batch_size: Optional[int] = None,
) -> Tuple[List[ChangeEvent], int]:
    """
    Read one batch after ``cursor`` and convert it.

    Returns the events and the advanced cursor. Entries that cannot be
    converted are logged and skipped; the cursor still moves past them.
    """
    events: List[ChangeEvent] = []
    for entry in reader.read_from(cursor, batch_size):
        if entry.id <= cursor:
            log.warning(
                f"Out-of-order entry {entry.id} ignored (cursor {cursor})",
                extra={"entry_id": entry.id, "cursor": cursor},
            )
            continue
        cursor = entry.id
        try:
            events.append(to_event(entry))
        except Exception:  # noqa: BLE001 - one bad entry must not block the stream
            log.exception(
                f"[ENTRY SKIPPED] {entry.id}",
                extra={"entry_id": entry.id, "table": entry.table_name},
            )
    return events, cursor


class ChangeEmitter:
    """
    Drains the change log into ``sink`` and sleeps between cycles.
    """

    def __init__(
        self,
        reader: LogReader,
        sink: EventSink,
        interval: float = 1.0,
        batch_size: int = 500,
        start_after: int = 0,
    ) -> None:
        self._reader = reader
        self._sink = sink
        self.interval = interval
        self.batch_size = batch_size
        self._last_id = start_after
        self.emitted = 0

    @property
    def last_id(self) -> int:
        return self._last_id

    def poll_once(self, token: Optional[CancellationToken] = None) -> int:
        """
        Emit everything currently in the log after ``last_id``.

        Returns the number of events emitted in this cycle.
        """
        count = 0
        while True:
            events, cursor = poll_cycle(self._reader, self._last_id, self.batch_size)
            drained = cursor == self._last_id
            for event in events:
                self._sink(event)
                count += 1
            self._last_id = cursor
            if drained or (token is not None and token.cancelled):
                break
        self.emitted += count
        return count

    def run(self, token: CancellationToken) -> None:
        """
        Poll until ``token`` is cancelled; cancellation is observed between cycles.
        """
        log.info(
            f"Poller started (interval={self.interval}s, after id {self._last_id})",
            extra={"interval": self.interval, "last_id": self._last_id},
        )
        while True:
            try:
                count = self.poll_once(token)
                if count:
                    log.debug(f"Emitted {count} event(s)", extra={"last_id": self._last_id})
            except StorageError as exc:
                log.error(f"[POLL FAILED] {exc}", extra={"last_id": self._last_id})
            if token.wait(self.interval):
                break
        log.info(
            f"Poller stopped after {self.emitted} event(s)",
            extra={"emitted": self.emitted, "last_id": self._last_id},
        )


__all__ = ["ChangeEmitter", "EventSink", "LogReader", "poll_cycle", "to_event"]
