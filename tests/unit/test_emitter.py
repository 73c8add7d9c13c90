from __future__ import annotations

from typing import List, Optional

import pytest

from changestream.capture.emitter import ChangeEmitter, poll_cycle, to_event
from changestream.domain.models import ChangeEvent, ChangeLogEntry
from changestream.errors import StorageError
from changestream.lifecycle import CancellationToken

TS = "2024-01-01T00:00:00.000Z"


def _entry(entry_id: int, action: str = "insert", **kwargs) -> ChangeLogEntry:
    defaults = {
        "insert": {"new_image": '{"a": 1, "b": "x"}'},
        "update": {"new_image": '{"a": 1, "b": "y"}', "old_image": '{"a": 1, "b": "x"}'},
        "delete": {"old_image": '{"a": 1, "b": "y"}'},
    }.get(action, {})
    defaults.update(kwargs)
    return ChangeLogEntry(
        id=entry_id,
        table_name="items",
        action=action,
        row_id=1,
        timestamp=TS,
        **defaults,
    )


class _FakeReader:
    def __init__(self, entries: List[ChangeLogEntry]) -> None:
        self.entries = entries
        self.calls: List[tuple] = []

    def read_from(self, cursor: int, limit: Optional[int] = None) -> List[ChangeLogEntry]:
        self.calls.append((cursor, limit))
        selected = [entry for entry in self.entries if entry.id > cursor]
        return selected[:limit] if limit is not None else selected


class _FailingReader:
    def __init__(self) -> None:
        self.calls = 0

    def read_from(self, cursor: int, limit: Optional[int] = None) -> List[ChangeLogEntry]:
        self.calls += 1
        raise StorageError("disk I/O error")


def test_to_event_insert_carries_new_image_only() -> None:
    record = to_event(_entry(1, "insert")).to_record()
    assert record["new_image"] == {"a": 1, "b": "x"}
    assert "old_image" not in record
    assert "changed_fields" not in record


def test_to_event_update_carries_diff() -> None:
    record = to_event(_entry(2, "update")).to_record()
    assert record["changed_fields"] == {"b": {"old": "x", "new": "y"}}
    assert "new_image" not in record
    assert "old_image" not in record


def test_to_event_delete_carries_old_image_only() -> None:
    record = to_event(_entry(3, "delete")).to_record()
    assert record["old_image"] == {"a": 1, "b": "y"}
    assert "new_image" not in record


def test_to_event_rejects_unknown_action() -> None:
    with pytest.raises(StorageError):
        to_event(_entry(4, "truncate"))


def test_poll_cycle_uses_injected_cursor() -> None:
    reader = _FakeReader([_entry(i) for i in range(1, 6)])
    events, cursor = poll_cycle(reader, cursor=2, batch_size=10)
    assert [event.id for event in events] == [3, 4, 5]
    assert cursor == 5
    assert reader.calls == [(2, 10)]


def test_poll_cycle_skips_bad_entry_but_advances_cursor() -> None:
    reader = _FakeReader([_entry(1), _entry(2, "truncate"), _entry(3, "delete")])
    events, cursor = poll_cycle(reader, cursor=0)
    assert [event.id for event in events] == [1, 3]
    assert cursor == 3


def test_poll_cycle_with_malformed_image_still_emits() -> None:
    reader = _FakeReader([_entry(1, "update", new_image="{oops"), _entry(2, "insert", new_image="nope")])
    events, cursor = poll_cycle(reader, cursor=0)
    assert cursor == 2
    assert events[0].changed_fields == {}
    assert events[1].new_image == {}


def test_emitter_drains_across_batches_in_order() -> None:
    reader = _FakeReader([_entry(i) for i in range(1, 8)])
    received: List[ChangeEvent] = []
    emitter = ChangeEmitter(reader, received.append, interval=0.01, batch_size=3)

    assert emitter.poll_once() == 7
    assert [event.id for event in received] == list(range(1, 8))
    assert emitter.last_id == 7

    # Nothing new: cursor holds and nothing is re-emitted.
    assert emitter.poll_once() == 0
    assert emitter.last_id == 7

    reader.entries.append(_entry(8, "delete"))
    assert emitter.poll_once() == 1
    assert [event.id for event in received] == list(range(1, 9))


def test_emitter_start_after_skips_history() -> None:
    reader = _FakeReader([_entry(i) for i in range(1, 5)])
    received: List[ChangeEvent] = []
    emitter = ChangeEmitter(reader, received.append, batch_size=10, start_after=2)
    emitter.poll_once()
    assert [event.id for event in received] == [3, 4]


def test_run_stops_after_cycle_when_token_cancelled() -> None:
    reader = _FakeReader([_entry(1), _entry(2)])
    token = CancellationToken()
    received: List[ChangeEvent] = []

    def sink(event: ChangeEvent) -> None:
        received.append(event)
        token.cancel("done")

    emitter = ChangeEmitter(reader, sink, interval=5, batch_size=1)
    emitter.run(token)

    # Cancellation is honoured between batches, so only the first batch is out.
    assert [event.id for event in received] == [1]
    assert emitter.last_id == 1


def test_run_survives_storage_errors() -> None:
    reader = _FailingReader()
    token = CancellationToken()
    token.cancel()
    emitter = ChangeEmitter(reader, lambda event: None, interval=0.01)
    emitter.run(token)
    assert reader.calls == 1
    assert emitter.last_id == 0
