from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from stempel import session
from stempel.errors import StorageCorruptError, StorageIoError, StorageNotFoundError
from stempel.storage.models import Event, EventKind, EventLog, load_iso
from stempel.storage.store import EventStore


T0 = datetime(2024, 3, 12, 9, 0, tzinfo=timezone(timedelta(hours=1)))


def _sample_log() -> EventLog:
    log = EventLog()
    session.start(log, T0)
    session.start_break(log, T0 + timedelta(hours=2))
    session.stop_break(log, T0 + timedelta(hours=2, minutes=15))
    session.stop(log, T0 + timedelta(hours=8))
    return log


def test_save_and_load_preserve_events(tmp_path: Path) -> None:
    store = EventStore(tmp_path / "nested" / "stempel.json")
    log = _sample_log()
    store.save(log)

    loaded = store.load()
    assert loaded.events == log.events
    assert loaded.events[0].timestamp.utcoffset() == timedelta(hours=1)

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert payload["events"][1] == {"kind": "break_start", "timestamp": "2024-03-12T11:00:00+01:00"}


def test_missing_file(tmp_path: Path) -> None:
    store = EventStore(tmp_path / "stempel.json")
    assert not store.exists()
    with pytest.raises(StorageNotFoundError):
        store.load()
    assert len(store.load_or_empty()) == 0


def test_invalid_json_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "stempel.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageCorruptError) as exc:
        EventStore(path).load_or_empty()
    assert exc.value.error["code"] == "storage_corrupt"


def test_legacy_file_points_to_migrate(tmp_path: Path) -> None:
    path = tmp_path / "stempel.json"
    path.write_text(json.dumps({"name": "me", "work_sets": []}), encoding="utf-8")
    with pytest.raises(StorageCorruptError) as exc:
        EventStore(path).load()
    assert "stempel migrate" in exc.value.reason


@pytest.mark.parametrize(
    "payload",
    [
        {"version": 2, "events": []},
        {"version": True, "events": []},
        {"version": 1, "events": {}},
        {"version": 1, "events": [{"kind": "lunch", "timestamp": "2024-03-12T09:00:00+00:00"}]},
        {"version": 1, "events": [{"kind": "start", "timestamp": "yesterday"}]},
    ],
)
def test_bad_payloads_are_corrupt(tmp_path: Path, payload: dict) -> None:
    path = tmp_path / "stempel.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(StorageCorruptError):
        EventStore(path).load()


def test_invalid_utf8_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "stempel.json"
    path.write_bytes(b'{"version": 1, "events": ["\xff"]}')
    with pytest.raises(StorageCorruptError) as exc:
        EventStore(path).load_or_empty()
    assert "UTF-8" in exc.value.reason


def test_unreadable_path_is_an_io_error(tmp_path: Path) -> None:
    path = tmp_path / "stempel.json"
    path.mkdir()
    with pytest.raises(StorageIoError) as exc:
        EventStore(path).load()
    assert exc.value.operation == "read"
    assert exc.value.message.startswith("Failed to read storage file")


def test_recorded_break_marker_survives_save(tmp_path: Path) -> None:
    store = EventStore(tmp_path / "stempel.json")
    log = EventLog()
    session.start(log, T0)
    session.add_break(log, T0 + timedelta(hours=3), timedelta(minutes=30))
    store.save(log)

    loaded = store.load()
    assert loaded.events == log.events
    assert [event.action for event in loaded] == [None, "break-duration", "break-duration"]
    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert "action" not in payload["events"][0]


def test_inconsistent_sequence_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "stempel.json"
    events = [
        {"kind": "start", "timestamp": "2024-03-12T09:00:00+00:00"},
        {"kind": "start", "timestamp": "2024-03-12T10:00:00+00:00"},
    ]
    path.write_text(json.dumps({"version": 1, "events": events}), encoding="utf-8")
    with pytest.raises(StorageCorruptError) as exc:
        EventStore(path).load()
    assert "inconsistent event sequence" in exc.value.reason


def test_failed_write_keeps_previous_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = EventStore(tmp_path / "stempel.json")
    store.save(_sample_log())
    before = store.path.read_text(encoding="utf-8")

    def _boom(src: str, dst: str) -> None:
        raise PermissionError("read-only filesystem")

    monkeypatch.setattr("stempel.storage.store.os.replace", _boom)
    grown = _sample_log()
    session.start(grown, T0 + timedelta(days=1))

    with pytest.raises(StorageIoError) as exc:
        store.save(grown)
    assert "read-only filesystem" in exc.value.message
    assert store.path.read_text(encoding="utf-8") == before
    assert [p.name for p in tmp_path.iterdir()] == ["stempel.json"]


def test_load_iso_accepts_zulu_long_fractions_and_naive() -> None:
    assert load_iso("2021-05-03T07:12:41.123456789Z") == datetime(2021, 5, 3, 7, 12, 41, 123456, tzinfo=timezone.utc)
    assert load_iso("2021-05-03T07:12:41").tzinfo is timezone.utc


def test_events_keep_action_order_not_time_order() -> None:
    log = EventLog([Event(EventKind.START, T0), Event(EventKind.STOP, T0 - timedelta(minutes=5))])
    assert log.kinds() == [EventKind.START, EventKind.STOP]
    assert log.sorted_events()[0].kind is EventKind.STOP
