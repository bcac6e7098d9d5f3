from __future__ import annotations

import dataclasses
import json
import threading
from datetime import date, datetime, timezone

import pytest

from feedwatch.engine import Record, SnapshotCell


def test_record_document_restores_date_kinds() -> None:
    record = Record(
        source_key="812345",
        title="Aquisição de controle",
        watcher="material-facts",
        company="ACME",
        reference_date=date(2026, 10, 19),
        publish_date=datetime(2026, 10, 19, 18, 2, tzinfo=timezone.utc),
        extra={"rate": 12.5},
    )
    document = record.to_document()
    assert document["reference_date"] == "2026-10-19"
    assert document["reference_date_kind"] == "date"
    assert document["publish_date_kind"] == "datetime"

    restored = Record.from_document(document)
    assert restored == record
    assert type(restored.reference_date) is date


def test_record_document_tags_extra_dates() -> None:
    record = Record(
        source_key="1",
        title="t",
        extra={"filed_on": date(2026, 10, 18), "seen_at": datetime(2026, 10, 18, 9, 0), "rate": 1.5},
    )
    document = record.to_document()
    assert document["extra"] == {"filed_on": "2026-10-18", "seen_at": "2026-10-18T09:00:00", "rate": 1.5}
    assert document["extra_kinds"] == {"filed_on": "date", "seen_at": "datetime"}
    assert json.loads(json.dumps(document)) == document

    restored = Record.from_document(document)
    assert restored.extra == record.extra
    assert type(restored.extra["filed_on"]) is date


def test_record_is_immutable_and_exposes_fields() -> None:
    record = Record(source_key="1", title="t", extra={"rate": 1.0})
    with pytest.raises(dataclasses.FrozenInstanceError):
        record.title = "other"  # type: ignore[misc]
    assert record.field_value("title") == "t"
    assert record.field_value("rate") == 1.0
    assert record.field_value("missing") is None


def test_snapshot_cell_replaces_values() -> None:
    cell: SnapshotCell[tuple[int, int]] = SnapshotCell()
    assert cell.get() is None
    cell.set((1, 1))
    cell.set((2, 2))
    assert cell.get() == (2, 2)


def test_snapshot_cell_readers_never_see_partial_values() -> None:
    cell: SnapshotCell[tuple[int, int]] = SnapshotCell((0, 0))
    stop = threading.Event()
    torn: list[tuple[int, int]] = []

    def writer() -> None:
        for value in range(1, 2000):
            cell.set((value, value))
        stop.set()

    def reader() -> None:
        while not stop.is_set():
            first, second = cell.get()
            if first != second:
                torn.append((first, second))

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    assert torn == []
    assert cell.get() == (1999, 1999)
