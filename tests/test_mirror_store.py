from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from conftest import make_record
from models.label_record import LabelRecord
from services.errors import StoreUnavailable
from services.mirror_store import MongoMirrorStore, SQLiteMirrorStore


def test_sqlite_upsert_overwrites_fields_and_labels(store) -> None:
    store.upsert(make_record("a", "Label_1", "INBOX", subject="Old"))
    store.upsert(make_record("a", "Label_1", "STARRED", subject="New"))

    (record,) = store.find_by_label("Label_1")
    assert record.subject == "New"
    assert record.labels == frozenset({"Label_1", "STARRED"})
    assert store.find_by_label("INBOX") == []


def test_sqlite_find_by_label_orders_newest_first(store) -> None:
    store.upsert(make_record("old", internal_date_ms=1_000))
    store.upsert(make_record("new", internal_date_ms=2_000))

    assert [record.id for record in store.find_by_label("Label_1")] == ["new", "old"]


def test_sqlite_delete_by_ids(store) -> None:
    for message_id in ("a", "b", "c"):
        store.upsert(make_record(message_id))

    assert store.delete_by_ids(["a", "c", "missing"]) == 2
    assert [record.id for record in store.find_by_label("Label_1")] == ["b"]
    assert store.delete_by_ids([]) == 0


def test_sqlite_replace_labels_is_wholesale(store) -> None:
    store.replace_labels([LabelRecord("INBOX", "INBOX"), LabelRecord("Label_1", "Bamboobox")])
    store.replace_labels([LabelRecord("Label_1", "Bamboobox")])

    assert store.list_labels() == [LabelRecord("Label_1", "Bamboobox")]


def test_sqlite_persists_across_instances(tmp_path) -> None:
    db_path = tmp_path / "mirror.db"
    SQLiteMirrorStore(db_path).upsert(make_record("a"))

    assert [record.id for record in SQLiteMirrorStore(db_path).find_by_label("Label_1")] == ["a"]


def test_sqlite_errors_become_store_unavailable(store) -> None:
    with patch("services.mirror_store.sqlite3.connect", side_effect=sqlite3.OperationalError("disk I/O error")):
        with pytest.raises(StoreUnavailable):
            store.find_by_label("Label_1")


def _mongo_store():
    database = MagicMock()
    emails = MagicMock(name="emails")
    labels = MagicMock(name="labels")
    database.__getitem__.side_effect = {"emails": emails, "labels": labels}.__getitem__
    return MongoMirrorStore(database), emails, labels


def test_mongo_upsert_sets_document_by_email_id() -> None:
    store, emails, _ = _mongo_store()
    emails.create_index.assert_any_call([("emailId", 1)], unique=True)

    store.upsert(make_record("a", "Label_1", "INBOX", internal_date_ms=42))

    emails.update_one.assert_called_once_with(
        {"emailId": "a"},
        {
            "$set": {
                "emailId": "a",
                "subject": "Hello",
                "from": "Jane Doe",
                "snippet": "snippet a",
                "internalDate": 42,
                "labels": ["INBOX", "Label_1"],
            }
        },
        upsert=True,
    )


def test_mongo_find_by_label_maps_documents() -> None:
    store, emails, _ = _mongo_store()
    emails.find.return_value.sort.return_value = [
        {"emailId": "a", "subject": "S", "from": "F", "snippet": "", "internalDate": 7, "labels": ["Label_1"]}
    ]

    (record,) = store.find_by_label("Label_1")

    emails.find.assert_called_once_with({"labels": "Label_1"})
    assert record.id == "a"
    assert record.sender == "F"
    assert record.internal_date_ms == 7


def test_mongo_delete_and_replace_labels() -> None:
    store, emails, labels = _mongo_store()
    emails.delete_many.return_value.deleted_count = 2

    assert store.delete_by_ids(["a", "b"]) == 2
    emails.delete_many.assert_called_once_with({"emailId": {"$in": ["a", "b"]}})

    store.replace_labels([LabelRecord("INBOX", "INBOX")])
    labels.delete_many.assert_called_once_with({})
    labels.insert_many.assert_called_once_with([{"id": "INBOX", "name": "INBOX"}])


def test_mongo_errors_become_store_unavailable() -> None:
    store, emails, _ = _mongo_store()
    emails.update_one.side_effect = ServerSelectionTimeoutError("no servers")

    with pytest.raises(StoreUnavailable):
        store.upsert(make_record("a"))
