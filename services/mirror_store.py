from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping

from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from models.label_record import LabelRecord
from models.message_record import MessageRecord
from services.errors import StoreUnavailable
from utils.config import AppConfig

LOGGER = logging.getLogger(__name__)


class MirrorStore(ABC):
    """Local copy of the mirrored messages and the account's labels."""

    @abstractmethod
    def find_by_label(self, label_id: str) -> List[MessageRecord]:
        """Return every stored message whose label set contains ``label_id``."""

    @abstractmethod
    def upsert(self, record: MessageRecord) -> None:
        """Insert or fully overwrite the message keyed by ``record.id``."""

    @abstractmethod
    def delete_by_ids(self, message_ids: Iterable[str]) -> int:
        """Delete the given messages and return how many were removed."""

    @abstractmethod
    def replace_labels(self, labels: Iterable[LabelRecord]) -> None:
        """Drop all stored labels and store ``labels`` instead."""

    @abstractmethod
    def list_labels(self) -> List[LabelRecord]:
        raise NotImplementedError

    def close(self) -> None:
        return None


class SQLiteMirrorStore(MirrorStore):
    """SQLite-backed mirror; one connection per operation so worker threads can share it."""

    def __init__(self, db_path: Path, timeout: float = 30.0):
        self._db_path = db_path
        self._timeout = timeout
        self._ensure_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(sqlite3.connect(self._db_path, timeout=self._timeout)) as conn:
                with conn:
                    yield conn
        except sqlite3.Error as exc:
            LOGGER.error("SQLite mirror at %s failed: %s", self._db_path, exc)
            raise StoreUnavailable(f"SQLite mirror failed: {exc}") from exc

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id TEXT PRIMARY KEY,
                    subject TEXT NOT NULL,
                    sender TEXT NOT NULL,
                    snippet TEXT NOT NULL,
                    internal_date_ms INTEGER NOT NULL,
                    synced_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS message_labels (
                    message_id TEXT NOT NULL,
                    label_id TEXT NOT NULL,
                    PRIMARY KEY (message_id, label_id)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_message_labels_label
                ON message_labels(label_id)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS labels (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL
                )
                """
            )

    def find_by_label(self, label_id: str) -> List[MessageRecord]:
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT m.id, m.subject, m.sender, m.snippet, m.internal_date_ms
                FROM messages m
                JOIN message_labels ml ON ml.message_id = m.id
                WHERE ml.label_id = ?
                ORDER BY m.internal_date_ms DESC
                """,
                (label_id,),
            ).fetchall()
            label_rows = conn.execute(
                """
                SELECT message_id, label_id FROM message_labels
                WHERE message_id IN (SELECT message_id FROM message_labels WHERE label_id = ?)
                """,
                (label_id,),
            ).fetchall()

        labels_by_id: Dict[str, set] = {}
        for message_id, message_label in label_rows:
            labels_by_id.setdefault(message_id, set()).add(message_label)
        return [
            MessageRecord(
                id=row[0],
                subject=row[1],
                sender=row[2],
                snippet=row[3],
                internal_date_ms=row[4],
                labels=frozenset(labels_by_id.get(row[0], ())),
            )
            for row in rows
        ]

    def upsert(self, record: MessageRecord) -> None:
        synced_at = datetime.now(timezone.utc).isoformat()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO messages(id, subject, sender, snippet, internal_date_ms, synced_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (record.id, record.subject, record.sender, record.snippet, record.internal_date_ms, synced_at),
            )
            conn.execute("DELETE FROM message_labels WHERE message_id = ?", (record.id,))
            conn.executemany(
                "INSERT INTO message_labels(message_id, label_id) VALUES (?, ?)",
                [(record.id, label) for label in sorted(record.labels)],
            )
        LOGGER.debug("Upserted message %s", record.id)

    def delete_by_ids(self, message_ids: Iterable[str]) -> int:
        ids = [(message_id,) for message_id in message_ids]
        if not ids:
            return 0
        with self._transaction() as conn:
            conn.executemany("DELETE FROM message_labels WHERE message_id = ?", ids)
            deleted = conn.executemany("DELETE FROM messages WHERE id = ?", ids).rowcount
        return deleted

    def replace_labels(self, labels: Iterable[LabelRecord]) -> None:
        rows = [(label.id, label.name) for label in labels]
        with self._transaction() as conn:
            conn.execute("DELETE FROM labels")
            conn.executemany("INSERT OR REPLACE INTO labels(id, name) VALUES (?, ?)", rows)
        LOGGER.info("Stored %s label(s)", len(rows))

    def list_labels(self) -> List[LabelRecord]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT id, name FROM labels ORDER BY name").fetchall()
        return [LabelRecord(id=row[0], name=row[1]) for row in rows]


class MongoMirrorStore(MirrorStore):
    """Document-store mirror using the ``emails`` and ``labels`` collections."""

    def __init__(self, database: Database, client: MongoClient | None = None):
        self._client = client
        self._emails = database["emails"]
        self._labels = database["labels"]
        with self._guard("create indexes"):
            self._emails.create_index([("emailId", ASCENDING)], unique=True)
            self._emails.create_index([("labels", ASCENDING)])

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except PyMongoError as exc:
            LOGGER.error("MongoDB mirror failed to %s: %s", action, exc)
            raise StoreUnavailable(f"MongoDB mirror failed to {action}: {exc}") from exc

    def find_by_label(self, label_id: str) -> List[MessageRecord]:
        with self._guard(f"find messages for {label_id}"):
            documents = list(self._emails.find({"labels": label_id}).sort("internalDate", -1))
        return [_record_from_document(document) for document in documents]

    def upsert(self, record: MessageRecord) -> None:
        with self._guard(f"upsert {record.id}"):
            self._emails.update_one(
                {"emailId": record.id},
                {"$set": _document_from_record(record)},
                upsert=True,
            )
        LOGGER.debug("Upserted message %s", record.id)

    def delete_by_ids(self, message_ids: Iterable[str]) -> int:
        ids = list(message_ids)
        if not ids:
            return 0
        with self._guard(f"delete {len(ids)} message(s)"):
            result = self._emails.delete_many({"emailId": {"$in": ids}})
        return result.deleted_count

    def replace_labels(self, labels: Iterable[LabelRecord]) -> None:
        documents = [{"id": label.id, "name": label.name} for label in labels]
        with self._guard("replace labels"):
            self._labels.delete_many({})
            if documents:
                self._labels.insert_many(documents)
        LOGGER.info("Stored %s label(s)", len(documents))

    def list_labels(self) -> List[LabelRecord]:
        with self._guard("list labels"):
            documents = list(self._labels.find({}, {"_id": 0}).sort("name", 1))
        return [LabelRecord(id=document["id"], name=document.get("name", document["id"])) for document in documents]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def _document_from_record(record: MessageRecord) -> Dict[str, Any]:
    return {
        "emailId": record.id,
        "subject": record.subject,
        "from": record.sender,
        "snippet": record.snippet,
        "internalDate": record.internal_date_ms,
        "labels": sorted(record.labels),
    }


def _record_from_document(document: Mapping[str, Any]) -> MessageRecord:
    return MessageRecord(
        id=document["emailId"],
        subject=document.get("subject", ""),
        sender=document.get("from", ""),
        snippet=document.get("snippet", ""),
        internal_date_ms=int(document.get("internalDate", 0)),
        labels=frozenset(document.get("labels", [])),
    )


def open_store(config: AppConfig) -> MirrorStore:
    """Build the store selected by ``STORE_BACKEND``."""

    if config.store_backend == "mongo":
        client: MongoClient = MongoClient(config.mongo_uri)
        LOGGER.info("Using MongoDB mirror %s/%s", config.mongo_uri, config.mongo_db_name)
        return MongoMirrorStore(client[config.mongo_db_name], client=client)
    LOGGER.info("Using SQLite mirror at %s", config.db_path)
    return SQLiteMirrorStore(config.db_path)
