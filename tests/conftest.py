from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pytest

from models.message_record import MessageRecord
from services.errors import RemoteUnavailable
from services.mirror_store import SQLiteMirrorStore


class FakeRemote:
    """In-memory stand-in for GmailService."""

    def __init__(self, messages: Iterable[MessageRecord] = ()):
        self.messages: Dict[str, MessageRecord] = {message.id: message for message in messages}
        self.fetched: List[str] = []
        self.listed: List[tuple] = []
        self.fail_on: Optional[str] = None

    def list_message_ids(self, label_id: str, page_size: int) -> List[str]:
        self.listed.append((label_id, page_size))
        matching = [message.id for message in self.messages.values() if label_id in message.labels]
        return matching[:page_size]

    def fetch_details(self, message_id: str) -> MessageRecord:
        if message_id == self.fail_on:
            raise RemoteUnavailable(f"Failed to fetch message {message_id}")
        self.fetched.append(message_id)
        return self.messages[message_id]


def make_record(message_id: str, *labels: str, subject: str = "Hello", internal_date_ms: int = 1_700_000_000_000) -> MessageRecord:
    return MessageRecord(
        id=message_id,
        subject=subject,
        sender="Jane Doe",
        snippet=f"snippet {message_id}",
        internal_date_ms=internal_date_ms,
        labels=frozenset(labels or ("Label_1",)),
    )


@pytest.fixture
def store(tmp_path) -> SQLiteMirrorStore:
    return SQLiteMirrorStore(tmp_path / "mirror.db")
