from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import FrozenSet

NO_SUBJECT = "(No Subject)"
UNKNOWN_SENDER = "(Unknown Sender)"


@dataclass(slots=True, frozen=True)
class MessageRecord:
    """One Gmail message as mirrored locally."""

    id: str
    subject: str = NO_SUBJECT
    sender: str = UNKNOWN_SENDER
    snippet: str = ""
    internal_date_ms: int = 0
    labels: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def received_at(self) -> datetime:
        return datetime.fromtimestamp(self.internal_date_ms / 1000, tz=timezone.utc)

    def has_label(self, label_id: str) -> bool:
        return label_id in self.labels
