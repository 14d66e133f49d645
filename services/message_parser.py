from __future__ import annotations

import logging
import re
from typing import Any, Mapping, Optional, Sequence

from models.message_record import NO_SUBJECT, UNKNOWN_SENDER, MessageRecord
from services.errors import MalformedRecord

LOGGER = logging.getLogger(__name__)

_DISPLAY_NAME = re.compile(r"([^<]*)<")


def parse_message(response: Mapping[str, Any]) -> MessageRecord:
    """Build a MessageRecord from a ``users.messages.get`` response."""

    message_id = response.get("id")
    if not message_id:
        raise MalformedRecord("Message payload has no id")

    payload = response.get("payload")
    if not isinstance(payload, Mapping):
        raise MalformedRecord(f"Message {message_id} has no payload")
    headers = payload.get("headers", [])
    if not isinstance(headers, Sequence) or isinstance(headers, (str, bytes)):
        raise MalformedRecord(f"Message {message_id} has unreadable headers")

    subject = _first_header(headers, "Subject") or NO_SUBJECT
    sender = extract_sender(_first_header(headers, "From") or UNKNOWN_SENDER)

    try:
        internal_date_ms = int(response["internalDate"])
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedRecord(f"Message {message_id} has no usable internalDate") from exc

    return MessageRecord(
        id=message_id,
        subject=subject,
        sender=sender,
        snippet=response.get("snippet") or "",
        internal_date_ms=internal_date_ms,
        labels=frozenset(response.get("labelIds") or []),
    )


def extract_sender(from_header: str) -> str:
    """Return the display name of a ``Name <address>`` header, else the raw value."""

    match = _DISPLAY_NAME.match(from_header)
    if match:
        name = match.group(1).strip()
        if name:
            return name
    return from_header


def _first_header(headers: Sequence[Mapping[str, str]], name: str) -> Optional[str]:
    # Exact, case-sensitive match; first one wins.
    for header in headers:
        if not isinstance(header, Mapping):
            raise MalformedRecord(f"Header entry {header!r} is not a name/value mapping")
        if header.get("name") == name:
            return header.get("value")
    LOGGER.debug("Header %s not present", name)
    return None
