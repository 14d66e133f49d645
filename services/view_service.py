from __future__ import annotations

import html
from typing import Dict, Iterable, List, Sequence

from models.label_record import LabelRecord
from models.message_record import MessageRecord

CATEGORY_RENAMES = {"CATEGORY_PERSONAL": "PERSONAL"}
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def categorize(
    messages: Iterable[MessageRecord],
    labels: Iterable[LabelRecord],
    categories: Sequence[str],
) -> Dict[str, List[MessageRecord]]:
    """Group messages under the display categories present in the stored label set.

    A message appears under every category whose label it carries.
    """

    messages = list(messages)
    known = {label.id: label for label in labels}
    grouped: Dict[str, List[MessageRecord]] = {}
    for category in categories:
        label = known.get(category)
        if label is None:
            continue
        name = CATEGORY_RENAMES.get(label.id, label.name)
        grouped[name] = [message for message in messages if message.has_label(label.id)]
    return grouped


def format_timestamp(record: MessageRecord) -> str:
    return record.received_at.astimezone().strftime(TIMESTAMP_FORMAT)


def render_html(title: str, categorized: Dict[str, List[MessageRecord]]) -> str:
    safe_title = html.escape(title)
    sections = "".join(_render_category(name, messages) for name, messages in categorized.items())
    if not sections:
        sections = f'<p>No emails found under the "{safe_title}" label.</p>'
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><meta charset=\"utf-8\"><title>{safe_title} Emails</title></head>\n"
        "<body>\n"
        f"<h1>{safe_title} Emails</h1>\n"
        f"{sections}\n"
        "</body>\n"
        "</html>\n"
    )


def _render_category(name: str, messages: List[MessageRecord]) -> str:
    items = "".join(
        "<li>"
        f"<strong>From:</strong> {html.escape(message.sender)}<br>"
        f"<strong>Subject:</strong> {html.escape(message.subject)}<br>"
        f"<strong>Timestamp:</strong> {html.escape(format_timestamp(message))}"
        "</li>"
        for message in messages
    )
    if not items:
        items = "<li>No emails in this category.</li>"
    return f"<h2>{html.escape(name)}</h2>\n<ul>{items}</ul>\n"
