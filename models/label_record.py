from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class LabelRecord:
    """Gmail label identifier and its display name."""

    id: str
    name: str
