from __future__ import annotations

import logging

from services.gmail_service import GmailService
from services.mirror_store import MirrorStore
from services.reconciler import Reconciler

LOGGER = logging.getLogger(__name__)


class MirrorService:
    """Ties authentication, label refresh and synchronization together."""

    def __init__(self, gmail: GmailService, store: MirrorStore, reconciler: Reconciler):
        self._gmail = gmail
        self._store = store
        self._reconciler = reconciler

    def on_authenticated(self, label_id: str) -> int:
        """Replace the stored labels with Gmail's current set, then sync ``label_id``."""

        labels = self._gmail.list_labels()
        self._store.replace_labels(labels)
        LOGGER.info("Refreshed %s label(s) after authentication", len(labels))
        return self._reconciler.synchronize(label_id)

    def authenticate(self, label_id: str) -> int:
        self._gmail.authenticate(force=True)
        return self.on_authenticated(label_id)

    def synchronize(self, label_id: str) -> int:
        return self._reconciler.synchronize(label_id)
