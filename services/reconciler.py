from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Dict, List, Protocol

from models.message_record import MessageRecord
from services.mirror_store import MirrorStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_WORKERS = 10


class RemoteLister(Protocol):
    def list_message_ids(self, label_id: str, page_size: int) -> List[str]: ...

    def fetch_details(self, message_id: str) -> MessageRecord: ...


class Reconciler:
    """Mirror the messages carrying one label into the local store.

    A pass deletes local messages the remote no longer lists under the label,
    then fetches and upserts every listed message, overwriting stored fields.
    Passes for the same label are serialized.
    """

    def __init__(
        self,
        remote: RemoteLister,
        store: MirrorStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._remote = remote
        self._store = store
        self._page_size = page_size
        self._max_workers = max_workers
        self._label_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def synchronize(self, label_id: str) -> int:
        """Run one pass for ``label_id`` and return how many messages were new."""

        if not label_id:
            raise ValueError("label_id must be a non-empty string")
        with self._lock_for(label_id):
            return self._synchronize(label_id)

    def _lock_for(self, label_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._label_locks.setdefault(label_id, threading.Lock())

    def _synchronize(self, label_id: str) -> int:
        known_ids = frozenset(record.id for record in self._store.find_by_label(label_id))
        remote_ids = list(dict.fromkeys(self._remote.list_message_ids(label_id, self._page_size)))
        LOGGER.debug("Label %s: %s stored, %s listed remotely", label_id, len(known_ids), len(remote_ids))

        stale_ids = known_ids.difference(remote_ids)
        if stale_ids:
            self._store.delete_by_ids(sorted(stale_ids))
            LOGGER.info("Deleted %s outdated message(s) from the mirror", len(stale_ids))

        self._refresh(remote_ids)

        new_count = sum(1 for message_id in remote_ids if message_id not in known_ids)
        LOGGER.info("New messages added for label %s: %s", label_id, new_count)
        return new_count

    def _refresh(self, message_ids: List[str]) -> None:
        if not message_ids:
            return
        workers = min(self._max_workers, len(message_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mirror-sync") as executor:
            futures = [executor.submit(self._refresh_one, message_id) for message_id in message_ids]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            for future in futures:
                error = future.exception() if future in done else None
                if error is not None:
                    raise error

    def _refresh_one(self, message_id: str) -> None:
        record = self._remote.fetch_details(message_id)
        self._store.upsert(record)
