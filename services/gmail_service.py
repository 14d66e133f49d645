from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

import httplib2
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from models.label_record import LabelRecord
from models.message_record import MessageRecord
from services.auth_service import AuthService
from services.errors import RemoteUnavailable
from services.message_parser import parse_message
from utils.config import AppConfig

LOGGER = logging.getLogger(__name__)

REMOTE_ERRORS = (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OAuth2Error, OSError)


class GmailService:
    """Wrapper around the Gmail API for the operations we need."""

    def __init__(self, config: AppConfig, auth_service: AuthService):
        self._config = config
        self._auth_service = auth_service
        self._creds = None
        self._local = threading.local()
        self._creds_lock = threading.Lock()

    @property
    def user_id(self) -> str:
        return self._config.user_id

    @property
    def _client(self):
        # httplib2 transports are not thread-safe, so each worker thread builds its own client.
        client = getattr(self._local, "client", None)
        if client is None:
            with self._creds_lock:
                if self._creds is None:
                    self._creds = self._auth_service.authenticate()
            client = build("gmail", "v1", credentials=self._creds, cache_discovery=False)
            self._local.client = client
        return client

    def authenticate(self, force: bool = False) -> None:
        """Acquire fresh credentials and drop clients built with the old ones."""

        creds = self._execute("authenticate with Gmail", lambda: self._auth_service.authenticate(force=force))
        with self._creds_lock:
            self._creds = creds
            self._local = threading.local()

    def list_message_ids(self, label_id: str, page_size: int) -> List[str]:
        response = self._execute(
            f"list messages for label {label_id}",
            lambda: self._client.users()
            .messages()
            .list(userId=self.user_id, labelIds=[label_id], maxResults=page_size)
            .execute(),
        )
        messages = response.get("messages", [])
        LOGGER.info("Gmail lists %s message(s) under label %s", len(messages), label_id)
        return [message["id"] for message in messages]

    def fetch_details(self, message_id: str) -> MessageRecord:
        response = self._execute(
            f"fetch message {message_id}",
            lambda: self._client.users().messages().get(userId=self.user_id, id=message_id).execute(),
        )
        return parse_message(response)

    def list_labels(self) -> List[LabelRecord]:
        response = self._execute(
            "list labels",
            lambda: self._client.users().labels().list(userId=self.user_id).execute(),
        )
        labels = response.get("labels", [])
        LOGGER.debug("Fetched %s labels", len(labels))
        return [LabelRecord(id=label["id"], name=label.get("name", label["id"])) for label in labels]

    def _execute(self, action: str, call: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return call()
        except REMOTE_ERRORS as exc:
            LOGGER.error("Failed to %s: %s", action, exc)
            raise RemoteUnavailable(f"Failed to {action}: {exc}") from exc

