from __future__ import annotations

import json
import logging
from typing import Iterable, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from utils.config import AppConfig

LOGGER = logging.getLogger(__name__)
SCOPES: Iterable[str] = ("https://www.googleapis.com/auth/gmail.readonly",)


class AuthService:
    """Read-only Gmail credentials backed by a token file.

    ``authenticate(force=True)`` is an authentication event: it ignores the
    cached token and always asks the user for consent again.
    """

    def __init__(self, config: AppConfig):
        self._config = config

    def authenticate(self, force: bool = False) -> Credentials:
        cached = None if force else self._cached()
        if cached is not None:
            if cached.valid:
                return cached
            if cached.expired and cached.refresh_token:
                LOGGER.info("Cached Gmail token expired at %s, refreshing", cached.expiry)
                cached.refresh(Request())
                return self._store(cached)
        return self._store(self._consent())

    def _cached(self) -> Optional[Credentials]:
        token_file = self._config.token_file
        if not token_file.exists():
            LOGGER.debug("No token at %s", token_file)
            return None
        info = json.loads(token_file.read_text(encoding="utf-8"))
        return Credentials.from_authorized_user_info(info, SCOPES)

    def _consent(self) -> Credentials:
        secrets = self._config.credentials_file
        LOGGER.info("Opening browser for Gmail consent with client secrets %s", secrets)
        flow = InstalledAppFlow.from_client_secrets_file(str(secrets), scopes=SCOPES)
        return flow.run_local_server(port=0, access_type="offline")

    def _store(self, creds: Credentials) -> Credentials:
        token_file = self._config.token_file
        token_file.parent.mkdir(parents=True, exist_ok=True)
        token_file.write_text(creds.to_json(), encoding="utf-8")
        LOGGER.debug("Wrote Gmail token to %s", token_file)
        return creds
