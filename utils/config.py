from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


PROJECT_ROOT = Path(__file__).resolve().parent.parent

STORE_BACKENDS = ("sqlite", "mongo")
DEFAULT_CATEGORIES = ("SENT", "INBOX", "IMPORTANT", "STARRED", "CATEGORY_PERSONAL", "UNREAD")


@dataclass(slots=True)
class AppConfig:
    credentials_file: Path
    token_file: Path
    user_id: str
    label_id: Optional[str]
    label_name: Optional[str]
    page_size: int
    concurrency: int
    store_backend: str
    db_path: Path
    mongo_uri: str
    mongo_db_name: str
    display_categories: Tuple[str, ...]
    html_output: Path
    log_dir: Path
    log_level: str

    def require_label_id(self, override: Optional[str] = None) -> str:
        label_id = override or self.label_id
        if not label_id:
            raise ValueError("No label configured. Set SYNC_LABEL_ID or pass --label-id.")
        return label_id

    @property
    def display_title(self) -> str:
        return self.label_name or self.label_id or "Mirrored"


def _resolve_path(value: str | None, fallback: str) -> Path:
    candidate = Path(value or fallback)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return candidate


def _maybe_write_secret_file(target: Path, inline_value: str | None, b64_value: str | None) -> None:
    if not inline_value and not b64_value:
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    if inline_value:
        target.write_text(inline_value, encoding="utf-8")
        return
    try:
        decoded = base64.b64decode(b64_value or "", validate=True)
    except ValueError as exc:
        raise ValueError("Failed to decode base64 secret payload") from exc
    target.write_bytes(decoded)


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def _categories(raw: str | None) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_CATEGORIES
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_config(env_file: str | os.PathLike[str] | None = None) -> AppConfig:
    """Load configuration values from a .env file and environment variables."""

    if env_file:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    credentials_file = _resolve_path(os.getenv("GOOGLE_CLIENT_SECRETS"), "credentials.json")
    token_file = _resolve_path(os.getenv("GOOGLE_TOKEN_PATH"), "token.json")
    db_path = _resolve_path(os.getenv("DB_PATH"), "data/label_mirror.db")
    html_output = _resolve_path(os.getenv("HTML_OUTPUT"), "data/emails.html")
    log_dir = _resolve_path(os.getenv("LOG_DIR"), "logs")

    store_backend = os.getenv("STORE_BACKEND", "sqlite").strip().lower()
    if store_backend not in STORE_BACKENDS:
        raise ValueError(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {store_backend!r}")

    log_dir.mkdir(parents=True, exist_ok=True)
    if store_backend == "sqlite":
        db_path.parent.mkdir(parents=True, exist_ok=True)

    _maybe_write_secret_file(
        credentials_file,
        os.getenv("GOOGLE_CLIENT_SECRETS_JSON"),
        os.getenv("GOOGLE_CLIENT_SECRETS_B64"),
    )
    _maybe_write_secret_file(
        token_file,
        os.getenv("GOOGLE_TOKEN_JSON"),
        os.getenv("GOOGLE_TOKEN_B64"),
    )

    return AppConfig(
        credentials_file=credentials_file,
        token_file=token_file,
        user_id=os.getenv("GMAIL_USER_ID", "me"),
        label_id=os.getenv("SYNC_LABEL_ID") or None,
        label_name=os.getenv("SYNC_LABEL_NAME") or None,
        page_size=_positive_int("SYNC_PAGE_SIZE", 100),
        concurrency=_positive_int("SYNC_CONCURRENCY", 10),
        store_backend=store_backend,
        db_path=db_path,
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", "gmailManager"),
        display_categories=_categories(os.getenv("DISPLAY_CATEGORIES")),
        html_output=html_output,
        log_dir=log_dir,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
