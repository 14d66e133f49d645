from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

LOG_FILE_NAME = "label_mirror.log"
# Google's discovery cache and pymongo's topology chatter drown out sync progress at INFO.
NOISY_LOGGERS = ("googleapiclient.discovery_cache", "googleapiclient.discovery", "pymongo")


def configure_logging(log_dir: Path, level: str = "INFO") -> Path:
    """Send everything at ``level`` to a rotating file; only warnings reach the terminal.

    The terminal is left to rich output, so the console handler stays at WARNING.
    """

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_FILE_NAME
    logging.config.dictConfig(_logging_config(log_path, level.upper()))
    logging.getLogger(__name__).debug("Sync log at %s (level %s)", log_path, level)
    return log_path


def _logging_config(log_path: Path, level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s",
            },
            "brief": {"format": "%(levelname)s: %(message)s"},
        },
        "handlers": {
            "sync_file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "detailed",
                "filename": str(log_path),
                "maxBytes": 1_000_000,
                "backupCount": 3,
                "encoding": "utf-8",
            },
            "terminal": {
                "class": "logging.StreamHandler",
                "formatter": "brief",
                "level": "WARNING",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        "root": {"handlers": ["sync_file", "terminal"], "level": level},
    }
