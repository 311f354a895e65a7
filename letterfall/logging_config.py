"""Logging bootstrap for the letterfall service."""
from __future__ import annotations

from logging.config import dictConfig
from pathlib import Path
from typing import Dict, Optional

# per-request loggers for the feed poller and preview clients
QUIET_LOGGERS: Dict[str, str] = {
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "uvicorn.access": "WARNING",
    "PIL": "INFO",
}


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None, retention_days: int = 14) -> None:
    """Console, a daily rotating runtime log, and a separate warnings-and-up log."""

    if log_dir is None:
        log_dir = Path(__file__).resolve().parents[1] / "logs"
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    level = level.upper()
    backups = max(int(retention_days), 1)

    def rotating(filename: str, handler_level: str) -> dict:
        return {
            "class": "logging.handlers.TimedRotatingFileHandler",
            "formatter": "default",
            "level": handler_level,
            "filename": str(log_dir / filename),
            "when": "midnight",
            "backupCount": backups,
            "utc": True,
            "delay": True,
            "encoding": "utf-8",
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                },
                "console": {
                    "format": "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
                    "datefmt": "%H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "console",
                    "level": level,
                },
                "runtime_file": rotating("letterfall-runtime.log", level),
                "error_file": rotating("letterfall-errors.log", "WARNING"),
            },
            "loggers": {name: {"level": lvl} for name, lvl in QUIET_LOGGERS.items()},
            "root": {"level": level, "handlers": ["console", "runtime_file", "error_file"]},
        }
    )


__all__ = ["configure_logging"]
