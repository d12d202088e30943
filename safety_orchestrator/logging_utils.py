"""Process-level logging setup for the CLI and HTTP entry points.

Library modules only ever call ``logging.getLogger(...)``; handlers are
attached here, once, by whoever owns the process.

Structured context travels in ``extra={"data": {...}}`` and is written to the
daily JSON-lines file with credentials redacted.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

REDACTED = "***"
SECRET_KEYS: frozenset[str] = frozenset({"apiKey", "api_key", "password", "token"})

PACKAGE_LOGGER = "safety_orchestrator"


def redact(data: Any) -> Any:
    """Shallow-copy a mapping with secret fields replaced."""
    if not isinstance(data, dict):
        return data
    return {k: (REDACTED if k in SECRET_KEYS and v else v) for k, v in data.items()}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, data."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "data": redact(getattr(record, "data", None)),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def log_file_path(log_dir: str | Path, day: datetime | None = None) -> Path:
    day = day or datetime.now()
    return Path(log_dir) / f"orchestrator_{day.strftime('%Y-%m-%d')}.log"


def configure_logging(level: str | int = "INFO", log_dir: str | Path | None = None) -> logging.Logger:
    """Attach console (and optionally JSON-lines file) handlers to the package logger.

    Calling it again replaces the handlers it added before.
    """
    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(level if isinstance(level, int) else level.upper())
    for handler in [h for h in root.handlers if getattr(h, "_safety_orchestrator", False)]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    console._safety_orchestrator = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if log_dir is not None:
        path = log_file_path(log_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        file_handler._safety_orchestrator = True  # type: ignore[attr-defined]
        root.addHandler(file_handler)

    return root
