# src/market_wire/logging_utils.py
import json
import logging
import logging.handlers
import sys
import time
from typing import Any, Dict, Optional

from .config import Settings, get_settings

# Keys commonly present on a LogRecord that we don't want to echo as "extra"
_EXCLUDE_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


def _jsonify(value: Any) -> Any:
    """Return a JSON-serializable representation of `value`."""
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        # Merge any "extra" attributes that were added to the record
        for k, v in record.__dict__.items():
            if k not in _EXCLUDE_KEYS and k not in base and not k.startswith("_"):
                base[k] = _jsonify(v)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """Human-readable single-line log formatter with colourised levels."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",  # cyan
        "INFO": "\033[32m",  # green
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",  # red
        "CRITICAL": "\033[35m",  # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created))
        level = record.levelname
        extras: list[str] = []
        for k, v in record.__dict__.items():
            if k not in _EXCLUDE_KEYS and not k.startswith("_"):
                extras.append(f"{k}={_jsonify(v)}")
        extra_str = " " + " ".join(extras) if extras else ""
        colour = self.LEVEL_COLOURS.get(level, "")
        reset = self.RESET if colour else ""
        line = f"{ts} {colour}{level:<8}{reset} {record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line + extra_str


def setup_logging(level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """Configure logging for the market-wire service.

    When LOG_PLAIN is set the console output uses a human-readable single-line
    format with colourised levels; otherwise every console line is a JSON
    object.  Regardless of this setting, JSON logs are written to rotating
    files in ``<DATA_DIR>/logs``: ``bot.jsonl`` receives every record and
    ``errors.log`` receives WARNING and above.  Files rotate at 10MB and keep
    LOG_ROTATION_DAYS backups.  An explicit ``level`` overrides LOG_LEVEL.
    """
    settings = settings or get_settings()
    level_upper = (level or settings.log_level or "INFO").upper()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level_upper)

    try:
        log_dir = settings.data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        max_bytes = 10 * 1024 * 1024
        backup_count = max(1, settings.log_rotation_days)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "bot.jsonl",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "errors.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(JsonFormatter())
        root.addHandler(error_handler)
    except OSError as e:
        # Unwritable data dir: keep console logging only
        sys.stderr.write(f"log_file_setup_failed err={e}\n")

    stream_handler = logging.StreamHandler(sys.stdout)
    if settings.log_plain:
        stream_handler.setFormatter(PlainFormatter())
    else:
        stream_handler.setFormatter(JsonFormatter())
    root.addHandler(stream_handler)

    # Third-party clients are chatty at INFO
    for noisy in ("aiohttp.access", "urllib3", "tweepy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
