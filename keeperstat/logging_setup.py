from __future__ import annotations

import json
import logging
import logging.handlers
import os
import queue
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path

from concurrent_log_handler import ConcurrentRotatingFileHandler

DEFAULT_LOG_LEVEL_NAME = "INFO"
ALLOWED_LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"})
DEFAULT_LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
CONSOLE_LOG_FORMAT = "[%(asctime)s.%(msecs)03dZ] %(levelname)s: %(message)s"
DEFAULT_LOG_FILE = "logs/debug.log"
DEFAULT_LOG_MAX_FILES_ROTATION = 4
DEFAULT_LOG_MAX_BYTES_ROTATION = 25 * 1024 * 1024
LOKI_APP_LABEL = "keeperstat"
LOKI_PUSH_PATH = "/loki/api/v1/push"
ROOT_LOGGER_NAME = "keeperstat"

_NOISY_LOGGERS = ("asyncio", "aiohttp", "httpx", "httpcore", "websockets", "urllib3")

_console_handler: logging.Handler | None = None
_file_handler: ConcurrentRotatingFileHandler | None = None
_loki_handler: logging.handlers.QueueHandler | None = None
_loki_listener: logging.handlers.QueueListener | None = None


def normalize_log_level_name(log_level: str | None) -> str:
    normalized = str(log_level or "").strip().upper()
    if normalized not in ALLOWED_LOG_LEVELS:
        return DEFAULT_LOG_LEVEL_NAME
    return normalized


def coerce_log_level(log_level: str | None) -> int:
    return cast_log_level(normalize_log_level_name(log_level))


def cast_log_level(level_name: str) -> int:
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        return logging.INFO
    return level


def create_console_handler(stream=None) -> logging.StreamHandler:
    formatter = logging.Formatter(fmt=CONSOLE_LOG_FORMAT, datefmt=DEFAULT_LOG_DATE_FORMAT)
    formatter.converter = time.gmtime
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    return handler


def create_rotating_file_handler(*, service_name: str, home_dir: str | Path) -> ConcurrentRotatingFileHandler:
    log_path = (Path(home_dir).expanduser() / DEFAULT_LOG_FILE).resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_name_length = 33 - len(service_name)
    formatter = logging.Formatter(
        fmt=(
            f"%(asctime)s.%(msecs)03d {service_name} %(name)-{file_name_length}s: "
            f"%(levelname)-8s %(message)s"
        ),
        datefmt=DEFAULT_LOG_DATE_FORMAT,
    )
    handler = ConcurrentRotatingFileHandler(
        os.fspath(log_path),
        "a",
        maxBytes=DEFAULT_LOG_MAX_BYTES_ROTATION,
        backupCount=DEFAULT_LOG_MAX_FILES_ROTATION,
        use_gzip=False,
    )
    handler.setFormatter(formatter)
    return handler


def build_loki_payload(record: logging.LogRecord, message: str, *, app_label: str = LOKI_APP_LABEL) -> dict:
    line = json.dumps(
        {
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        },
        separators=(",", ":"),
    )
    return {
        "streams": [
            {
                "stream": {"app": app_label, "level": record.levelname.lower()},
                "values": [[str(int(record.created * 1_000_000_000)), line]],
            }
        ]
    }


class LokiHandler(logging.Handler):
    """Mirrors log records as JSON lines to a Loki push endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        app_label: str = LOKI_APP_LABEL,
        timeout_seconds: float = 5.0,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        base = base_url.strip().rstrip("/")
        self.push_url = base if base.endswith(LOKI_PUSH_PATH) else f"{base}{LOKI_PUSH_PATH}"
        self.app_label = app_label
        self.timeout_seconds = timeout_seconds

    def emit(self, record: logging.LogRecord) -> None:
        try:
            payload = build_loki_payload(record, self.format(record), app_label=self.app_label)
            req = urllib.request.Request(
                self.push_url,
                data=json.dumps(payload).encode("utf-8"),
                method="POST",
                headers={"Content-Type": "application/json"},
            )
            with urllib.request.urlopen(req, timeout=self.timeout_seconds):
                return
        except (urllib.error.URLError, OSError, ValueError):
            self.handleError(record)


def create_loki_queue_handler(
    base_url: str,
) -> tuple[logging.handlers.QueueHandler, logging.handlers.QueueListener]:
    """Wrap `LokiHandler` so pushes run on a listener thread, not the caller's."""
    loki = LokiHandler(base_url)
    loki.setFormatter(logging.Formatter("%(message)s"))
    records: queue.SimpleQueue = queue.SimpleQueue()
    listener = logging.handlers.QueueListener(records, loki, respect_handler_level=True)
    return logging.handlers.QueueHandler(records), listener


def apply_level_to_root(*, effective_level: int, logger: logging.Logger, handler: logging.Handler | None) -> None:
    root_logger = logging.getLogger()
    if handler is not None:
        handler.setLevel(effective_level)
    for existing in root_logger.handlers:
        existing.setLevel(effective_level)
    root_logger.setLevel(effective_level)
    logger.setLevel(effective_level)


def configure_logging(
    *,
    log_level: str | None,
    home_dir: str | Path | None = None,
    file_logging: bool = False,
    loki_url: str | None = None,
    stream=None,
) -> logging.Logger:
    """Install the process-wide handlers once and (re)apply the level.

    Console output always goes to stdout. The rotating file handler and the
    Loki mirror are added only when requested and only once per process.
    """
    global _console_handler, _file_handler, _loki_handler, _loki_listener
    root_logger = logging.getLogger()
    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    effective_level = coerce_log_level(log_level)

    if _console_handler is None:
        _console_handler = create_console_handler(stream)
        root_logger.addHandler(_console_handler)
    if file_logging and home_dir is not None and _file_handler is None:
        _file_handler = create_rotating_file_handler(service_name="status", home_dir=home_dir)
        root_logger.addHandler(_file_handler)
    if loki_url and _loki_handler is None:
        _loki_handler, _loki_listener = create_loki_queue_handler(loki_url)
        _loki_listener.start()
        root_logger.addHandler(_loki_handler)

    apply_level_to_root(effective_level=effective_level, logger=app_logger, handler=_console_handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, effective_level))
    return app_logger


def flush_logging() -> None:
    """Drain queued Loki records and stop the listener thread."""
    global _loki_listener
    if _loki_listener is not None:
        _loki_listener.stop()
        _loki_listener = None


def reset_logging() -> None:
    global _console_handler, _file_handler, _loki_handler
    flush_logging()
    root_logger = logging.getLogger()
    for handler in (_console_handler, _file_handler, _loki_handler):
        if handler is None:
            continue
        root_logger.removeHandler(handler)
        handler.close()
    _console_handler = None
    _file_handler = None
    _loki_handler = None
