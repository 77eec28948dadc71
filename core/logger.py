"""GroupkeeperLogger — process-wide JSON logger with console and rotating file output.

Every record is written as one JSON object per line to stdout and to
``logs/groupkeeper.log``.  Child loggers (``groupkeeper.store``,
``groupkeeper.provider`` …) share the same handlers through propagation.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional

_ROOT_NAME = "groupkeeper"


class _JsonFormatter(logging.Formatter):
    """Render a :class:`logging.LogRecord` as a single-line JSON object.

    Keys passed through ``extra=`` are merged into the payload, so call sites
    attach lookup context directly::

        logger.info("Cache miss", extra={"identifier": "alice", "source": "provider"})
    """

    _BUILTIN_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None,
    ))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func_name": record.funcName,
        }
        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and key not in entry:
                entry[key] = value
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class GroupkeeperLogger:
    """Singleton owner of the ``groupkeeper`` logger hierarchy.

    Usage::

        from core.logger import GroupkeeperLogger

        logger = GroupkeeperLogger.get_logger("resolver")
        logger.info("Resolved", extra={"identifier": "alice"})
    """

    _instance: Optional["GroupkeeperLogger"] = None
    _logger: Optional[logging.Logger] = None

    _LOG_FILE: str = "groupkeeper.log"
    _MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB
    _BACKUP_COUNT: int = 5

    def __new__(cls) -> "GroupkeeperLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._configure()
        return cls._instance

    def _configure(self) -> None:
        level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            level = logging.INFO

        self._logger = logging.getLogger(_ROOT_NAME)
        self._logger.setLevel(level)
        if self._logger.handlers:
            return

        formatter = _JsonFormatter()

        console = logging.StreamHandler()
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        log_dir = os.environ.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, self._LOG_FILE),
            maxBytes=self._MAX_BYTES,
            backupCount=self._BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    @staticmethod
    def get_logger(name: str | None = None) -> logging.Logger:
        """Return the root ``groupkeeper`` logger, or the child called *name*."""
        instance = GroupkeeperLogger()
        assert instance._logger is not None
        if name:
            return instance._logger.getChild(name)
        return instance._logger

    def cleanup(self) -> None:
        """Flush and detach every handler."""
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
