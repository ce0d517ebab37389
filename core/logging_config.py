"""
Root logger setup.

Modules log through ``logging.getLogger(__name__)`` and pass context with
``extra={...}``; both formatters below render those extras, as a nested
``extra`` object (JSON) or as trailing ``key=value`` pairs (human).
"""
import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

HUMAN_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s:%(lineno)d  %(message)s"
HUMAN_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        extra = _extra_fields(record)
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanFormatter(logging.Formatter):
    """Plain-text lines, level names colored when writing to a terminal."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = HUMAN_FORMAT, datefmt: str = HUMAN_DATEFMT, use_color: bool = False) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        # Copy: other handlers share the record
        record = logging.makeLogRecord(record.__dict__)
        if self.use_color and record.levelname in self.LEVEL_COLORS:
            record.levelname = f"{self.LEVEL_COLORS[record.levelname]}{record.levelname}{self.RESET}"
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += "  " + " ".join(f"{key}={value}" for key, value in extra.items())
        return line


def setup_logging(
    level: int | str = logging.INFO,
    json_output: bool = False,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Replace the root logger's handlers with a stdout handler and an optional rotating file.

    ``json_output`` only affects stdout; the file is always plain text.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(JSONFormatter() if json_output else HumanFormatter(use_color=sys.stdout.isatty()))
    handlers: list[logging.Handler] = [stdout]

    if log_file:
        rotating = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        rotating.setFormatter(HumanFormatter())
        handlers.append(rotating)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)

    # SQL echo is controlled by DATABASE_ECHO, not by the root level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return root
