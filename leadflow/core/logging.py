"""
Logging setup for the API and the pass workers.

Production emits one JSON object per line; development uses a coloured
single-line format. Pass context given through `extra=` (channel,
execution_id, lead_id, task_name...) becomes top-level JSON keys.
"""
import json
import logging
import sys
from datetime import datetime, timezone

# Keys copied from `extra=` into JSON records
CONTEXT_KEYS = (
    "channel",
    "pass_name",
    "campaign_id",
    "execution_id",
    "lead_id",
    "task_name",
    "error_type",
    "total_failures",
)

QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "uvicorn.access", "asyncio")


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Coloured level names for the terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy so other handlers see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def setup_logging(config=None) -> None:
    """
    Configure the root logger from ENVIRONMENT and LOG_LEVEL.

    Args:
        config: Settings instance (default: the global settings)
    """
    if config is None:
        from leadflow.core.config import settings as config

    handler = logging.StreamHandler(sys.stdout)
    if config.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
