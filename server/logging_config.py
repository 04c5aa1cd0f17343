"""
Structured logging configuration for the Phonics game server.

Provides:
- JSONFormatter for production (machine-readable logs)
- DevelopmentFormatter for local work (coloured, one line per record)
- Request-scoped context (request_id, session_id, game_code)
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Context variables for request-scoped data
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
game_code_var: ContextVar[Optional[str]] = ContextVar("game_code", default=None)

# Record attributes copied into JSON output when a caller passes them via extra=
_EXTRA_FIELDS = ("game_code", "game_id", "player_id", "session_id", "action")


def _context_value(record: logging.LogRecord, var: ContextVar, attr: str) -> Optional[str]:
    return var.get() or getattr(record, attr, None)


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.

    One JSON object per line, with context variables merged in.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for attr in _EXTRA_FIELDS:
            value = getattr(record, attr, None)
            if value:
                log_data[attr] = value

        # Context variables win over extras
        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id
        session_id = session_id_var.get()
        if session_id:
            log_data["session_id"] = session_id
        game_code = game_code_var.get()
        if game_code:
            log_data["game_code"] = game_code

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable formatter with colours and short context tags."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        context_parts = []
        request_id = _context_value(record, request_id_var, "request_id")
        if request_id:
            context_parts.append(f"req={request_id[:8]}")
        session_id = _context_value(record, session_id_var, "session_id")
        if session_id:
            context_parts.append(f"session={session_id[:8]}")
        game_code = _context_value(record, game_code_var, "game_code")
        if game_code:
            context_parts.append(f"game={game_code}")

        context = f" [{', '.join(context_parts)}]" if context_parts else ""
        output = (
            f"{timestamp} {color}{record.levelname:8}{reset} "
            f"{record.name}{context} - {record.getMessage()}"
        )

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        environment: Environment name (production uses JSON, else human-readable).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={level}, environment={environment}"
    )


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context.

    Usage:
        logger = get_logger(__name__)
        logger.with_context(game_code="ABCD", player_id="123").info("Player joined")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        """
        Create a new logger with additional context.

        Args:
            **kwargs: Context key-value pairs to add.

        Returns:
            New ContextLogger with combined context.
        """
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__).

    Returns:
        ContextLogger instance.
    """
    return ContextLogger(logging.getLogger(name))
