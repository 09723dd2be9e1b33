"""
Shared logging infrastructure for the persona voice agent.

Every log line is a single JSON object so the worker output can be grepped or
shipped to a log aggregator without extra parsing.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Session ID correlation (one LiveKit room = one session)
- Component tagging
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Component(str, Enum):
    """Agent components for log tagging."""
    VOICE_AGENT = "voice_agent"
    PERSONA = "persona"
    TOOLS = "tools"
    SANITIZER = "sanitizer"
    CONFIG = "config"
    STT = "stt"
    LLM = "llm"
    TTS = "tts"
    VAD = "vad"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "taskName", "exc_info", "exc_text",
    "stack_info", "component", "session_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    Render a LogRecord as one JSON line.

    Output fields:
    - ISO8601 timestamp
    - severity
    - component (from the StructuredLogger, "unknown" for foreign loggers)
    - session_id if present
    - message plus any extra keyword fields
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "session_id"):
            log_data["session_id"] = record.session_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # default=str keeps exceptions and enums from breaking a log line
        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with keyword-style structured fields.

    Usage:
        logger = StructuredLogger(Component.TOOLS, session_id="room-abc")
        logger.info("Tool finished", tool="weather", latency_ms=120)
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(logger_name or f"persona_agent.{self.component}")

    def _log(self, level: int, message: str, **kwargs: Any):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {"component": self.component, **kwargs}
        if self.session_id:
            extra["session_id"] = self.session_id

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """
        Log an error message with exception info.

        Mirrors logging.Logger.exception so LiveKit internals can call it
        on this wrapper.
        """
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def with_session(self, session_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a session ID."""
        return StructuredLogger(
            self.component,
            session_id=session_id,
            logger_name=self.logger.name
        )


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    """
    Configure the root logger. Call once at worker startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: JSON lines (True) or a plain text format (False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if use_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(
    component: str | Component,
    session_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.SANITIZER)
        logger.warning("Fallback text used", error_type="RuntimeError")
    """
    return StructuredLogger(component, session_id=session_id)
