"""
Structured JSON event emission.

Logs describe what the worker is doing; events describe what happened in a
conversation (a tool call, a sanitizer fallback, a failed session start) in a
fixed envelope that downstream tooling can filter on `event_type`.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, TextIO


class Component(str, Enum):
    """Event sources."""

    VOICE_AGENT = "voice_agent"
    TOOLS = "tools"
    SANITIZER = "sanitizer"


class Severity(str, Enum):
    """Event severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventEmitter:
    """Writes one JSON event per line."""

    def __init__(self, component: Component, stream: Optional[TextIO] = None):
        self.component = component
        # Resolved lazily so pytest's capsys sees the output
        self._stream = stream

    def emit(
        self,
        event_type: str,
        session_id: Optional[str] = None,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        session_id = session_id or "unknown"
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or session_id,
        }
        event.update(kwargs)

        stream = self._stream or sys.stdout
        stream.write(json.dumps(event, ensure_ascii=False, default=str))
        stream.write("\n")
        stream.flush()
        return event
