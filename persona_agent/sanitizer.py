"""
Text filter applied to model output right before speech synthesis.

The TTS voice reads "*" out loud (or chokes on it), and the model likes to
write stage directions such as *burp*. The persona prompt forbids the
character, but the model does not always comply, so it is stripped here on
every path.

Two shapes:
- sanitize(): string or async stream in, one string out. A stream is read to
  the end before anything is returned.
- sanitize_stream(): async stream in, async stream out, one fragment at a
  time. The agent's tts_node uses it only when TTS_BUFFER_TEXT=false.
"""
from typing import AsyncIterable, AsyncIterator, Optional, Union

from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter, Severity

from .errors import SanitizationError

FORBIDDEN_CHARACTER = "*"
FALLBACK_TEXT = "An error occurred while processing the text."

logger = get_logger(Component.SANITIZER)
emitter = EventEmitter(EventComponent.SANITIZER)

TextSource = Union[str, AsyncIterable[str]]


def strip_forbidden(text: str) -> str:
    """Remove every forbidden character; everything else is kept in order."""
    return text.replace(FORBIDDEN_CHARACTER, "")


def _report_failure(exc: Exception, *, session_id: Optional[str], consumed_chars: int) -> SanitizationError:
    error = SanitizationError(f"Failed to read generated text: {exc}")
    error.__cause__ = exc
    log = logger.with_session(session_id) if session_id else logger
    log.error(
        "Sanitizer fell back to fixed text",
        error=str(exc),
        error_type=type(exc).__name__,
        error_category=error.category,
        discarded_chars=consumed_chars,
        exc_info=exc,
    )
    emitter.emit(
        "sanitizer.fallback",
        session_id=session_id,
        severity=Severity.ERROR,
        error_category=error.category,
        error_type=type(exc).__name__,
    )
    return error


async def sanitize(source: TextSource, *, session_id: Optional[str] = None) -> str:
    """
    Strip the forbidden character from a string or a fragment stream.

    A stream is consumed to completion and joined in arrival order. If reading
    it fails, FALLBACK_TEXT is returned instead of a partial result.
    """
    if isinstance(source, str):
        return strip_forbidden(source)

    parts: list[str] = []
    consumed = 0
    try:
        async for fragment in source:
            consumed += len(fragment)
            parts.append(strip_forbidden(fragment))
    except Exception as exc:
        _report_failure(exc, session_id=session_id, consumed_chars=consumed)
        return FALLBACK_TEXT
    return "".join(parts)


async def sanitize_stream(
    fragments: AsyncIterable[str],
    *,
    session_id: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    Forward each fragment as soon as it arrives, minus the forbidden character.

    Fragments that are empty after stripping are dropped. On a read failure
    the fragments already forwarded stay spoken, FALLBACK_TEXT is yielded
    once and the stream ends.
    """
    forwarded = 0
    try:
        async for fragment in fragments:
            cleaned = strip_forbidden(fragment)
            if cleaned:
                forwarded += len(cleaned)
                yield cleaned
    except Exception as exc:
        _report_failure(exc, session_id=session_id, consumed_chars=forwarded)
        yield FALLBACK_TEXT
