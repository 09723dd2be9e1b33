"""
Error taxonomy for the persona agent.

Each error carries a stable `category` string, used as the `error_category`
field in logs and events. Tool and sanitizer errors are contained where they
happen and never take the worker down.
"""
from typing import Optional


class PersonaAgentError(Exception):
    """Base class for all agent errors."""

    category = "agent.error"


class ConfigError(PersonaAgentError):
    """Configuration is missing or inconsistent."""

    category = "config.invalid"


class ToolInvocationError(PersonaAgentError):
    """A tool call failed. The model sees this as a failed call."""

    category = "tool.failed"

    def __init__(self, message: str, *, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool


class UpstreamError(ToolInvocationError):
    """
    The tool's HTTP call did not succeed.

    `status` is the HTTP status code, or None when no response was received
    (connection error, timeout).
    """

    category = "tool.upstream_error"

    def __init__(self, message: str, *, tool: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, tool=tool)
        self.status = status


class MalformedResponseError(ToolInvocationError):
    """The upstream answered 2xx but the body lacks what we need."""

    category = "tool.malformed_response"

    def __init__(self, message: str, *, tool: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, tool=tool)
        self.field = field


class InvalidToolArgumentsError(ToolInvocationError):
    """Arguments from the model failed schema validation."""

    category = "tool.invalid_arguments"


class UnknownToolError(ToolInvocationError):
    """The model asked for a tool that is not registered."""

    category = "tool.unknown"


class SanitizationError(PersonaAgentError):
    """Reading the generated text stream failed."""

    category = "sanitizer.failed"


class SessionStartError(PersonaAgentError):
    """Starting the agent session (or its greeting) against the room failed."""

    category = "session.start_failed"
