"""
Tools the language model may call mid-conversation.

Each tool pairs a pydantic argument model with one outbound HTTP GET and
returns a sentence the model can speak more or less verbatim. Arguments are
validated against the model before the tool runs, so `invoke()` only ever
sees well-typed input.

The set is fixed at startup by build_registry(): `weather` and
`spotify_current_track`.
"""
from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Iterator, Mapping, Optional
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from yarl import URL

from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter, Severity

from .config import AgentConfig
from .errors import (
    InvalidToolArgumentsError,
    MalformedResponseError,
    ToolInvocationError,
    UnknownToolError,
    UpstreamError,
)

logger = get_logger(Component.TOOLS)
emitter = EventEmitter(EventComponent.TOOLS)


class WeatherArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    location: str = Field(..., min_length=1, description="The location to get the weather for")


class CurrentTrackArgs(BaseModel):
    """No parameters."""


class Tool(ABC):
    """A named, described, schema-validated function exposed to the LLM."""

    name: ClassVar[str]
    description: ClassVar[str]
    args_model: ClassVar[type[BaseModel]]

    def __init__(self, *, timeout_seconds: float = 10.0):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def parameters_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments, as sent to the model."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        for prop in schema["properties"].values():
            prop.pop("title", None)
        return schema

    def raw_schema(self) -> dict[str, Any]:
        """OpenAI-style function schema for livekit's function_tool(raw_schema=...)."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema(),
        }

    def validate(self, raw_arguments: Optional[Mapping[str, Any]]) -> BaseModel:
        try:
            return self.args_model.model_validate(dict(raw_arguments or {}))
        except ValidationError as exc:
            raise InvalidToolArgumentsError(
                f"Invalid arguments for {self.name}: {exc.errors(include_url=False)}",
                tool=self.name,
            ) from exc

    async def _get(self, url: URL) -> tuple[int, str]:
        """
        One GET; returns (status, body).

        Transport failures become UpstreamError, an undecodable body becomes
        MalformedResponseError.
        """
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as resp:
                    status, raw, charset = resp.status, await resp.read(), resp.charset
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"{self.name} request timed out after {self.timeout.total}s",
                tool=self.name,
            ) from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(f"{self.name} request failed: {exc}", tool=self.name) from exc

        try:
            return status, raw.decode(charset or "utf-8")
        except (UnicodeDecodeError, LookupError) as exc:
            raise MalformedResponseError(
                f"{self.name} response body is not valid {charset or 'utf-8'} text",
                tool=self.name,
            ) from exc

    @abstractmethod
    async def invoke(self, args: Any) -> str:
        """Run the tool with validated arguments; returns a non-empty sentence."""


def weather_url(base_url: str, location: str, fmt: str) -> URL:
    """
    Build the wttr.in-style URL.

    The format string ("%C+%t") is sent exactly as written; wttr.in reads the
    raw query, so it must not be percent-encoded again.
    """
    return URL(f"{base_url.rstrip('/')}/{quote(location, safe='')}?format={fmt}", encoded=True)


class WeatherTool(Tool):
    name = "weather"
    description = "Use the Weather API to get the current or forecasted weather for a location"
    args_model = WeatherArgs

    def __init__(self, *, base_url: str, fmt: str, timeout_seconds: float = 10.0):
        super().__init__(timeout_seconds=timeout_seconds)
        self.base_url = base_url
        self.fmt = fmt

    async def invoke(self, args: WeatherArgs) -> str:
        status, body = await self._get(weather_url(self.base_url, args.location, self.fmt))
        if not 200 <= status < 300:
            raise UpstreamError(f"Weather API returned status: {status}", tool=self.name, status=status)
        weather = body.strip()
        if not weather:
            raise MalformedResponseError("Weather API returned an empty body", tool=self.name)
        return f"The weather in {args.location} right now is {weather}."


class CurrentTrackTool(Tool):
    name = "spotify_current_track"
    description = "Use Spotify to get the currently playing track"
    args_model = CurrentTrackArgs

    response_field = "response"

    def __init__(self, *, url: str, timeout_seconds: float = 10.0):
        super().__init__(timeout_seconds=timeout_seconds)
        self.url = url

    async def invoke(self, args: CurrentTrackArgs) -> str:
        status, body = await self._get(URL(self.url))
        if not 200 <= status < 300:
            raise UpstreamError(f"Spotify API returned status: {status}", tool=self.name, status=status)

        try:
            data = json.loads(body)
        except ValueError as exc:
            raise MalformedResponseError(
                "Spotify API returned a non-JSON body", tool=self.name
            ) from exc

        track = data.get(self.response_field) if isinstance(data, dict) else None
        # Numbers are spoken as-is; null, booleans and containers are not a track
        if isinstance(track, (int, float)) and not isinstance(track, bool):
            track = str(track)
        if not isinstance(track, str) or not track.strip():
            raise MalformedResponseError(
                f"Spotify API response has no {self.response_field!r} field",
                tool=self.name,
                field=self.response_field,
            )
        return f"The currently playing track on Spotify is {track.strip()}."


class ToolRegistry:
    """Fixed set of tools, keyed by name."""

    def __init__(self, tools: list[Tool]):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(f"No tool named {name!r}", tool=name) from None

    def describe(self) -> list[tuple[str, str]]:
        """(name, description) pairs in registration order."""
        return [(tool.name, tool.description) for tool in self]

    async def invoke(
        self,
        name: str,
        raw_arguments: Optional[Mapping[str, Any]] = None,
        *,
        session_id: Optional[str] = None,
    ) -> str:
        """Validate, then run a tool. Failures are logged and re-raised."""
        log = logger.with_session(session_id) if session_id else logger
        t_start = time.perf_counter()
        try:
            tool = self.get(name)
            args = tool.validate(raw_arguments)
            log.debug("Executing tool", tool=name, arguments=args.model_dump())
            emitter.emit("tool.invoked", session_id=session_id, tool=name)
            result = await tool.invoke(args)
        except ToolInvocationError as exc:
            latency_ms = int((time.perf_counter() - t_start) * 1000)
            log.warning(
                "Tool failed",
                tool=name,
                error=str(exc),
                error_type=type(exc).__name__,
                error_category=exc.category,
                status=getattr(exc, "status", None),
                latency_ms=latency_ms,
            )
            emitter.emit(
                "tool.failed",
                session_id=session_id,
                severity=Severity.WARN,
                tool=name,
                error_category=exc.category,
                status=getattr(exc, "status", None),
                latency_ms=latency_ms,
            )
            raise

        latency_ms = int((time.perf_counter() - t_start) * 1000)
        log.info("Tool succeeded", tool=name, latency_ms=latency_ms)
        emitter.emit("tool.succeeded", session_id=session_id, tool=name, latency_ms=latency_ms)
        return result


def build_registry(config: AgentConfig) -> ToolRegistry:
    """The two tools, wired from configuration."""
    return ToolRegistry([
        WeatherTool(
            base_url=config.weather_base_url,
            fmt=config.weather_format,
            timeout_seconds=config.tool_timeout_seconds,
        ),
        CurrentTrackTool(
            url=config.current_track_url,
            timeout_seconds=config.tool_timeout_seconds,
        ),
    ])
