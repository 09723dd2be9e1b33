"""
Tests for the tool registry.

Tools run against a local aiohttp server standing in for wttr.in and the
Spotify webhook.
"""
import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as UpstreamServer

from persona_agent.config import AgentConfig
from persona_agent.errors import (
    InvalidToolArgumentsError,
    MalformedResponseError,
    UnknownToolError,
    UpstreamError,
)
from persona_agent.tools import (
    CurrentTrackArgs,
    CurrentTrackTool,
    ToolRegistry,
    WeatherArgs,
    WeatherTool,
    build_registry,
    weather_url,
)


@asynccontextmanager
async def upstream(*routes):
    """Serve (path, handler) GET routes; yields a URL builder."""
    app = web.Application()
    for path, handler in routes:
        app.router.add_get(path, handler)
    server = UpstreamServer(app)
    await server.start_server()
    try:
        yield lambda path: str(server.make_url(path))
    finally:
        await server.close()


def text_handler(body, status=200, seen=None):
    async def handler(request):
        if seen is not None:
            seen.append(request)
        return web.Response(text=body, status=status)
    return handler


def json_handler(payload, status=200):
    async def handler(request):
        return web.json_response(payload, status=status)
    return handler


def bytes_handler(body, status=200):
    async def handler(request):
        return web.Response(body=body, status=status)
    return handler


# --- weather ---


def test_weather_url_keeps_format_unencoded():
    url = weather_url("https://wttr.in", "Berlin", "%C+%t")

    assert str(url) == "https://wttr.in/Berlin?format=%C+%t"


def test_weather_url_quotes_location():
    url = weather_url("https://wttr.in/", "New York", "%C+%t")

    assert str(url) == "https://wttr.in/New%20York?format=%C+%t"


@pytest.mark.asyncio
async def test_weather_success():
    seen = []
    async with upstream(("/wttr/{location}", text_handler("Sunny +20°C\n", seen=seen))) as url:
        tool = WeatherTool(base_url=url("/wttr"), fmt="%C+%t")
        result = await tool.invoke(WeatherArgs(location="Berlin"))

    assert result == "The weather in Berlin right now is Sunny +20°C."
    assert seen[0].match_info["location"] == "Berlin"


@pytest.mark.asyncio
async def test_weather_upstream_error():
    async with upstream(("/wttr/{location}", text_handler("boom", status=500))) as url:
        tool = WeatherTool(base_url=url("/wttr"), fmt="%C+%t")
        with pytest.raises(UpstreamError) as excinfo:
            await tool.invoke(WeatherArgs(location="Nowhere"))

    assert excinfo.value.status == 500
    assert excinfo.value.tool == "weather"
    assert "500" in str(excinfo.value)


@pytest.mark.asyncio
async def test_weather_empty_body_is_malformed():
    async with upstream(("/wttr/{location}", text_handler("  \n"))) as url:
        tool = WeatherTool(base_url=url("/wttr"), fmt="%C+%t")
        with pytest.raises(MalformedResponseError):
            await tool.invoke(WeatherArgs(location="Berlin"))


@pytest.mark.asyncio
async def test_weather_undecodable_body_is_malformed():
    async with upstream(("/wttr/{location}", bytes_handler(b"Sunny \xff\xfe +20"))) as url:
        tool = WeatherTool(base_url=url("/wttr"), fmt="%C+%t")
        with pytest.raises(MalformedResponseError) as excinfo:
            await tool.invoke(WeatherArgs(location="Berlin"))

    assert excinfo.value.tool == "weather"


@pytest.mark.asyncio
async def test_weather_timeout():
    async def slow(request):
        await asyncio.sleep(0.5)
        return web.Response(text="too late")

    async with upstream(("/wttr/{location}", slow)) as url:
        tool = WeatherTool(base_url=url("/wttr"), fmt="%C+%t", timeout_seconds=0.05)
        with pytest.raises(UpstreamError) as excinfo:
            await tool.invoke(WeatherArgs(location="Berlin"))

    assert excinfo.value.status is None
    assert "timed out" in str(excinfo.value)


@pytest.mark.asyncio
async def test_weather_connection_refused():
    async with upstream() as url:
        base = url("/wttr")
    # Server is closed now
    tool = WeatherTool(base_url=base, fmt="%C+%t", timeout_seconds=2)
    with pytest.raises(UpstreamError) as excinfo:
        await tool.invoke(WeatherArgs(location="Berlin"))

    assert excinfo.value.status is None


def test_weather_args_reject_blank_location():
    tool = WeatherTool(base_url="https://wttr.in", fmt="%C+%t")

    with pytest.raises(InvalidToolArgumentsError):
        tool.validate({"location": "   "})
    with pytest.raises(InvalidToolArgumentsError):
        tool.validate({})

    assert tool.validate({"location": " Berlin "}).location == "Berlin"


# --- current track ---


@pytest.mark.asyncio
async def test_current_track_success():
    async with upstream(("/track", json_handler({"response": "Song X"}))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        result = await tool.invoke(CurrentTrackArgs())

    assert result == "The currently playing track on Spotify is Song X."


@pytest.mark.asyncio
async def test_current_track_upstream_error():
    async with upstream(("/track", json_handler({"error": "nope"}, status=503))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(UpstreamError) as excinfo:
            await tool.invoke(CurrentTrackArgs())

    assert excinfo.value.status == 503


@pytest.mark.asyncio
async def test_current_track_missing_field():
    async with upstream(("/track", json_handler({"track": "Song X"}))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(MalformedResponseError) as excinfo:
            await tool.invoke(CurrentTrackArgs())

    assert excinfo.value.field == "response"
    assert "undefined" not in str(excinfo.value)


@pytest.mark.asyncio
async def test_current_track_non_json_body():
    async with upstream(("/track", text_handler("<html>oops</html>"))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(MalformedResponseError):
            await tool.invoke(CurrentTrackArgs())


@pytest.mark.asyncio
async def test_current_track_json_list_is_malformed():
    async with upstream(("/track", json_handler(["Song X"]))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(MalformedResponseError):
            await tool.invoke(CurrentTrackArgs())


@pytest.mark.asyncio
async def test_current_track_undecodable_body_is_malformed():
    async with upstream(("/track", bytes_handler(b"\xff\xfe"))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(MalformedResponseError):
            await tool.invoke(CurrentTrackArgs())


@pytest.mark.asyncio
@pytest.mark.parametrize("value, spoken", [(5, "5"), (2.5, "2.5")])
async def test_current_track_numeric_response_is_spoken(value, spoken):
    async with upstream(("/track", json_handler({"response": value}))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        result = await tool.invoke(CurrentTrackArgs())

    assert result == f"The currently playing track on Spotify is {spoken}."


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [None, True, "   ", {"name": "Song X"}, ["Song X"]])
async def test_current_track_non_scalar_response_is_malformed(value):
    async with upstream(("/track", json_handler({"response": value}))) as url:
        tool = CurrentTrackTool(url=url("/track"))
        with pytest.raises(MalformedResponseError) as excinfo:
            await tool.invoke(CurrentTrackArgs())

    assert excinfo.value.field == "response"


# --- schemas ---


def test_weather_raw_schema():
    schema = WeatherTool(base_url="https://wttr.in", fmt="%C+%t").raw_schema()

    assert schema["type"] == "function"
    assert schema["name"] == "weather"
    assert "weather" in schema["description"].lower()
    params = schema["parameters"]
    assert params["type"] == "object"
    assert params["required"] == ["location"]
    assert params["properties"]["location"]["type"] == "string"
    assert params["properties"]["location"]["description"] == "The location to get the weather for"


def test_current_track_schema_has_no_parameters():
    params = CurrentTrackTool(url="https://example.invalid/track").parameters_schema()

    assert params["type"] == "object"
    assert params["properties"] == {}
    assert params["required"] == []


# --- registry ---


def test_build_registry_has_both_tools():
    registry = build_registry(AgentConfig())

    assert len(registry) == 2
    assert [name for name, _ in registry.describe()] == ["weather", "spotify_current_track"]
    assert "weather" in registry


def test_registry_rejects_duplicates():
    tool = CurrentTrackTool(url="https://example.invalid/track")

    with pytest.raises(ValueError):
        ToolRegistry([tool, tool])


def test_registry_unknown_tool():
    with pytest.raises(UnknownToolError):
        build_registry(AgentConfig()).get("teleport")


@pytest.mark.asyncio
async def test_registry_invoke_validates_before_calling(capsys):
    seen = []
    async with upstream(("/wttr/{location}", text_handler("Sunny", seen=seen))) as url:
        registry = ToolRegistry([WeatherTool(base_url=url("/wttr"), fmt="%C+%t")])
        with pytest.raises(InvalidToolArgumentsError):
            await registry.invoke("weather", {"location": ""})

    assert seen == []
    assert "tool.failed" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_registry_invoke_success_emits_events(capsys):
    async with upstream(("/wttr/{location}", text_handler("Cloudy +5°C"))) as url:
        registry = ToolRegistry([WeatherTool(base_url=url("/wttr"), fmt="%C+%t")])
        result = await registry.invoke("weather", {"location": "Oslo"}, session_id="room-7")

    assert result == "The weather in Oslo right now is Cloudy +5°C."
    out = capsys.readouterr().out
    assert "tool.invoked" in out
    assert "tool.succeeded" in out
    assert "room-7" in out


@pytest.mark.asyncio
async def test_registry_invoke_reraises_upstream_error(capsys):
    async with upstream(("/track", json_handler({}, status=500))) as url:
        registry = ToolRegistry([CurrentTrackTool(url=url("/track"))])
        with pytest.raises(UpstreamError):
            await registry.invoke("spotify_current_track")

    assert "tool.failed" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_registry_invoke_undecodable_body_emits_failed(capsys):
    async with upstream(("/wttr/{location}", bytes_handler(b"Sunny \xff\xfe +20"))) as url:
        registry = ToolRegistry([WeatherTool(base_url=url("/wttr"), fmt="%C+%t")])
        with pytest.raises(MalformedResponseError):
            await registry.invoke("weather", {"location": "Berlin"})

    out = capsys.readouterr().out
    assert "tool.invoked" in out
    assert "tool.failed" in out
    assert "tool.malformed_response" in out
