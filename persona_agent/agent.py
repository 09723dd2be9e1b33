"""
Persona voice agent: LiveKit worker entrypoint.

The framework calls:
- prewarm() once per worker process (loads Silero VAD)
- entrypoint() once per room: wires VAD/STT/LLM/TTS, registers the tools,
  installs the text sanitizer in front of TTS, starts the session and speaks
  the persona greeting.
"""
import asyncio
import time
from functools import partial
from typing import AsyncIterable, AsyncIterator, Optional

from livekit.agents import (
    Agent,
    AgentSession,
    AutoSubscribe,
    JobContext,
    JobProcess,
    ModelSettings,
    RoomInputOptions,
    WorkerOptions,
    cli,
    function_tool,
)
from livekit.agents.llm import ToolError

from logging_setup import get_logger, Component, setup_logging
from observability.events import Component as EventComponent, EventEmitter, Severity

from .config import AgentConfig, load_env_files
from .errors import SessionStartError, ToolInvocationError
from .persona import build_chat_context, build_instructions, load_persona
from .providers import create_llm, create_stt, create_tts, create_vad
from .sanitizer import sanitize, sanitize_stream
from .tools import ToolRegistry, build_registry

logger = get_logger(Component.VOICE_AGENT)
emitter = EventEmitter(EventComponent.VOICE_AGENT)

# Fire-and-forget tasks need a strong reference until they finish
_background_tasks: set = set()


def make_tool_handler(registry: ToolRegistry, name: str, session_id: Optional[str] = None):
    """
    Bridge a registry tool to livekit's raw function tool calling convention.

    Tool failures become ToolError, which livekit reports back to the model as
    a failed call instead of a crashed turn.
    """

    async def handler(raw_arguments: dict[str, object]) -> str:
        try:
            return await registry.invoke(name, raw_arguments, session_id=session_id)
        except ToolInvocationError as exc:
            raise ToolError(str(exc)) from exc

    handler.__name__ = name
    return handler


def build_llm_tools(registry: ToolRegistry, session_id: Optional[str] = None) -> list:
    return [
        function_tool(make_tool_handler(registry, tool.name, session_id), raw_schema=tool.raw_schema())
        for tool in registry
    ]


class PersonaAssistant(Agent):
    """Agent with the persona instructions, the registry tools and a sanitized TTS input."""

    def __init__(
        self,
        *,
        instructions: str,
        registry: ToolRegistry,
        buffer_tts_text: bool = True,
        session_id: Optional[str] = None,
    ) -> None:
        self.registry = registry
        self.buffer_tts_text = buffer_tts_text
        self.session_id = session_id
        super().__init__(
            instructions=instructions,
            tools=build_llm_tools(registry, session_id),
        )

    def prepare_tts_text(self, text: AsyncIterable[str]) -> AsyncIterator[str]:
        if self.buffer_tts_text:
            return self._buffered(text)
        return sanitize_stream(text, session_id=self.session_id)

    async def _buffered(self, text: AsyncIterable[str]) -> AsyncIterator[str]:
        cleaned = await sanitize(text, session_id=self.session_id)
        if cleaned:
            yield cleaned

    async def tts_node(self, text: AsyncIterable[str], model_settings: ModelSettings):
        async for frame in Agent.default.tts_node(self, self.prepare_tts_text(text), model_settings):
            yield frame


async def warmup_llm(llm_instance, instructions: str, session_logger) -> None:
    """Send a tiny request so the first real turn does not pay connection setup."""
    t_start = time.perf_counter()
    try:
        chat_ctx = build_chat_context(instructions)
        chat_ctx.add_message(role="user", content="Hi")
        async with llm_instance.chat(chat_ctx=chat_ctx) as stream:
            async for _ in stream:
                break
        session_logger.info(
            "LLM warmup completed",
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
    except Exception as e:
        session_logger.warning(
            "LLM warmup failed (non-fatal)",
            error=str(e),
            error_type=type(e).__name__,
        )


async def entrypoint(ctx: JobContext, config: AgentConfig):
    """Run one persona session in the job's room."""
    await ctx.connect(auto_subscribe=AutoSubscribe.AUDIO_ONLY)
    logger.info("Waiting for participant", room=ctx.room.name)
    participant = await ctx.wait_for_participant()

    session_id = ctx.room.name or "unknown"
    session_logger = logger.with_session(session_id)
    session_logger.info(
        "Starting persona agent",
        participant_identity=participant.identity,
        persona=config.persona,
    )

    registry = build_registry(config)
    persona = load_persona(config.persona)
    instructions = build_instructions(persona, registry.describe())

    vad = ctx.proc.userdata.get("vad") or create_vad()
    stt = create_stt(config)
    llm_instance = create_llm(config)
    tts = create_tts(config)

    if config.llm_warmup:
        task = asyncio.create_task(warmup_llm(llm_instance, instructions, session_logger))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    session = AgentSession(vad=vad, stt=stt, llm=llm_instance, tts=tts)
    agent = PersonaAssistant(
        instructions=instructions,
        registry=registry,
        buffer_tts_text=config.tts_buffer_text,
        session_id=session_id,
    )

    try:
        await session.start(
            room=ctx.room,
            agent=agent,
            room_input_options=RoomInputOptions(participant_identity=participant.identity),
        )
        await session.say(persona.greeting_text, allow_interruptions=True)
    except Exception as exc:
        # No retry: the participant hears nothing, the worker stays up.
        error = SessionStartError(f"Failed to start session: {exc}")
        session_logger.error(
            "Session start failed, continuing without greeting",
            error=str(exc),
            error_type=type(exc).__name__,
            error_category=error.category,
            exc_info=exc,
        )
        emitter.emit(
            "session.start_failed",
            session_id=session_id,
            severity=Severity.ERROR,
            error_category=error.category,
            error_type=type(exc).__name__,
        )
        return

    session_logger.debug("Agent session started")


def prewarm(proc: JobProcess):
    """Load the VAD model once per worker process."""
    proc.userdata["vad"] = create_vad()


def main() -> None:
    load_env_files()
    config = AgentConfig.from_env()
    setup_logging(level=config.log_level, use_json=config.log_json)

    cli.run_app(
        WorkerOptions(
            entrypoint_fnc=partial(entrypoint, config=config),
            prewarm_fnc=prewarm,
            agent_name=config.agent_name,
        )
    )
