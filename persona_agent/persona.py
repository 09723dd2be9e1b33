"""
Persona context: the system instruction and greeting for a session.

Personas are stored as YAML (JSON also parses, via PyYAML's safe_load) in
persona_agent/personas/. The instruction sent to the model is the persona
prompt plus two fixed parts:
- the list of tools the model may call
- the rule against the character the sanitizer strips
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml
from livekit.agents import llm

from logging_setup import get_logger, Component

from .sanitizer import FORBIDDEN_CHARACTER

logger = get_logger(Component.PERSONA)

DEFAULT_PROMPT = """
You are a friendly voice assistant. Keep answers short and conversational.
""".strip()

DEFAULT_GREETING = "Hi there, what can I do for you?"


@dataclass(frozen=True)
class Persona:
    name: str
    prompt: str
    greeting_text: str


def _get_personas_dir() -> Path:
    return Path(__file__).parent / "personas"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Persona file {path} must contain a mapping at top-level")
    return data


def _find_file(name: str, personas_dir: Path) -> Optional[Path]:
    for suffix in (".yaml", ".yml", ".json"):
        candidate = personas_dir / f"{name}{suffix}"
        if candidate.exists():
            return candidate
    return None


def load_persona(name: str = "rick", personas_dir: Optional[Path] = None) -> Persona:
    """
    Load a persona by name.

    Resolution order:
    1) <name>.yaml / .yml / .json
    2) default.yaml / .yml / .json
    3) built-in default
    """
    personas_dir = personas_dir or _get_personas_dir()

    path = _find_file(name, personas_dir)
    if path is None:
        logger.warning("Persona not found, using default", persona=name)
        path = _find_file("default", personas_dir)

    if path is None:
        return Persona(name="default", prompt=DEFAULT_PROMPT, greeting_text=DEFAULT_GREETING)

    data = _load_file(path)
    return Persona(
        name=data.get("name", path.stem),
        prompt=(data.get("prompt") or DEFAULT_PROMPT).strip(),
        greeting_text=(data.get("greeting_text") or DEFAULT_GREETING).strip(),
    )


def build_instructions(persona: Persona, tools: Iterable[Tuple[str, str]] = ()) -> str:
    """
    Persona prompt + available tools + the forbidden character rule.

    `tools` is (name, description) pairs, e.g. ToolRegistry.describe().
    """
    sections = [persona.prompt]

    tool_lines = [f"- {name}: {description}" for name, description in tools]
    if tool_lines:
        sections.append(
            "You can call these tools when they help answer the question:\n"
            + "\n".join(tool_lines)
        )

    sections.append(
        f'Never write the "{FORBIDDEN_CHARACTER}" character in your responses. '
        "The voice cannot pronounce it."
    )
    return "\n\n".join(sections)


def build_chat_context(instructions: str) -> llm.ChatContext:
    """A fresh conversation holding only the system instruction."""
    chat_ctx = llm.ChatContext()
    chat_ctx.add_message(role="system", content=instructions)
    return chat_ctx
