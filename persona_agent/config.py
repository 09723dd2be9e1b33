"""
Persona agent configuration.

Built once at process start from environment variables and passed explicitly
into the entrypoint; nothing reads os.environ after that.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

STT_PROVIDERS = ("deepgram", "groq")
LLM_PROVIDERS = ("openai", "groq")
TTS_PROVIDERS = ("elevenlabs", "azure")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _clean_env(key: str) -> Optional[str]:
    """
    Read an env var, stripping inline comments and whitespace.

    "10  # seconds" -> "10"; empty or comment-only values -> None.
    """
    value = os.environ.get(key)
    if not value:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def _parse_float_env(key: str, default: float) -> float:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = _clean_env(key)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def load_env_files(root: Optional[Path] = None) -> list[Path]:
    """
    Load .env.local and .env from `root` (defaults to the repo root).

    Existing environment variables win; returns the files that were loaded.
    """
    root = root or Path(__file__).parent.parent
    loaded = []
    for name in (".env.local", ".env"):
        path = root / name
        if path.exists():
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded


@dataclass(frozen=True)
class AgentConfig:
    """Persona agent configuration."""

    # Persona / worker
    persona: str = "rick"
    agent_name: str = ""

    # Provider selection
    stt_provider: str = "deepgram"
    llm_provider: str = "openai"
    tts_provider: str = "elevenlabs"

    # LLM
    openai_model: str = "gpt-4o-mini"
    openai_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None  # alternate LLM/STT provider
    groq_model_llm: str = "llama-3.3-70b-versatile"

    # ElevenLabs TTS
    elevenlabs_voice_id: str = "mSlpiDqQhlhrEsCjwFkj"
    elevenlabs_model: str = "eleven_turbo_v2"
    elevenlabs_stability: float = 0.71
    elevenlabs_similarity_boost: float = 0.7
    elevenlabs_style: float = 0.7
    elevenlabs_speaker_boost: bool = True

    # Azure TTS
    azure_speech_key: Optional[str] = None
    azure_speech_region: Optional[str] = None
    azure_speech_voice: str = "en-US-GuyNeural"

    # Tools
    weather_base_url: str = "https://wttr.in"
    weather_format: str = "%C+%t"
    current_track_url: str = "https://millie.mpvt.io/webhook/agent/spotify/current_track"
    tool_timeout_seconds: float = 10.0

    # Behaviour
    tts_buffer_text: bool = True  # False: forward sanitized fragments as they arrive
    llm_warmup: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        if self.stt_provider not in STT_PROVIDERS:
            raise ConfigError(f"Unknown STT provider {self.stt_provider!r}, expected one of {STT_PROVIDERS}")
        if self.llm_provider not in LLM_PROVIDERS:
            raise ConfigError(f"Unknown LLM provider {self.llm_provider!r}, expected one of {LLM_PROVIDERS}")
        if self.tts_provider not in TTS_PROVIDERS:
            raise ConfigError(f"Unknown TTS provider {self.tts_provider!r}, expected one of {TTS_PROVIDERS}")
        if "groq" in (self.llm_provider, self.stt_provider) and not self.groq_api_key:
            raise ConfigError("Groq provider requested but GROQ_API_KEY is not set")
        if self.tts_provider == "azure" and not (self.azure_speech_key and self.azure_speech_region):
            raise ConfigError("Azure TTS requires AZURE_SPEECH_KEY and AZURE_SPEECH_REGION")
        if self.tool_timeout_seconds <= 0:
            raise ConfigError("TOOL_TIMEOUT_SECONDS must be positive")

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load configuration from environment variables."""
        defaults = cls.__dataclass_fields__
        return cls(
            persona=_clean_env("AGENT_PERSONA") or defaults["persona"].default,
            agent_name=_clean_env("LIVEKIT_AGENT_NAME") or "",
            stt_provider=(_clean_env("STT_PROVIDER") or "deepgram").lower(),
            llm_provider=(_clean_env("LLM_PROVIDER") or "openai").lower(),
            tts_provider=(_clean_env("TTS_PROVIDER") or "elevenlabs").lower(),
            openai_model=_clean_env("OPENAI_MODEL") or defaults["openai_model"].default,
            openai_api_key=_clean_env("OPENAI_API_KEY"),
            groq_api_key=_clean_env("GROQ_API_KEY"),
            groq_model_llm=_clean_env("GROQ_MODEL_LLM") or defaults["groq_model_llm"].default,
            elevenlabs_voice_id=_clean_env("ELEVENLABS_VOICE_ID") or defaults["elevenlabs_voice_id"].default,
            elevenlabs_model=_clean_env("ELEVENLABS_MODEL") or defaults["elevenlabs_model"].default,
            elevenlabs_stability=_parse_float_env("ELEVENLABS_STABILITY", 0.71),
            elevenlabs_similarity_boost=_parse_float_env("ELEVENLABS_SIMILARITY_BOOST", 0.7),
            elevenlabs_style=_parse_float_env("ELEVENLABS_STYLE", 0.7),
            elevenlabs_speaker_boost=_parse_bool_env("ELEVENLABS_SPEAKER_BOOST", True),
            azure_speech_key=_clean_env("AZURE_SPEECH_KEY"),
            azure_speech_region=_clean_env("AZURE_SPEECH_REGION"),
            azure_speech_voice=_clean_env("AZURE_SPEECH_VOICE") or defaults["azure_speech_voice"].default,
            weather_base_url=(_clean_env("WEATHER_BASE_URL") or defaults["weather_base_url"].default).rstrip("/"),
            # "%C+%t" contains no "#", but read it raw anyway: it is a format string
            weather_format=os.environ.get("WEATHER_FORMAT") or defaults["weather_format"].default,
            current_track_url=_clean_env("CURRENT_TRACK_URL") or defaults["current_track_url"].default,
            tool_timeout_seconds=_parse_float_env("TOOL_TIMEOUT_SECONDS", 10.0),
            tts_buffer_text=_parse_bool_env("TTS_BUFFER_TEXT", True),
            llm_warmup=_parse_bool_env("LLM_WARMUP", True),
            log_level=(_clean_env("LOG_LEVEL") or "INFO").upper(),
            log_json=_parse_bool_env("LOG_JSON", True),
        )
