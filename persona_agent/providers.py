"""
Provider factories for the pipeline stages.

  1. VAD  (Silero)                   - loaded once per process in prewarm
  2. STT  (Deepgram | Groq Whisper)  - speech to text
  3. LLM  (OpenAI | Groq)            - language model
  4. TTS  (ElevenLabs | Azure)       - text to speech

Plugins read their own API keys from the environment (DEEPGRAM_API_KEY,
ELEVEN_API_KEY, ...) unless the config carries one explicitly.
"""
from livekit.plugins import azure, deepgram, elevenlabs, groq, openai, silero

from logging_setup import get_logger, Component

from .config import AgentConfig

logger = get_logger(Component.VOICE_AGENT)


def create_vad():
    logger.debug("VAD provider configured", provider="silero")
    return silero.VAD.load()


def create_stt(config: AgentConfig):
    if config.stt_provider == "groq":
        logger.debug("STT provider configured", provider="groq", model="whisper-large-v3")
        return groq.STT(model="whisper-large-v3", api_key=config.groq_api_key)

    logger.debug("STT provider configured", provider="deepgram")
    return deepgram.STT()


def create_llm(config: AgentConfig):
    if config.llm_provider == "groq":
        logger.debug("LLM provider configured", provider="groq", model=config.groq_model_llm)
        return groq.LLM(model=config.groq_model_llm, api_key=config.groq_api_key)

    logger.debug("LLM provider configured", provider="openai", model=config.openai_model)
    kwargs = {"model": config.openai_model}
    if config.openai_api_key:
        kwargs["api_key"] = config.openai_api_key
    return openai.LLM(**kwargs)


def create_tts(config: AgentConfig):
    if config.tts_provider == "azure":
        logger.debug(
            "TTS provider configured",
            provider="azure",
            voice=config.azure_speech_voice,
            region=config.azure_speech_region,
        )
        return azure.TTS(
            speech_key=config.azure_speech_key,
            speech_region=config.azure_speech_region,
            voice=config.azure_speech_voice,
        )

    logger.debug(
        "TTS provider configured",
        provider="elevenlabs",
        voice_id=config.elevenlabs_voice_id,
        model=config.elevenlabs_model,
    )
    return elevenlabs.TTS(
        voice_id=config.elevenlabs_voice_id,
        model=config.elevenlabs_model,
        voice_settings=elevenlabs.VoiceSettings(
            stability=config.elevenlabs_stability,
            similarity_boost=config.elevenlabs_similarity_boost,
            style=config.elevenlabs_style,
            use_speaker_boost=config.elevenlabs_speaker_boost,
        ),
    )
