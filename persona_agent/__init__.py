"""
Persona voice agent.

Runs a character persona on LiveKit Agents: VAD -> STT -> LLM -> TTS.
Audio, turn-taking and barge-in live in the framework; this package owns the
persona prompt, the tools the model may call, and the text filter that runs
right before speech synthesis.
"""
