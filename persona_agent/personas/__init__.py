"""
Persona definitions.

Each persona file defines:
- name: Persona identifier
- prompt: Character instructions for the LLM
- greeting_text: First sentence spoken when the participant joins
"""
