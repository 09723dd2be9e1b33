"""Conversation events shared by the agent, its tools and the sanitizer."""
