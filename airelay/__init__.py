"""Relay backend for chat, speech, transcription and image providers."""

__version__ = "0.1.0"
