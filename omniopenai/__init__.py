"""Clients and provider adapters for OpenAI audio and chat completion APIs."""

__version__ = "0.1.0"
__all__ = ["client", "stt", "tts", "llm"]