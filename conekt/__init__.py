"""Conekt messaging core: conversations, messages, read state and live updates."""

__version__ = "0.1.0"
