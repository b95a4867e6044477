"""Conversation layer: context assembly, generation and sessions."""
