"""Conversation orchestration."""
