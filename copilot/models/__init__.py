"""Data models shared across the copilot service."""
