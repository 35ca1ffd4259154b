"""Visionary You: before/reference photo simulation backed by Gemini."""

__version__ = "1.0.0"
