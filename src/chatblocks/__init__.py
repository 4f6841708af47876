"""Structured rendering of streamed chat model output."""

__version__ = "0.1.0"
