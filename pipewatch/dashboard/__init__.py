"""Textual renderer for pipewatch."""

from .app import PipewatchApp

__all__ = ["PipewatchApp"]
