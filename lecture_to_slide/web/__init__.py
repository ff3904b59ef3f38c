"""Web interface for Lecture to Slide."""

from .server import create_app

__all__ = ["create_app"]
