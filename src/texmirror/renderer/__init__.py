"""Renderer package."""

from .html_renderer import EmitResult, HTMLRenderer

__all__ = ["EmitResult", "HTMLRenderer"]
