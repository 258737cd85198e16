"""Rendering helpers for JS-dependent review pages."""

from .playwright_renderer import get_renderer, RenderRequest, RenderResult, PlaywrightRenderer

__all__ = ["get_renderer", "RenderRequest", "RenderResult", "PlaywrightRenderer"]
