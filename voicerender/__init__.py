"""Top-level package for VoiceRender.

This package turns narration scripts into speech markup, synthesizes bounded
chunks through a content-addressable cache, and stitches and masters the
result. The main entry point is `RenderService`.
"""

from .pipeline import RenderService

__all__ = ["RenderService", "__version__"]

__version__ = "0.1.0"
