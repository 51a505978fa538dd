# ABOUTME: Facade that wires partner matching, study plans, content, and engagement together.
# ABOUTME: Re-exports MLEngine.

from .facade import MLEngine

__all__ = ["MLEngine"]
