# curlytpl/core/discovery/__init__.py
"""
Template path discovery.

Maps a requested template name onto the first search root that holds it,
either as raw source or as a previously compiled artifact.
"""
from .path_resolution import CompileLocation, PathResolver

__all__ = ["CompileLocation", "PathResolver"]
