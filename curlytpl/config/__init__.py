# curlytpl/config/__init__.py
"""Engine settings and TOML configuration loading."""
from .settings import CompileMode, EngineConfig

__all__ = ["CompileMode", "EngineConfig"]
