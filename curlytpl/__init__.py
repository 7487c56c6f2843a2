# curlytpl/__init__.py
"""
curlytpl: a brace-directive template compiler.

Templates written with `{if}`, `{foreach}`, `{include}`, `{load}`, `{block}`
and `{var|filter}` directives are translated into Python modules, cached on
disk next to (or away from) their template roots, and re-executed per render.
"""
__version__ = "0.3.0"

from curlytpl.logging_setup import install_library_defaults

install_library_defaults()

from curlytpl.config.settings import CompileMode, EngineConfig
from curlytpl.core.engine import TemplateEngine
from curlytpl.core.compiler.registry import CompilerRegistry

__all__ = [
    "__version__",
    "CompileMode",
    "CompilerRegistry",
    "EngineConfig",
    "TemplateEngine",
]
