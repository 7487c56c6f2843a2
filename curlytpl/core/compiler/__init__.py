# curlytpl/core/compiler/__init__.py
"""
Directive compiler: expression rewriting, textual preprocessing passes,
parsing into an intermediate representation, and Python code generation.
"""
from .expressions import ExpressionTranslator, Translation
from .registry import CompilerRegistry
from .translator import CompiledTemplate, DirectiveTranslator

__all__ = [
    "CompiledTemplate",
    "CompilerRegistry",
    "DirectiveTranslator",
    "ExpressionTranslator",
    "Translation",
]
