# curlytpl/core/context.py
"""
Per-render state: the shared variable map, the stack of active templates
and the limits that bound nested loads and render time.
"""
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple
import structlog

from curlytpl.exceptions import RenderTimeout, TemplateRenderError
from curlytpl.config.settings import DEFAULT_MAX_LOAD_DEPTH
from curlytpl.core.runtime import Undefined, Variables

log = structlog.get_logger(__name__)

CONCAT_MARKER = "."

Renderer = Callable[["RenderContext", List[str]], None]
# (context, template name) -> (artifact path, render function)
Opener = Callable[["RenderContext", str], Tuple[Path, Renderer]]


class RenderContext:
    """State shared by one top-level render and every template it loads.

    Nested loads push and pop the active template identity; the variable
    map is never copied, so loaded templates see and extend caller state.
    """

    def __init__(
        self,
        opener: Opener,
        max_load_depth: int = DEFAULT_MAX_LOAD_DEPTH,
        timeout: Optional[float] = None,
    ):
        self.opener = opener
        self.max_load_depth = max_load_depth
        self.deadline: Optional[float] = time.monotonic() + timeout if timeout else None
        self.vars = Variables()
        self.stack: List[Tuple[Optional[Path], Optional[str]]] = []
        self.filename: Optional[Path] = None
        self.source: Optional[str] = None

    def assign(self, key: Any, value: Any = "") -> None:
        if isinstance(key, Mapping):
            # a mapping of values; a non-empty value acts as a name prefix
            prefix = f"{value}_" if value else ""
            for sub_key, sub_value in key.items():
                self.vars[f"{prefix}{sub_key}"] = sub_value
            return

        key = str(key)
        if not key.startswith(CONCAT_MARKER):
            self.vars[key] = value
            return

        key = key[len(CONCAT_MARKER):]
        if key not in self.vars:
            self.vars[key] = value
            return
        current = self.vars[key]
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            self.vars[key] = {**current, **value}
        elif isinstance(current, list) and isinstance(value, (list, tuple)):
            self.vars[key] = current + list(value)
        else:
            self.vars[key] = f"{current}{value}"

    def get(self, key: str) -> Any:
        return self.vars.get(key, Undefined)

    def push(self) -> None:
        self.stack.append((self.filename, self.source))

    def pop(self) -> None:
        self.filename, self.source = self.stack.pop()

    def check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise RenderTimeout(f"render of '{self.source}' exceeded its time limit")

    def open(self, name: str) -> Renderer:
        # makes `name` the active template and returns its render function.
        self.filename, render = self.opener(self, name)
        self.source = name
        return render

    def load(self, name: Any, variables: Any, out: List[str]) -> None:
        """Renders another template into `out` in the middle of the current one."""
        self.check_deadline()
        if len(self.stack) >= self.max_load_depth:
            raise TemplateRenderError(f"load depth limit ({self.max_load_depth}) exceeded while loading '{name}'")
        if not name:
            raise TemplateRenderError(f"load target in '{self.source}' is empty")
        name = str(name)
        log.debug("template_load", template=name, parent=self.source, depth=len(self.stack) + 1)
        self.push()
        try:
            render = self.open(name)
            if variables is not self.vars:
                self.assign(variables)
            render(self, out)
        finally:
            self.pop()
