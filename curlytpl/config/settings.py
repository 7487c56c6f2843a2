import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import structlog

from curlytpl.exceptions import ConfigError

log = structlog.get_logger(__name__)

DEFAULT_TEMPLATE_PATHS = ["templates"]
DEFAULT_COMPILE_DIR = "compiled"
DEFAULT_VARIABLES: Dict[str, Any] = {"ldelim": "{", "rdelim": "}"}
DEFAULT_MAX_INCLUDE_DEPTH = 32
DEFAULT_MAX_LOAD_DEPTH = 32

CONSTANT_NAME_RE = re.compile(r"^_[a-zA-Z0-9_]+$")

class CompileMode(Enum):
    # where compiled artifacts live relative to their template root.
    RELATIVE = "relative"
    ABSOLUTE = "absolute"

    @classmethod
    def from_string(cls, s: Optional[str]) -> Optional["CompileMode"]:
        if not s:
            return None
        try:
            return cls(s.lower())
        except ValueError:
            log.warning("invalid_compile_mode_string", input_string=s)
            return None

    @classmethod
    def from_flag(cls, absolute: bool) -> "CompileMode":
        return cls.ABSOLUTE if absolute else cls.RELATIVE

@dataclass
class EngineConfig:
    # holds all configuration parameters for one engine instance.
    paths: List[Path] = field(default_factory=lambda: [Path(p) for p in DEFAULT_TEMPLATE_PATHS])
    compile_dir: str = DEFAULT_COMPILE_DIR
    compile_mode: CompileMode = CompileMode.RELATIVE
    defaults: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_VARIABLES))
    globals: Dict[str, Any] = field(default_factory=dict)
    constants: Dict[str, Any] = field(default_factory=dict)
    filters: Dict[str, Callable[[Any], Any]] = field(default_factory=dict)
    nocache: bool = False
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH
    max_load_depth: int = DEFAULT_MAX_LOAD_DEPTH
    render_timeout: Optional[float] = None

    def __post_init__(self):
        # normalizes values that may arrive as plain strings from toml or the cli.
        if not self.paths:
            self.paths = [Path(p) for p in DEFAULT_TEMPLATE_PATHS]
        self.paths = [Path(p) for p in self.paths]

        if isinstance(self.compile_mode, str):
            parsed = CompileMode.from_string(self.compile_mode)
            if parsed is None:
                raise ConfigError(f"unknown compile mode '{self.compile_mode}' (expected 'relative' or 'absolute')")
            self.compile_mode = parsed

        self.compile_dir = str(self.compile_dir).rstrip("/") or DEFAULT_COMPILE_DIR

        for name in self.constants:
            if not CONSTANT_NAME_RE.match(name):
                raise ConfigError(f"constant name '{name}' must start with '_' and contain only [A-Za-z0-9_]")
        for name in list(self.globals) + list(self.filters):
            if not name.isidentifier():
                raise ConfigError(f"'{name}' is not a valid identifier for a global or filter")

        if self.max_include_depth < 1 or self.max_load_depth < 1:
            raise ConfigError("max_include_depth and max_load_depth must be positive")
        if self.render_timeout is not None and self.render_timeout <= 0:
            raise ConfigError("render_timeout must be a positive number of seconds")

    @property
    def compile_absolute(self) -> bool:
        return self.compile_mode is CompileMode.ABSOLUTE

    def add_default(self, key: str, value: Any = "") -> None:
        # default variables are assigned at the start of every render.
        self.defaults[key] = value
