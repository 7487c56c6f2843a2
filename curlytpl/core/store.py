# curlytpl/core/store.py
"""
Compiled-artifact cache: decides when a template must be recompiled, writes
artifacts through the file store and turns them into render functions.
"""
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
import structlog

from curlytpl.config.settings import EngineConfig
from curlytpl.exceptions import CompileWriteError, EmptySource, TemplateRenderError, TemplateSyntaxError
from curlytpl.core.compiler.codegen import read_nocache_header
from curlytpl.core.compiler.registry import CompilerRegistry
from curlytpl.core.compiler.translator import CompiledTemplate, DirectiveTranslator
from curlytpl.core.discovery.path_resolution import PathResolver
from curlytpl.core.filestore import FileStore

log = structlog.get_logger(__name__)

Renderer = Callable[[Any, list], None]


class CompiledArtifactStore:
    """Maps (root, template) pairs onto up-to-date compiled artifacts.

    `compile_count` counts artifact writes, so callers and tests can tell a
    cache hit from a recompilation.
    """

    def __init__(
        self,
        resolver: PathResolver,
        filestore: FileStore,
        translator: DirectiveTranslator,
        registry: CompilerRegistry,
        config: EngineConfig,
    ):
        self.resolver = resolver
        self.filestore = filestore
        self.translator = translator
        self.registry = registry
        self.config = config
        self.compile_count = 0
        self._renderers: Dict[Path, Tuple[int, Renderer]] = {}

    def is_stale(self, raw_path: Path, artifact_path: Path) -> bool:
        if not self.filestore.exists(artifact_path):
            return True
        if self.config.nocache and self._marked_nocache(artifact_path):
            log.debug("artifact_nocache_bypass", artifact=str(artifact_path))
            return True
        if not self.filestore.exists(raw_path):
            # precompiled deployment without sources
            return False
        return self.filestore.mod_time(raw_path) > self.filestore.mod_time(artifact_path)

    def _marked_nocache(self, artifact_path: Path) -> bool:
        data = self.filestore.load_text(artifact_path)
        return data is not None and read_nocache_header(data.decode("utf-8", errors="replace"))

    def ensure_compiled(self, root: Path, filename: str, check_deadline: Optional[Callable[[], None]] = None) -> Path:
        raw_path = self.resolver.raw_path(root, filename)
        artifact_path = self.resolver.artifact_path(root, filename)
        if self.is_stale(raw_path, artifact_path):
            self.compile(raw_path, artifact_path, check_deadline)
        else:
            log.debug("artifact_fresh", template=filename, artifact=str(artifact_path))
        return artifact_path

    def compile(self, raw_path: Path, artifact_path: Path, check_deadline: Optional[Callable[[], None]] = None) -> CompiledTemplate:
        data = self.filestore.load_text(raw_path)
        if not data:
            raise EmptySource(f"template source '{raw_path}' is empty or unreadable")
        source = data.decode("utf-8", errors="replace")

        compiled = self.translator.translate(source, str(raw_path), self.config.nocache, check_deadline)
        if not self.filestore.write_text(artifact_path, compiled.code.encode("utf-8")):
            raise CompileWriteError(f"could not write compiled artifact '{artifact_path}'")

        self.compile_count += 1
        self._renderers.pop(artifact_path, None)
        log.info("template_compiled", source=str(raw_path), artifact=str(artifact_path), count=self.compile_count)
        return compiled

    def _namespace(self, artifact_path: Path) -> Dict[str, Any]:
        namespace: Dict[str, Any] = {
            "__name__": "curlytpl_artifact",
            "__file__": str(artifact_path),
            "_blocks": self.registry,
        }
        namespace.update(self.config.filters)
        namespace.update(self.config.globals)
        namespace.update(self.config.constants)
        return namespace

    def load_renderer(self, artifact_path: Path) -> Renderer:
        mod_time = self.filestore.mod_time(artifact_path)
        cached = self._renderers.get(artifact_path)
        if cached is not None and cached[0] == mod_time:
            return cached[1]

        data = self.filestore.load_text(artifact_path)
        if data is None:
            raise TemplateRenderError(f"compiled artifact '{artifact_path}' cannot be read")
        try:
            code = compile(data.decode("utf-8"), str(artifact_path), "exec")
        except (SyntaxError, UnicodeDecodeError) as e:
            raise TemplateSyntaxError(f"compiled artifact is corrupt: {e}", template=str(artifact_path)) from e

        namespace = self._namespace(artifact_path)
        try:
            exec(code, namespace)
        except Exception as e:
            raise TemplateRenderError(f"loading artifact '{artifact_path}' failed: {e}") from e

        render = namespace.get("render")
        if not callable(render):
            raise TemplateRenderError(f"compiled artifact '{artifact_path}' defines no render function")
        undeclared = sorted(set(namespace.get("GLOBALS", ())) - set(self.config.globals))
        if undeclared:
            log.warning("artifact_globals_undeclared", artifact=str(artifact_path), names=undeclared)

        self._renderers[artifact_path] = (mod_time, render)
        log.debug("artifact_loaded", artifact=str(artifact_path))
        return render
