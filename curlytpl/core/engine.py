# curlytpl/core/engine.py
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple
import structlog

from curlytpl.config.settings import EngineConfig
from curlytpl.core.compiler.registry import CompilerRegistry
from curlytpl.core.compiler.translator import DirectiveTranslator
from curlytpl.core.context import RenderContext, Renderer
from curlytpl.core.discovery.path_resolution import CompileLocation, PathResolver
from curlytpl.core.filestore import FileStore, LocalFileStore
from curlytpl.core.store import CompiledArtifactStore
from curlytpl.exceptions import CurlyTplError, TemplateNotFound, TemplateRenderError

log = structlog.get_logger(__name__)


class TemplateEngine:
    """Entry point for compiling and rendering templates.

    One engine owns one block registry, one artifact store and a set of
    persistent assignments that are applied to every render after the
    configured defaults.

    Example:
        engine = TemplateEngine(EngineConfig(paths=["templates"]))
        engine.render("hello.tpl", {"name": "World"})
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: Optional[CompilerRegistry] = None,
        filestore: Optional[FileStore] = None,
    ):
        self.config = config
        self.registry = registry if registry is not None else CompilerRegistry()
        self.filestore = filestore if filestore is not None else LocalFileStore()
        self.log = structlog.get_logger(f"{__name__}.{self.__class__.__name__}")

        location = CompileLocation(config.compile_dir, config.compile_mode)
        self.resolver = PathResolver(config.paths, location, self.filestore)
        self.translator = DirectiveTranslator(
            self.registry,
            declared_globals=config.globals,
            find_source=self.resolver.find_source,
            load_text=self.filestore.load_text,
            max_include_depth=config.max_include_depth,
        )
        self.store = CompiledArtifactStore(self.resolver, self.filestore, self.translator, self.registry, config)
        self._assignments: List[Tuple[Any, Any]] = []

    def assign(self, key: Any, value: Any = "") -> None:
        # recorded and replayed on every render, after the defaults.
        self._assignments.append((key, value))

    def add_default(self, key: str, value: Any = "") -> None:
        self.config.add_default(key, value)

    def _root(self, name: str) -> Path:
        root = self.resolver.find(name)
        if root is None:
            raise TemplateNotFound(
                f"template '{name}' not found in any search path: {', '.join(str(p) for p in self.resolver.paths)}"
            )
        return root

    def _open(self, ctx: RenderContext, name: str) -> Tuple[Path, Renderer]:
        artifact_path = self.store.ensure_compiled(self._root(name), name, ctx.check_deadline)
        return artifact_path, self.store.load_renderer(artifact_path)

    def new_context(self, variables: Optional[Mapping[str, Any]] = None) -> RenderContext:
        ctx = RenderContext(self._open, self.config.max_load_depth, self.config.render_timeout)
        for key, value in self.config.defaults.items():
            ctx.assign(key, value)
        for key, value in self._assignments:
            ctx.assign(key, value)
        if variables:
            ctx.assign(dict(variables))
        return ctx

    def render(self, name: str, variables: Optional[Mapping[str, Any]] = None) -> str:
        ctx = self.new_context(variables)
        out: List[str] = []
        self.log.debug("render_started", template=name)
        try:
            render = ctx.open(name)
            render(ctx, out)
        except CurlyTplError:
            raise
        except Exception as e:
            raise TemplateRenderError(f"rendering '{name}' failed: {type(e).__name__}: {e}") from e
        result = "".join(out)
        self.log.info("render_finished", template=name, chars=len(result), compiles=self.store.compile_count)
        return result

    def compile(self, name: str) -> Path:
        # brings the artifact up to date without rendering it.
        return self.store.ensure_compiled(self._root(name), name)

    def compiled_source(self, name: str) -> str:
        artifact_path = self.compile(name)
        data = self.filestore.load_text(artifact_path)
        if data is None:
            raise TemplateRenderError(f"compiled artifact '{artifact_path}' cannot be read")
        return data.decode("utf-8")

