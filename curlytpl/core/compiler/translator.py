# curlytpl/core/compiler/translator.py
"""
Turns raw template text into the source of a compiled artifact module.

The passes run in a fixed order: include splicing, nocache detection,
comment stripping, literal shielding, block and inline extraction, inline
substitution, parsing and finally code generation.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
import structlog

from curlytpl.util import short_hash
from . import preprocess
from .codegen import ArtifactGenerator
from .expressions import ExpressionTranslator
from .nodes import BlockDef, TemplateIR
from .parser import TemplateParser
from .registry import CompilerRegistry

log = structlog.get_logger(__name__)


@dataclass
class CompiledTemplate:
    code: str
    nocache: bool = False
    # registry keys of the block procedures this artifact defines
    blocks: List[str] = field(default_factory=list)
    globals: List[str] = field(default_factory=list)


def block_key(name: str, body: str, template_path: str) -> str:
    # identical name and body in two files still yields two distinct procedures.
    return f"{name}_{short_hash(body)}_{short_hash(template_path)}"


class DirectiveTranslator:
    """Compiles template text into artifact source.

    Args:
        registry: shared block table and global-name set.
        declared_globals: names resolved from the engine's globals instead of the variable map.
        find_source: maps an include name onto its raw path (or None).
        load_text: reads a raw template; None when unreadable.
        max_include_depth: bound on include and inline expansion rounds.
    """

    def __init__(
        self,
        registry: CompilerRegistry,
        declared_globals: Iterable[str],
        find_source: Callable[[str], Optional[Path]],
        load_text: Callable[[Path], Optional[bytes]],
        max_include_depth: int,
    ):
        self.registry = registry
        self.expressions = ExpressionTranslator(declared_globals, registry=registry)
        self.find_source = find_source
        self.load_text = load_text
        self.max_include_depth = max_include_depth

    def parse(
        self,
        source: str,
        template_path: str,
        nocache_enabled: bool = False,
        check_deadline: Optional[Callable[[], None]] = None,
        literals: Optional[preprocess.LiteralTable] = None,
    ) -> TemplateIR:
        literals = {} if literals is None else literals
        contents = preprocess.expand_includes(
            source, self.find_source, self.load_text, self.max_include_depth, check_deadline
        )
        contents, marked = preprocess.take_nocache_marker(contents)
        contents = preprocess.strip_comments(contents)
        contents = preprocess.shield_literals(contents, literals)

        blocks, inlines = preprocess.extract_functions(contents)
        contents = preprocess.remove_spans(contents, list(blocks.values()) + list(inlines.values()))
        contents = preprocess.substitute_inlines(contents, inlines, self.max_include_depth)

        keys: Dict[str, str] = {name: block_key(name, span.body, template_path) for name, span in blocks.items()}
        parser = TemplateParser(self.expressions, block_keys=keys, template=template_path)
        ir = TemplateIR(nocache=nocache_enabled and marked)
        for name, span in blocks.items():
            body = preprocess.substitute_inlines(span.body, inlines, self.max_include_depth)
            ir.blocks.append(BlockDef(name=name, key=keys[name], body=parser.parse(body)))
        ir.body = parser.parse(contents)
        if marked and not nocache_enabled:
            log.debug("nocache_marker_ignored", template=template_path)
        return ir

    def translate(
        self,
        source: str,
        template_path: str,
        nocache_enabled: bool = False,
        check_deadline: Optional[Callable[[], None]] = None,
    ) -> CompiledTemplate:
        literals: preprocess.LiteralTable = {}
        recorder = _GlobalsRecorder(self.registry)
        self.expressions.registry = recorder
        try:
            ir = self.parse(source, template_path, nocache_enabled, check_deadline, literals)
        finally:
            self.expressions.registry = self.registry
        code = ArtifactGenerator(literals).generate(ir, template_path, recorder.names)
        log.info(
            "template_translated",
            template=template_path,
            blocks=len(ir.blocks),
            globals=sorted(recorder.names),
            nocache=ir.nocache,
        )
        return CompiledTemplate(
            code=code,
            nocache=ir.nocache,
            blocks=[block.key for block in ir.blocks],
            globals=sorted(recorder.names),
        )


class _GlobalsRecorder:
    # forwards global names to the registry while remembering the ones this compile used.
    def __init__(self, registry: CompilerRegistry):
        self.registry = registry
        self.names = set()

    def record_globals(self, names: Iterable[str]) -> None:
        names = set(names)
        self.names.update(names)
        self.registry.record_globals(names)
