# curlytpl/core/compiler/codegen.py
"""
Python code generation for parsed templates.

Every template becomes one module: a header comment, the runtime helper
import, the block procedures it declares (registered on `_blocks` at import
time) and a `render(_ctx, _out)` function that appends text to `_out`.
"""
import textwrap
from typing import Dict, Iterable, List, Optional
import structlog

from curlytpl.exceptions import TemplateSyntaxError
from curlytpl.util import python_identifier
from .nodes import (
    BlockCall, BlockDef, Constant, For, Foreach, If, Load, Node, Output, Statement, TemplateIR, Text, While,
)
from .preprocess import LiteralTable, restore_literals

log = structlog.get_logger(__name__)

ARTIFACT_MARKER = "# curlytpl artifact"
NOCACHE_HEADER = "# nocache: "
RUNTIME_IMPORT = (
    "from curlytpl.core.runtime import to_text as _str, escape as _escape, upper as _upper, "
    "lower as _lower, not_empty as _not_empty, pairs as _pairs, values as _values, lookup as _get"
)
BUILTIN_FILTERS = {
    "upper": "_upper",
    "toupper": "_upper",
    "lower": "_lower",
    "tolower": "_lower",
    "escape": "_escape",
}
DEADLINE_CHECK = "_ctx.check_deadline()"


class CodeBuilder:
    """Accumulates source lines with managed indentation."""

    INDENT_STEP = 4

    def __init__(self, indent: int = 0):
        self.lines: List[str] = []
        self.indent_level = indent

    def add_line(self, line: str) -> None:
        self.lines.append(" " * self.indent_level + line if line else "")

    def add_lines(self, text: str) -> None:
        for line in textwrap.dedent(text).strip("\n").splitlines():
            self.add_line(line.rstrip())

    def indent(self) -> None:
        self.indent_level += self.INDENT_STEP

    def dedent(self) -> None:
        self.indent_level -= self.INDENT_STEP

    def __str__(self) -> str:
        return "\n".join(self.lines) + "\n"


def merge_text(nodes: Iterable[Node], literals: LiteralTable) -> List[Node]:
    # joins adjacent text runs, restores shielded literals and drops empty text.
    merged: List[Node] = []
    for node in nodes:
        if isinstance(node, Text):
            if merged and isinstance(merged[-1], Text):
                merged[-1] = Text(merged[-1].value + node.value)
            else:
                merged.append(Text(node.value))
        else:
            merged.append(node)
    result: List[Node] = []
    for node in merged:
        if isinstance(node, Text):
            value = restore_literals(node.value, literals)
            if value:
                result.append(Text(value))
        else:
            result.append(node)
    return result


def block_function_name(key: str) -> str:
    return "block_" + python_identifier(key)


class ArtifactGenerator:
    """Turns a TemplateIR into artifact source text.

    Args:
        literals: placeholder table filled by literal shielding for this compile.
    """

    def __init__(self, literals: Optional[LiteralTable] = None):
        self.literals: LiteralTable = dict(literals or {})
        self._temp_count = 0

    def generate(self, ir: TemplateIR, source_path: str, globals_used: Iterable[str] = ()) -> str:
        code = CodeBuilder()
        code.add_line(ARTIFACT_MARKER)
        code.add_line(f"# source: {source_path}")
        code.add_line(NOCACHE_HEADER + ("true" if ir.nocache else "false"))
        code.add_line(RUNTIME_IMPORT)
        code.add_line("")
        code.add_line(f"GLOBALS = {tuple(sorted(set(globals_used)))!r}")

        for block in ir.blocks:
            self._block(code, block)

        code.add_line("")
        code.add_line("")
        code.add_line("def render(_ctx, _out):")
        code.indent()
        code.add_line("_v = _ctx.vars")
        code.add_line("_write = _out.append")
        self._body(code, ir.body)
        code.dedent()

        source = str(code)
        try:
            compile(source, source_path, "exec")
        except SyntaxError as e:
            raise TemplateSyntaxError(f"generated code is not valid python: {e.msg}", template=source_path, line=e.lineno) from e
        log.debug("artifact_source_generated", source=source_path, lines=len(code.lines), blocks=len(ir.blocks))
        return source

    def _block(self, code: CodeBuilder, block: BlockDef) -> None:
        function_name = block_function_name(block.key)
        code.add_line("")
        code.add_line("")
        code.add_line(f"def {function_name}(_ctx, _v, _out):")
        code.indent()
        code.add_line("_write = _out.append")
        self._body(code, block.body)
        code.dedent()
        code.add_line("")
        code.add_line("")
        code.add_line(f"_blocks.define({block.key!r}, {function_name})")

    def _body(self, code: CodeBuilder, nodes: List[Node]) -> None:
        start = len(code.lines)
        for node in merge_text(nodes, self.literals):
            self._node(code, node)
        if len(code.lines) == start:
            code.add_line("pass")

    def _temp(self, prefix: str) -> str:
        self._temp_count += 1
        return f"_{prefix}{self._temp_count}"

    def _node(self, code: CodeBuilder, node: Node) -> None:
        if isinstance(node, Text):
            code.add_line(f"_write({node.value!r})")
        elif isinstance(node, Output):
            code.add_line(f"_write({self._output_expr(node)})")
        elif isinstance(node, Constant):
            code.add_line(f"_write(_str({node.name}))")
        elif isinstance(node, Load):
            code.add_line(f"_ctx.load({node.target}, _v, _out)")
        elif isinstance(node, BlockCall):
            code.add_line(f"_blocks.call({node.key!r}, _ctx, _v, _out)")
        elif isinstance(node, Statement):
            code.add_lines(node.code)
        elif isinstance(node, If):
            for i, branch in enumerate(node.branches):
                if branch.test is None:
                    code.add_line("else:")
                else:
                    code.add_line(f"{'if' if i == 0 else 'elif'} {branch.test}:")
                code.indent()
                self._body(code, branch.body)
                code.dedent()
        elif isinstance(node, Foreach):
            self._foreach(code, node)
        elif isinstance(node, For):
            code.add_line(f"for {node.target} in {node.iterable}:")
            self._loop_body(code, node.body)
        elif isinstance(node, While):
            code.add_line(f"while {node.test}:")
            self._loop_body(code, node.body)
        else:
            raise TypeError(f"unknown template node {type(node).__name__}")

    def _output_expr(self, node: Output) -> str:
        if node.filter is None:
            return f"_str({node.code})"
        helper = BUILTIN_FILTERS.get(node.filter)
        if helper is not None:
            return f"{helper}({node.code})"
        return f"_str({node.filter}({node.code}))"

    def _loop_body(self, code: CodeBuilder, body: List[Node]) -> None:
        code.indent()
        code.add_line(DEADLINE_CHECK)
        self._body(code, body)
        code.dedent()

    def _foreach(self, code: CodeBuilder, node: Foreach) -> None:
        target = node.key if node.value is None else f"{node.key}, {node.value}"
        if not node.guarded:
            iterable = f"_values({node.collection})" if node.value is None else f"_pairs({node.collection})"
            code.add_line(f"for {target} in {iterable}:")
            self._loop_body(code, node.body)
            return
        seq = self._temp("seq")
        code.add_line(f"{seq} = {node.collection}")
        code.add_line(f"if _not_empty({seq}):")
        code.indent()
        iterable = f"_values({seq})" if node.value is None else f"_pairs({seq})"
        code.add_line(f"for {target} in {iterable}:")
        self._loop_body(code, node.body)
        code.dedent()
        if node.empty is not None:
            code.add_line("else:")
            code.indent()
            self._body(code, node.empty)
            code.dedent()


def read_nocache_header(source: str) -> bool:
    # reads the nocache flag from the first lines of an artifact.
    for line in source.splitlines()[:4]:
        if line.startswith(NOCACHE_HEADER):
            return line[len(NOCACHE_HEADER):].strip() == "true"
    return False
