# curlytpl/core/compiler/parser.py
"""
Recursive-descent parser over preprocessed template text.

The text is split into literal runs and `{...}` tags; tags are classified
into control directives, statements, runtime calls, constants and value
interpolations. Anything that is none of these stays literal text.
"""
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple
import structlog

from curlytpl.exceptions import TemplateSyntaxError
from .expressions import ExpressionTranslator
from .nodes import (
    BlockCall, Branch, Constant, For, Foreach, If, Load, Node, Output, Statement, Text, While,
)

log = structlog.get_logger(__name__)

TAG_RE = re.compile(r"\{([^{}]*)\}")
CONSTANT_RE = re.compile(r"_[a-zA-Z0-9_]+")
BLOCK_CALL_PREFIX = "block:"

OPENERS = ("if", "elseif", "foreach", "for", "while", "eval", "eval_literal", "load")
CLOSERS = ("/if", "/foreach", "/for", "/while")
EMPTY_LIST_LITERAL = "[]"


@dataclass(frozen=True)
class _Piece:
    kind: str  # "text" | "tag"
    value: str
    offset: int
    raw: str


def directive_word(content: str) -> Optional[str]:
    # the control keyword a tag starts with, or None for anything else.
    if content == "else" or content in CLOSERS:
        return content
    head, sep, rest = content.partition(" ")
    if head in OPENERS and sep and rest.strip():
        return head
    return None


def strip_outer_parens(expr: str) -> str:
    expr = expr.strip()
    if expr.startswith("(") and expr.endswith(")"):
        return expr[1:-1].strip()
    return expr


def _compiles(code: str, mode: str) -> bool:
    try:
        compile(code, "<template>", mode)
    except (SyntaxError, ValueError):
        return False
    return True


class TemplateParser:
    """Builds the node list for one template (or one block body).

    Args:
        expressions: translator used for every expression a directive carries.
        block_keys: declared block name -> registry key, for `{block:NAME}` calls.
        template: template name used in error messages.
    """

    def __init__(
        self,
        expressions: ExpressionTranslator,
        block_keys: Optional[Dict[str, str]] = None,
        template: Optional[str] = None,
    ):
        self.expressions = expressions
        self.block_keys = dict(block_keys or {})
        self.template = template
        self._source = ""
        self._pieces: List[_Piece] = []
        self._pos = 0

    def parse(self, text: str) -> List[Node]:
        self._source = text
        self._pieces = self._split(text)
        self._pos = 0
        nodes, _ = self._parse_nodes(frozenset())
        return nodes

    def _split(self, text: str) -> List[_Piece]:
        pieces: List[_Piece] = []
        last = 0
        for match in TAG_RE.finditer(text):
            if match.start() > last:
                pieces.append(_Piece("text", text[last:match.start()], last, text[last:match.start()]))
            pieces.append(_Piece("tag", match.group(1), match.start(), match.group(0)))
            last = match.end()
        if last < len(text):
            pieces.append(_Piece("text", text[last:], last, text[last:]))
        return pieces

    def _line(self, piece: _Piece) -> int:
        return self._source.count("\n", 0, piece.offset) + 1

    def _fail(self, message: str, piece: _Piece):
        raise TemplateSyntaxError(message, template=self.template, line=self._line(piece))

    def _parse_nodes(self, stop: FrozenSet[str]) -> Tuple[List[Node], Optional[_Piece]]:
        nodes: List[Node] = []
        while self._pos < len(self._pieces):
            piece = self._pieces[self._pos]
            self._pos += 1
            if piece.kind == "text":
                nodes.append(Text(piece.value))
                continue
            word = directive_word(piece.value)
            if word in stop:
                return nodes, piece
            if word in CLOSERS or word in ("elseif", "else"):
                self._fail(f"'{{{piece.value}}}' without a matching opening directive", piece)
            nodes.append(self._directive(piece, word))
        return nodes, None

    def _expect(self, stop: FrozenSet[str], opener: _Piece) -> Tuple[List[Node], _Piece]:
        nodes, closer = self._parse_nodes(stop)
        if closer is None:
            self._fail(f"'{{{opener.value}}}' is never closed", opener)
        return nodes, closer

    def _translate(self, expr: str, piece: _Piece, mode: str = "eval", store: bool = False) -> str:
        expr = expr.replace("\n", " ").strip()
        try:
            code = self.expressions.translate_expression(expr, store=store)
        except TemplateSyntaxError as e:
            self._fail(str(e), piece)
        if not _compiles(code, mode):
            self._fail(f"invalid expression '{expr}'", piece)
        return code

    def _directive(self, piece: _Piece, word: Optional[str]) -> Node:
        content = piece.value
        if word == "if":
            return self._parse_if(piece)
        if word == "foreach":
            return self._parse_foreach(piece)
        if word == "for":
            return self._parse_for(piece)
        if word == "while":
            test = self._translate(content[len("while "):], piece)
            body, _ = self._expect(frozenset({"/while"}), piece)
            return While(test=test, body=body)
        if word == "eval":
            code = content[len("eval "):].strip().rstrip(";")
            return Statement(self._translate(code, piece, mode="exec", store=True))
        if word == "eval_literal":
            return Statement(content[len("eval_literal "):].strip().rstrip(";"))
        if word == "load":
            return self._parse_load(piece)
        if content.startswith(BLOCK_CALL_PREFIX):
            key = self.block_keys.get(content[len(BLOCK_CALL_PREFIX):])
            if key is None:
                log.debug("block_call_undeclared", tag=piece.raw, template=self.template)
                return Text(piece.raw)
            return BlockCall(key)
        if CONSTANT_RE.fullmatch(content):
            return Constant(content)
        return self._parse_output(piece)

    def _parse_if(self, piece: _Piece) -> If:
        node = If(branches=[Branch(test=self._translate(piece.value[len("if "):], piece))])
        while True:
            body, closer = self._expect(frozenset({"elseif", "else", "/if"}), piece)
            node.branches[-1].body = body
            word = directive_word(closer.value)
            if word == "/if":
                return node
            if node.branches[-1].test is None:
                self._fail(f"'{{{closer.value}}}' after '{{else}}'", closer)
            if word == "elseif":
                node.branches.append(Branch(test=self._translate(closer.value[len("elseif "):], closer)))
            else:
                node.branches.append(Branch(test=None))

    def _parse_foreach(self, piece: _Piece) -> Foreach:
        spec = strip_outer_parens(piece.value[len("foreach "):].replace("\n", " "))
        collection, sep, targets = spec.rpartition(" as ")
        if not sep or not collection.strip() or not targets.strip():
            self._fail(f"expected '{{foreach COLLECTION as KEY[=>VALUE]}}', got '{{{piece.value}}}'", piece)
        key, _, value = targets.partition("=>")
        collection = collection.strip()
        node = Foreach(
            collection=self._translate(collection, piece),
            key=self._translate(key, piece, store=True),
            value=self._translate(value, piece, store=True) if value.strip() else None,
            guarded=collection != EMPTY_LIST_LITERAL,
        )
        target = node.key if node.value is None else f"{node.key}, {node.value}"
        if not _compiles(f"for {target} in (): pass", "exec"):
            self._fail(f"foreach target '{targets.strip()}' is not assignable", piece)

        node.body, closer = self._expect(frozenset({"else", "/foreach"}), piece)
        if closer.value == "else":
            if not node.guarded:
                self._fail("'{else}' in a foreach over an empty list literal", closer)
            node.empty, _ = self._expect(frozenset({"/foreach"}), piece)
        return node

    def _parse_for(self, piece: _Piece) -> For:
        spec = strip_outer_parens(piece.value[len("for "):].replace("\n", " "))
        target, sep, iterable = spec.partition(" in ")
        if not sep:
            self._fail(f"expected '{{for TARGET in ITERABLE}}', got '{{{piece.value}}}'", piece)
        node = For(target=self._translate(target, piece, store=True), iterable=self._translate(iterable, piece))
        if not _compiles(f"for {node.target} in (): pass", "exec"):
            self._fail(f"for target '{target.strip()}' is not assignable", piece)
        node.body, _ = self._expect(frozenset({"/for"}), piece)
        return node

    def _parse_load(self, piece: _Piece) -> Load:
        name = piece.value[len("load "):].strip()
        if name.startswith("$"):
            return Load(self._translate(name, piece))
        return Load(repr(name))

    def _parse_output(self, piece: _Piece) -> Node:
        content = piece.value
        if not content or "\n" in content or content[0] == " ":
            return Text(piece.raw)
        expr, sep, name = content.rpartition("|")
        filter_name: Optional[str] = name.strip() if sep and expr.strip() and name.strip().isidentifier() else None
        if filter_name is None:
            expr = content
        try:
            code = self.expressions.translate_expression(expr.strip())
        except TemplateSyntaxError as e:
            log.debug("interpolation_left_verbatim", tag=piece.raw, reason=str(e))
            return Text(piece.raw)
        if not _compiles(code, "eval"):
            log.debug("interpolation_left_verbatim", tag=piece.raw, reason="not an expression")
            return Text(piece.raw)
        return Output(code=code, filter=filter_name)
