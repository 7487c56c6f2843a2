# curlytpl/core/compiler/expressions.py
"""
Rewrites template expressions into explicit lookups on the render context.

`user.name` becomes `_get(_v['user'], 'name')`, `row.$col` becomes
`_get(_v['row'], _v['col'])` and `obj->title` keeps its attribute access while
`obj` itself is looked up. Declared globals stay bare names.

Expressions are lexed with the standard tokenizer by wrapping them in a
synthetic `if (...): pass` statement, so string literals, numbers and
operators are never mistaken for variable names.

Nested segments read through `_get` so a missing key yields Undefined.
Assignment targets (`store=True`) keep plain subscripts.
"""
import io
import keyword
import tokenize
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Tuple
import structlog

from curlytpl.exceptions import TemplateSyntaxError
from .registry import CompilerRegistry

log = structlog.get_logger(__name__)

CONTEXT_ALIAS = "_v"
LOOKUP_HELPER = "_get"
SIGIL = "$"
# same width as the sigil, so token columns in the masked text line up with the original.
SIGIL_MARK = "_"
MEMBER_ACCESS = "->"
WRAP_PREFIX = "if ("
WRAP_SUFFIX = "): pass\n"

_IGNORED_TOKEN_TYPES = {
    tokenize.NL, tokenize.NEWLINE, tokenize.COMMENT, tokenize.INDENT,
    tokenize.DEDENT, tokenize.ENDMARKER, tokenize.ENCODING,
}


@dataclass
class Translation:
    code: str
    variables: List[str] = field(default_factory=list)
    globals: List[str] = field(default_factory=list)
    # paths used with "->" member access
    objects: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Token:
    type: int
    string: str
    start: int
    end: int


@dataclass
class _PathRef:
    start: int
    end: int
    text: str
    # ("key", name) | ("index", int) | ("var", name)
    segments: List[Tuple[str, object]]
    object_qualified: bool = False

    @property
    def base(self) -> str:
        return str(self.segments[0][1])

    @property
    def name(self) -> str:
        # path text without the leading sigil; "$ab" and "ab" are the same variable.
        return self.text[len(SIGIL):] if self.text.startswith(SIGIL) else self.text


def sort_longest_first(names: Iterable[str]) -> List[str]:
    # longest first; equal lengths in reverse lexical order.
    return sorted(set(names), key=lambda s: (len(s), s), reverse=True)


def _mask_sigils(expr: str) -> Tuple[str, Set[int]]:
    chars = list(expr)
    offsets: Set[int] = set()
    for i, ch in enumerate(expr):
        if ch == SIGIL and i + 1 < len(expr) and (expr[i + 1].isalpha() or expr[i + 1] == "_"):
            chars[i] = SIGIL_MARK
            offsets.add(i)
    return "".join(chars), offsets


def _apply_replacements(text: str, replacements: List[Tuple[int, int, str]]) -> str:
    for start, end, new in sorted(replacements, key=lambda r: r[0], reverse=True):
        text = text[:start] + new + text[end:]
    return text


class ExpressionTranslator:
    """Translates one template expression at a time.

    Args:
        declared_globals: names bound outside the per-render context; never rewritten.
        registry: receives every global name that is actually referenced.
        context_alias: the local name compiled code uses for the variable map.
    """

    def __init__(
        self,
        declared_globals: Iterable[str] = (),
        registry: Optional[CompilerRegistry] = None,
        context_alias: str = CONTEXT_ALIAS,
    ):
        self.declared_globals = frozenset(declared_globals)
        self.registry = registry
        self.context_alias = context_alias

    def is_global(self, name: str) -> bool:
        return name in self.declared_globals

    def translate_expression(self, expr: str, store: bool = False) -> str:
        return self.translate(expr, store).code

    def translate(self, expr: str, store: bool = False) -> Translation:
        if not expr or not expr.strip():
            return Translation(expr)

        masked, sigils = _mask_sigils(expr)
        tokens = self._lex(expr, masked)
        refs, replacements = self._scan(expr, tokens, sigils)

        variables: Set[str] = set()
        globals_found: Set[str] = set()
        objects: Set[str] = set()
        for ref in refs:
            if ref.object_qualified:
                objects.add(ref.name)
            if not self.is_global(ref.base):
                variables.add(ref.name)
            replacements.append((ref.start, ref.end, self._lookup(ref.segments, globals_found, store)))

        code = _apply_replacements(expr, replacements)
        if globals_found and self.registry is not None:
            self.registry.record_globals(globals_found)

        translation = Translation(code, sort_longest_first(variables), sorted(globals_found), sort_longest_first(objects))
        log.debug("expression_translated", source=expr, code=code, variables=translation.variables)
        return translation

    def _lookup(self, segments: List[Tuple[str, object]], globals_found: Set[str], store: bool = False) -> str:
        base = str(segments[0][1])
        if self.is_global(base):
            globals_found.add(base)
            code = base
        else:
            code = f"{self.context_alias}[{base!r}]"
        for kind, value in segments[1:]:
            if kind == "index":
                key = str(value)
            elif kind == "var":
                key = self._lookup([("key", value)], globals_found)
            else:
                key = repr(value)
            code = f"{code}[{key}]" if store else f"{LOOKUP_HELPER}({code}, {key})"
        return code

    def _lex(self, expr: str, masked: str) -> List[_Token]:
        source = WRAP_PREFIX + masked + WRAP_SUFFIX
        line_starts = [0]
        for idx, ch in enumerate(source):
            if ch == "\n":
                line_starts.append(idx + 1)

        def offset(pos: Tuple[int, int]) -> int:
            row, col = pos
            return line_starts[row - 1] + col - len(WRAP_PREFIX)

        tokens: List[_Token] = []
        try:
            for tok in tokenize.generate_tokens(io.StringIO(source).readline):
                if tok.type in _IGNORED_TOKEN_TYPES:
                    continue
                start, end = offset(tok.start), offset(tok.end)
                if start < 0 or end > len(masked):
                    continue
                if tok.type == tokenize.ERRORTOKEN and tok.string.strip():
                    raise TemplateSyntaxError(f"cannot tokenize expression '{expr}' near '{tok.string}'")
                tokens.append(_Token(tok.type, tok.string, start, end))
        except (tokenize.TokenError, SyntaxError) as e:
            raise TemplateSyntaxError(f"cannot tokenize expression '{expr}': {e}") from e
        return tokens

    def _scan(self, expr: str, tokens: List[_Token], sigils: Set[int]) -> Tuple[List[_PathRef], List[Tuple[int, int, str]]]:
        refs: List[_PathRef] = []
        member_ops: List[Tuple[int, int, str]] = []
        depth = 0
        count = len(tokens)
        i = 0
        while i < count:
            tok = tokens[i]
            if tok.type == tokenize.OP:
                if tok.string in ("(", "[", "{"):
                    depth += 1
                elif tok.string in (")", "]", "}"):
                    depth -= 1
                elif tok.string == MEMBER_ACCESS:
                    member_ops.append((tok.start, tok.end, "."))
                i += 1
                continue
            if tok.type != tokenize.NAME or keyword.iskeyword(tok.string):
                i += 1
                continue
            prev = tokens[i - 1] if i > 0 else None
            if prev is not None and prev.type == tokenize.OP and prev.string in (".", MEMBER_ACCESS):
                # attribute of something that is not a variable path, e.g. "abc".upper
                i += 1
                continue

            sigiled = tok.start in sigils
            segments: List[Tuple[str, object]] = [("key", tok.string[1:] if sigiled else tok.string)]
            end = tok.end
            j = i + 1
            while j < count and tokens[j].start == end:
                nxt = tokens[j]
                if nxt.type == tokenize.OP and nxt.string == "." and j + 1 < count:
                    seg = tokens[j + 1]
                    if seg.start != nxt.end or seg.type != tokenize.NAME or keyword.iskeyword(seg.string):
                        break
                    if seg.start in sigils:
                        segments.append(("var", seg.string[1:]))
                    else:
                        segments.append(("key", seg.string))
                    end = seg.end
                    j += 2
                    continue
                if nxt.type == tokenize.NUMBER and nxt.string.startswith(".") and nxt.string[1:].isdigit():
                    segments.append(("index", int(nxt.string[1:])))
                    end = nxt.end
                    j += 1
                    continue
                break

            following = tokens[j] if j < count else None
            follows_op = following is not None and following.type == tokenize.OP
            plain_name = len(segments) == 1 and not sigiled
            if plain_name and follows_op and following.string == "(":
                # function call: resolved from builtins, globals or filters
                i = j
                continue
            if plain_name and depth > 0 and follows_op and following.string == "=":
                # keyword argument
                i = j
                continue

            refs.append(_PathRef(
                start=tok.start,
                end=end,
                text=expr[tok.start:end],
                segments=segments,
                object_qualified=follows_op and following.string == MEMBER_ACCESS,
            ))
            i = j
        return refs, member_ops
