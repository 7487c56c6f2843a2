# curlytpl/core/compiler/preprocess.py
"""
Textual passes applied to a template before it is parsed: include splicing,
nocache detection, comment stripping, literal shielding and block/inline
extraction. Each pass is a plain function over the template text.
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
import structlog

from curlytpl.exceptions import IncludeDepthError

log = structlog.get_logger(__name__)

INCLUDE_RE = re.compile(r"\{include (.*?)\}", re.S)
NOCACHE_TAG = "{*nocache*}"
COMMENT_RE = re.compile(r"\{\*.+?\*\}", re.S)
FUNCTION_RE = re.compile(r"\{(block|inline) ([a-zA-Z0-9_\-]+)\}(.*?)\{/\1\}", re.S)
INLINE_CALL_RE = re.compile(r"\{inline:([a-zA-Z0-9_\-]+)\}")
SCRIPT_RE = re.compile(r"(<script ([^>]+)>)(.*?)(</script>)", re.S)
LOAD_TAG_RE = re.compile(r"(\{load [^{}]+\})")
LITERAL_MARKERS = ("text/template", "text/x-jquery")
LITERAL_PLACEHOLDER = "[[{key}]]"

# scoped to one compile: placeholder key -> untouched text
LiteralTable = Dict[str, str]


@dataclass(frozen=True)
class FunctionSpan:
    kind: str  # "block" | "inline"
    name: str
    body: str
    source: str


def expand_includes(
    contents: str,
    find_source: Callable[[str], Optional[Path]],
    load_text: Callable[[Path], Optional[bytes]],
    max_depth: int,
    check_deadline: Optional[Callable[[], None]] = None,
) -> str:
    # splices {include NAME} repeatedly until none remain; missing files leave a marker comment.
    rounds = 0
    while True:
        names = list(dict.fromkeys(INCLUDE_RE.findall(contents)))
        if not names:
            return contents
        rounds += 1
        if rounds > max_depth:
            raise IncludeDepthError(f"include expansion exceeded depth {max_depth}; unresolved: {', '.join(names)}")
        if check_deadline is not None:
            check_deadline()
        for name in names:
            replacement = f"<!-- {name} -->"
            source_path = find_source(name.strip())
            if source_path is None:
                log.warning("include_not_found", include=name)
            else:
                data = load_text(source_path)
                if data is None:
                    log.warning("include_unreadable", include=name, path=str(source_path))
                else:
                    replacement = data.decode("utf-8", errors="replace")
                    log.debug("include_spliced", include=name, path=str(source_path))
            contents = contents.replace("{include " + name + "}", replacement)


def take_nocache_marker(contents: str) -> Tuple[str, bool]:
    return contents.replace(NOCACHE_TAG, ""), NOCACHE_TAG in contents


def strip_comments(contents: str) -> str:
    return COMMENT_RE.sub("", contents)


def shield_literals(contents: str, literals: LiteralTable) -> str:
    # script bodies typed as client-side templates are swapped for opaque keys.
    # {load} tags inside them stay live.
    def _swap(match: re.Match) -> str:
        open_tag, attributes, body, close_tag = match.groups()
        if not any(marker in attributes for marker in LITERAL_MARKERS):
            return match.group(0)
        parts = []
        for part in LOAD_TAG_RE.split(body):
            if not part or LOAD_TAG_RE.fullmatch(part):
                parts.append(part)
                continue
            key = f"{len(literals)}_literal"
            literals[key] = part
            parts.append(LITERAL_PLACEHOLDER.format(key=key))
        return open_tag + "".join(parts) + close_tag

    return SCRIPT_RE.sub(_swap, contents)


def restore_literals(text: str, literals: LiteralTable) -> str:
    for key, value in literals.items():
        text = text.replace(LITERAL_PLACEHOLDER.format(key=key), value)
    return text


def extract_functions(contents: str) -> Tuple[Dict[str, FunctionSpan], Dict[str, FunctionSpan]]:
    blocks: Dict[str, FunctionSpan] = {}
    inlines: Dict[str, FunctionSpan] = {}
    for match in FUNCTION_RE.finditer(contents):
        kind, name, body = match.groups()
        span = FunctionSpan(kind=kind, name=name, body=body.strip(), source=match.group(0))
        (blocks if kind == "block" else inlines)[name] = span
    return blocks, inlines


def remove_spans(contents: str, spans: List[FunctionSpan]) -> str:
    for span in spans:
        contents = contents.replace(span.source, "")
    return contents


def substitute_inlines(contents: str, inlines: Dict[str, FunctionSpan], max_rounds: int) -> str:
    # repeated so an inline body may itself call other inlines.
    rounds = 0
    while True:
        names = list(dict.fromkeys(INLINE_CALL_RE.findall(contents)))
        if not names:
            return contents
        rounds += 1
        if rounds > max_rounds:
            raise IncludeDepthError(f"inline expansion exceeded depth {max_rounds}; unresolved: {', '.join(names)}")
        for name in names:
            span = inlines.get(name)
            if span is None:
                log.warning("inline_not_declared", inline=name)
                replacement = ""
            else:
                replacement = span.body
            contents = contents.replace("{inline:" + name + "}", replacement)
