from pathlib import Path

import pytest

from curlytpl.core.compiler import preprocess
from curlytpl.exceptions import IncludeDepthError


def _sources(files):
    # in-memory stand-ins for the resolver and file store.
    def find_source(name):
        return Path(name) if name in files else None

    def load_text(path):
        return files[str(path)].encode("utf-8")

    return find_source, load_text


def test_includes_are_spliced_recursively():
    find_source, load_text = _sources({"header.tpl": "<h1>{include title.tpl}</h1>", "title.tpl": "{title}"})
    result = preprocess.expand_includes("{include header.tpl}body", find_source, load_text, max_depth=5)
    assert result == "<h1>{title}</h1>body"


def test_missing_include_leaves_marker_comment():
    find_source, load_text = _sources({})
    result = preprocess.expand_includes("a{include missing.tpl}b", find_source, load_text, max_depth=5)
    assert result == "a<!-- missing.tpl -->b"


def test_self_include_hits_depth_limit():
    find_source, load_text = _sources({"loop.tpl": "x{include loop.tpl}"})
    with pytest.raises(IncludeDepthError):
        preprocess.expand_includes("{include loop.tpl}", find_source, load_text, max_depth=3)


def test_include_rounds_check_the_deadline():
    calls = []
    find_source, load_text = _sources({"a.tpl": "A"})
    preprocess.expand_includes("{include a.tpl}", find_source, load_text, 5, check_deadline=lambda: calls.append(1))
    assert calls == [1]


def test_nocache_marker_is_detected_and_removed():
    assert preprocess.take_nocache_marker("{*nocache*}hello") == ("hello", True)
    assert preprocess.take_nocache_marker("hello") == ("hello", False)


def test_comments_are_stripped_across_lines():
    assert preprocess.strip_comments("a{* one\ntwo *}b{* x *}c") == "abc"


def test_only_template_scripts_are_shielded():
    literals = {}
    text = (
        '<script type="text/template">{not.a.directive}</script>'
        '<script type="text/javascript">{kept}</script>'
    )
    shielded = preprocess.shield_literals(text, literals)
    assert "{not.a.directive}" not in shielded
    assert "{kept}" in shielded
    assert literals == {"0_literal": "{not.a.directive}"}
    assert preprocess.restore_literals(shielded, literals) == text


def test_blocks_and_inlines_are_extracted_with_trimmed_bodies():
    text = "{block nav-bar}\n  <nav>{title}</nav>\n{/block}{inline sig} -- {name} {/inline}rest"
    blocks, inlines = preprocess.extract_functions(text)
    assert list(blocks) == ["nav-bar"]
    assert blocks["nav-bar"].body == "<nav>{title}</nav>"
    assert inlines["sig"].body == "-- {name}"
    stripped = preprocess.remove_spans(text, list(blocks.values()) + list(inlines.values()))
    assert stripped == "rest"


def test_inline_calls_are_substituted_repeatedly():
    _, inlines = preprocess.extract_functions("{inline a}[{inline:b}]{/inline}{inline b}B{/inline}")
    assert preprocess.substitute_inlines("{inline:a}{inline:a}", inlines, max_rounds=5) == "[B][B]"


def test_undeclared_inline_becomes_empty():
    assert preprocess.substitute_inlines("x{inline:nope}y", {}, max_rounds=5) == "xy"


def test_load_tags_stay_live_inside_shielded_scripts():
    literals = {}
    text = '<script type="text/template">{a}{load row.tpl}{b}</script>'
    shielded = preprocess.shield_literals(text, literals)
    assert shielded == '<script type="text/template">[[0_literal]]{load row.tpl}[[1_literal]]</script>'
    assert literals == {"0_literal": "{a}", "1_literal": "{b}"}
