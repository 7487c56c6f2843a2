import pytest

from curlytpl.core.compiler.expressions import ExpressionTranslator, sort_longest_first
from curlytpl.core.compiler.registry import CompilerRegistry
from curlytpl.exceptions import TemplateSyntaxError


@pytest.fixture
def translator():
    return ExpressionTranslator()


def test_bare_and_sigil_names_are_context_lookups(translator):
    assert translator.translate_expression("name") == "_v['name']"
    assert translator.translate_expression("$name") == "_v['name']"


def test_dotted_path_becomes_nested_lookup(translator):
    assert translator.translate_expression("user.name") == "_get(_v['user'], 'name')"
    assert translator.translate_expression("a.b.c") == "_get(_get(_v['a'], 'b'), 'c')"


def test_numeric_segment_is_an_index(translator):
    assert translator.translate_expression("items.0") == "_get(_v['items'], 0)"
    assert translator.translate_expression("rows.1.title") == "_get(_get(_v['rows'], 1), 'title')"


def test_sigil_segment_is_itself_a_variable(translator):
    assert translator.translate_expression("row.$col") == "_get(_v['row'], _v['col'])"


def test_store_targets_keep_plain_subscripts(translator):
    assert translator.translate_expression("row.total", store=True) == "_v['row']['total']"
    assert translator.translate_expression("row.$col", store=True) == "_v['row'][_v['col']]"
    assert translator.translate_expression("items.0", store=True) == "_v['items'][0]"


def test_string_literals_and_keywords_are_untouched(translator):
    assert translator.translate_expression('"user.name" + name') == "\"user.name\" + _v['name']"
    assert translator.translate_expression("not done and count > 0") == "not _v['done'] and _v['count'] > 0"
    assert translator.translate_expression("x is None") == "_v['x'] is None"


def test_function_calls_and_keyword_arguments_are_untouched(translator):
    assert translator.translate_expression("len(items)") == "len(_v['items'])"
    assert translator.translate_expression("fmt(value, width=3)") == "fmt(_v['value'], width=3)"


def test_member_access_keeps_attribute(translator):
    translation = translator.translate("obj->title")
    assert translation.code == "_v['obj'].title"
    assert translation.objects == ["obj"]


def test_attribute_of_a_literal_is_not_a_variable(translator):
    assert translator.translate_expression("'abc'.upper()") == "'abc'.upper()"


def test_longer_name_is_never_split(translator):
    translation = translator.translate("$ab + $a")
    assert translation.code == "_v['ab'] + _v['a']"
    assert translation.variables == ["ab", "a"]


def test_sigil_and_bare_spellings_report_one_name(translator):
    translation = translator.translate("$user.name + user.name + $obj->title")
    assert translation.variables == ["user.name", "obj"]
    assert translation.objects == ["obj"]


def test_variables_are_reported_longest_first():
    assert sort_longest_first(["a", "ab", "b.c", "zz"]) == ["b.c", "zz", "ab", "a"]


def test_declared_globals_stay_bare_and_are_recorded():
    registry = CompilerRegistry()
    translator = ExpressionTranslator(declared_globals=["site"], registry=registry)
    translation = translator.translate("site->title + name")
    assert translation.code == "site.title + _v['name']"
    assert translation.globals == ["site"]
    assert translation.variables == ["name"]
    assert registry.globals_seen == frozenset({"site"})


def test_global_as_path_base_keeps_lookup_segments():
    translator = ExpressionTranslator(declared_globals=["config"])
    assert translator.translate_expression("config.debug") == "_get(config, 'debug')"


def test_blank_expression_is_returned_as_is(translator):
    assert translator.translate("  ").code == "  "


def test_untokenizable_expression_raises(translator):
    with pytest.raises(TemplateSyntaxError):
        translator.translate("'unterminated")
