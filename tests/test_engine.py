import os
from pathlib import Path
from types import SimpleNamespace

import pytest

from curlytpl import CompileMode, EngineConfig, TemplateEngine
from curlytpl.core.filestore import LocalFileStore
from curlytpl.exceptions import (
    CompileWriteError, EmptySource, IncludeDepthError, RenderTimeout, TemplateNotFound,
    TemplateRenderError, TemplateSyntaxError,
)


@pytest.fixture
def templates(tmp_path: Path) -> Path:
    root = tmp_path / "templates"
    root.mkdir()
    return root


def _write(root: Path, name: str, text: str) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _engine(*roots: Path, **options) -> TemplateEngine:
    return TemplateEngine(EngineConfig(paths=list(roots), **options))


def test_hello_world(templates):
    _write(templates, "hello.tpl", "Hello {name}!")
    assert _engine(templates).render("hello.tpl", {"name": "World"}) == "Hello World!"


def test_foreach_list(templates):
    _write(templates, "list.tpl", "{foreach items as it}{it}-{/foreach}")
    assert _engine(templates).render("list.tpl", {"items": ["a", "b", "c"]}) == "a-b-c-"


def test_dotted_path_lookup(templates):
    _write(templates, "user.tpl", "{user.name}")
    assert _engine(templates).render("user.tpl", {"user": {"name": "Ann"}}) == "Ann"


def test_longest_variable_wins(templates):
    _write(templates, "ab.tpl", "{$ab}")
    assert _engine(templates).render("ab.tpl", {"a": "X", "ab": "Y"}) == "Y"


def test_missing_include_renders_marker(templates):
    _write(templates, "page.tpl", "start{include missing.tpl}end")
    assert _engine(templates).render("page.tpl") == "start<!-- missing.tpl -->end"


def test_include_from_later_root(tmp_path, templates):
    shared = tmp_path / "shared"
    shared.mkdir()
    _write(shared, "header.tpl", "<h1>{title}</h1>")
    _write(templates, "page.tpl", "{include header.tpl}body")
    assert _engine(templates, shared).render("page.tpl", {"title": "T"}) == "<h1>T</h1>body"


def test_literal_script_is_emitted_unchanged(templates):
    _write(templates, "s.tpl", '<script type="text/template">{not.a.directive}</script>{name}')
    result = _engine(templates).render("s.tpl", {"name": "N"})
    assert result == '<script type="text/template">{not.a.directive}</script>N'


def test_default_delimiter_variables(templates):
    _write(templates, "d.tpl", "{ldelim}x{rdelim}")
    assert _engine(templates).render("d.tpl") == "{x}"


def test_control_flow(templates):
    _write(templates, "c.tpl", "{if n > 1}many{elseif n == 1}one{else}none{/if}")
    engine = _engine(templates)
    assert [engine.render("c.tpl", {"n": n}) for n in (3, 1, 0)] == ["many", "one", "none"]


def test_foreach_single_target_over_mapping_binds_values(templates):
    _write(templates, "d.tpl", "{foreach items as v}{v};{/foreach}|{foreach [] as v}{v}{/foreach}")
    assert _engine(templates).render("d.tpl", {"items": {"a": 1, "b": 2}}) == "1;2;|"


def test_foreach_pairs_and_empty_branch(templates):
    _write(templates, "p.tpl", "{foreach scores as k=>v}{k}={v};{else}none{/foreach}")
    engine = _engine(templates)
    assert engine.render("p.tpl", {"scores": {"a": 1, "b": 2}}) == "a=1;b=2;"
    assert engine.render("p.tpl", {"scores": ["x"]}) == "0=x;"
    assert engine.render("p.tpl", {"scores": []}) == "none"
    assert engine.render("p.tpl") == "none"


def test_for_while_and_eval(templates):
    _write(templates, "loops.tpl", "{for i in range(3)}{i}{/for}|{eval n = 3}{while n > 0}{n}{eval n = n - 1}{/while}")
    assert _engine(templates).render("loops.tpl") == "012|321"


def test_eval_literal_runs_unchanged(templates):
    _write(templates, "e.tpl", "{eval_literal _v['x'] = 5}{x}")
    assert _engine(templates).render("e.tpl") == "5"


def test_filters(templates):
    _write(templates, "f.tpl", "{name|upper} {name|tolower} {html|escape} {name|shout}")
    engine = _engine(templates, filters={"shout": lambda s: s + "!"})
    result = engine.render("f.tpl", {"name": "Ann", "html": '<a href="x">'})
    assert result == 'ANN ann &lt;a href=&quot;x&quot;&gt; Ann!'


def test_constants_and_globals(templates):
    _write(templates, "g.tpl", "{_SITE}: {site->title} {site->title|upper}")
    engine = _engine(templates, constants={"_SITE": "Docs"}, globals={"site": SimpleNamespace(title="Home")})
    assert engine.render("g.tpl") == "Docs: Home HOME"
    assert engine.registry.globals_seen == frozenset({"site"})


def test_comments_inlines_and_blocks(templates):
    _write(templates, "b.tpl", "{* note *}{inline sig}-- {name}{/inline}{block card}[{name}]{/block}{block:card}{inline:sig}{block:card}")
    assert _engine(templates).render("b.tpl", {"name": "Ann"}) == "[Ann]-- Ann[Ann]"


def test_block_dedup_across_files(templates):
    _write(templates, "a.tpl", "{block greet}Hi {name}{/block}{block:greet}")
    _write(templates, "b.tpl", "{block greet}Hi {name}{/block}{block:greet}")
    engine = _engine(templates)
    assert engine.render("a.tpl", {"name": "A"}) == "Hi A"
    assert engine.render("b.tpl", {"name": "B"}) == "Hi B"
    names = engine.registry.block_names
    assert len(names) == 2
    assert all(n.startswith("greet_") for n in names)

    # recompiling the same template registers nothing new
    artifact = engine.compile("a.tpl")
    os.utime(artifact, ns=(0, 0))
    engine.render("a.tpl", {"name": "A"})
    assert engine.registry.block_names == names


def test_load_shares_variables(templates):
    _write(templates, "main.tpl", "[{load child.tpl}]{added}")
    _write(templates, "child.tpl", "{name}{eval added = '!'}")
    assert _engine(templates).render("main.tpl", {"name": "World"}) == "[World]!"


def test_load_inside_template_script_still_runs(templates):
    _write(templates, "main.tpl", '<script type="text/template">{row.id}{load part.tpl}{x}</script>')
    _write(templates, "part.tpl", "[{name}]")
    result = _engine(templates).render("main.tpl", {"name": "N"})
    assert result == '<script type="text/template">{row.id}[N]{x}</script>'


def test_load_by_variable(templates):
    _write(templates, "main.tpl", "{load $part}")
    _write(templates, "part.tpl", "part")
    assert _engine(templates).render("main.tpl", {"part": "part.tpl"}) == "part"


def test_add_default_seeds_every_render(templates):
    _write(templates, "d.tpl", "{brand}/{ldelim}x{rdelim}")
    engine = _engine(templates)
    engine.add_default("brand", "Acme")
    assert engine.config.defaults["brand"] == "Acme"
    assert engine.render("d.tpl") == "Acme/{x}"
    assert engine.render("d.tpl", {"brand": "Other"}) == "Other/{x}"


def test_library_use_does_not_print_logs(templates, capsys):
    _write(templates, "hello.tpl", "Hello {name}!")
    _engine(templates).render("hello.tpl", {"name": "quiet"})
    assert capsys.readouterr().out == ""


def test_engine_assign_applies_to_every_render(templates):
    _write(templates, "v.tpl", "{greeting} {site_name} {title}")
    engine = _engine(templates)
    engine.assign("greeting", "Hi")
    engine.assign({"name": "Docs"}, "site")
    engine.assign("title", "a")
    engine.assign(".title", "b")
    assert engine.render("v.tpl") == "Hi Docs ab"
    assert engine.render("v.tpl", {"greeting": "Yo"}) == "Yo Docs ab"


def test_missing_variables(templates):
    _write(templates, "m.tpl", "[{missing}][{missing.deeper}]")
    assert _engine(templates).render("m.tpl") == "[][]"
    _write(templates, "n.tpl", "{if row.flag}F{/if}ok[{user.missing}][{items.5}]")
    result = _engine(templates).render("n.tpl", {"row": {}, "user": {}, "items": ["a"]})
    assert result == "ok[][]"


def test_missing_nested_key_read_by_eval_is_an_error(templates):
    _write(templates, "t.tpl", "{eval total = row.price * 2}")
    with pytest.raises(TemplateRenderError):
        _engine(templates).render("t.tpl", {"row": {}})


def test_dotted_path_reads_object_attributes(templates):
    _write(templates, "o.tpl", "{page.title}")
    assert _engine(templates).render("o.tpl", {"page": SimpleNamespace(title="Home")}) == "Home"


def test_leniency_for_non_directive_braces(templates):
    _write(templates, "css.tpl", "body { color: red; } {unknown directive here}")
    assert _engine(templates).render("css.tpl") == "body { color: red; } {unknown directive here}"


def test_template_not_found(templates):
    with pytest.raises(TemplateNotFound):
        _engine(templates).render("nope.tpl")


def test_empty_source(templates):
    _write(templates, "empty.tpl", "")
    with pytest.raises(EmptySource):
        _engine(templates).render("empty.tpl")


def test_syntax_error_surfaces(templates):
    _write(templates, "bad.tpl", "{if x}never closed")
    with pytest.raises(TemplateSyntaxError):
        _engine(templates).render("bad.tpl")


def test_compile_write_failure(templates):
    class ReadOnlyStore(LocalFileStore):
        def write_text(self, path, data):
            return False

    _write(templates, "hello.tpl", "Hello")
    engine = TemplateEngine(EngineConfig(paths=[templates]), filestore=ReadOnlyStore())
    with pytest.raises(CompileWriteError):
        engine.render("hello.tpl")


def test_include_depth_limit(templates):
    _write(templates, "loop.tpl", "x{include loop.tpl}")
    with pytest.raises(IncludeDepthError):
        _engine(templates, max_include_depth=4).render("loop.tpl")


def test_load_depth_limit(templates):
    _write(templates, "self.tpl", "x{load self.tpl}")
    with pytest.raises(TemplateRenderError, match="load depth"):
        _engine(templates, max_load_depth=5).render("self.tpl")


def test_render_timeout(templates):
    _write(templates, "spin.tpl", "{while True}x{/while}")
    with pytest.raises(RenderTimeout):
        _engine(templates, render_timeout=0.05).render("spin.tpl")


def test_compiled_source_is_python(templates):
    _write(templates, "hello.tpl", "Hello {name}!")
    source = _engine(templates).compiled_source("hello.tpl")
    assert source.startswith("# curlytpl artifact")
    compile(source, "hello.tpl.py", "exec")


def test_compile_modes_place_artifacts(tmp_path, templates):
    _write(templates, "hello.tpl", "Hello")
    relative = _engine(templates).compile("hello.tpl")
    assert relative == templates / "compiled" / "hello.tpl.py"

    cache = tmp_path / "cache"
    absolute = _engine(templates, compile_dir=str(cache), compile_mode=CompileMode.ABSOLUTE).compile("hello.tpl")
    assert absolute == cache.joinpath(*templates.parts[1:], "hello.tpl.py")
    assert absolute.is_file()
