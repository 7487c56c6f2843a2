import pytest
import toml
from pathlib import Path
from click.testing import CliRunner

from curlytpl.cli.interface import main_cli_group, parse_cli_variables
from curlytpl.config import loader


@pytest.fixture(autouse=True)
def no_user_config(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(loader, "USER_CONFIG_FILE", tmp_path / "no-such-user-config.toml")


@pytest.fixture
def runner():
    return CliRunner()


def _templates(td: str) -> Path:
    root = Path(td) / "templates"
    root.mkdir()
    (root / "hello.tpl").write_text("Hello {name}!")
    (root / "list.tpl").write_text("{foreach items as it}{it}-{/foreach}")
    return root


def test_render_to_stdout(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        result = runner.invoke(main_cli_group, ["render", "hello.tpl", "--var", "name=World"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "Hello World!" in result.output
        assert (Path(td) / "templates" / "compiled" / "hello.tpl.py").is_file()


def test_render_json_variable_and_output_file(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        out_file = Path(td) / "out" / "list.txt"
        result = runner.invoke(
            main_cli_group,
            ["render", "list.tpl", "--var", 'items=["a","b","c"]', "-o", str(out_file), "--summary"],
            catch_exceptions=False,
        )
        assert result.exit_code == 0
        assert out_file.read_text() == "a-b-c-"
        assert "render summary" in result.output


def test_render_with_vars_file_and_explicit_path(runner):
    with runner.isolated_filesystem() as td:
        views = Path(td) / "views"
        views.mkdir()
        (views / "page.tpl").write_text("{title}/{count}")
        (Path(td) / "vars.toml").write_text('title = "Docs"\ncount = 1\n')
        result = runner.invoke(
            main_cli_group,
            ["render", "page.tpl", "-p", str(views), "--vars-file", "vars.toml", "--var", "count=2"],
            catch_exceptions=False,
        )
        assert result.exit_code == 0
        assert "Docs/2" in result.output


def test_absolute_compile_dir(runner):
    with runner.isolated_filesystem() as td:
        root = _templates(td)
        cache = Path(td) / "cache"
        result = runner.invoke(
            main_cli_group,
            ["compile", "hello.tpl", "list.tpl", "-p", str(root), "--compile-dir", str(cache), "--absolute"],
            catch_exceptions=False,
        )
        assert result.exit_code == 0
        assert "2 of 2 template(s) recompiled" in result.output
        assert cache.joinpath(*root.parts[1:], "hello.tpl.py").is_file()


def test_compile_twice_reports_cache_hit(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        runner.invoke(main_cli_group, ["compile", "hello.tpl"], catch_exceptions=False)
        result = runner.invoke(main_cli_group, ["compile", "hello.tpl"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "0 of 1 template(s) recompiled" in result.output


def test_show_prints_generated_module(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        result = runner.invoke(main_cli_group, ["show", "hello.tpl", "--no-line-numbers"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "curlytpl artifact" in result.output
        assert "render" in result.output


def test_missing_template_exits_with_error(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        result = runner.invoke(main_cli_group, ["render", "nope.tpl"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "nope.tpl" in result.output


def test_save_profile_then_use_it(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        result = runner.invoke(main_cli_group, ["render", "hello.tpl", "--compile-dir", "cache", "--save", "dev"], catch_exceptions=False)
        assert result.exit_code == 0
        saved = toml.load(Path(td) / ".curlytpl.toml")
        assert saved["profiles"]["dev"] == {"compile_dir": "cache"}

        result = runner.invoke(main_cli_group, ["render", "hello.tpl", "--profile", "dev", "--var", "name=Ann"], catch_exceptions=False)
        assert result.exit_code == 0
        assert "Hello Ann!" in result.output
        assert (Path(td) / "templates" / "cache" / "hello.tpl.py").is_file()


def test_unknown_profile_is_reported(runner):
    with runner.isolated_filesystem() as td:
        _templates(td)
        result = runner.invoke(main_cli_group, ["render", "hello.tpl", "--profile", "ghost"])
        assert result.exit_code == 1
        assert "ghost" in result.output


def test_parse_cli_variables_decodes_json_values():
    variables = parse_cli_variables(("n=3", "flag=true", "name=Ann", "obj={\"a\": 1}", "bare"))
    assert variables == {"n": 3, "flag": True, "name": "Ann", "obj": {"a": 1}}
