# curlytpl/cli/interface.py
import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import click
from click_option_group import optgroup
import structlog
import toml

from curlytpl import __version__ as app_version
from curlytpl.config.settings import CompileMode, EngineConfig
from curlytpl.config.loader import build_config, load_and_merge_configs, save_config_to_profile
from curlytpl.logging_setup import configure_logging
from curlytpl.core.engine import TemplateEngine
from curlytpl.core.output import write_to_file, write_to_stdout
from curlytpl.cli.console_output import print_artifact_source, print_compile_summary, print_render_summary
from curlytpl.exceptions import ConfigError, CurlyTplError
from curlytpl.util import parse_key_value_pairs

log = structlog.get_logger(__name__)

def _parse_var_value(raw: str) -> Any:
    # json literals (numbers, lists, objects, true/false) are decoded; anything else stays text.
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw

def parse_cli_variables(pairs: Tuple[str, ...], vars_file: Optional[Path] = None) -> Dict[str, Any]:
    variables: Dict[str, Any] = {}
    if vars_file is not None:
        try:
            variables.update(toml.load(vars_file))
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"could not read variables file '{vars_file}': {e}") from e
    for key, value in parse_key_value_pairs(pairs).items():
        variables[key] = _parse_var_value(value)
    ignored = [p for p in pairs if "=" not in p]
    if ignored:
        log.warning("cli_vars_without_value_ignored", entries=ignored)
    return variables

def engine_options(cmd):
    """Applies the options shared by every command that builds an engine."""
    cmd = optgroup.option("--save", "save_profile_name", type=str, metavar="PROFILE_NAME", default=None, help="Save the engine options to a profile in the project's .curlytpl.toml. Exits after saving.")(cmd)
    cmd = optgroup.option("--profile", "profile_name", default=None, help="Load a profile from config file(s).")(cmd)
    cmd = optgroup.option("--nocache", "nocache", is_flag=True, default=False, help="Recompile templates marked {*nocache*} on every request.")(cmd)
    cmd = optgroup.option("--absolute/--relative", "compile_absolute", default=None, help="Place artifacts under one shared compile directory (absolute) or inside each template root (relative).")(cmd)
    cmd = optgroup.option("--compile-dir", "compile_dir", default=None, help="Compile cache directory. Default: 'compiled'.")(cmd)
    cmd = optgroup.option("-p", "--path", "paths", multiple=True, type=click.Path(path_type=Path), help="Template search root (repeatable, searched in order). Default: 'templates'.")(cmd)
    cmd = optgroup.group("Engine Options", help="Where templates are found and where compiled artifacts go.")(cmd)
    return cmd

def build_engine_config(
    paths: Tuple[Path, ...],
    compile_dir: Optional[str],
    compile_absolute: Optional[bool],
    nocache: Optional[bool],
    profile_name: Optional[str],
) -> EngineConfig:
    # toml files first, then the selected profile, then explicit cli flags.
    raw = load_and_merge_configs()
    return build_config(
        raw,
        profile_name,
        paths=list(paths) or None,
        compile_dir=compile_dir,
        compile_mode=CompileMode.from_flag(compile_absolute) if compile_absolute is not None else None,
        nocache=nocache or None,
    )

def _engine_from_params(ctx: click.Context, params: Dict[str, Any]) -> TemplateEngine:
    config = build_engine_config(
        params["paths"], params["compile_dir"], params["compile_absolute"], params["nocache"], params["profile_name"]
    )
    if params.get("save_profile_name"):
        if save_config_to_profile(config, params["save_profile_name"]):
            click.echo(f"Info: Profile '{params['save_profile_name']}' saved.", err=True)
        else:
            click.echo("Info: Nothing to save; all options are at their defaults.", err=True)
        ctx.exit(0)
    log.debug("engine_config_built", paths=[str(p) for p in config.paths], compile_dir=config.compile_dir, mode=config.compile_mode.value)
    return TemplateEngine(config)

@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except click.exceptions.Exit:
        raise
    except CurlyTplError as e:
        log.error("handled_application_error_in_cli", error_type=type(e).__name__, message=str(e))
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)
    except click.ClickException:
        raise
    except Exception as e:
        log.critical("unexpected_critical_error_in_cli", message=str(e), exc_info=True)
        click.secho(f"Unexpected critical error: {e}. Please report this.", fg="red", err=True)
        sys.exit(1)


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@optgroup.group("Application Behavior", help="Logging and diagnostics.")
@optgroup.option("--verbose", "-v", "verbosity_level", count=True, help="Verbosity: -v info, -vv debug.")
@optgroup.option("--force-json-logs", "force_json_logs_cli", is_flag=True, default=False, help="Force JSON logs.")
@click.version_option(version=app_version, package_name="curlytpl", prog_name="curlytpl", help="Show version and exit.")
@click.pass_context
def main_cli_group(ctx: click.Context, verbosity_level: int, force_json_logs_cli: bool):
    """curlytpl: compile brace-directive templates into cached Python
    modules and render them."""
    log_level = "warning"
    if verbosity_level == 1: log_level = "info"
    elif verbosity_level >= 2: log_level = "debug"
    configure_logging(log_level_str=log_level, force_json_logs=force_json_logs_cli)
    ctx.ensure_object(dict)
    log.debug("cli_command_invoked", subcommand=ctx.invoked_subcommand)


@main_cli_group.command("render")
@click.argument("name")
@engine_options
@optgroup.group("Variables & Output", help="Values passed to the template and where the result goes.")
@optgroup.option("--var", "user_vars", multiple=True, metavar="KEY=VALUE", help="Template variable; VALUE is decoded as JSON when possible.")
@optgroup.option("--vars-file", "vars_file", type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path), default=None, help="TOML file of template variables.")
@optgroup.option("-o", "--output", "output_file", type=click.Path(dir_okay=False, writable=True, path_type=Path), default=None, help="Path to write the output to.")
@optgroup.option("--summary", "show_summary", is_flag=True, default=False, help="Print a render summary on stderr.")
@click.pass_context
def render_command(ctx: click.Context, name: str, user_vars: Tuple[str, ...], vars_file: Optional[Path], output_file: Optional[Path], show_summary: bool, **engine_params: Any):
    """Render template NAME and print the result."""
    with _cli_errors():
        engine = _engine_from_params(ctx, engine_params)
        variables = parse_cli_variables(user_vars, vars_file)
        result = engine.render(name, variables)
        if output_file:
            write_to_file(output_file, result)
            click.echo(f"Info: Output written to: {output_file}", err=True)
        else:
            log.info("writing_final_output_to_stdout")
            write_to_stdout(result)
        if show_summary:
            print_render_summary(engine, name, output_file)


@main_cli_group.command("compile")
@click.argument("names", nargs=-1, required=True)
@engine_options
@click.pass_context
def compile_command(ctx: click.Context, names: Tuple[str, ...], **engine_params: Any):
    """Bring the compiled artifacts of NAMES up to date without rendering."""
    with _cli_errors():
        engine = _engine_from_params(ctx, engine_params)
        results: List[Tuple[str, Path]] = [(name, engine.compile(name)) for name in names]
        print_compile_summary(results, engine.store.compile_count)


@main_cli_group.command("show")
@click.argument("name")
@engine_options
@click.option("--no-line-numbers", "no_line_numbers", is_flag=True, default=False, help="Omit line numbers.")
@click.pass_context
def show_command(ctx: click.Context, name: str, no_line_numbers: bool, **engine_params: Any):
    """Print the Python module generated for template NAME."""
    with _cli_errors():
        engine = _engine_from_params(ctx, engine_params)
        print_artifact_source(engine.compiled_source(name), name, line_numbers=not no_line_numbers)
