# curlytpl/cli/console_output.py
"""
Handles printing summary information and compiled sources to the console
(stderr for summaries) during CLI execution.
"""
from pathlib import Path
from typing import List, Tuple

import click
from rich.console import Console as RichConsole
from rich.syntax import Syntax
import structlog

log = structlog.get_logger(__name__)

def print_render_summary(engine, name: str, output_file: Path | None):
    """
    Prints a short summary of a finished render to stderr.
    'engine' is the TemplateEngine that produced the output.
    """
    log.debug("console_summary_output_requested", template=name)
    click.secho("--- render summary ---", fg="cyan", err=True)
    click.echo(f"Template: {name}", err=True)
    click.echo(f"Artifacts compiled: {engine.store.compile_count}", err=True)
    click.echo(f"Block procedures registered: {len(engine.registry.block_names)}", err=True)
    if engine.registry.globals_seen:
        click.echo(f"Globals referenced: {', '.join(sorted(engine.registry.globals_seen))}", err=True)
    if output_file:
        click.echo(f"Output written to: {output_file}", err=True)

def print_compile_summary(results: List[Tuple[str, Path]], compile_count: int):
    click.secho("--- compile summary ---", fg="cyan", err=True)
    for name, artifact_path in results:
        click.echo(f"{name} -> {artifact_path}", err=True)
    click.secho(f"{compile_count} of {len(results)} template(s) recompiled", fg="yellow", err=True)

def print_artifact_source(source: str, name: str, line_numbers: bool = True):
    # the generated module, syntax highlighted when stdout is a terminal.
    console = RichConsole()
    console.rule(f"[bold cyan]{name}")
    console.print(Syntax(source, "python", line_numbers=line_numbers, word_wrap=False))
