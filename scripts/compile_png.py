#!/usr/bin/env python3
"""
PNG Compilation CLI

Compiles LaTeX documents to PNG images through the cached toolchain pipeline.

Commands:
    compile    - Compile a single document
    build      - Compile every document of a build file
    invalidate - Drop a document's cached working directory
    events     - Show recent compile events

Examples:\n

    compile_png.py compile diagram.tex                          # Compile one document

    compile_png.py compile diagram.tex -c /rasterpreview.sty    # With a bundled closure

    compile_png.py build texraster.yaml --jobs 4                # Build in parallel

    compile_png.py invalidate diagram                           # Force a recompile

    compile_png.py events -n 20 -e compile_failed               # Recent failures
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from texraster.contexts.building import load_build_config, run_build
from texraster.contexts.building.logger import setup_building_logger
from texraster.contexts.rendering import CompilationCache, CompilationFailed, TexRasterError
from texraster.utils.event_logging import get_recent_events, log_compile_event
from texraster.utils.timestamp import format_timestamp, now

app = typer.Typer(
    help="Compile LaTeX documents to PNG images with cached working directories",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _report_failure(name: str, error: Exception) -> None:
    """Print name, failure kind and, for pipeline failures, where the log is."""
    typer.secho(f"  ✗ {name}: {type(error).__name__}", fg=typer.colors.RED, bold=True)
    if isinstance(error, CompilationFailed):
        typer.echo(f"    Stage: {error.stage} (exit status {error.exit_status})")
        typer.echo(f"    Log: {error.error_log}")
    else:
        typer.echo(f"    {error}")


@app.command("compile")
def compile_command(
    reference: Annotated[
        str,
        typer.Argument(help="Main document, relative to the sources directory (e.g. diagram.tex)"),
    ],
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", help="YAML build file supplying directories and closures"),
    ] = None,
    sources_dir: Annotated[
        Optional[Path], typer.Option("--sources-dir", "-s", help="Sources directory")
    ] = None,
    temp_dir: Annotated[
        Optional[Path], typer.Option("--temp-dir", "-t", help="Working directory root (cache)")
    ] = None,
    output_dir: Annotated[
        Optional[Path], typer.Option("--output-dir", "-o", help="Where the PNG is copied")
    ] = None,
    closures: Annotated[
        Optional[List[str]],
        typer.Option(
            "--closure",
            "-c",
            help="Extra file, directory or bundled resource (leading '/'); repeatable",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug output (commands, copied files)"),
    ] = False,
):
    """
    Compile one LaTeX document to PNG.

    Examples:\n

        $ compile_png.py compile diagram.tex

        $ compile_png.py compile diagram.tex -c figs/ -c /rasterpreview.sty
    """
    try:
        config = load_build_config(
            config_file,
            overrides={
                "sources_dir": sources_dir,
                "temp_dir": temp_dir,
                "output_dir": output_dir,
                "closures": list(closures) if closures else None,
                "sources": [reference],
                "skip": False,
            },
        )
    except (ValueError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    log_file = _setup_logging(config, verbose)

    typer.secho(f"\nCompiling: {reference}", fg=typer.colors.BLUE, bold=True)
    try:
        report = run_build(config)
    except (TexRasterError, ValueError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    if report.success:
        for name, path in report.compiled.items():
            typer.secho("✓ Compilation succeeded", fg=typer.colors.GREEN, bold=True)
            if name in report.cached:
                typer.echo("  (reused from cache)")
            typer.echo(f"  PNG: {path}")
    else:
        for name, error in report.failures.items():
            _report_failure(name, error)

    typer.echo(f"  Session log: {log_file}")
    typer.echo("")
    raise typer.Exit(code=0 if report.success else 1)


@app.command("build")
def build_command(
    config_file: Annotated[
        Optional[Path],
        typer.Argument(help="YAML build file (default: environment settings only)"),
    ] = None,
    skip: Annotated[
        bool, typer.Option("--skip", help="Skip the build entirely")
    ] = False,
    jobs: Annotated[
        Optional[int],
        typer.Option("--jobs", "-j", help="Documents compiled concurrently", min=1),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug output")
    ] = False,
):
    """
    Compile every document listed in a build file.

    Failures are reported per document; the remaining documents still compile.

    Examples:\n

        $ compile_png.py build texraster.yaml

        $ compile_png.py build texraster.yaml --jobs 4
    """
    try:
        config = load_build_config(
            config_file, overrides={"skip": True if skip else None, "jobs": jobs}
        )
    except (ValueError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    log_file = _setup_logging(config, verbose)

    typer.secho(f"\nBuilding {len(config.sources)} documents", fg=typer.colors.BLUE, bold=True)
    try:
        report = run_build(config)
    except (TexRasterError, ValueError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    if report.skipped:
        typer.secho("Build skipped", fg=typer.colors.YELLOW, bold=True)
        raise typer.Exit(code=0)

    for name, path in sorted(report.compiled.items()):
        note = " (cached)" if name in report.cached else ""
        typer.secho(f"  ✓ {name}: {path}{note}", fg=typer.colors.GREEN)
    for name, error in sorted(report.failures.items()):
        _report_failure(name, error)

    total = len(report.compiled) + len(report.failures)
    color = typer.colors.GREEN if report.success else typer.colors.RED
    typer.secho(f"\n{len(report.compiled)}/{total} succeeded", fg=color, bold=True)
    typer.echo(f"  Session log: {log_file}")
    typer.echo("")
    raise typer.Exit(code=0 if report.success else 1)


@app.command("invalidate")
def invalidate_command(
    name: Annotated[str, typer.Argument(help="Document name (without extension)")],
    config_file: Annotated[
        Optional[Path], typer.Option("--config", help="YAML build file")
    ] = None,
    temp_dir: Annotated[
        Optional[Path], typer.Option("--temp-dir", "-t", help="Working directory root (cache)")
    ] = None,
):
    """Remove a document's working directory so the next compile rebuilds it."""
    try:
        config = load_build_config(config_file, overrides={"temp_dir": temp_dir})
        cache = CompilationCache(config.temp_dir, config.sources_dir, config.closures)
        removed = cache.invalidate(name)
    except (ValueError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if removed:
        log_compile_event(config.events_file, "invalidated", name, "cli")
        typer.secho(f"✓ Invalidated {name}", fg=typer.colors.GREEN)
    else:
        typer.echo(f"Nothing cached for {name}")


@app.command("events")
def events_command(
    n: int = typer.Option(10, "--num", "-n", help="Number of recent events to show"),
    document: Optional[str] = typer.Option(
        None, "--document", "-d", help="Filter to events for this document"
    ),
    event_type: Optional[str] = typer.Option(
        None, "--event-type", "-e", help="Filter to events of this type"
    ),
    config_file: Optional[Path] = typer.Option(None, "--config", help="YAML build file"),
    compact: bool = typer.Option(
        False, "--compact", "-c", help="Print one event per line (no pretty formatting)"
    ),
):
    """Show the last n compile events."""
    try:
        config = load_build_config(config_file)
    except (ValueError, FileNotFoundError) as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    events = get_recent_events(
        config.events_file, n=n, document_name=document, event_type=event_type
    )

    if not events:
        typer.echo(f"No events found in {config.events_file}")
        raise typer.Exit()

    for event in events:
        if compact:
            typer.echo(json.dumps(event))
            continue
        when = format_timestamp(event.get("timestamp", ""), relative=True)
        typer.secho(
            f"{when:>10}  {event['event_type']:<18} {event['document_name']}",
            fg=typer.colors.RED if event["event_type"] == "compile_failed" else None,
        )
        for key, value in event.items():
            if key not in ("timestamp", "event_type", "document_name", "source"):
                typer.echo(f"{'':>12}{key}: {value}")


def _setup_logging(config, verbose: bool) -> Path:
    log_dir = config.logs_dir / f"build_{now()}"
    return setup_building_logger(
        log_dir,
        config.sources_dir,
        config.temp_dir,
        console_level="DEBUG" if verbose else "INFO",
    )


if __name__ == "__main__":
    app()
