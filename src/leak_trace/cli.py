#!/usr/bin/env python3
"""Leak Trace - find what keeps a watched object alive in a heap snapshot.

Given an object graph export and the key of the weak reference that watched
the suspect object, prints the shortest strong reference path from a GC root
to that object, if one exists.
"""

from __future__ import annotations

import cProfile
import logging
import pstats
import sys
from collections.abc import Sequence
from io import StringIO
from pathlib import Path
from typing import Annotated

import typer
from pydantic import TypeAdapter
from rich.logging import RichHandler
from rich.markup import escape
from rich.traceback import Traceback

from leak_trace.analyzer import HeapAnalyzer
from leak_trace.graph_snapshot import GraphSnapshotGateway
from leak_trace.locator import WATCHER_CLASS_NAME
from leak_trace.models import ExclusionConfig, Failure, LeakFound
from leak_trace.rendering import console, export_markdown_report, render_rich_output
from leak_trace.trace_builder import InterfaceResolver, interfaces_unavailable

# ============================================================
# CONFIGURATION HELPERS
# ============================================================

INTERFACE_MAP_ADAPTER = TypeAdapter(dict[str, list[str]])


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def load_interface_resolver(path: Path | None) -> InterfaceResolver:
    """Build a resolver from a JSON map of class name to declared interfaces."""
    if path is None:
        return interfaces_unavailable
    interfaces = INTERFACE_MAP_ADAPTER.validate_json(path.read_bytes())

    def resolve(class_name: str) -> Sequence[str] | None:
        return interfaces.get(class_name)

    return resolve


# ============================================================
# TYPER CLI INTERFACE
# ============================================================

app = typer.Typer(
    name="leak-trace",
    help="Find the strong reference path that keeps a suspected leak alive",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.command()
def analyze(
    heap_dump: Annotated[
        Path,
        typer.Argument(
            help="Path to the object graph export of the heap dump",
            file_okay=True,
            dir_okay=False,
        ),
    ],
    reference_key: Annotated[
        str,
        typer.Argument(help="Key of the weak reference that watched the suspect object"),
    ],
    exclusions: Annotated[
        Path | None,
        typer.Option(
            "--exclusions",
            "-e",
            help="JSON file with known leaks to exclude on the first pass",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    base_exclusions: Annotated[
        Path | None,
        typer.Option(
            "--base-exclusions",
            help="JSON file with exclusions that always apply",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    interfaces: Annotated[
        Path | None,
        typer.Option(
            "--interfaces",
            help="JSON map of class name to declared interfaces, for anonymous classes",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    watcher_class: Annotated[
        str,
        typer.Option("--watcher-class", help="Class of the keyed weak references"),
    ] = WATCHER_CLASS_NAME,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Export the analysis report to a Markdown file (e.g., leak.md)",
            file_okay=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output with debug logging"),
    ] = False,
    profile: Annotated[
        bool,
        typer.Option(
            "--profile", help="Enable performance profiling and display timing statistics"
        ),
    ] = False,
) -> None:
    """Analyze a heap snapshot for a watched object.

    Exit codes: 0 = no leak, 1 = analysis failed, 2 = leak found.
    """
    configure_logging(verbose)

    profiler = None
    if profile:
        profiler = cProfile.Profile()
        profiler.enable()

    try:
        excluded_refs = ExclusionConfig.load(exclusions) if exclusions else ExclusionConfig()
        base_excluded_refs = ExclusionConfig.load(base_exclusions) if base_exclusions else None
        analyzer = HeapAnalyzer(
            GraphSnapshotGateway(),
            excluded_refs,
            base_excluded_refs,
            watcher_class=watcher_class,
            resolve_interfaces=load_interface_resolver(interfaces),
        )

        status = f"[info]Searching {escape(heap_dump.name)} for {escape(reference_key)}...[/info]"
        with console.status(status):
            result = analyzer.check_for_leak(heap_dump, reference_key)

        render_rich_output(result, heap_dump, reference_key)
        if isinstance(result, Failure) and verbose:
            exc = result.exception
            console.print(Traceback.from_exception(type(exc), exc, exc.__traceback__))

        if output:
            export_markdown_report(result, heap_dump, reference_key, output)
            console.print(f"\n[success]Report exported to {escape(str(output))}[/success]")

        if profiler:
            profiler.disable()
            console.print("\n[bold cyan]Performance Profile (Top 20 Functions)[/bold cyan]\n")
            stats_stream = StringIO()
            stats = pstats.Stats(profiler, stream=stats_stream)
            stats.strip_dirs()
            stats.sort_stats("cumulative")
            stats.print_stats(20)
            console.print(stats_stream.getvalue())

        if isinstance(result, Failure):
            sys.exit(1)
        if isinstance(result, LeakFound):
            sys.exit(2)

    except ValueError as e:
        console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[critical]ERROR: {escape(str(e))}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def version() -> None:
    """Display version."""
    console.print("leak-trace 1.0.0")


if __name__ == "__main__":
    app()
