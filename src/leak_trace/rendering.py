"""Rich terminal output and Markdown export of analysis results."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from leak_trace.models import AnalysisResult, Failure, LeakFound, LeakTrace, NoLeak

# ============================================================
# RICH OUTPUT RENDERING
# ============================================================

LEAK_TRACE_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)

console = Console(theme=LEAK_TRACE_THEME)


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        table.add_row(label, escape(value))
    return table


def determine_status(result: AnalysisResult) -> tuple[str, str]:
    """Return a one-line status and the theme style to show it in."""
    if isinstance(result, LeakFound):
        if result.excluded_leak:
            return (
                f"Known leak: {result.class_name} is retained by an excluded reference",
                "warning",
            )
        return f"LEAK: {result.class_name} is still strongly reachable", "critical"
    if isinstance(result, Failure):
        return f"Analysis failed: {result.exception}", "critical"
    return "No leak: the watched object is not strongly reachable", "success"


def build_result_rows(
    result: AnalysisResult, heap_dump: Path, reference_key: str
) -> list[tuple[str, str]]:
    rows = [
        ("Heap dump", str(heap_dump)),
        ("Reference key", reference_key),
    ]
    if isinstance(result, LeakFound):
        rows.append(("Leaking class", result.class_name))
        rows.append(("Path length", str(len(result.trace))))
        rows.append(("Excluded leak", "yes" if result.excluded_leak else "no"))
    elif isinstance(result, Failure):
        rows.append(("Error type", type(result.exception).__name__))
    rows.append(("Analysis time", f"{result.duration_ms} ms"))
    return rows


def build_trace_rows(trace: LeakTrace) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    last_index = len(trace) - 1
    for index, element in enumerate(trace.elements):
        if index == 0:
            role = "GC ROOT"
        elif index == last_index:
            role = "leaks"
        else:
            role = "references"
        rows.append(
            {
                "role": role,
                "holder": element.holder.value.lower(),
                "reference": element.reference_name or "",
                "type": element.reference_type.value.lower().replace("_", " "),
                "class": element.class_name,
                "extra": element.extra or "",
            }
        )
    return rows


def create_trace_table(trace: LeakTrace) -> Table:
    table = Table(title="Reference Path (GC root first)", header_style="header")
    table.add_column("Step", style="label")
    table.add_column("Holder")
    table.add_column("Class", style="metric")
    table.add_column("Reference", style="info")
    table.add_column("Type", style="label")
    table.add_column("Details")
    for row in build_trace_rows(trace):
        table.add_row(
            row["role"],
            row["holder"],
            escape(row["class"]),
            escape(row["reference"]),
            row["type"],
            escape(row["extra"]),
        )
    return table


def render_rich_output(
    result: AnalysisResult,
    heap_dump: Path,
    reference_key: str,
    target_console: Console | None = None,
) -> None:
    """Print the analysis outcome and, when there is one, the leak trace."""
    out = target_console or console
    status, style = determine_status(result)
    out.print(Panel(Text(status, style=style), title="Leak Analysis", border_style=style))
    rows = build_result_rows(result, heap_dump, reference_key)
    out.print(create_key_value_table("Summary", rows))
    if isinstance(result, LeakFound):
        out.print()
        out.print(create_trace_table(result.trace))


# ============================================================
# MARKDOWN EXPORT
# ============================================================


def sanitize_text(text: str) -> str:
    """Escape characters that would break Markdown tables."""
    return text.replace("|", "\\|").replace("\n", " ")


def export_markdown_report(
    result: AnalysisResult, heap_dump: Path, reference_key: str, output_path: Path
) -> None:
    md_content: list[str] = []
    md_content.append("# Leak Analysis Report\n\n")

    status, _style = determine_status(result)
    md_content.append(f"**Status:** {sanitize_text(status)}\n\n")

    md_content.append("## Summary\n\n")
    for label, value in build_result_rows(result, heap_dump, reference_key):
        md_content.append(f"- **{label}:** {sanitize_text(value)}\n")
    md_content.append("\n")

    if isinstance(result, LeakFound):
        md_content.append("## Reference Path\n\n")
        md_content.append("| Step | Holder | Class | Reference | Type | Details |\n")
        md_content.append("| --- | --- | --- | --- | --- | --- |\n")
        for row in build_trace_rows(result.trace):
            cells = [
                row["role"],
                row["holder"],
                row["class"],
                row["reference"],
                row["type"],
                row["extra"],
            ]
            md_content.append("| " + " | ".join(sanitize_text(cell) for cell in cells) + " |\n")
        md_content.append("\n")
        md_content.append("```\n")
        md_content.append(str(result.trace) + "\n")
        md_content.append("```\n")
    elif isinstance(result, NoLeak):
        md_content.append("The watched object was collected or is only weakly reachable.\n")

    output_path.write_text("".join(md_content), encoding="utf-8")
