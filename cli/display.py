"""
Rich display components — banners, tables, panels.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from rich import box
from rich.align import Align
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cli.console import console


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BANNER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

BANNER = r"""
  ____  _                   ___
 / ___|| |__   ___   ___   |_ _|_ __ ___   __ _  __ _  ___
 \___ \| '_ \ / _ \ / _ \   | || '_ ` _ \ / _` |/ _` |/ _ \
  ___) | | | | (_) |  __/   | || | | | | | (_| | (_| |  __/
 |____/|_| |_|\___/ \___|  |___|_| |_| |_|\__,_|\__, |\___|
                                                |___/
"""


def show_banner() -> None:
    """Display the startup banner."""
    panel = Panel(
        Align.center(Text(BANNER, style="bold cyan")),
        border_style="bright_blue",
        padding=(0, 2),
    )
    console.print(panel)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  KEY / VALUE TABLES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def show_config_table(config: Dict[str, Any], title: str = "⚙️  Configuration") -> None:
    """Display a flat mapping as a rich table."""
    table = Table(
        title=title,
        box=box.ROUNDED,
        border_style="bright_blue",
        show_header=True,
        header_style="table_header",
        padding=(0, 1),
    )
    table.add_column("Setting", style="stat_key", min_width=20)
    table.add_column("Value", style="stat_val", min_width=30)

    for key, value in config.items():
        # Color code booleans
        if isinstance(value, bool):
            val_str = "✅ Yes" if value else "❌ No"
            style = "success" if value else "muted"
        elif isinstance(value, (list, tuple)):
            val_str = " → ".join(str(v) for v in value)
            style = "source"
        elif isinstance(value, (int, float)):
            val_str = str(value)
            style = "number"
        elif value is None:
            val_str = "—"
            style = "muted"
        else:
            val_str = str(value)
            style = "stat_val"

        table.add_row(key, Text(val_str, style=style))

    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  PIPELINE RESULT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def show_result(result: Any) -> None:
    """Render a ``PipelineResult``."""
    table = Table(
        title="👟 Result",
        box=box.DOUBLE_EDGE,
        border_style="green" if result.success else "red",
    )
    table.add_column("Field", style="stat_key")
    table.add_column("Value")

    decision = "[success]✅ FOUND[/]" if result.success else "[error]❌ NOT FOUND[/]"
    table.add_row("Decision", decision)
    table.add_row("Outcome", result.outcome.value)
    table.add_row("Model", Text(result.model, style="query"))
    table.add_row("Source", result.source or "[muted]N/A[/]")
    table.add_row("Validation", result.validation_status.value)
    if result.final_path:
        table.add_row("Image", str(result.final_path))
    if result.original_image_url:
        table.add_row("Original URL", Text(result.original_image_url, style="muted"))
    for stage, path in result.artifacts().items():
        if path is not None:
            table.add_row(stage, Text(str(path), style="muted"))
    if result.error:
        table.add_row("Error", Text(result.error, style="error"))

    console.print(table)
    console.print()


def show_check(ratio: Optional[float], passed: bool, verdict: Any = None) -> None:
    """Structural (and optional vision) check on a local file."""
    table = Table(
        title="🔍 Image Check",
        box=box.DOUBLE_EDGE,
        border_style="green" if passed else "red",
    )
    table.add_column("Metric", style="stat_key")
    table.add_column("Value")

    if ratio is None:
        table.add_row("White border", "[border_bad]undecodable / too small[/]")
    else:
        style = "border_ok" if passed else "border_bad"
        table.add_row("White border", f"[{style}]{ratio * 100:.2f}%[/]")
    table.add_row("Structural", "[success]✅ PASS[/]" if passed else "[error]❌ FAIL[/]")

    if verdict is not None:
        table.add_row("Vision", verdict.summary())

    console.print(table)
    console.print()
