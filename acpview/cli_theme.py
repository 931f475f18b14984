# acpview/cli_theme.py
"""Rich styling for the ACPVIEW CLI.

All commands print through the helpers here so the output reads the same
everywhere: a teal accent for headings and keys, sand borders on tables,
and filled badges for query and directive states.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from rich import box
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

BRAND = "A C P V I E W"
TAGLINE = "Advance Care Planning sync & reconciliation for FHIR"

ACCENT = "#2A9D8F"
BORDER = "#C9B79C"
MUTED = "dim"

BADGE_COLORS = {
    "default": ACCENT,
    "success": "green",
    "warn": "yellow",
    "error": "red",
}

_RULE = "─" * 52


def print_banner(version: str, console: Console, server_url: str = "") -> None:
    """Brand, tagline, version and the active FHIR server."""
    console.print()
    console.print(Text(BRAND, style=f"bold {ACCENT}"), Text(f"v{version}", style=MUTED))
    console.print(Text(TAGLINE, style=BORDER))
    if server_url:
        console.print(f"{badge('fhir')} {server_url}", highlight=False)
    console.print()


def print_version(version: str, console: Console) -> None:
    console.print(Text.assemble((BRAND, f"bold {ACCENT}"), (f"  v{version}", MUTED)))


def section(title: str, console: Console, number: str | None = None) -> None:
    """``01 · TITLE`` heading followed by a thin rule."""
    heading = Text("  ")
    if number:
        heading.append(number, style=f"bold {ACCENT}")
        heading.append(" · ", style=MUTED)
    heading.append(title.upper(), style="bold")
    console.print()
    console.print(heading)
    console.print(f"  {_RULE}", style=BORDER)


def make_table(title: str | None = None, **kwargs: object) -> Table:
    kwargs.setdefault("header_style", "bold")
    return Table(
        title=title,
        title_style=f"bold {ACCENT}",
        box=box.ROUNDED,
        border_style=BORDER,
        padding=(0, 1),
        **kwargs,
    )


def make_kv_table() -> Table:
    """Two columns, no header: setting name and value."""
    table = make_table(show_header=False)
    table.add_column("Key", style=f"bold {ACCENT}", no_wrap=True)
    table.add_column("Value")
    return table


def badge(label: str, variant: str = "default") -> str:
    color = BADGE_COLORS.get(variant, ACCENT)
    return f"[reverse {color}] {label} [/reverse {color}]"


def _line(symbol: str, style: str, msg: str, msg_style: str | None = None) -> str:
    body = f"[{msg_style}]{msg}[/{msg_style}]" if msg_style else msg
    return f"  [{style}]{symbol}[/{style}] {body}"


def info(msg: str) -> str:
    return _line("›", ACCENT, msg, MUTED)


def ok(msg: str) -> str:
    return _line("✓", "bold green", msg)


def warn(msg: str) -> str:
    return _line("!", "bold yellow", msg, "yellow")


def err(msg: str) -> str:
    return _line("✗", "bold red", msg)


@contextmanager
def spinner(label: str, console: Console) -> Iterator[None]:
    """Transient spinner shown while a network call runs."""
    progress = Progress(
        SpinnerColumn("dots", style=ACCENT),
        TextColumn(f"[{MUTED}]{{task.description}}[/{MUTED}]"),
        console=console,
        transient=True,
    )
    with progress:
        progress.add_task(label, total=None)
        yield
