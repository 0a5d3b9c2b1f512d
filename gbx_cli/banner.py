"""ASCII art welcome banner for the shell REPL."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape as escape_markup
from rich.panel import Panel

from gbx_cli.config import settings
from gbx_cli.display import console

if TYPE_CHECKING:
    from gbx_cli.status import StatusInfo

ASCII_ART = {
    "dark": [
        "    █▀▀ █▄▄ ▀▄▀",
        "    █▄█ █▄█ █ █",
    ],
    "light": [
        "    ┌─┐ ┌┐  ┐ ┌",
        "    │ ┬ ├┴┐  ╳ ",
        "    └─┘ └─┘ ┘ └",
    ],
}


def display_welcome_banner(info: StatusInfo, cwd: str) -> None:
    """Render welcome banner with ASCII art, shell, and environment info."""
    art = "\n".join(ASCII_ART.get(settings.theme, ASCII_ART["light"]))

    lines = [
        f"\n[accent]{art}[/accent]\n",
        f"    v{info.version}  process shell",
        f"    Shell: [accent]{info.shell}[/accent]  Reaper: {info.reaper}",
        f"    Timeout: {info.timeout}",
        f"    Dir: {escape_markup(cwd)}",
        "",
        "    [dim]Type /help for commands, 'exit' to quit[/dim]",
    ]
    console.print(Panel("\n".join(lines), border_style="accent", expand=False))
