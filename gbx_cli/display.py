"""Themed terminal display — console, semantic styles, display helpers."""

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from gbx_cli import terminal
from gbx_cli.config import settings
from gbx_cli.process import ExecutionResult

# -- Theme palettes (keyed by theme name) ------------------------------------

_THEMES: dict[str, dict[str, str]] = {
    "dark":  {"status": "yellow",      "info": "cyan", "accent": "bold cyan",  "shell": "dim", "stderr": "orange3", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim"},
    "light": {"status": "dark_orange", "info": "blue", "accent": "bold blue",  "shell": "dim", "stderr": "orange3", "error": "bold red", "success": "green", "warning": "orange3", "hint": "dim"},
}

# -- Console (single instance, themed) --------------------------------------

def _theme_for(name: str) -> Theme:
    return Theme(_THEMES.get(name, _THEMES["light"]))


# GBX_CLI_BUFFER_WIDTH / _HEIGHT pin the size; otherwise rich follows the terminal
_width, _height = terminal.pinned_size()
console = Console(theme=_theme_for(settings.theme), width=_width, height=_height)

# -- Indicators ------------------------------------------------------------

PROMPT_CHAR = "❯"
BULLET      = "▸"
SUCCESS     = "✦"
ERROR       = "✖"
INFO        = "◈"

# -- Theme switching -------------------------------------------------------


def set_theme(name: str) -> None:
    """Switch the console theme at runtime (e.g. from --theme flag)."""
    console.push_theme(_theme_for(name))


# -- Display helpers -------------------------------------------------------


def display_status(message: str, style: str | None = None) -> None:
    """Themed bullet + message."""
    s = style or "status"
    console.print(f"[{s}]{BULLET} {message}[/{s}]")


def display_error(message: str, hint: str | None = None) -> None:
    """Red-bordered panel with optional recovery hint."""
    body = Text(f"{ERROR} {message}", style="bold red")
    if hint:
        body.append(f"\n{hint}", style="dim")
    console.print(Panel(body, border_style="red", title="Error", title_align="left"))


def display_info(message: str) -> None:
    """Themed info message."""
    console.print(f"[info]{INFO} {message}[/info]")


def render_result(command: str, result: ExecutionResult) -> Panel:
    """Build a panel with stdout, then stderr in the warning color.

    Output is wrapped in Text so brackets in command output are never parsed
    as rich markup.
    """
    parts = []
    if result.stdout:
        parts.append(Text("\n".join(result.stdout)))
    if result.stderr:
        parts.append(Text("\n".join(result.stderr), style="stderr"))
    if not parts:
        parts.append(Text("(no output)", style="hint"))

    status_style = "success" if result.ok else "error"
    return Panel(
        Group(*parts),
        title=Text(f"$ {command}"),
        title_align="left",
        subtitle=f"[{status_style}]exit {result.exit_code}[/{status_style}]",
        subtitle_align="right",
        border_style="shell",
    )
