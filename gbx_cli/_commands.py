"""Slash command registry, handlers, and dispatch for the shell REPL."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape as escape_markup

from gbx_cli.display import console
from gbx_cli.process import ProcessExecutorProtocol


# -- Types -----------------------------------------------------------------

@dataclass
class ShellContext:
    """Grab-bag passed to every slash-command handler.

    Mutable so handlers like /cwd and /timeout can change how the next
    command runs.
    """

    executor: ProcessExecutorProtocol
    cwd: str
    timeout: float | None = None
    history: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SlashCommand:
    """A registered slash command."""

    name: str
    description: str
    handler: Callable[[ShellContext, str], None]


# -- Handlers --------------------------------------------------------------


def _cmd_help(ctx: ShellContext, args: str) -> None:
    """List available slash commands."""
    from rich.table import Table

    table = Table(title="Slash Commands", border_style="accent", expand=False)
    table.add_column("Command", style="accent")
    table.add_column("Description")
    for cmd in COMMANDS.values():
        table.add_row(f"/{cmd.name}", cmd.description)
    console.print(table)


def _cmd_cwd(ctx: ShellContext, args: str) -> None:
    """Show or change the working directory for subsequent commands."""
    target = args.strip()
    if not target:
        console.print(f"[info]{ctx.cwd}[/info]")
        return

    path = Path(target).expanduser()
    if not path.is_absolute():
        path = Path(ctx.cwd) / path
    path = path.resolve()
    if not path.is_dir():
        console.print(f"[bold red]Not a directory:[/bold red] {path}")
        return
    ctx.cwd = str(path)
    console.print(f"[success]cwd → {ctx.cwd}[/success]")


def _cmd_timeout(ctx: ShellContext, args: str) -> None:
    """Show or set the per-command timeout (seconds, or 'none')."""
    value = args.strip().lower()
    if not value:
        shown = f"{ctx.timeout:g}s" if ctx.timeout else "none"
        console.print(f"[info]Timeout: {shown}[/info]")
        return

    if value in ("none", "0", "off"):
        ctx.timeout = None
        console.print("[success]Timeout disabled.[/success]")
        return

    try:
        seconds = float(value)
    except ValueError:
        console.print(f"[bold red]Invalid timeout:[/bold red] {args}")
        console.print("[dim]Use a number of seconds or 'none'.[/dim]")
        return
    if seconds < 0:
        console.print("[bold red]Timeout must not be negative.[/bold red]")
        return
    ctx.timeout = seconds
    console.print(f"[success]Timeout set to {seconds:g}s.[/success]")


def _cmd_history(ctx: ShellContext, args: str) -> None:
    """Show commands run in this session."""
    if not ctx.history:
        console.print("[dim]No commands run yet.[/dim]")
        return
    lines = [f"  [accent]{i + 1}.[/accent] {escape_markup(cmd)}" for i, cmd in enumerate(ctx.history)]
    console.print(f"[info]Session history ({len(ctx.history)}):[/info]")
    console.print("\n".join(lines), highlight=False)


def _cmd_clear(ctx: ShellContext, args: str) -> None:
    """Clear the screen."""
    console.clear()


# -- Registry --------------------------------------------------------------

COMMANDS: dict[str, SlashCommand] = {
    "help": SlashCommand("help", "List available slash commands", _cmd_help),
    "cwd": SlashCommand("cwd", "Show or change the working directory", _cmd_cwd),
    "timeout": SlashCommand("timeout", "Show or set the command timeout", _cmd_timeout),
    "history": SlashCommand("history", "Show commands run this session", _cmd_history),
    "clear": SlashCommand("clear", "Clear the screen", _cmd_clear),
}


# -- Dispatch --------------------------------------------------------------


def dispatch(raw_input: str, ctx: ShellContext) -> bool:
    """Route slash-command input to the appropriate handler.

    Returns False when the input is not a slash command and should be run
    as a shell command instead.
    """
    if not raw_input.startswith("/"):
        return False

    parts = raw_input[1:].split(maxsplit=1)
    name = parts[0].lower() if parts else ""
    args = parts[1] if len(parts) > 1 else ""

    cmd = COMMANDS.get(name)
    if cmd is None:
        console.print(f"[bold red]Unknown command:[/bold red] /{name}")
        console.print("[dim]Type /help to see available commands.[/dim]")
        return True

    cmd.handler(ctx, args)
    return True
