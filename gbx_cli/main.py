import logging
import os
import time
from pathlib import Path

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory
from rich.logging import RichHandler
from rich.table import Table

from gbx_cli import terminal
from gbx_cli._commands import COMMANDS, ShellContext, dispatch as dispatch_command
from gbx_cli._telemetry import recent_executions, setup_journal
from gbx_cli.banner import display_welcome_banner
from gbx_cli.config import settings, DATA_DIR, JOURNAL_DB
from gbx_cli.display import (
    console,
    display_error,
    display_info,
    display_status,
    render_result,
    set_theme,
    PROMPT_CHAR,
    SUCCESS,
)
from gbx_cli.process import (
    ProcessExecutorProtocol,
    ProcessHandle,
    ShellFamily,
    TimedOut,
    UnsupportedPlatform,
    escape as escape_argument,
    host_family,
    kill_tree,
)
from gbx_cli.status import get_status, get_version, render_status_table

# Exit codes for failures that never produced a child exit code
EXIT_TIMEOUT = 124
EXIT_UNSUPPORTED = 2
EXIT_SPAWN_FAILED = 127

app = typer.Typer(
    help="gbx - run shell commands with timeouts and whole-tree cleanup",
    context_settings={"help_option_names": ["--help", "-h"]},
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine internals (spawn, reaping)"),
    theme: str = typer.Option(None, "--theme", "-t", help="Color theme: dark or light"),
):
    """Configure logging, theme and the execution journal."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    if theme:
        settings.theme = theme
        set_theme(theme)
    if settings.journal_enabled:
        setup_journal(get_version(), str(JOURNAL_DB))


def _execute_or_report(executor: ProcessExecutorProtocol, command: str, cwd: str | None, timeout: float | None):
    """Run *command*, printing any engine failure. Returns (result, exit_code)."""
    try:
        result = executor.execute(command, cwd=cwd, timeout=timeout)
    except TimedOut as e:
        display_error(str(e), hint="The whole process tree was terminated. Raise --timeout for long jobs.")
        return None, EXIT_TIMEOUT
    except UnsupportedPlatform as e:
        display_error(str(e))
        return None, EXIT_UNSUPPORTED
    except OSError as e:
        display_error(f"Could not start shell: {e}", hint="Check the working directory and shell binary.")
        return None, EXIT_SPAWN_FAILED
    return result, result.exit_code


def _effective_timeout(timeout: float | None) -> float | None:
    if timeout is None:
        return settings.timeout
    # 0 on the command line disables the configured timeout
    return timeout or None


@app.command()
def run(
    command: str = typer.Argument(..., help="Command line, passed to the shell verbatim"),
    cwd: Path = typer.Option(None, "--cwd", "-C", help="Working directory (default: current)"),
    timeout: float = typer.Option(None, "--timeout", "-T", min=0, help="Seconds before the tree is killed (0 = none)"),
    raw: bool = typer.Option(False, "--raw", "-r", help="Print output lines without a panel"),
):
    """Run COMMAND through the host shell and exit with its exit code."""
    result, code = _execute_or_report(
        terminal.get_process_executor(), command, str(cwd) if cwd else None, _effective_timeout(timeout),
    )
    if result is not None:
        if raw:
            for line in result.stdout:
                typer.echo(line)
            for line in result.stderr:
                typer.echo(line, err=True)
        else:
            console.print(render_result(command, result))
    raise typer.Exit(code)


@app.command()
def escape(
    arguments: list[str] = typer.Argument(..., help="Arguments to escape"),
    shell: ShellFamily = typer.Option(None, "--shell", "-s", help="Target shell family (default: host)"),
):
    """Print each ARGUMENT escaped for the target shell, one per line."""
    if shell is None:
        try:
            shell = host_family()
        except UnsupportedPlatform as e:
            display_error(str(e), hint="Pass --shell posix or --shell windows.")
            raise typer.Exit(EXIT_UNSUPPORTED)
    for argument in arguments:
        typer.echo(escape_argument(argument, shell))


@app.command("kill-tree")
def kill_tree_command(
    pid: int = typer.Argument(..., help="Root process id"),
    grace: float = typer.Option(None, "--grace", "-g", min=0, help="Seconds to wait before force-killing"),
):
    """Terminate PID and every process it spawned."""
    if pid == os.getpid():
        display_error("Refusing to kill the current process.")
        raise typer.Exit(1)

    root = ProcessHandle.open(pid)
    if root is None:
        display_info(f"Process {pid} is not running.")
        return
    with root:
        display_status(f"Reaping process tree {pid}...")
        kill_tree(root, grace if grace is not None else settings.kill_grace)
        if root.is_alive():
            display_error(f"Process {pid} is still running.", hint="It may belong to another user.")
            raise typer.Exit(1)
    console.print(f"[success]{SUCCESS} Process tree {pid} terminated.[/success]")


def shell_loop(cwd: str, timeout: float | None) -> None:
    ctx = ShellContext(executor=terminal.get_process_executor(), cwd=cwd, timeout=timeout)
    completer = WordCompleter(
        [f"/{name}" for name in COMMANDS],
        sentence=True,
    )
    session = PromptSession(
        history=FileHistory(str(DATA_DIR / "history.txt")),
        completer=completer,
        complete_while_typing=False,
    )

    display_welcome_banner(get_status(), cwd)

    last_interrupt_time = 0.0
    while True:
        try:
            user_input = session.prompt(f"gbx {PROMPT_CHAR} ").strip()
            last_interrupt_time = 0.0  # Reset on successful input
            if user_input.lower() in ["exit", "quit"]:
                break
            if not user_input:
                continue

            # /command: handled in-process, nothing spawned
            if dispatch_command(user_input, ctx):
                continue

            ctx.history.append(user_input)
            result, _ = _execute_or_report(ctx.executor, user_input, ctx.cwd, ctx.timeout)
            if result is not None:
                console.print(render_result(user_input, result))
        except EOFError:
            break
        except KeyboardInterrupt:
            now = time.monotonic()
            if now - last_interrupt_time <= 2.0:
                break
            last_interrupt_time = now
            console.print("\n[dim]Press Ctrl+C again to exit[/dim]")


@app.command()
def shell(
    cwd: Path = typer.Option(None, "--cwd", "-C", help="Starting working directory"),
    timeout: float = typer.Option(None, "--timeout", "-T", min=0, help="Per-command timeout in seconds (0 = none)"),
):
    """Start an interactive shell where every line runs through the engine."""
    start = str(cwd.resolve()) if cwd else os.getcwd()
    shell_loop(start, _effective_timeout(timeout))


@app.command()
def history(
    last: int = typer.Option(None, "--last", "-l", help="Number of executions to show"),
):
    """Show recently journaled executions."""
    entries = recent_executions(last or settings.history_last, str(JOURNAL_DB))
    if not entries:
        console.print("[yellow]No executions journaled yet.[/yellow]")
        return

    table = Table(title="Recent executions")
    table.add_column("Started", style="hint")
    table.add_column("Command", style="accent")
    table.add_column("Result")
    table.add_column("Duration", justify="right")
    table.add_column("Directory", style="hint")
    for entry in entries:
        if entry.timed_out:
            outcome = "[warning]timed out[/warning]"
        elif entry.exit_code is None:
            outcome = f"[error]{entry.status.lower()}[/error]"
        elif entry.exit_code == 0:
            outcome = "[success]exit 0[/success]"
        else:
            outcome = f"[error]exit {entry.exit_code}[/error]"
        duration = f"{entry.duration_ms:.0f} ms" if entry.duration_ms is not None else "—"
        table.add_row(
            entry.started.strftime("%Y-%m-%d %H:%M:%S"),
            entry.command, outcome, duration, entry.cwd,
        )
    console.print(table)


@app.command()
def status():
    """Show platform, shell and reaper configuration."""
    info = get_status()
    console.print(render_status_table(info))


if __name__ == "__main__":
    app()
