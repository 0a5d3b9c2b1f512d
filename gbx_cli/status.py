"""Environment / health checks and status table rendering."""

import os
import platform
import shutil
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path

from rich.table import Table

from gbx_cli import terminal
from gbx_cli.config import settings, JOURNAL_DB, project_config_path
from gbx_cli.process import ShellFamily, UnsupportedPlatform, default_strategy, resolve_shell


_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def get_version() -> str:
    return tomllib.loads(_PYPROJECT.read_text())["project"]["version"]


@dataclass
class StatusInfo:
    version: str
    platform: str  # "Linux 6.8 (linux)"
    shell: str  # "/bin/bash -c" | "unsupported (<platform>)"
    shell_ok: bool
    login_shell: str | None  # first usable of bash/zsh/ksh/csh; None off POSIX
    reaper: str  # strategy name
    pgrep: str | None  # path to pgrep, None when missing
    terminal: str  # "120x40"
    cwd: str  # basename
    timeout: str  # "30s" | "none"
    kill_grace: float
    journal: str  # "1.2 KB" | "disabled" | "empty"
    project_config: str | None  # path to .gbx-cli/settings.json or None


def get_status() -> StatusInfo:
    """Gather system status into a plain dataclass (no display side-effects)."""

    # -- shell --
    try:
        spec = resolve_shell()
        shell = f"{spec.binary} {spec.flag}"
        shell_ok = True
    except UnsupportedPlatform:
        shell = f"unsupported ({sys.platform})"
        shell_ok = False

    # -- login shell --
    login_shell = None
    if shell_ok and spec.family is ShellFamily.POSIX:
        login_shell = terminal.detect_posix_shell()

    # -- journal --
    if not settings.journal_enabled:
        journal = "disabled"
    elif JOURNAL_DB.exists():
        journal = f"{os.path.getsize(JOURNAL_DB) / 1024:.1f} KB"
    else:
        journal = "empty"

    return StatusInfo(
        version=get_version(),
        platform=f"{platform.system()} {platform.release()} ({sys.platform})",
        shell=shell,
        shell_ok=shell_ok,
        login_shell=login_shell,
        reaper=default_strategy().name,
        pgrep=shutil.which("pgrep"),
        terminal=f"{terminal.width()}x{terminal.height()}",
        cwd=Path.cwd().name,
        timeout=f"{settings.timeout:g}s" if settings.timeout else "none",
        kill_grace=settings.kill_grace,
        journal=journal,
        project_config=str(project_config_path) if project_config_path else None,
    )


def render_status_table(info: StatusInfo) -> Table:
    """Build a Rich Table from StatusInfo using semantic styles."""
    table = Table(title=f"gbx v{info.version} — {info.platform}")
    table.add_column("Component", style="accent")
    table.add_column("Status", style="info")
    table.add_column("Details", style="success")

    table.add_row("Shell", "Active" if info.shell_ok else "Unavailable", info.shell)
    table.add_row("Reaper", "Active", info.reaper)
    if sys.platform != "win32":
        table.add_row("Login shell", "Found" if info.login_shell else "Missing", info.login_shell or "no bash/zsh/ksh/csh")
        table.add_row("pgrep", "Found" if info.pgrep else "Missing", info.pgrep or "children cannot be listed")
    table.add_row("Timeout", info.timeout, f"grace {info.kill_grace:g}s")
    table.add_row("Journal", "Disabled" if info.journal == "disabled" else "Active", info.journal)
    table.add_row("Directory", "—", info.cwd)
    table.add_row("Terminal", "—", info.terminal)
    if info.project_config:
        table.add_row("Project Config", "Active", info.project_config)

    return table
