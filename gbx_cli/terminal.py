"""Process-wide terminal facade.

One shared executor behind module-level ``execute()`` calls, swappable for
tests or embedding (``set_process_executor``), plus terminal dimensions that
environment variables can pin.
"""

import functools
import os
import shutil

from gbx_cli.process import ExecutionResult, ProcessExecutor, ProcessExecutorProtocol

BUFFER_WIDTH_ENV = "GBX_CLI_BUFFER_WIDTH"
BUFFER_HEIGHT_ENV = "GBX_CLI_BUFFER_HEIGHT"

# Size reported when no terminal is attached
_FALLBACK_SIZE = (80, 80)

# Login shells probed, in order, by detect_posix_shell()
_CANDIDATE_SHELLS = ("bash", "zsh", "ksh", "csh")

_executor: ProcessExecutorProtocol | None = None


def get_process_executor() -> ProcessExecutorProtocol:
    """Return the shared executor, creating a ProcessExecutor on first use."""
    global _executor
    if _executor is None:
        from gbx_cli.config import settings

        _executor = ProcessExecutor(settings.timeout, kill_grace=settings.kill_grace)
    return _executor


def set_process_executor(executor: ProcessExecutorProtocol | None) -> None:
    """Replace the shared executor; None restores the default on next use."""
    global _executor
    _executor = executor
    detect_posix_shell.cache_clear()


def execute(command: str, cwd: str | None = None, **kwargs) -> ExecutionResult:
    """Run *command* through the shared executor.

    Accepts ``timeout=`` to override the executor's default for this call.
    """
    return get_process_executor().execute(command, cwd, **kwargs)


def _env_int(name: str) -> int | None:
    value = os.getenv(name, "").strip()
    if value.isdigit() and int(value) > 0:
        return int(value)
    return None


def pinned_size() -> tuple[int | None, int | None]:
    """(columns, rows) pinned by the environment; None where not pinned."""
    return _env_int(BUFFER_WIDTH_ENV), _env_int(BUFFER_HEIGHT_ENV)


def width() -> int:
    """Terminal columns; GBX_CLI_BUFFER_WIDTH wins over the real size."""
    return _env_int(BUFFER_WIDTH_ENV) or shutil.get_terminal_size(_FALLBACK_SIZE).columns


def height() -> int:
    """Terminal rows; GBX_CLI_BUFFER_HEIGHT wins over the real size."""
    return _env_int(BUFFER_HEIGHT_ENV) or shutil.get_terminal_size(_FALLBACK_SIZE).lines


@functools.cache
def detect_posix_shell() -> str | None:
    """Return the first usable shell among bash/zsh/ksh/csh, or None.

    Result is cached until the executor is replaced.
    """
    if not os.path.exists("/usr/bin/env"):
        return None
    for name in _CANDIDATE_SHELLS:
        result = execute(f"/usr/bin/env {name} -c 'echo OK' 2> /dev/null")
        if result.stdout[:1] == ("OK",):
            return name
    return None
