"""Process runner: spawn a shell, drain both pipes, enforce a deadline.

Both pipes get their own reader thread *before* the caller blocks. Draining
one stream to EOF while the other fills its OS buffer would stall the child
on its own write and deadlock us.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import IO, Protocol, runtime_checkable

from opentelemetry import trace

from gbx_cli.process.errors import TimedOut
from gbx_cli.process.escape import escape_token
from gbx_cli.process.reaper import DEFAULT_GRACE, ProcessHandle, TreeStrategy, kill_tree
from gbx_cli.process.shell import resolve_shell

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer(__name__)

# Keeps cmd.exe from flashing a console window; 0 elsewhere
_CREATION_FLAGS = getattr(subprocess, "CREATE_NO_WINDOW", 0)

# POSIX children get their own process group so strays can be swept with killpg
_NEW_SESSION = os.name == "posix"

# Backoff bounds for the non-reaping exit poll
_POLL_MIN = 0.0005
_POLL_MAX = 0.05

_UNSET = object()


@dataclass(frozen=True)
class ExecutionRequest:
    command: str
    cwd: str | None = None
    timeout: float | None = None  # seconds; None waits forever


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    stdout: tuple[str, ...]
    stderr: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@runtime_checkable
class ProcessExecutorProtocol(Protocol):
    """Anything that can run a command line and hand back its output."""

    def execute(
        self, command: str, cwd: str | None = None, timeout: float | None = ...,
    ) -> ExecutionResult: ...


class ProcessExecutor:
    """Run command lines through the host shell.

    Output is buffered per run; each call resets the buffers. An instance
    must not be used by two executions at the same time.
    """

    def __init__(
        self,
        timeout: float | None = None,
        *,
        kill_grace: float = DEFAULT_GRACE,
        platform: str | None = None,
        strategy: TreeStrategy | None = None,
        tracer: trace.Tracer | None = None,
    ):
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.platform = platform
        self.strategy = strategy
        self._tracer = tracer or _tracer
        self._stdout: list[str] = []
        self._stderr: list[str] = []

    def execute(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = _UNSET,  # type: ignore[assignment]
    ) -> ExecutionResult:
        """Run *command*; *timeout* defaults to the executor's own timeout."""
        if timeout is _UNSET:
            timeout = self.timeout
        return self.run(ExecutionRequest(command, cwd=cwd, timeout=timeout))

    def run(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute *request* and return its result.

        Raises UnsupportedPlatform before spawning, TimedOut when the deadline
        passes (after the process tree has been reaped), and lets the OSError
        from a failed spawn propagate unchanged.
        """
        shell = resolve_shell(self.platform)
        cwd = request.cwd or os.getcwd()

        with self._tracer.start_as_current_span("process.execute") as span:
            span.set_attribute("process.command", request.command)
            span.set_attribute("process.cwd", cwd)
            if request.timeout is not None:
                span.set_attribute("process.timeout", request.timeout)

            self._stdout = []
            self._stderr = []

            proc = subprocess.Popen(
                shell.command_line(request.command),
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                creationflags=_CREATION_FLAGS,
                start_new_session=_NEW_SESSION,
            )
            span.set_attribute("process.pid", proc.pid)
            root = ProcessHandle.open(proc.pid)
            readers = [
                _start_reader(proc.stdout, self._stdout, "stdout"),
                _start_reader(proc.stderr, self._stderr, "stderr"),
            ]
            logger.debug(
                "spawned pid %d: %s", proc.pid,
                " ".join(escape_token(arg, shell.family) for arg in (shell.binary, shell.flag, request.command)),
            )

            try:
                self._wait(proc, root, readers, request)
            except TimedOut:
                span.set_attribute("process.timed_out", True)
                raise
            finally:
                self._teardown(proc, root, readers)

            result = ExecutionResult(
                exit_code=proc.returncode,
                stdout=tuple(self._stdout),
                stderr=tuple(self._stderr),
            )
            span.set_attribute("process.timed_out", False)
            span.set_attribute("process.exit_code", result.exit_code)
            span.set_attribute("process.stdout_lines", len(result.stdout))
            span.set_attribute("process.stderr_lines", len(result.stderr))
            return result

    def _wait(
        self,
        proc: subprocess.Popen,
        root: ProcessHandle | None,
        readers: list[threading.Thread],
        request: ExecutionRequest,
    ) -> None:
        deadline = None if request.timeout is None else time.monotonic() + request.timeout
        if root is not None and _NEW_SESSION:
            # Leave the shell unreaped: its pid names the group swept in teardown
            if not _wait_exited(root, deadline):
                raise TimedOut(request.command, request.timeout)
        else:
            try:
                proc.wait(timeout=request.timeout)
            except subprocess.TimeoutExpired:
                raise TimedOut(request.command, request.timeout) from None

        # A background grandchild can keep the pipes open past the shell's exit
        for reader in readers:
            reader.join(_remaining(deadline))
            if reader.is_alive():
                raise TimedOut(request.command, request.timeout, pipes_open=True)

    def _teardown(
        self,
        proc: subprocess.Popen,
        root: ProcessHandle | None,
        readers: list[threading.Thread],
    ) -> None:
        """Reap the tree rooted at *proc*. Never raises."""
        if root is not None:
            try:
                kill_tree(root, self.kill_grace, self.strategy)
            except Exception as e:
                logger.debug("teardown of pid %d failed: %s", proc.pid, e)
            finally:
                root.close()
        if proc.returncode is None:
            _sweep_group(proc.pid)

        # Collect the exit status so the shell does not linger as a zombie
        proc.poll()
        for reader in readers:
            reader.join(self.kill_grace)


def _start_reader(stream: IO[str] | None, buffer: list[str], name: str) -> threading.Thread:
    thread = threading.Thread(
        target=_drain, args=(stream, buffer), name=f"gbx-{name}-reader", daemon=True,
    )
    thread.start()
    return thread


def _drain(stream: IO[str] | None, buffer: list[str]) -> None:
    """Append every line of *stream* to *buffer* (sole writer) until EOF."""
    if stream is None:
        return
    try:
        for line in stream:
            buffer.append(line.rstrip("\r\n"))
    except (OSError, ValueError) as e:
        logger.debug("reader stopped: %s", e)
    finally:
        stream.close()


def _wait_exited(root: ProcessHandle, deadline: float | None) -> bool:
    """Poll *root* without reaping it. False if *deadline* passes first."""
    delay = _POLL_MIN
    while root.is_alive():
        remaining = _remaining(deadline)
        if remaining == 0:
            return False
        time.sleep(delay if remaining is None else min(delay, remaining))
        delay = min(delay * 2, _POLL_MAX)
    return True


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


def _sweep_group(pgid: int) -> None:
    """Kill whatever is left in the shell's process group.

    Only valid while the shell is unreaped, so *pgid* cannot have been reused.

    Catches descendants whose parent exited before teardown, which parent-id
    discovery can no longer reach.
    """
    if not _NEW_SESSION:
        return
    try:
        os.killpg(pgid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
