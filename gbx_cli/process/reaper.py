"""Process tree reaper.

Discovers every live descendant of a root process, then terminates the tree
leaves-to-root. Discovery always completes before the first signal: once a
parent dies its children are re-parented and can no longer be found by
parent id.

Two discovery strategies share one interface and are selected once per
interpreter by ``default_strategy()``:

- HandleTableStrategy: scan the full process table, keep candidates whose
  parent id matches and whose start time is later (Windows model, query
  handles pinned open across validate -> act).
- ChildListStrategy: ask ``pgrep -P`` for one level of children at a time
  (POSIX model).

"Already gone" and "access denied" are expected races and never raise.
"""

from __future__ import annotations

import contextlib
import functools
import logging
import subprocess
import sys
import time
from typing import Protocol, runtime_checkable

import psutil

from gbx_cli.process import _native

logger = logging.getLogger(__name__)

DEFAULT_GRACE = 1.0

# pgrep is itself a process; never let one listing hang teardown
_DISCOVERY_TIMEOUT = 5.0
_POLL_INTERVAL = 0.05

# /proc and BSD start times tick at 1/CLK_TCK, so a fast fork can share its
# parent's timestamp. Windows FILETIME resolution makes a tie impossible.
_START_TIME_TIE_IS_CHILD = sys.platform != "win32"

_RACE_ERRORS = (psutil.NoSuchProcess, psutil.AccessDenied, ProcessLookupError, PermissionError)


class ProcessHandle:
    """A process id pinned to its start time, plus any retained OS handle.

    Use as a context manager or call ``close()``; closing twice is harmless.
    """

    def __init__(self, process: psutil.Process, start_time: float, native: int | None = None):
        self._process = process
        self.start_time = start_time
        self._native = native
        self.closed = False

    @classmethod
    def open(cls, pid: int) -> ProcessHandle | None:
        """Open *pid* for querying. Returns None if the process is already gone."""
        try:
            process = psutil.Process(pid)
            start_time = process.create_time()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return None
        native = _native.open_query_handle(pid)
        if sys.platform == "win32" and native is None:
            return None
        return cls(process, start_time, native)

    @property
    def pid(self) -> int:
        return self._process.pid

    def parent_pid(self) -> int:
        """Parent id as reported by the OS, or 0 when it cannot be read."""
        try:
            return self._process.ppid()
        except _RACE_ERRORS:
            return 0

    def started_after(self, other: ProcessHandle) -> bool:
        if self.start_time == other.start_time:
            return _START_TIME_TIE_IS_CHILD
        return self.start_time > other.start_time

    def is_child_of(self, parent: ProcessHandle) -> bool:
        """Both checks are needed: parent ids alone are recycled by the OS."""
        if self.pid == parent.pid:
            return False
        return self.started_after(parent) and self.parent_pid() == parent.pid

    def is_alive(self) -> bool:
        """Non-reaping liveness check; zombies count as exited."""
        try:
            return self._process.is_running() and self._process.status() != psutil.STATUS_ZOMBIE
        except _RACE_ERRORS:
            return False

    def terminate(self) -> None:
        try:
            self._process.terminate()
        except _RACE_ERRORS as e:
            logger.debug("terminate pid %d: already gone (%s)", self.pid, e)

    def kill(self) -> None:
        try:
            self._process.kill()
        except _RACE_ERRORS as e:
            logger.debug("kill pid %d: already gone (%s)", self.pid, e)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        _native.close_handle(self._native)
        self._native = None

    def __enter__(self) -> ProcessHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, start_time={self.start_time})"


# -- Strategies ------------------------------------------------------------


@runtime_checkable
class TreeStrategy(Protocol):
    """One-level child discovery. Kept handles must be registered on *stack*."""

    name: str

    def children(self, parent: ProcessHandle, stack: contextlib.ExitStack) -> list[ProcessHandle]: ...


class HandleTableStrategy:
    """Scan the whole process table for children of *parent*."""

    name: str = "handle-table"

    def children(self, parent: ProcessHandle, stack: contextlib.ExitStack) -> list[ProcessHandle]:
        found: list[ProcessHandle] = []
        for candidate in psutil.process_iter():
            if candidate.pid == parent.pid:
                continue
            handle = ProcessHandle.open(candidate.pid)
            if handle is None:
                continue
            # Hold the handle through validation so the id cannot be recycled
            # under us; only qualifying children keep it open past this point.
            keep = False
            try:
                keep = handle.is_child_of(parent)
            finally:
                if keep:
                    found.append(stack.enter_context(handle))
                else:
                    handle.close()
        return found


class ChildListStrategy:
    """List children with ``pgrep -P``, one level per invocation."""

    name: str = "child-list"

    def children(self, parent: ProcessHandle, stack: contextlib.ExitStack) -> list[ProcessHandle]:
        found: list[ProcessHandle] = []
        for pid in list_child_pids(parent.pid):
            handle = ProcessHandle.open(pid)
            if handle is None:
                continue
            if handle.is_child_of(parent):
                found.append(stack.enter_context(handle))
            else:
                handle.close()
        return found


def list_child_pids(pid: int) -> list[int]:
    """Return the ids ``pgrep -P`` reports for *pid* (empty on any failure)."""
    try:
        completed = subprocess.run(
            ["pgrep", "-P", str(pid)],
            capture_output=True,
            text=True,
            timeout=_DISCOVERY_TIMEOUT,
        )
    except FileNotFoundError:
        logger.warning("pgrep not found; cannot list children of pid %d", pid)
        return []
    except subprocess.TimeoutExpired:
        logger.debug("pgrep -P %d timed out", pid)
        return []

    # pgrep exits 1 when nothing matched
    if completed.returncode != 0:
        return []
    return [int(line) for line in completed.stdout.split() if line.isdigit()]


@functools.cache
def default_strategy() -> TreeStrategy:
    """Probe the OS once and return the matching discovery strategy."""
    if sys.platform == "win32":
        return HandleTableStrategy()
    return ChildListStrategy()


# -- Reaping ---------------------------------------------------------------


def discover_tree(
    root: ProcessHandle,
    strategy: TreeStrategy,
    stack: contextlib.ExitStack,
) -> list[ProcessHandle]:
    """Return all descendants of *root* in post-order (children before parents).

    Every returned handle stays open until *stack* unwinds.
    """
    tree: list[ProcessHandle] = []
    for child in strategy.children(root, stack):
        tree.extend(discover_tree(child, strategy, stack))
        tree.append(child)
    return tree


def kill_tree(
    root: ProcessHandle,
    grace: float = DEFAULT_GRACE,
    strategy: TreeStrategy | None = None,
) -> None:
    """Terminate *root* and all of its descendants, leaves first.

    Waits up to *grace* seconds for the tree to exit, then force-kills any
    survivor without waiting further. Safe to call on a root that is already
    gone, and safe to call repeatedly. The caller keeps ownership of *root*.
    """
    if not root.is_alive():
        logger.debug("pid %d already exited; nothing to reap", root.pid)
        return

    strategy = strategy or default_strategy()
    with contextlib.ExitStack() as stack:
        tree = discover_tree(root, strategy, stack)
        members = [*tree, root]
        logger.debug(
            "reaping pid %d with %d descendant(s) via %s",
            root.pid, len(tree), strategy.name,
        )

        for handle in members:
            handle.terminate()

        if not _wait_exited(members, grace):
            for handle in members:
                if handle.is_alive():
                    logger.debug("pid %d survived %.1fs grace; killing", handle.pid, grace)
                    handle.kill()


def _wait_exited(handles: list[ProcessHandle], timeout: float) -> bool:
    """Poll until every handle has exited or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while True:
        if not any(h.is_alive() for h in handles):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(_POLL_INTERVAL)
