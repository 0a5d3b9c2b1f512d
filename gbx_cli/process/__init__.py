"""Process execution engine — shell runner and process tree reaper."""

from gbx_cli.process.errors import ProcessError, TimedOut, UnsupportedPlatform
from gbx_cli.process.escape import ShellFamily, escape, escape_token
from gbx_cli.process.shell import ShellSpec, host_family, resolve_shell
from gbx_cli.process.reaper import (
    ChildListStrategy,
    HandleTableStrategy,
    ProcessHandle,
    TreeStrategy,
    default_strategy,
    kill_tree,
)
from gbx_cli.process.runner import (
    ExecutionRequest,
    ExecutionResult,
    ProcessExecutor,
    ProcessExecutorProtocol,
)

__all__ = [
    "ProcessError",
    "TimedOut",
    "UnsupportedPlatform",
    "ShellFamily",
    "escape",
    "escape_token",
    "ShellSpec",
    "host_family",
    "resolve_shell",
    "ChildListStrategy",
    "HandleTableStrategy",
    "ProcessHandle",
    "TreeStrategy",
    "default_strategy",
    "kill_tree",
    "ExecutionRequest",
    "ExecutionResult",
    "ProcessExecutor",
    "ProcessExecutorProtocol",
]
