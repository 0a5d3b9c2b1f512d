"""Failure taxonomy for process execution.

Spawn failures are not wrapped: the OSError raised by the OS propagates as-is.
Tree-teardown races never surface here; the reaper swallows them.
"""


class ProcessError(RuntimeError):
    """Base class for execution failures raised by the engine."""


class UnsupportedPlatform(ProcessError):
    """No shell mapping exists for the host OS. Fatal, raised before any spawn."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(
            f"The operating system '{platform}' does not support executing the command line."
        )


class TimedOut(ProcessError):
    """The process exceeded its deadline. Its exit code and output are discarded."""

    def __init__(self, command: str, timeout: float, pipes_open: bool = False):
        self.command = command
        self.timeout = timeout
        # The shell exited in time but a descendant still held its output pipes
        self.pipes_open = pipes_open
        message = f"Command timed out after {timeout:g}s: {command}"
        if pipes_open:
            message += " (the shell exited; a background process kept its output open)"
        super().__init__(message)
