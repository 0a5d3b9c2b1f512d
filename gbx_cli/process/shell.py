"""Shell resolution: host OS family -> shell binary and invocation flag."""

import sys
from dataclasses import dataclass

from gbx_cli.process.escape import ShellFamily
from gbx_cli.process.errors import UnsupportedPlatform


@dataclass(frozen=True)
class ShellSpec:
    """A shell binary plus the flag that makes it run one command and exit."""

    family: ShellFamily
    binary: str
    flag: str

    def wrap(self, command: str) -> str:
        """Render the invocation arguments, e.g. ``/c "dir"`` or ``-c "ls"``."""
        return f'{self.flag} "{command}"'

    def command_line(self, command: str) -> str | list[str]:
        """Build the spawn argument for subprocess.Popen.

        cmd.exe gets a verbatim command line string: Popen would otherwise
        re-quote the list with MSVCRT rules that cmd does not understand.
        POSIX shells get an argv list so the command reaches ``-c`` untouched.
        """
        if self.family is ShellFamily.WINDOWS:
            return f"{self.binary} {self.wrap(command)}"
        return [self.binary, self.flag, command]


_WINDOWS_SHELL = ShellSpec(ShellFamily.WINDOWS, "cmd.exe", "/c")
_POSIX_SHELL = ShellSpec(ShellFamily.POSIX, "/bin/bash", "-c")


def host_family(platform: str | None = None) -> ShellFamily:
    """Map a ``sys.platform`` value to its shell family."""
    return resolve_shell(platform).family


def resolve_shell(platform: str | None = None) -> ShellSpec:
    """Return the shell for *platform* (defaults to the running interpreter's).

    Raises UnsupportedPlatform for anything other than Windows, Linux or macOS.
    """
    platform = platform or sys.platform
    if platform == "win32":
        return _WINDOWS_SHELL
    if platform.startswith("linux") or platform == "darwin":
        return _POSIX_SHELL
    raise UnsupportedPlatform(platform)
