"""Win32 process handles via ctypes.

An open query handle pins a process id: Windows will not recycle the id while
any handle to the process object is open. On other platforms there is no such
handle and both functions are no-ops.
"""

import sys

PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
SYNCHRONIZE = 0x00100000

if sys.platform == "win32":
    import ctypes
    from ctypes import wintypes

    _kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
    _kernel32.OpenProcess.restype = wintypes.HANDLE
    _kernel32.OpenProcess.argtypes = (wintypes.DWORD, wintypes.BOOL, wintypes.DWORD)
    _kernel32.CloseHandle.restype = wintypes.BOOL
    _kernel32.CloseHandle.argtypes = (wintypes.HANDLE,)


def open_query_handle(pid: int) -> int | None:
    """Open *pid* for query access. Returns None when it cannot be opened."""
    if sys.platform != "win32":
        return None
    handle = _kernel32.OpenProcess(
        PROCESS_QUERY_LIMITED_INFORMATION | SYNCHRONIZE, False, pid,
    )
    return handle or None


def close_handle(handle: int | None) -> None:
    if handle is None or sys.platform != "win32":
        return
    _kernel32.CloseHandle(handle)
