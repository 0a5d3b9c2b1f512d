"""Shell argument escaping.

Pure functions: the target shell family is always passed in, never detected.
"""

import enum
import re


class ShellFamily(enum.Enum):
    POSIX = "posix"      # bash/sh single-quote model
    WINDOWS = "windows"  # cmd.exe double-quote model


EMPTY_ARGUMENT = '""'

# Characters that force cmd.exe quoting
_NEEDS_QUOTING_RE = re.compile(r'[()%!^"<>&|\s]')
_QUOTE_SPLIT_RE = re.compile(r'(")')
_SAFE_TOKEN_RE = re.compile(r"^[\w-]+$")


def escape(argument: str | None, family: ShellFamily) -> str:
    """Escape *argument* so that *family*'s tokenizer reads it back as one word."""
    if not argument:
        return EMPTY_ARGUMENT

    if family is ShellFamily.POSIX:
        return "'" + argument.replace("'", "'\\''") + "'"

    return _escape_windows(argument)


def _escape_windows(argument: str) -> str:
    # NUL cannot travel through a Windows command line
    argument = argument.replace("\0", "?")

    if not _NEEDS_QUOTING_RE.search(argument):
        return argument

    parts: list[str] = []
    quote = False
    for part in _QUOTE_SPLIT_RE.split(argument):
        if not part:
            continue
        if part == '"':
            parts.append('\\"')
        elif _is_surrounded_by(part, "%"):
            # ^% keeps cmd from expanding %VAR% inside the quoted argument
            parts.append(f'^%"{part[1:-1]}"^%')
        else:
            parts.append(part)
            # A trailing backslash would otherwise escape the quote that follows
            if part.endswith("\\"):
                parts.append("\\")
            quote = True

    escaped = "".join(parts)
    return f'"{escaped}"' if quote else escaped


def _is_surrounded_by(text: str, char: str) -> bool:
    return len(text) > 2 and text[0] == char and text[-1] == char


def escape_token(token: str, family: ShellFamily) -> str:
    """Return *token* untouched when it is a plain word, else escape it."""
    if _SAFE_TOKEN_RE.match(token):
        return token
    return escape(token, family)
