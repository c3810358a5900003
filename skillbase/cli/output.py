"""Terminal output helpers for the skillbase CLI.

ANSI colors are disabled when stdout is not a TTY or when the
``NO_COLOR`` environment variable is set.
"""

from __future__ import annotations

import os
import sys


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if not hasattr(sys.stdout, "isatty"):
        return False
    return sys.stdout.isatty()


_COLOR = _supports_color()


def _ansi(code: str, text: str) -> str:
    if not _COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def bold(text: str) -> str:
    return _ansi("1", text)


def dim(text: str) -> str:
    return _ansi("2", text)


def green(text: str) -> str:
    return _ansi("32", text)


def yellow(text: str) -> str:
    return _ansi("33", text)


def red(text: str) -> str:
    return _ansi("31", text)


def cyan(text: str) -> str:
    return _ansi("36", text)


_STATUS_COLORS = {
    "completed": green,
    "synced": green,
    "success": green,
    "pending": yellow,
    "generating": cyan,
    "error": red,
    "failed": red,
}

_CONFIDENCE_COLORS = {"high": green, "medium": yellow, "low": red}


def status(value: str | None) -> str:
    """Colorize an item, entry or sync-log status."""
    if value is None:
        return dim("unknown")
    return _STATUS_COLORS.get(value, str)(value)


def confidence(value: str | None) -> str:
    if not value:
        return dim("-")
    first = value.split()[0].strip(".,").lower()
    return _CONFIDENCE_COLORS.get(first, str)(value)


# ── Structured output ───────────────────────────────────────────────


def header(title: str) -> None:
    print(f"\n{bold(title)}")


def success(msg: str) -> None:
    print(f"  {green('✓')} {msg}")


def warn(msg: str) -> None:
    print(f"  {yellow('!')} {msg}")


def error(msg: str) -> None:
    print(f"  {red('✗')} {msg}", file=sys.stderr)


def info(msg: str) -> None:
    print(f"  {msg}")


def kv(key: str, value: object, indent: int = 2) -> None:
    pad = " " * indent
    print(f"{pad}{dim(str(key) + ':')}  {value}")


def progress(done: int, total: int, label: str) -> None:
    """One line per processed item: ``[ 3/10] label``."""
    width = len(str(total))
    print(f"  {dim(f'[{done:>{width}}/{total}]')} {label}")


def next_step(command: str, description: str = "") -> None:
    desc = f"  {dim(description)}" if description else ""
    print(f"    {cyan(command)}{desc}")
