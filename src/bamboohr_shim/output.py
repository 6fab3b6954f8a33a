"""Diagnostics and result rendering for bamboohr-shim.

Two streams, never mixed:

* **stdout** carries API results only, and only the CLI writes to it.
  Inside an agent tool server stdout is the protocol channel, so the
  client only ever writes to stderr.
* **stderr** carries every diagnostic: request traces, cache hits and
  misses, rate-limit retries, errors.

Rendering follows the terminal. Rich syntax highlighting is used when
stdout is a TTY and colour is allowed (``NO_COLOR``, ``TERM=dumb`` and
``--no-color`` all turn it off), plain text otherwise.

A single :class:`OutputManager` is installed per process with
:func:`set_output`; library code reaches it through :func:`get_output` or
the module-level shortcuts (:func:`info`, :func:`warning`, ...).
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, NamedTuple, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text


class OutputFormat(str, Enum):
    """How results are written to stdout.

    ``AUTO`` becomes ``RICH`` on a colour-capable TTY and ``PLAIN``
    everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class _Level(NamedTuple):
    prefix: str
    style: str
    quietable: bool


_LEVELS: dict[str, _Level] = {
    "info": _Level("", "", True),
    "success": _Level("", "green", True),
    "warning": _Level("Warning: ", "yellow", False),
    "error": _Level("Error: ", "bold red", False),
    "debug": _Level("[debug] ", "dim", False),
}


class OutputManager:
    """Process-wide output settings plus the two Rich consoles.

    Args:
        format: Result format for stdout.
        no_color: Disable colour on both streams.
        quiet: Drop ``info`` and ``success`` messages. Warnings and errors
            are always shown.
        verbose: Show ``debug`` messages (request traces, cache activity).
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            use_rich = _is_tty() and not self._no_color
            format = OutputFormat.RICH if use_rich else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
            highlight=False,
        )
        self._stderr = Console(file=sys.stderr, stderr=True, no_color=self._no_color)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # Results (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Write an API result to stdout.

        *data* is whatever the client returned: a JSON mapping or list, or
        the raw text of an XML/CSV report.
        """
        if self._format == OutputFormat.JSON:
            self.print_data(_as_json(data))
        elif self._format == OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
        elif isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_as_json(data), "json", theme="monokai", word_wrap=True))
        elif isinstance(data, str) and data.lstrip().startswith("<"):
            self._stdout.print(Syntax(data, "xml", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(str(data), markup=False)

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def debug(self, message: str) -> None:
        """Only shown with ``--verbose``."""
        if self._verbose:
            self._emit("debug", message)

    def _emit(self, name: str, message: str) -> None:
        level = _LEVELS[name]
        if level.quietable and self._quiet:
            return
        if self._no_color:
            print(f"{level.prefix}{message}", file=sys.stderr, flush=True)
            return

        # Text objects are never parsed as markup; messages may quote upstream text.
        if level.prefix:
            text = Text.assemble((level.prefix, level.style), message)
        else:
            text = Text(message, style=level.style)
        self._stderr.print(text)


def _as_json(data: Any) -> str:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return data
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _plain_lines(data: Any) -> list[str]:
    """Tab-separated rendering: one line per key, or one line per list row."""
    if isinstance(data, dict):
        return [f"{key}\t{value}" for key, value in data.items()]
    if isinstance(data, list):
        return [
            "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
            for item in data
        ]
    return [str(data)]


# ------------------------------------------------------------------ #
# Environment probes
# ------------------------------------------------------------------ #


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb`` disables colour."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; the next :func:`get_output` builds a fresh one."""
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
