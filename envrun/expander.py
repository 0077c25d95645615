"""
Expansion of ``{{ NAME }}`` placeholders in the child's arguments.

Names are looked up in the variable store first and in the inherited
environment second. Unknown names produce a diagnostic and the placeholder
is passed through unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os
import re
import shlex
import subprocess
from typing import TextIO

from .store import VariableStore

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"{{\s*(.+?)\s*}}")


def expand_argument(
    argument: str,
    store: VariableStore,
    environ: Mapping[str, str],
    diagnostics: TextIO,
) -> str:
    """Replace every placeholder in a single argument, left to right."""

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        value = store.get(name)
        if value is None:
            value = environ.get(name)
        if value is None:
            print(
                f"[envrun] unknown variable: {name} (in argument '{argument}')",
                file=diagnostics,
                flush=True,
            )
            return match.group(0)
        return value

    return PLACEHOLDER_PATTERN.sub(_replace, argument)


def expand_arguments(
    arguments: Sequence[str],
    store: VariableStore,
    environ: Mapping[str, str],
    diagnostics: TextIO,
) -> list[str]:
    expanded = [expand_argument(arg, store, environ, diagnostics) for arg in arguments]
    logger.debug("Expanded arguments: %s", format_command_line(expanded))
    return expanded


def format_command_line(arguments: Sequence[str]) -> str:
    """Quote arguments the way the platform's command line expects.

    Arguments containing whitespace end up quoted. ``subprocess`` applies
    the same convention when it creates the child from an argv list.
    """
    if os.name == "nt":
        return subprocess.list2cmdline(arguments)
    return shlex.join(arguments)
