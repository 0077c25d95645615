"""
Parser for the commands child processes embed in their output.

    @@envrun[set name='<name>' value='<value>']
    @@envrun[reset name='<name>']

A line may carry any number of expressions; they are returned in the
order they appear. Quoted captures are non-greedy, so a quote inside a
name or value ends the capture early. That is part of the wire format.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .store import VariableStore

COMMAND_PATTERN = re.compile(r"@@envrun\[\s*(.+?)\s*]")
SET_PATTERN = re.compile(r"^set\s*name\s*=\s*'(.+?)'\s*value\s*=\s*'(.*?)'$")
RESET_PATTERN = re.compile(r"^reset\s*name\s*=\s*'(.*?)'$")


@dataclass(frozen=True)
class SetVariable:
    name: str
    value: str


@dataclass(frozen=True)
class ResetVariable:
    name: str


@dataclass(frozen=True)
class Malformed:
    """Body of an ``@@envrun[...]`` tag that is neither set nor reset."""

    raw: str


Command = Union[SetVariable, ResetVariable, Malformed]


def parse_body(body: str) -> Command:
    """Decode the text between ``@@envrun[`` and ``]``."""
    match = SET_PATTERN.match(body)
    if match:
        return SetVariable(match.group(1), match.group(2))
    match = RESET_PATTERN.match(body)
    if match:
        return ResetVariable(match.group(1))
    return Malformed(body)


def parse_line(line: str) -> list[Command]:
    """Return every command found in a single line of output."""
    line = line.rstrip("\r\n")
    return [parse_body(m.group(1)) for m in COMMAND_PATTERN.finditer(line)]


def apply_command(store: VariableStore, command: Command) -> bool:
    """Apply a command to the store. Returns False for malformed commands."""
    if isinstance(command, SetVariable):
        store.set(command.name, command.value)
        return True
    if isinstance(command, ResetVariable):
        store.reset(command.name)
        return True
    return False
