"""
Tee-and-parse of a child's output stream.

Bytes are written to the sink as soon as they are read. Independently, they
are collected into lines (split on ``b"\\n"`` before decoding so a UTF-8
character spanning two reads survives) and every line is scanned for
EnvRun commands, which are applied to the store right away.
"""

from __future__ import annotations

import logging
from typing import IO, BinaryIO, TextIO

from .grammar import Malformed, apply_command, parse_line
from .store import VariableStore

logger = logging.getLogger(__name__)

READ_SIZE = 4096


class StreamScanner:
    """Forward one output stream of the child and scan it for commands."""

    def __init__(
        self,
        store: VariableStore,
        sink: BinaryIO | None,
        diagnostics: TextIO,
        name: str = "stdout",
    ) -> None:
        self.store = store
        self.sink = sink
        self.diagnostics = diagnostics
        self.name = name
        self.lines = 0
        self.commands = 0
        self._buffer = bytearray()

    def feed(self, data: bytes) -> None:
        """Forward a chunk of output and process every line it completes."""
        if not data:
            return
        self._forward(data)
        self._buffer.extend(data)
        start = 0
        while True:
            end = self._buffer.find(b"\n", start)
            if end < 0:
                break
            self._process(bytes(self._buffer[start : end + 1]))
            start = end + 1
        if start:
            del self._buffer[:start]

    def finish(self) -> None:
        """Process whatever is left in the line buffer as a final line."""
        if self._buffer:
            line = bytes(self._buffer)
            self._buffer.clear()
            self._process(line)

    def pump(self, source: IO[bytes]) -> None:
        """Read *source* until EOF, feeding every chunk through the scanner."""
        read = getattr(source, "read1", source.read)
        try:
            while True:
                chunk = read(READ_SIZE)
                if not chunk:
                    break
                self.feed(chunk)
        finally:
            self.finish()
            logger.debug(
                "%s closed after %d line(s), %d command(s)", self.name, self.lines, self.commands
            )

    def _forward(self, data: bytes) -> None:
        if self.sink is None:
            return
        try:
            self.sink.write(data)
            self.sink.flush()
        except (OSError, ValueError) as e:
            # keep draining the pipe so the child never blocks on a full buffer
            logger.warning("Forwarding %s stopped: %s", self.name, e)
            self.sink = None

    def _process(self, raw: bytes) -> None:
        self.lines += 1
        line = raw.decode("utf-8", errors="replace")
        for command in parse_line(line):
            if apply_command(self.store, command):
                self.commands += 1
            elif isinstance(command, Malformed):
                self._report(f"[envrun] unknown command: {command.raw}")

    def _report(self, message: str) -> None:
        logger.debug("%s: %s", self.name, message)
        try:
            print(message, file=self.diagnostics, flush=True)
        except (OSError, ValueError) as e:
            logger.warning("Writing diagnostic failed: %s", e)
