"""
Process wrapper: runs one child under EnvRun.

    expand arguments -> spawn child (stdout/stderr piped, environment seeded
    from the store) -> one scanner thread per pipe -> wait -> exit code
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os
import subprocess
import sys
import threading
from typing import BinaryIO, TextIO

from .errors import ProcessStartError
from .expander import expand_arguments, format_command_line
from .scanner import StreamScanner
from .store import VariableStore

logger = logging.getLogger(__name__)


class ProcessWrapper:
    """Run a child process against a variable store.

    Sinks default to the parent's own stdout/stderr, looked up when
    :meth:`run` is called.
    """

    def __init__(
        self,
        store: VariableStore,
        stdout: BinaryIO | None = None,
        stderr: BinaryIO | None = None,
        diagnostics: TextIO | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.store = store
        self.stdout = stdout
        self.stderr = stderr
        self.diagnostics = diagnostics
        self.environ = dict(os.environ if environ is None else environ)

    def build_environment(self, diagnostics: TextIO | None = None) -> dict[str, str]:
        """Inherited environment with the store's entries taking precedence.

        Entries the OS cannot carry (empty name, ``=`` or NUL in the name,
        NUL in the value) stay in the store but are left out of the child's
        environment, with one diagnostic each.
        """
        if diagnostics is None:
            diagnostics = sys.stderr if self.diagnostics is None else self.diagnostics
        env = dict(self.environ)
        for name, value in self.store.snapshot().items():
            if not name or "=" in name or "\0" in name or "\0" in value:
                print(
                    f"[envrun] not passing variable {name!r} to the environment: invalid name or value",
                    file=diagnostics,
                    flush=True,
                )
                continue
            env[name] = value
        return env

    def run(self, argv: Sequence[str]) -> int:
        """Run *argv* (program followed by its arguments) and return its exit code."""
        if not argv:
            raise ValueError("argv must name a program to run")

        diagnostics = sys.stderr if self.diagnostics is None else self.diagnostics
        stdout_sink = sys.stdout.buffer if self.stdout is None else self.stdout
        stderr_sink = sys.stderr.buffer if self.stderr is None else self.stderr

        # placeholders are resolved before the child sees its environment
        args = expand_arguments(argv, self.store, self.environ, diagnostics)
        env = self.build_environment(diagnostics)

        # flush pending parent text before child bytes start to interleave
        for stream in (sys.stdout, sys.stderr):
            stream.flush()

        logger.info("Starting %s", format_command_line(args))
        try:
            process = subprocess.Popen(
                args,
                stdin=None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except (OSError, ValueError) as e:
            raise ProcessStartError(f"Starting {args[0]} failed: {e}") from e

        scanners = [
            StreamScanner(self.store, stdout_sink, diagnostics, name="stdout"),
            StreamScanner(self.store, stderr_sink, diagnostics, name="stderr"),
        ]
        threads = [
            threading.Thread(
                target=scanner.pump,
                args=(pipe,),
                name=f"envrun-{scanner.name}",
                daemon=True,
            )
            for scanner, pipe in zip(scanners, (process.stdout, process.stderr))
        ]
        for thread in threads:
            thread.start()
        try:
            for thread in threads:
                thread.join()
            returncode = process.wait()
        finally:
            for pipe in (process.stdout, process.stderr):
                if pipe is not None:
                    pipe.close()

        exit_code = _exit_code(returncode)
        logger.info("%s exited with code %d", args[0], exit_code)
        return exit_code


def _exit_code(returncode: int) -> int:
    # a child killed by signal N reports -N; shells report 128 + N
    if returncode < 0:
        return 128 - returncode
    return returncode
