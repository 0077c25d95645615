#!/usr/bin/env python3
"""
envrun - run a process and keep the variables it publishes.

Usage:
    envrun <program> [args...]
    envrun --log-level debug <program> [args...]

The child's stdout/stderr are forwarded untouched and scanned for

    @@envrun[set name='<name>' value='<value>']
    @@envrun[reset name='<name>']

Variables are stored in the file named by ENVRUN_DATABASE (default:
./envrun.db) and passed to the environment of every following run.
Arguments may reference them as {{ name }}.

The exit code is the child's exit code. envrun's own failures use the
codes in :class:`envrun.errors.ExitCode`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os

from rich.console import Console
import typer

from envrun import __version__
from envrun.config import DATABASE_ENV, DEFAULT_LOG_LEVEL, get_envrun_config
from envrun.errors import EnvRunError, ExitCode, StoreIOError
from envrun.logging_utils import configure_logging
from envrun.store import VariableStore
from envrun.wrapper import ProcessWrapper

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="envrun",
    help="Run a process and keep the variables it publishes for following runs.",
    add_completion=False,
)

# stop option parsing at the program so its own flags reach it untouched
CONTEXT_SETTINGS = {
    "allow_interspersed_args": False,
    "ignore_unknown_options": True,
    "help_option_names": ["-h", "--help"],
}

USAGE_LINES = [
    "--------------------------------------------------------------------------------",
    "  Executes another application and scans its output (stdout/stderr) for certain",
    "  key expressions instructing EnvRun to maintain a set of environment",
    "  variables for following runs.",
    "--------------------------------------------------------------------------------",
    "",
    "  USAGE:",
    "",
    "  Step 1, optional)",
    f"    Set the {DATABASE_ENV} environment variable to the path of the database file.",
    "    If not set, the database (envrun.db) is placed into the working directory.",
    "",
    "  Step 2)",
    "    Start the application: envrun <path> <arguments>",
    "    Arguments may reference stored variables as {{ name }}.",
    "",
    "  The following expressions are recognized in the output:",
    "  - @@envrun[set name='<name>' value='<value>']",
    "  - @@envrun[reset name='<name>']",
    "",
    "--------------------------------------------------------------------------------",
]


def _print_usage() -> None:
    console.print(f"  [bold]EnvRun[/bold] v{__version__}")
    for line in USAGE_LINES:
        console.print(line, markup=False, highlight=False, soft_wrap=True)


def _error(message: str) -> None:
    err_console.print(f"ERROR: {message}", markup=False, highlight=False, soft_wrap=True)


def run_wrapped(
    argv: Sequence[str],
    environ: Mapping[str, str] | None = None,
    log_level: str | None = None,
) -> int:
    """Load the store, run *argv* under the wrapper and save the store.

    Returns the child's exit code. Fatal problems raise :class:`EnvRunError`.
    """
    environ = dict(os.environ if environ is None else environ)
    cfg = get_envrun_config(environ)
    if not log_level:
        configure_logging(cfg.log_level)

    store = VariableStore.load(cfg.database_path, lock_timeout=cfg.lock_timeout)
    environ[DATABASE_ENV] = str(cfg.database_path)
    wrapper = ProcessWrapper(store, environ=environ)
    try:
        exit_code = wrapper.run(argv)
    except BaseException:
        store.discard()
        raise

    try:
        store.save()
    except StoreIOError as e:
        raise StoreIOError(f"{e} (child exited with code {exit_code})") from e
    return exit_code


@app.command(context_settings=CONTEXT_SETTINGS)
def run(
    command: list[str] = typer.Argument(
        None, metavar="PROGRAM [ARGS]...", help="Program to run, followed by its arguments"
    ),
    log_level: str = typer.Option(
        None, "--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
):
    """
    Run a program and scan its output for EnvRun commands.

    Examples:
        envrun ./build.sh
        envrun python publish_version.py
        envrun echo "{{ A }}"
    """
    if version:
        console.print(f"envrun {__version__}", highlight=False)
        raise typer.Exit(ExitCode.SUCCESS)

    if not command:
        _print_usage()
        raise typer.Exit(ExitCode.SUCCESS)

    configure_logging(log_level or os.environ.get("ENVRUN_LOG_LEVEL") or DEFAULT_LOG_LEVEL)

    try:
        exit_code = run_wrapped(command, log_level=log_level)
    except EnvRunError as e:
        _error(str(e))
        raise typer.Exit(e.exit_code)
    except Exception as e:
        logger.debug("Unexpected failure", exc_info=True)
        _error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    raise typer.Exit(exit_code)


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
