"""
Variable store backed by the EnvRun database file.

The file is read once when the store is loaded and rewritten once when it
is saved. An exclusive ``fcntl.flock`` is held on the file from load to
save so overlapping invocations that target the same database are
serialized. Contention either fails fast (``lock_timeout=0``) or polls
until the timeout expires.

File format, one entry per line, sorted by name::

    NAME = 'value'
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
import re
import threading
import time
from typing import IO

from .errors import DatabaseFormatError, StoreIOError, StoreLockError

logger = logging.getLogger(__name__)

ENTRY_PATTERN = re.compile(r"^\s*(.+?)\s*=\s*'(.*?)'\s*$")

LOCK_POLL_INTERVAL = 0.1


def parse_entry(line: str) -> tuple[str, str] | None:
    """Split a database line into (name, value), or None if it is malformed."""
    match = ENTRY_PATTERN.match(line)
    if not match:
        return None
    return match.group(1), match.group(2)


def format_entry(name: str, value: str) -> str:
    return f"{name} = '{value}'\n"


def _sort_key(name: str) -> bytes:
    return name.encode("utf-8", errors="surrogatepass")


class VariableStore:
    """Name to value mapping shared by the stream scanners of one run.

    A store created with ``VariableStore()`` lives in memory only. Use
    :meth:`load` to open (and lock) a database file.
    """

    def __init__(self, variables: dict[str, str] | None = None) -> None:
        self.path: Path | None = None
        self._handle: IO[str] | None = None
        self._lock = threading.Lock()
        self._variables: dict[str, str] = dict(variables or {})

    @classmethod
    def load(cls, path: Path | str, lock_timeout: float = 0.0) -> VariableStore:
        """Open, lock and read the database file at *path*.

        Raises:
            StoreLockError: another invocation holds the file
            StoreIOError: the file cannot be created, opened or read
            DatabaseFormatError: a line does not match ``NAME = 'value'``
        """
        store = cls()
        store.path = Path(path)
        handle = _open_database(store.path)
        try:
            _acquire_lock(handle, store.path, lock_timeout)
            store._variables = _read_entries(handle, store.path)
        except BaseException:
            handle.close()
            raise
        store._handle = handle
        logger.debug("Loaded %d variable(s) from %s", len(store._variables), store.path)
        return store

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._variables.get(name)

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._variables[name] = value
        logger.debug("set %s = %r", name, value)

    def reset(self, name: str) -> None:
        with self._lock:
            removed = self._variables.pop(name, None)
        if removed is not None:
            logger.debug("reset %s", name)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current mapping."""
        with self._lock:
            return dict(self._variables)

    def __len__(self) -> int:
        with self._lock:
            return len(self._variables)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._variables

    def render(self) -> str:
        """Serialize all entries in byte-wise ascending order of their names."""
        with self._lock:
            items = sorted(self._variables.items(), key=lambda kv: _sort_key(kv[0]))
        return "".join(format_entry(name, value) for name, value in items)

    def save(self) -> None:
        """Overwrite the database file with the current entries and release it.

        Saving an in-memory store, or a store that was already closed, is a
        no-op.
        """
        handle = self._handle
        if handle is None:
            return
        content = self.render()
        try:
            handle.seek(0)
            handle.truncate()
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as e:
            raise StoreIOError(f"Writing database file {self.path} failed: {e}") from e
        finally:
            self._release()
        logger.debug("Saved %d variable(s) to %s", len(self), self.path)

    def discard(self) -> None:
        """Release the database file without writing it."""
        if self._handle is not None:
            self._release()
            logger.debug("Released %s without saving", self.path)

    def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Error releasing lock on {self.path}: {e}")
        finally:
            handle.close()

    def __enter__(self) -> VariableStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            self.save()
        else:
            self.discard()
        return False


def _open_database(path: Path) -> IO[str]:
    try:
        if str(path.parent):
            path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise StoreIOError(f"Opening database file {path} failed: {e}") from e
    return os.fdopen(fd, "r+", encoding="utf-8", newline=None)


def _acquire_lock(handle: IO[str], path: Path, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while True:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            return
        except BlockingIOError:
            if time.monotonic() >= deadline:
                raise StoreLockError(
                    f"Database file {path} is locked by another envrun invocation"
                ) from None
            time.sleep(LOCK_POLL_INTERVAL)
        except OSError as e:
            raise StoreIOError(f"Locking database file {path} failed: {e}") from e


def _read_entries(handle: IO[str], path: Path) -> dict[str, str]:
    variables: dict[str, str] = {}
    try:
        content = handle.read()
    except (OSError, UnicodeDecodeError) as e:
        raise StoreIOError(f"Reading database file {path} failed: {e}") from e
    # byte order mark left by other writers
    content = content.removeprefix("\ufeff")
    for line_number, line in enumerate(content.split("\n"), start=1):
        if not line.strip():
            continue
        entry = parse_entry(line)
        if entry is None:
            raise DatabaseFormatError(path, line_number, line)
        name, value = entry
        variables[name] = value
    return variables
