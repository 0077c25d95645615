from pathlib import Path
import sys

import pytest

# Ensure repo root is importable without an editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def hermetic_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """
    Autouse: each test runs in its own tmp cwd with no EnvRun settings
    leaking in from the developer's shell.
    """
    monkeypatch.chdir(tmp_path)
    for name in ("ENVRUN_DATABASE", "ENVRUN_STRICT", "ENVRUN_LOCK_TIMEOUT", "ENVRUN_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "envrun.db"


@pytest.fixture
def python_child():
    """Build an argv that runs a snippet in a fresh interpreter."""

    def _argv(code: str) -> list[str]:
        return [sys.executable, "-c", code]

    return _argv
