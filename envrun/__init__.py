"""
EnvRun - process wrapper that carries variables between runs.

EnvRun starts a child process, forwards its stdout/stderr untouched and
watches both streams for ``@@envrun[...]`` expressions. Variables set that
way are persisted to a small database file and handed to the environment
of the next wrapped process.
"""

from __future__ import annotations

__version__ = "0.3.0"
