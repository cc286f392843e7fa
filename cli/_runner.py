"""
Shared CLI runner helper.

Runs developer tools (pytest, ruff) with the current interpreter so every
wrapper behaves the same inside or outside a virtual environment.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

SOURCE_DIRS = ("account_guard", "cli", "tests")


def run(cmd: Sequence[str]) -> None:
    """
    Run a command and exit with its return code.

    Args:
        cmd: Command and arguments to execute

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"])
    """
    result = subprocess.run(cmd)
    raise SystemExit(result.returncode)
