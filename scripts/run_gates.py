#!/usr/bin/env python3
"""Run the stowage quality gates without make.

Gates run in order and stop at the first failure.

Usage:
    python scripts/run_gates.py            # all gates
    python scripts/run_gates.py lint       # ruff check only
    python scripts/run_gates.py typecheck  # mypy only
"""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent


def run_command(name: str, cmd: list[str]) -> None:
    """Run one gate command, raising CalledProcessError on non-zero exit."""
    print(f"==> {name}: {' '.join(cmd)}")
    subprocess.run(cmd, cwd=REPO_ROOT, check=True)
    print(f"PASSED: {name}")


def gate_format() -> None:
    run_command("format", ["ruff", "format", "--check", "src", "tests", "scripts"])


def gate_lint() -> None:
    run_command("lint", ["ruff", "check", "src", "tests", "scripts"])


def gate_typecheck() -> None:
    run_command(
        "typecheck",
        [sys.executable, "-m", "mypy", "src/stowage", "--ignore-missing-imports"],
    )


def gate_test() -> None:
    run_command("test", [sys.executable, "-m", "pytest", "-q"])


GATES: dict[str, Callable[[], None]] = {
    "format": gate_format,
    "lint": gate_lint,
    "typecheck": gate_typecheck,
    "test": gate_test,
}


def main(argv: list[str]) -> int:
    selected = [a.lower() for a in argv] or ["all"]
    if selected == ["all"]:
        gates = list(GATES.values())
    else:
        unknown = [name for name in selected if name not in GATES]
        if unknown:
            print(f"Unknown gate(s): {', '.join(unknown)}. Available: {', '.join(GATES)}, all")
            return 1
        gates = [GATES[name] for name in selected]

    try:
        for gate in gates:
            gate()
    except subprocess.CalledProcessError as e:
        print(f"GATE FAILED (exit code {e.returncode})")
        return e.returncode

    print("All gates passed")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
