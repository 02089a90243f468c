"""noxfile.py - Nox sessions for the Prompt Library.

Updates:
  v0.2.0 - 2026-10-12 - Point sessions at the config/core/models packages and drop aliases.
  v0.1.0 - 2026-09-08 - Add format, lint, typecheck, and test sessions backed by .venv tools.
"""

from __future__ import annotations

import os
from pathlib import Path

import nox

nox.options.sessions = ["lint", "typecheck", "tests"]

CODE_LOCATIONS = ("config", "core", "models", "tests", "noxfile.py")
COVERAGE_TARGETS = ("--cov=core", "--cov=config", "--cov=models")
PROJECT_ROOT = Path(__file__).resolve().parent


def _venv_executable(command: str) -> Path:
    bin_dir = "Scripts" if os.name == "nt" else "bin"
    suffix = ".exe" if os.name == "nt" else ""
    return PROJECT_ROOT / ".venv" / bin_dir / f"{command}{suffix}"


def _require_venv_tool(session: nox.Session, command: str) -> str:
    """Return the `.venv` tool path, failing with guidance when missing."""
    candidate = _venv_executable(command)
    if candidate.exists():
        return str(candidate)
    session.error(
        f"Missing {candidate}. Create `.venv` and run `pip install -e .[dev]` inside it."
    )
    raise RuntimeError("unreachable")  # pragma: no cover


def _run_pytest(session: nox.Session) -> None:
    pytest = _require_venv_tool(session, "pytest")
    session.run(
        pytest,
        "-n",
        "auto",
        *COVERAGE_TARGETS,
        "--cov-report=term-missing",
        "--cov-fail-under=80",
        *session.posargs,
        external=True,
    )


@nox.session(venv_backend="none")
def format(session: nox.Session) -> None:
    """Format code using ruff.

    Usage: `nox -s format`
    """
    ruff = _require_venv_tool(session, "ruff")
    session.run(ruff, "check", "--select", "I", "--fix", *CODE_LOCATIONS, external=True)
    session.run(ruff, "format", *CODE_LOCATIONS, external=True)


@nox.session(venv_backend="none")
def lint(session: nox.Session) -> None:
    """Lint and check formatting with ruff."""
    ruff = _require_venv_tool(session, "ruff")
    session.run(ruff, "check", *CODE_LOCATIONS, external=True)
    session.run(ruff, "format", "--check", *CODE_LOCATIONS, external=True)


@nox.session(venv_backend="none")
def typecheck(session: nox.Session) -> None:
    """Run pyright using the pyproject configuration."""
    pyright = _require_venv_tool(session, "pyright")
    session.run(pyright, external=True)


@nox.session(venv_backend="none")
def tests(session: nox.Session) -> None:
    """Run pytest with coverage.

    Extra arguments are forwarded, e.g. `nox -s tests -- -k library`.
    """
    _run_pytest(session)


@nox.session(name="all", venv_backend="none")
def all_checks(session: nox.Session) -> None:
    """Run the full ruff/pyright/pytest gate."""
    lint(session)
    typecheck(session)
    _run_pytest(session)
