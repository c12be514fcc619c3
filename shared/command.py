"""Thin wrapper around :mod:`subprocess` with consistent logging."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[[Sequence[str]], CommandResult]


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(arg) for arg in argv)


def run_command(argv: Sequence[str], *, timeout: float | None = None) -> CommandResult:
    """Run ``argv`` to completion, capturing text output.

    A missing executable is reported as return code 127 with the error text
    on stderr, so callers only need to inspect the result.
    """

    argv_tuple = tuple(argv)
    logger.debug("CMD %s", format_argv(argv_tuple))
    try:
        completed = subprocess.run(
            list(argv_tuple),
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        return CommandResult(argv=argv_tuple, returncode=127, stdout="", stderr=str(exc))

    if completed.stdout:
        logger.debug("STDOUT %s", completed.stdout.strip())
    if completed.stderr:
        logger.debug("STDERR %s", completed.stderr.strip())
    return CommandResult(
        argv=argv_tuple,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


__all__ = ["CommandResult", "CommandRunner", "format_argv", "run_command"]
