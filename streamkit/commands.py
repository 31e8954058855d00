"""Running external programs and collecting their combined output."""

from __future__ import annotations

import logging
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """An external program could not be started or exited with an error."""

    def __init__(self, message: str, output: str = "", returncode: Optional[int] = None):
        super().__init__(message)
        self.output = output
        self.returncode = returncode


def _run(binary: str, args: tuple[str, ...]) -> str:
    logger.debug("running: %s %s", binary, " ".join(args))
    try:
        completed = subprocess.run(
            [binary, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        logger.error("command failed: %s", exc)
        raise CommandError(f"command failed: {exc}") from exc

    output = completed.stdout.decode("utf-8", errors="replace")
    if completed.returncode != 0:
        logger.error("command failed: exit status %d", completed.returncode)
        if output:
            logger.error("command output: %s", output)
        raise CommandError(
            f"command failed: exit status {completed.returncode}",
            output,
            completed.returncode,
        )
    return output


def run_command(binary: str, *args: str) -> None:
    """Run a program; raise CommandError if it fails."""
    output = _run(binary, args)
    if output:
        logger.debug("command output: %s", output)
    logger.debug("command succeeded")


def run_command_with_output(binary: str, *args: str) -> str:
    """Run a program and return its stdout and stderr together.

    On failure CommandError is raised, carrying the output in ``output``.
    """
    output = _run(binary, args)
    logger.debug("command succeeded")
    return output