from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Read-only query signature shared by the resolver and enumerator: argv in, trimmed output out.
Query = Callable[[Sequence[str]], str]

EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    timeout_s: float | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - stdout and stderr are merged into one captured stream.
    - check raises CommandError on a non-zero exit.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, output="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=dict(os.environ, **(env or {})),
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        raise CommandError(EXIT_NOT_FOUND, str(e), argv_list) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(EXIT_TIMEOUT, f"Command timed out after {timeout_s}s: {fmt_argv(argv_list)}", argv_list) from e

    output = (p.stdout or "").strip()
    if output:
        logger.debug("OUTPUT %s", output)

    if check and p.returncode != 0:
        raise CommandError(p.returncode, output, argv_list)

    return CmdResult(argv=argv_list, returncode=p.returncode, output=output)


def output_of(argv: Sequence[str], *, timeout_s: float | None = None) -> str:
    """Return the trimmed output of a command that must succeed."""

    return run_cmd(argv, timeout_s=timeout_s).output


def bounded_query(timeout_s: float | None) -> Query:
    def _query(argv: Sequence[str]) -> str:
        return output_of(argv, timeout_s=timeout_s)

    return _query
