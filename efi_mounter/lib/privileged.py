from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from ..errors import ConfigError, OperationCancelled, PrivilegeError, PrivilegeTimeout
from .command import EXIT_NOT_FOUND, EXIT_TIMEOUT, CmdResult, fmt_argv

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130


class PrivilegedExecutor(Protocol):
    """Runs one shell command with elevated rights, prompting the operator as needed.

    A non-zero exit is returned, not raised. Timeout and cancellation kill the
    wrapper process and raise.
    """

    name: str

    def run(
        self,
        command: str,
        *,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CmdResult:
        ...


def _osascript_argv(command: str) -> List[str]:
    escaped = command.replace("\\", "\\\\").replace('"', '\\"')
    return ["osascript", "-e", f'do shell script "{escaped}" with administrator privileges']


def _pkexec_argv(command: str) -> List[str]:
    return ["pkexec", "sh", "-c", command]


def _sudo_argv(command: str) -> List[str]:
    return ["sudo", "sh", "-c", command]


BACKENDS: Dict[str, Callable[[str], List[str]]] = {
    "osascript": _osascript_argv,
    "pkexec": _pkexec_argv,
    "sudo": _sudo_argv,
}


def _kill(p: subprocess.Popen) -> str:
    p.kill()
    out, _ = p.communicate()
    return (out or "").strip()


@dataclass(frozen=True)
class WrapperExecutor:
    """Elevation through an external wrapper (osascript, pkexec, sudo)."""

    name: str
    wrap: Callable[[str], List[str]]
    dry_run: bool = False
    poll_interval_s: float = 0.1

    def run(
        self,
        command: str,
        *,
        timeout_s: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CmdResult:
        argv = self.wrap(command)
        logger.info("PRIV(%s) %s", self.name, command)

        if self.dry_run:
            return CmdResult(argv=argv, returncode=0, output="")

        try:
            p = subprocess.Popen(argv, text=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except FileNotFoundError as e:
            raise PrivilegeError(EXIT_NOT_FOUND, str(e), argv) from e

        deadline = time.monotonic() + timeout_s if timeout_s else None
        while True:
            try:
                out, _ = p.communicate(timeout=self.poll_interval_s)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    _kill(p)
                    raise OperationCancelled(EXIT_CANCELLED, f"Cancelled: {command}", argv)
                if deadline is not None and time.monotonic() >= deadline:
                    _kill(p)
                    raise PrivilegeTimeout(EXIT_TIMEOUT, f"Timed out after {timeout_s}s: {command}", argv)

        output = (out or "").strip()
        if p.returncode != 0:
            logger.warning("PRIV(%s) exit=%s: %s", self.name, p.returncode, output)
        elif output:
            logger.debug("OUTPUT %s", output)
        return CmdResult(argv=argv, returncode=p.returncode, output=output)


def make_executor(name: str, *, dry_run: bool = False) -> WrapperExecutor:
    wrap = BACKENDS.get(name)
    if wrap is None:
        raise ConfigError(f"Unknown elevation backend {name!r}; expected one of: {', '.join(sorted(BACKENDS))}")
    logger.debug("Elevation backend %s (%s)", name, fmt_argv(wrap("true")))
    return WrapperExecutor(name=name, wrap=wrap, dry_run=dry_run)
