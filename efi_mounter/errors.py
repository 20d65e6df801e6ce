from __future__ import annotations

from typing import Sequence


class EfiMounterError(RuntimeError):
    pass


class CommandError(EfiMounterError):
    """A command exited non-zero. ``str()`` is the combined output."""

    def __init__(self, exit_code: int, output: str, argv: Sequence[str] = ()) -> None:
        self.exit_code = exit_code
        self.output = output
        self.argv = list(argv)
        super().__init__(output or f"Command failed ({exit_code}): {' '.join(self.argv)}")


class PrivilegeError(CommandError):
    """The elevation wrapper exited non-zero (denied, cancelled, or the command failed)."""


class PrivilegeTimeout(PrivilegeError):
    pass


class OperationCancelled(PrivilegeError):
    pass


class MutationRefused(EfiMounterError, ValueError):
    pass


class ConvergenceError(EfiMounterError):
    pass


class ConfigError(EfiMounterError, ValueError):
    pass
