from __future__ import annotations

import logging
import shlex
import threading
from typing import Optional

from ..errors import MutationRefused, PrivilegeError
from ..models import MutationResult, PartitionRecord
from .privileged import PrivilegedExecutor

logger = logging.getLogger(__name__)

MOUNT = "mount"
UNMOUNT = "unmount"
EJECT = "eject"
ACTIONS = (MOUNT, UNMOUNT, EJECT)


def toggle_action(record: PartitionRecord) -> str:
    return UNMOUNT if record.is_mounted else MOUNT


def target_of(action: str, record: PartitionRecord) -> str:
    # Eject acts on the whole disk, not the partition.
    return record.parent_disk_id if action == EJECT else record.device_id


def build_command(action: str, record: PartitionRecord) -> str:
    if action not in ACTIONS:
        raise MutationRefused(f"Unknown action {action!r}")
    if action == EJECT and not record.can_eject:
        raise MutationRefused(f"{record.device_id} cannot be ejected (internal or not mounted)")
    target = target_of(action, record)
    if not target:
        raise MutationRefused(f"{record.device_id} has no {action} target")
    return f"diskutil {action} {shlex.quote(target)}"


def run_mutation(
    action: str,
    record: PartitionRecord,
    *,
    executor: PrivilegedExecutor,
    timeout_s: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> MutationResult:
    """Run one mount/unmount/eject through the elevation wrapper.

    Failures (including a denied or cancelled prompt) come back as ok=False with
    the captured output as the error. Nothing is retried.
    """

    command = build_command(action, record)
    target = target_of(action, record)

    try:
        r = executor.run(command, timeout_s=timeout_s, cancel=cancel)
    except PrivilegeError as e:
        logger.warning("%s %s failed: %s", action, target, e)
        return MutationResult(action=action, device_id=record.device_id, target_id=target, ok=False, error=str(e))

    if not r.ok:
        return MutationResult(
            action=action,
            device_id=record.device_id,
            target_id=target,
            ok=False,
            output=r.output,
            error=r.output or f"{action} {target} failed ({r.returncode})",
        )

    logger.info("%s %s ok", action, target)
    return MutationResult(action=action, device_id=record.device_id, target_id=target, ok=True, output=r.output)
