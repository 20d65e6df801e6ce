from __future__ import annotations

import logging
import os
from typing import Callable, List, Optional, Sequence

from ..errors import CommandError
from ..models import PartitionFailure, PartitionRecord, ScanResult
from .command import Query, output_of
from .diskinfo import is_mount_point, query_info, yes
from .firmware import resolve_boot_efi

logger = logging.getLogger(__name__)

DEFAULT_BOOTLOADER_DIRS = ("EFI/OC", "EFI/CLOVER")

DirProbe = Callable[[str], bool]


def list_efi_partitions(*, query: Query = output_of) -> List[str]:
    """Device ids of EFI-typed partitions, in listing order.

    Takes the trailing token of every ``diskutil list`` line mentioning EFI.
    """

    out = query(["diskutil", "list"])
    ids: List[str] = []
    for line in out.splitlines():
        if "EFI" not in line:
            continue
        tokens = line.split()
        if tokens:
            ids.append(tokens[-1])
    return ids


def classify_internal(internal: str, protocol: str) -> bool:
    # Internal unless the disk says otherwise or hangs off USB.
    if internal.strip().lower() == "no":
        return False
    if "usb" in protocol.lower():
        return False
    return True


def probe_bootloader(
    mount_point: str,
    *,
    bootloader_dirs: Sequence[str] = DEFAULT_BOOTLOADER_DIRS,
    is_dir: DirProbe = os.path.isdir,
) -> bool:
    return any(is_dir(os.path.join(mount_point, d)) for d in bootloader_dirs)


def build_record(
    device_id: str,
    *,
    boot_efi: str,
    query: Query = output_of,
    bootloader_dirs: Sequence[str] = DEFAULT_BOOTLOADER_DIRS,
    is_dir: DirProbe = os.path.isdir,
) -> PartitionRecord:
    """Query and classify one candidate. Any failed lookup raises CommandError."""

    part = query_info(device_id, query=query)
    parent_id = part.get("Part of Whole")
    if not parent_id:
        raise ValueError(f"{device_id} reports no parent disk")
    parent = query_info(parent_id, query=query)

    mount_point = part.get("Mount Point")
    mounted = is_mount_point(mount_point)

    return PartitionRecord(
        device_id=device_id,
        parent_disk_id=parent_id,
        label=parent.get("Volume Name", "Media Name"),
        mount_point=mount_point,
        is_boot_efi=device_id == boot_efi,
        has_bootloader=mounted and probe_bootloader(mount_point, bootloader_dirs=bootloader_dirs, is_dir=is_dir),
        is_internal=classify_internal(parent.last("Internal"), parent.last("Protocol")),
        is_read_only=yes(part.get("Read-Only")),
    )


def scan_partitions(
    *,
    query: Query = output_of,
    resolver: Optional[Callable[[], str]] = None,
    bootloader_dirs: Sequence[str] = DEFAULT_BOOTLOADER_DIRS,
    is_dir: DirProbe = os.path.isdir,
) -> ScanResult:
    """Enumerate and classify every EFI partition.

    A candidate whose lookups fail is left out of ``partitions`` and reported in
    ``failures``. A failure of the listing itself propagates.
    """

    boot_efi = resolver() if resolver is not None else resolve_boot_efi(query=query)
    candidates = list_efi_partitions(query=query)

    records: List[PartitionRecord] = []
    failures: List[PartitionFailure] = []
    for device_id in candidates:
        try:
            records.append(
                build_record(
                    device_id,
                    boot_efi=boot_efi,
                    query=query,
                    bootloader_dirs=bootloader_dirs,
                    is_dir=is_dir,
                )
            )
        except (CommandError, ValueError) as e:
            logger.warning("Skipping %s: %s", device_id, e)
            failures.append(PartitionFailure(device_id=device_id, message=str(e)))

    logger.info(
        "Scan: %d EFI partition(s), %d failed, boot_efi=%s",
        len(records),
        len(failures),
        boot_efi or "-",
    )
    return ScanResult(partitions=tuple(records), boot_efi=boot_efi, failures=tuple(failures))
