from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .lib.diskinfo import is_mount_point


@dataclass(frozen=True)
class PartitionRecord:
    """One discovered EFI system partition, as observed during a single scan."""

    device_id: str
    parent_disk_id: str
    label: str = ""
    mount_point: str = ""
    is_boot_efi: bool = False
    has_bootloader: bool = False
    is_internal: bool = True
    is_read_only: bool = False

    def __post_init__(self) -> None:
        if not self.device_id:
            raise ValueError("PartitionRecord.device_id must be non-empty")

    @property
    def is_mounted(self) -> bool:
        return is_mount_point(self.mount_point)

    @property
    def can_eject(self) -> bool:
        return not self.is_internal and self.is_mounted

    @property
    def display_name(self) -> str:
        return self.label or self.device_id

    @property
    def status_icon(self) -> str:
        if self.is_mounted:
            return "✅"
        if self.is_internal:
            return "🔘"
        return "🟡"

    @property
    def boot_marker(self) -> str:
        if self.is_boot_efi:
            return "🔹"
        if self.has_bootloader:
            return "◈"
        return "  "

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "parent_disk_id": self.parent_disk_id,
            "label": self.label,
            "mount_point": self.mount_point if self.is_mounted else "",
            "is_mounted": self.is_mounted,
            "is_boot_efi": self.is_boot_efi,
            "has_bootloader": self.has_bootloader,
            "is_internal": self.is_internal,
            "is_read_only": self.is_read_only,
            "can_eject": self.can_eject,
        }


@dataclass(frozen=True)
class PartitionFailure:
    device_id: str
    message: str


@dataclass(frozen=True)
class ScanResult:
    partitions: Tuple[PartitionRecord, ...] = ()
    boot_efi: str = ""
    failures: Tuple[PartitionFailure, ...] = ()
    scanned_at: float = field(default_factory=time.time)

    def find(self, device_id: str) -> Optional[PartitionRecord]:
        for p in self.partitions:
            if p.device_id == device_id:
                return p
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned_at": self.scanned_at,
            "boot_efi": self.boot_efi,
            "partitions": [p.to_dict() for p in self.partitions],
            "failures": [{"device_id": f.device_id, "message": f.message} for f in self.failures],
        }


EMPTY_SCAN = ScanResult(scanned_at=0.0)


@dataclass(frozen=True)
class MutationResult:
    action: str  # mount|unmount|eject
    device_id: str
    target_id: str
    ok: bool
    output: str = ""
    error: Optional[str] = None
    converged: Optional[bool] = None
    mount_point: str = ""
