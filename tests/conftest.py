from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from efi_mounter.errors import CommandError, OperationCancelled
from efi_mounter.lib.command import CmdResult
from efi_mounter.lib.diskinfo import NOT_MOUNTED
from efi_mounter.lib.firmware import BOOT_PATH_GUID, BOOT_PATH_KEY
from efi_mounter.lib.storage import scan_partitions
from efi_mounter.settings import Settings

BOOT_UUID = "A1B2C3D4-0000-1111-2222-333344445555"
BOOT_PATH = (
    "PciRoot(0x0)/Pci(0x1d,0x0)/Pci(0x0,0x0)/NVMe(0x1,00-00-00-00-00-00-00-00)/"
    f"HD(1,GPT,{BOOT_UUID},0x28,0x64000)/VenMedia(BE74FCF7-0B7C-49F3-9147-01F4042E6842)"
)


def info_text(pairs: Sequence[Tuple[str, str]]) -> str:
    return "\n".join(f"   {k}:{' ' * max(1, 28 - len(k))}{v}" for k, v in pairs)


class FakeHost:
    """In-memory stand-in for diskutil/nvram, callable as a Query."""

    def __init__(self) -> None:
        self.disks: Dict[str, Dict[str, str]] = {
            "disk1": {"media": "APPLE SSD AP0512Q", "internal": "Yes", "protocol": "Apple Fabric"},
            "disk2": {"media": "SanDisk Ultra", "internal": "", "protocol": "USB"},
        }
        self.partitions: Dict[str, Dict[str, str]] = {
            "disk1s1": {"parent": "disk1", "mount": NOT_MOUNTED, "ro": "No"},
            "disk2s1": {"parent": "disk2", "mount": NOT_MOUNTED, "ro": "No"},
        }
        self.boot_path: Optional[str] = BOOT_PATH
        self.uuids: Dict[str, str] = {BOOT_UUID: "disk1s1"}
        self.root_device = "disk1s5"
        self.dirs: set = set()
        self.failing: set = set()
        self.calls: List[Tuple[str, ...]] = []

    def _fail(self, argv: Sequence[str], msg: str) -> CommandError:
        return CommandError(1, msg, argv)

    def listing(self) -> str:
        lines = []
        for disk, d in self.disks.items():
            where = "internal" if d["internal"] == "Yes" else "external"
            lines.append(f"/dev/{disk} ({where}, physical):")
            lines.append("   #:                       TYPE NAME                    SIZE       IDENTIFIER")
            lines.append(f"   0:      GUID_partition_scheme                        *500.3 GB   {disk}")
            for part, p in self.partitions.items():
                if p["parent"] == disk:
                    lines.append(f"   1:                        EFI EFI                     209.7 MB   {part}")
            lines.append(f"   2:                 Apple_APFS Container               500.1 GB   {disk}s2")
            lines.append("")
        return "\n".join(lines)

    def info(self, target: str, argv: Sequence[str]) -> str:
        if target == "/":
            return info_text([("Device Identifier", self.root_device), ("Part of Whole", "disk1")])
        if target in self.uuids:
            return info_text([("Device Identifier", self.uuids[target])])
        if target == self.root_device:
            return info_text([("Device Identifier", target), ("Part of Whole", "disk1")])
        if target in self.partitions:
            p = self.partitions[target]
            return info_text(
                [
                    ("Device Identifier", target),
                    ("Device Node", f"/dev/{target}"),
                    ("Part of Whole", p["parent"]),
                    ("Volume Name", "EFI"),
                    ("Mounted", "No" if p["mount"] == NOT_MOUNTED else "Yes"),
                    ("Mount Point", p["mount"]),
                    ("Media Read-Only", p["ro"]),
                ]
            )
        if target in self.disks:
            d = self.disks[target]
            pairs = [
                ("Device Identifier", target),
                ("Device / Media Name", d["media"]),
                ("Protocol", d["protocol"]),
            ]
            if d["internal"]:
                pairs.append(("Internal", d["internal"]))
            return info_text(pairs)
        raise self._fail(argv, f"Could not find disk: {target}")

    def __call__(self, argv: Sequence[str]) -> str:
        key = tuple(argv)
        self.calls.append(key)
        if key in self.failing:
            raise self._fail(argv, f"failed: {' '.join(argv)}")
        if key == ("diskutil", "list"):
            return self.listing()
        if key == ("nvram", f"{BOOT_PATH_GUID}:{BOOT_PATH_KEY}"):
            if self.boot_path is None:
                raise self._fail(argv, f"nvram: Error getting variable - '{BOOT_PATH_KEY}': (iokit/common) data was not found")
            return f"{BOOT_PATH_GUID}:{BOOT_PATH_KEY}\t{self.boot_path}"
        if key[:2] == ("diskutil", "info") and len(key) == 3:
            return self.info(key[2], argv)
        raise self._fail(argv, f"unexpected command: {' '.join(argv)}")

    def is_dir(self, path: str) -> bool:
        return path in self.dirs

    def scanner(self):
        return scan_partitions(query=self, is_dir=self.is_dir)


class FakeExecutor:
    """Privileged executor that applies diskutil mutations to a FakeHost."""

    name = "fake"

    def __init__(self, host: FakeHost) -> None:
        self.host = host
        self.commands: List[str] = []
        self.returncode = 0
        self.output = ""
        self.apply = True
        self.gate: Optional[threading.Event] = None
        self.started = threading.Event()

    def run(self, command, *, timeout_s=None, cancel=None) -> CmdResult:
        self.commands.append(command)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(130, f"Cancelled: {command}", ["fake", command])
        if self.returncode != 0:
            return CmdResult(argv=["fake", command], returncode=self.returncode, output=self.output)
        if self.apply:
            _, action, target = command.split()
            target = target.strip("'")
            if action == "mount":
                self.host.partitions[target]["mount"] = "/Volumes/EFI"
            elif action == "unmount":
                self.host.partitions[target]["mount"] = NOT_MOUNTED
            elif action == "eject":
                self.host.disks.pop(target, None)
                for part in [p for p, v in self.host.partitions.items() if v["parent"] == target]:
                    del self.host.partitions[part]
        return CmdResult(argv=["fake", command], returncode=0, output=self.output)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def executor(host: FakeHost) -> FakeExecutor:
    return FakeExecutor(host)


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        raw={
            "delays": {"mount_s": 0.0, "eject_s": 0.0, "rescan_s": 0.0},
            "verify": {"attempts": 3, "backoff": 2.0, "max_delay_s": 0.0, "deadline_s": 5.0},
            "reveal_on_mount": True,
        }
    )


@pytest.fixture
def boot_uuid() -> str:
    return BOOT_UUID


@pytest.fixture
def boot_path() -> str:
    return BOOT_PATH
