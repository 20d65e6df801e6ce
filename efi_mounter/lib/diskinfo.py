from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from .command import Query, output_of

logger = logging.getLogger(__name__)

NOT_MOUNTED = "Not Mounted"


def _key_matches(key: str, name: str) -> bool:
    # "Device / Media Name" answers for "Media Name"
    return key == name or key.endswith(" " + name)


@dataclass(frozen=True)
class DiskInfo:
    """Parsed ``key: value`` output of a per-device info query, in output order."""

    device: str
    entries: Tuple[Tuple[str, str], ...]

    def get(self, *names: str) -> str:
        """Return the value of the first line whose key matches any of ``names``.

        An absent field is an empty string, not an error.
        """

        for key, value in self.entries:
            if any(_key_matches(key, n) for n in names):
                return value
        return ""

    def last(self, name: str) -> str:
        value = ""
        for key, v in self.entries:
            if _key_matches(key, name):
                value = v
        return value


def parse_info(device: str, text: str) -> DiskInfo:
    entries = []
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if not key:
            continue
        entries.append((key, value.strip()))
    return DiskInfo(device=device, entries=tuple(entries))


def query_info(device: str, *, query: Query = output_of) -> DiskInfo:
    """Run ``diskutil info <device>`` and parse it. Raises CommandError on failure."""

    return parse_info(device, query(["diskutil", "info", device]))


def whole_disk_of(device: str, *, query: Query = output_of) -> str:
    return query_info(device, query=query).get("Part of Whole")


def device_identifier(target: str, *, query: Query = output_of) -> str:
    """Resolve a path, UUID, or node to its ``Device Identifier``."""

    return query_info(target, query=query).get("Device Identifier")


def is_mount_point(value: str) -> bool:
    return bool(value) and value != NOT_MOUNTED


def yes(value: str) -> bool:
    return value.strip().lower() == "yes"
