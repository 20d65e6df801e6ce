from __future__ import annotations

import logging
import re

from ..errors import CommandError
from .command import Query, output_of
from .diskinfo import device_identifier, whole_disk_of

logger = logging.getLogger(__name__)

BOOT_PATH_GUID = "4D1FDA02-38C7-4A6A-9CC6-4BCCA8B30102"
BOOT_PATH_KEY = "boot-path"
FALLBACK_SLOT = 1

_GPT_UUID = re.compile(r"GPT,([^,]*),")


def extract_gpt_uuid(boot_path: str) -> str:
    """Pull the partition UUID out of a boot-path value like ``...GPT,<uuid>,0x28)/...``."""

    m = _GPT_UUID.search(boot_path)
    return m.group(1).strip() if m else ""


def read_boot_path(*, query: Query = output_of) -> str:
    return query(["nvram", f"{BOOT_PATH_GUID}:{BOOT_PATH_KEY}"])


def boot_efi_from_firmware(*, query: Query = output_of) -> str:
    """Resolve the boot ESP from the firmware boot-path variable. Raises on failure."""

    uuid = extract_gpt_uuid(read_boot_path(query=query))
    if not uuid:
        raise ValueError("boot-path variable carries no GPT partition UUID")
    dev = device_identifier(uuid, query=query)
    if not dev:
        raise ValueError(f"No device identifier for partition UUID {uuid}")
    return dev


def boot_efi_from_root_disk(*, query: Query = output_of) -> str:
    """Assume the ESP is slot 1 of the disk holding the root filesystem.

    Approximation: misidentifies the boot ESP on non-standard layouts.
    """

    root_dev = device_identifier("/", query=query)
    if not root_dev:
        raise ValueError("No device identifier for /")
    whole = whole_disk_of(root_dev, query=query)
    if not whole:
        raise ValueError(f"No whole disk for {root_dev}")
    return f"{whole}s{FALLBACK_SLOT}"


def resolve_boot_efi(*, query: Query = output_of) -> str:
    """Return the device id of the firmware's boot ESP, or "" when unresolved. Never raises."""

    try:
        dev = boot_efi_from_firmware(query=query)
        logger.info("Boot ESP from firmware boot-path: %s", dev)
        return dev
    except (CommandError, ValueError) as e:
        logger.debug("Firmware boot-path lookup failed: %s", e)

    try:
        dev = boot_efi_from_root_disk(query=query)
        logger.warning("Boot ESP assumed from root disk slot %d: %s", FALLBACK_SLOT, dev)
        return dev
    except (CommandError, ValueError) as e:
        logger.warning("Boot ESP unresolved: %s", e)

    return ""
