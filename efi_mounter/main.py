from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .errors import ConfigError
from .lib.mutator import EJECT, MOUNT, UNMOUNT
from .logging_utils import configure_logging
from .models import MutationResult, PartitionRecord, ScanResult
from .service import EfiService
from .settings import load_settings
from .snapshot_store import dumps_snapshot, save_snapshot

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _flags(r: PartitionRecord) -> str:
    flags: List[str] = []
    if r.is_boot_efi:
        flags.append("boot")
    if r.has_bootloader:
        flags.append("bootloader")
    flags.append("internal" if r.is_internal else "external")
    if r.is_read_only:
        flags.append("ro")
    return ",".join(flags)


def format_table(result: ScanResult) -> str:
    if not result.partitions:
        return "No EFI partitions found."
    lines = []
    for r in result.partitions:
        mount = r.mount_point if r.is_mounted else "-"
        lines.append(f"{r.boot_marker} {r.status_icon} {r.device_id:<10} {r.display_name:<24} {mount:<24} {_flags(r)}")
    return "\n".join(lines)


def _print_failures(result: ScanResult) -> None:
    for f in result.failures:
        print(f"warning: {f.device_id}: {f.message}", file=sys.stderr)


def _scan(service: EfiService, *, rescan: bool = False) -> Optional[ScanResult]:
    result = (service.force_rescan() if rescan else service.scan()).result()
    if result is None:
        print(f"error: scan failed: {service.last_error}", file=sys.stderr)
    return result


def cmd_list(service: EfiService, args: argparse.Namespace) -> int:
    result = _scan(service, rescan=bool(args.rescan))
    if result is None:
        return EXIT_FAILED

    if args.output:
        save_snapshot(args.output, result)

    if args.json:
        sys.stdout.write(dumps_snapshot(result, "json"))
    elif args.yaml:
        sys.stdout.write(dumps_snapshot(result, "yaml"))
    else:
        print(format_table(result))
    _print_failures(result)
    return EXIT_OK


def _report(result: MutationResult) -> int:
    if not result.ok:
        print(f"error: {result.error}", file=sys.stderr)
        return EXIT_FAILED
    if result.converged is False:
        print(f"warning: {result.error}", file=sys.stderr)
        return EXIT_FAILED
    where = f" at {result.mount_point}" if result.mount_point else ""
    print(f"{result.action} {result.target_id}: ok{where}")
    return EXIT_OK


def cmd_mutate(service: EfiService, args: argparse.Namespace) -> int:
    result = _scan(service)
    if result is None:
        return EXIT_FAILED

    record = result.find(args.device)
    if record is None:
        known = ", ".join(p.device_id for p in result.partitions) or "none"
        print(f"error: {args.device} is not a known EFI partition (known: {known})", file=sys.stderr)
        return EXIT_USAGE

    action = args.command
    if action == "toggle":
        future = service.toggle_mount(record)
    elif action == MOUNT:
        future = service.mount(record)
    elif action == UNMOUNT:
        future = service.unmount(record)
    else:
        future = service.eject(record)
    return _report(future.result())


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="efi-mounter", description="Discover, mount, unmount and eject EFI partitions")
    p.add_argument("--config", default=None, help="Path to YAML config (default: $EFI_MOUNTER_CONFIG or ~/.config/efi-mounter/config.yaml)")
    p.add_argument("--log", default=None, help="Path to log file")
    p.add_argument("--debug", action="store_true", help="Verbose logging on the console")
    p.add_argument("--dry-run", action="store_true", help="Log privileged commands instead of running them")

    sub = p.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="Scan and list EFI partitions")
    fmt = ls.add_mutually_exclusive_group()
    fmt.add_argument("--json", action="store_true")
    fmt.add_argument("--yaml", action="store_true")
    ls.add_argument("--output", default=None, help="Also write the snapshot to a .json/.yaml file")
    ls.add_argument("--rescan", action="store_true", help="Wait for pending device changes to settle first")

    for name, help_text in [
        (MOUNT, "Mount an EFI partition"),
        (UNMOUNT, "Unmount an EFI partition"),
        ("toggle", "Mount if unmounted, else unmount"),
        (EJECT, "Eject the external disk holding an EFI partition"),
    ]:
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("device", help="Partition device id (e.g. disk2s1)")

    return p


def main(argv: Optional[list[str]] = None, *, service: Optional[EfiService] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    if service is None:
        configure_logging(
            log_path=args.log or settings.log_path,
            level=logging.DEBUG if args.debug else logging.INFO,
        )

    try:
        svc = service or EfiService(settings=settings, dry_run=bool(args.dry_run))
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        if args.command == "list":
            return cmd_list(svc, args)
        return cmd_mutate(svc, args)
    except Exception:
        logger.exception("efi-mounter %s failed", args.command)
        raise
    finally:
        if service is None:
            svc.close()


if __name__ == "__main__":
    raise SystemExit(main())
