from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from functools import partial
from typing import Any, Callable, List, Optional

from .errors import ConvergenceError, EfiMounterError, MutationRefused
from .events import (
    Event,
    MutationCompleted,
    OperationQueued,
    RevealRequested,
    ScanCompleted,
    ScanStarted,
)
from .lib.command import Query, bounded_query
from .lib.mutator import EJECT, MOUNT, UNMOUNT, run_mutation, target_of, toggle_action
from .lib.privileged import PrivilegedExecutor, make_executor
from .lib.reveal import open_in_file_browser
from .lib.storage import scan_partitions
from .models import EMPTY_SCAN, MutationResult, PartitionRecord, ScanResult
from .reconcile import expected_state, wait_for_state
from .settings import Settings

logger = logging.getLogger(__name__)

# Hands a callable to the observing context (e.g. GLib.idle_add). Default: run inline.
Dispatch = Callable[[Callable[[], Any]], Any]


def inline_dispatch(fn: Callable[[], Any]) -> None:
    fn()


class EfiService:
    """Owner of the partition snapshot and the only entry point for scans and mutations.

    All work runs on one background worker, one operation at a time, in
    submission order. A request made while another is in flight is queued and
    reported with an OperationQueued event. State changes and events are
    delivered through ``dispatch`` so observers only ever see whole snapshots.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        query: Optional[Query] = None,
        executor: Optional[PrivilegedExecutor] = None,
        scanner: Optional[Callable[[], ScanResult]] = None,
        dispatch: Dispatch = inline_dispatch,
        reveal: Optional[Callable[[str], Any]] = None,
        on_raise_window: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
        dry_run: bool = False,
    ) -> None:
        self.settings = settings or Settings()
        self._query = query or bounded_query(self.settings.query_timeout_s)
        self._executor = executor or make_executor(self.settings.elevation, dry_run=dry_run)
        self._scanner = scanner or partial(
            scan_partitions,
            query=self._query,
            bootloader_dirs=self.settings.bootloader_dirs,
        )
        self._dispatch = dispatch
        self._reveal = reveal or partial(open_in_file_browser, dry_run=dry_run)
        self._on_raise_window = on_raise_window
        self._sleep = sleep
        self._dry_run = dry_run

        self._lock = threading.Lock()
        self._snapshot: ScanResult = EMPTY_SCAN
        self._scanning = False
        self._last_error: Optional[str] = None
        self._last_operation_at: Optional[float] = None
        self._pending = 0
        self._subscribers: List[Callable[[Event], None]] = []
        self._cancel = threading.Event()
        self._closed = False
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="efi-mounter")

    # ------------- observable state -------------
    @property
    def snapshot(self) -> ScanResult:
        with self._lock:
            return self._snapshot

    @property
    def partitions(self) -> tuple:
        return self.snapshot.partitions

    @property
    def scanning(self) -> bool:
        with self._lock:
            return self._scanning

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    @property
    def last_operation_at(self) -> Optional[float]:
        with self._lock:
            return self._last_operation_at

    def subscribe(self, fn: Callable[[Event], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(fn)

        def _unsubscribe() -> None:
            with self._lock:
                if fn in self._subscribers:
                    self._subscribers.remove(fn)

        return _unsubscribe

    # ------------- entry points -------------
    def scan(self) -> "Future[Optional[ScanResult]]":
        return self._submit("scan", partial(self._do_scan, "scan"))

    def force_rescan(self) -> "Future[Optional[ScanResult]]":
        """Scan after a settle delay, for when external changes may not be visible yet."""

        def _job() -> Optional[ScanResult]:
            self._commit(ScanStarted(reason="rescan"), scanning=True, last_error=None)
            self._sleep(self.settings.rescan_delay_s)
            return self._do_scan("rescan", announce=False)

        return self._submit("rescan", _job)

    def toggle_mount(self, record: PartitionRecord) -> "Future[MutationResult]":
        return self._mutate(toggle_action(record), record)

    def mount(self, record: PartitionRecord) -> "Future[MutationResult]":
        return self._mutate(MOUNT, record)

    def unmount(self, record: PartitionRecord) -> "Future[MutationResult]":
        return self._mutate(UNMOUNT, record)

    def eject(self, record: PartitionRecord) -> "Future[MutationResult]":
        return self._mutate(EJECT, record)

    def cancel(self) -> None:
        """Kill the elevation prompt or privileged command currently in flight."""

        logger.info("Cancel requested")
        self._cancel.set()

    def close(self) -> None:
        """Cancel the command in flight, drop queued requests and stop the worker."""

        with self._lock:
            self._closed = True
            self._cancel.set()
        self._worker.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "EfiService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------- internals -------------
    def _publish(self, event: Event) -> None:
        def _deliver() -> None:
            with self._lock:
                subscribers = list(self._subscribers)
            for fn in subscribers:
                fn(event)

        self._dispatch(_deliver)

    def _commit(self, event: Optional[Event] = None, **changes: Any) -> None:
        """Apply state changes and publish ``event`` together on the observing context."""

        def _apply() -> None:
            with self._lock:
                for name, value in changes.items():
                    setattr(self, f"_{name}", value)

        self._dispatch(_apply)
        if event is not None:
            self._publish(event)

    def _submit(self, operation: str, fn: Callable[[], Any]) -> Future:
        with self._lock:
            ahead = self._pending
            self._pending += 1

        if ahead:
            logger.info("Queued %s behind %d operation(s)", operation, ahead)
            self._publish(OperationQueued(operation=operation, pending=ahead))

        def _job() -> Any:
            try:
                return fn()
            finally:
                with self._lock:
                    self._pending -= 1

        return self._worker.submit(_job)

    def _scan_or_raise(self, reason: str, announce: bool = True) -> ScanResult:
        if announce:
            self._commit(ScanStarted(reason=reason), scanning=True, last_error=None)
        try:
            result = self._scanner()
        except Exception as e:
            if not isinstance(e, EfiMounterError):
                logger.exception("Scan crashed")
            else:
                logger.error("Scan failed: %s", e)
            # Prior snapshot stays in place.
            self._commit(ScanCompleted(error=str(e)), scanning=False, last_error=str(e))
            raise
        self._commit(ScanCompleted(result=result), snapshot=result, scanning=False)
        return result

    def _do_scan(self, reason: str, announce: bool = True) -> Optional[ScanResult]:
        try:
            return self._scan_or_raise(reason, announce)
        except EfiMounterError:
            return None

    def _mutate(self, action: str, record: PartitionRecord) -> "Future[MutationResult]":
        return self._submit(action, partial(self._do_mutation, action, record))

    def _do_mutation(self, action: str, record: PartitionRecord) -> MutationResult:
        with self._lock:
            closed = self._closed
            if not closed:
                self._cancel.clear()

        if closed:
            logger.info("Dropped %s %s: service closed", action, record.device_id)
            return MutationResult(
                action=action,
                device_id=record.device_id,
                target_id=target_of(action, record),
                ok=False,
                error="efi-mounter is shutting down",
            )

        try:
            result = run_mutation(
                action,
                record,
                executor=self._executor,
                timeout_s=self.settings.privileged_timeout_s,
                cancel=self._cancel,
            )
        except MutationRefused as e:
            result = MutationResult(
                action=action,
                device_id=record.device_id,
                target_id=target_of(action, record),
                ok=False,
                error=str(e),
            )

        if not result.ok:
            self._commit(MutationCompleted(result=result), last_error=result.error)
            return result

        self._commit(last_operation_at=time.time())

        if self._dry_run:
            # Nothing ran, so there is no state change to wait for.
            self._commit(MutationCompleted(result=result))
            return result

        delay = self.settings.eject_delay_s if action == EJECT else self.settings.mount_delay_s
        converged, last = wait_for_state(
            expected_state(action, record.device_id),
            scan=partial(self._scan_or_raise, "verify"),
            policy=self.settings.verify_policy(delay),
            sleep=self._sleep,
        )

        mount_point = ""
        if converged and action == MOUNT and last is not None:
            observed = last.find(record.device_id)
            mount_point = observed.mount_point if observed is not None else ""

        if converged:
            result = replace(result, converged=True, mount_point=mount_point)
        else:
            err = ConvergenceError(f"{record.device_id} not observed in the expected state after {action}")
            logger.warning("%s", err)
            result = replace(result, converged=False, error=str(err))
            self._commit(last_error=str(err))

        self._commit(MutationCompleted(result=result))

        if mount_point:
            self._publish(RevealRequested(device_id=record.device_id, mount_point=mount_point))
            if self.settings.reveal_on_mount:
                self._reveal(mount_point)
                if self._on_raise_window is not None:
                    self._dispatch(self._on_raise_window)

        return result
