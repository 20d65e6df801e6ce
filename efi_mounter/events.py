from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .models import MutationResult, ScanResult


@dataclass(frozen=True)
class ScanStarted:
    reason: str  # scan|rescan|verify


@dataclass(frozen=True)
class ScanCompleted:
    result: Optional[ScanResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MutationCompleted:
    result: MutationResult


@dataclass(frozen=True)
class OperationQueued:
    operation: str
    pending: int


@dataclass(frozen=True)
class RevealRequested:
    device_id: str
    mount_point: str


Event = Union[ScanStarted, ScanCompleted, MutationCompleted, OperationQueued, RevealRequested]
