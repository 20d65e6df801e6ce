from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError
from .reconcile import VerifyPolicy

ENV_CONFIG = "EFI_MOUNTER_CONFIG"
DEFAULT_CONFIG_PATH = "~/.config/efi-mounter/config.yaml"
DEFAULT_LOG_PATH = "~/.local/state/efi-mounter/efi-mounter.log"
SECTIONS = ("timeouts", "delays", "verify")


@dataclass(frozen=True)
class Settings:
    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        value = self.raw.get(name) or {}
        if not isinstance(value, dict):
            raise ConfigError(f"config section {name!r} must be a mapping, got {value!r}")
        return value

    @property
    def elevation(self) -> str:
        return str(self.raw.get("elevation") or "osascript")

    @property
    def query_timeout_s(self) -> float:
        return float(self._section("timeouts").get("query_s", 30))

    @property
    def privileged_timeout_s(self) -> float:
        return float(self._section("timeouts").get("privileged_s", 120))

    @property
    def mount_delay_s(self) -> float:
        return float(self._section("delays").get("mount_s", 0.5))

    @property
    def eject_delay_s(self) -> float:
        return float(self._section("delays").get("eject_s", 1.0))

    @property
    def rescan_delay_s(self) -> float:
        return float(self._section("delays").get("rescan_s", 1.0))

    @property
    def bootloader_dirs(self) -> List[str]:
        return list(self.raw.get("bootloader_dirs") or ["EFI/OC", "EFI/CLOVER"])

    @property
    def reveal_on_mount(self) -> bool:
        return bool(self.raw.get("reveal_on_mount", True))

    @property
    def log_path(self) -> str:
        return os.path.expanduser(str(self.raw.get("log_path") or DEFAULT_LOG_PATH))

    def verify_policy(self, initial_delay_s: float) -> VerifyPolicy:
        v = self._section("verify")
        return VerifyPolicy(
            initial_delay_s=initial_delay_s,
            attempts=int(v.get("attempts", 5)),
            backoff=float(v.get("backoff", 2.0)),
            max_delay_s=float(v.get("max_delay_s", 4.0)),
            deadline_s=float(v.get("deadline_s", 15.0)),
        )


def default_config_path() -> str:
    return os.path.expanduser(os.environ.get(ENV_CONFIG) or DEFAULT_CONFIG_PATH)


def load_settings(path: Optional[str] = None) -> Settings:
    """Load YAML settings. A missing file yields defaults."""

    p = Path(path or default_config_path()).expanduser()
    if not p.exists():
        if path:
            raise FileNotFoundError(str(p))
        return Settings()

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError(f"config must be YAML: {p}")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the efi-mounter config") from e

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must contain a mapping/object")

    settings = Settings(raw=raw)
    for name in SECTIONS:
        settings._section(name)
    return settings
