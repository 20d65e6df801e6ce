from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .models import ScanResult

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def _yaml():
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("YAML snapshot requested but PyYAML is not available. Use a .json path.") from e
    return yaml


def dumps_snapshot(result: ScanResult, fmt: str = "json") -> str:
    data = result.to_dict()
    if fmt in {"yaml", "yml"}:
        return _yaml().safe_dump(data, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def save_snapshot(path: str, result: ScanResult) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(dumps_snapshot(result, _detect_format(p)), encoding="utf-8")
    logger.info("Wrote snapshot (%d partitions) to %s", len(result.partitions), p)


def load_snapshot(path: str) -> Dict[str, Any]:
    """Read an exported snapshot back as a plain mapping."""

    p = Path(path)
    fmt = _detect_format(p)
    text = p.read_text(encoding="utf-8")

    data: Any
    if fmt in {"yaml", "yml"}:
        data = _yaml().safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"Snapshot file must be an object/dict, got {type(data)}")
    return data
