"""Device trace writer.

Every device-affecting step of a lifecycle run (install, reboot, active-set
query, uninstall, session abandon, extension check) is appended as one JSON
object per line to ``device_trace.jsonl``. The trace is append-only so that
the pre-test reset, the lifecycle body and the post-test reset of one run end
up in a single file.
"""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional


def _utc_ms() -> int:
    return int(time.time() * 1000)


def _json_dumps_canonical(obj: Any) -> str:
    """Deterministic JSON encoding for hashing / stable digests."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def stable_file_sha256(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


class DeviceTrace:
    """Append-only JSONL trace of device events."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else None
        self.events: list[Dict[str, Any]] = []
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, event: str, **fields: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"event": event, "ts_ms": _utc_ms(), **fields}
        self.events.append(payload)
        if self.path is not None:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(_json_dumps_canonical(payload))
                f.write("\n")
        return payload

    def names(self) -> list[str]:
        return [ev["event"] for ev in self.events]


def load_trace(path: Path) -> list[Dict[str, Any]]:
    return [
        json.loads(line)
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]


def apex_set_for_trace(apexes: Iterable[Any]) -> list[str]:
    return sorted(str(a) for a in apexes)
