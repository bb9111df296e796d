"""JSON Lines audit trail of refresh passes and message actions."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional


class AuditLogger:
    """Append one structured record per refresh pass or message action."""

    def __init__(self, path: Optional[Path] = None) -> None:
        target = path or Path(os.getenv("OTPRADAR_AUDIT_LOG", "artifacts/audit.log"))
        target.parent.mkdir(parents=True, exist_ok=True)
        self._path = target
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def log(self, *, event: str, payload: Dict[str, Any]) -> None:
        record = {
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
            "event": event,
            "payload": payload,
        }
        async with self._lock:
            await asyncio.to_thread(self._append_line, record)

    def _append_line(self, record: Dict[str, Any]) -> None:
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, ensure_ascii=True, default=str))
            fh.write("\n")

    def read(self) -> List[Dict[str, Any]]:
        """Return every record written so far, skipping unreadable lines."""
        if not self._path.exists():
            return []
        records: List[Dict[str, Any]] = []
        for line in self._path.read_text(encoding="utf-8").splitlines():
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return records
