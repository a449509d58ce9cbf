"""
Deployment Ledger — Append-only NDJSON record of deployments.

Each line is one JSON object (newline-delimited JSON).
Entries are never edited, only appended.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..pipeline.context import utc_now_iso

logger = logging.getLogger(__name__)


class DeploymentLedger:
    """
    Append-only NDJSON deployment ledger.

    Usage:
        ledger = DeploymentLedger(Path("state/deployments.ndjson"))
        ledger.append("deployment", result.to_dict())
    """

    _write_lock = threading.Lock()

    def __init__(self, path: Path):
        self.path = Path(path)
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def append(self, entry_type: str, payload: Dict[str, Any]) -> str:
        """
        Append one entry.

        Args:
            entry_type: Kind of entry (deployment, deployment_summary, ...)
            payload: JSON-serializable body

        Returns:
            Generated entry_id
        """
        entry_id = f"L-{uuid4().hex[:8].upper()}"
        entry = {
            "ts_iso": utc_now_iso(),
            "entry_id": entry_id,
            "type": entry_type,
            **payload,
        }
        line = json.dumps(entry, default=str)
        with self._write_lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        return entry_id

    def read(self, target_id: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Entries in write order, optionally filtered by target and capped to the last ``limit``."""
        entries = []
        with self.path.open("r", encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed ledger line {number} in {self.path}")
                    continue
                if target_id is None or entry.get("target_id") == target_id:
                    entries.append(entry)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries
