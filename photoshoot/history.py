"""Archive of completed batches, persisted as a JSON file."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from photoshoot.models import BatchParameters, HistoryEntry, TrackedItem

logger = logging.getLogger(__name__)


def _load_status(path: Path) -> dict:
    """Load the history file, or an empty document if it does not exist."""
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    return {"entries": []}


def _save_status(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


class HistoryStore:
    """Append/list/remove/clear store keyed by millisecond timestamp.

    Entries are kept newest first.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(
        self,
        params: BatchParameters,
        items: Iterable[TrackedItem],
        timestamp: datetime | None = None,
    ) -> int:
        """Archive a completed batch and return its id."""
        timestamp = timestamp or datetime.now(timezone.utc)
        data = _load_status(self.path)
        entries = data.setdefault("entries", [])

        entry_id = int(timestamp.timestamp() * 1000)
        taken = {int(e["id"]) for e in entries}
        while entry_id in taken:
            entry_id += 1

        entry = HistoryEntry(
            id=entry_id,
            date=timestamp.isoformat(),
            params=params,
            items=list(items),
        )
        entries.append(entry.to_dict())
        entries.sort(key=lambda e: int(e["id"]), reverse=True)
        _save_status(self.path, data)
        logger.info("Saved history entry %d (%d item(s))", entry_id, len(entry.items))
        return entry_id

    def list(self) -> list[HistoryEntry]:
        """Return all entries, newest first."""
        entries = _load_status(self.path).get("entries", [])
        return sorted(
            (HistoryEntry.from_dict(e) for e in entries),
            key=lambda e: e.id,
            reverse=True,
        )

    def get(self, entry_id: int) -> HistoryEntry | None:
        for entry in _load_status(self.path).get("entries", []):
            if int(entry["id"]) == entry_id:
                return HistoryEntry.from_dict(entry)
        return None

    def remove(self, entry_id: int) -> bool:
        """Delete one entry. Returns True if it existed."""
        data = _load_status(self.path)
        entries = data.get("entries", [])
        kept = [e for e in entries if int(e["id"]) != entry_id]
        if len(kept) == len(entries):
            return False
        data["entries"] = kept
        _save_status(self.path, data)
        logger.info("Removed history entry %d", entry_id)
        return True

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
        logger.info("Cleared history")
