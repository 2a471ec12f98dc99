"""index.json: flat summary cache of every record in a storage root.

Document layout:
    {
      "version": "1.0.0",
      "lastUpdated": "2026-...",
      "entries": [
        {"id": "gotcha-edge-case", "type": "gotcha", "title": "...", "tags": [...],
         "created": "...", "updated": "...", "scope": "project",
         "relativePath": "permanent/gotcha-edge-case.md"}
      ]
    }

Older documents keep entries under "memories" and/or carry an absolute "file"
path instead of "relativePath"; both are migrated on load. A missing or
unparsable index loads as empty; the files are the source of truth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from memvault.errors import FormatError, StorageError, ValidationError
from memvault.models import IndexEntry, now_iso, subdir_for
from memvault.store import RECORD_SUFFIX, json_lock, read_json, write_json

if TYPE_CHECKING:
    from collections.abc import Iterable

    from memvault.store import FileStore

logger = logging.getLogger("memvault.index")

INDEX_FILENAME = "index.json"
INDEX_VERSION = "1.0.0"


@dataclass
class RebuildResult:
    entries: list[IndexEntry] = field(default_factory=list)
    orphans_removed: list[str] = field(default_factory=list)
    new_entries_added: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": len(self.entries),
            "orphansRemoved": self.orphans_removed,
            "newEntriesAdded": self.new_entries_added,
            "failures": [{"path": p, "error": e} for p, e in self.failures],
        }


class IndexCache:
    """Load/mutate/save wrapper around index.json."""

    def __init__(self, store: FileStore, scope: str, log: logging.Logger | None = None) -> None:
        self.store = store
        self.scope = scope
        self.path = store.root / INDEX_FILENAME
        self.log = log or logger

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[IndexEntry]:
        data = read_json(self.path, self.log)
        if data is None:
            return []
        if not isinstance(data, dict):
            self.log.warning("index %s is not an object, treating as empty", self.path)
            return []
        raw = data.get("entries")
        if raw is None:
            raw = data.get("memories", [])
        if not isinstance(raw, list):
            self.log.warning("index %s has no entry list, treating as empty", self.path)
            return []

        entries: list[IndexEntry] = []
        migrated = 0
        for item in raw:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str) or not item["id"]:
                continue
            if not item.get("relativePath"):
                item = {**item, "relativePath": self._migrate_path(item)}
                migrated += 1
            entries.append(IndexEntry.from_dict(item))
        if migrated:
            self.log.info("migrated %d legacy index entries in %s", migrated, self.path)
        return entries

    def _migrate_path(self, item: dict[str, Any]) -> str:
        """Root-relative path for a legacy entry (absolute 'file' or no path at all)."""
        legacy = item.get("file")
        if isinstance(legacy, str) and legacy:
            p = Path(legacy)
            if p.is_absolute():
                try:
                    return p.relative_to(self.store.root).as_posix()
                except ValueError:
                    pass
                # Root moved since the entry was written; keep the subdir/name tail.
                if p.parent.name in ("permanent", "temporary"):
                    return f"{p.parent.name}/{p.name}"
            else:
                return p.as_posix()
        return f"{subdir_for(item.get('type', ''))}/{item['id']}{RECORD_SUFFIX}"

    def save(self, entries: Iterable[IndexEntry]) -> None:
        write_json(self.path, {
            "version": INDEX_VERSION,
            "lastUpdated": now_iso(),
            "entries": [e.to_dict() for e in entries],
        })

    # ------------------------------------------------------------------
    # Mutations (each is one locked load/save cycle)
    # ------------------------------------------------------------------

    def add(self, entry: IndexEntry) -> None:
        """Insert or replace by id (last write wins)."""
        with json_lock(self.path):
            entries = [e for e in self.load() if e.id != entry.id]
            entries.append(entry)
            self.save(entries)

    def remove(self, memory_id: str) -> bool:
        return self.batch_remove([memory_id]) > 0

    def batch_remove(self, memory_ids: Iterable[str]) -> int:
        doomed = set(memory_ids)
        with json_lock(self.path):
            entries = self.load()
            kept = [e for e in entries if e.id not in doomed]
            removed = len(entries) - len(kept)
            if removed:
                self.save(kept)
        return removed

    def replace_all(self, entries: list[IndexEntry]) -> None:
        with json_lock(self.path):
            self.save(entries)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find(self, memory_id: str) -> IndexEntry | None:
        for e in self.load():
            if e.id == memory_id:
                return e
        return None

    def ids(self) -> set[str]:
        return {e.id for e in self.load()}

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def scan(self) -> tuple[list[IndexEntry], list[tuple[str, str]]]:
        """Derive an entry for every parseable file on disk. Bad files are reported, not fatal."""
        entries: list[IndexEntry] = []
        failures: list[tuple[str, str]] = []
        for memory_id, path in self.store.list_files().items():
            rel = self.store.relative(path)
            try:
                record = self.store.load(path)
            except (FormatError, ValidationError, StorageError) as exc:
                self.log.warning("skipping unparsable record %s: %s", rel, exc)
                failures.append((rel, str(exc)))
                continue
            record.id = memory_id
            entries.append(IndexEntry.from_record(record, self.scope))
        return entries, failures

    def rebuild(self) -> RebuildResult:
        """Replace the index wholesale with entries derived from the files."""
        with json_lock(self.path):
            before = {e.id for e in self.load()}
            entries, failures = self.scan()
            after = {e.id for e in entries}
            self.save(entries)
        result = RebuildResult(
            entries=entries,
            orphans_removed=sorted(before - after),
            new_entries_added=sorted(after - before),
            failures=failures,
        )
        self.log.info(
            "index rebuilt: %d entries, %d orphans removed, %d added, %d failures",
            len(entries), len(result.orphans_removed), len(result.new_entries_added), len(failures),
        )
        return result
