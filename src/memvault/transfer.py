"""Portable export packages and re-ingesting them.

Package layout (JSON or YAML):
    {"version": "1.0.0", "exportedAt": "...", "sourceScope": "project",
     "memories": [{"id": ..., "frontmatter": {...}, "content": ...}],
     "graph": {"nodes": [...], "edges": [...]}}

Import checks the whole package before writing anything. Records keep their
own created/updated stamps so that a later merge can compare them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import yaml

from memvault.errors import FieldError, FormatError, ValidationError, VaultError
from memvault.models import Frontmatter, Record, merge_tags, normalise_scope, now_iso, parse_timestamp, scope_tag
from memvault.validation import export_package_errors

if TYPE_CHECKING:
    from collections.abc import Iterable

    from memvault.vault import Vault

logger = logging.getLogger("memvault.transfer")

EXPORT_VERSION = "1.0.0"
FORMATS = ("json", "yaml")
STRATEGIES = ("skip", "merge", "replace")


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

@dataclass
class ExportResult:
    package: dict[str, Any]
    serialised: str
    count: int


def serialise_package(package: dict[str, Any], fmt: str = "json") -> str:
    if fmt not in FORMATS:
        msg = f"unknown export format '{fmt}'"
        raise ValidationError(msg, [FieldError("format", msg)])
    if fmt == "yaml":
        return yaml.safe_dump(package, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return json.dumps(package, indent=2, ensure_ascii=False) + "\n"


def export_memories(
    vault: Vault,
    *,
    type: str | None = None,
    scope: str | None = None,
    tags: Iterable[str] | None = None,
    pattern: str | None = None,
    include_graph: bool = False,
    format: str = "json",
) -> ExportResult:
    """Package the matching records, and optionally the graph induced by them."""
    if format not in FORMATS:
        msg = f"unknown export format '{format}'"
        raise ValidationError(msg, [FieldError("format", msg)])
    entries = vault.list_memories(memory_type=type, tags=tags, pattern=pattern, scope=scope)
    memories: list[dict[str, Any]] = []
    for entry in sorted(entries, key=lambda e: e.id):
        try:
            record = vault.read(entry.id, lenient=True)
        except VaultError as exc:
            vault.log.warning("export skipped %s: %s", entry.id, exc)
            continue
        memories.append({"id": record.id, "frontmatter": record.frontmatter.to_dict(), "content": record.content})

    package: dict[str, Any] = {"version": EXPORT_VERSION, "exportedAt": now_iso()}
    if scope:
        package["sourceScope"] = normalise_scope(scope)
    package["memories"] = memories
    if include_graph:
        exported = [m["id"] for m in memories]
        package["graph"] = vault.graph().subgraph(exported).to_dict()

    vault.log.info("exported %d memories as %s", len(memories), format)
    return ExportResult(package=package, serialised=serialise_package(package, format), count=len(memories))


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

@dataclass
class ImportResult:
    imported: int = 0
    merged: int = 0
    skipped: int = 0
    replaced: int = 0
    links_created: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "merged": self.merged,
            "skipped": self.skipped,
            "replaced": self.replaced,
            "linksCreated": self.links_created,
            "failures": [{"id": i, "reason": r} for i, r in self.failures],
            "dryRun": self.dry_run,
        }


def parse_package(raw: str) -> dict[str, Any]:
    """JSON when the text starts with '{', YAML otherwise."""
    text = raw.strip()
    try:
        data = json.loads(text) if text.startswith("{") else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"cannot parse import data: {exc}"
        raise FormatError(msg) from exc
    if not isinstance(data, dict):
        msg = "import data must be a mapping"
        raise FormatError(msg)
    return data


def _is_newer(incoming: str, existing: str) -> bool:
    new, old = parse_timestamp(incoming), parse_timestamp(existing)
    if new is None:
        return False
    if old is None:
        return True
    return new > old


def import_memories(
    vault: Vault,
    data: dict[str, Any] | None = None,
    *,
    raw: str | None = None,
    strategy: str = "merge",
    dry_run: bool = False,
    target_scope: str | None = None,
) -> ImportResult:
    """Ingest an export package.

    skip     existing ids are never touched
    merge    existing ids are overwritten only by a strictly newer `updated`
    replace  existing ids are always overwritten

    A dry run reports the same counts without writing.
    """
    if data is None:
        if raw is None:
            msg = "either data or raw import text is required"
            raise ValidationError(msg)
        data = parse_package(raw)
    if strategy not in STRATEGIES:
        msg = f"strategy must be one of: {', '.join(STRATEGIES)}"
        raise ValidationError(msg, [FieldError("strategy", msg)])
    if target_scope is not None and normalise_scope(target_scope) != vault.scope:
        msg = f"target scope '{target_scope}' does not match storage root scope '{vault.scope}'"
        raise ValidationError(msg, [FieldError("targetScope", msg)])
    errors = export_package_errors(data)
    if errors:
        raise ValidationError.from_errors(errors)

    result = ImportResult(dry_run=dry_run)
    for mem in data["memories"]:
        memory_id = mem["id"]
        fm = Frontmatter.from_dict(mem["frontmatter"])
        existing = vault.index.find(memory_id)
        existing_updated = existing.updated if existing is not None else None
        if existing is None and vault.store.exists(memory_id):
            try:
                existing_updated = vault.read(memory_id, lenient=True).frontmatter.updated
            except VaultError as exc:
                vault.log.warning("import of %s failed: %s", memory_id, exc)
                result.failures.append((memory_id, str(exc)))
                continue

        outcome = "imported"
        if existing_updated is not None:
            if strategy == "skip":
                result.skipped += 1
                continue
            if strategy == "merge":
                if not _is_newer(fm.updated, existing_updated):
                    result.skipped += 1
                    continue
                outcome = "merged"
            else:
                outcome = "replaced"

        dup = vault.find_in_siblings(memory_id)
        if dup is not None:
            result.failures.append((memory_id, f"already exists in scope '{dup[0]}'"))
            continue

        if not dry_run:
            fm.id = memory_id
            fm.scope = vault.scope
            fm.tags = merge_tags(fm.tags, [scope_tag(vault.scope)])
            try:
                vault.save_record(Record(id=memory_id, frontmatter=fm, content=mem["content"].strip()))
                vault.attach_to_graph(memory_id, fm.type, fm.links)
            except VaultError as exc:
                vault.log.warning("import of %s failed: %s", memory_id, exc)
                result.failures.append((memory_id, str(exc)))
                continue

        result.imported += 1
        if outcome == "merged":
            result.merged += 1
        elif outcome == "replaced":
            result.replaced += 1

    graph = data.get("graph")
    if not dry_run and graph:
        for edge in graph["edges"]:
            try:
                linked = vault.link(edge["source"], edge["target"], edge["label"])
            except VaultError as exc:
                vault.log.warning("import: edge %s -> %s not created: %s", edge["source"], edge["target"], exc)
                continue
            if not linked.already_exists:
                result.links_created += 1

    vault.log.info(
        "import%s: imported=%d merged=%d skipped=%d replaced=%d failed=%d",
        " (dry run)" if dry_run else "", result.imported, result.merged,
        result.skipped, result.replaced, len(result.failures),
    )
    return result
