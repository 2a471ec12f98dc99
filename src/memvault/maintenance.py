"""Housekeeping: expiring, retyping and archiving records, and bulk edits.

    prune(vault, ttl_days=7)                # drop stale temporary records
    promote(vault, "learning-x", "gotcha")  # retype, move and re-id
    archive(vault, "gotcha-old")            # park under archive/
    bulk_tag(vault, add=["infra"], pattern="decision-*")

Bulk operations select records from the index by glob pattern on ids, tags
(all must match), type, scope and explicit ids. At least one criterion is
required. One record failing never stops the rest; failures are collected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from memvault.errors import FieldError, NotFoundError, ValidationError, VaultError
from memvault.models import DEFAULT_EDGE_LABEL, MEMORY_TYPES, TEMPORARY_DIR, parse_timestamp
from memvault.outcome import Outcome, attempt
from memvault.slug import parse_id
from memvault.validation import id_errors, validate_edge_label, validate_tags
from memvault.writer import tag_memory, untag_memory

if TYPE_CHECKING:
    from collections.abc import Iterable

    from memvault.models import IndexEntry
    from memvault.vault import Vault

logger = logging.getLogger("memvault.maintenance")

DEFAULT_TTL_DAYS = 7
CONCLUDED_TTL_DAYS = 1


# ---------------------------------------------------------------------------
# prune
# ---------------------------------------------------------------------------

@dataclass
class PruneResult:
    removed: list[str] = field(default_factory=list)
    would_remove: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "removed": len(self.removed),
            "removedIds": self.removed,
            "dryRun": self.dry_run,
            "failures": [{"id": i, "error": e} for i, e in self.failures],
        }
        if self.dry_run:
            d["wouldRemove"] = self.would_remove
        return d


def prune(
    vault: Vault,
    *,
    ttl_days: float = DEFAULT_TTL_DAYS,
    concluded_ttl_days: float = CONCLUDED_TTL_DAYS,
    dry_run: bool = False,
    now: datetime | None = None,
) -> PruneResult:
    """Delete temporary records not updated within their TTL.

    Concluded thoughts (meta.status == "concluded") expire after
    concluded_ttl_days instead. Records without a parsable timestamp are kept.
    """
    now = now or datetime.now(UTC)
    result = PruneResult(dry_run=dry_run)
    for path in vault.store.iter_files():
        if path.parent.name != TEMPORARY_DIR:
            continue
        memory_id = path.stem
        try:
            record = vault.store.load(path, lenient=True)
        except VaultError as exc:
            vault.log.warning("prune skipped %s: %s", memory_id, exc)
            result.failures.append((memory_id, str(exc)))
            continue
        fm = record.frontmatter
        stamp = parse_timestamp(fm.updated) or parse_timestamp(fm.created)
        if stamp is None:
            continue
        ttl = ttl_days
        if fm.type == "thought" and fm.meta.get("status") == "concluded":
            ttl = concluded_ttl_days
        if now - stamp <= timedelta(days=ttl):
            continue
        if dry_run:
            result.would_remove.append(memory_id)
            continue
        try:
            vault.delete(memory_id)
        except VaultError as exc:
            vault.log.warning("prune could not delete %s: %s", memory_id, exc)
            result.failures.append((memory_id, str(exc)))
            continue
        result.removed.append(memory_id)

    vault.log.info(
        "prune%s: %d expired, %d failed",
        " (dry run)" if dry_run else "", len(result.would_remove or result.removed), len(result.failures),
    )
    return result


# ---------------------------------------------------------------------------
# promote
# ---------------------------------------------------------------------------

@dataclass
class PromoteResult:
    id: str
    from_type: str
    to_type: str
    new_id: str | None = None
    path: str = ""
    moved: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "fromType": self.from_type,
            "toType": self.to_type,
            "path": self.path,
            "moved": self.moved,
        }
        if self.new_id:
            d["newId"] = self.new_id
        return d


def promote(vault: Vault, memory_id: str, target_type: str) -> PromoteResult:
    """Change a record's type.

    The file moves between permanent/ and temporary/ when the new type lives
    elsewhere, and the id is renamed when its type prefix no longer matches.
    Index, graph, embeddings and links in other records follow.
    """
    if target_type not in MEMORY_TYPES:
        msg = f"type must be one of: {', '.join(MEMORY_TYPES)}"
        raise ValidationError(msg, [FieldError("type", msg)])
    record = vault.read(memory_id)
    from_type = record.type
    old_path = vault.locate(memory_id)
    if from_type == target_type:
        return PromoteResult(memory_id, from_type, target_type, path=record.relative_path)

    new_id = None
    parsed = parse_id(memory_id)
    if parsed is not None and parsed[0] != target_type:
        new_id = f"{target_type}-{parsed[1]}"
        errors = id_errors(new_id, target_type)
        if errors:
            raise ValidationError.from_errors(errors)
        if vault.exists(new_id):
            msg = f"memory already exists: {new_id}"
            raise ValidationError(msg, [FieldError("id", msg)])

    record.frontmatter = record.frontmatter.touch(type=target_type)
    new_path = vault.save_record(record)
    moved = old_path is not None and old_path != new_path
    if moved:
        vault.store.delete(old_path)
    attempt("graph node", lambda: _retype_node(vault, memory_id, target_type), vault.log)

    result = PromoteResult(memory_id, from_type, target_type, path=vault.store.relative(new_path), moved=moved)
    if new_id is not None:
        result.path = vault.rename(memory_id, new_id).path
        result.new_id = new_id
    vault.log.info("promoted %s from %s to %s", memory_id, from_type, target_type)
    return result


def _retype_node(vault: Vault, memory_id: str, memory_type: str) -> bool:
    if not vault.graphs.exists():
        return False
    with vault.graphs.mutate() as graph:
        if not graph.has_node(memory_id):
            return False
        graph.add_node(memory_id, memory_type)
    return True


# ---------------------------------------------------------------------------
# archive / restore
# ---------------------------------------------------------------------------

@dataclass
class ArchiveResult:
    id: str
    source: str
    destination: str
    cleanup: list[Outcome[Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "destination": self.destination,
            "cleanup": [o.to_dict() for o in self.cleanup],
        }


def archive(vault: Vault, memory_id: str) -> ArchiveResult:
    """Move a record to archive/ and drop it from index, graph and embeddings.

    The file is kept as written; scans, search and lookups no longer see it.
    """
    path = vault.store.locate(memory_id)
    if path is None:
        raise NotFoundError(memory_id)
    dest = vault.store.archive_path(memory_id)
    if dest.exists():
        msg = f"memory already archived: {memory_id}"
        raise ValidationError(msg, [FieldError("id", msg)])
    source = vault.store.relative(path)
    vault.store.move(path, dest)
    result = ArchiveResult(memory_id, source, vault.store.relative(dest))
    result.cleanup.append(attempt("index", lambda: vault.index.remove(memory_id), vault.log))
    result.cleanup.append(attempt("graph", lambda: vault.graphs.remove_node(memory_id), vault.log))
    result.cleanup.append(attempt("embeddings", lambda: vault.embeddings.cache.remove([memory_id]), vault.log))
    vault.log.info("archived %s", memory_id)
    return result


def restore(vault: Vault, memory_id: str) -> ArchiveResult:
    """Bring an archived record back and re-index it. Its old edges are not restored."""
    src = vault.store.archive_path(memory_id)
    if not src.is_file():
        raise NotFoundError(memory_id, "archived memory")
    if vault.store.exists(memory_id):
        msg = f"memory already exists: {memory_id}"
        raise ValidationError(msg, [FieldError("id", msg)])
    record = vault.store.load(src)
    dest = vault.store.path_for(memory_id, record.type)
    vault.store.move(src, dest)
    vault.reindex(memory_id)
    vault.log.info("restored %s", memory_id)
    return ArchiveResult(memory_id, vault.store.relative(src), vault.store.relative(dest))


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------

@dataclass
class BulkResult:
    """changed: ids acted on (or that would be, on a dry run). unchanged: no-ops."""

    action: str
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "count": len(self.changed),
            "ids": self.changed,
            "unchanged": self.unchanged,
            "failures": [{"id": i, "reason": r} for i, r in self.failures],
            "dryRun": self.dry_run,
        }


def select(
    vault: Vault,
    *,
    pattern: str | None = None,
    tags: Iterable[str] | None = None,
    type: str | None = None,
    scope: str | None = None,
    ids: Iterable[str] | None = None,
) -> tuple[list[IndexEntry], list[str]]:
    """Index entries matching every given criterion, plus requested ids the index lacks."""
    tags = list(tags or ())
    ids = list(ids or ())
    if not (pattern or tags or type or scope or ids):
        msg = "at least one filter is required (pattern, tags, type, scope or ids)"
        raise ValidationError(msg, [FieldError("filter", msg)])
    entries = vault.list_memories(memory_type=type, tags=tags, pattern=pattern, scope=scope)
    entries.sort(key=lambda e: e.id)
    missing: list[str] = []
    if ids:
        wanted = set(ids)
        entries = [e for e in entries if e.id in wanted]
        missing = [i for i in ids if vault.index.find(i) is None]
    return entries, missing


def _begin(action: str, vault: Vault, dry_run: bool, filters: dict[str, Any]) -> tuple[BulkResult, list[str]]:
    entries, missing = select(vault, **filters)
    result = BulkResult(action=action, dry_run=dry_run)
    result.failures.extend((i, "memory not found") for i in missing)
    return result, [e.id for e in entries]


def _finish(vault: Vault, result: BulkResult) -> BulkResult:
    vault.log.info(
        "bulk %s%s: %d changed, %d unchanged, %d failed",
        result.action, " (dry run)" if result.dry_run else "",
        len(result.changed), len(result.unchanged), len(result.failures),
    )
    return result


def bulk_delete(vault: Vault, *, dry_run: bool = False, **filters: Any) -> BulkResult:
    result, ids = _begin("delete", vault, dry_run, filters)
    for memory_id in ids:
        if dry_run:
            result.changed.append(memory_id)
            continue
        try:
            vault.delete(memory_id)
        except VaultError as exc:
            result.failures.append((memory_id, str(exc)))
            continue
        result.changed.append(memory_id)
    return _finish(vault, result)


def bulk_tag(
    vault: Vault,
    *,
    add: Iterable[str] = (),
    remove: Iterable[str] = (),
    dry_run: bool = False,
    **filters: Any,
) -> BulkResult:
    """Add and/or remove tags on every selected record."""
    add, remove = list(add), list(remove)
    if not add and not remove:
        msg = "at least one of add or remove is required"
        raise ValidationError(msg, [FieldError("tags", msg)])
    if add:
        add = validate_tags(add)
    if remove:
        remove = validate_tags(remove)
    result, ids = _begin("tag", vault, dry_run, filters)
    for memory_id in ids:
        if dry_run:
            result.changed.append(memory_id)
            continue
        try:
            changed = tag_memory(vault, memory_id, add).changed if add else []
            if remove:
                changed = changed + untag_memory(vault, memory_id, remove).changed
        except VaultError as exc:
            result.failures.append((memory_id, str(exc)))
            continue
        (result.changed if changed else result.unchanged).append(memory_id)
    return _finish(vault, result)


def bulk_link(
    vault: Vault,
    target: str,
    *,
    label: str = DEFAULT_EDGE_LABEL,
    dry_run: bool = False,
    **filters: Any,
) -> BulkResult:
    """Link every selected record to target. The target itself is skipped."""
    label = validate_edge_label(label)
    if not target or vault.entry_type(target) is None:
        raise NotFoundError(target or "<empty>")
    result, ids = _begin("link", vault, dry_run, filters)
    graph = vault.graph()
    for memory_id in ids:
        if memory_id == target:
            continue
        if dry_run:
            if graph.has_edge(memory_id, target, label):
                result.unchanged.append(memory_id)
            else:
                result.changed.append(memory_id)
            continue
        try:
            linked = vault.link(memory_id, target, label)
        except VaultError as exc:
            result.failures.append((memory_id, str(exc)))
            continue
        (result.unchanged if linked.already_exists else result.changed).append(memory_id)
    return _finish(vault, result)


def bulk_unlink(
    vault: Vault,
    target: str,
    *,
    label: str | None = None,
    dry_run: bool = False,
    **filters: Any,
) -> BulkResult:
    """Remove edges from every selected record to target (one label, or all)."""
    if not target:
        msg = "target is required"
        raise ValidationError(msg, [FieldError("target", msg)])
    result, ids = _begin("unlink", vault, dry_run, filters)
    graph = vault.graph()
    for memory_id in ids:
        if dry_run:
            if graph.has_edge(memory_id, target, label):
                result.changed.append(memory_id)
            else:
                result.unchanged.append(memory_id)
            continue
        try:
            removed = vault.unlink(memory_id, target, label)
        except VaultError as exc:
            result.failures.append((memory_id, str(exc)))
            continue
        (result.changed if removed else result.unchanged).append(memory_id)
    return _finish(vault, result)
