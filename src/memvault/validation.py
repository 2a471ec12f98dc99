"""Input validation. Each validator collects every problem before raising once."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from memvault.errors import FieldError, ValidationError
from memvault.models import EDGE_LABELS, MEMORY_TYPES, SCOPES, SEVERITIES, normalise_scope, parse_timestamp
from memvault.slug import is_valid_id, is_valid_slug, parse_id

if TYPE_CHECKING:
    from memvault.writer import WriteRequest


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _str_list(value: Any) -> bool:
    return isinstance(value, list | tuple) and all(_non_empty_str(v) for v in value)


def _one_of(name: str, choices: tuple[str, ...]) -> str:
    return f"{name} must be one of: {', '.join(choices)}"


def write_request_errors(request: WriteRequest) -> list[FieldError]:
    errors: list[FieldError] = []
    if not _non_empty_str(request.title):
        errors.append(FieldError("title", "title is required and must be a non-empty string"))
    if request.type not in MEMORY_TYPES:
        errors.append(FieldError("type", _one_of("type", MEMORY_TYPES)))
    if not _non_empty_str(request.content):
        errors.append(FieldError("content", "content is required and must be a non-empty string"))
    if not _str_list(request.tags):
        errors.append(FieldError("tags", "tags must be a list of non-empty strings"))
    if request.scope is not None and (not isinstance(request.scope, str) or normalise_scope(request.scope) not in SCOPES):
        errors.append(FieldError("scope", _one_of("scope", SCOPES)))
    if request.severity is not None and request.severity not in SEVERITIES:
        errors.append(FieldError("severity", _one_of("severity", SEVERITIES)))
    if request.links is not None and not _str_list(request.links):
        errors.append(FieldError("links", "links must be a list of non-empty strings"))
    if request.meta is not None and not isinstance(request.meta, dict):
        errors.append(FieldError("meta", "meta must be a mapping"))
    if request.id is not None:
        errors.extend(id_errors(request.id, request.type))
    if not 0.0 <= request.auto_link_threshold <= 1.0:
        errors.append(FieldError("auto_link_threshold", "must be between 0 and 1"))
    return errors


def id_errors(memory_id: Any, memory_type: str | None = None) -> list[FieldError]:
    """A caller-supplied id must be <type>-<slug>, and match the declared type if one is given."""
    if not _non_empty_str(memory_id):
        return [FieldError("id", "id must be a non-empty string")]
    parsed = parse_id(memory_id)
    if parsed is None or not parsed[1]:
        return [FieldError("id", "id must start with a known type prefix")]
    if memory_type is not None and memory_type in MEMORY_TYPES and parsed[0] != memory_type:
        return [FieldError("id", f"id prefix '{parsed[0]}' does not match type '{memory_type}'")]
    if not is_valid_id(memory_id):
        return [FieldError("id", "id must be <type>-<slug> with a lowercase hyphenated slug")]
    return []


def validate_write_request(request: WriteRequest) -> None:
    errors = write_request_errors(request)
    if errors:
        raise ValidationError.from_errors(errors)


def validate_tags(tags: Any) -> list[str]:
    if not _str_list(tags) or not tags:
        raise ValidationError.from_errors([FieldError("tags", "tags must be a non-empty list of non-empty strings")])
    return [t.strip() for t in tags]


def validate_edge_label(label: Any) -> str:
    """Labels are free-form relation names (EDGE_LABELS lists the usual ones) in slug form."""
    if not _non_empty_str(label) or not is_valid_slug(label):
        msg = f"label must be a lowercase hyphenated name such as {', '.join(EDGE_LABELS[:3])}"
        raise ValidationError.from_errors([FieldError("label", msg)])
    return label


# ---------------------------------------------------------------------------
# Record headers and export packages
# ---------------------------------------------------------------------------

def frontmatter_errors(fm: Any, prefix: str = "") -> list[FieldError]:
    if not isinstance(fm, dict):
        return [FieldError(f"{prefix}frontmatter", "frontmatter must be a mapping")]
    errors: list[FieldError] = []
    if fm.get("type") not in MEMORY_TYPES:
        errors.append(FieldError(f"{prefix}type", _one_of("type", MEMORY_TYPES)))
    if not _non_empty_str(fm.get("title")):
        errors.append(FieldError(f"{prefix}title", "title is required"))
    for key in ("created", "updated"):
        value = fm.get(key)
        if not isinstance(value, str) or parse_timestamp(value) is None:
            errors.append(FieldError(f"{prefix}{key}", f"{key} must be an ISO-8601 timestamp"))
    if not isinstance(fm.get("tags"), list):
        errors.append(FieldError(f"{prefix}tags", "tags must be a list"))
    if fm.get("severity") is not None and fm["severity"] not in SEVERITIES:
        errors.append(FieldError(f"{prefix}severity", _one_of("severity", SEVERITIES)))
    if fm.get("links") is not None and not _str_list(fm["links"]):
        errors.append(FieldError(f"{prefix}links", "links must be a list of non-empty strings"))
    if fm.get("meta") is not None and not isinstance(fm["meta"], dict):
        errors.append(FieldError(f"{prefix}meta", "meta must be a mapping"))
    return errors


def export_package_errors(pkg: Any) -> list[FieldError]:
    """Structural check of an export package. Nothing is written until this comes back empty."""
    if not isinstance(pkg, dict):
        return [FieldError("package", "package must be a mapping")]
    errors: list[FieldError] = []
    if not isinstance(pkg.get("version"), str):
        errors.append(FieldError("version", "version must be a string"))
    if not isinstance(pkg.get("exportedAt"), str):
        errors.append(FieldError("exportedAt", "exportedAt must be a string"))
    memories = pkg.get("memories")
    if not isinstance(memories, list):
        errors.append(FieldError("memories", "memories must be a list"))
        memories = []
    for i, mem in enumerate(memories):
        where = f"memories[{i}]."
        if not isinstance(mem, dict):
            errors.append(FieldError(f"memories[{i}]", "must be a mapping"))
            continue
        if not _non_empty_str(mem.get("id")) or id_errors(mem["id"]):
            errors.append(FieldError(f"{where}id", "id must be a valid memory id"))
        if not isinstance(mem.get("content"), str):
            errors.append(FieldError(f"{where}content", "content must be a string"))
        errors.extend(frontmatter_errors(mem.get("frontmatter"), where))
    graph = pkg.get("graph")
    if graph is not None:
        if not isinstance(graph, dict) or not isinstance(graph.get("nodes"), list) or not isinstance(
            graph.get("edges"), list
        ):
            errors.append(FieldError("graph", "graph must have nodes and edges lists"))
        else:
            for i, edge in enumerate(graph["edges"]):
                if not (
                    isinstance(edge, dict)
                    and _non_empty_str(edge.get("source"))
                    and _non_empty_str(edge.get("target"))
                    and _non_empty_str(edge.get("label"))
                ):
                    errors.append(FieldError(f"graph.edges[{i}]", "edge needs source, target and label"))
    return errors
