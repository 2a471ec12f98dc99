"""Identifier generation: title -> slug -> `<type>-<slug>` id."""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

from memvault.errors import ValidationError
from memvault.models import MEMORY_TYPES

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

MAX_SLUG_LENGTH = 80
MAX_COLLISIONS = 1000
UNTITLED = "untitled"

_NON_SLUG = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_VALID_SLUG = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(title: str) -> str:
    """Lowercase, strip diacritics, keep [a-z0-9-], collapse hyphens, cap length.

    Idempotent: slugify(slugify(x)) == slugify(x).
    """
    text = unicodedata.normalize("NFKD", title.lower().strip())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_SLUG.sub("", text)
    text = _WHITESPACE.sub("-", text)
    text = _HYPHENS.sub("-", text).strip("-")
    if len(text) > MAX_SLUG_LENGTH:
        text = text[:MAX_SLUG_LENGTH].rstrip("-")
    return text


def _strip_type_prefix(memory_type: str, title: str) -> str:
    """'Gotcha: Edge Case' for a gotcha -> 'Edge Case'. Leaves the title alone if nothing remains."""
    m = re.match(rf"^\s*{re.escape(memory_type)}\s*[:\-]+\s*(.*)$", title, re.IGNORECASE | re.DOTALL)
    if m and m.group(1).strip():
        return m.group(1)
    return title


def generate_id(memory_type: str, title: str) -> str:
    slug = slugify(_strip_type_prefix(memory_type, title)) or UNTITLED
    return f"{memory_type}-{slug}"


def resolve_collision(candidate: str, existing_ids: Iterable[str]) -> str:
    """Return candidate if free, else candidate-N for the lowest unused N >= 1."""
    taken = set(existing_ids)
    if candidate not in taken:
        return candidate
    n = 1
    while f"{candidate}-{n}" in taken:
        n += 1
    return f"{candidate}-{n}"


def generate_unique_id(memory_type: str, title: str, exists: Callable[[str], bool]) -> str:
    """generate_id plus the lowest free numeric suffix, checked against exists()."""
    base = generate_id(memory_type, title)
    if not exists(base):
        return base
    for n in range(1, MAX_COLLISIONS + 1):
        candidate = f"{base}-{n}"
        if not exists(candidate):
            return candidate
    msg = f"too many collisions for id: {base}"
    raise ValidationError(msg)


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and _VALID_SLUG.match(slug) is not None


def parse_id(memory_id: str) -> tuple[str, str] | None:
    """Split an id into (type, slug), or None when it has no known type prefix."""
    for memory_type in MEMORY_TYPES:
        prefix = f"{memory_type}-"
        if memory_id.startswith(prefix):
            return memory_type, memory_id[len(prefix):]
    return None


def is_valid_id(memory_id: str) -> bool:
    parsed = parse_id(memory_id)
    return parsed is not None and is_valid_slug(parsed[1])
