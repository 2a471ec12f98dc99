"""Record file codec: YAML frontmatter header + free-text body.

File layout:
    ---
    id: gotcha-edge-case
    title: Edge case
    type: gotcha
    created: '2026-01-01T00:00:00+00:00'
    updated: '2026-01-01T00:00:00+00:00'
    tags:
    - project
    ---

    Body text, stored verbatim (outer whitespace trimmed).
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

import yaml

from memvault.errors import FieldError, FormatError, ValidationError
from memvault.models import MEMORY_TYPES, Frontmatter

DELIMITER = "---"

_HEADER_RE = re.compile(r"\A---[ \t]*\n(.*?)^---[ \t]*$\n?(.*)\Z", re.DOTALL | re.MULTILINE)
_REQUIRED = ("type", "title", "created", "updated")


def _plain(value: Any) -> Any:
    """YAML may hand back datetimes for unquoted timestamps; keep everything as strings."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def split_header(text: str) -> tuple[dict[str, Any], str]:
    """Split text into (raw header mapping, trimmed body). Raises FormatError."""
    text = text.replace("\r\n", "\n")
    m = _HEADER_RE.match(text)
    if m is None:
        msg = "missing or malformed frontmatter delimiters"
        raise FormatError(msg)
    try:
        raw = yaml.safe_load(m.group(1))
    except yaml.YAMLError as exc:
        msg = f"invalid YAML frontmatter: {exc}"
        raise FormatError(msg) from exc
    if not isinstance(raw, dict):
        msg = "frontmatter must be a mapping"
        raise FormatError(msg)
    return _plain(raw), m.group(2).strip()


def check_header(raw: dict[str, Any]) -> list[FieldError]:
    """Required-field contract. Returns every violation found."""
    errors: list[FieldError] = []
    for key in _REQUIRED:
        value = raw.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(FieldError(key, "required"))
    if "tags" not in raw:
        errors.append(FieldError("tags", "required"))
    elif not isinstance(raw["tags"], list):
        errors.append(FieldError("tags", "must be a list"))
    memory_type = raw.get("type")
    if memory_type and memory_type not in MEMORY_TYPES:
        errors.append(FieldError("type", f"unknown type '{memory_type}'"))
    if raw.get("meta") is not None and not isinstance(raw["meta"], dict):
        errors.append(FieldError("meta", "must be a mapping"))
    return errors


def parse_record(text: str, *, lenient: bool = False) -> tuple[Frontmatter, str]:
    """Parse a record file into (frontmatter, body).

    Malformed delimiters or a non-mapping header raise FormatError in every mode.
    Missing required fields raise ValidationError unless lenient is set.
    """
    raw, body = split_header(text)
    if not lenient:
        errors = check_header(raw)
        if errors:
            raise ValidationError.from_errors(errors)
    return Frontmatter.from_dict(raw), body


def serialise_record(frontmatter: Frontmatter, body: str) -> str:
    header = yaml.safe_dump(
        frontmatter.to_dict(),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=10_000,
    )
    return f"{DELIMITER}\n{header}{DELIMITER}\n\n{body.strip()}\n"
