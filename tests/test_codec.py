"""Tests for the record file codec."""

import pytest

from memvault.codec import parse_record, serialise_record, split_header
from memvault.errors import FormatError, ValidationError
from memvault.models import Frontmatter


def _frontmatter(**overrides):
    fields = {
        "id": "gotcha-edge-case",
        "scope": "project",
        "severity": "high",
        "links": ["decision-use-yaml"],
        "meta": {"ticket": 42, "owner": "ci"},
    }
    fields.update(overrides)
    return Frontmatter.new("gotcha", "Edge case: colons & 'quotes'", ["project", "ci"], **fields)


def test_round_trip_preserves_header_and_body():
    fm = _frontmatter()
    text = serialise_record(fm, "  First line.\n\n---\nStill body.\n\n")
    parsed, body = parse_record(text)
    assert parsed == fm
    assert body == "First line.\n\n---\nStill body."


def test_serialised_layout():
    text = serialise_record(_frontmatter(), "Body")
    assert text.startswith("---\nid: gotcha-edge-case\ntitle:")
    assert text.endswith("\n---\n\nBody\n")


def test_optional_keys_are_omitted_when_empty():
    fm = Frontmatter.new("learning", "Plain", ["project"])
    text = serialise_record(fm, "x")
    assert "severity" not in text
    assert "links" not in text
    assert "meta" not in text


def test_crlf_input_is_accepted():
    text = serialise_record(_frontmatter(), "Body line").replace("\n", "\r\n")
    parsed, body = parse_record(text)
    assert parsed.title == "Edge case: colons & 'quotes'"
    assert body == "Body line"


def test_unquoted_timestamps_come_back_as_strings():
    text = (
        "---\n"
        "title: T\n"
        "type: learning\n"
        "created: 2026-01-01T00:00:00Z\n"
        "updated: 2026-01-02T00:00:00Z\n"
        "tags: [a]\n"
        "---\n\nbody\n"
    )
    fm, _ = parse_record(text)
    assert isinstance(fm.created, str)
    assert fm.created.startswith("2026-01-01T00:00:00")


def test_legacy_id_inside_meta_is_lifted():
    text = (
        "---\ntitle: T\ntype: learning\ncreated: '2026-01-01'\nupdated: '2026-01-01'\n"
        "tags: []\nmeta:\n  id: learning-t\n  other: 1\n---\n\nbody\n"
    )
    fm, _ = parse_record(text)
    assert fm.id == "learning-t"
    assert fm.meta == {"other": 1}


@pytest.mark.parametrize(
    "text",
    [
        "no header at all",
        "---\ntitle: never closed\n",
        "---\n- a\n- b\n---\nbody",
        "---\ntitle: [unbalanced\n---\nbody",
    ],
)
def test_malformed_header_is_format_error(text):
    with pytest.raises(FormatError):
        split_header(text)
    with pytest.raises(FormatError):
        parse_record(text, lenient=True)


def test_missing_required_fields_collects_every_error():
    text = "---\ntitle: Only a title\n---\n\nbody\n"
    with pytest.raises(ValidationError) as excinfo:
        parse_record(text)
    fields = {e.field for e in excinfo.value.errors}
    assert {"type", "created", "updated", "tags"} <= fields


def test_lenient_parse_tolerates_missing_fields():
    fm, body = parse_record("---\ntitle: Only a title\n---\n\nbody\n", lenient=True)
    assert fm.title == "Only a title"
    assert fm.tags == []
    assert body == "body"


def test_unknown_type_is_rejected():
    text = serialise_record(Frontmatter.new("learning", "T", []), "b").replace("type: learning", "type: memo")
    with pytest.raises(ValidationError, match="unknown type"):
        parse_record(text)
