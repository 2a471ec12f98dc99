"""Tests for id generation."""

import pytest

from memvault.errors import ValidationError
from memvault.slug import (
    MAX_SLUG_LENGTH,
    generate_id,
    generate_unique_id,
    is_valid_id,
    parse_id,
    resolve_collision,
    slugify,
)


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Hello, World!", "hello-world"),
        ("  Use   YAML  headers ", "use-yaml-headers"),
        ("Café Déjà Vu", "cafe-deja-vu"),
        ("snake_case & dots.v2", "snakecase-dotsv2"),
        ("--leading and trailing--", "leading-and-trailing"),
        ("!!!", ""),
    ],
)
def test_slugify(title, expected):
    assert slugify(title) == expected


@pytest.mark.parametrize(
    "title",
    ["Hello, World!", "Café Déjà Vu", "a--b  c", "x" * 200, "Ünïcödé — dashes – too", ""],
)
def test_slugify_is_idempotent(title):
    once = slugify(title)
    assert slugify(once) == once


def test_slugify_caps_length_without_trailing_hyphen():
    slug = slugify("word " * 60)
    assert len(slug) <= MAX_SLUG_LENGTH
    assert not slug.endswith("-")


def test_generate_id_strips_redundant_type_prefix():
    assert generate_id("gotcha", "Gotcha: Edge Case") == "gotcha-edge-case"
    assert generate_id("decision", "decision - use yaml") == "decision-use-yaml"


def test_generate_id_keeps_title_that_is_only_the_prefix():
    assert generate_id("gotcha", "Gotcha:") == "gotcha-gotcha"


def test_generate_id_empty_slug_falls_back():
    assert generate_id("learning", "???") == "learning-untitled"


def test_resolve_collision_fills_lowest_gap():
    assert resolve_collision("a", []) == "a"
    assert resolve_collision("a", ["a"]) == "a-1"
    assert resolve_collision("a", ["a", "a-1", "a-3"]) == "a-2"


def test_generate_unique_id_uses_lowest_free_suffix():
    taken = {"learning-test-topic", "learning-test-topic-1", "learning-test-topic-3"}
    assert generate_unique_id("learning", "Test Topic", taken.__contains__) == "learning-test-topic-2"


def test_generate_unique_id_gives_up_after_max_collisions():
    with pytest.raises(ValidationError, match="too many collisions"):
        generate_unique_id("learning", "Test Topic", lambda _id: True)


def test_parse_id():
    assert parse_id("decision-use-yaml") == ("decision", "use-yaml")
    assert parse_id("breadcrumb-x") == ("breadcrumb", "x")
    assert parse_id("note-something") is None


def test_is_valid_id():
    assert is_valid_id("gotcha-edge-case")
    assert not is_valid_id("gotcha-")
    assert not is_valid_id("gotcha-Edge Case")
    assert not is_valid_id("unknown-thing")
