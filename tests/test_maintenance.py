"""Tests for prune, promote, archive and the bulk operations."""

from datetime import UTC, datetime, timedelta

import pytest

from memvault import maintenance
from memvault.errors import NotFoundError, ValidationError


def _later(days):
    return datetime.now(UTC) + timedelta(days=days)


# ---------------------------------------------------------------------------
# prune
# ---------------------------------------------------------------------------


class TestPrune:
    def test_only_expired_temporary_records_go(self, vault, write):
        crumb = write(vault, "breadcrumb", "Session notes")
        decision = write(vault, "decision", "Use YAML headers")

        assert maintenance.prune(vault).removed == []

        result = maintenance.prune(vault, now=_later(8))
        assert result.removed == [crumb.id]
        assert not vault.exists(crumb.id)
        assert vault.exists(decision.id)
        assert crumb.id not in vault.graph().nodes

    def test_dry_run_keeps_files(self, vault, write):
        crumb = write(vault, "breadcrumb", "Session notes")
        result = maintenance.prune(vault, dry_run=True, now=_later(8))
        assert result.would_remove == [crumb.id]
        assert result.removed == []
        assert result.to_dict()["wouldRemove"] == [crumb.id]
        assert vault.store.exists(crumb.id)

    def test_concluded_thoughts_expire_sooner(self, vault, write):
        done = write(vault, "thought", "Cache design done", meta={"status": "concluded"})
        open_ = write(vault, "thought", "Cache design open")
        result = maintenance.prune(vault, now=_later(2))
        assert result.removed == [done.id]
        assert vault.store.exists(open_.id)

    def test_unreadable_file_is_a_failure(self, vault, write):
        write(vault, "breadcrumb", "Session notes")
        (vault.root / "temporary" / "breadcrumb-broken.md").write_bytes(b"---\ntitle: \xff\n---\nx\n")
        result = maintenance.prune(vault, now=_later(8))
        assert result.removed == ["breadcrumb-session-notes"]
        assert [i for i, _ in result.failures] == ["breadcrumb-broken"]


# ---------------------------------------------------------------------------
# promote
# ---------------------------------------------------------------------------


class TestPromote:
    def test_retypes_and_renames(self, vault, write):
        learning = write(vault, "learning", "Retry on timeout")
        decision = write(vault, "decision", "Wrap client calls", links=[learning.id])

        result = maintenance.promote(vault, learning.id, "gotcha")

        assert result.new_id == "gotcha-retry-on-timeout"
        assert result.from_type == "learning"
        record = vault.read("gotcha-retry-on-timeout")
        assert record.type == "gotcha"
        assert not vault.exists(learning.id)
        assert vault.index.find("gotcha-retry-on-timeout").type == "gotcha"
        graph = vault.graph()
        assert graph.get_node("gotcha-retry-on-timeout").type == "gotcha"
        assert graph.has_edge(decision.id, "gotcha-retry-on-timeout")
        assert vault.read(decision.id).frontmatter.links == ["gotcha-retry-on-timeout"]

    def test_temporary_record_moves_to_permanent(self, vault, write):
        thought = write(vault, "thought", "Cache design")
        result = maintenance.promote(vault, thought.id, "decision")
        assert result.moved
        assert result.path == "permanent/decision-cache-design.md"
        assert not (vault.root / "temporary" / f"{thought.id}.md").exists()
        assert not (vault.root / "permanent" / f"{thought.id}.md").exists()

    def test_same_type_is_a_no_op(self, vault, write):
        learning = write(vault, "learning", "Retry on timeout")
        before = vault.read(learning.id).frontmatter.updated
        result = maintenance.promote(vault, learning.id, "learning")
        assert result.new_id is None
        assert vault.read(learning.id).frontmatter.updated == before

    def test_rejects_unknown_type_and_taken_id(self, vault, write):
        learning = write(vault, "learning", "Retry on timeout")
        write(vault, "gotcha", "Retry on timeout")
        with pytest.raises(ValidationError, match="type"):
            maintenance.promote(vault, learning.id, "memo")
        with pytest.raises(ValidationError, match="already exists"):
            maintenance.promote(vault, learning.id, "gotcha")
        assert vault.read(learning.id).type == "learning"


# ---------------------------------------------------------------------------
# archive / restore
# ---------------------------------------------------------------------------


class TestArchive:
    def test_moves_file_and_drops_caches(self, vault, write):
        decision = write(vault, "decision", "Use YAML headers")
        gotcha = write(vault, "gotcha", "Tabs break parsing", links=[decision.id])

        result = maintenance.archive(vault, gotcha.id)

        assert result.destination == f"archive/{gotcha.id}.md"
        assert (vault.root / "archive" / f"{gotcha.id}.md").is_file()
        assert not vault.exists(gotcha.id)
        assert gotcha.id not in vault.store.list_files()
        graph = vault.graph()
        assert gotcha.id not in graph.nodes
        assert graph.edges == []
        assert all(o.ok for o in result.cleanup)

    def test_missing_or_already_archived(self, vault, write):
        with pytest.raises(NotFoundError):
            maintenance.archive(vault, "decision-nope")
        first = write(vault, "decision", "Use YAML headers")
        maintenance.archive(vault, first.id)
        write(vault, "decision", "Use YAML headers")
        with pytest.raises(ValidationError, match="already archived"):
            maintenance.archive(vault, first.id)

    def test_restore(self, vault, write):
        decision = write(vault, "decision", "Use YAML headers")
        maintenance.archive(vault, decision.id)
        result = maintenance.restore(vault, decision.id)
        assert result.destination == f"permanent/{decision.id}.md"
        assert vault.index.find(decision.id) is not None
        assert decision.id in vault.graph().nodes
        with pytest.raises(NotFoundError):
            maintenance.restore(vault, decision.id)


# ---------------------------------------------------------------------------
# Bulk operations
# ---------------------------------------------------------------------------


@pytest.fixture
def records(vault, write):
    ids = [
        write(vault, "decision", "Use YAML headers", tags=["format"]).id,
        write(vault, "decision", "Keep files authoritative").id,
        write(vault, "learning", "Locks need timeouts", tags=["format"]).id,
        write(vault, "hub", "Storage overview").id,
    ]
    return ids


def test_select_requires_a_filter(vault, records):
    with pytest.raises(ValidationError, match="filter"):
        maintenance.bulk_delete(vault)


def test_select_combines_filters_and_reports_missing_ids(vault, records):
    entries, missing = maintenance.select(vault, type="decision", tags=["format"])
    assert [e.id for e in entries] == ["decision-use-yaml-headers"]
    assert missing == []
    entries, missing = maintenance.select(vault, ids=["decision-use-yaml-headers", "decision-gone"])
    assert [e.id for e in entries] == ["decision-use-yaml-headers"]
    assert missing == ["decision-gone"]


class TestBulkTag:
    def test_add_then_repeat_is_unchanged(self, vault, records):
        result = maintenance.bulk_tag(vault, add=["infra"], pattern="decision-*")
        assert result.changed == ["decision-keep-files-authoritative", "decision-use-yaml-headers"]
        assert "infra" in vault.read("decision-use-yaml-headers").tags
        assert "infra" not in vault.read("learning-locks-need-timeouts").tags

        again = maintenance.bulk_tag(vault, add=["infra"], pattern="decision-*")
        assert again.changed == []
        assert len(again.unchanged) == 2

    def test_remove(self, vault, records):
        result = maintenance.bulk_tag(vault, remove=["format"], tags=["format"])
        assert len(result.changed) == 2
        assert vault.list_memories(tags=["format"]) == []

    def test_per_record_failures_are_collected(self, vault, records):
        result = maintenance.bulk_tag(vault, remove=["project"], type="decision")
        assert result.changed == []
        assert len(result.failures) == 2
        assert "scope tag" in result.failures[0][1]

    def test_dry_run_and_arguments(self, vault, records):
        result = maintenance.bulk_tag(vault, add=["infra"], type="learning", dry_run=True)
        assert result.changed == ["learning-locks-need-timeouts"]
        assert "infra" not in vault.read("learning-locks-need-timeouts").tags
        with pytest.raises(ValidationError, match="add or remove"):
            maintenance.bulk_tag(vault, type="learning")


class TestBulkLinks:
    def test_link_then_unlink(self, vault, records):
        hub = "hub-storage-overview"
        result = maintenance.bulk_link(vault, hub, label="documents", tags=["project"])
        assert len(result.changed) == 3
        assert hub not in result.changed
        graph = vault.graph()
        assert graph.has_edge("decision-use-yaml-headers", hub, "documents")

        again = maintenance.bulk_link(vault, hub, label="documents", type="decision")
        assert again.changed == []
        assert len(again.unchanged) == 2

        preview = maintenance.bulk_unlink(vault, hub, type="decision", dry_run=True)
        assert len(preview.changed) == 2
        assert vault.graph().has_edge("decision-use-yaml-headers", hub)

        removed = maintenance.bulk_unlink(vault, hub, type="decision")
        assert len(removed.changed) == 2
        graph = vault.graph()
        assert not graph.has_edge("decision-use-yaml-headers", hub)
        assert graph.has_edge("learning-locks-need-timeouts", hub)

    def test_link_target_must_exist(self, vault, records):
        with pytest.raises(NotFoundError):
            maintenance.bulk_link(vault, "hub-missing", type="decision")

    def test_unknown_ids_are_failures(self, vault, records):
        result = maintenance.bulk_link(vault, "hub-storage-overview", ids=["decision-gone", "decision-use-yaml-headers"])
        assert result.changed == ["decision-use-yaml-headers"]
        assert result.failures == [("decision-gone", "memory not found")]


def test_bulk_delete(vault, records):
    preview = maintenance.bulk_delete(vault, pattern="decision-*", dry_run=True)
    assert len(preview.changed) == 2
    assert vault.store.exists("decision-use-yaml-headers")

    result = maintenance.bulk_delete(vault, pattern="decision-*")
    assert result.to_dict()["count"] == 2
    assert not vault.exists("decision-use-yaml-headers")
    assert vault.exists("learning-locks-need-timeouts")
