"""Tests for health validation, sync and rebuild."""

import pytest

from memvault.audit import format_report, rebuild, sync, validate
from memvault.codec import serialise_record
from memvault.models import Frontmatter
from memvault.writer import update_memory


@pytest.fixture
def triangle(vault, write):
    """decision <- gotcha, decision <- learning; all three linked."""
    decision = write(vault, "decision", "Use YAML headers").id
    gotcha = write(vault, "gotcha", "Tabs break parsing", links=[decision]).id
    learning = write(vault, "learning", "Quote colons", links=[decision]).id
    return decision, gotcha, learning


def _hand_written(vault, memory_id, memory_type="learning", tags=("project",)):
    path = vault.store.path_for(memory_id, memory_type)
    fm = Frontmatter.new(memory_type, memory_id, list(tags), id=memory_id)
    vault.store.write(path, serialise_record(fm, "Body."))
    return path


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidate:
    def test_consistent_vault_scores_100(self, vault, triangle):
        report = validate(vault)
        assert report.score == 100
        assert report.issues == []
        assert report.rating == "Excellent"
        assert report.status == "healthy"
        assert report.stats["files"] == 3
        assert report.stats["edges"] == 2
        assert report.stats["components"] == 1

    def test_missing_caches(self, vault, write):
        write(vault, "learning", "Lonely")
        (vault.root / "index.json").unlink()
        (vault.root / "graph.json").unlink()
        report = validate(vault)
        assert report.count("missing_index") == 1
        assert report.count("missing_graph") == 1
        assert report.count("orphan_file") == 1
        assert report.issue("missing_index").fixes == ["rebuild"]

    def test_deleted_file_is_detected_once(self, vault, triangle):
        _, _, learning = triangle
        (vault.root / "permanent" / f"{learning}.md").unlink()
        report = validate(vault)
        assert report.count("orphan_index_entry") == 1
        assert report.issue("orphan_index_entry").ids == [learning]
        assert report.count("ghost_node") == 1
        assert report.score == 85
        assert report.issue("orphan_index_entry").fixes == ["sync"]

    def test_orphan_and_unparsable_files(self, vault, triangle):
        _hand_written(vault, "learning-hand-made")
        (vault.root / "permanent" / "learning-broken.md").write_text("no header here")
        report = validate(vault)
        assert report.issue("orphan_file").ids == ["learning-broken", "learning-hand-made"]
        assert report.issue("unparsable_file").ids == ["learning-broken"]
        assert report.issue("unparsable_file").fixes == ["reindex learning-broken"]

    def test_isolated_records_cap_and_low_connectivity(self, vault, write):
        for i in range(15):
            write(vault, "learning", f"Isolated record {i}")
        report = validate(vault)
        assert report.count("orphaned_nodes") == 15
        assert report.issue("orphaned_nodes").penalty == 30
        assert report.count("low_connectivity") == 1
        assert report.score == 60
        assert report.rating == "Needs Attention"
        assert report.status == "critical"

    def test_temporary_records_are_not_counted_as_isolated(self, vault, triangle, write):
        write(vault, "thought", "Passing idea")
        assert validate(vault).count("orphaned_nodes") == 0

    def test_hub_overload(self, vault, triangle):
        report = validate(vault, hub_degree=1)
        assert report.issue("hub_overload").ids == [triangle[0]]
        assert report.issue("hub_overload").fixes == [f"graph impact {triangle[0]}"]

    def test_stale_embedding(self, vault, triangle, provider):
        vault.embeddings.batch_embed(provider)
        assert validate(vault).count("stale_embedding") == 0
        update_memory(vault, triangle[1], content="Different body.")
        report = validate(vault)
        assert report.issue("stale_embedding").ids == [triangle[1]]
        assert report.score == 99

    def test_tag_inconsistency_is_fixed_by_reindex(self, vault, triangle):
        decision = triangle[0]
        entry = vault.index.find(decision)
        entry.tags = ["something-else"]
        vault.index.add(entry)
        report = validate(vault)
        assert report.issue("tag_inconsistency").ids == [decision]
        assert report.issue("tag_inconsistency").fixes == [f"reindex {decision}"]
        vault.reindex(decision)
        assert validate(vault).score == 100

    def test_format_report(self, vault, triangle):
        assert format_report(validate(vault)).startswith("Health: 100/100 (Excellent)")
        (vault.root / "permanent" / f"{triangle[2]}.md").unlink()
        text = format_report(validate(vault))
        assert "orphan_index_entry x1" in text
        assert "fix: memvault sync" in text

    def test_report_to_dict(self, vault, triangle):
        doc = validate(vault).to_dict()
        assert doc["score"] == 100
        assert doc["status"] == "healthy"
        assert doc["issues"] == []


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSync:
    def test_repairs_drift_and_keeps_live_edges(self, vault, triangle):
        decision, gotcha, learning = triangle
        (vault.root / "permanent" / f"{learning}.md").unlink()
        _hand_written(vault, "learning-hand-made")

        result = sync(vault)
        assert result.entries_removed == [learning]
        assert result.entries_added == ["learning-hand-made"]
        assert result.nodes_removed == [learning]
        assert result.nodes_added == ["learning-hand-made"]
        assert result.edges_removed == 1
        assert result.changed

        graph = vault.graph()
        assert graph.has_edge(gotcha, decision)
        assert not graph.has_node(learning)
        assert vault.index.ids() == {decision, gotcha, "learning-hand-made"}
        report = validate(vault)
        assert report.count("orphan_index_entry") == 0
        assert report.count("orphan_file") == 0

    def test_dry_run_reports_without_writing(self, vault, triangle):
        learning = triangle[2]
        (vault.root / "permanent" / f"{learning}.md").unlink()
        index_before = (vault.root / "index.json").read_text()
        graph_before = (vault.root / "graph.json").read_text()

        result = sync(vault, dry_run=True)
        assert result.dry_run
        assert result.entries_removed == [learning]
        assert result.edges_removed == 1
        assert (vault.root / "index.json").read_text() == index_before
        assert (vault.root / "graph.json").read_text() == graph_before

    def test_no_changes_on_consistent_vault(self, vault, triangle):
        assert not sync(vault).changed

    def test_unparsable_files_keep_their_entries(self, vault, triangle):
        decision = triangle[0]
        (vault.root / "permanent" / f"{decision}.md").write_text("corrupted")
        result = sync(vault)
        assert [memory_id for memory_id, _ in result.failures] == [decision]
        assert decision in vault.index.ids()
        assert vault.graph().has_node(decision)

    def test_orphan_vectors_are_dropped(self, vault, triangle, provider):
        vault.embeddings.batch_embed(provider)
        (vault.root / "permanent" / f"{triangle[2]}.md").unlink()
        result = sync(vault)
        assert result.embeddings_removed == [triangle[2]]
        assert triangle[2] not in vault.embeddings.cache.load()


# ---------------------------------------------------------------------------
# rebuild
# ---------------------------------------------------------------------------


def test_rebuild_recovers_only_header_links(vault, write):
    decision = write(vault, "decision", "Use YAML headers").id
    gotcha = write(vault, "gotcha", "Tabs break parsing", links=[decision]).id
    vault.link(decision, gotcha, "warns")
    (vault.root / "index.json").unlink()

    report = rebuild(vault)
    assert report.entries == 2
    assert report.nodes == 2
    assert report.edges_recovered == 1
    assert report.edges_dropped == 1
    assert report.new_entries_added == [decision, gotcha]

    graph = vault.graph()
    assert graph.has_edge(gotcha, decision, "relates-to")
    assert not graph.has_edge(decision, gotcha)
    assert validate(vault).count("missing_index") == 0


def test_rebuild_reports_unparsable_files(vault, triangle):
    (vault.root / "permanent" / "learning-broken.md").write_text("---\ntitle: x\n")
    report = rebuild(vault)
    assert [p for p, _ in report.failures] == ["permanent/learning-broken.md"]
    assert report.entries == 3


@pytest.mark.parametrize("meta", ["oops", "[1, 2]"])
def test_bad_meta_is_reported_not_fatal(vault, triangle, meta):
    path = _hand_written(vault, "learning-bad-meta")
    path.write_text(path.read_text().replace("tags:", f"meta: {meta}\ntags:", 1))

    report = validate(vault)
    assert report.issue("unparsable_file").ids == ["learning-bad-meta"]
    assert [i for i, _ in sync(vault).failures] == ["learning-bad-meta"]
    rebuilt = rebuild(vault)
    assert [p for p, _ in rebuilt.failures] == ["permanent/learning-bad-meta.md"]
    assert rebuilt.entries == 3


def test_invalid_utf8_file_is_reported(vault, triangle):
    (vault.root / "permanent" / "learning-bin.md").write_bytes(b"---\ntitle: \xff\xfe\n---\nbody\n")
    assert validate(vault).issue("unparsable_file").ids == ["learning-bin"]
    report = rebuild(vault)
    assert [p for p, _ in report.failures] == ["permanent/learning-bin.md"]
    assert "UTF-8" in report.failures[0][1]
    assert report.entries == 3
