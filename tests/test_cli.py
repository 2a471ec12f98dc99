"""End-to-end CLI tests through click's CliRunner."""

import json

import pytest
from click.testing import CliRunner

from memvault.cli import cli


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    result = runner.invoke(cli, ["init", "demo"])
    assert result.exit_code == 0, result.output
    return runner


def _write(runner, **payload):
    payload.setdefault("content", "Body text.")
    result = runner.invoke(cli, ["write"], input=json.dumps(payload))
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_init_creates_config_and_storage(runner, tmp_path):
    assert (tmp_path / "memvault.toml").exists()
    assert (tmp_path / ".memvault" / ".gitignore").exists()
    again = runner.invoke(cli, ["init"])
    assert again.exit_code == 0
    assert "already exists" in again.output


def test_write_read_list_search(runner):
    written = _write(runner, title="Use YAML headers", type="decision", tags=["format"])
    assert written["id"] == "decision-use-yaml-headers"
    assert written["created"] is True

    read = runner.invoke(cli, ["read", "decision-use-yaml-headers"])
    assert read.exit_code == 0
    assert "# Use YAML headers  [decision]" in read.output

    listed = runner.invoke(cli, ["list", "--json", "--tag", "format"])
    assert [e["id"] for e in json.loads(listed.stdout)] == ["decision-use-yaml-headers"]

    found = runner.invoke(cli, ["search", "yaml", "--json"])
    assert json.loads(found.stdout)[0]["id"] == "decision-use-yaml-headers"


def test_invalid_write_reports_every_field(runner):
    result = runner.invoke(cli, ["write"], input=json.dumps({"title": "", "type": "memo"}))
    assert result.exit_code == 1
    assert "title" in result.output
    assert "type" in result.output
    assert "content" in result.output


def test_errors_become_clean_messages(runner):
    result = runner.invoke(cli, ["read", "learning-missing"])
    assert result.exit_code == 1
    assert "memory not found: learning-missing" in result.output
    assert "Traceback" not in result.output


def test_link_and_graph_commands(runner):
    decision = _write(runner, title="Use YAML headers", type="decision")["id"]
    gotcha = _write(runner, title="Tabs break parsing", type="gotcha")["id"]

    linked = runner.invoke(cli, ["link", gotcha, decision, "--label", "warns"])
    assert json.loads(linked.stdout)["alreadyExists"] is False

    path = runner.invoke(cli, ["graph", "path", gotcha, decision])
    assert path.output.strip() == f"{gotcha} -> {decision}"
    no_path = runner.invoke(cli, ["graph", "path", decision, gotcha])
    assert no_path.exit_code == 1

    impact = json.loads(runner.invoke(cli, ["graph", "impact", gotcha]).stdout)
    assert impact["affected"] == [{"id": decision, "depth": 1}]

    mermaid = runner.invoke(cli, ["graph", "mermaid"])
    assert mermaid.output.startswith("flowchart TB")

    unlinked = runner.invoke(cli, ["unlink", gotcha, decision])
    assert json.loads(unlinked.stdout) == {"removed": 1}


def test_health_sync_and_rebuild(runner, tmp_path):
    decision = _write(runner, title="Use YAML headers", type="decision")["id"]
    _write(runner, title="Tabs break parsing", type="gotcha", links=[decision])

    report = json.loads(runner.invoke(cli, ["health", "--json"]).stdout)
    assert report["score"] == 100
    assert report["status"] == "healthy"

    (tmp_path / ".memvault" / "permanent" / f"{decision}.md").unlink()
    text = runner.invoke(cli, ["health"])
    assert "orphan_index_entry" in text.output

    synced = json.loads(runner.invoke(cli, ["sync"]).stdout)
    assert synced["entriesRemoved"] == [decision]

    refused = runner.invoke(cli, ["rebuild"])
    assert refused.exit_code == 1
    assert "--yes" in refused.output
    rebuilt = runner.invoke(cli, ["rebuild", "--yes"])
    assert rebuilt.exit_code == 0
    assert json.loads(rebuilt.stdout)["entries"] == 1


def test_tag_update_delete(runner):
    memory_id = _write(runner, title="Quote colons", type="learning")["id"]
    tagged = json.loads(runner.invoke(cli, ["tag", memory_id, "yaml"]).stdout)
    assert tagged["changed"] == ["yaml"]
    refused = runner.invoke(cli, ["untag", memory_id, "project"])
    assert refused.exit_code == 1

    updated = runner.invoke(cli, ["update", memory_id, "--severity", "high"])
    assert json.loads(updated.stdout)["frontmatter"]["severity"] == "high"

    deleted = json.loads(runner.invoke(cli, ["delete", memory_id]).stdout)
    assert deleted["id"] == memory_id
    assert runner.invoke(cli, ["read", memory_id]).exit_code == 1


def test_export_delete_import(runner, tmp_path):
    memory_id = _write(runner, title="Use YAML headers", type="decision")["id"]
    out = tmp_path / "export.yaml"
    exported = runner.invoke(cli, ["export", "--format", "yaml", "--graph", "-o", str(out)])
    assert exported.exit_code == 0
    assert out.exists()

    local = json.loads(runner.invoke(cli, ["--scope", "local", "import", str(out)]).stdout)
    assert local["imported"] == 0
    assert "project" in local["failures"][0]["reason"]

    runner.invoke(cli, ["delete", memory_id])
    dry = json.loads(runner.invoke(cli, ["import", str(out), "--dry-run"]).stdout)
    assert (dry["imported"], dry["dryRun"]) == (1, True)
    assert runner.invoke(cli, ["read", memory_id]).exit_code == 1

    real = json.loads(runner.invoke(cli, ["import", str(out)]).stdout)
    assert real["imported"] == 1
    assert runner.invoke(cli, ["read", memory_id]).exit_code == 0


def test_embed_and_semantic_with_hash_model(runner):
    _write(runner, title="Tabs break YAML parsing", type="gotcha")
    _write(runner, title="Quote colons in values", type="learning")
    embedded = runner.invoke(cli, ["embed", "--model", "hash:64"])
    assert embedded.exit_code == 0
    assert json.loads(embedded.stdout)["generated"] == 2

    hits = json.loads(runner.invoke(cli, ["semantic", "tabs yaml parsing", "--model", "hash:64", "-t", "0.3"]).stdout)
    assert hits[0]["id"] == "gotcha-tabs-break-yaml-parsing"


def test_write_with_bad_threshold_is_a_clean_error(runner):
    payload = {"title": "T", "content": "C", "type": "learning", "autoLinkThreshold": "high"}
    result = runner.invoke(cli, ["write"], input=json.dumps(payload))
    assert result.exit_code == 1
    assert "autoLinkThreshold" in result.output
    assert "Traceback" not in result.output


def test_duplicates_with_hash_model(runner):
    _write(runner, title="Tabs break YAML parsing", type="gotcha")
    _write(runner, title="Tabs break YAML parsing", type="learning")
    _write(runner, title="Quote colons in values", type="learning")
    result = runner.invoke(cli, ["duplicates", "--model", "hash:64"])
    assert result.exit_code == 0, result.output
    pairs = json.loads(result.stdout)
    assert len(pairs) == 1
    assert {pairs[0]["id1"], pairs[0]["id2"]} == {"gotcha-tabs-break-yaml-parsing", "learning-tabs-break-yaml-parsing"}
    assert pairs[0]["similarity"] == pytest.approx(1.0)


def test_housekeeping_commands(runner, tmp_path):
    _write(runner, title="Retry on timeout", type="learning")
    _write(runner, title="Use YAML headers", type="decision")
    _write(runner, title="Session notes", type="breadcrumb")

    pruned = runner.invoke(cli, ["prune", "--dry-run"])
    assert pruned.exit_code == 0, pruned.output
    assert json.loads(pruned.stdout)["wouldRemove"] == []

    promoted = runner.invoke(cli, ["promote", "learning-retry-on-timeout", "gotcha"])
    assert promoted.exit_code == 0, promoted.output
    assert json.loads(promoted.stdout)["newId"] == "gotcha-retry-on-timeout"

    archived = runner.invoke(cli, ["archive", "decision-use-yaml-headers"])
    assert archived.exit_code == 0, archived.output
    assert (tmp_path / ".memvault" / "archive" / "decision-use-yaml-headers.md").is_file()
    assert runner.invoke(cli, ["read", "decision-use-yaml-headers"]).exit_code == 1

    restored = runner.invoke(cli, ["archive", "decision-use-yaml-headers", "--restore"])
    assert restored.exit_code == 0, restored.output
    assert runner.invoke(cli, ["read", "decision-use-yaml-headers"]).exit_code == 0


def test_bulk_commands(runner):
    _write(runner, title="Use YAML headers", type="decision")
    _write(runner, title="Keep files authoritative", type="decision")
    _write(runner, title="Storage overview", type="hub")

    tagged = runner.invoke(cli, ["bulk", "tag", "--add", "infra", "--pattern", "decision-*"])
    assert tagged.exit_code == 0, tagged.output
    assert json.loads(tagged.stdout)["count"] == 2

    linked = runner.invoke(cli, ["bulk", "link", "hub-storage-overview", "--tag", "infra", "-l", "documents"])
    assert json.loads(linked.stdout)["count"] == 2
    unlinked = runner.invoke(cli, ["bulk", "unlink", "hub-storage-overview", "--type", "decision"])
    assert json.loads(unlinked.stdout)["count"] == 2

    no_filter = runner.invoke(cli, ["bulk", "delete"])
    assert no_filter.exit_code == 1
    assert "filter" in no_filter.output

    deleted = runner.invoke(cli, ["bulk", "delete", "--id", "decision-use-yaml-headers", "--id", "decision-gone"])
    body = json.loads(deleted.stdout)
    assert body["ids"] == ["decision-use-yaml-headers"]
    assert body["failures"] == [{"id": "decision-gone", "reason": "memory not found"}]
