"""Tests for memvault.toml loading and scope resolution."""

import os

import pytest

from memvault.config import init_config, load_config
from memvault.embedder import HashEmbedder
from memvault.errors import ValidationError


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    root = tmp_path / "proj"
    root.mkdir()
    return root


def _write_toml(root, text):
    (root / "memvault.toml").write_text(text)


def test_init_writes_defaults_once(project):
    path = init_config(project, name="demo")
    assert path.name == "memvault.toml"
    with pytest.raises(FileExistsError):
        init_config(project)

    cfg = load_config(project)
    assert cfg.name == "demo"
    assert cfg.default_scope == "project"
    assert cfg.scope_root() == project / ".memvault"
    assert cfg.scope_root("local") == project / ".memvault-local"
    assert cfg.autolink.threshold == 0.85


def test_root_is_found_from_a_subdirectory(project):
    init_config(project)
    nested = project / "src" / "pkg"
    nested.mkdir(parents=True)
    assert load_config(nested).root == project


def test_missing_file_gives_defaults(project):
    cfg = load_config(project)
    assert cfg.root == project
    assert cfg.name == "proj"
    assert cfg.embeddings.model.startswith("ollama:")


def test_scope_paths_and_aliases(project, tmp_path):
    shared = tmp_path / "shared"
    _write_toml(project, f'[vault]\nname = "x"\n\n[scopes]\nglobal = "{shared}"\n')
    cfg = load_config(project)
    assert cfg.scope_root("user") == shared
    assert cfg.scope_root("global") == shared
    with pytest.raises(ValidationError, match="not configured"):
        cfg.scope_root("enterprise")


def test_unknown_scope_in_file_is_rejected(project):
    _write_toml(project, '[scopes]\nteam = "/tmp/team"\n')
    with pytest.raises(ValidationError, match="unknown scope"):
        load_config(project)


def test_default_scope_must_be_configured(project):
    _write_toml(project, '[vault]\ndefault_scope = "enterprise"\n')
    with pytest.raises(ValidationError, match="default_scope"):
        load_config(project)


def test_open_vault_wires_siblings(project, tmp_path):
    _write_toml(project, f'[scopes]\nuser = "{tmp_path / "user"}"\n')
    cfg = load_config(project)
    vault = cfg.open_vault()
    assert vault.scope == "project"
    assert vault.root == project / ".memvault"
    assert vault.siblings == {"user": tmp_path / "user", "local": project / ".memvault-local"}
    assert vault.project == "proj"

    user = cfg.open_vault("global")
    assert user.scope == "user"
    assert "project" in user.siblings


def test_ensure_dirs_writes_gitignore(project):
    cfg = load_config(project)
    root = cfg.ensure_dirs()
    assert root.is_dir()
    assert "embeddings.json" in (root / ".gitignore").read_text()


def test_embeddings_and_health_sections(project):
    _write_toml(project, '[embeddings]\nmodel = "hash:16"\n\n[autolink]\nenabled = true\nthreshold = 0.9\n\n'
                         '[health]\nhub_degree = 7\n')
    cfg = load_config(project)
    provider = cfg.provider()
    assert isinstance(provider, HashEmbedder)
    assert provider.dimensions == 16
    assert cfg.autolink.enabled is True
    assert cfg.autolink.threshold == 0.9
    assert cfg.health.hub_degree == 7


def test_env_file_does_not_clobber_environment(project, monkeypatch):
    # setenv then delenv registers both keys for restoration after the test
    monkeypatch.setenv("OLLAMA_HOST", "unset")
    monkeypatch.delenv("OLLAMA_HOST")
    monkeypatch.setenv("GEMINI_API_KEY", "from-shell")
    (project / ".env").write_text('# keys\nOLLAMA_HOST="gpu-box:11434"\nGEMINI_API_KEY=from-file\nOTHER=1\n')

    cfg = load_config(project)
    assert os.environ["OLLAMA_HOST"] == "gpu-box:11434"
    assert os.environ["GEMINI_API_KEY"] == "from-shell"
    assert cfg.provider().endpoint == "http://gpu-box:11434"
