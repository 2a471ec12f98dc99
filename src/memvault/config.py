"""VaultConfig: project-local configuration for memvault.

Default layout (relative to the project root):

    memvault.toml         # project config (git-tracked)
    .env                  # optional: GEMINI_API_KEY, OLLAMA_HOST (gitignore this)
    .memvault/            # project scope
        permanent/<id>.md
        temporary/<id>.md
        index.json        # derived caches
        graph.json
        embeddings.json
        .gitignore        # auto-written: ignores embeddings.json and lock files

memvault.toml example:

    [vault]
    name = "my-project"
    default_scope = "project"

    [scopes]
    user = "~/.memvault"
    project = ".memvault"
    local = ".memvault-local"
    # enterprise = "/etc/memvault"

    [embeddings]
    model = "ollama:embeddinggemma"
    endpoint = "http://localhost:11434"

    [autolink]
    threshold = 0.85

    [health]
    hub_degree = 25
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from memvault.embedder import EmbeddingProvider, get_provider
from memvault.errors import FieldError, ValidationError
from memvault.models import SCOPES, normalise_scope
from memvault.vault import Vault

logger = logging.getLogger("memvault.config")

_CONFIG_FILENAME = "memvault.toml"
_GITIGNORE_CONTENT = "embeddings.json\n*.lock\n*.tmp.*\n"
_ENV_KEYS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OLLAMA_HOST")

_DEFAULT_SCOPES = {
    "user": "~/.memvault",
    "project": ".memvault",
    "local": ".memvault-local",
}


@dataclass
class EmbeddingsConfig:
    model: str = "ollama:embeddinggemma:latest"
    endpoint: str = ""  # empty = provider default (OLLAMA_HOST or localhost)


@dataclass
class AutoLinkConfig:
    enabled: bool = False
    threshold: float = 0.85


@dataclass
class HealthConfig:
    hub_degree: int = 25


@dataclass
class VaultConfig:
    """Resolved configuration for a project."""

    root: Path                      # directory that contains memvault.toml
    name: str = ""
    default_scope: str = "project"
    scopes: dict[str, str] = field(default_factory=lambda: dict(_DEFAULT_SCOPES))
    embeddings: EmbeddingsConfig = field(default_factory=EmbeddingsConfig)
    autolink: AutoLinkConfig = field(default_factory=AutoLinkConfig)
    health: HealthConfig = field(default_factory=HealthConfig)

    def scope_root(self, scope: str | None = None) -> Path:
        """Storage root for scope. Relative paths hang off the project root."""
        scope = normalise_scope(scope or self.default_scope)
        raw = self.scopes.get(scope)
        if raw is None:
            msg = f"scope '{scope}' is not configured (known: {', '.join(sorted(self.scopes))})"
            raise ValidationError(msg, [FieldError("scope", msg)])
        path = Path(raw).expanduser()
        return path if path.is_absolute() else self.root / path

    def open_vault(self, scope: str | None = None, log: logging.Logger | None = None) -> Vault:
        """A Vault on scope's root, every other configured scope as a sibling."""
        scope = normalise_scope(scope or self.default_scope)
        root = self.scope_root(scope)
        siblings = {name: self.scope_root(name) for name in self.scopes if name != scope}
        return Vault(root, scope=scope, siblings=siblings, log=log, project=self.name or None)

    def provider(self) -> EmbeddingProvider:
        return get_provider(self.embeddings.model, endpoint=self.embeddings.endpoint or None)

    def ensure_dirs(self, scope: str | None = None) -> Path:
        """Create the scope's storage root and its .gitignore."""
        root = self.scope_root(scope)
        root.mkdir(parents=True, exist_ok=True)
        gitignore = root / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_GITIGNORE_CONTENT)
        return root


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for memvault.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def load_config(root: Path | str | None = None) -> VaultConfig:
    """Load memvault.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    # API keys from .env, without clobbering the real environment
    env = _load_env(root_path)
    for key in _ENV_KEYS:
        if key in env:
            os.environ.setdefault(key, env[key])

    vault_section = raw.get("vault", {})
    emb_section = raw.get("embeddings", {})
    link_section = raw.get("autolink", {})
    health_section = raw.get("health", {})

    scopes = dict(_DEFAULT_SCOPES)
    for name, path in raw.get("scopes", {}).items():
        name = normalise_scope(name)
        if name not in SCOPES:
            msg = f"unknown scope '{name}' in {config_path}"
            raise ValidationError(msg, [FieldError(f"scopes.{name}", msg)])
        scopes[name] = str(path)

    default_scope = normalise_scope(vault_section.get("default_scope", "project"))
    if default_scope not in scopes:
        msg = f"default_scope '{default_scope}' has no [scopes] entry"
        raise ValidationError(msg, [FieldError("vault.default_scope", msg)])

    return VaultConfig(
        root=root_path,
        name=vault_section.get("name", root_path.name),
        default_scope=default_scope,
        scopes=scopes,
        embeddings=EmbeddingsConfig(
            model=emb_section.get("model", "ollama:embeddinggemma:latest"),
            endpoint=str(emb_section.get("endpoint", "")),
        ),
        autolink=AutoLinkConfig(
            enabled=bool(link_section.get("enabled", False)),
            threshold=float(link_section.get("threshold", 0.85)),
        ),
        health=HealthConfig(
            hub_degree=int(health_section.get("hub_degree", 25)),
        ),
    )


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default memvault.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"memvault.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[vault]
name = "{project_name}"
default_scope = "project"

[scopes]
user = "~/.memvault"
project = ".memvault"
local = ".memvault-local"     # add to .gitignore
# enterprise = "/etc/memvault"

# [embeddings]
# model = "ollama:embeddinggemma:latest"   # or fastembed:..., gemini:gemini-embedding-001, hash
# endpoint = "http://localhost:11434"

# [autolink]
# enabled = false
# threshold = 0.85   # never below 0.8

# [health]
# hub_degree = 25    # nodes with more edges are flagged
"""
    config_path.write_text(content)
    return config_path
