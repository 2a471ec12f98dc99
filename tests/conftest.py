"""Shared fixtures: vaults in tmp_path and a deterministic embedding provider."""

import pytest

from memvault.vault import Vault
from memvault.writer import WriteRequest, write_memory


class StubProvider:
    """Maps texts to fixed vectors by keyword; first keyword found wins."""

    name = "stub"

    def __init__(self, vectors=None, default=(0.0, 0.0, 0.0, 1.0)):
        self.vectors = vectors or {}
        self.default = list(default)
        self.calls = 0

    def generate(self, text):
        self.calls += 1
        lowered = text.lower()
        for key, vec in self.vectors.items():
            if key in lowered:
                return list(vec)
        return list(self.default)


class FailingProvider:
    name = "failing"

    def generate(self, text):
        raise RuntimeError("model offline")


@pytest.fixture
def vault(tmp_path):
    """A project-scope vault with no siblings."""
    return Vault(tmp_path / "project", scope="project")


@pytest.fixture
def scoped_vaults(tmp_path):
    """(user, project) vaults that see each other as siblings."""
    user_root = tmp_path / "user"
    project_root = tmp_path / "project"
    user = Vault(user_root, scope="user", siblings={"project": project_root})
    project = Vault(project_root, scope="project", siblings={"user": user_root})
    return user, project


@pytest.fixture
def provider():
    return StubProvider({
        "alpha": (1.0, 0.0, 0.0, 0.0),
        "beta": (0.0, 1.0, 0.0, 0.0),
        "gamma": (0.6, 0.8, 0.0, 0.0),
    })


@pytest.fixture
def write():
    """write(vault, type, title, content=..., **fields) -> WriteResult"""

    def _write(vault, memory_type, title, content="Some body text.", provider=None, **fields):
        request = WriteRequest(title=title, content=content, type=memory_type, **fields)
        return write_memory(vault, request, provider)

    return _write


@pytest.fixture
def failing_provider():
    return FailingProvider()


@pytest.fixture
def stub_provider():
    """Factory for StubProvider instances with custom vectors."""
    return StubProvider
