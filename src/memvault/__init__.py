"""File-backed memory records with a derived index, relationship graph and embedding cache.

Layout of one storage root:
    permanent/<id>.md     # durable records (decision, learning, artifact, gotcha, hub)
    temporary/<id>.md     # ephemeral records (breadcrumb, thought)
    archive/<id>.md       # archived records, ignored by every scan
    index.json            # summary of every record (fully reconstructable)
    graph.json            # nodes + labelled directed edges
    embeddings.json       # per-record vectors keyed by content hash

Record files are the source of truth. index.json and graph.json are caches that
memvault.audit can validate, sync or rebuild from the files.
"""

import logging

from memvault.config import VaultConfig, init_config, load_config
from memvault.errors import (
    CrossScopeDuplicateError,
    FormatError,
    NotFoundError,
    ProviderError,
    SecurityError,
    StorageError,
    ValidationError,
    VaultError,
)
from memvault.models import Frontmatter, IndexEntry, Record
from memvault.vault import Vault
from memvault.writer import WriteRequest, write_memory

logging.getLogger("memvault").addHandler(logging.NullHandler())

__all__ = [
    "CrossScopeDuplicateError",
    "FormatError",
    "Frontmatter",
    "IndexEntry",
    "NotFoundError",
    "ProviderError",
    "Record",
    "SecurityError",
    "StorageError",
    "ValidationError",
    "Vault",
    "VaultConfig",
    "VaultError",
    "WriteRequest",
    "init_config",
    "load_config",
    "write_memory",
]
