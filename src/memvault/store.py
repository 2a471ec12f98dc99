"""Record files on disk, plus the atomic/locked JSON helpers the caches share.

Layout under a storage root:
    permanent/<id>.md     # durable records
    temporary/<id>.md     # breadcrumbs and thoughts
    archive/<id>.md       # archived records, outside every scan

FileStore is the public API:
    store = FileStore("/path/to/.memvault")
    path = store.path_for("gotcha-edge-case", "gotcha")
    store.write(path, text)
    record = store.load(path)

Every path built from an id is checked to resolve inside the root (symlinks
followed) before it is touched; violations raise SecurityError.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from memvault.codec import parse_record
from memvault.errors import FormatError, NotFoundError, SecurityError, StorageError
from memvault.models import ARCHIVE_DIR, PERMANENT_DIR, TEMPORARY_DIR, Record, subdir_for

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("memvault.store")

RECORD_SUFFIX = ".md"
SUBDIRS = (PERMANENT_DIR, TEMPORARY_DIR)


# ---------------------------------------------------------------------------
# Atomic writes / JSON documents
# ---------------------------------------------------------------------------

def write_atomic(path: Path, text: str) -> None:
    """Write text to a unique temp sibling then rename it over path.

    The temp file never outlives a failed write.
    """
    tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}-{uuid.uuid4().hex[:8]}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            tmp.unlink()
        msg = f"failed to write {path}"
        raise StorageError(msg, exc) from exc
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


def read_json(path: Path, log: logging.Logger | None = None) -> Any:
    """Load a JSON document. Missing or unparsable files yield None."""
    log = log or logger
    if not path.exists():
        return None
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        log.warning("unparsable JSON in %s (%s), treating as empty", path, exc)
        return None
    except OSError as exc:
        log.warning("cannot read %s (%s), treating as empty", path, exc)
        return None


def write_json(path: Path, data: Any) -> None:
    write_atomic(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


@contextlib.contextmanager
def json_lock(path: Path) -> Iterator[None]:
    """Advisory exclusive flock around a load-mutate-save cycle on path.

    The lock lives on a sibling `<name>.lock` file so the atomic rename of the
    document itself does not drop it.
    """
    lock_path = path.with_name(path.name + ".lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        f = lock_path.open("a")
    except OSError as exc:
        msg = f"cannot open lock file {lock_path}"
        raise StorageError(msg, exc) from exc
    with f:
        fcntl.flock(f, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)


# ---------------------------------------------------------------------------
# FileStore
# ---------------------------------------------------------------------------

class FileStore:
    """Record files under one storage root."""

    def __init__(self, root: Path | str, log: logging.Logger | None = None) -> None:
        self.root = Path(root).expanduser()
        self.log = log or logger

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _real_root(self) -> Path:
        return self.root.resolve()

    def _reject(self, msg: str) -> SecurityError:
        self.log.warning("security: %s", msg)
        return SecurityError(msg)

    def check_id(self, memory_id: str) -> None:
        """Ids become file names; anything that could walk out of a directory is refused."""
        if (
            not memory_id
            or "/" in memory_id
            or "\\" in memory_id
            or "\0" in memory_id
            or memory_id.startswith(".")
        ):
            raise self._reject(f"invalid id {memory_id!r}")

    def safe_path(self, relative: str | Path) -> Path:
        """root/relative, refusing anything that resolves outside the root."""
        rel = Path(relative)
        if rel.is_absolute() or ".." in rel.parts:
            raise self._reject(f"path escapes storage root: {relative}")
        candidate = self.root / rel
        real_root = self._real_root()
        real = candidate.resolve()
        if real != real_root and not real.is_relative_to(real_root):
            raise self._reject(f"path resolves outside storage root: {candidate} -> {real}")
        return candidate

    def path_for(self, memory_id: str, memory_type: str) -> Path:
        self.check_id(memory_id)
        return self.safe_path(Path(subdir_for(memory_type)) / f"{memory_id}{RECORD_SUFFIX}")

    def archive_path(self, memory_id: str) -> Path:
        self.check_id(memory_id)
        return self.safe_path(Path(ARCHIVE_DIR) / f"{memory_id}{RECORD_SUFFIX}")

    def locate(self, memory_id: str) -> Path | None:
        """Find a record file by id, permanent/ first."""
        self.check_id(memory_id)
        for sub in SUBDIRS:
            path = self.safe_path(Path(sub) / f"{memory_id}{RECORD_SUFFIX}")
            if path.is_file():
                return path
        return None

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def exists(self, memory_id: str) -> bool:
        return self.locate(memory_id) is not None

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read(self, path: Path) -> str:
        if not path.is_file():
            raise NotFoundError(path.stem, "file")
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            msg = f"{path} is not valid UTF-8"
            raise FormatError(msg) from exc
        except OSError as exc:
            msg = f"failed to read {path}"
            raise StorageError(msg, exc) from exc

    def load(self, path: Path, *, lenient: bool = False) -> Record:
        """Read and parse a record file. The id is the file name."""
        fm, body = parse_record(self.read(path), lenient=lenient)
        return Record(id=path.stem, frontmatter=fm, content=body, relative_path=self.relative(path))

    def write(self, path: Path, text: str) -> None:
        write_atomic(path, text)

    def delete(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            msg = f"failed to delete {path}"
            raise StorageError(msg, exc) from exc
        return True

    def move(self, src: Path, dst: Path) -> None:
        """Rename src to dst. An existing dst is an error, never overwritten."""
        if dst.exists():
            msg = f"{self.relative(dst)} already exists"
            raise StorageError(msg)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            src.rename(dst)
        except OSError as exc:
            msg = f"failed to move {src} to {dst}"
            raise StorageError(msg, exc) from exc

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    def iter_files(self) -> Iterator[Path]:
        """Every record file on disk. Symlinks escaping the root are logged and skipped."""
        for sub in SUBDIRS:
            directory = self.root / sub
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob(f"*{RECORD_SUFFIX}")):
                if not path.is_file():
                    continue
                try:
                    self.safe_path(path.relative_to(self.root))
                except SecurityError:
                    continue
                yield path

    def list_files(self) -> dict[str, Path]:
        """id -> path for every record file. permanent/ wins over temporary/ on a clash."""
        files: dict[str, Path] = {}
        for path in self.iter_files():
            files.setdefault(path.stem, path)
        return files
