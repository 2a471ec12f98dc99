"""Exception taxonomy for memvault.

Every error raised by the library derives from VaultError so callers (and the
CLI) can catch one type. Best-effort side-effects never raise these; they are
captured as Outcome values instead (see memvault.outcome).
"""

from __future__ import annotations

from dataclasses import dataclass


class VaultError(Exception):
    """Base class for all memvault errors."""


@dataclass(frozen=True)
class FieldError:
    """A single rejected field in a request or record."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationError(VaultError):
    """Bad or missing input fields. Carries every field error found."""

    def __init__(self, message: str, errors: list[FieldError] | None = None) -> None:
        self.errors: list[FieldError] = list(errors or [])
        if self.errors and not message:
            message = "; ".join(str(e) for e in self.errors)
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: list[FieldError]) -> ValidationError:
        return cls("; ".join(str(e) for e in errors), errors)


class CrossScopeDuplicateError(ValidationError):
    """The id being written already exists in a sibling storage root."""

    def __init__(self, memory_id: str, scope: str, path: str) -> None:
        self.memory_id = memory_id
        self.scope = scope
        self.path = path
        super().__init__(
            f"memory '{memory_id}' already exists in scope '{scope}' ({path})",
            [FieldError("id", f"duplicate of {scope}:{memory_id}")],
        )


class NotFoundError(VaultError):
    """Id absent from both the index and a direct file lookup."""

    def __init__(self, memory_id: str, what: str = "memory") -> None:
        self.memory_id = memory_id
        super().__init__(f"{what} not found: {memory_id}")


class FormatError(VaultError):
    """Header delimiters or structure malformed."""


class SecurityError(VaultError):
    """Path traversal or symlink escape attempt."""


class StorageError(VaultError):
    """Disk-level failure; the underlying OSError message is preserved."""

    def __init__(self, message: str, cause: OSError | None = None) -> None:
        if cause is not None:
            message = f"{message}: {cause.strerror or cause}"
        self.cause = cause
        super().__init__(message)


class ProviderError(VaultError):
    """Embedding generation failed."""
