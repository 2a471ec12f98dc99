"""Attempt-and-record helper for best-effort side-effects.

    result = attempt("graph upsert", lambda: graphs.upsert(node), logger)
    if not result.ok:
        warnings.append(result.describe())

The primary operation keeps its own result; the Outcome rides along with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

logger = logging.getLogger("memvault.outcome")


@dataclass
class Outcome(Generic[T]):
    """Result of one best-effort step."""

    label: str
    ok: bool
    value: T | None = None
    error: str | None = None

    def describe(self) -> str:
        if self.ok:
            return f"{self.label}: ok"
        return f"{self.label}: {self.error}"

    def to_dict(self) -> dict[str, object]:
        d: dict[str, object] = {"label": self.label, "ok": self.ok}
        if self.error:
            d["error"] = self.error
        return d


def attempt(label: str, fn: Callable[[], T], log: logging.Logger | None = None) -> Outcome[T]:
    """Run fn, logging and capturing any Exception instead of raising it."""
    log = log or logger
    try:
        value = fn()
    except Exception as exc:
        log.warning("%s failed: %s", label, exc, exc_info=True)
        return Outcome(label=label, ok=False, error=str(exc) or exc.__class__.__name__)
    return Outcome(label=label, ok=True, value=value)
