"""Stage result variants.

Every stage returns exactly one of these values; stages never raise to ask
for a retry. The orchestrator decides what to persist and when to retry:

- Ready: the stage finished. ``updates`` are card column patches and
  ``metadata_updates`` are merged key-by-key into ``card.metadata``.
- NotReady: a prerequisite has not landed yet (for example the link
  preview). Retried with backoff and never written to the card.
- Failed: the stage could not produce a result. Retried while
  ``retryable`` and attempts remain, then recorded as failed; the optional
  patches are applied only on that terminal failure.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Ready:
    confidence: float = 1.0
    updates: dict[str, Any] = field(default_factory=dict)
    metadata_updates: dict[str, Any] = field(default_factory=dict)
    # Blobs written by this attempt; removed again if the result turns out stale.
    created_blobs: tuple[str, ...] = ()
    # Blobs this result replaces; removed only after the new references commit.
    replaced_blobs: tuple[str, ...] = ()
    summary: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotReady:
    reason: str


@dataclass(frozen=True)
class Failed:
    error: str
    retryable: bool = True
    updates: dict[str, Any] = field(default_factory=dict)
    metadata_updates: dict[str, Any] = field(default_factory=dict)


StageResult = Ready | NotReady | Failed
