"""Data structures for uploads app.

The app has no database tables: stored files are tracked by the
filesystem itself and expiry state lives in process memory.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import final


@final
@dataclass(frozen=True, slots=True)
class ExtractedPayload:
    """Payload bytes isolated from a multipart request body."""

    data: bytes
    declared_content_type: str

    @property
    def size_bytes(self) -> int:
        """Payload size in bytes."""
        return len(self.data)


@final
@dataclass(frozen=True, slots=True)
class StoredFile:
    """File persisted in the content store under its content address."""

    name: str
    path: Path
    written_at: float  # Unix timestamp (file mtime)


@final
@dataclass(frozen=True, slots=True)
class ExpiryEntry:
    """Deadline after which a stored file is deleted."""

    name: str
    deadline: float  # Unix timestamp


@final
@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    """How long stored files are kept, and which names are never evicted."""

    duration: timedelta
    ignore_list: frozenset[str] = field(default_factory=frozenset)

    def is_ignored(self, name: str) -> bool:
        """Check if a file name is exempt from eviction.

        Args:
            name: Stored file name (no directory part).

        Returns:
            True if the name is on the ignore list.
        """
        return name in self.ignore_list

    def deadline_for(self, written_at: float) -> float:
        """Compute the eviction deadline for a file.

        Args:
            written_at: Unix timestamp of the file's last write.

        Returns:
            Unix timestamp after which the file is deleted.
        """
        return written_at + self.duration.total_seconds()


@final
@dataclass(frozen=True, slots=True)
class ReconcileReport:
    """Outcome of a startup reconciliation pass over the store."""

    removed: tuple[str, ...] = ()
    scheduled: int = 0
    ignored: int = 0
