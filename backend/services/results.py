"""Per-record import results and their batch aggregation."""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A record imported successfully."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """A record that could not be imported.

    ``kind`` is a short machine-readable label such as ``"validation"``,
    ``"data"`` or ``"integrity"``.
    """

    kind: str
    message: str
    record_id: str | None = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[Any], Err]


@dataclass
class BatchSummary:
    """Aggregated outcome of processing a batch of provider records."""

    imported: int = 0
    errors: list[Err] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def add(self, result: Result) -> None:
        if result.ok:
            self.imported += 1
        else:
            self.errors.append(result)

    def merge(self, other: "BatchSummary") -> None:
        self.imported += other.imported
        self.errors.extend(other.errors)

    def as_stats(self, limit: int = 20) -> dict:
        """JSON-safe summary for ``Sync.sync_stats`` (error list truncated)."""
        return {
            "records_imported": self.imported,
            "record_errors": self.error_count,
            "record_error_details": [
                {"kind": e.kind, "message": e.message, "record_id": e.record_id}
                for e in self.errors[:limit]
            ],
        }
