from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BulkRowError:
    row: int
    message: str

    def to_dict(self) -> dict:
        return {"row": self.row, "message": self.message}


@dataclass
class BulkResult(Generic[T]):
    """Outcome of a pre-validated import batch; rows are independent single creates."""

    created: List[T] = field(default_factory=list)
    errors: List[BulkRowError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": [item.to_dict() for item in self.created],
            "errors": [e.to_dict() for e in self.errors],
            "createdCount": len(self.created),
            "errorCount": len(self.errors),
        }
