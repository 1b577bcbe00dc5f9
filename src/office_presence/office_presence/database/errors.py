from __future__ import annotations


class DuplicateKeyError(Exception):
    """A write was rejected by a unique key.

    Raised by repositories (MySQL errno 1062 or an in-memory equivalent) so that
    services can map the conflict to its domain meaning.
    """

    def __init__(self, key: str = ""):
        self.key = key
        super().__init__(f"Duplicate entry for unique key {key!r}" if key else "Duplicate entry")


class ForeignKeyError(Exception):
    """A write was rejected by a foreign key constraint."""

    def __init__(self, constraint: str = ""):
        self.constraint = constraint
        super().__init__(f"Foreign key constraint {constraint!r} failed" if constraint else "Foreign key constraint failed")


class MissingReferenceError(ForeignKeyError):
    """The row being written points at a parent that does not exist (errno 1452)."""


class RowReferencedError(ForeignKeyError):
    """The row being deleted is still referenced by child rows (errno 1451)."""
