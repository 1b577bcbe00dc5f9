from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..common.pagination import PageRequest
from .model import AttendanceFilter, AttendanceRecord


class AttendanceRepository(Protocol):
    def create(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert; raises DuplicateKeyError when (user_id, attendance_date) exists."""

        raise NotImplementedError

    def get_by_id(self, attendance_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def find(self, query: AttendanceFilter, page: PageRequest) -> tuple[Sequence[AttendanceRecord], int]:
        raise NotImplementedError

    def count(self, query: AttendanceFilter) -> int:
        raise NotImplementedError

    def delete_by_id(self, attendance_id: str) -> bool:
        raise NotImplementedError
