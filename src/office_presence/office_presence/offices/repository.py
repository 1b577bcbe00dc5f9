from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..common.pagination import PageRequest
from ..core.enums import TargetType
from .model import NearbyOffice, Office, OfficeDependents, OfficeTarget


class OfficeRepository(Protocol):
    """Raises DuplicateKeyError when a second main office is saved."""

    def get_by_id(self, office_id: str) -> Optional[Office]:
        raise NotImplementedError

    def create(self, office: Office) -> Office:
        raise NotImplementedError

    def update(self, office: Office) -> None:
        raise NotImplementedError

    def delete_by_id(self, office_id: str) -> bool:
        raise NotImplementedError

    def find(
        self,
        *,
        office_ids: Optional[Sequence[str]],
        search: Optional[str],
        page: PageRequest,
    ) -> tuple[Sequence[Office], int]:
        """office_ids=None means unrestricted."""

        raise NotImplementedError

    def list_names(self) -> Sequence[Office]:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def find_within(self, *, longitude: float, latitude: float, max_distance_m: float) -> Sequence[NearbyOffice]:
        """Offices within max_distance_m, nearest first."""

        raise NotImplementedError

    def count_dependents(self, office_id: str) -> OfficeDependents:
        raise NotImplementedError

    def list_targets(self, office_id: str) -> Sequence[OfficeTarget]:
        """Ordered by type, then period."""

        raise NotImplementedError

    def add_target(self, target: OfficeTarget) -> OfficeTarget:
        """Raises DuplicateKeyError when (office_id, target_type, period) exists."""

        raise NotImplementedError

    def update_target_count(
        self, office_id: str, target_type: TargetType, period: str, *, count: int, updated_at: datetime
    ) -> bool:
        """False when no such target exists."""

        raise NotImplementedError
