from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..common.pagination import PageRequest
from ..core.enums import LocationRequestStatus
from .model import LocationFilter, LocationRequest, LocationRequestFilter, LocationShare


class LocationRepository(Protocol):
    def create_share(self, share: LocationShare) -> LocationShare:
        raise NotImplementedError

    def get_share(self, location_id: str) -> Optional[LocationShare]:
        raise NotImplementedError

    def find_shares(self, query: LocationFilter, page: PageRequest) -> tuple[Sequence[LocationShare], int]:
        raise NotImplementedError


class LocationRequestRepository(Protocol):
    def create(self, request: LocationRequest) -> LocationRequest:
        raise NotImplementedError

    def get_by_id(self, request_id: str) -> Optional[LocationRequest]:
        raise NotImplementedError

    def find(self, query: LocationRequestFilter, page: PageRequest) -> tuple[Sequence[LocationRequest], int]:
        raise NotImplementedError

    def transition(
        self,
        request_id: str,
        *,
        expected: LocationRequestStatus,
        new_status: LocationRequestStatus,
        responded_at: datetime,
        location_id: Optional[str] = None,
    ) -> bool:
        """Compare-and-set on status; False when the request is no longer `expected`."""

        raise NotImplementedError

    def expire_pending(self, *, requested_before: datetime, now: datetime) -> int:
        """Move pending requests older than the cutoff to expired; returns the count."""

        raise NotImplementedError
