from __future__ import annotations

from datetime import datetime
from typing import Collection, Optional, Protocol, Sequence, Set

from ..common.pagination import PageRequest
from .model import Distribution, DistributionFilter, ReceivedFilter, ReceivedRecord


class DistributionRepository(Protocol):
    """Distributions with their target lists and inline unregistered recipients.

    create raises DuplicateKeyError for a second (office_id, distribution_date,
    goods_type); org-wide distributions never collide.
    """

    def create(self, distribution: Distribution) -> Distribution:
        raise NotImplementedError

    def get_by_id(self, distribution_id: str) -> Optional[Distribution]:
        raise NotImplementedError

    def find(self, query: DistributionFilter, page: PageRequest) -> tuple[Sequence[Distribution], int]:
        """Newest distribution_date first."""

        raise NotImplementedError

    def delete_by_id(self, distribution_id: str) -> bool:
        """Raises RowReferencedError while received records still point at it."""

        raise NotImplementedError

    def count_claimed_unregistered(self, distribution_id: str) -> int:
        raise NotImplementedError

    def claim_unregistered(
        self,
        distribution_id: str,
        recipient_id: str,
        *,
        claimed_at: datetime,
        handed_over_by: str,
    ) -> bool:
        """Single-row conditional update; False when already claimed or missing."""

        raise NotImplementedError


class ReceivedRepository(Protocol):
    def create(self, record: ReceivedRecord) -> ReceivedRecord:
        """Insert; raises DuplicateKeyError when (distribution_id, user_id) exists
        and MissingReferenceError when the distribution is gone."""

        raise NotImplementedError

    def get_by_id(self, received_id: str) -> Optional[ReceivedRecord]:
        raise NotImplementedError

    def delete_by_id(self, received_id: str) -> bool:
        raise NotImplementedError

    def find(self, query: ReceivedFilter, page: PageRequest) -> tuple[Sequence[ReceivedRecord], int]:
        raise NotImplementedError

    def count(self, query: ReceivedFilter) -> int:
        raise NotImplementedError

    def user_ids_for(self, distribution_id: str) -> Set[str]:
        raise NotImplementedError

    def distribution_ids_received_by(self, user_id: str, distribution_ids: Collection[str]) -> Set[str]:
        raise NotImplementedError
