from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from ..common.pagination import PageRequest
from ..core.enums import UserStatus
from .model import User, UserFilter


class UserRepository(Protocol):
    """Repository interface for User.

    Note (DIP): the service layer depends on this interface, not on a concrete DB.
    Implementations raise DuplicateKeyError when email/phone/employee id collide.
    """

    def get_by_id(self, user_id: str) -> Optional[User]:
        raise NotImplementedError

    def get_by_email(self, email: str) -> Optional[User]:
        raise NotImplementedError

    def get_many(self, user_ids: Sequence[str]) -> Sequence[User]:
        raise NotImplementedError

    def create_user(self, user: User) -> User:
        raise NotImplementedError

    def set_status(self, user_id: str, *, status: UserStatus, verified_by: Optional[str] = None) -> bool:
        raise NotImplementedError

    def update_profile(self, user_id: str, changes: Mapping[str, Optional[str]]) -> bool:
        """Write only the columns present in changes; a None value clears the column."""

        raise NotImplementedError

    def delete_by_id(self, user_id: str) -> bool:
        raise NotImplementedError

    def find(self, query: UserFilter, page: PageRequest) -> tuple[Sequence[User], int]:
        raise NotImplementedError

    def count(self, query: UserFilter) -> int:
        raise NotImplementedError

    def list_all(self, query: UserFilter) -> Sequence[User]:
        raise NotImplementedError
