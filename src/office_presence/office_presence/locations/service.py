from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..access.scope import can_request_location_from, require_office_access, resolve_scope
from ..common.datetime_utils import utc_now
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..common.validators import optional_date, optional_text, require_coordinates, require_max_length
from ..core.constants import DEFAULT_LOCATION_REQUEST_TTL_HOURS, MAX_LOCATION_REASON_LENGTH
from ..core.enums import LocationRequestStatus, NotificationType, Role
from ..core.exceptions import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from ..notifications.service import Notifier
from ..offices.model import GeoPoint
from ..users.model import User
from ..users.repository import UserRepository
from .model import LocationFilter, LocationRequest, LocationRequestFilter, LocationShare
from .repository import LocationRepository, LocationRequestRepository

logger = logging.getLogger(__name__)

INCOMING = "incoming"
OUTGOING = "outgoing"


class LocationService:
    """Voluntary location sharing and the pending -> shared/denied/expired request workflow.

    Expiry is applied lazily: stale pending requests are expired with a
    conditional update before any request is read or acted on.
    """

    def __init__(
        self,
        locations: LocationRepository,
        requests: LocationRequestRepository,
        users: UserRepository,
        notifier: Notifier,
        *,
        request_ttl_hours: float = DEFAULT_LOCATION_REQUEST_TTL_HOURS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._locations = locations
        self._requests = requests
        self._users = users
        self._notifier = notifier
        self._ttl = timedelta(hours=float(request_ttl_hours))
        self._clock = clock

    def _expire_stale(self, now: datetime) -> None:
        expired = self._requests.expire_pending(requested_before=now - self._ttl, now=now)
        if expired:
            logger.info("location requests expired", extra={"count": expired})

    # ----- requests -----

    def request_location(self, actor: User, target_user_id: str) -> LocationRequest:
        if target_user_id == actor.user_id:
            raise ValidationError("You cannot request your own location")
        target = self._users.get_by_id(target_user_id)
        if not target:
            raise NotFoundError("User not found")
        if not target.role.is_employee:
            raise ValidationError("Location can only be requested from internal or external employees")
        if not target.is_active:
            raise ValidationError("Target user is not active")
        if not can_request_location_from(actor, target):
            raise AuthorizationError("You are not authorized to request location from this user")

        request = self._requests.create(
            LocationRequest(
                request_id=new_id(),
                requester_id=actor.user_id,
                target_user_id=target.user_id,
                status=LocationRequestStatus.PENDING,
                requested_at=self._clock(),
            )
        )
        logger.info(
            "location requested",
            extra={"request_id": request.request_id, "requester_id": actor.user_id, "target_user_id": target.user_id},
        )
        self._notifier.notify(
            target.user_id,
            "Location request",
            f"{actor.name} has requested your current location.",
            NotificationType.LOCATION_REQUEST,
            request.request_id,
            actor.user_id,
        )
        return request

    def share_location(
        self,
        actor: User,
        longitude: Any,
        latitude: Any,
        *,
        reason: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> LocationShare:
        """Always records the share; a matching pending request is fulfilled as a side effect."""
        if not actor.role.is_employee:
            raise AuthorizationError("Only employees can share location")
        lon, lat = require_coordinates(longitude, latitude)
        reason = optional_text(reason, "Reason")
        if reason:
            require_max_length(reason, "Reason", MAX_LOCATION_REASON_LENGTH)

        now = self._clock()
        share = self._locations.create_share(
            LocationShare(
                location_id=new_id(),
                user_id=actor.user_id,
                location=GeoPoint(longitude=lon, latitude=lat),
                shared_at=now,
                reason=reason,
                office_id=actor.primary_office_id,
            )
        )
        logger.info("location shared", extra={"location_id": share.location_id, "user_id": actor.user_id})

        if request_id:
            self._fulfil_request(actor, request_id, share, now)
        return share

    def _fulfil_request(self, actor: User, request_id: str, share: LocationShare, now: datetime) -> None:
        # Stale or foreign request ids leave every request untouched.
        self._expire_stale(now)
        request = self._requests.get_by_id(request_id)
        if (
            request is None
            or request.target_user_id != actor.user_id
            or request.status != LocationRequestStatus.PENDING
        ):
            logger.info("share did not match a pending request", extra={"request_id": request_id, "user_id": actor.user_id})
            return

        if not self._requests.transition(
            request_id,
            expected=LocationRequestStatus.PENDING,
            new_status=LocationRequestStatus.SHARED,
            responded_at=now,
            location_id=share.location_id,
        ):
            return

        logger.info("location request shared", extra={"request_id": request_id, "location_id": share.location_id})
        self._notifier.notify(
            request.requester_id,
            "Location shared",
            f"{actor.name} has shared their location.",
            NotificationType.LOCATION_SHARED,
            share.location_id,
            actor.user_id,
        )

    def deny_location_request(self, actor: User, request_id: str) -> LocationRequest:
        now = self._clock()
        self._expire_stale(now)

        request = self._requests.get_by_id(request_id)
        if not request:
            raise NotFoundError("Location request not found")
        if request.target_user_id != actor.user_id:
            raise AuthorizationError("Only the requested user can deny this request")
        if request.status != LocationRequestStatus.PENDING:
            raise InvalidStateError(f"Location request is already {request.status.value}")

        if not self._requests.transition(
            request_id,
            expected=LocationRequestStatus.PENDING,
            new_status=LocationRequestStatus.DENIED,
            responded_at=now,
        ):
            raise InvalidStateError("Location request is no longer pending")

        logger.info("location request denied", extra={"request_id": request_id, "user_id": actor.user_id})
        self._notifier.notify(
            request.requester_id,
            "Location request denied",
            f"{actor.name} has declined to share their location.",
            NotificationType.LOCATION_DENIED,
            request_id,
            actor.user_id,
        )
        return replace(request, status=LocationRequestStatus.DENIED, responded_at=now)

    def list_location_requests(
        self,
        actor: User,
        *,
        direction: str = INCOMING,
        status: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[LocationRequest]:
        if direction == INCOMING:
            query = LocationRequestFilter(target_user_id=actor.user_id)
        elif direction == OUTGOING:
            query = LocationRequestFilter(requester_id=actor.user_id)
        else:
            raise ValidationError("Direction must be either incoming or outgoing")
        if status:
            try:
                query = replace(query, status=LocationRequestStatus(status))
            except ValueError:
                raise ValidationError("Invalid location request status")

        self._expire_stale(self._clock())
        req = parse_pagination(page, limit)
        items, total = self._requests.find(query, req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_location_request(self, actor: User, request_id: str) -> LocationRequest:
        self._expire_stale(self._clock())
        request = self._requests.get_by_id(request_id)
        if not request:
            raise NotFoundError("Location request not found")
        if actor.role != Role.SUPER_ADMIN and actor.user_id not in (request.requester_id, request.target_user_id):
            raise AuthorizationError("You are not authorized to view this location request")
        return request

    # ----- shares -----

    def list_locations(
        self,
        actor: User,
        *,
        office_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[LocationShare]:
        scope = resolve_scope(actor)
        start = optional_date(start_date, "Start date")
        end = optional_date(end_date, "End date")

        if actor.role == Role.SUPER_ADMIN:
            query = LocationFilter(office_id=office_id or None, user_id=user_id or None, start_date=start, end_date=end)
        elif actor.role == Role.ADMIN:
            forced_office = office_id if scope.includes(office_id) else scope.single_office_id
            query = LocationFilter(office_id=forced_office, user_id=user_id or None, start_date=start, end_date=end)
        elif actor.role == Role.INTERNAL:
            query = LocationFilter(office_id=scope.single_office_id, start_date=start, end_date=end)
        else:
            query = LocationFilter(user_id=actor.user_id, start_date=start, end_date=end)

        req = parse_pagination(page, limit)
        items, total = self._locations.find_shares(query, req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_location(self, actor: User, location_id: str) -> LocationShare:
        share = self._locations.get_share(location_id)
        if not share:
            raise NotFoundError("Location record not found")
        if actor.role == Role.EXTERNAL:
            if share.user_id != actor.user_id:
                raise AuthorizationError("You are not authorized to view this location record")
            return share
        require_office_access(actor, share.office_id, message="You are not authorized to view this location record")
        return share
