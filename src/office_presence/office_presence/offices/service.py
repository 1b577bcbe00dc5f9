from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Optional, Sequence

from ..access.scope import (
    can_list_offices,
    require_admin_or_super_admin,
    require_office_access,
    require_super_admin,
    resolve_scope,
)
from ..common.datetime_utils import utc_now
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..common.validators import optional_text, require_coordinates, require_non_empty
from ..core.constants import DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS
from ..core.enums import OfficeType, TargetType
from ..core.exceptions import AuthorizationError, ConflictError, HasDependentsError, NotFoundError, ValidationError
from ..database.errors import DuplicateKeyError
from ..users.model import User
from .model import GeoPoint, NearbyOffice, Office, OfficeTarget
from .repository import OfficeRepository

logger = logging.getLogger(__name__)


def _parse_office_type(value: Any) -> OfficeType:
    if isinstance(value, OfficeType):
        return value
    try:
        return OfficeType(str(value or OfficeType.BRANCH.value))
    except ValueError:
        raise ValidationError("Office type must be either main or branch")


def _parse_headcount(value: Any) -> int:
    try:
        n = int(value or 0)
    except (TypeError, ValueError):
        raise ValidationError("Target headcount must be an integer")
    if n < 0:
        raise ValidationError("Target headcount cannot be negative")
    return n


_PERIOD_FORMATS = {
    TargetType.DAILY: (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "YYYY-MM-DD"),
    TargetType.MONTHLY: (re.compile(r"^\d{4}-(0[1-9]|1[0-2])$"), "YYYY-MM"),
    TargetType.YEARLY: (re.compile(r"^\d{4}$"), "YYYY"),
}


def _parse_target_type(value: Any) -> TargetType:
    if isinstance(value, TargetType):
        return value
    try:
        return TargetType(optional_text(value, "Target type") or "")
    except ValueError:
        raise ValidationError("Target type must be one of daily, monthly or yearly")


def _parse_period(target_type: TargetType, value: Any) -> str:
    period = optional_text(value, "Target period")
    pattern, layout = _PERIOD_FORMATS[target_type]
    if not period or not pattern.match(period):
        raise ValidationError(f"A {target_type.value} target period must look like {layout}")
    if target_type is TargetType.DAILY:
        try:
            date.fromisoformat(period)
        except ValueError:
            raise ValidationError(f"{period} is not a valid date")
    return period


def _parse_target_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError("Target count must be an integer")
    try:
        n = int(value)
    except ValueError:
        raise ValidationError("Target count must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError("Target count must be an integer")
    if n < 0:
        raise ValidationError("Target count cannot be negative")
    return n


class OfficeService:
    def __init__(
        self,
        offices: OfficeRepository,
        *,
        nearby_max_distance_m: float = DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._offices = offices
        self._nearby_max_distance_m = float(nearby_max_distance_m)
        self._clock = clock

    def _get_or_404(self, office_id: str) -> Office:
        office = self._offices.get_by_id(office_id)
        if not office:
            raise NotFoundError("Office not found")
        return office

    def create_office(
        self,
        actor: User,
        *,
        name: str,
        address: str,
        longitude: Any,
        latitude: Any,
        target_headcount: Any = 0,
        office_type: Any = OfficeType.BRANCH,
    ) -> Office:
        require_admin_or_super_admin(actor)
        lon, lat = require_coordinates(longitude, latitude)
        office = Office(
            office_id=new_id(),
            name=require_non_empty(name, "Office name"),
            address=require_non_empty(address, "Office address"),
            location=GeoPoint(longitude=lon, latitude=lat),
            target_headcount=_parse_headcount(target_headcount),
            office_type=_parse_office_type(office_type),
        )
        try:
            created = self._offices.create(office)
        except DuplicateKeyError:
            raise ValidationError("A main office already exists. Only one main office is allowed.")
        logger.info("office created", extra={"office_id": created.office_id, "by": actor.user_id})
        return created

    def update_office(self, actor: User, office_id: str, changes: dict) -> Office:
        require_admin_or_super_admin(actor)
        require_office_access(actor, office_id)
        office = self._get_or_404(office_id)

        updated = office
        if "name" in changes:
            updated = replace(updated, name=require_non_empty(changes["name"], "Office name"))
        if "address" in changes:
            updated = replace(updated, address=require_non_empty(changes["address"], "Office address"))
        if "longitude" in changes or "latitude" in changes:
            current = office.location
            lon, lat = require_coordinates(
                changes.get("longitude", current.longitude if current else None),
                changes.get("latitude", current.latitude if current else None),
            )
            updated = replace(updated, location=GeoPoint(longitude=lon, latitude=lat))
        if "target_headcount" in changes:
            updated = replace(updated, target_headcount=_parse_headcount(changes["target_headcount"]))
        if "office_type" in changes:
            updated = replace(updated, office_type=_parse_office_type(changes["office_type"]))

        try:
            self._offices.update(updated)
        except DuplicateKeyError:
            raise ValidationError("A main office already exists. Only one main office is allowed.")
        return updated

    def delete_office(self, actor: User, office_id: str) -> None:
        """Super-admin only; refused while anything still references the office."""
        require_super_admin(actor)
        self._get_or_404(office_id)

        dependents = self._offices.count_dependents(office_id)
        if dependents.total:
            raise HasDependentsError(
                "Office still has dependent records "
                f"(users={dependents.users}, attendance={dependents.attendance}, "
                f"distributions={dependents.distributions}, recipients={dependents.recipients}, "
                f"received={dependents.received}, locations={dependents.locations})"
            )
        if not self._offices.delete_by_id(office_id):
            raise NotFoundError("Office not found")
        logger.info("office deleted", extra={"office_id": office_id, "by": actor.user_id})

    def list_offices(self, actor: User, *, search: Optional[str] = None, page: Any = None, limit: Any = None) -> Page[Office]:
        if not can_list_offices(actor):
            raise AuthorizationError("You are not authorized to view offices")
        scope = resolve_scope(actor)
        req = parse_pagination(page, limit)
        office_ids = None if scope.all_offices else sorted(scope.office_ids)
        items, total = self._offices.find(office_ids=office_ids, search=search, page=req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_office(self, actor: User, office_id: str) -> Office:
        if not can_list_offices(actor):
            raise AuthorizationError("You are not authorized to view offices")
        office = self._get_or_404(office_id)
        require_office_access(actor, office_id, message="You are not authorized to view this office")
        return office

    def list_public_offices(self) -> Sequence[Office]:
        """Id/name listing used by the registration form."""
        return self._offices.list_names()

    def find_nearby_offices(self, longitude: Any, latitude: Any, max_distance: Any = None) -> Sequence[NearbyOffice]:
        lon, lat = require_coordinates(longitude, latitude)
        distance = self._nearby_max_distance_m
        if max_distance not in (None, ""):
            try:
                distance = float(max_distance)
            except (TypeError, ValueError):
                raise ValidationError("Max distance must be a number")
            if distance <= 0:
                raise ValidationError("Max distance must be positive")
        return self._offices.find_within(longitude=lon, latitude=lat, max_distance_m=distance)

    def list_targets(self, actor: User, office_id: str) -> Sequence[OfficeTarget]:
        self.get_office(actor, office_id)
        return self._offices.list_targets(office_id)

    def add_target(self, actor: User, office_id: str, *, target_type: Any, period: Any, count: Any) -> OfficeTarget:
        """One target per (type, period); a second one for the same period is a conflict."""
        require_admin_or_super_admin(actor)
        require_office_access(actor, office_id)
        self._get_or_404(office_id)
        kind = _parse_target_type(target_type)
        now = self._clock()
        target = OfficeTarget(
            office_id=office_id,
            target_type=kind,
            period=_parse_period(kind, period),
            count=_parse_target_count(count),
            created_at=now,
            updated_at=now,
        )
        try:
            created = self._offices.add_target(target)
        except DuplicateKeyError:
            raise ConflictError(f"A {kind.value} target for {target.period} already exists")
        logger.info(
            "office target added",
            extra={"office_id": office_id, "type": kind.value, "period": target.period, "by": actor.user_id},
        )
        return created

    def update_target(self, actor: User, office_id: str, *, target_type: Any, period: Any, count: Any) -> OfficeTarget:
        require_admin_or_super_admin(actor)
        require_office_access(actor, office_id)
        self._get_or_404(office_id)
        kind = _parse_target_type(target_type)
        target_period = _parse_period(kind, period)
        n = _parse_target_count(count)
        now = self._clock()
        if not self._offices.update_target_count(office_id, kind, target_period, count=n, updated_at=now):
            raise NotFoundError("Target not found")
        logger.info(
            "office target updated",
            extra={"office_id": office_id, "type": kind.value, "period": target_period, "count": n, "by": actor.user_id},
        )
        return next(
            t for t in self._offices.list_targets(office_id) if t.target_type is kind and t.period == target_period
        )
