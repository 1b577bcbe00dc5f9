from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

from ..access.scope import (
    require_admin_or_super_admin,
    require_office_access,
    require_super_admin,
    resolve_scope,
)
from ..common.bulk import BulkResult, BulkRowError
from ..common.datetime_utils import start_of_day_utc, utc_now
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..common.validators import optional_date, optional_text, require_max_length, require_non_empty, require_positive_int
from ..core.constants import MAX_GOODS_TYPE_LENGTH
from ..core.enums import EMPLOYEE_ROLES, NotificationType, Role, UserStatus
from ..core.exceptions import (
    AlreadyClaimedError,
    AuthorizationError,
    CapacityExhaustedError,
    DomainError,
    DuplicateDistributionError,
    HasDependentsError,
    NotEligibleError,
    NotFoundError,
    ValidationError,
    WrongOfficeError,
)
from ..database.errors import DuplicateKeyError, MissingReferenceError, RowReferencedError
from ..notifications.service import Notifier
from ..offices.repository import OfficeRepository
from ..users.model import User, UserFilter
from ..users.repository import UserRepository
from .model import (
    ClaimSummary,
    ClaimTarget,
    Distribution,
    DistributionFilter,
    DistributionView,
    EligibleEmployee,
    ReceivedFilter,
    ReceivedRecord,
    RegisteredRecipient,
    UnregisteredRecipient,
    UnregisteredRecipientTarget,
)
from .repository import DistributionRepository, ReceivedRepository

logger = logging.getLogger(__name__)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y")
    return bool(value)


class GoodiesService:
    """Distribution eligibility and claim engine.

    Claim uniqueness is owned by storage: the (distribution_id, user_id) key for
    registered recipients and a conditional update for unregistered ones. The
    capacity check is count-then-insert and only advisory across different users.
    """

    def __init__(
        self,
        distributions: DistributionRepository,
        received: ReceivedRepository,
        users: UserRepository,
        offices: OfficeRepository,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._distributions = distributions
        self._received = received
        self._users = users
        self._offices = offices
        self._notifier = notifier
        self._clock = clock

    # ----- helpers -----

    def _get_or_404(self, distribution_id: str) -> Distribution:
        distribution = self._distributions.get_by_id(distribution_id)
        if not distribution:
            raise NotFoundError("Distribution not found")
        return distribution

    def _summary(self, distribution: Distribution) -> ClaimSummary:
        return ClaimSummary(
            total_quantity=distribution.total_quantity,
            registered_claims=self._received.count(ReceivedFilter(distribution_id=distribution.distribution_id)),
            unregistered_claims=self._distributions.count_claimed_unregistered(distribution.distribution_id),
        )

    def _require_capacity(self, distribution: Distribution) -> None:
        if self._summary(distribution).is_exhausted:
            raise CapacityExhaustedError("All goodies for this distribution have been claimed")

    def _require_visible(self, actor: User, distribution: Distribution) -> None:
        scope = resolve_scope(actor)
        if scope.all_offices:
            return
        if not distribution.is_org_wide and not scope.includes(distribution.office_id):
            raise AuthorizationError("You are not authorized to view this distribution")
        if actor.role.is_employee and not distribution.visible_to(actor.user_id):
            raise AuthorizationError("You are not authorized to view this distribution")

    def _require_manage(self, actor: User, distribution: Distribution) -> None:
        require_admin_or_super_admin(actor)
        if distribution.is_org_wide:
            require_super_admin(actor)
        else:
            require_office_access(actor, distribution.office_id, message="You are not authorized to manage this distribution")

    def _listing_filter(
        self,
        actor: User,
        *,
        office_id: Optional[str],
        start_date: Any,
        end_date: Any,
        search: Optional[str],
    ) -> DistributionFilter:
        scope = resolve_scope(actor)
        start = optional_date(start_date, "Start date")
        end = optional_date(end_date, "End date")
        search = optional_text(search)

        if scope.all_offices:
            if office_id:
                return DistributionFilter(
                    office_ids=frozenset({office_id}), include_org_wide=False,
                    start_date=start, end_date=end, search=search,
                )
            return DistributionFilter(start_date=start, end_date=end, search=search)

        return DistributionFilter(
            office_ids=scope.office_ids,
            include_org_wide=True,
            visible_to_user_id=actor.user_id if actor.role.is_employee else None,
            start_date=start,
            end_date=end,
            search=search,
        )

    def _notify(self, recipient_id: str, title: str, message: str, related_id: str, sender_id: str) -> None:
        self._notifier.notify(recipient_id, title, message, NotificationType.GOODIES, related_id, sender_id)

    # ----- distributions -----

    def create_distribution(
        self,
        actor: User,
        *,
        office_id: Optional[str],
        goods_type: str,
        total_quantity: Any,
        distribution_date: Any = None,
        is_for_all_employees: Any = True,
        target_employee_ids: Iterable[str] = (),
        unregistered_recipients: Iterable[Mapping[str, Any]] = (),
    ) -> Distribution:
        require_admin_or_super_admin(actor)

        office_id = optional_text(office_id, "Office")
        if office_id is None:
            require_super_admin(actor)
        else:
            if not self._offices.get_by_id(office_id):
                raise NotFoundError("Office not found")
            require_office_access(actor, office_id, message="You can only create distributions for your own office")

        goods_type = require_max_length(require_non_empty(goods_type, "Goodies type"), "Goodies type", MAX_GOODS_TYPE_LENGTH)
        quantity = require_positive_int(total_quantity, "Total quantity")
        day = optional_date(distribution_date, "Distribution date") or start_of_day_utc(self._clock()).date()
        for_all = _as_bool(is_for_all_employees, True)

        if isinstance(target_employee_ids, (str, bytes)) or not isinstance(target_employee_ids, Iterable):
            raise ValidationError("Target employees must be a list")
        cleaned = (optional_text(t, "Target employee") for t in target_employee_ids)
        targets = tuple(dict.fromkeys(t for t in cleaned if t))
        recipients = tuple(self._build_unregistered(office_id, unregistered_recipients or ()))

        if for_all and (targets or recipients):
            raise ValidationError("Recipients cannot be listed when the distribution is for all employees")
        if not for_all and not targets and not recipients:
            raise ValidationError(
                "At least one recipient (registered or unregistered) must be specified "
                "when the distribution is not for all employees"
            )
        if targets:
            self._validate_targets(office_id, targets)

        distribution = Distribution(
            distribution_id=new_id(),
            office_id=office_id,
            goods_type=goods_type,
            distribution_date=day,
            total_quantity=quantity,
            distributed_by=actor.user_id,
            is_for_all_employees=for_all,
            target_employee_ids=targets,
            unregistered_recipients=recipients,
        )
        try:
            created = self._distributions.create(distribution)
        except DuplicateKeyError:
            raise DuplicateDistributionError(
                "A distribution for this goodies type already exists at this office on this date"
            )

        logger.info(
            "distribution created",
            extra={
                "distribution_id": created.distribution_id,
                "office_id": office_id,
                "total_quantity": quantity,
                "by": actor.user_id,
            },
        )
        for user_id in targets:
            self._notify(
                user_id,
                "Goodies available",
                f"You can now collect {goods_type}.",
                created.distribution_id,
                actor.user_id,
            )
        return created

    def _build_unregistered(
        self, office_id: Optional[str], rows: Iterable[Mapping[str, Any]]
    ) -> Iterable[UnregisteredRecipient]:
        for row in rows:
            name = require_non_empty(row.get("name"), "Recipient name")
            recipient_office = optional_text(row.get("office_id"), "Recipient office") or office_id
            if office_id is not None and recipient_office != office_id:
                raise ValidationError("Unregistered recipients must belong to the distribution office")
            if recipient_office is not None and office_id is None and not self._offices.get_by_id(recipient_office):
                raise ValidationError("Unregistered recipient office not found")
            yield UnregisteredRecipient(
                recipient_id=new_id(),
                name=name,
                office_id=recipient_office,
                employee_id=optional_text(row.get("employee_id"), "Recipient employee ID"),
            )

    def _validate_targets(self, office_id: Optional[str], targets: Sequence[str]) -> None:
        found = {u.user_id: u for u in self._users.get_many(targets)}
        for user_id in targets:
            user = found.get(user_id)
            valid = (
                user is not None
                and user.status == UserStatus.ACTIVE
                and user.role in EMPLOYEE_ROLES
                and (office_id is None or user.primary_office_id == office_id)
            )
            if not valid:
                raise ValidationError("Some target employees are invalid or do not belong to this office")

    def create_distributions_bulk(self, actor: User, rows: Sequence[Mapping[str, Any]]) -> BulkResult[Distribution]:
        """Each row is created as if submitted alone; failures are collected per row."""
        require_admin_or_super_admin(actor)
        result: BulkResult[Distribution] = BulkResult()
        for index, row in enumerate(rows, start=1):
            try:
                created = self.create_distribution(
                    actor,
                    office_id=row.get("office_id"),
                    goods_type=str(row.get("goods_type") or ""),
                    total_quantity=row.get("total_quantity"),
                    distribution_date=row.get("distribution_date"),
                    is_for_all_employees=row.get("is_for_all_employees", True),
                    target_employee_ids=row.get("target_employee_ids") or (),
                    unregistered_recipients=row.get("unregistered_recipients") or (),
                )
            except DomainError as e:
                result.errors.append(BulkRowError(row=index, message=str(e)))
                continue
            result.created.append(created)
        logger.info(
            "distribution import finished",
            extra={"created": len(result.created), "failed": len(result.errors), "by": actor.user_id},
        )
        return result

    def list_distributions(
        self,
        actor: User,
        *,
        office_id: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        search: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[DistributionView]:
        query = self._listing_filter(actor, office_id=office_id, start_date=start_date, end_date=end_date, search=search)
        req = parse_pagination(page, limit)
        items, total = self._distributions.find(query, req)

        received = self._received.distribution_ids_received_by(actor.user_id, [d.distribution_id for d in items])
        views = [
            DistributionView(distribution=d, summary=self._summary(d), is_received=d.distribution_id in received)
            for d in items
        ]
        return Page(items=views, total=total, page=req.page, limit=req.limit)

    def get_distribution(self, actor: User, distribution_id: str) -> DistributionView:
        distribution = self._get_or_404(distribution_id)
        self._require_visible(actor, distribution)
        received = self._received.distribution_ids_received_by(actor.user_id, [distribution_id])
        return DistributionView(
            distribution=distribution,
            summary=self._summary(distribution),
            is_received=distribution_id in received,
        )

    def get_claim_summary(self, actor: User, distribution_id: str) -> ClaimSummary:
        distribution = self._get_or_404(distribution_id)
        self._require_visible(actor, distribution)
        return self._summary(distribution)

    def delete_distribution(self, actor: User, distribution_id: str) -> None:
        distribution = self._get_or_404(distribution_id)
        self._require_manage(actor, distribution)
        summary = self._summary(distribution)
        if summary.claimed_count:
            raise HasDependentsError(f"Distribution already has {summary.claimed_count} claim(s) and cannot be deleted")
        # A claim that lands after the count above is caught by the foreign key.
        try:
            deleted = self._distributions.delete_by_id(distribution_id)
        except RowReferencedError:
            raise HasDependentsError("Distribution already has claims and cannot be deleted")
        if not deleted:
            raise NotFoundError("Distribution not found")
        logger.info("distribution deleted", extra={"distribution_id": distribution_id, "by": actor.user_id})

    # ----- claims -----

    def receive_goodies(self, actor: User, distribution_id: str, *, now: Optional[datetime] = None) -> ReceivedRecord:
        """Self-service claim by an employee."""
        if not actor.role.is_employee:
            raise AuthorizationError("Only employees can receive goodies")
        resolve_scope(actor)

        distribution = self._get_or_404(distribution_id)
        if not distribution.is_for_all_employees and not distribution.targets(actor.user_id):
            raise NotEligibleError("You are not eligible to receive these goodies")
        if not distribution.is_org_wide and distribution.office_id != actor.primary_office_id:
            raise WrongOfficeError("This distribution is not for your office")

        record = self._claim_registered(
            distribution,
            actor,
            handed_over_by=actor.user_id,
            now=now,
            already_message="You have already received these goodies",
        )
        logger.info(
            "goodies received",
            extra={"distribution_id": distribution_id, "user_id": actor.user_id},
        )
        return record

    def resolve_claim_target(self, distribution: Distribution, target_id: str) -> ClaimTarget:
        recipient = distribution.find_unregistered(target_id)
        if recipient is not None:
            return UnregisteredRecipientTarget(recipient=recipient)
        user = self._users.get_by_id(target_id)
        if user is not None:
            return RegisteredRecipient(user=user)
        raise NotFoundError("Recipient not found")

    def mark_claim_for_employee(
        self,
        actor: User,
        distribution_id: str,
        target_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> Union[ReceivedRecord, UnregisteredRecipient]:
        """Administrator-assisted claim for a registered user or an unregistered recipient."""
        require_admin_or_super_admin(actor)
        distribution = self._get_or_404(distribution_id)
        if not distribution.is_org_wide:
            require_office_access(actor, distribution.office_id, message="You can only hand out goodies for your own office")

        target = self.resolve_claim_target(distribution, target_id)
        if isinstance(target, UnregisteredRecipientTarget):
            outcome: Union[ReceivedRecord, UnregisteredRecipient] = self._claim_unregistered(
                actor, distribution, target.recipient, now=now
            )
        else:
            outcome = self._claim_for_user(actor, distribution, target.user, now=now)

        logger.info(
            "claim recorded",
            extra={
                "distribution_id": distribution_id,
                "target_id": target_id,
                "registered": isinstance(target, RegisteredRecipient),
                "by": actor.user_id,
            },
        )
        return outcome

    def _claim_for_user(self, actor: User, distribution: Distribution, user: User, *, now: Optional[datetime]) -> ReceivedRecord:
        if user.role not in EMPLOYEE_ROLES or not user.is_active:
            raise NotEligibleError("Only active employees can receive goodies")
        if not distribution.is_for_all_employees and not distribution.targets(user.user_id):
            raise NotEligibleError("This employee is not eligible to receive these goodies")
        if distribution.is_org_wide:
            require_office_access(actor, user.primary_office_id, message="You can only hand out goodies for your own office")
        elif user.primary_office_id != distribution.office_id:
            raise WrongOfficeError("This distribution is not for the employee's office")

        record = self._claim_registered(
            distribution,
            user,
            handed_over_by=actor.user_id,
            now=now,
            already_message="This employee has already received these goodies",
        )
        self._notify(
            user.user_id,
            "Goodies handed over",
            f"{distribution.goods_type} has been handed over to you.",
            distribution.distribution_id,
            actor.user_id,
        )
        return record

    def _claim_registered(
        self,
        distribution: Distribution,
        user: User,
        *,
        handed_over_by: str,
        now: Optional[datetime],
        already_message: str,
    ) -> ReceivedRecord:
        if self._received.distribution_ids_received_by(user.user_id, [distribution.distribution_id]):
            raise AlreadyClaimedError(already_message)
        self._require_capacity(distribution)

        record = ReceivedRecord(
            received_id=new_id(),
            distribution_id=distribution.distribution_id,
            user_id=user.user_id,
            received_at=now or self._clock(),
            received_at_office_id=user.primary_office_id,
            handed_over_by=handed_over_by,
        )
        # The unique (distribution_id, user_id) key decides between racing claims.
        try:
            return self._received.create(record)
        except DuplicateKeyError:
            raise AlreadyClaimedError(already_message)
        except MissingReferenceError:
            raise NotFoundError("Distribution not found")

    def _claim_unregistered(
        self,
        actor: User,
        distribution: Distribution,
        recipient: UnregisteredRecipient,
        *,
        now: Optional[datetime],
    ) -> UnregisteredRecipient:
        if distribution.is_org_wide and recipient.office_id is not None:
            require_office_access(actor, recipient.office_id, message="You can only hand out goodies for your own office")
        if recipient.is_claimed:
            raise AlreadyClaimedError("This recipient has already received these goodies")
        self._require_capacity(distribution)

        claimed_at = now or self._clock()
        if not self._distributions.claim_unregistered(
            distribution.distribution_id,
            recipient.recipient_id,
            claimed_at=claimed_at,
            handed_over_by=actor.user_id,
        ):
            raise AlreadyClaimedError("This recipient has already received these goodies")
        return replace(recipient, is_claimed=True, claimed_at=claimed_at, handed_over_by=actor.user_id)

    # ----- received records -----

    def _received_filter(
        self,
        actor: User,
        *,
        office_id: Optional[str],
        user_id: Optional[str],
        distribution_id: Optional[str],
        start_date: Any,
        end_date: Any,
    ) -> ReceivedFilter:
        scope = resolve_scope(actor)
        start = optional_date(start_date, "Start date")
        end = optional_date(end_date, "End date")
        distribution_id = distribution_id or None

        if actor.role == Role.SUPER_ADMIN:
            office, user = office_id or None, user_id or None
        elif actor.role == Role.ADMIN:
            office = office_id if scope.includes(office_id) else scope.single_office_id
            user = user_id or None
        elif actor.role == Role.INTERNAL:
            office, user = scope.single_office_id, None
        else:
            office, user = None, actor.user_id
        return ReceivedFilter(
            office_id=office, user_id=user, distribution_id=distribution_id, start_date=start, end_date=end
        )

    def list_received(
        self,
        actor: User,
        *,
        office_id: Optional[str] = None,
        user_id: Optional[str] = None,
        distribution_id: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[ReceivedRecord]:
        query = self._received_filter(
            actor,
            office_id=office_id,
            user_id=user_id,
            distribution_id=distribution_id,
            start_date=start_date,
            end_date=end_date,
        )
        req = parse_pagination(page, limit)
        items, total = self._received.find(query, req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_received_record(self, actor: User, received_id: str) -> ReceivedRecord:
        record = self._received.get_by_id(received_id)
        if not record:
            raise NotFoundError("Receipt record not found")
        if actor.role == Role.EXTERNAL:
            if record.user_id != actor.user_id:
                raise AuthorizationError("You are not authorized to view this record")
            return record
        require_office_access(actor, record.received_at_office_id, message="You are not authorized to view this record")
        return record

    def delete_received_record(self, actor: User, received_id: str) -> None:
        require_admin_or_super_admin(actor)
        record = self._received.get_by_id(received_id)
        if not record:
            raise NotFoundError("Receipt record not found")
        require_office_access(actor, record.received_at_office_id, message="You are not authorized to delete this record")
        if not self._received.delete_by_id(received_id):
            raise NotFoundError("Receipt record not found")
        logger.info(
            "receipt deleted",
            extra={"received_id": received_id, "distribution_id": record.distribution_id, "by": actor.user_id},
        )

    def list_eligible_employees(self, actor: User, distribution_id: str) -> List[EligibleEmployee]:
        if actor.role == Role.EXTERNAL:
            raise AuthorizationError("You are not authorized to view eligible employees")
        distribution = self._get_or_404(distribution_id)
        self._require_visible(actor, distribution)

        claimed = self._received.user_ids_for(distribution_id)
        if distribution.is_for_all_employees:
            office_id = distribution.office_id or resolve_scope(actor).single_office_id
            users: Sequence[User] = self._users.list_all(
                UserFilter(office_id=office_id, roles=EMPLOYEE_ROLES, status=UserStatus.ACTIVE)
            )
        else:
            users = sorted(self._users.get_many(distribution.target_employee_ids), key=lambda u: u.name)

        eligible = [
            EligibleEmployee(
                recipient_id=u.user_id,
                name=u.name,
                email=u.email,
                role=u.role,
                employee_id=u.employee_id,
                is_registered=True,
                is_claimed=u.user_id in claimed,
            )
            for u in users
        ]
        eligible.extend(
            EligibleEmployee(
                recipient_id=r.recipient_id,
                name=r.name,
                employee_id=r.employee_id,
                is_registered=False,
                is_claimed=r.is_claimed,
            )
            for r in distribution.unregistered_recipients
        )
        return eligible
