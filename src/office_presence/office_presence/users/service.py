from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from ..access.scope import can_manage_user, can_verify_user, can_view_user, require_office_access, resolve_scope
from ..common.bulk import BulkResult, BulkRowError
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..common.validators import optional_text, require_email, require_max_length, require_min_length, require_non_empty
from ..core.constants import MAX_PHONE_LENGTH, MIN_PASSWORD_LENGTH
from ..core.enums import ADMIN_ROLES, EMPLOYEE_ROLES, NotificationType, Role, UserStatus
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DomainError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..database.errors import DuplicateKeyError
from ..notifications.service import Notifier
from ..offices.repository import OfficeRepository
from .model import User, UserFilter
from .repository import UserRepository

logger = logging.getLogger(__name__)

# Marks a profile field the caller did not send.
UNCHANGED: Any = object()


def _parse_role(value: Any) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or ""))
    except ValueError:
        raise ValidationError("Invalid role")


def _insert_user(users: UserRepository, user: User) -> User:
    """Storage unique keys decide; the email pre-check only gives a friendlier path."""
    if users.get_by_email(user.email):
        raise ConflictError("Email already registered")
    try:
        return users.create_user(user)
    except DuplicateKeyError as e:
        if "phone" in e.key:
            raise ConflictError("Phone number already registered")
        if "employee" in e.key:
            raise ConflictError("Employee ID already registered")
        raise ConflictError("Email already registered")


def _new_user(
    *,
    name: str,
    email: str,
    password: str,
    role: Role,
    status: UserStatus,
    primary_office_id: Optional[str] = None,
    assigned_office_id: Optional[str] = None,
    phone: Optional[str] = None,
    employee_id: Optional[str] = None,
    created_by: Optional[str] = None,
) -> User:
    name = require_max_length(require_non_empty(name, "Name"), "Name", 100)
    require_min_length(password, "Password", MIN_PASSWORD_LENGTH)
    return User(
        user_id=new_id(),
        name=name,
        email=require_email(email),
        password_hash=generate_password_hash(password),
        role=role,
        status=status,
        primary_office_id=primary_office_id,
        assigned_office_id=assigned_office_id,
        phone=optional_text(phone, "Phone"),
        employee_id=optional_text(employee_id, "Employee ID"),
        created_by=created_by,
        verified_by=created_by if status == UserStatus.ACTIVE else None,
    )


class AuthService:
    """Use case: authenticate and self-register."""

    def __init__(self, users: UserRepository, offices: OfficeRepository):
        self._users = users
        self._offices = offices

    def authenticate(self, email: str, password: str) -> User:
        user = self._users.get_by_email((optional_text(email, "Email") or "").lower())
        if not user:
            raise AuthenticationError("Invalid email or password")

        try:
            ok = isinstance(password, str) and check_password_hash(user.password_hash, password)
        except (TypeError, ValueError):
            # e.g. placeholder hashes like 'CHANGE_ME' or corrupted values
            ok = False
        if not ok:
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is not active. Please wait for verification.")
        return user

    def get_active_user(self, user_id: Optional[str]) -> Optional[User]:
        """Session loader: inactive or deleted accounts lose their session."""
        if not user_id:
            return None
        user = self._users.get_by_id(user_id)
        return user if user and user.is_active else None

    def register(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: Any = Role.EXTERNAL,
        primary_office_id: Optional[str] = None,
        phone: Optional[str] = None,
        employee_id: Optional[str] = None,
    ) -> User:
        """Self-registration; the account stays pending until someone verifies it."""
        role = _parse_role(role)
        if role not in EMPLOYEE_ROLES:
            raise ValidationError("Only internal or external employees can register")
        office_id = optional_text(primary_office_id)
        if not office_id or not self._offices.get_by_id(office_id):
            raise ValidationError("A valid primary office is required")

        user = _insert_user(
            self._users,
            _new_user(
                name=name,
                email=email,
                password=password,
                role=role,
                status=UserStatus.PENDING,
                primary_office_id=office_id,
                phone=phone,
                employee_id=employee_id,
            ),
        )
        logger.info("user registered", extra={"user_id": user.user_id, "role": role.value, "office_id": office_id})
        return user


class UserService:
    """Use case: directory, account lifecycle and profile."""

    def __init__(self, users: UserRepository, offices: OfficeRepository, notifier: Notifier):
        self._users = users
        self._offices = offices
        self._notifier = notifier

    def _get_or_404(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_users(
        self,
        actor: User,
        *,
        role: Optional[str] = None,
        search: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[User]:
        if actor.role == Role.EXTERNAL:
            raise AuthorizationError("You are not authorized to list users")
        scope = resolve_scope(actor)
        target_role = _parse_role(role) if role else None
        search = optional_text(search)

        if actor.role == Role.INTERNAL:
            if target_role in ADMIN_ROLES:
                raise AuthorizationError("You are not authorized to view admin users")
            roles = frozenset({target_role}) if target_role else EMPLOYEE_ROLES
            query = UserFilter(office_id=scope.single_office_id, roles=roles, search=search)
        else:
            roles = frozenset({target_role}) if target_role else frozenset()
            query = UserFilter(office_id=scope.single_office_id, roles=roles, search=search)

        req = parse_pagination(page, limit)
        items, total = self._users.find(query, req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_user(self, actor: User, user_id: str) -> User:
        target = self._get_or_404(user_id)
        if not can_view_user(actor, target):
            raise AuthorizationError("You are not authorized to view this user")
        return target

    def list_office_employees(
        self,
        actor: User,
        office_id: str,
        *,
        search: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[User]:
        if actor.role == Role.EXTERNAL:
            raise AuthorizationError("You are not authorized to view office employees")
        require_office_access(actor, office_id, message="You are not authorized to view employees from this office")
        if not self._offices.get_by_id(office_id):
            raise NotFoundError("Office not found")

        req = parse_pagination(page, limit)
        items, total = self._users.find(
            UserFilter(office_id=office_id, roles=EMPLOYEE_ROLES, search=optional_text(search)), req
        )
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def create_employee(
        self,
        actor: User,
        *,
        name: str,
        email: str,
        password: str,
        role: Any,
        primary_office_id: Optional[str] = None,
        assigned_office_id: Optional[str] = None,
        phone: Optional[str] = None,
        employee_id: Optional[str] = None,
    ) -> User:
        """Accounts created by staff are active immediately."""
        if actor.role == Role.EXTERNAL:
            raise AuthorizationError("You are not authorized to create employees")
        role = _parse_role(role)
        if not actor.role.outranks(role):
            raise AuthorizationError(f"You cannot create a user with role '{role.value}'")

        if role == Role.ADMIN:
            office_id = optional_text(assigned_office_id)
        else:
            office_id = optional_text(primary_office_id) or (actor.office_id if actor.role != Role.SUPER_ADMIN else None)
        if not office_id or not self._offices.get_by_id(office_id):
            raise ValidationError("A valid office is required")
        require_office_access(actor, office_id, message="You can only create employees for your own office")

        user = _insert_user(
            self._users,
            _new_user(
                name=name,
                email=email,
                password=password,
                role=role,
                status=UserStatus.ACTIVE,
                primary_office_id=None if role == Role.ADMIN else office_id,
                assigned_office_id=office_id if role == Role.ADMIN else None,
                phone=phone,
                employee_id=employee_id,
                created_by=actor.user_id,
            ),
        )
        logger.info("user created", extra={"user_id": user.user_id, "role": role.value, "by": actor.user_id})
        return user

    def create_employees_bulk(self, actor: User, rows: Sequence[Mapping[str, Any]]) -> BulkResult[User]:
        result: BulkResult[User] = BulkResult()
        for index, row in enumerate(rows, start=1):
            try:
                created = self.create_employee(
                    actor,
                    name=str(row.get("name") or ""),
                    email=str(row.get("email") or ""),
                    password=str(row.get("password") or ""),
                    role=row.get("role") or Role.EXTERNAL,
                    primary_office_id=row.get("primary_office_id"),
                    assigned_office_id=row.get("assigned_office_id"),
                    phone=row.get("phone"),
                    employee_id=row.get("employee_id"),
                )
            except DomainError as e:
                result.errors.append(BulkRowError(row=index, message=str(e)))
                continue
            result.created.append(created)
        logger.info(
            "employee import finished",
            extra={"created": len(result.created), "failed": len(result.errors), "by": actor.user_id},
        )
        return result

    def _require_not_self(self, actor: User, target: User) -> None:
        if actor.user_id == target.user_id:
            raise ValidationError("You cannot perform this action on your own account")

    def _require_manage(self, actor: User, target: User) -> None:
        self._require_not_self(actor, target)
        if not can_manage_user(actor, target):
            raise AuthorizationError("You are not authorized to manage this user")

    def verify_user(self, actor: User, user_id: str) -> User:
        target = self._get_or_404(user_id)
        self._require_not_self(actor, target)
        if not can_verify_user(actor, target):
            raise AuthorizationError("You are not authorized to verify this user")
        if target.status != UserStatus.PENDING:
            raise InvalidStateError(f"User is already {target.status.value}")

        self._users.set_status(user_id, status=UserStatus.ACTIVE, verified_by=actor.user_id)
        logger.info("user verified", extra={"user_id": user_id, "by": actor.user_id})
        self._notifier.notify(
            user_id,
            "Account verified",
            "Your account has been verified. You can now sign in.",
            NotificationType.ACCOUNT,
            user_id,
            actor.user_id,
        )
        return replace(target, status=UserStatus.ACTIVE, verified_by=actor.user_id)

    def suspend_user(self, actor: User, user_id: str) -> User:
        target = self._get_or_404(user_id)
        self._require_manage(actor, target)
        if target.status == UserStatus.INACTIVE:
            raise InvalidStateError("User is already suspended")
        self._users.set_status(user_id, status=UserStatus.INACTIVE)
        logger.info("user suspended", extra={"user_id": user_id, "by": actor.user_id})
        return replace(target, status=UserStatus.INACTIVE)

    def unsuspend_user(self, actor: User, user_id: str) -> User:
        target = self._get_or_404(user_id)
        self._require_manage(actor, target)
        if target.status != UserStatus.INACTIVE:
            raise InvalidStateError("User is not suspended")
        self._users.set_status(user_id, status=UserStatus.ACTIVE)
        logger.info("user unsuspended", extra={"user_id": user_id, "by": actor.user_id})
        return replace(target, status=UserStatus.ACTIVE)

    def delete_user(self, actor: User, user_id: str) -> None:
        target = self._get_or_404(user_id)
        self._require_manage(actor, target)
        if not self._users.delete_by_id(user_id):
            raise NotFoundError("User not found")
        logger.info("user deleted", extra={"user_id": user_id, "by": actor.user_id})

    def get_profile(self, actor: User) -> User:
        return self._get_or_404(actor.user_id)

    def update_profile(self, actor: User, *, name: Any = UNCHANGED, phone: Any = UNCHANGED) -> User:
        """Only name and phone are self-editable.

        Omitted fields are left as they are; a null or blank phone clears it.
        """
        changes: Dict[str, Optional[str]] = {}
        if name is not UNCHANGED and name is not None:
            changes["name"] = require_max_length(require_non_empty(name, "Name"), "Name", 100)
        if phone is not UNCHANGED:
            cleaned = optional_text(phone, "Phone")
            changes["phone"] = require_max_length(cleaned, "Phone", MAX_PHONE_LENGTH) if cleaned else None
        if changes:
            try:
                self._users.update_profile(actor.user_id, changes)
            except DuplicateKeyError:
                raise ConflictError("Phone number already registered")
        return self._get_or_404(actor.user_id)
