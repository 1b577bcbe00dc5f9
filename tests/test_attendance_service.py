from __future__ import annotations

from dataclasses import replace

import pytest

from conftest import OFFICE_A_POINT, FakeClock, make_office, make_user, north_of, run_concurrently
from office_presence.attendance.service import AttendanceService
from office_presence.core.enums import Role
from office_presence.core.exceptions import (
    AlreadyMarkedError,
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    OutOfRangeError,
    ValidationError,
)


@pytest.fixture()
def svc(repos, clock):
    return AttendanceService(repos.attendance, repos.offices, radius_m=200, clock=clock)


def test_mark_within_radius_creates_record_for_utc_day(svc, world, clock):
    p = north_of(OFFICE_A_POINT, 199)
    record = svc.mark_attendance(world.internal_a, p.longitude, p.latitude)

    assert record.user_id == world.internal_a.user_id
    assert record.office_id == world.office_a.office_id
    assert record.attendance_date == clock.now.date()
    assert record.location.latitude == pytest.approx(p.latitude)


def test_mark_just_outside_radius_reports_distance(svc, world):
    p = north_of(OFFICE_A_POINT, 201)
    with pytest.raises(OutOfRangeError) as exc:
        svc.mark_attendance(world.external_a, p.longitude, p.latitude)

    assert exc.value.distance_m == pytest.approx(201, abs=0.01)
    assert exc.value.radius_m == 200


def test_second_mark_same_day_is_rejected(svc, world, clock):
    svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    clock.advance(hours=8)
    with pytest.raises(AlreadyMarkedError):
        svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)


def test_mark_next_utc_day_is_allowed(svc, world, clock):
    svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    clock.advance(days=1)
    second = svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    assert second.attendance_date == clock.now.date()


def test_concurrent_marks_produce_exactly_one_record(svc, repos, world):
    results = run_concurrently(
        8, lambda i: svc.mark_attendance(world.external_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    )

    assert sum(1 for r in results if isinstance(r, AlreadyMarkedError)) == 7
    assert len(repos.attendance.rows) == 1


def test_administrators_cannot_mark(svc, world):
    for actor in (world.admin_a, world.super_admin):
        with pytest.raises(AuthorizationError):
            svc.mark_attendance(actor, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)


def test_mark_requires_office_with_location(svc, repos, world):
    no_location = make_office(repos, "Pop-up", None)
    employee = make_user(repos, "Nomad", Role.INTERNAL, office=no_location)
    with pytest.raises(InvalidStateError):
        svc.mark_attendance(employee, 0, 0)

    orphan = replace(world.internal_a, primary_office_id="missing")
    with pytest.raises(InvalidStateError):
        svc.mark_attendance(orphan, 0, 0)


@pytest.mark.parametrize("lon,lat", [(None, 1), ("abc", 1), (181, 0), (0, -91), (float("nan"), 0)])
def test_mark_rejects_bad_coordinates(svc, world, lon, lat):
    with pytest.raises(ValidationError):
        svc.mark_attendance(world.internal_a, lon, lat)


def _mark_everyone(svc, world, clock):
    for user in (world.internal_a, world.external_a):
        svc.mark_attendance(user, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    b = world.office_b
    svc.mark_attendance(world.internal_b, b.location.longitude, b.location.latitude)


def test_list_is_forced_into_scope(svc, world, clock):
    _mark_everyone(svc, world, clock)

    # admin asking for another office gets its own office instead
    page = svc.list_attendance(world.admin_a, office_id=world.office_b.office_id)
    assert {r.office_id for r in page.items} == {world.office_a.office_id}
    assert page.total == 2

    # internal sees the office, user filter ignored
    page = svc.list_attendance(world.internal_a, user_id=world.external_a.user_id)
    assert page.total == 2

    # external sees only self
    page = svc.list_attendance(world.external_a, office_id=world.office_b.office_id)
    assert [r.user_id for r in page.items] == [world.external_a.user_id]

    # super admin is unrestricted
    assert svc.list_attendance(world.super_admin).total == 3
    assert svc.list_attendance(world.super_admin, office_id=world.office_b.office_id).total == 1


def test_list_date_range_filters(svc, world, clock):
    svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    first_day = clock.now.date()
    clock.advance(days=1)
    svc.mark_attendance(world.internal_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)

    page = svc.list_attendance(world.super_admin, start_date=first_day.isoformat(), end_date=first_day.isoformat())
    assert page.total == 1
    with pytest.raises(ValidationError):
        svc.list_attendance(world.super_admin, start_date="yesterday")


def test_get_and_delete_respect_scope(svc, world):
    record = svc.mark_attendance(world.external_a, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)

    assert svc.get_attendance(world.internal_a, record.attendance_id) == record
    with pytest.raises(AuthorizationError):
        svc.get_attendance(world.admin_b, record.attendance_id)
    with pytest.raises(AuthorizationError):
        svc.delete_attendance(world.internal_a, record.attendance_id)
    with pytest.raises(AuthorizationError):
        svc.delete_attendance(world.admin_b, record.attendance_id)

    svc.delete_attendance(world.admin_a, record.attendance_id)
    with pytest.raises(NotFoundError):
        svc.get_attendance(world.admin_a, record.attendance_id)


def test_external_cannot_read_colleague_record(svc, repos, world):
    colleague = make_user(repos, "External C", Role.EXTERNAL, office=world.office_a)
    record = svc.mark_attendance(colleague, OFFICE_A_POINT.longitude, OFFICE_A_POINT.latitude)
    with pytest.raises(AuthorizationError):
        svc.get_attendance(world.external_a, record.attendance_id)


def test_radius_is_configurable(repos, world):
    wide = AttendanceService(repos.attendance, repos.offices, radius_m=500, clock=FakeClock())
    p = north_of(OFFICE_A_POINT, 450)
    assert wide.mark_attendance(world.internal_a, p.longitude, p.latitude)
    assert wide.radius_m == 500
