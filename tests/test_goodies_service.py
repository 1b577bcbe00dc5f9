from __future__ import annotations

from datetime import date

import pytest

from conftest import make_user, run_concurrently
from office_presence.core.enums import Role, UserStatus
from office_presence.core.exceptions import (
    AlreadyClaimedError,
    AuthorizationError,
    CapacityExhaustedError,
    DuplicateDistributionError,
    HasDependentsError,
    NotEligibleError,
    NotFoundError,
    ValidationError,
    WrongOfficeError,
)
from office_presence.goodies.model import ReceivedRecord, UnregisteredRecipient
from office_presence.goodies.service import GoodiesService
from office_presence.notifications.service import NotificationService


@pytest.fixture()
def svc(repos, clock):
    notifier = NotificationService(repos.notifications, clock=clock)
    return GoodiesService(repos.distributions, repos.received, repos.users, repos.offices, notifier, clock=clock)


def _broadcast(svc, world, *, quantity=10, goods_type="T-shirt", office=None, actor=None):
    office = office or world.office_a
    return svc.create_distribution(
        actor or world.admin_a, office_id=office.office_id, goods_type=goods_type, total_quantity=quantity
    )


def _targeted(svc, world, *, targets=(), unregistered=(), quantity=10, goods_type="Mug"):
    return svc.create_distribution(
        world.admin_a,
        office_id=world.office_a.office_id,
        goods_type=goods_type,
        total_quantity=quantity,
        is_for_all_employees=False,
        target_employee_ids=[u.user_id for u in targets],
        unregistered_recipients=[{"name": n, "employee_id": f"EMP-{i}"} for i, n in enumerate(unregistered)],
    )


# ----- creation -----


def test_create_defaults_to_today_and_broadcast(svc, world, clock):
    d = _broadcast(svc, world)
    assert d.distribution_date == clock.now.date()
    assert d.is_for_all_employees
    assert d.distributed_by == world.admin_a.user_id


def test_only_administrators_create_within_scope(svc, world):
    with pytest.raises(AuthorizationError):
        _broadcast(svc, world, actor=world.internal_a)
    with pytest.raises(AuthorizationError):
        _broadcast(svc, world, office=world.office_b)
    assert _broadcast(svc, world, office=world.office_b, actor=world.super_admin)


def test_org_wide_distribution_is_super_admin_only(svc, world):
    with pytest.raises(AuthorizationError):
        svc.create_distribution(world.admin_a, office_id=None, goods_type="Calendar", total_quantity=5)
    d = svc.create_distribution(world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5)
    assert d.is_org_wide


def test_duplicate_office_date_type_is_rejected(svc, world):
    _broadcast(svc, world)
    with pytest.raises(DuplicateDistributionError):
        _broadcast(svc, world)
    # a different type or office on the same date is fine
    assert _broadcast(svc, world, goods_type="Cap")
    assert _broadcast(svc, world, office=world.office_b, actor=world.super_admin)


def test_org_wide_distributions_never_collide(svc, world):
    for _ in range(2):
        svc.create_distribution(
            world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5, distribution_date="2026-03-02"
        )


@pytest.mark.parametrize("quantity", [0, -1, "x", 1.5, None])
def test_quantity_must_be_positive_integer(svc, world, quantity):
    with pytest.raises(ValidationError):
        _broadcast(svc, world, quantity=quantity)


def test_recipient_lists_must_match_broadcast_flag(svc, world):
    with pytest.raises(ValidationError):
        svc.create_distribution(
            world.admin_a,
            office_id=world.office_a.office_id,
            goods_type="Mug",
            total_quantity=3,
            is_for_all_employees=True,
            target_employee_ids=[world.internal_a.user_id],
        )
    with pytest.raises(ValidationError):
        svc.create_distribution(
            world.admin_a,
            office_id=world.office_a.office_id,
            goods_type="Mug",
            total_quantity=3,
            is_for_all_employees=False,
        )


def test_targets_must_be_active_employees_of_the_office(svc, repos, world):
    with pytest.raises(ValidationError):
        _targeted(svc, world, targets=[world.internal_b])
    with pytest.raises(ValidationError):
        _targeted(svc, world, targets=[world.admin_a])
    pending = make_user(repos, "Pending P", Role.EXTERNAL, office=world.office_a, status=UserStatus.PENDING)
    with pytest.raises(ValidationError):
        _targeted(svc, world, targets=[pending])


def test_targets_are_notified(svc, repos, world):
    d = _targeted(svc, world, targets=[world.internal_a])
    assert repos.notifications.types_for(world.internal_a.user_id) == ["goodies"]
    assert repos.notifications.types_for(world.external_a.user_id) == []
    assert d.target_employee_ids == (world.internal_a.user_id,)


def test_bulk_create_collects_row_errors(svc, world):
    rows = [
        {"office_id": world.office_a.office_id, "goods_type": "Pen", "total_quantity": 10},
        {"office_id": world.office_a.office_id, "goods_type": "", "total_quantity": 10},
        {"office_id": world.office_a.office_id, "goods_type": "Pen", "total_quantity": 10},
    ]
    result = svc.create_distributions_bulk(world.admin_a, rows)

    assert [d.goods_type for d in result.created] == ["Pen"]
    assert [e.row for e in result.errors] == [2, 3]
    assert result.to_dict()["errorCount"] == 2


# ----- visibility -----


def test_listing_annotates_claim_state(svc, world):
    d = _broadcast(svc, world, quantity=3)
    svc.receive_goodies(world.internal_a, d.distribution_id)

    mine = svc.list_distributions(world.internal_a).items[0]
    theirs = svc.list_distributions(world.external_a).items[0]
    assert mine.is_received and not theirs.is_received
    assert mine.summary.claimed_count == 1
    assert mine.summary.remaining_count == 2
    assert mine.to_dict()["remainingCount"] == 2


def test_targeted_distribution_hidden_from_non_targets(svc, world):
    d = _targeted(svc, world, targets=[world.internal_a])

    assert [v.distribution.distribution_id for v in svc.list_distributions(world.internal_a).items] == [d.distribution_id]
    assert svc.list_distributions(world.external_a).total == 0
    assert svc.list_distributions(world.admin_a).total == 1
    with pytest.raises(AuthorizationError):
        svc.get_distribution(world.external_a, d.distribution_id)


def test_other_office_distributions_are_hidden(svc, world):
    d = _broadcast(svc, world)
    assert svc.list_distributions(world.internal_b).total == 0
    assert svc.list_distributions(world.admin_b).total == 0
    with pytest.raises(AuthorizationError):
        svc.get_distribution(world.admin_b, d.distribution_id)
    assert svc.list_distributions(world.super_admin, office_id=world.office_b.office_id).total == 0
    assert svc.list_distributions(world.super_admin).total == 1


def test_org_wide_distribution_visible_everywhere(svc, world):
    svc.create_distribution(world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5)
    for actor in (world.admin_a, world.internal_b, world.external_a):
        assert svc.list_distributions(actor).total == 1


# ----- self-service claims -----


def test_receive_records_claim_once(svc, repos, world):
    d = _broadcast(svc, world)
    record = svc.receive_goodies(world.external_a, d.distribution_id)

    assert record.handed_over_by == world.external_a.user_id
    assert record.received_at_office_id == world.office_a.office_id
    with pytest.raises(AlreadyClaimedError):
        svc.receive_goodies(world.external_a, d.distribution_id)
    assert len(repos.received.rows) == 1


def test_receive_stops_at_capacity(svc, world):
    d = _broadcast(svc, world, quantity=1)
    svc.receive_goodies(world.internal_a, d.distribution_id)
    with pytest.raises(CapacityExhaustedError):
        svc.receive_goodies(world.external_a, d.distribution_id)


def test_sequential_claims_fill_capacity_then_stop(svc, repos, world):
    d = _broadcast(svc, world, quantity=3)
    employees = [world.internal_a, world.external_a] + [
        make_user(repos, f"Extra {i}", Role.EXTERNAL, office=world.office_a) for i in range(2)
    ]

    for claimed, employee in enumerate(employees[:3], start=1):
        svc.receive_goodies(employee, d.distribution_id)
        summary = svc.get_claim_summary(world.admin_a, d.distribution_id)
        assert (summary.claimed_count, summary.remaining_count) == (claimed, 3 - claimed)

    with pytest.raises(CapacityExhaustedError):
        svc.receive_goodies(employees[3], d.distribution_id)
    assert svc.get_claim_summary(world.admin_a, d.distribution_id).remaining_count == 0
    assert len(repos.received.rows) == 3


def test_targeted_pair_with_single_unit(svc, world):
    d = _targeted(svc, world, targets=[world.internal_a, world.external_a], quantity=1)

    svc.receive_goodies(world.internal_a, d.distribution_id)
    with pytest.raises(CapacityExhaustedError):
        svc.receive_goodies(world.external_a, d.distribution_id)


def test_receive_checks_eligibility_then_office(svc, world):
    targeted = _targeted(svc, world, targets=[world.internal_a])
    with pytest.raises(NotEligibleError):
        svc.receive_goodies(world.external_a, targeted.distribution_id)

    broadcast = _broadcast(svc, world)
    with pytest.raises(WrongOfficeError):
        svc.receive_goodies(world.internal_b, broadcast.distribution_id)


def test_only_employees_receive(svc, world):
    d = _broadcast(svc, world)
    with pytest.raises(AuthorizationError):
        svc.receive_goodies(world.admin_a, d.distribution_id)
    with pytest.raises(NotFoundError):
        svc.receive_goodies(world.internal_a, "missing")


def test_org_wide_receive_from_any_office(svc, world):
    d = svc.create_distribution(world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5)
    record = svc.receive_goodies(world.internal_b, d.distribution_id)
    assert record.received_at_office_id == world.office_b.office_id


def test_concurrent_receive_by_one_user_creates_one_record(svc, repos, world):
    d = _broadcast(svc, world, quantity=50)
    results = run_concurrently(8, lambda i: svc.receive_goodies(world.internal_a, d.distribution_id))

    assert sum(1 for r in results if isinstance(r, ReceivedRecord)) == 1
    assert all(isinstance(r, (ReceivedRecord, AlreadyClaimedError)) for r in results)
    assert len(repos.received.rows) == 1


# ----- administrator-assisted claims -----


def test_mark_claim_for_registered_employee(svc, repos, world):
    d = _targeted(svc, world, targets=[world.internal_a])
    record = svc.mark_claim_for_employee(world.admin_a, d.distribution_id, world.internal_a.user_id)

    assert isinstance(record, ReceivedRecord)
    assert record.handed_over_by == world.admin_a.user_id
    assert repos.notifications.types_for(world.internal_a.user_id) == ["goodies", "goodies"]
    with pytest.raises(AlreadyClaimedError):
        svc.mark_claim_for_employee(world.admin_a, d.distribution_id, world.internal_a.user_id)


def test_mark_claim_rejects_non_targets_and_strangers(svc, world):
    d = _targeted(svc, world, targets=[world.internal_a])
    with pytest.raises(NotEligibleError):
        svc.mark_claim_for_employee(world.admin_a, d.distribution_id, world.external_a.user_id)
    with pytest.raises(NotFoundError):
        svc.mark_claim_for_employee(world.admin_a, d.distribution_id, "nobody")
    with pytest.raises(AuthorizationError):
        svc.mark_claim_for_employee(world.admin_b, d.distribution_id, world.internal_a.user_id)
    with pytest.raises(AuthorizationError):
        svc.mark_claim_for_employee(world.internal_a, d.distribution_id, world.internal_a.user_id)


def test_mark_claim_wrong_office_on_broadcast(svc, world):
    d = _broadcast(svc, world)
    with pytest.raises(WrongOfficeError):
        svc.mark_claim_for_employee(world.super_admin, d.distribution_id, world.internal_b.user_id)


def test_mark_claim_for_unregistered_recipient_once(svc, world):
    d = _targeted(svc, world, unregistered=["Guest One"], quantity=3)
    rid = d.unregistered_recipients[0].recipient_id

    claimed = svc.mark_claim_for_employee(world.admin_a, d.distribution_id, rid)
    assert isinstance(claimed, UnregisteredRecipient)
    assert claimed.is_claimed and claimed.handed_over_by == world.admin_a.user_id

    with pytest.raises(AlreadyClaimedError):
        svc.mark_claim_for_employee(world.admin_a, d.distribution_id, rid)
    summary = svc.get_claim_summary(world.admin_a, d.distribution_id)
    assert (summary.claimed_count, summary.remaining_count) == (1, 2)


def test_concurrent_unregistered_claims_flip_once(svc, repos, world):
    d = _targeted(svc, world, unregistered=["Guest One"], quantity=5)
    rid = d.unregistered_recipients[0].recipient_id

    results = run_concurrently(6, lambda i: svc.mark_claim_for_employee(world.admin_a, d.distribution_id, rid))

    assert sum(1 for r in results if isinstance(r, UnregisteredRecipient)) == 1
    assert sum(1 for r in results if isinstance(r, AlreadyClaimedError)) == 5
    assert repos.distributions.count_claimed_unregistered(d.distribution_id) == 1


def test_unregistered_claims_count_against_capacity(svc, world):
    d = _targeted(svc, world, targets=[world.internal_a], unregistered=["Guest One"], quantity=1)
    svc.mark_claim_for_employee(world.admin_a, d.distribution_id, d.unregistered_recipients[0].recipient_id)
    with pytest.raises(CapacityExhaustedError):
        svc.receive_goodies(world.internal_a, d.distribution_id)


def test_org_wide_mark_claim_is_scoped_by_recipient_office(svc, world):
    d = svc.create_distribution(world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5)
    assert svc.mark_claim_for_employee(world.admin_a, d.distribution_id, world.internal_a.user_id)
    with pytest.raises(AuthorizationError):
        svc.mark_claim_for_employee(world.admin_a, d.distribution_id, world.internal_b.user_id)


# ----- deletion & records -----


def test_delete_refused_while_claims_exist(svc, world):
    d = _broadcast(svc, world)
    record = svc.receive_goodies(world.internal_a, d.distribution_id)

    with pytest.raises(HasDependentsError):
        svc.delete_distribution(world.admin_a, d.distribution_id)

    svc.delete_received_record(world.admin_a, record.received_id)
    svc.delete_distribution(world.admin_a, d.distribution_id)
    with pytest.raises(NotFoundError):
        svc.get_distribution(world.admin_a, d.distribution_id)


def test_delete_after_late_claim_is_refused(svc, repos, world, monkeypatch):
    d = _broadcast(svc, world)
    svc.receive_goodies(world.internal_a, d.distribution_id)
    # The claim count was read before the claim was committed.
    monkeypatch.setattr(repos.received, "count", lambda query: 0)

    with pytest.raises(HasDependentsError):
        svc.delete_distribution(world.admin_a, d.distribution_id)
    assert d.distribution_id in repos.distributions.rows


def test_claim_after_concurrent_delete_leaves_no_record(svc, repos, world, monkeypatch):
    d = _broadcast(svc, world)
    received_by = repos.received.distribution_ids_received_by

    def delete_then_check(user_id, distribution_ids):
        repos.distributions.rows.pop(d.distribution_id, None)
        return received_by(user_id, distribution_ids)

    monkeypatch.setattr(repos.received, "distribution_ids_received_by", delete_then_check)
    with pytest.raises(NotFoundError):
        svc.receive_goodies(world.internal_a, d.distribution_id)
    assert repos.received.rows == {}


def test_delete_received_record_restores_capacity(svc, world):
    d = _broadcast(svc, world, quantity=1)
    record = svc.receive_goodies(world.internal_a, d.distribution_id)
    with pytest.raises(AuthorizationError):
        svc.delete_received_record(world.admin_b, record.received_id)

    svc.delete_received_record(world.super_admin, record.received_id)
    assert svc.receive_goodies(world.external_a, d.distribution_id)


def test_org_wide_delete_needs_super_admin(svc, world):
    d = svc.create_distribution(world.super_admin, office_id=None, goods_type="Calendar", total_quantity=5)
    with pytest.raises(AuthorizationError):
        svc.delete_distribution(world.admin_a, d.distribution_id)
    svc.delete_distribution(world.super_admin, d.distribution_id)


def test_list_received_scoping(svc, world):
    a = _broadcast(svc, world)
    b = _broadcast(svc, world, office=world.office_b, actor=world.super_admin)
    svc.receive_goodies(world.internal_a, a.distribution_id)
    svc.receive_goodies(world.external_a, a.distribution_id)
    svc.receive_goodies(world.internal_b, b.distribution_id)

    assert svc.list_received(world.super_admin).total == 3
    assert svc.list_received(world.admin_a, office_id=world.office_b.office_id).total == 2
    assert svc.list_received(world.internal_a).total == 2
    mine = svc.list_received(world.external_a)
    assert [r.user_id for r in mine.items] == [world.external_a.user_id]
    assert svc.list_received(world.super_admin, distribution_id=b.distribution_id).total == 1


def test_get_received_record_scoping(svc, world):
    d = _broadcast(svc, world)
    record = svc.receive_goodies(world.internal_a, d.distribution_id)
    assert svc.get_received_record(world.admin_a, record.received_id) == record
    with pytest.raises(AuthorizationError):
        svc.get_received_record(world.external_a, record.received_id)
    with pytest.raises(NotFoundError):
        svc.get_received_record(world.admin_a, "missing")


# ----- eligible employees -----


def test_eligible_employees_for_broadcast(svc, repos, world):
    make_user(repos, "Suspended S", Role.INTERNAL, office=world.office_a, status=UserStatus.INACTIVE)
    d = _broadcast(svc, world)
    svc.receive_goodies(world.external_a, d.distribution_id)

    eligible = {e.name: e for e in svc.list_eligible_employees(world.admin_a, d.distribution_id)}
    assert set(eligible) == {"External A", "Internal A"}
    assert eligible["External A"].is_claimed and not eligible["Internal A"].is_claimed
    assert all(e.is_registered for e in eligible.values())


def test_eligible_employees_for_targeted_includes_unregistered(svc, world):
    d = _targeted(svc, world, targets=[world.internal_a], unregistered=["Guest One"])
    eligible = svc.list_eligible_employees(world.internal_a, d.distribution_id)

    assert [(e.name, e.is_registered) for e in eligible] == [("Internal A", True), ("Guest One", False)]
    assert eligible[1].employee_id == "EMP-0"
    with pytest.raises(AuthorizationError):
        svc.list_eligible_employees(world.external_a, d.distribution_id)


def test_explicit_distribution_date(svc, world):
    d = svc.create_distribution(
        world.admin_a,
        office_id=world.office_a.office_id,
        goods_type="Hoodie",
        total_quantity=2,
        distribution_date="2026-04-01",
    )
    assert d.distribution_date == date(2026, 4, 1)
    assert svc.list_distributions(world.admin_a, start_date="2026-04-01").total == 1
    assert svc.list_distributions(world.admin_a, end_date="2026-03-31").total == 0
