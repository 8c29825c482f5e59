"""Approval ledger: seeding, sign-off scope and reset."""
import uuid

import pytest

from orderflow.core.exceptions import (
    ForbiddenTransitionError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from orderflow.models.location import Location
from orderflow.models.order import OrderStatus
from orderflow.services.location_approval_service import LocationApprovalLedger


async def test_scenario_a_one_row_per_location_with_quantity(workflow, make_order):
    order = await make_order(
        OrderStatus.PLANNING_REVIEW,
        location_distribution={"North": 100, "South": 0},
    )

    approvals = await workflow.get_location_approvals(order.id)
    assert [row.location for row in approvals] == ["North"]
    assert approvals[0].required is True
    assert approvals[0].approved is False
    assert await workflow.ledger.pending_count(order.id) == 1
    assert order.status == OrderStatus.PLANNING_REVIEW.value


async def test_seed_is_idempotent(db, workflow, make_order):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    ledger = LocationApprovalLedger(db)

    assert await ledger.seed(order.id, order.location_distribution) == ["North", "South"]
    await db.commit()

    approvals = await ledger.list_for_order(order.id)
    assert [row.location for row in approvals] == ["North", "South"]


async def test_seed_keeps_existing_approvals(db, workflow, make_order, planning_north):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_north)

    ledger = LocationApprovalLedger(db)
    await ledger.seed(order.id, order.location_distribution)
    await db.commit()

    assert await ledger.pending_count(order.id) == 1
    assert await ledger.is_pending_for_location(order.id, "South")
    assert not await ledger.is_pending_for_location(order.id, "North")


async def test_site_names_are_translated_to_location_codes(db, workflow, make_order):
    db.add_all([
        Location(code="NRD", name="Werk Nord"),
        Location(code="OLD", name="Werk Alt", active=False),
    ])
    await db.commit()

    order = await make_order(
        OrderStatus.PLANNING_REVIEW,
        location_distribution={"Werk Nord": 50, "Werk Alt": 30, "South": 20},
    )

    assert await workflow.ledger.locations_for_order(order.id) == ["NRD", "South", "Werk Alt"]


async def test_planning_approves_own_location(workflow, make_order, planning_north, notifier):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    order = await workflow.approve_location(order.id, "North", planning_north)

    assert order.status == OrderStatus.PLANNING_REVIEW.value
    approvals = {row.location: row for row in await workflow.get_location_approvals(order.id)}
    assert approvals["North"].approved is True
    assert approvals["North"].approved_by_id == planning_north.id
    assert approvals["North"].approved_at is not None
    assert approvals["South"].approved is False

    history = await workflow.get_history(order.id)
    assert history[-1].action == "Planning approval North"
    assert "Approved" not in notifier.events()


async def test_planning_cannot_approve_other_location(workflow, make_order, planning_north):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    order_id = order.id
    with pytest.raises(ForbiddenTransitionError):
        await workflow.approve_location(order_id, "South", planning_north)

    assert await workflow.ledger.pending_count(order_id) == 2


async def test_non_planning_roles_cannot_approve(workflow, make_order, supply_chain):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    with pytest.raises(ForbiddenTransitionError):
        await workflow.approve_location(order.id, "North", supply_chain)


async def test_all_locations_planning_and_admin_approve_anywhere(workflow, make_order, planning_all, admin):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_all)
    order = await workflow.approve_location(order.id, "South", admin)
    assert order.status == OrderStatus.APPROVED.value


async def test_approving_twice_changes_nothing(workflow, make_order, planning_north):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_north)
    await workflow.approve_location(order.id, "North", planning_north)

    history = await workflow.get_history(order.id)
    assert [entry.action for entry in history].count("Planning approval North") == 1


async def test_unknown_location_row(workflow, make_order, planning_all):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    with pytest.raises(OrderNotFoundError) as exc_info:
        await workflow.approve_location(order.id, "East", planning_all)
    assert exc_info.value.details["location"] == "East"


async def test_approval_outside_planning_review(workflow, make_order, planning_north):
    order = await make_order(OrderStatus.SUPPLY_CHAIN_REVIEW)
    with pytest.raises(InvalidTransitionError):
        await workflow.approve_location(order.id, "North", planning_north)


async def test_unknown_order(workflow, planning_north):
    with pytest.raises(OrderNotFoundError):
        await workflow.approve_location(uuid.uuid4(), "North", planning_north)


async def test_reset_removes_all_rows(db, workflow, make_order):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    ledger = LocationApprovalLedger(db)

    assert await ledger.reset(order.id) == 2
    await db.commit()
    assert await ledger.list_for_order(order.id) == []
    assert await ledger.pending_count(order.id) == 0


async def test_correction_event_carries_location_codes(db, workflow, make_order, planning_all, notifier):
    db.add(Location(code="NRD", name="Werk Nord"))
    await db.commit()

    order = await make_order(
        OrderStatus.PLANNING_REVIEW,
        location_distribution={"Werk Nord": 60, "South": 40},
    )
    await workflow.planning_correction(order.id, planning_all, "Kapazität fehlt")

    payload = notifier.payloads("PlanningCorrection")[0]
    assert payload["locations"] == ["NRD", "South"]
    assert await workflow.ledger.locations_for_order(order.id) == []
