"""Derived status: APPROVED exactly when no planning approval is pending."""
import uuid

import pytest

from orderflow.core.locks import lock_key_for, registry
from orderflow.models.order import OrderStatus
from orderflow.services.status_aggregator import StatusAggregator, derive_target_status


def test_derive_target_status():
    assert derive_target_status(0) == OrderStatus.APPROVED
    assert derive_target_status(1) == OrderStatus.PLANNING_REVIEW
    assert derive_target_status(3) == OrderStatus.PLANNING_REVIEW


async def test_last_approval_approves_order(workflow, make_order, planning_north, planning_south):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_north)
    order = await workflow.approve_location(order.id, "South", planning_south)

    assert order.status == OrderStatus.APPROVED.value
    history = await workflow.get_history(order.id)
    assert history[-1].action == "Approved by All Locations"
    assert history[-1].actor_role == "system"
    assert history[-1].previous_status == OrderStatus.PLANNING_REVIEW.value


async def test_refresh_is_a_no_op_when_status_matches(db, workflow, make_order):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    history_before = len(await workflow.get_history(order.id))

    assert await StatusAggregator(db).refresh(order) is None
    await db.commit()

    assert len(await workflow.get_history(order.id)) == history_before


async def test_refresh_ignores_orders_outside_planning(db, make_order):
    order = await make_order(OrderStatus.SUPPLY_CHAIN_REVIEW)
    assert await StatusAggregator(db).refresh(order) is None


async def test_refresh_skips_when_another_transaction_aggregates(
    workflow, make_order, planning_north, planning_south
):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_north)

    key = lock_key_for(f"status:{order.id}")
    holder = uuid.uuid4()
    assert registry.try_acquire(key, holder)
    try:
        order = await workflow.approve_location(order.id, "South", planning_south)
        assert order.status == OrderStatus.PLANNING_REVIEW.value
    finally:
        registry.release([key], holder)

    # The next refresh catches up
    change = await workflow.aggregator.refresh(order)
    await workflow.db.commit()
    assert change == (OrderStatus.PLANNING_REVIEW, OrderStatus.APPROVED)


async def test_approved_order_with_new_pending_row_returns_to_planning(db, workflow, approved_order):
    from orderflow.models.location_approval import LocationApproval

    db.add(LocationApproval(order_id=approved_order.id, location="East"))
    await db.flush()

    change = await StatusAggregator(db).refresh(approved_order)
    await db.commit()

    assert change == (OrderStatus.APPROVED, OrderStatus.PLANNING_REVIEW)
    assert approved_order.status == OrderStatus.PLANNING_REVIEW.value


@pytest.mark.parametrize("pending", [0, 2])
async def test_aggregated_status_matches_ledger(workflow, make_order, planning_all, pending):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    locations = ["North", "South"][: 2 - pending]
    for location in locations:
        order = await workflow.approve_location(order.id, location, planning_all)

    assert await workflow.ledger.pending_count(order.id) == pending
    assert order.status == derive_target_status(pending).value
