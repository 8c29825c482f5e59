"""Duplicate suppression of notification events."""
import threading
import uuid
from datetime import datetime, timedelta, timezone

from orderflow.core.locks import InProcessLockRegistry, lock_key_for, registry
from orderflow.models.order import OrderStatus
from orderflow.services.notification_dedup_service import EventDeduplicator, dedup_key_for


def test_dedup_key_is_deterministic():
    order_id = uuid.uuid4()
    key = dedup_key_for(order_id, "Approved", "APPROVED", "  ")
    assert key == dedup_key_for(order_id, "Approved", "APPROVED", None)
    assert len(key) == 64
    assert key != dedup_key_for(order_id, "Approved", "APPROVED", "other")
    assert key != dedup_key_for(uuid.uuid4(), "Approved", "APPROVED")


def test_lock_key_is_signed_64_bit():
    key = lock_key_for("notification:abc")
    assert key == lock_key_for("notification:abc")
    assert -(2 ** 63) <= key < 2 ** 63


def test_registry_allows_one_owner_per_key():
    locks = InProcessLockRegistry()
    owners = [uuid.uuid4() for _ in range(8)]
    results = []

    def grab(owner):
        results.append(locks.try_acquire(42, owner))

    threads = [threading.Thread(target=grab, args=(owner,)) for owner in owners]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    winner = next(owner for owner in owners if locks.try_acquire(42, owner))
    locks.release([42], winner)
    assert not locks.is_held(42)


async def test_second_claim_within_window_is_suppressed(db, make_order, supply_chain):
    order = await make_order()
    dedup = EventDeduplicator(db, window_minutes=5)

    assert await dedup.claim(order.id, "SupplyChainRejected", "REJECTED", supply_chain, "Too late")
    assert not await dedup.claim(order.id, "SupplyChainRejected", "REJECTED", supply_chain, "Too late")
    await db.commit()

    # Different reason is a different event
    assert await dedup.claim(order.id, "SupplyChainRejected", "REJECTED", supply_chain, "Wrong article")
    await db.commit()


async def test_claims_outside_window_are_allowed(db, make_order, supply_chain):
    from orderflow.models.notification import NotificationRecord

    order = await make_order()
    key = dedup_key_for(order.id, "Correction", "SALES_REVIEW", "Fix quantity")
    db.add(NotificationRecord(
        order_id=order.id,
        event_kind="Correction",
        order_status="SALES_REVIEW",
        reason="Fix quantity",
        dedup_key=key,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=10),
    ))
    await db.commit()

    dedup = EventDeduplicator(db, window_minutes=5)
    assert await dedup.recently_sent(key) is False
    assert await dedup.claim(order.id, "Correction", "SALES_REVIEW", supply_chain, "Fix quantity")
    await db.commit()


async def test_claim_skipped_while_key_is_locked_elsewhere(db, make_order, supply_chain):
    order = await make_order()
    order_id = order.id
    key = dedup_key_for(order.id, "Approved", OrderStatus.APPROVED.value)
    lock = lock_key_for(f"notification:{key}")
    holder = uuid.uuid4()
    assert registry.try_acquire(lock, holder)
    try:
        assert not await EventDeduplicator(db).claim(order.id, "Approved", "APPROVED", supply_chain)
    finally:
        registry.release([lock], holder)
    await db.rollback()

    assert await EventDeduplicator(db).claim(order_id, "Approved", "APPROVED", supply_chain)
    await db.commit()


async def test_locks_are_released_when_the_transaction_ends(db, make_order, supply_chain):
    order = await make_order()
    key = dedup_key_for(order.id, "Approved", "APPROVED")
    lock = lock_key_for(f"notification:{key}")

    await EventDeduplicator(db).claim(order.id, "Approved", "APPROVED", supply_chain)
    assert registry.is_held(lock)
    await db.commit()
    assert not registry.is_held(lock)


async def test_workflow_sends_duplicate_event_once(workflow, make_order, supply_chain, sales, notifier):
    order = await make_order(OrderStatus.SUPPLY_CHAIN_REVIEW)
    await workflow.transition(order.id, OrderStatus.SALES_REVIEW, supply_chain, reason="Check quantity")
    await workflow.transition(order.id, OrderStatus.SUPPLY_CHAIN_REVIEW, sales)
    await workflow.transition(order.id, OrderStatus.SALES_REVIEW, supply_chain, reason="Check quantity")

    assert notifier.events("Correction") == ["Correction"]
