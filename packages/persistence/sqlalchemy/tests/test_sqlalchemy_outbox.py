"""End-to-end outbox behaviour on SQLite through SQLAlchemy."""

from __future__ import annotations

import asyncio
from datetime import timedelta, timezone

import pytest
from shop_fixtures import Order, OrderPlaced, RecordingHandler
from sqlalchemy import select
from sqlalchemy_shop import OrderRow

from ddd_outbox_core import (
    DispatchOutcome,
    DomainEventOutboxAdapter,
    OperationCancelledError,
    OutboxMessage,
    SerializationError,
)
from ddd_outbox_persistence_sqlalchemy import OutboxMessageModel, SQLAlchemyUnitOfWork


def _placed(order_id: str = "ord-1") -> OrderPlaced:
    return OrderPlaced(order_id=order_id, customer_id="cust-1", total_cents=4200)


async def _place_order(uow_factory, writer, order_id: str = "ord-1", **kwargs):
    async with uow_factory() as uow:
        uow.session.add(OrderRow(id=order_id, status="placed", total_cents=4200))
        return await writer.enqueue(_placed(order_id), uow=uow, **kwargs)


async def _get(storage, uow_factory, message_id: str) -> OutboxMessage | None:
    async with uow_factory() as uow:
        return await storage.get_by_id(message_id, uow=uow)


# ═══════════════════════════════════════════════════════════════════════
# Atomic enqueue
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_order_and_message_commit_together(
    session_factory, uow_factory, writer, storage, clock
) -> None:
    msg = await _place_order(uow_factory, writer)

    async with session_factory() as session:
        order = await session.get(OrderRow, "ord-1")
        row = await session.get(OutboxMessageModel, msg.message_id)
    assert order is not None
    assert row is not None
    assert row.message_type == "sales.order_placed"

    stored = await _get(storage, uow_factory, msg.message_id)
    assert stored is not None
    assert stored.created_at == clock.now
    assert stored.created_at.tzinfo is not None
    assert stored.created_at.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_rollback_leaves_neither_order_nor_message(
    session_factory, uow_factory, writer
) -> None:
    with pytest.raises(RuntimeError, match="card declined"):
        async with uow_factory() as uow:
            uow.session.add(OrderRow(id="ord-1", status="placed", total_cents=1))
            await writer.enqueue(_placed(), uow=uow)
            raise RuntimeError("card declined")

    async with session_factory() as session:
        orders = (await session.execute(select(OrderRow))).scalars().all()
        messages = (await session.execute(select(OutboxMessageModel))).scalars().all()
    assert orders == []
    assert messages == []


@pytest.mark.asyncio
async def test_serialization_failure_aborts_the_transaction(
    session_factory, uow_factory, writer
) -> None:
    class NotRegistered(OrderPlaced):
        pass

    with pytest.raises(SerializationError):
        async with uow_factory() as uow:
            uow.session.add(OrderRow(id="ord-1", status="placed", total_cents=1))
            await writer.enqueue(
                NotRegistered(order_id="ord-1", customer_id="c", total_cents=1),
                uow=uow,
            )

    async with session_factory() as session:
        assert await session.get(OrderRow, "ord-1") is None


@pytest.mark.asyncio
async def test_caller_managed_session(session_factory, writer, storage) -> None:
    async with session_factory() as session:
        async with SQLAlchemyUnitOfWork(session=session) as uow:
            msg = await writer.enqueue(_placed(), uow=uow)

    async with session_factory() as session:
        assert await session.get(OutboxMessageModel, msg.message_id) is not None


@pytest.mark.asyncio
async def test_adapter_drains_aggregate_before_commit(
    uow_factory, writer, storage
) -> None:
    adapter = DomainEventOutboxAdapter(writer)
    order = Order(id="ord-5", customer_id="cust-5")

    async with uow_factory() as uow:
        adapter.attach(uow, order)
        order.place(total_cents=700)
        order.cancel(reason="fraud check")

    async with uow_factory() as uow:
        stored = await storage.list_messages(uow=uow)
    assert sorted(m.message_type for m in stored) == [
        "sales.order_cancelled",
        "sales.order_placed",
    ]
    assert order.pending_events == ()


# ═══════════════════════════════════════════════════════════════════════
# Dispatch
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_committed_event_is_dispatched_once(
    uow_factory, writer, storage, dispatcher, processor, clock
) -> None:
    handler = RecordingHandler()
    dispatcher.register(OrderPlaced, handler)
    msg = await _place_order(uow_factory, writer)

    clock.advance(seconds=2)
    report = await processor.process_messages()

    assert report.outcome_of(msg.message_id) is DispatchOutcome.PROCESSED
    assert [e.order_id for e in handler.events] == ["ord-1"]
    stored = await _get(storage, uow_factory, msg.message_id)
    assert stored is not None
    assert stored.processed_at == clock.now
    assert stored.claim_token is None

    assert (await processor.process_messages()).claimed == 0
    assert len(handler.events) == 1


@pytest.mark.asyncio
async def test_scheduled_message_waits(
    uow_factory, writer, dispatcher, processor, clock
) -> None:
    dispatcher.register(OrderPlaced, RecordingHandler())
    await _place_order(
        uow_factory, writer, scheduled_at=clock.now + timedelta(minutes=15)
    )

    assert (await processor.process_messages()).claimed == 0
    clock.advance(minutes=15)
    assert (await processor.process_messages()).processed == 1


@pytest.mark.asyncio
async def test_failure_then_success(
    uow_factory, writer, storage, dispatcher, processor
) -> None:
    dispatcher.register(OrderPlaced, RecordingHandler(fail_times=1))
    msg = await _place_order(uow_factory, writer)

    first = await processor.process_messages()
    stored = await _get(storage, uow_factory, msg.message_id)

    assert first.failed == 1
    assert stored is not None
    assert stored.retry_count == 1
    assert "warehouse unavailable" in (stored.error or "")

    second = await processor.process_messages()
    stored = await _get(storage, uow_factory, msg.message_id)

    assert second.processed == 1
    assert stored is not None
    assert stored.processed_at is not None
    assert stored.retry_count == 1


@pytest.mark.asyncio
async def test_poison_message_quarantined_and_requeued(
    uow_factory, writer, storage, dispatcher, processor
) -> None:
    handler = RecordingHandler(fail_times=3)
    dispatcher.register(OrderPlaced, handler)
    msg = await _place_order(uow_factory, writer)

    for _ in range(3):
        await processor.process_messages()

    stored = await _get(storage, uow_factory, msg.message_id)
    assert stored is not None
    assert stored.is_quarantined
    assert stored.retry_count == 3
    assert (await processor.process_messages()).claimed == 0

    assert await processor.requeue(msg.message_id)
    assert (await processor.process_messages()).processed == 1
    assert len(handler.events) == 1


@pytest.mark.asyncio
async def test_cancel_mid_batch_releases_claims(
    uow_factory, writer, storage, dispatcher, processor, clock
) -> None:
    cancel = asyncio.Event()

    async def first_then_stop(event: OrderPlaced) -> None:
        cancel.set()

    dispatcher.register(OrderPlaced, first_then_stop)
    for order_id in ("ord-1", "ord-2"):
        await _place_order(uow_factory, writer, order_id)
        clock.advance(seconds=1)

    with pytest.raises(OperationCancelledError):
        await processor.process_messages(cancel)

    async with uow_factory() as uow:
        pending = await storage.list_messages(processed=False, uow=uow)
        processed = await storage.count(processed=True, uow=uow)
    assert processed == 1
    assert len(pending) == 1
    assert pending[0].claim_token is None


# ═══════════════════════════════════════════════════════════════════════
# Cleanup
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_cleanup_removes_old_processed_only(
    uow_factory, writer, storage, dispatcher, processor, cleaner, clock
) -> None:
    dispatcher.register(OrderPlaced, RecordingHandler())
    await _place_order(uow_factory, writer, "ord-old")
    await processor.process_messages()

    clock.advance(days=5)
    await _place_order(uow_factory, writer, "ord-new")
    await processor.process_messages()
    await _place_order(
        uow_factory, writer, "ord-later", scheduled_at=clock.now + timedelta(days=30)
    )

    clock.advance(days=3)
    deleted = await cleaner.cleanup_old_messages(days_to_keep=7)

    assert deleted == 1
    async with uow_factory() as uow:
        assert await storage.count(uow=uow) == 2
        assert await storage.count(processed=False, uow=uow) == 1


@pytest.mark.asyncio
async def test_stored_datetimes_are_utc(uow_factory, writer, storage, clock) -> None:
    msg = await _place_order(uow_factory, writer)

    stored = await _get(storage, uow_factory, msg.message_id)

    assert stored is not None
    assert stored.scheduled_at is not None
    assert stored.scheduled_at.tzinfo == timezone.utc
