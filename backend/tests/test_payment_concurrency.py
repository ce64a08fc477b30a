import asyncio

import pytest
from sqlalchemy import func, select

from wxpay_orders.models.payment import PaymentLog, PaymentStatus
from wxpay_orders.services.notify_processor import NotifyProcessor
from wxpay_orders.services.order_lifecycle import CreateOrderFields
from wxpay_orders.services.order_store import OrderStore
from wxpay_orders.services.payment_transitions import TransitionOutcome, apply_payment_confirmation
from wxpay_orders.utils.wechatpay_messages import PaymentConfirmation


@pytest.mark.asyncio
async def test_wechat_notify_concurrent_idempotent(
    manager,
    session_factory,
    config_provider,
    notify_body,
    store,
):
    created = await manager.create_order(
        "web", CreateOrderFields(user_id="u_concurrent", amount=1000, product_name="并发测试")
    )
    body = notify_body(created.order_id, 1000, transaction_id="4200005555")

    async def _notify():
        async with session_factory() as session:
            processor = NotifyProcessor(OrderStore(session), config_provider)
            return await processor.process(body)

    a1, a2 = await asyncio.gather(_notify(), _notify())

    assert a1.ok and a2.ok

    order = await store.find_by_order_id(created.order_id)
    assert order is not None
    assert order.status == PaymentStatus.PAID.value
    assert order.transaction_id == "4200005555"
    assert order.notify_count == 2

    # 只有一次真正完成迁移
    applied_logs = await store.db.execute(
        select(func.count())
        .select_from(PaymentLog)
        .where(
            PaymentLog.order_id == created.order_id,
            PaymentLog.action == "notify",
            PaymentLog.status == "success",
        )
    )
    assert int(applied_logs.scalar() or 0) == 1


@pytest.mark.asyncio
async def test_shared_transition_applies_once(manager, session_factory):
    created = await manager.create_order(
        "web", CreateOrderFields(user_id="u_concurrent", amount=300, product_name="并发测试")
    )
    confirmation = PaymentConfirmation(
        out_trade_no=created.order_id,
        transaction_id="4200006666",
        total_fee=300,
        payment_time=None,
    )

    async def _apply():
        async with session_factory() as session:
            result = await apply_payment_confirmation(OrderStore(session), confirmation)
            return result.outcome

    outcomes = await asyncio.gather(*[_apply() for _ in range(4)])

    assert outcomes.count(TransitionOutcome.APPLIED) == 1
    assert outcomes.count(TransitionOutcome.ALREADY_PAID) == 3
