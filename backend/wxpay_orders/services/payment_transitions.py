"""待支付 -> 已支付 的唯一入口，回调推送与主动查询都走这里"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from ..models.payment import PaymentOrder, PaymentStatus
from ..utils.wechatpay_messages import PaymentConfirmation
from .order_store import OrderStore

logger = logging.getLogger(__name__)


class TransitionOutcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_PAID = "already_paid"
    NOT_FOUND = "not_found"
    AMOUNT_MISMATCH = "amount_mismatch"
    INVALID_STATE = "invalid_state"


@dataclass(frozen=True)
class TransitionResult:
    outcome: TransitionOutcome
    order: PaymentOrder | None


async def apply_payment_confirmation(
    store: OrderStore,
    confirmation: PaymentConfirmation,
    *,
    callback_data: str | None = None,
) -> TransitionResult:
    order = await store.find_by_order_id(confirmation.out_trade_no)
    if order is None:
        logger.warning("支付确认对应的订单不存在 order_id=%s", confirmation.out_trade_no)
        return TransitionResult(TransitionOutcome.NOT_FOUND, None)

    if order.status == PaymentStatus.PAID.value:
        return TransitionResult(TransitionOutcome.ALREADY_PAID, order)

    # 已退款订单收到同一笔支付的重复确认，仍按已支付处理
    if order.status == PaymentStatus.REFUNDED.value and order.transaction_id == confirmation.transaction_id:
        return TransitionResult(TransitionOutcome.ALREADY_PAID, order)

    if order.status != PaymentStatus.PENDING.value:
        logger.warning("订单状态不允许确认支付 order_id=%s status=%s", order.order_id, order.status)
        return TransitionResult(TransitionOutcome.INVALID_STATE, order)

    if int(order.amount) != int(confirmation.total_fee):
        logger.error(
            "支付金额不一致 order_id=%s expected=%s got=%s",
            order.order_id,
            order.amount,
            confirmation.total_fee,
        )
        return TransitionResult(TransitionOutcome.AMOUNT_MISMATCH, order)

    applied = await store.mark_paid(
        order.order_id,
        transaction_id=confirmation.transaction_id,
        payment_time=confirmation.payment_time,
        callback_data=callback_data,
    )
    refreshed = await store.find_by_order_id(order.order_id)
    if applied:
        logger.info(
            "订单已支付 order_id=%s transaction_id=%s",
            order.order_id,
            confirmation.transaction_id,
        )
        return TransitionResult(TransitionOutcome.APPLIED, refreshed)

    # 并发下另一写入者先完成了迁移
    if refreshed is not None and refreshed.status == PaymentStatus.PAID.value:
        return TransitionResult(TransitionOutcome.ALREADY_PAID, refreshed)
    return TransitionResult(TransitionOutcome.INVALID_STATE, refreshed)
