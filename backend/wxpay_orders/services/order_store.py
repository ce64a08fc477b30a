"""订单持久化

状态变更全部走 ``UPDATE ... WHERE status = <期望状态>``，由数据库保证并发下只有一个写入者成功。
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.payment import PaymentAction, PaymentLog, PaymentOrder, PaymentStatus, can_transition

logger = logging.getLogger(__name__)


def _dump(data: object) -> str | None:
    if data is None:
        return None
    if isinstance(data, str):
        return data
    return json.dumps(data, ensure_ascii=False, default=str)


class OrderStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db: AsyncSession = db

    async def insert(self, order: PaymentOrder) -> PaymentOrder:
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)
        return order

    async def conditional_update_status(
        self,
        order_id: str,
        expected: PaymentStatus,
        new_status: PaymentStatus,
        values: dict[str, Any] | None = None,
    ) -> bool:
        """仅当订单当前状态为 expected 时迁移到 new_status，返回是否更新成功"""
        if not can_transition(expected, new_status):
            raise ValueError(f"illegal payment status transition: {expected.value} -> {new_status.value}")

        extra = dict(values or {})
        extra.pop("status", None)
        result = await self.db.execute(
            update(PaymentOrder)
            .where(PaymentOrder.order_id == order_id, PaymentOrder.status == expected.value)
            .values(status=new_status.value, **extra)
        )
        await self.db.commit()
        return getattr(result, "rowcount", 0) == 1

    async def mark_paid(
        self,
        order_id: str,
        *,
        transaction_id: str,
        payment_time: datetime | None,
        callback_data: str | None = None,
    ) -> bool:
        if payment_time is not None and payment_time.tzinfo is not None:
            # 统一按 UTC 落库，与 refunded_at 一致
            payment_time = payment_time.astimezone(timezone.utc)
        # 推送与主动查询的确认都计一次
        values: dict[str, Any] = {
            "transaction_id": transaction_id,
            "payment_time": payment_time,
            "notify_count": PaymentOrder.notify_count + 1,
        }
        if callback_data is not None:
            values["callback_data"] = callback_data
        return await self.conditional_update_status(order_id, PaymentStatus.PENDING, PaymentStatus.PAID, values)

    async def increment_notify_count(self, order_id: str) -> bool:
        """重复确认只计数，仅对已确认支付的订单生效"""
        result = await self.db.execute(
            update(PaymentOrder)
            .where(
                PaymentOrder.order_id == order_id,
                PaymentOrder.status.in_([PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value]),
            )
            .values(notify_count=PaymentOrder.notify_count + 1)
        )
        await self.db.commit()
        return getattr(result, "rowcount", 0) == 1

    async def set_prepay_id(self, order_id: str, prepay_id: str) -> bool:
        result = await self.db.execute(
            update(PaymentOrder)
            .where(PaymentOrder.order_id == order_id, PaymentOrder.status == PaymentStatus.PENDING.value)
            .values(prepay_id=prepay_id)
        )
        await self.db.commit()
        return getattr(result, "rowcount", 0) == 1

    async def find_by_order_id(self, order_id: str) -> PaymentOrder | None:
        result = await self.db.execute(
            select(PaymentOrder)
            .where(PaymentOrder.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_by_transaction_id(self, transaction_id: str) -> PaymentOrder | None:
        result = await self.db.execute(
            select(PaymentOrder)
            .where(PaymentOrder.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_by_user(
        self,
        user_id: str,
        *,
        status: PaymentStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[PaymentOrder], int]:
        query = select(PaymentOrder).where(PaymentOrder.user_id == user_id)
        if status is not None:
            query = query.where(PaymentOrder.status == status.value)

        count_query = select(func.count()).select_from(query.subquery())
        total_result = await self.db.execute(count_query)
        total = int(total_result.scalar() or 0)

        query = query.order_by(PaymentOrder.created_at.desc(), PaymentOrder.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def log_payment(
        self,
        *,
        order_id: str | None,
        action: PaymentAction,
        status: str,
        request_data: object = None,
        response_data: object = None,
        error_message: str | None = None,
    ) -> None:
        """记录网关交互日志，写入失败不影响主流程"""
        try:
            self.db.add(
                PaymentLog(
                    order_id=order_id,
                    action=action.value,
                    request_data=_dump(request_data),
                    response_data=_dump(response_data),
                    status=status,
                    error_message=(error_message[:500] if error_message else None),
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("记录支付日志失败 order_id=%s action=%s", order_id, action.value)
