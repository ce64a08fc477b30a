"""支付订单生命周期：下单、查询对账、退款、订单列表"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..config import ORDER_ID_PREFIX_MAX_LEN
from ..models.payment import (
    CHANNEL_TRADE_TYPES,
    PaymentAction,
    PaymentChannel,
    PaymentOrder,
    PaymentStatus,
    TradeType,
)
from ..utils.wechatpay_messages import SUCCESS, OrderQueryResponse
from .client_payloads import build_app_payment_params, build_jsapi_payment_params
from .config_provider import ConfigProvider
from .order_store import OrderStore
from .payment_errors import (
    InvalidRefundAmountError,
    InvalidRequestError,
    OrderNotFoundError,
    OrderNotPayableError,
    PaymentError,
)
from .payment_transitions import TransitionOutcome, apply_payment_confirmation
from .prometheus_metrics import prometheus_metrics
from .wechatpay_client import UnifiedOrderFields, WechatPayGatewayClient

logger = logging.getLogger(__name__)

# 网关 body 字段上限 128 字节
_GATEWAY_BODY_MAX_CHARS = 40

_CLOSED_TRADE_STATES = {"CLOSED", "REVOKED"}
_FAILED_TRADE_STATES = {"PAYERROR"}


def generate_order_id(prefix: str = "WX") -> str:
    """生成商户订单号：前缀 + 时间 + 随机串，不超过 32 位"""
    if len(prefix) > ORDER_ID_PREFIX_MAX_LEN:
        raise ValueError(f"order id prefix longer than {ORDER_ID_PREFIX_MAX_LEN} characters: {prefix!r}")
    now = datetime.now().strftime("%Y%m%d%H%M%S")
    random_part = uuid.uuid4().hex[:12].upper()
    return f"{prefix}{now}{random_part}"


@dataclass(frozen=True)
class CreateOrderFields:
    user_id: str
    amount: int
    product_name: str
    product_id: str | None = None
    description: str | None = None
    client_ip: str | None = None
    openid: str | None = None


@dataclass(frozen=True)
class CreateOrderResult:
    order_id: str
    trade_type: TradeType
    prepay_id: str
    code_url: str | None = None
    payment_params: dict[str, str] | None = None


@dataclass(frozen=True)
class RefundResult:
    order_id: str
    refund_id: str
    refund_amount: int


@dataclass(frozen=True)
class OrderPage:
    items: list[PaymentOrder] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20


class OrderLifecycleManager:
    def __init__(
        self,
        store: OrderStore,
        config: ConfigProvider,
        gateway: WechatPayGatewayClient,
        *,
        order_id_prefix: str = "WX",
        currency: str = "CNY",
    ) -> None:
        self.store: OrderStore = store
        self.config: ConfigProvider = config
        self.gateway: WechatPayGatewayClient = gateway
        self.order_id_prefix: str = order_id_prefix
        self.currency: str = currency

    @staticmethod
    def _validate_create(channel: PaymentChannel | str, fields: CreateOrderFields) -> PaymentChannel:
        try:
            ch = PaymentChannel(channel)
        except ValueError as e:
            raise InvalidRequestError(f"不支持的支付渠道: {channel}") from e

        if isinstance(fields.amount, bool) or not isinstance(fields.amount, int) or fields.amount <= 0:
            raise InvalidRequestError("支付金额必须为正整数（单位：分）")
        if not str(fields.user_id or "").strip():
            raise InvalidRequestError("缺少用户ID")
        if not str(fields.product_name or "").strip():
            raise InvalidRequestError("缺少商品名称")
        if ch == PaymentChannel.MINIAPP and not str(fields.openid or "").strip():
            raise InvalidRequestError("小程序支付需要openid")
        return ch

    async def create_order(self, channel: PaymentChannel | str, fields: CreateOrderFields) -> CreateOrderResult:
        ch = self._validate_create(channel, fields)
        credentials = self.config.get_credentials(ch)
        trade_type = CHANNEL_TRADE_TYPES[ch]

        order = PaymentOrder(
            order_id=generate_order_id(self.order_id_prefix),
            user_id=str(fields.user_id).strip(),
            channel=ch.value,
            trade_type=trade_type.value,
            amount=int(fields.amount),
            currency=self.currency,
            status=PaymentStatus.PENDING.value,
            product_id=fields.product_id,
            product_name=str(fields.product_name).strip(),
            description=fields.description,
            client_ip=fields.client_ip,
            openid=fields.openid,
            notify_count=0,
        )
        order = await self.store.insert(order)
        order_id = order.order_id
        logger.info(
            "创建支付订单 order_id=%s user_id=%s channel=%s amount=%s",
            order_id,
            order.user_id,
            ch.value,
            order.amount,
        )

        request_fields = UnifiedOrderFields(
            order_id=order_id,
            body=order.product_name[:_GATEWAY_BODY_MAX_CHARS],
            total_fee=order.amount,
            client_ip=order.client_ip or "127.0.0.1",
            openid=order.openid,
            product_id=order.product_id,
            detail=order.description,
        )
        try:
            resp = await self.gateway.create_unified_order(credentials, trade_type, request_fields)
        except PaymentError as e:
            if e.order_id is None:
                e.order_id = order_id
            logger.warning("统一下单失败 order_id=%s kind=%s msg=%s", order_id, e.kind.value, e.message)
            await self.store.log_payment(
                order_id=order_id,
                action=PaymentAction.CREATE,
                status="failed",
                request_data={"trade_type": trade_type.value, "total_fee": order.amount},
                error_message=e.message,
            )
            prometheus_metrics.record_payment_event(action="create", channel=ch.value, result="failed")
            raise

        prepay_id = str(resp.prepay_id)
        _ = await self.store.set_prepay_id(order_id, prepay_id)
        await self.store.log_payment(
            order_id=order_id,
            action=PaymentAction.CREATE,
            status="success",
            request_data={"trade_type": trade_type.value, "total_fee": order.amount},
            response_data={"prepay_id": prepay_id, "code_url": resp.code_url},
        )
        prometheus_metrics.record_payment_event(action="create", channel=ch.value, result="success")

        if trade_type == TradeType.NATIVE:
            return CreateOrderResult(order_id=order_id, trade_type=trade_type, prepay_id=prepay_id, code_url=resp.code_url)
        if trade_type == TradeType.JSAPI:
            params = build_jsapi_payment_params(credentials, prepay_id)
        else:
            params = build_app_payment_params(credentials, prepay_id)
        return CreateOrderResult(order_id=order_id, trade_type=trade_type, prepay_id=prepay_id, payment_params=params)

    async def query_order(
        self,
        order_id: str | None = None,
        *,
        transaction_id: str | None = None,
    ) -> PaymentOrder:
        """查询订单，待支付订单会向网关查询并对账"""
        if order_id:
            order = await self.store.find_by_order_id(order_id)
        elif transaction_id:
            order = await self.store.find_by_transaction_id(transaction_id)
        else:
            raise InvalidRequestError("需要提供订单号或微信支付订单号")

        if order is None:
            raise OrderNotFoundError("订单不存在", order_id=order_id)

        if order.status != PaymentStatus.PENDING.value:
            return order

        credentials = self.config.get_credentials(order.channel)
        try:
            resp = await self.gateway.query_order(credentials, order.order_id)
        except PaymentError as e:
            if e.order_id is None:
                e.order_id = order.order_id
            await self.store.log_payment(
                order_id=order.order_id,
                action=PaymentAction.QUERY,
                status="failed",
                error_message=e.message,
            )
            prometheus_metrics.record_payment_event(action="query", channel=order.channel, result="failed")
            raise

        await self.store.log_payment(
            order_id=order.order_id,
            action=PaymentAction.QUERY,
            status="success",
            response_data={
                "trade_state": resp.trade_state,
                "transaction_id": resp.transaction_id,
                "total_fee": resp.total_fee,
            },
        )
        await self._reconcile(order, resp)

        refreshed = await self.store.find_by_order_id(order.order_id)
        return refreshed if refreshed is not None else order

    async def _reconcile(self, order: PaymentOrder, resp: OrderQueryResponse) -> None:
        trade_state = str(resp.trade_state or "")
        if trade_state == SUCCESS:
            result = await apply_payment_confirmation(self.store, resp.to_confirmation())
            prometheus_metrics.record_payment_event(
                action="query", channel=order.channel, result=result.outcome.value
            )
            if result.outcome == TransitionOutcome.AMOUNT_MISMATCH:
                logger.error("对账金额不一致，订单保持待支付 order_id=%s", order.order_id)
            return

        if trade_state in _CLOSED_TRADE_STATES:
            new_status = PaymentStatus.CANCELLED
        elif trade_state in _FAILED_TRADE_STATES:
            new_status = PaymentStatus.FAILED
        else:
            # NOTPAY / USERPAYING 等，保持待支付
            prometheus_metrics.record_payment_event(action="query", channel=order.channel, result="pending")
            return

        updated = await self.store.conditional_update_status(order.order_id, PaymentStatus.PENDING, new_status)
        if updated:
            logger.info(
                "对账更新订单状态 order_id=%s trade_state=%s status=%s",
                order.order_id,
                trade_state,
                new_status.value,
            )
        prometheus_metrics.record_payment_event(action="query", channel=order.channel, result=new_status.value)

    async def refund(
        self,
        order_id: str,
        *,
        refund_amount: int | None = None,
        reason: str = "",
    ) -> RefundResult:
        order = await self.store.find_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundError("订单不存在", order_id=order_id)

        if order.status == PaymentStatus.REFUNDED.value:
            return RefundResult(
                order_id=order.order_id,
                refund_id=str(order.refund_id or ""),
                refund_amount=int(order.refund_amount or order.amount),
            )
        if order.status != PaymentStatus.PAID.value:
            raise OrderNotPayableError("订单状态不允许退款", order_id=order_id)

        amount = int(order.amount) if refund_amount is None else refund_amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidRefundAmountError("退款金额必须为正整数（单位：分）", order_id=order_id)
        if amount > int(order.amount):
            raise InvalidRefundAmountError("退款金额不能大于订单金额", order_id=order_id)

        credentials = self.config.get_credentials(order.channel)
        refund_id = await self.gateway.refund(
            credentials,
            order_id=order.order_id,
            total_fee=int(order.amount),
            refund_fee=amount,
            reason=reason,
        )

        updated = await self.store.conditional_update_status(
            order.order_id,
            PaymentStatus.PAID,
            PaymentStatus.REFUNDED,
            {
                "refund_id": refund_id,
                "refund_amount": amount,
                "refunded_at": datetime.now(timezone.utc),
            },
        )
        if not updated:
            current = await self.store.find_by_order_id(order.order_id)
            if current is not None and current.status == PaymentStatus.REFUNDED.value:
                return RefundResult(
                    order_id=current.order_id,
                    refund_id=str(current.refund_id or refund_id),
                    refund_amount=int(current.refund_amount or amount),
                )
            raise OrderNotPayableError("订单状态不允许退款", order_id=order_id)

        await self.store.log_payment(
            order_id=order.order_id,
            action=PaymentAction.REFUND,
            status="success",
            request_data={"refund_fee": amount, "reason": reason},
            response_data={"refund_id": refund_id},
        )
        prometheus_metrics.record_payment_event(action="refund", channel=order.channel, result="success")
        logger.info("订单已退款 order_id=%s refund_id=%s amount=%s", order.order_id, refund_id, amount)
        return RefundResult(order_id=order.order_id, refund_id=refund_id, refund_amount=amount)

    async def list_orders(
        self,
        user_id: str,
        *,
        status: PaymentStatus | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> OrderPage:
        if page < 1 or page_size < 1 or page_size > 100:
            raise InvalidRequestError("分页参数错误")
        status_filter: PaymentStatus | None = None
        if status:
            try:
                status_filter = PaymentStatus(status)
            except ValueError as e:
                raise InvalidRequestError(f"无效的订单状态: {status}") from e

        items, total = await self.store.list_by_user(user_id, status=status_filter, page=page, page_size=page_size)
        return OrderPage(items=items, total=total, page=page, page_size=page_size)
