"""微信支付结果回调处理

处理顺序：解码 -> 验签 -> 校验返回码 -> 查单 -> 幂等迁移。
验签或返回码校验不通过时不修改任何订单数据。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models.payment import PaymentAction, PaymentChannel, channel_for_trade_type
from ..utils.wechatpay_messages import FAIL, SUCCESS, NotifyPayload, WireMessageError
from ..utils.wechatpay_sign import verify_gateway_message
from ..utils.wechatpay_xml import WireCodecError, decode_xml, encode_xml
from .config_provider import ConfigProvider
from .order_store import OrderStore
from .payment_errors import ConfigurationError, SignatureVerificationError
from .payment_transitions import TransitionOutcome, apply_payment_confirmation
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


def _require_signature(data: dict[str, str], merchant_key: str, order_id: str | None) -> None:
    if not verify_gateway_message(data, merchant_key):
        raise SignatureVerificationError("签名验证失败", order_id=order_id)


@dataclass(frozen=True)
class NotifyAck:
    return_code: str
    return_msg: str

    @property
    def ok(self) -> bool:
        return self.return_code == SUCCESS

    def to_wire(self) -> str:
        return encode_xml({"return_code": self.return_code, "return_msg": self.return_msg})

    @classmethod
    def success(cls) -> "NotifyAck":
        return cls(SUCCESS, "OK")

    @classmethod
    def fail(cls, msg: str) -> "NotifyAck":
        return cls(FAIL, msg)


class NotifyProcessor:
    def __init__(self, store: OrderStore, config: ConfigProvider) -> None:
        self.store: OrderStore = store
        self.config: ConfigProvider = config

    def _resolve_channel(self, data: dict[str, str]) -> PaymentChannel:
        ch = channel_for_trade_type(data.get("trade_type"))
        if ch is not None:
            return ch
        finder = getattr(self.config, "find_channel_by_app_id", None)
        if callable(finder):
            found = finder(data.get("appid"))
            if isinstance(found, PaymentChannel):
                return found
        return PaymentChannel.WEB

    async def process(self, body: str | bytes) -> NotifyAck:
        ack = await self._process(body)
        prometheus_metrics.record_payment_event(
            action="notify",
            channel=None,
            result="success" if ack.ok else "failed",
        )
        return ack

    async def _process(self, body: str | bytes) -> NotifyAck:
        raw = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else str(body)
        try:
            data = decode_xml(body)
        except WireCodecError as e:
            logger.warning("支付回调报文解析失败: %s", e)
            return NotifyAck.fail("报文格式错误")

        out_trade_no = data.get("out_trade_no")
        channel = self._resolve_channel(data)
        try:
            credentials = self.config.get_credentials(channel)
        except ConfigurationError as e:
            logger.error("支付回调无法获取商户配置 channel=%s: %s", channel.value, e.message)
            return NotifyAck.fail("商户配置错误")

        try:
            _require_signature(data, credentials.merchant_key, out_trade_no)
        except SignatureVerificationError as e:
            logger.warning("支付回调验签失败 order_id=%s", out_trade_no)
            await self.store.log_payment(
                order_id=out_trade_no,
                action=PaymentAction.NOTIFY,
                status="failed",
                request_data=raw,
                error_message=e.message,
            )
            return NotifyAck.fail(e.message)

        if data.get("return_code") != SUCCESS or data.get("result_code") != SUCCESS:
            logger.warning(
                "支付回调结果非成功 order_id=%s return_code=%s result_code=%s",
                out_trade_no,
                data.get("return_code"),
                data.get("result_code"),
            )
            return NotifyAck.fail("支付未成功")

        try:
            payload = NotifyPayload.from_wire(data)
            confirmation = payload.to_confirmation()
        except WireMessageError as e:
            logger.warning("支付回调字段错误 order_id=%s: %s", out_trade_no, e)
            return NotifyAck.fail("报文字段错误")

        result = await apply_payment_confirmation(self.store, confirmation, callback_data=raw)

        if result.outcome == TransitionOutcome.ALREADY_PAID:
            _ = await self.store.increment_notify_count(confirmation.out_trade_no)
            logger.info("重复支付回调 order_id=%s", confirmation.out_trade_no)
            return NotifyAck.success()

        if result.outcome == TransitionOutcome.APPLIED:
            await self.store.log_payment(
                order_id=confirmation.out_trade_no,
                action=PaymentAction.NOTIFY,
                status="success",
                request_data=raw,
                response_data={"transaction_id": confirmation.transaction_id},
            )
            return NotifyAck.success()

        messages = {
            TransitionOutcome.NOT_FOUND: "订单不存在",
            TransitionOutcome.AMOUNT_MISMATCH: "金额不一致",
            TransitionOutcome.INVALID_STATE: "订单状态错误",
        }
        msg = messages.get(result.outcome, "处理失败")
        await self.store.log_payment(
            order_id=confirmation.out_trade_no,
            action=PaymentAction.NOTIFY,
            status="failed",
            request_data=raw,
            error_message=msg,
        )
        return NotifyAck.fail(msg)
