"""微信支付 v2 网关客户端

每次调用：签名 -> XML 编码 -> POST -> XML 解码 -> 应答验签 -> 类型化解析。
调用有超时上限，不做自动重试。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..models.payment import TradeType
from ..utils.wechatpay_messages import (
    OrderQueryResponse,
    UnifiedOrderResponse,
    WireMessageError,
)
from ..utils.wechatpay_sign import generate_nonce_str, sign_gateway_request, verify_gateway_message
from ..utils.wechatpay_xml import WireCodecError, decode_xml, encode_xml
from .config_provider import GatewayCredentials
from .payment_errors import GatewayNetworkError, GatewayProtocolError

logger = logging.getLogger(__name__)

UNIFIED_ORDER_PATH = "/pay/unifiedorder"
ORDER_QUERY_PATH = "/pay/orderquery"
REFUND_PATH = "/secapi/pay/refund"


@dataclass(frozen=True)
class UnifiedOrderFields:
    order_id: str
    body: str
    total_fee: int
    client_ip: str
    openid: str | None = None
    product_id: str | None = None
    detail: str | None = None


class WechatPayGatewayClient:
    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url: str = str(base_url).rstrip("/")
        self.timeout_seconds: float = float(timeout_seconds)
        self._transport: httpx.AsyncBaseTransport | None = transport

    async def _post(self, path: str, params: dict[str, str], credentials: GatewayCredentials) -> dict[str, str]:
        payload = dict(params)
        payload["sign"] = sign_gateway_request(payload, credentials.merchant_key)
        body = encode_xml(payload)
        url = f"{self.base_url}{path}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                res = await client.post(
                    url,
                    content=body.encode("utf-8"),
                    headers={"Content-Type": "text/xml; charset=utf-8"},
                )
        except httpx.TimeoutException as e:
            logger.warning("微信支付网关超时 path=%s timeout=%ss", path, self.timeout_seconds)
            raise GatewayNetworkError(f"微信支付网关请求超时: {path}") from e
        except httpx.HTTPError as e:
            logger.warning("微信支付网关请求失败 path=%s err=%s", path, e)
            raise GatewayNetworkError(f"微信支付网关请求失败: {e}") from e

        if res.status_code != 200:
            logger.warning("微信支付网关HTTP状态异常 path=%s status=%s", path, res.status_code)
            raise GatewayNetworkError(f"微信支付网关HTTP状态异常: {res.status_code}")

        try:
            data = decode_xml(res.content)
        except WireCodecError as e:
            raise GatewayProtocolError(f"微信支付网关应答格式错误: {e}") from e

        # 失败应答通常不带签名
        if data.get("sign") and not verify_gateway_message(data, credentials.merchant_key):
            logger.error("微信支付网关应答验签失败 path=%s", path)
            raise GatewayProtocolError("微信支付网关应答签名校验失败")
        return data

    async def create_unified_order(
        self,
        credentials: GatewayCredentials,
        trade_type: TradeType,
        order: UnifiedOrderFields,
    ) -> UnifiedOrderResponse:
        params: dict[str, str] = {
            "appid": credentials.app_id,
            "mch_id": credentials.merchant_id,
            "nonce_str": generate_nonce_str(),
            "body": order.body,
            "out_trade_no": order.order_id,
            "total_fee": str(int(order.total_fee)),
            "spbill_create_ip": order.client_ip,
            "notify_url": credentials.notify_url,
            "trade_type": trade_type.value,
        }
        if trade_type == TradeType.JSAPI:
            params["openid"] = str(order.openid or "")
        if order.product_id:
            params["product_id"] = order.product_id
        if order.detail:
            params["detail"] = order.detail

        data = await self._post(UNIFIED_ORDER_PATH, params, credentials)
        try:
            resp = UnifiedOrderResponse.from_wire(data)
        except WireMessageError as e:
            raise GatewayProtocolError(f"统一下单应答字段错误: {e}", order_id=order.order_id) from e

        if not resp.is_success:
            logger.warning(
                "统一下单失败 order_id=%s return_code=%s result_code=%s err_code=%s",
                order.order_id,
                resp.return_code,
                resp.result_code,
                resp.err_code,
            )
            raise GatewayProtocolError(resp.error_message(), order_id=order.order_id, err_code=resp.err_code)
        return resp

    async def query_order(self, credentials: GatewayCredentials, order_id: str) -> OrderQueryResponse:
        params: dict[str, str] = {
            "appid": credentials.app_id,
            "mch_id": credentials.merchant_id,
            "out_trade_no": order_id,
            "nonce_str": generate_nonce_str(),
        }
        data = await self._post(ORDER_QUERY_PATH, params, credentials)
        try:
            resp = OrderQueryResponse.from_wire(data)
        except WireMessageError as e:
            raise GatewayProtocolError(f"订单查询应答字段错误: {e}", order_id=order_id) from e

        if not resp.is_success:
            logger.warning("订单查询失败 order_id=%s err_code=%s", order_id, resp.err_code)
            raise GatewayProtocolError(resp.error_message(), order_id=order_id, err_code=resp.err_code)
        return resp

    async def refund(
        self,
        credentials: GatewayCredentials,
        *,
        order_id: str,
        total_fee: int,
        refund_fee: int,
        reason: str = "",
    ) -> str:
        # TODO: 接入 REFUND_PATH，需要商户 API 证书做双向 TLS
        logger.info(
            "退款（本地记账）order_id=%s mch_id=%s total_fee=%s refund_fee=%s reason=%s",
            order_id,
            credentials.merchant_id,
            total_fee,
            refund_fee,
            reason,
        )
        return f"REFUND_{order_id}"
