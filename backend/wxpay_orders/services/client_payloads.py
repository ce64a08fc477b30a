from __future__ import annotations

from ..utils.wechatpay_sign import (
    generate_nonce_str,
    get_timestamp,
    sign_app_invocation,
    sign_jsapi_invocation,
)
from .config_provider import GatewayCredentials


def build_jsapi_payment_params(
    credentials: GatewayCredentials,
    prepay_id: str,
    *,
    timestamp: str | None = None,
    nonce_str: str | None = None,
) -> dict[str, str]:
    """小程序 wx.requestPayment 参数"""
    fields = {
        "appId": credentials.app_id,
        "timeStamp": timestamp or get_timestamp(),
        "nonceStr": nonce_str or generate_nonce_str(),
        "package": f"prepay_id={prepay_id}",
        "signType": "MD5",
    }
    return {**fields, "paySign": sign_jsapi_invocation(fields, credentials.merchant_key)}


def build_app_payment_params(
    credentials: GatewayCredentials,
    prepay_id: str,
    *,
    timestamp: str | None = None,
    nonce_str: str | None = None,
) -> dict[str, str]:
    """App 端调起支付参数，签名使用全小写字段名"""
    ts = timestamp or get_timestamp()
    nonce = nonce_str or generate_nonce_str()
    sign_fields = {
        "appid": credentials.app_id,
        "partnerid": credentials.merchant_id,
        "prepayid": prepay_id,
        "package": "Sign=WXPay",
        "noncestr": nonce,
        "timestamp": ts,
    }
    return {
        "appId": credentials.app_id,
        "partnerId": credentials.merchant_id,
        "prepayId": prepay_id,
        "package": "Sign=WXPay",
        "nonceStr": nonce,
        "timeStamp": ts,
        "signType": "MD5",
        "paySign": sign_app_invocation(sign_fields, credentials.merchant_key),
    }
