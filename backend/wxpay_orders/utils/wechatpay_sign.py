from __future__ import annotations

import hashlib
import hmac
import time
import uuid
from collections.abc import Mapping

# 小程序 wx.requestPayment 的签名字段（驼峰）
JSAPI_PAY_SIGN_FIELDS: frozenset[str] = frozenset({"appId", "timeStamp", "nonceStr", "package", "signType"})

# App 端调起支付的签名字段（全小写）
APP_PAY_SIGN_FIELDS: frozenset[str] = frozenset({"appid", "partnerid", "prepayid", "package", "noncestr", "timestamp"})


def build_sign_string(params: Mapping[str, object]) -> str:
    items: list[tuple[str, str]] = []
    for k, v in params.items():
        if k == "sign":
            continue
        if v is None:
            continue
        s = str(v)
        if s == "":
            continue
        items.append((str(k), s))
    items.sort(key=lambda x: x[0])
    return "&".join([f"{k}={v}" for k, v in items])


def wechat_sign_md5(params: Mapping[str, object], key: str) -> str:
    sign_content = build_sign_string(params)
    raw = f"{sign_content}&key={key}".encode("utf-8")
    return hashlib.md5(raw).hexdigest().upper()


def wechat_verify_md5(params: Mapping[str, object], signature: str | None, key: str) -> bool:
    sign = str(signature or "").strip().upper()
    if not sign:
        return False
    expected = wechat_sign_md5(params, key)
    return hmac.compare_digest(expected, sign)


def sign_gateway_request(params: Mapping[str, object], key: str) -> str:
    """统一下单、查询等接口的请求签名，参与签名的是全部请求参数"""
    return wechat_sign_md5(params, key)


def verify_gateway_message(data: Mapping[str, str], key: str) -> bool:
    """校验网关应答或支付回调，除 sign 外的全部字段参与签名"""
    return wechat_verify_md5(data, data.get("sign"), key)


def _sign_exact_fields(fields: Mapping[str, object], allowed: frozenset[str], key: str) -> str:
    names = set(fields.keys())
    if names != allowed:
        missing = sorted(allowed - names)
        extra = sorted(names - allowed)
        raise ValueError(f"invalid pay sign fields: missing={missing} extra={extra}")
    return wechat_sign_md5(fields, key)


def sign_jsapi_invocation(fields: Mapping[str, object], key: str) -> str:
    return _sign_exact_fields(fields, JSAPI_PAY_SIGN_FIELDS, key)


def sign_app_invocation(fields: Mapping[str, object], key: str) -> str:
    return _sign_exact_fields(fields, APP_PAY_SIGN_FIELDS, key)


def generate_nonce_str() -> str:
    return uuid.uuid4().hex


def get_timestamp() -> str:
    return str(int(time.time()))
