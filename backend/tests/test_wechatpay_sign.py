import hashlib

import pytest

from wxpay_orders.utils.wechatpay_sign import (
    build_sign_string,
    generate_nonce_str,
    get_timestamp,
    sign_app_invocation,
    sign_gateway_request,
    sign_jsapi_invocation,
    verify_gateway_message,
    wechat_sign_md5,
    wechat_verify_md5,
)

KEY = "192006250b4c09247ec02edce69f6a2d"


def test_build_sign_string_sorts_and_drops_sign_and_empty() -> None:
    params = {"b": "2", "a": "1", "sign": "X", "c": "", "d": None}
    assert build_sign_string(params) == "a=1&b=2"


def test_sign_matches_official_example() -> None:
    # 微信支付签名算法文档中的示例参数
    params = {
        "appid": "wxd930ea5d5a258f4f",
        "mch_id": "10000100",
        "device_info": "1000",
        "body": "test",
        "nonce_str": "ibuaiVcKdpRxkhJA",
    }
    assert wechat_sign_md5(params, KEY) == "9A0A8659F005D6984697E2CA0A9CF3B7"


def test_sign_is_uppercase_md5_of_string_with_key() -> None:
    params = {"b": "2", "a": "1"}
    expected = hashlib.md5(f"a=1&b=2&key={KEY}".encode("utf-8")).hexdigest().upper()
    assert wechat_sign_md5(params, KEY) == expected


def test_sign_ignores_existing_sign_and_empty_values() -> None:
    base = {"a": "1", "b": "2"}
    noisy = {"a": "1", "b": "2", "sign": "OLD", "c": ""}
    assert wechat_sign_md5(base, KEY) == wechat_sign_md5(noisy, KEY)


def test_verify_roundtrip_and_case_insensitive() -> None:
    params = {"out_trade_no": "WX1", "total_fee": "100"}
    sig = sign_gateway_request(params, KEY)
    assert wechat_verify_md5(params, sig, KEY) is True
    assert wechat_verify_md5(params, sig.lower(), KEY) is True
    assert wechat_verify_md5(params, sig, "x" * 32) is False
    assert wechat_verify_md5(params, "", KEY) is False
    assert wechat_verify_md5(params, None, KEY) is False


def test_verify_gateway_message_detects_tampering() -> None:
    data = {"return_code": "SUCCESS", "total_fee": "100"}
    data["sign"] = wechat_sign_md5(data, KEY)
    assert verify_gateway_message(data, KEY) is True

    tampered = dict(data)
    tampered["total_fee"] = "1"
    assert verify_gateway_message(tampered, KEY) is False

    missing = {k: v for k, v in data.items() if k != "sign"}
    assert verify_gateway_message(missing, KEY) is False


def test_jsapi_invocation_requires_exact_fields() -> None:
    fields = {"appId": "wx1", "timeStamp": "1700000000", "nonceStr": "n", "package": "prepay_id=p", "signType": "MD5"}
    assert sign_jsapi_invocation(fields, KEY) == wechat_sign_md5(fields, KEY)

    with pytest.raises(ValueError):
        sign_jsapi_invocation({**fields, "extra": "1"}, KEY)
    with pytest.raises(ValueError):
        sign_jsapi_invocation({k: v for k, v in fields.items() if k != "signType"}, KEY)


def test_app_invocation_uses_lowercase_fields() -> None:
    fields = {
        "appid": "wx1",
        "partnerid": "1900000109",
        "prepayid": "p",
        "package": "Sign=WXPay",
        "noncestr": "n",
        "timestamp": "1700000000",
    }
    assert sign_app_invocation(fields, KEY) == wechat_sign_md5(fields, KEY)

    with pytest.raises(ValueError):
        sign_app_invocation({"appId": "wx1", **{k: v for k, v in fields.items() if k != "appid"}}, KEY)


def test_nonce_and_timestamp() -> None:
    a = generate_nonce_str()
    b = generate_nonce_str()
    assert len(a) == 32 and a != b
    assert get_timestamp().isdigit()
