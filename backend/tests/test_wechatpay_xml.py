import pytest

from wxpay_orders.utils.wechatpay_xml import WireCodecError, decode_xml, encode_xml


def test_encode_wraps_text_in_cdata_and_keeps_digits_raw() -> None:
    xml = encode_xml({"return_code": "SUCCESS", "total_fee": 100})
    assert xml == "<xml><return_code><![CDATA[SUCCESS]]></return_code><total_fee>100</total_fee></xml>"


def test_encode_skips_none_values() -> None:
    assert encode_xml({"a": "1", "b": None}) == "<xml><a>1</a></xml>"


def test_roundtrip_special_characters() -> None:
    message = {
        "body": "测试商品 <A&B> \"quoted\" 'single'",
        "attach": "contains ]]> terminator",
        "detail": "line1\nline2\r\nline3\r",
        "spaced": "  padded  ",
        "empty": "",
        "total_fee": "0100",
    }
    assert decode_xml(encode_xml(message)) == message


def test_decode_returns_strings_only() -> None:
    data = decode_xml("<xml><total_fee>100</total_fee><return_code><![CDATA[SUCCESS]]></return_code></xml>")
    assert data == {"total_fee": "100", "return_code": "SUCCESS"}


def test_decode_accepts_bytes_with_declaration() -> None:
    body = '<?xml version="1.0" encoding="UTF-8"?><xml><body>商品</body></xml>'.encode("utf-8")
    assert decode_xml(body) == {"body": "商品"}


@pytest.mark.parametrize(
    "body",
    [
        "",
        "not xml",
        "<xml><a>1</a>",
        "<root><a>1</a></root>",
        "<xml><a><b>1</b></a></xml>",
        "<xml><a>1</a><a>2</a></xml>",
        '<!DOCTYPE xml [<!ENTITY x "boom">]><xml><a>&x;</a></xml>',
    ],
)
def test_decode_rejects_bad_input(body: str) -> None:
    with pytest.raises(WireCodecError):
        decode_xml(body)


def test_encode_rejects_invalid_tag_and_characters() -> None:
    with pytest.raises(WireCodecError):
        encode_xml({"bad tag": "1"})
    with pytest.raises(WireCodecError):
        encode_xml({"a": "bell\x07"})
