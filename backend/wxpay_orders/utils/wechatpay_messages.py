"""微信支付 v2 网关报文的类型化视图

XML 解码后的字段一律是字符串，这里按接口逐个字段校验后再交给业务层使用。
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

SUCCESS = "SUCCESS"
FAIL = "FAIL"

# 微信支付服务器时间为北京时间
BEIJING_TZ = timezone(timedelta(hours=8), name="Asia/Shanghai")

WECHAT_ERROR_MESSAGES: dict[str, str] = {
    "NOAUTH": "商户无此接口权限",
    "NOTENOUGH": "余额不足",
    "ORDERPAID": "商户订单已支付",
    "ORDERCLOSED": "订单已关闭",
    "ORDERNOTEXIST": "此交易订单号不存在",
    "SYSTEMERROR": "系统错误",
    "APPID_NOT_EXIST": "APPID不存在",
    "MCHID_NOT_EXIST": "商户号不存在",
    "APPID_MCHID_NOT_MATCH": "appid和mch_id不匹配",
    "LACK_PARAMS": "缺少参数",
    "OUT_TRADE_NO_USED": "商户订单号重复",
    "SIGNERROR": "签名错误",
    "XML_FORMAT_ERROR": "XML格式错误",
    "REQUIRE_POST_METHOD": "请使用POST方法",
    "POST_DATA_EMPTY": "POST数据为空",
    "NOT_UTF8": "编码格式错误",
}


class WireMessageError(ValueError):
    pass


def get_wechat_error_message(err_code: str) -> str:
    return WECHAT_ERROR_MESSAGES.get(err_code, f"未知错误: {err_code}")


def parse_gateway_time(value: str | None) -> datetime | None:
    """解析 yyyyMMddHHmmss 格式的网关时间，格式不对返回 None"""
    s = str(value or "").strip()
    if len(s) != 14 or not s.isdigit():
        return None
    try:
        dt = datetime.strptime(s, "%Y%m%d%H%M%S")
    except ValueError:
        return None
    return dt.replace(tzinfo=BEIJING_TZ)


def _opt(data: Mapping[str, str], key: str) -> str | None:
    v = data.get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _required(data: Mapping[str, str], key: str) -> str:
    v = _opt(data, key)
    if v is None:
        raise WireMessageError(f"missing field: {key}")
    return v


def _fee(data: Mapping[str, str], key: str, *, required: bool) -> int | None:
    v = _opt(data, key)
    if v is None:
        if required:
            raise WireMessageError(f"missing field: {key}")
        return None
    if not v.isdigit():
        raise WireMessageError(f"invalid integer field {key}: {v!r}")
    return int(v)


@dataclass(frozen=True)
class PaymentConfirmation:
    """支付成功确认：回调推送与主动查询共用"""
    out_trade_no: str
    transaction_id: str
    total_fee: int
    payment_time: datetime | None


@dataclass(frozen=True)
class GatewayResult:
    return_code: str
    return_msg: str | None
    result_code: str | None
    err_code: str | None
    err_code_des: str | None

    @property
    def is_success(self) -> bool:
        return self.return_code == SUCCESS and self.result_code == SUCCESS

    def error_message(self) -> str:
        if self.err_code_des:
            return self.err_code_des
        if self.err_code:
            return get_wechat_error_message(self.err_code)
        return self.return_msg or "微信支付网关返回失败"

    @classmethod
    def _codes(cls, data: Mapping[str, str]) -> dict[str, str | None]:
        return {
            "return_code": _required(data, "return_code"),
            "return_msg": _opt(data, "return_msg"),
            "result_code": _opt(data, "result_code"),
            "err_code": _opt(data, "err_code"),
            "err_code_des": _opt(data, "err_code_des"),
        }


@dataclass(frozen=True)
class UnifiedOrderResponse(GatewayResult):
    prepay_id: str | None = None
    code_url: str | None = None
    trade_type: str | None = None

    @classmethod
    def from_wire(cls, data: Mapping[str, str]) -> "UnifiedOrderResponse":
        codes = cls._codes(data)
        resp = cls(
            **codes,  # type: ignore[arg-type]
            prepay_id=_opt(data, "prepay_id"),
            code_url=_opt(data, "code_url"),
            trade_type=_opt(data, "trade_type"),
        )
        if resp.is_success and not resp.prepay_id:
            raise WireMessageError("missing field: prepay_id")
        return resp


@dataclass(frozen=True)
class OrderQueryResponse(GatewayResult):
    trade_state: str | None = None
    trade_state_desc: str | None = None
    out_trade_no: str | None = None
    transaction_id: str | None = None
    total_fee: int | None = None
    time_end: str | None = None

    @classmethod
    def from_wire(cls, data: Mapping[str, str]) -> "OrderQueryResponse":
        codes = cls._codes(data)
        trade_state = _opt(data, "trade_state")
        paid = trade_state == SUCCESS
        resp = cls(
            **codes,  # type: ignore[arg-type]
            trade_state=trade_state,
            trade_state_desc=_opt(data, "trade_state_desc"),
            out_trade_no=_required(data, "out_trade_no") if paid else _opt(data, "out_trade_no"),
            transaction_id=_required(data, "transaction_id") if paid else _opt(data, "transaction_id"),
            total_fee=_fee(data, "total_fee", required=paid),
            time_end=_opt(data, "time_end"),
        )
        if resp.is_success and not trade_state:
            raise WireMessageError("missing field: trade_state")
        return resp

    def to_confirmation(self) -> PaymentConfirmation:
        if self.trade_state != SUCCESS or not self.out_trade_no or not self.transaction_id or self.total_fee is None:
            raise WireMessageError("order query result is not a successful payment")
        return PaymentConfirmation(
            out_trade_no=self.out_trade_no,
            transaction_id=self.transaction_id,
            total_fee=self.total_fee,
            payment_time=parse_gateway_time(self.time_end),
        )


@dataclass(frozen=True)
class NotifyPayload(GatewayResult):
    appid: str | None = None
    mch_id: str | None = None
    trade_type: str | None = None
    openid: str | None = None
    out_trade_no: str | None = None
    transaction_id: str | None = None
    total_fee: int | None = None
    time_end: str | None = None

    @classmethod
    def from_wire(cls, data: Mapping[str, str]) -> "NotifyPayload":
        codes = cls._codes(data)
        paid = codes["return_code"] == SUCCESS and codes["result_code"] == SUCCESS
        return cls(
            **codes,  # type: ignore[arg-type]
            appid=_opt(data, "appid"),
            mch_id=_opt(data, "mch_id"),
            trade_type=_opt(data, "trade_type"),
            openid=_opt(data, "openid"),
            out_trade_no=_required(data, "out_trade_no") if paid else _opt(data, "out_trade_no"),
            transaction_id=_required(data, "transaction_id") if paid else _opt(data, "transaction_id"),
            total_fee=_fee(data, "total_fee", required=paid),
            time_end=_opt(data, "time_end"),
        )

    def to_confirmation(self) -> PaymentConfirmation:
        if not self.is_success or not self.out_trade_no or not self.transaction_id or self.total_fee is None:
            raise WireMessageError("notify payload is not a successful payment")
        return PaymentConfirmation(
            out_trade_no=self.out_trade_no,
            transaction_id=self.transaction_id,
            total_fee=self.total_fee,
            payment_time=parse_gateway_time(self.time_end),
        )
