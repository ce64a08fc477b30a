"""支付业务异常

接口层只根据 ``kind`` 决定响应状态码，``message`` 仅用于展示。
"""
from __future__ import annotations

import enum


class PaymentErrorKind(str, enum.Enum):
    CONFIGURATION = "configuration"
    GATEWAY_PROTOCOL = "gateway_protocol"
    GATEWAY_NETWORK = "gateway_network"
    SIGNATURE_VERIFICATION = "signature_verification"
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_NOT_PAYABLE = "order_not_payable"
    INVALID_REFUND_AMOUNT = "invalid_refund_amount"
    INVALID_REQUEST = "invalid_request"


class PaymentError(Exception):
    kind: PaymentErrorKind = PaymentErrorKind.INVALID_REQUEST

    def __init__(self, message: str, *, order_id: str | None = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.order_id: str | None = order_id


class ConfigurationError(PaymentError):
    """渠道凭证缺失"""
    kind = PaymentErrorKind.CONFIGURATION


class GatewayProtocolError(PaymentError):
    """网关返回 return_code/result_code 非 SUCCESS，或报文无法解析"""
    kind = PaymentErrorKind.GATEWAY_PROTOCOL

    def __init__(self, message: str, *, order_id: str | None = None, err_code: str | None = None) -> None:
        super().__init__(message, order_id=order_id)
        self.err_code: str | None = err_code


class GatewayNetworkError(PaymentError):
    """网关不可达或超时"""
    kind = PaymentErrorKind.GATEWAY_NETWORK


class SignatureVerificationError(PaymentError):
    kind = PaymentErrorKind.SIGNATURE_VERIFICATION


class OrderNotFoundError(PaymentError):
    kind = PaymentErrorKind.ORDER_NOT_FOUND


class OrderNotPayableError(PaymentError):
    """订单状态不允许当前操作"""
    kind = PaymentErrorKind.ORDER_NOT_PAYABLE


class InvalidRefundAmountError(PaymentError):
    kind = PaymentErrorKind.INVALID_REFUND_AMOUNT


class InvalidRequestError(PaymentError):
    kind = PaymentErrorKind.INVALID_REQUEST
