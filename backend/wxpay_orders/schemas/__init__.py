"""Pydantic模式"""
from .payment import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentOrderResponse,
    PaymentOrderDetailResponse,
    PaymentOrderListResponse,
    RefundRequest,
    RefundResponse,
)

__all__ = [
    "CreatePaymentRequest",
    "CreatePaymentResponse",
    "PaymentOrderResponse",
    "PaymentOrderDetailResponse",
    "PaymentOrderListResponse",
    "RefundRequest",
    "RefundResponse",
]
