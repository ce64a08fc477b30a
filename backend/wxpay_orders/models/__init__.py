"""数据模型"""
from .payment import PaymentOrder, PaymentLog, PaymentStatus, PaymentChannel, TradeType

__all__ = [
    "PaymentOrder",
    "PaymentLog",
    "PaymentStatus",
    "PaymentChannel",
    "TradeType",
]
