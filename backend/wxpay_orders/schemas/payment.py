from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..models.payment import PaymentChannel


class CreatePaymentRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    channel: PaymentChannel
    amount: int = Field(..., gt=0, strict=True, description="支付金额（分）")
    product_name: str = Field(..., min_length=1, max_length=128)
    product_id: str | None = Field(default=None, max_length=64)
    description: str | None = None
    openid: str | None = Field(default=None, max_length=128, description="小程序渠道必填")


class CreatePaymentResponse(BaseModel):
    success: bool = True
    order_id: str
    trade_type: str
    prepay_id: str
    code_url: str | None = None
    payment_params: dict[str, str] | None = None


class PaymentOrderResponse(BaseModel):
    order_id: str
    user_id: str
    channel: str
    trade_type: str
    amount: int
    currency: str
    status: str
    product_id: str | None = None
    product_name: str
    description: str | None = None
    prepay_id: str | None = None
    transaction_id: str | None = None
    payment_time: datetime | None = None
    notify_count: int = 0
    refund_id: str | None = None
    refund_amount: int | None = None
    refunded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentOrderDetailResponse(BaseModel):
    success: bool = True
    order: PaymentOrderResponse


class PaymentOrderListResponse(BaseModel):
    success: bool = True
    orders: list[PaymentOrderResponse]
    total: int
    page: int
    page_size: int


class RefundRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=32)
    refund_amount: int | None = Field(default=None, gt=0, strict=True, description="退款金额（分），默认全额")
    reason: str = Field(default="", max_length=80)


class RefundResponse(BaseModel):
    success: bool = True
    order_id: str
    refund_id: str
    refund_amount: int
