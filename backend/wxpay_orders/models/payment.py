"""支付订单模型"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Integer, String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from ..database import Base
import enum


class PaymentStatus(str, enum.Enum):
    """支付状态"""
    PENDING = "pending"  # 待支付
    PAID = "paid"  # 已支付
    CANCELLED = "cancelled"  # 已取消
    REFUNDED = "refunded"  # 已退款
    FAILED = "failed"  # 支付失败


class PaymentChannel(str, enum.Enum):
    """下单渠道"""
    WEB = "web"  # PC 网页扫码
    MINIAPP = "miniapp"  # 小程序
    MOBILE = "mobile"  # 移动 App


class TradeType(str, enum.Enum):
    """微信支付交易类型"""
    NATIVE = "NATIVE"
    JSAPI = "JSAPI"
    APP = "APP"


CHANNEL_TRADE_TYPES: dict[PaymentChannel, TradeType] = {
    PaymentChannel.WEB: TradeType.NATIVE,
    PaymentChannel.MINIAPP: TradeType.JSAPI,
    PaymentChannel.MOBILE: TradeType.APP,
}

# 合法状态迁移，未列出的迁移一律拒绝
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
}


def can_transition(current: PaymentStatus | str, target: PaymentStatus | str) -> bool:
    try:
        cur = PaymentStatus(current)
        nxt = PaymentStatus(target)
    except ValueError:
        return False
    return nxt in ALLOWED_TRANSITIONS[cur]


def channel_for_trade_type(trade_type: str | None) -> PaymentChannel | None:
    for channel, tt in CHANNEL_TRADE_TYPES.items():
        if tt.value == str(trade_type or "").strip().upper():
            return channel
    return None


class PaymentOrder(Base):
    """支付订单表"""
    __tablename__: str = "payment_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)  # 商户订单号 out_trade_no
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # web/miniapp/mobile
    trade_type: Mapped[str] = mapped_column(String(20), nullable=False)  # NATIVE/JSAPI/APP
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # 订单金额（分）
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="CNY")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    # 商品信息
    product_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    product_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    openid: Mapped[str | None] = mapped_column(String(128), nullable=True)  # JSAPI 付款人

    # 支付信息
    prepay_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)  # 微信支付订单号
    payment_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    callback_data: Mapped[str | None] = mapped_column(Text, nullable=True)  # 最近一次验签通过的回调原文
    notify_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # 退款信息
    refund_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # 时间戳
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PaymentAction(str, enum.Enum):
    CREATE = "create"
    NOTIFY = "notify"
    QUERY = "query"
    REFUND = "refund"


class PaymentLog(Base):
    """支付网关交互日志"""
    __tablename__: str = "payment_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    request_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success/failed
    error_message: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
