"""微信支付API路由"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response

from ..config import get_settings
from ..models.payment import PaymentStatus
from ..schemas.payment import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentOrderDetailResponse,
    PaymentOrderListResponse,
    PaymentOrderResponse,
    RefundRequest,
    RefundResponse,
)
from ..services.notify_processor import NotifyAck, NotifyProcessor
from ..services.order_lifecycle import CreateOrderFields, OrderLifecycleManager
from ..utils.deps import get_lifecycle_manager, get_notify_processor
from ..utils.request_ip import get_client_ip

router = APIRouter(prefix="/payment/wechat", tags=["微信支付"])

logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = "text/xml"


@router.post("/create", response_model=CreatePaymentResponse, summary="创建支付订单")
async def create_payment(
    data: CreatePaymentRequest,
    request: Request,
    manager: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
):
    settings = get_settings()
    result = await manager.create_order(
        data.channel,
        CreateOrderFields(
            user_id=data.user_id,
            amount=data.amount,
            product_name=data.product_name,
            product_id=data.product_id,
            description=data.description,
            client_ip=get_client_ip(request, settings.trusted_proxies),
            openid=data.openid,
        ),
    )
    return CreatePaymentResponse(
        order_id=result.order_id,
        trade_type=result.trade_type.value,
        prepay_id=result.prepay_id,
        code_url=result.code_url,
        payment_params=result.payment_params,
    )


@router.post("/notify", summary="微信支付结果通知")
async def wechat_notify(
    request: Request,
    processor: Annotated[NotifyProcessor, Depends(get_notify_processor)],
):
    body = await request.body()
    try:
        ack = await processor.process(body)
    except Exception:
        # 网关只认 XML 应答，未知异常也回 FAIL 让其重试
        logger.exception("处理微信支付回调异常")
        ack = NotifyAck.fail("处理失败")
    return Response(content=ack.to_wire(), media_type=XML_MEDIA_TYPE)


@router.get("/query/{order_id}", response_model=PaymentOrderDetailResponse, summary="查询订单（含网关对账）")
async def query_payment(
    order_id: str,
    manager: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
):
    order = await manager.query_order(order_id)
    return PaymentOrderDetailResponse(order=PaymentOrderResponse.model_validate(order))


@router.get("/transactions/{transaction_id}", response_model=PaymentOrderDetailResponse, summary="按微信支付订单号查询")
async def query_payment_by_transaction(
    transaction_id: str,
    manager: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
):
    order = await manager.query_order(transaction_id=transaction_id)
    return PaymentOrderDetailResponse(order=PaymentOrderResponse.model_validate(order))


@router.get("/orders", response_model=PaymentOrderListResponse, summary="用户订单列表")
async def list_payment_orders(
    manager: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
    user_id: Annotated[str, Query(min_length=1)],
    status_filter: Annotated[PaymentStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
):
    result = await manager.list_orders(user_id, status=status_filter, page=page, page_size=page_size)
    return PaymentOrderListResponse(
        orders=[PaymentOrderResponse.model_validate(o) for o in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.post("/refund", response_model=RefundResponse, summary="申请退款")
async def refund_payment(
    data: RefundRequest,
    manager: Annotated[OrderLifecycleManager, Depends(get_lifecycle_manager)],
):
    result = await manager.refund(data.order_id, refund_amount=data.refund_amount, reason=data.reason)
    return RefundResponse(order_id=result.order_id, refund_id=result.refund_id, refund_amount=result.refund_amount)
