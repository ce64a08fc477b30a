"""微信支付订单服务 - FastAPI主应用"""
from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import init_db
from .routers import api_router
from .middleware import ErrorLoggingMiddleware, MetricsMiddleware, RequestIdMiddleware, RequestLoggingMiddleware
from .services.config_provider import SettingsConfigProvider
from .services.payment_errors import PaymentError, PaymentErrorKind
from .services.prometheus_metrics import prometheus_metrics
from .services.wechatpay_client import WechatPayGatewayClient
from .utils.logging_config import setup_logging

settings = get_settings()

logger = logging.getLogger(__name__)

PAYMENT_ERROR_STATUS: dict[PaymentErrorKind, int] = {
    PaymentErrorKind.INVALID_REQUEST: 400,
    PaymentErrorKind.INVALID_REFUND_AMOUNT: 400,
    PaymentErrorKind.SIGNATURE_VERIFICATION: 400,
    PaymentErrorKind.ORDER_NOT_FOUND: 404,
    PaymentErrorKind.ORDER_NOT_PAYABLE: 409,
    PaymentErrorKind.GATEWAY_PROTOCOL: 502,
    PaymentErrorKind.CONFIGURATION: 503,
    PaymentErrorKind.GATEWAY_NETWORK: 504,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    _ = app
    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir)
    await init_db()
    logger.info("数据库初始化完成")

    yield

    logger.info("应用关闭")


app = FastAPI(
    title=settings.app_name,
    description="""
# 微信支付订单服务 API

基于微信支付 v2 接口（XML + MD5 签名）的订单生命周期服务。

## 功能

- **统一下单** - web 扫码（NATIVE）、小程序（JSAPI）、App（APP）
- **支付通知** - 验签后幂等更新订单状态
- **订单查询** - 待支付订单主动向网关查询并对账
- **退款** - 本地记账

## 错误码说明

| 状态码 | 说明 |
|--------|------|
| 400 | 请求参数错误 / 退款金额错误 |
| 404 | 订单不存在 |
| 409 | 订单状态不允许该操作 |
| 502 | 微信支付网关返回失败 |
| 503 | 支付配置不完整 |
| 504 | 微信支付网关不可达 |
""",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "微信支付", "description": "下单、回调、查询、退款"},
    ],
)

# 商户配置与网关客户端进程内只构造一次，由依赖注入取用
app.state.config_provider = SettingsConfigProvider(settings)
app.state.gateway_client = WechatPayGatewayClient(
    base_url=settings.wechat_gateway_base_url,
    timeout_seconds=settings.wechat_http_timeout_seconds,
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    status_code = PAYMENT_ERROR_STATUS.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("支付请求失败 path=%s kind=%s order_id=%s msg=%s", request.url.path, exc.kind.value, exc.order_id, exc.message)
    else:
        logger.info("支付请求被拒绝 path=%s kind=%s order_id=%s", request.url.path, exc.kind.value, exc.order_id)
    content: dict[str, object] = {
        "success": False,
        "error_kind": exc.kind.value,
        "detail": exc.message,
    }
    if exc.order_id:
        content["order_id"] = exc.order_id
    return JSONResponse(status_code=status_code, content=content)


app.add_middleware(ErrorLoggingMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "healthy"}


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus 指标"""
    return PlainTextResponse(prometheus_metrics.render_prometheus(), media_type="text/plain; version=0.0.4")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("wxpay_orders.main:app", host="0.0.0.0", port=8000, reload=True)
