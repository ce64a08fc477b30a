"""依赖注入"""
from typing import Annotated, cast

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..database import get_db
from ..services.config_provider import ConfigProvider
from ..services.notify_processor import NotifyProcessor
from ..services.order_lifecycle import OrderLifecycleManager
from ..services.order_store import OrderStore
from ..services.wechatpay_client import WechatPayGatewayClient


def get_config_provider(request: Request) -> ConfigProvider:
    """应用启动时注入的商户配置"""
    return cast(ConfigProvider, request.app.state.config_provider)


def get_gateway_client(request: Request) -> WechatPayGatewayClient:
    return cast(WechatPayGatewayClient, request.app.state.gateway_client)


def get_order_store(db: Annotated[AsyncSession, Depends(get_db)]) -> OrderStore:
    return OrderStore(db)


def get_lifecycle_manager(
    store: Annotated[OrderStore, Depends(get_order_store)],
    config: Annotated[ConfigProvider, Depends(get_config_provider)],
    gateway: Annotated[WechatPayGatewayClient, Depends(get_gateway_client)],
) -> OrderLifecycleManager:
    settings = get_settings()
    return OrderLifecycleManager(
        store,
        config,
        gateway,
        order_id_prefix=settings.payment_order_id_prefix,
        currency=settings.payment_currency,
    )


def get_notify_processor(
    store: Annotated[OrderStore, Depends(get_order_store)],
    config: Annotated[ConfigProvider, Depends(get_config_provider)],
) -> NotifyProcessor:
    return NotifyProcessor(store, config)
