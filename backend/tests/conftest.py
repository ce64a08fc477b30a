"""Pytest配置文件"""
import inspect
import os
import sys
from pathlib import Path
from typing import Any
from collections.abc import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from wxpay_orders.config import Settings
from wxpay_orders.database import Base, get_db
from wxpay_orders.main import app
from wxpay_orders.models import payment as _payment_models  # noqa: F401
from wxpay_orders.services.config_provider import SettingsConfigProvider
from wxpay_orders.services.notify_processor import NotifyProcessor
from wxpay_orders.services.order_lifecycle import OrderLifecycleManager
from wxpay_orders.services.order_store import OrderStore
from wxpay_orders.services.wechatpay_client import WechatPayGatewayClient
from wxpay_orders.utils.deps import get_config_provider, get_gateway_client
from wxpay_orders.utils.wechatpay_sign import generate_nonce_str, wechat_sign_md5, wechat_verify_md5
from wxpay_orders.utils.wechatpay_xml import decode_xml, encode_xml

MERCHANT_KEY = "0123456789abcdef0123456789ABCDEF"
MCH_ID = "1900000109"
WEB_APPID = "wx_web_appid"
MINIAPP_APPID = "wx_miniapp_appid"
MOBILE_APPID = "wx_mobile_appid"
NOTIFY_URL = "https://pay.example.com/api/payment/wechat/notify"
GATEWAY_BASE_URL = "https://api.mch.test"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "wechat_mch_id": MCH_ID,
        "wechat_mch_key": MERCHANT_KEY,
        "wechat_notify_url": NOTIFY_URL,
        "wechat_web_appid": WEB_APPID,
        "wechat_miniapp_appid": MINIAPP_APPID,
        "wechat_mobile_appid": MOBILE_APPID,
        "wechat_gateway_base_url": GATEWAY_BASE_URL,
    }
    values.update(overrides)
    return Settings(**values)


class FakeWechatGateway:
    """进程内模拟的微信支付 v2 网关"""

    def __init__(self, key: str = MERCHANT_KEY) -> None:
        self.key: str = key
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.trade_states: dict[str, dict[str, str]] = {}
        self.unified_order_error: dict[str, str] | None = None
        self.status_code: int = 200
        self.raise_timeout: bool = False
        self.tamper_response_sign: bool = False
        self.code_url: str | None = None
        self.transport: httpx.MockTransport = httpx.MockTransport(self._handle)

    def paths(self) -> list[str]:
        return [p for p, _ in self.requests]

    def set_paid(self, order_id: str, *, transaction_id: str, total_fee: int, time_end: str = "20240101120000") -> None:
        self.trade_states[order_id] = {
            "trade_state": "SUCCESS",
            "transaction_id": transaction_id,
            "total_fee": str(total_fee),
            "time_end": time_end,
        }

    def set_state(self, order_id: str, trade_state: str) -> None:
        self.trade_states[order_id] = {"trade_state": trade_state}

    def _reply(self, data: dict[str, str], *, signed: bool = True) -> httpx.Response:
        payload = dict(data)
        if signed:
            payload["nonce_str"] = generate_nonce_str()
            payload["sign"] = wechat_sign_md5(payload, self.key)
            if self.tamper_response_sign:
                payload["sign"] = "0" * 32
        return httpx.Response(self.status_code, content=encode_xml(payload).encode("utf-8"))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        if self.raise_timeout:
            raise httpx.ConnectTimeout("timed out", request=request)

        data = decode_xml(request.content)
        self.requests.append((request.url.path, data))

        if not wechat_verify_md5(data, data.get("sign"), self.key):
            return self._reply({"return_code": "FAIL", "return_msg": "签名错误"}, signed=False)

        base = {"return_code": "SUCCESS", "return_msg": "OK", "appid": data["appid"], "mch_id": data["mch_id"]}
        if request.url.path == "/pay/unifiedorder":
            if self.unified_order_error is not None:
                return self._reply({**base, "result_code": "FAIL", **self.unified_order_error})
            reply = {
                **base,
                "result_code": "SUCCESS",
                "trade_type": data["trade_type"],
                "prepay_id": f"wx_prepay_{data['out_trade_no']}",
            }
            if data["trade_type"] == "NATIVE":
                reply["code_url"] = self.code_url or f"weixin://wxpay/bizpayurl?pr={data['out_trade_no']}"
            return self._reply(reply)

        if request.url.path == "/pay/orderquery":
            state = self.trade_states.get(data["out_trade_no"], {"trade_state": "NOTPAY"})
            return self._reply({**base, "result_code": "SUCCESS", "out_trade_no": data["out_trade_no"], **state})

        return httpx.Response(404)


def build_notify_body(
    order_id: str,
    total_fee: int,
    *,
    transaction_id: str = "4200000001202401011234567890",
    key: str = MERCHANT_KEY,
    trade_type: str = "NATIVE",
    appid: str = WEB_APPID,
    time_end: str = "20240101120000",
    **overrides: str,
) -> str:
    data: dict[str, str] = {
        "appid": appid,
        "mch_id": MCH_ID,
        "nonce_str": generate_nonce_str(),
        "result_code": "SUCCESS",
        "return_code": "SUCCESS",
        "openid": "o_test_openid",
        "trade_type": trade_type,
        "bank_type": "CMC",
        "total_fee": str(total_fee),
        "cash_fee": str(total_fee),
        "transaction_id": transaction_id,
        "out_trade_no": order_id,
        "time_end": time_end,
    }
    data.update(overrides)
    data["sign"] = wechat_sign_md5(data, key)
    return encode_xml(data)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def config_provider(settings: Settings) -> SettingsConfigProvider:
    return SettingsConfigProvider(settings)


@pytest.fixture
def fake_gateway() -> FakeWechatGateway:
    return FakeWechatGateway()


@pytest.fixture
def gateway_client(fake_gateway: FakeWechatGateway) -> WechatPayGatewayClient:
    return WechatPayGatewayClient(base_url=GATEWAY_BASE_URL, timeout_seconds=5.0, transport=fake_gateway.transport)


@pytest.fixture
def notify_body() -> Callable[..., str]:
    return build_notify_body


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """每个用例独立的文件数据库，便于多个会话并发"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """创建测试会话"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(test_session: AsyncSession) -> OrderStore:
    return OrderStore(test_session)


@pytest_asyncio.fixture
async def client(
    test_session: AsyncSession,
    config_provider: SettingsConfigProvider,
    gateway_client: WechatPayGatewayClient,
) -> AsyncGenerator[AsyncClient, None]:
    """创建测试客户端"""
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_config_provider] = lambda: config_provider
    app.dependency_overrides[get_gateway_client] = lambda: gateway_client

    transport_kwargs: dict[str, Any] = {"app": app}
    if "lifespan" in inspect.signature(ASGITransport.__init__).parameters:
        transport_kwargs["lifespan"] = "off"
    transport = ASGITransport(**transport_kwargs)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def manager(
    store: OrderStore,
    config_provider: SettingsConfigProvider,
    gateway_client: WechatPayGatewayClient,
) -> OrderLifecycleManager:
    return OrderLifecycleManager(store, config_provider, gateway_client)


@pytest.fixture
def processor(store: OrderStore, config_provider: SettingsConfigProvider) -> NotifyProcessor:
    return NotifyProcessor(store, config_provider)


@pytest.fixture
def make_config_provider() -> Callable[..., SettingsConfigProvider]:
    def _make(**overrides: Any) -> SettingsConfigProvider:
        return SettingsConfigProvider(make_settings(**overrides))
    return _make
