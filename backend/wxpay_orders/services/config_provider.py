from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..config import Settings
from ..models.payment import PaymentChannel
from .payment_errors import ConfigurationError


@dataclass(frozen=True)
class GatewayCredentials:
    app_id: str
    merchant_id: str
    merchant_key: str
    notify_url: str

    def __repr__(self) -> str:
        # 商户密钥不进日志
        return (
            f"GatewayCredentials(app_id={self.app_id!r}, merchant_id={self.merchant_id!r}, "
            f"notify_url={self.notify_url!r})"
        )


class ConfigProvider(Protocol):
    def get_credentials(self, channel: PaymentChannel | str) -> GatewayCredentials: ...


class SettingsConfigProvider:
    """从应用配置读取各渠道的商户凭证"""

    def __init__(self, settings: Settings) -> None:
        self._settings: Settings = settings

    def _app_id_for(self, channel: PaymentChannel) -> tuple[str, str]:
        if channel == PaymentChannel.WEB:
            return "WECHAT_WEB_APPID", self._settings.wechat_web_appid
        if channel == PaymentChannel.MINIAPP:
            return "WECHAT_MINIAPP_APPID", self._settings.wechat_miniapp_appid
        return "WECHAT_MOBILE_APPID", self._settings.wechat_mobile_appid

    def get_credentials(self, channel: PaymentChannel | str) -> GatewayCredentials:
        try:
            ch = PaymentChannel(channel)
        except ValueError as e:
            raise ConfigurationError(f"未知的支付渠道: {channel}") from e

        app_id_key, app_id = self._app_id_for(ch)
        values = {
            app_id_key: str(app_id or "").strip(),
            "WECHAT_MCH_ID": str(self._settings.wechat_mch_id or "").strip(),
            "WECHAT_MCH_KEY": str(self._settings.wechat_mch_key or "").strip(),
            "WECHAT_NOTIFY_URL": str(self._settings.wechat_notify_url or "").strip(),
        }
        missing = [k for k, v in values.items() if not v]
        if missing:
            raise ConfigurationError(f"微信支付配置不完整（{ch.value}）：缺少 {', '.join(missing)}")

        return GatewayCredentials(
            app_id=values[app_id_key],
            merchant_id=values["WECHAT_MCH_ID"],
            merchant_key=values["WECHAT_MCH_KEY"],
            notify_url=values["WECHAT_NOTIFY_URL"],
        )

    def find_channel_by_app_id(self, app_id: str | None) -> PaymentChannel | None:
        target = str(app_id or "").strip()
        if not target:
            return None
        for ch in PaymentChannel:
            _, configured = self._app_id_for(ch)
            if configured and configured.strip() == target:
                return ch
        return None
