"""应用配置"""
import sys
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from functools import lru_cache
from typing import Annotated, ClassVar, cast


ORDER_ID_PREFIX_MAX_LEN = 6


def _running_tests() -> bool:
    return "pytest" in sys.modules


class Settings(BaseSettings):
    """应用设置"""
    # 应用配置
    app_name: str = "微信支付订单服务"
    debug: bool = Field(default_factory=_running_tests)

    # 数据库配置
    database_url: str = "sqlite+aiosqlite:///./data/wxpay_orders.db"

    # 日志配置
    log_level: str = "INFO"
    log_dir: str = "logs"

    cors_allow_origins: Annotated[list[str], NoDecode] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    cors_allow_credentials: bool = False
    trusted_proxies: Annotated[list[str], NoDecode] = []

    # 微信支付商户配置（v2 接口，MD5 签名）
    wechat_mch_id: str = ""
    wechat_mch_key: str = ""
    wechat_notify_url: str = ""

    # 各渠道 AppID
    wechat_web_appid: str = ""
    wechat_miniapp_appid: str = ""
    wechat_mobile_appid: str = ""

    wechat_gateway_base_url: str = "https://api.mch.weixin.qq.com"
    wechat_http_timeout_seconds: float = 10.0

    # 订单配置
    # 前缀 + 14 位时间 + 12 位随机串，合计不超过 out_trade_no 的 32 位
    payment_order_id_prefix: str = Field(default="WX", max_length=ORDER_ID_PREFIX_MAX_LEN, pattern=r"^[A-Za-z0-9]*$")
    payment_currency: str = "CNY"

    model_config: ClassVar[SettingsConfigDict] = cast(
        SettingsConfigDict,
        cast(
            object,
            {
                "env_file": None if _running_tests() else ".env",
                "extra": "ignore",
                "from_attributes": True,
            },
        ),
    )

    @field_validator("cors_allow_origins", "trusted_proxies", mode="before")
    @classmethod
    def _parse_str_list(cls, value: object):
        if isinstance(value, str):
            parts = [p.strip() for p in value.replace("，", ",").split(",")]
            return [p for p in parts if p]
        return value

    @field_validator("debug", mode="before")
    @classmethod
    def _parse_debug(cls, value: object):
        if value is None:
            return bool(_running_tests())
        if isinstance(value, bool):
            return bool(value)
        if isinstance(value, int):
            return bool(int(value))
        if isinstance(value, str):
            s = value.strip().lower()
            if not s:
                return bool(_running_tests())
            if s in {"1", "true", "yes", "y", "on"}:
                return True
            if s in {"0", "false", "no", "n", "off"}:
                return False
            return True
        return bool(_running_tests())

    @field_validator("wechat_http_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("WECHAT_HTTP_TIMEOUT_SECONDS must be positive")
        return value

    @model_validator(mode="after")
    def _validate_security(self):
        if _running_tests():
            return self
        if not self.debug:
            # 商户密钥为 32 位字符串
            if self.wechat_mch_key and len(self.wechat_mch_key) != 32:
                raise ValueError("WECHAT_MCH_KEY must be 32 characters when DEBUG is False")

            if self.wechat_notify_url and not self.wechat_notify_url.lower().startswith("https://"):
                raise ValueError("WECHAT_NOTIFY_URL must use https when DEBUG is False")
        return self


@lru_cache()
def get_settings() -> Settings:
    """获取缓存的设置实例"""
    return Settings()
