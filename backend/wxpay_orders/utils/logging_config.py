"""日志配置"""
import logging
import re
import sys
from pathlib import Path
from datetime import datetime

_MERCHANT_KEY_RE = re.compile(r"(&key=)[^&\s]+")


class MerchantKeyRedactFilter(logging.Filter):
    """屏蔽签名原串中的商户密钥"""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "&key=" in msg:
            record.msg = _MERCHANT_KEY_RE.sub(r"\1***", msg)
            record.args = None
        return True


def setup_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    app_name: str = "wxpay_orders"
) -> None:
    """
    配置日志系统

    Args:
        log_level: 日志级别
        log_dir: 日志目录
        app_name: 应用名称，用作日志文件名前缀
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    log_format = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(log_format, date_format)
    redact = MerchantKeyRedactFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    # 控制台
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)

    # 按日期分文件
    today = datetime.now().strftime("%Y-%m-%d")
    file_handler = logging.FileHandler(log_path / f"{app_name}_{today}.log", encoding="utf-8")
    file_handler.setLevel(logging.INFO)

    error_handler = logging.FileHandler(log_path / f"{app_name}_error_{today}.log", encoding="utf-8")
    error_handler.setLevel(logging.ERROR)

    for handler in (console_handler, file_handler, error_handler):
        handler.setFormatter(formatter)
        handler.addFilter(redact)
        root_logger.addHandler(handler)

    # 降低第三方库日志级别
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.info("Logging configured: level=%s, dir=%s", log_level, log_dir)
