import logging
from datetime import datetime, timezone

import pytest

import wxpay_orders.utils.logging_config as mod


class _FixedDateTime:
    @classmethod
    def now(cls):  # noqa: N805
        return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_setup_logging_creates_handlers_and_files(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    # 还原根日志器，避免影响其他用例
    root = logging.getLogger()
    old_level = root.level
    old_handlers = list(root.handlers)

    monkeypatch.setattr(mod, "datetime", _FixedDateTime)

    log_dir = tmp_path / "logs"
    try:
        mod.setup_logging(log_level="DEBUG", log_dir=str(log_dir), app_name="wxpay")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 3
        assert all(any(isinstance(f, mod.MerchantKeyRedactFilter) for f in h.filters) for h in root.handlers)

        paths = [h.baseFilename for h in root.handlers if isinstance(h, logging.FileHandler)]
        assert any(p.endswith("wxpay_2026-01-01.log") for p in paths)
        assert any(p.endswith("wxpay_error_2026-01-01.log") for p in paths)

        assert (log_dir / "wxpay_2026-01-01.log").exists()
        assert (log_dir / "wxpay_error_2026-01-01.log").exists()

        assert logging.getLogger("uvicorn").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
    finally:
        for h in root.handlers:
            h.close()
        root.handlers = old_handlers
        root.setLevel(old_level)


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord("t", logging.DEBUG, __file__, 1, msg, args, None)


def test_redact_filter_hides_merchant_key() -> None:
    record = _record("签名原串 %s", "appid=wx1&mch_id=1&key=0123456789abcdef0123456789ABCDEF")
    assert mod.MerchantKeyRedactFilter().filter(record) is True
    out = record.getMessage()
    assert "0123456789abcdef" not in out
    assert out.endswith("&key=***")


def test_redact_filter_leaves_other_messages() -> None:
    record = _record("订单已支付 order_id=%s", "WX1")
    assert mod.MerchantKeyRedactFilter().filter(record) is True
    assert record.getMessage() == "订单已支付 order_id=WX1"
    assert record.args == ("WX1",)
