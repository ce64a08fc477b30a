from __future__ import annotations

from collections.abc import Iterable

from fastapi import Request


def get_client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """获取客户端真实IP，仅信任来自可信代理的转发头"""
    remote = request.client.host if request.client else "127.0.0.1"
    if remote in set(trusted_proxies):
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()

    return remote
