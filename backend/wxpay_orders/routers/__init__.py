"""API路由"""

from fastapi import APIRouter

from . import payment

api_router = APIRouter()

api_router.include_router(payment.router)
