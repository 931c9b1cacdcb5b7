"""
API 路由
"""
from fastapi import APIRouter

from backoffice.api import orders, upload

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["订单"])
api_router.include_router(upload.router, prefix="/upload", tags=["文件上传"])
