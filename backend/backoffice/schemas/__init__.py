"""
Pydantic 模式定义
"""
from backoffice.schemas.common import ServiceResponse
from backoffice.schemas.order import (
    OtherFees, OrderCreate, OrderUpdate, OrderFilter,
    OrderSchema, OrderListResponse, OrderSummary,
)

__all__ = [
    "ServiceResponse",
    "OtherFees", "OrderCreate", "OrderUpdate", "OrderFilter",
    "OrderSchema", "OrderListResponse", "OrderSummary",
]
