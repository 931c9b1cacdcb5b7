"""
订单核心的错误分类

核心逻辑只抛出这些异常，由 OrderService 的入口统一转换为 ServiceResponse。
"""
from typing import Any, Dict, Optional


class OrderError(Exception):
    """订单核心错误基类"""

    status_code: int = 500
    kind: str = "internal"

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class NotFound(OrderError):
    """引用的实体不存在（客户、商品、规格、收款方式、发货地点、销售渠道或订单本身）"""
    status_code = 404
    kind = "not_found"


class Conflict(OrderError):
    """唯一性冲突（订单编号重复）或状态冲突"""
    status_code = 409
    kind = "conflict"


class InvalidInput(OrderError):
    """费用 / 折扣结构不合法、类型错误、缺少必填字段"""
    status_code = 400
    kind = "invalid_input"


class InsufficientStock(OrderError):
    """请求数量超过可用库存"""
    status_code = 422
    kind = "insufficient_stock"

    def __init__(self, variant_id: str, available: int, requested: int, sku: Optional[str] = None):
        label = sku or variant_id
        super().__init__(
            f"规格 {label} 库存不足：可用 {available}，需要 {requested}",
            {"variant_id": variant_id, "available": available, "requested": requested},
        )
        self.variant_id = variant_id
        self.available = available
        self.requested = requested


class Internal(OrderError):
    """未预期的持久化错误"""
    status_code = 500
    kind = "internal"
