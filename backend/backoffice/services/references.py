"""
引用校验

创建 / 更新订单前检查所有外部引用都存在；任何失败都在写入之前抛出。
"""
from typing import Dict, Iterable, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import Settings
from backoffice.database import Base
from backoffice.models.customer import Customer, DeliveryPlace, PaymentMethod, SalesChannel
from backoffice.models.order import OrderDetail
from backoffice.models.product import Product
from backoffice.schemas.order import OrderLineInput
from backoffice.services.errors import Conflict, NotFound
from backoffice.utils.order_code import generate_order_code

M = TypeVar("M", bound=Base)


class ReferenceValidator:
    """外部引用校验"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def require(self, model: Type[M], entity_id: str, label: str) -> M:
        entity = await self.db.get(model, entity_id)
        if entity is None:
            raise NotFound(f"{label}不存在：{entity_id}")
        return entity

    async def customer(self, customer_id: str, label: str = "客户") -> Customer:
        return await self.require(Customer, customer_id, label)

    async def delivery_place(self, place_id: Optional[str]) -> Optional[DeliveryPlace]:
        if not place_id:
            return None
        return await self.require(DeliveryPlace, place_id, "发货地点")

    async def sales_channel(self, channel_id: Optional[str]) -> Optional[SalesChannel]:
        if not channel_id:
            return None
        return await self.require(SalesChannel, channel_id, "销售渠道")

    async def payment_method(self, method_id: Optional[str], label: str = "收款方式") -> Optional[PaymentMethod]:
        if not method_id:
            return None
        return await self.require(PaymentMethod, method_id, label)

    async def products(self, product_ids: Iterable[str]) -> Dict[str, Product]:
        """批量读取商品（含规格和价格），缺失的ID一并报告"""
        wanted = list(dict.fromkeys(product_ids))
        if not wanted:
            return {}
        result = await self.db.execute(
            select(Product).where(Product.id.in_(wanted)).execution_options(populate_existing=True)
        )
        found = {p.id: p for p in result.scalars().all()}
        missing = [pid for pid in wanted if pid not in found]
        if missing:
            raise NotFound(f"商品不存在：{', '.join(missing)}", {"product_ids": missing})
        return found

    def check_line_variants(self, lines: Iterable[OrderLineInput], products: Dict[str, Product]) -> None:
        """指定了规格的订单行，规格必须属于该商品"""
        for line in lines:
            if line.product_variant_id and products[line.product_id].find_variant(line.product_variant_id) is None:
                raise NotFound(
                    f"商品 {line.product_id} 下不存在规格 {line.product_variant_id}",
                    {"product_id": line.product_id, "product_variant_id": line.product_variant_id},
                )

    async def code_exists(self, code: str) -> bool:
        result = await self.db.execute(select(OrderDetail.id).where(OrderDetail.code == code).limit(1))
        return result.scalar_one_or_none() is not None

    async def ensure_code_available(self, code: str) -> None:
        if await self.code_exists(code):
            raise Conflict(f"订单编号已存在：{code}", {"code": code})

    async def allocate_code(self, settings: Settings) -> str:
        """生成一个当前未被占用的订单编号（最终由唯一约束兜底）"""
        for _ in range(max(settings.order_code_max_attempts, 1)):
            code = generate_order_code(settings.order_code_prefix)
            if not await self.code_exists(code):
                return code
        raise Conflict("无法生成唯一的订单编号，请重试")
