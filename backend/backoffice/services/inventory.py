"""
库存台账

规格库存的唯一修改入口。扣减使用“条件更新”（UPDATE ... WHERE stock >= qty）：
判断与扣减在同一条语句里完成，并发扣减同一规格时不会超卖。
所有操作都在调用方的事务内执行，事务回滚时之前的扣减一并撤销。
"""
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.product import ProductVariant
from backoffice.services.errors import InsufficientStock, InvalidInput, NotFound

logger = structlog.get_logger(__name__)


class InventoryLedger:
    """库存台账"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _current(self, variant_id: str) -> Optional[tuple]:
        """读取规格当前 (sku, stock)；不存在返回 None"""
        result = await self.db.execute(
            select(ProductVariant.sku, ProductVariant.stock).where(ProductVariant.id == variant_id)
        )
        return result.one_or_none()

    async def reserve(self, variant_id: str, qty: int) -> None:
        """
        扣减库存

        Raises:
            NotFound: 规格不存在
            InsufficientStock: 跟踪库存且 stock < qty
        """
        if qty <= 0:
            raise InvalidInput(f"扣减数量必须为正整数：{qty}")

        result = await self.db.execute(
            update(ProductVariant)
            .where(
                ProductVariant.id == variant_id,
                ProductVariant.stock.is_not(None),
                ProductVariant.stock >= qty,
            )
            .values(stock=ProductVariant.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if (result.rowcount or 0) == 1:
            logger.debug("库存已扣减", variant_id=variant_id, qty=qty)
            return

        current = await self._current(variant_id)
        if current is None:
            raise NotFound(f"商品规格 {variant_id} 不存在")

        sku, stock = current
        if stock is None:
            # 不跟踪库存
            return
        raise InsufficientStock(variant_id, available=stock, requested=qty, sku=sku)

    async def release(self, variant_id: str, qty: int) -> None:
        """归还库存（无条件增加）"""
        if qty <= 0:
            raise InvalidInput(f"归还数量必须为正整数：{qty}")

        result = await self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock.is_not(None))
            .values(stock=ProductVariant.stock + qty)
            .execution_options(synchronize_session=False)
        )
        if (result.rowcount or 0) == 1:
            logger.debug("库存已归还", variant_id=variant_id, qty=qty)
            return

        if await self._current(variant_id) is None:
            raise NotFound(f"商品规格 {variant_id} 不存在")

    async def adjust_by_delta(self, variant_id: str, delta: int) -> None:
        """按差额调整：delta > 0 需要更多（扣减），delta < 0 需要更少（归还）"""
        if delta > 0:
            await self.reserve(variant_id, delta)
        elif delta < 0:
            await self.release(variant_id, -delta)

    async def release_product(self, product_id: str, qty: int) -> int:
        """给商品的所有跟踪库存的规格各加 qty，返回受影响的规格数"""
        result = await self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.product_id == product_id, ProductVariant.stock.is_not(None))
            .values(stock=ProductVariant.stock + qty)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
