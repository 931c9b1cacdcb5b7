"""
价格档位解析

客户类别决定使用哪一档价格；未设置（或为 0）的档位统一回退到 normal。
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.customer import CustomerCategory
from backoffice.models.product import Product, ProductPrice, ProductVariant
from backoffice.schemas.order import OrderLineInput


# 客户类别 -> 价格字段（None 表示直接用 normal）
TIER_FIELDS: Dict[CustomerCategory, Optional[str]] = {
    CustomerCategory.CUSTOMER: None,
    CustomerCategory.DROPSHIPPER: None,
    CustomerCategory.MEMBER: "member",
    CustomerCategory.RESELLER: "reseller",
    CustomerCategory.AGENT: "agent",
}


@dataclass
class PricedLine:
    """已定价的订单行"""
    product_id: str
    product_variant_id: Optional[str]
    product_qty: int
    unit_price: float

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.product_qty


def _as_category(category: Union[CustomerCategory, str, None]) -> Optional[CustomerCategory]:
    if category is None or isinstance(category, CustomerCategory):
        return category
    try:
        return CustomerCategory(str(category).upper())
    except ValueError:
        return None


def resolve_price(price: Optional[ProductPrice], category: Union[CustomerCategory, str, None]) -> float:
    """
    按客户类别解析单价

    - 没有价格记录：0（是否算错误由调用方决定）
    - CUSTOMER / DROPSHIPPER / 未知类别：normal
    - MEMBER / RESELLER / AGENT：对应档位，未设置或为 0 时回退 normal
    """
    if price is None:
        return 0.0

    field = TIER_FIELDS.get(_as_category(category))
    tier_value = getattr(price, field) if field else None
    return float(tier_value or price.normal or 0)


def resolve_variant(product: Product, variant_id: Optional[str]) -> Optional[ProductVariant]:
    """订单行指定了规格就用该规格，否则用商品的默认规格（可能为 None）"""
    if variant_id:
        return product.find_variant(variant_id)
    return product.default_variant


def price_line(
    product: Product,
    line: OrderLineInput,
    category: Union[CustomerCategory, str, None],
) -> PricedLine:
    """给单个订单行定价；商品没有任何规格时按 0 价处理"""
    variant = resolve_variant(product, line.product_variant_id)
    unit_price = resolve_price(variant.price, category) if variant else 0.0
    return PricedLine(
        product_id=product.id,
        product_variant_id=line.product_variant_id,
        product_qty=line.product_qty,
        unit_price=unit_price,
    )


def price_lines(
    products: Dict[str, Product],
    lines: Iterable[OrderLineInput],
    category: Union[CustomerCategory, str, None],
) -> List[PricedLine]:
    return [price_line(products[line.product_id], line, category) for line in lines]


class PriceResolver:
    """需要访问数据库的定价操作"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def variant_unit_price(
        self,
        variant_id: str,
        category: Union[CustomerCategory, str, None],
    ) -> Optional[float]:
        """
        重新查询规格的价格记录并按档位解析

        与订单行的单价快照相互独立：用于按百分比的规格折扣。
        没有价格记录时返回 None。
        """
        result = await self.db.execute(
            select(ProductPrice)
            .where(ProductPrice.product_variant_id == variant_id)
            .order_by(ProductPrice.created_at, ProductPrice.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        price = result.scalar_one_or_none()
        if price is None:
            return None
        return resolve_price(price, category)
