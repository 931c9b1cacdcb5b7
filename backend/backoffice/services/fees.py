"""
费用与折扣计算（纯函数）

计算顺序固定，影响最终价格：
1. 各订单行 单价 × 数量 之和
2. 加保险费、包装费、重量附加费（系数恒为 1）、分期金额
3. 减去各规格折扣
4. 加运费
5. 最后应用整单折扣（按当前累计额的百分比，或固定金额）

结果不做非负截断；报表里的“扣除费用后净额”是另一套口径（见 net_of_fees）。
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog
from pydantic import ValidationError

from backoffice.schemas.order import OtherFees, ProductDiscount

logger = structlog.get_logger(__name__)


@dataclass
class FeeBreakdown:
    """各步骤的金额明细"""
    line_total: float = 0
    surcharges: float = 0
    product_discount: float = 0
    shipping: float = 0
    order_discount: float = 0
    total: float = 0


def product_discount_amount(discount: ProductDiscount, unit_price: float, qty: int) -> float:
    """规格折扣金额：percent 为 单价×数量×百分比，nominal 为 金额×数量"""
    if discount.discount_type == "percent":
        return unit_price * qty * discount.discount_amount / 100
    return discount.discount_amount * qty


def compute_breakdown(
    line_total: float,
    other_fees: Optional[OtherFees],
    discount_basis: Optional[Mapping[str, Tuple[Optional[float], int]]] = None,
) -> FeeBreakdown:
    """
    计算订单总价明细

    Args:
        line_total: 订单行小计之和
        other_fees: 其他费用文档
        discount_basis: 规格ID -> (按档位重新查询的单价, 该规格在订单中的数量)；
            单价为 None（无价格记录）或规格不在订单中时跳过该折扣
    """
    breakdown = FeeBreakdown(line_total=line_total)
    total = line_total

    if other_fees is not None:
        surcharges = (other_fees.insurance or 0) + (other_fees.packaging or 0) + (other_fees.weight or 0)
        if other_fees.installments and other_fees.installments.amount:
            surcharges += other_fees.installments.amount
        total += surcharges
        breakdown.surcharges = surcharges

        basis = discount_basis or {}
        for discount in other_fees.product_discounts:
            unit_price, qty = basis.get(discount.product_variant_id, (None, 0))
            if unit_price is None or not qty:
                continue
            amount = product_discount_amount(discount, unit_price, qty)
            total -= amount
            breakdown.product_discount += amount

        if other_fees.shipping_cost and other_fees.shipping_cost.cost:
            total += other_fees.shipping_cost.cost
            breakdown.shipping = other_fees.shipping_cost.cost

        discount = other_fees.discount
        if discount is not None and discount.value:
            if discount.type == "percent":
                amount = total * discount.value / 100
            else:
                amount = discount.value
            total -= amount
            breakdown.order_discount = amount

    breakdown.total = total
    return breakdown


def compute_total(
    line_total: float,
    other_fees: Optional[OtherFees],
    discount_basis: Optional[Mapping[str, Tuple[Optional[float], int]]] = None,
) -> float:
    return compute_breakdown(line_total, other_fees, discount_basis).total


def parse_stored_fees(raw: Optional[Dict[str, Any]]) -> Optional[OtherFees]:
    """把数据库里的 other_fees JSON 还原为 OtherFees；无法解析时返回 None 并记录告警"""
    if not raw:
        return None
    try:
        return OtherFees.model_validate(raw)
    except ValidationError as exc:
        logger.warning("other_fees 无法解析，按无费用处理", error_count=exc.error_count())
        return None


def net_of_fees(final_price: float, other_fees: Optional[OtherFees]) -> float:
    """报表口径：最终价格扣除保险费、包装费、运费后的净额，最低为 0"""
    fees = 0.0
    if other_fees is not None:
        fees += (other_fees.insurance or 0) + (other_fees.packaging or 0)
        if other_fees.shipping_cost:
            fees += other_fees.shipping_cost.cost or 0
    return max(0.0, (final_price or 0) - fees)
