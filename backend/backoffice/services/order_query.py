"""
订单查询（只读）
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import Select, and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from backoffice.models.customer import Customer
from backoffice.models.order import Order, OrderDetail, OrderProduct, PaymentStatus
from backoffice.models.product import Product
from backoffice.schemas.order import OrderFilter, OrderSummary
from backoffice.services.fees import net_of_fees, parse_stored_fees


async def load_order(db: AsyncSession, order_id: str) -> Optional[Order]:
    """读取完整订单聚合（强制刷新身份映射中的旧值）"""
    result = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _date_range(order_filter: OrderFilter) -> Optional[Tuple[datetime, datetime]]:
    """时间筛选（优先级：区间 > 月份 > 年份 > 单日）"""
    if order_filter.start_date and order_filter.end_date:
        return (
            datetime.combine(order_filter.start_date, datetime.min.time()),
            datetime.combine(order_filter.end_date, datetime.max.time()),
        )

    if order_filter.order_month:
        year = order_filter.order_year or date.today().year
        month = order_filter.order_month
        start = datetime(year, month, 1)
        if month == 12:
            return start, datetime.combine(date(year, 12, 31), datetime.max.time())
        return start, datetime(year, month + 1, 1) - timedelta(microseconds=1)

    if order_filter.order_year:
        return (
            datetime(order_filter.order_year, 1, 1),
            datetime.combine(date(order_filter.order_year, 12, 31), datetime.max.time()),
        )

    if order_filter.order_date:
        return (
            datetime.combine(order_filter.order_date, datetime.min.time()),
            datetime.combine(order_filter.order_date, datetime.max.time()),
        )

    return None


def apply_filter(stmt: Select, order_filter: OrderFilter) -> Select:
    """把查询条件转换为 WHERE 子句"""
    orderer = aliased(Customer)
    target = aliased(Customer)
    conditions = []

    if order_filter.sales_channel_id:
        conditions.append(Order.sales_channel_id == order_filter.sales_channel_id)
    if order_filter.orderer_customer_id:
        conditions.append(Order.orderer_customer_id == order_filter.orderer_customer_id)
    if order_filter.delivery_target_customer_id:
        conditions.append(Order.delivery_target_customer_id == order_filter.delivery_target_customer_id)
    if order_filter.delivery_place_id:
        conditions.append(Order.delivery_place_id == order_filter.delivery_place_id)

    date_range = _date_range(order_filter)
    if date_range:
        conditions.append(Order.order_date.between(*date_range))

    # 订单明细相关
    if order_filter.payment_status:
        conditions.append(OrderDetail.payment_status == order_filter.payment_status)
    if order_filter.payment_method_id:
        conditions.append(OrderDetail.payment_method_id == order_filter.payment_method_id)
    if order_filter.code:
        conditions.append(OrderDetail.code.ilike(f"%{order_filter.code}%"))
    if order_filter.receipt_number:
        conditions.append(OrderDetail.receipt_number.ilike(f"%{order_filter.receipt_number}%"))
    if order_filter.unavailable_receipt:
        conditions.append(OrderDetail.receipt_number.is_(None))

    # 客户相关（下单客户或收货客户任一匹配）
    if order_filter.customer_category:
        conditions.append(
            or_(orderer.category == order_filter.customer_category, target.category == order_filter.customer_category)
        )
    if order_filter.customer_name:
        pattern = f"%{order_filter.customer_name}%"
        conditions.append(or_(orderer.name.ilike(pattern), target.name.ilike(pattern)))
    if order_filter.phone_number:
        pattern = f"%{order_filter.phone_number}%"
        conditions.append(or_(orderer.phone_number.ilike(pattern), target.phone_number.ilike(pattern)))

    # 商品相关
    if order_filter.product_id:
        conditions.append(
            exists().where(
                OrderProduct.order_id == Order.id,
                OrderProduct.product_id == order_filter.product_id,
            )
        )
    if order_filter.product_name:
        conditions.append(
            exists().where(
                OrderProduct.order_id == Order.id,
                OrderProduct.product_id == Product.id,
                Product.name.ilike(f"%{order_filter.product_name}%"),
            )
        )

    stmt = (
        stmt.join(OrderDetail, OrderDetail.order_id == Order.id, isouter=True)
        .join(orderer, orderer.id == Order.orderer_customer_id)
        .join(target, target.id == Order.delivery_target_customer_id)
    )
    if conditions:
        stmt = stmt.where(and_(*conditions))
    return stmt


async def list_orders(db: AsyncSession, order_filter: OrderFilter) -> Tuple[int, List[Order]]:
    """分页查询订单，返回 (总数, 当前页订单)"""
    count_stmt = apply_filter(select(func.count(func.distinct(Order.id))).select_from(Order), order_filter)
    total = (await db.execute(count_stmt)).scalar() or 0

    offset = (order_filter.page - 1) * order_filter.page_size
    stmt = (
        apply_filter(select(Order), order_filter)
        .order_by(Order.created_at.desc(), Order.id)
        .offset(offset)
        .limit(order_filter.page_size)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return total, list(result.scalars().unique().all())


async def summarize_orders(db: AsyncSession, order_filter: OrderFilter) -> OrderSummary:
    """
    订单汇总

    - order_count / item_count：所有匹配订单
    - gross_sales：已结清订单的 final_price 之和
    - net_sales：已结清订单逐单扣除保险费、包装费、运费后的净额之和（逐单最低为 0）
    """
    result = await db.execute(
        apply_filter(select(Order), order_filter).execution_options(populate_existing=True)
    )
    orders = result.scalars().unique().all()

    summary = OrderSummary(order_count=len(orders))
    for order in orders:
        detail = order.detail
        if detail is None:
            continue
        summary.item_count += sum(p.product_qty for p in detail.products)
        if detail.payment_status != PaymentStatus.SETTLEMENT:
            continue
        summary.gross_sales += detail.final_price or 0
        summary.net_sales += net_of_fees(detail.final_price, parse_stored_fees(detail.other_fees))
    return summary
