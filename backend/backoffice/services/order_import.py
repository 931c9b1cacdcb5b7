"""
订单批量导入

把表格解析出的行（dict）逐行转换为创建订单请求，复用 OrderService.create_order 的全部规则：
- 订单编号已存在的行直接跳过
- 客户 / 发货地点 / 销售渠道 / 收款方式 / 商品按名称（不区分大小写）查找，不存在则创建
- 每一行独立成事务：某行失败只回滚该行（包括为它新建的引用数据）
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Type

import pandas as pd
import structlog
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import Settings, get_settings
from backoffice.database import begin_write
from backoffice.models.customer import Customer, CustomerCategory, DeliveryPlace, PaymentMethod, SalesChannel
from backoffice.models.order import PaymentStatus
from backoffice.models.product import Product, ProductVariant
from backoffice.schemas.order import (
    NominalDiscount,
    OrderCreate,
    OrderDetailInfo,
    OrderDetailInput,
    OrderInfo,
    OrderLineInput,
    OtherFees,
    PaymentInfo,
    PercentDiscount,
    ShippingCostFee,
    ShippingServiceInput,
)
from backoffice.services.order_service import OrderService
from backoffice.services.references import ReferenceValidator
from backoffice.utils.order_code import ParsedProductLine, clean_text, parse_product_lines

logger = structlog.get_logger(__name__)


# 支付状态文本映射（表格里可能是中文或英文）
PAYMENT_STATUS_MAP = {
    "待支付": PaymentStatus.PENDING,
    "未支付": PaymentStatus.PENDING,
    "已支付": PaymentStatus.SETTLEMENT,
    "已结清": PaymentStatus.SETTLEMENT,
    "已取消": PaymentStatus.CANCEL,
    "分期": PaymentStatus.INSTALLMENTS,
    "分期付款": PaymentStatus.INSTALLMENTS,
}

MAX_ERRORS = 50


class RowError(Exception):
    """单行数据无法转换为订单"""


def _to_float(raw: Any) -> Optional[float]:
    text = clean_text(raw).replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        raise RowError(f"无法解析金额：{raw}") from None


def _to_datetime(raw: Any) -> Optional[datetime]:
    if raw is None:
        return None
    if isinstance(raw, pd.Timestamp):
        return raw.to_pydatetime()
    if isinstance(raw, datetime):
        return raw
    text = clean_text(raw)
    if not text:
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        raise RowError(f"无法解析日期：{raw}")
    return parsed.to_pydatetime()


def parse_payment_status(raw: Any) -> Optional[PaymentStatus]:
    text = clean_text(raw)
    if not text:
        return None
    if text in PAYMENT_STATUS_MAP:
        return PAYMENT_STATUS_MAP[text]
    try:
        return PaymentStatus(text.upper())
    except ValueError:
        raise RowError(f"未知的支付状态：{raw}") from None


def parse_discount(raw: Any):
    """'10%' -> 百分比折扣；纯数字 -> 固定金额折扣；空 -> None"""
    text = clean_text(raw)
    if not text:
        return None
    if text.endswith("%"):
        value = _to_float(text[:-1])
        return PercentDiscount(type="percent", value=value) if value else None
    value = _to_float(text)
    return NominalDiscount(type="nominal", value=value) if value else None


class OrderImporter:
    """订单导入器"""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.orders = OrderService(db, self.settings)
        self.refs = ReferenceValidator(db)

    async def import_rows(self, rows: Iterable[Dict[str, Any]], start_row: int = 1) -> Dict[str, Any]:
        """
        导入多行订单

        Args:
            rows: 行数据（键见 ExcelImportService.COLUMN_MAP）
            start_row: 第一行在源文件中的行号（用于错误定位）

        Returns:
            导入统计 {"total", "created", "skipped", "failed", "errors"}
        """
        stats: Dict[str, Any] = {"total": 0, "created": 0, "skipped": 0, "failed": 0, "errors": []}

        for offset, row in enumerate(rows):
            row_no = start_row + offset
            stats["total"] += 1
            code = clean_text(row.get("code"))
            # 每行一个写事务：查重、补建引用数据、创建订单
            await begin_write(self.db)

            if code and await self.refs.code_exists(code):
                stats["skipped"] += 1
                logger.info("订单编号已存在，跳过", row=row_no, code=code)
                continue

            try:
                payload, cancel_after = await self._build_payload(row, code)
            except (RowError, ValidationError) as exc:
                await self.db.rollback()
                self._record_error(stats, row_no, code, str(exc))
                continue

            response = await self.orders.create_order(payload)
            if not response.success:
                self._record_error(stats, row_no, code, response.message)
                continue

            if cancel_after:
                # 历史已取消订单：先按正常规则创建，再走取消流程退回库存
                cancelled = await self.orders.cancel_order(response.data["id"])
                if not cancelled.success:
                    self._record_error(stats, row_no, code, cancelled.message)
                    continue

            stats["created"] += 1

        if self.db.in_transaction():
            await self.db.commit()

        logger.info(
            "订单导入完成",
            total=stats["total"],
            created=stats["created"],
            skipped=stats["skipped"],
            failed=stats["failed"],
        )
        return stats

    @staticmethod
    def _record_error(stats: Dict[str, Any], row_no: int, code: str, message: str) -> None:
        stats["failed"] += 1
        if len(stats["errors"]) < MAX_ERRORS:
            stats["errors"].append({"row": row_no, "code": code or None, "error": message})
        logger.warning("订单导入失败", row=row_no, code=code, error=message)

    async def _build_payload(self, row: Dict[str, Any], code: str):
        """行数据 -> (OrderCreate, 是否需要创建后取消)"""
        orderer_name = clean_text(row.get("orderer"))
        if not orderer_name:
            raise RowError("缺少下单客户")

        parsed_lines = parse_product_lines(row.get("products"))
        if not parsed_lines:
            raise RowError("商品及数量为空或格式不正确")

        orderer = await self._find_or_create_named(Customer, orderer_name, category=CustomerCategory.CUSTOMER)
        target_name = clean_text(row.get("delivery_target"))
        target = (
            await self._find_or_create_named(Customer, target_name, category=CustomerCategory.CUSTOMER)
            if target_name
            else orderer
        )
        place = await self._optional_named(DeliveryPlace, row.get("delivery_place"))
        channel = await self._optional_named(SalesChannel, row.get("sales_channel"))
        method = await self._optional_named(PaymentMethod, row.get("payment_method"))

        lines = [await self._line_for(parsed) for parsed in parsed_lines]
        await self.db.flush()

        status = parse_payment_status(row.get("payment_status"))
        cancel_after = status == PaymentStatus.CANCEL

        shipping_cost = _to_float(row.get("shipping_cost"))
        shipping_type = clean_text(row.get("shipping_type")) or None
        shipping_service = clean_text(row.get("shipping_service")) or None

        fees = OtherFees(
            shipping_cost=ShippingCostFee(
                shipping_service=shipping_service, type=shipping_type, cost=shipping_cost
            ) if shipping_cost else None,
            discount=parse_discount(row.get("discount")),
        )

        services = []
        if shipping_service:
            services.append(
                ShippingServiceInput(
                    shipping_name=shipping_type or shipping_service,
                    service_name=shipping_service,
                    type=shipping_type,
                    shipping_cost=shipping_cost,
                )
            )

        payload = OrderCreate(
            order=OrderInfo(
                orderer_customer_id=orderer.id,
                delivery_target_customer_id=target.id,
                delivery_place_id=place.id if place else None,
                sales_channel_id=channel.id if channel else None,
                order_date=_to_datetime(row.get("order_date")),
                note=clean_text(row.get("note")) or None,
            ),
            order_detail=OrderDetailInput(
                detail=OrderDetailInfo(
                    code=code or None,
                    other_fees=fees,
                    original_final_price=_to_float(row.get("final_price")),
                    receipt_number=clean_text(row.get("receipt_number")) or None,
                ),
                payment_method=PaymentInfo(
                    id=method.id if method else None,
                    status=None if cancel_after else status,
                    date=_to_datetime(row.get("payment_date")),
                ),
                order_products=lines,
                shipping_services=services,
            ),
        )
        return payload, cancel_after

    async def _optional_named(self, model: Type, raw: Any):
        name = clean_text(raw)
        if not name:
            return None
        return await self._find_or_create_named(model, name)

    async def _find_or_create_named(self, model: Type, name: str, **defaults):
        """按名称（不区分大小写）查找，不存在则创建"""
        result = await self.db.execute(
            select(model)
            .where(func.lower(model.name) == name.lower())
            .order_by(model.created_at)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        entity = result.scalar_one_or_none()
        if entity is None:
            entity = model(name=name, **defaults)
            self.db.add(entity)
            await self.db.flush()
            logger.info("导入时新建引用数据", model=model.__tablename__, name=name)
        return entity

    async def _line_for(self, parsed: ParsedProductLine) -> OrderLineInput:
        """商品名 + SKU -> 订单行；缺失的商品 / 规格会被创建（不跟踪库存）"""
        product = await self._find_or_create_named(Product, parsed.product_name, variants=[])
        wanted = [sku.lower() for sku in parsed.skus]

        variant = next((v for v in product.variants if v.sku and v.sku.lower() in wanted), None)
        if variant is None and parsed.skus:
            variant = ProductVariant(sku=parsed.skus[0], stock=None, prices=[])
            product.variants.append(variant)
            await self.db.flush()

        return OrderLineInput(
            product_id=product.id,
            product_variant_id=variant.id if variant else None,
            product_qty=parsed.quantity,
        )
