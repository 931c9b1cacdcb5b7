"""
订单服务

创建 / 更新 / 取消 / 删除订单，以及只读查询的统一入口。

- 所有写操作在一个事务内完成：引用校验 -> 定价 -> 写入 + 库存变动，任一步失败整体回滚
- 入口方法不向外抛异常，统一返回 ServiceResponse
"""
from collections import Counter
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.config import Settings, get_settings
from backoffice.database import begin_write, generate_id, run_in_transaction
from backoffice.models.customer import CustomerCategory
from backoffice.models.order import (
    Installment,
    Order,
    OrderDetail,
    OrderProduct,
    PaymentStatus,
    ShippingService,
)
from backoffice.schemas.common import ServiceResponse
from backoffice.schemas.order import (
    OrderCreate,
    OrderDetailUpdate,
    OrderFilter,
    OrderInfoUpdate,
    OrderLineInput,
    OrderListResponse,
    OrderSchema,
    OrderUpdate,
    OtherFees,
)
from backoffice.services.errors import Conflict, Internal, InvalidInput, NotFound, OrderError
from backoffice.services.fees import compute_total, parse_stored_fees
from backoffice.services.inventory import InventoryLedger
from backoffice.services.order_query import list_orders, load_order, summarize_orders
from backoffice.services.pricing import PricedLine, PriceResolver, price_lines
from backoffice.services.references import ReferenceValidator

logger = structlog.get_logger(__name__)

P = TypeVar("P", bound=BaseModel)


def _dump_fees(fees: Optional[OtherFees]) -> Optional[Dict[str, Any]]:
    return fees.model_dump(mode="json", exclude_none=True) if fees is not None else None


def _has_installment(fees: Optional[OtherFees]) -> bool:
    """收款方式和金额都给出时才生成分期记录"""
    return fees is not None and fees.installments is not None and bool(fees.installments.amount)


def _variant_quantities(lines) -> Counter:
    """规格ID -> 数量合计（未指定规格的行不计入，它们不动库存）"""
    quantities: Counter = Counter()
    for line in lines:
        if line.product_variant_id:
            quantities[line.product_variant_id] += line.product_qty
    return quantities


class OrderService:
    """订单服务"""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.refs = ReferenceValidator(db)
        self.ledger = InventoryLedger(db)
        self.prices = PriceResolver(db)

    # ------------------------------------------------------------------
    # 公共入口
    # ------------------------------------------------------------------

    async def create_order(self, payload: Any) -> ServiceResponse:
        return await self._guard("create_order", lambda: self._create(payload), write=True)

    async def update_order(self, order_id: str, payload: Any) -> ServiceResponse:
        return await self._guard("update_order", lambda: self._update(order_id, payload), write=True)

    async def cancel_order(self, order_id: str) -> ServiceResponse:
        return await self._guard("cancel_order", lambda: self._cancel(order_id), write=True)

    async def delete_order(self, order_id: str) -> ServiceResponse:
        return await self._guard("delete_order", lambda: self._delete(order_id), write=True)

    async def get_order(self, order_id: str) -> ServiceResponse:
        return await self._guard("get_order", lambda: self._get(order_id))

    async def list_orders(self, order_filter: Any = None) -> ServiceResponse:
        return await self._guard("list_orders", lambda: self._list(order_filter))

    async def get_summary(self, order_filter: Any = None) -> ServiceResponse:
        return await self._guard("get_summary", lambda: self._summary(order_filter))

    # ------------------------------------------------------------------
    # 错误转换
    # ------------------------------------------------------------------

    async def _guard(
        self,
        action: str,
        fn: Callable[[], Awaitable[ServiceResponse]],
        write: bool = False,
    ) -> ServiceResponse:
        """
        执行入口逻辑，把异常转换为失败响应

        写操作在事务开始时就申请写锁；只读操作使用普通事务，不与写操作排队。
        """
        try:
            if write:
                await begin_write(self.db)
            response = await fn()
            # 结束读取产生的事务，释放 SQLite 写锁
            if self.db.in_transaction():
                await self.db.commit()
            return response
        except OrderError as exc:
            await self.db.rollback()
            logger.warning("订单操作失败", action=action, kind=exc.kind, error=exc.message)
            return ServiceResponse.failure(exc.message, exc.data, exc.status_code)
        except IntegrityError as exc:
            await self.db.rollback()
            if "order_details.code" in str(exc.orig):
                logger.warning("订单编号冲突", action=action)
                return ServiceResponse.failure("订单编号已存在", None, Conflict.status_code)
            logger.error("数据完整性错误", action=action, error=str(exc.orig))
            return ServiceResponse.failure("数据完整性错误", None, Internal.status_code)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("数据库错误", action=action, error=str(exc))
            return ServiceResponse.failure("数据库错误", None, Internal.status_code)
        except Exception as exc:
            await self.db.rollback()
            logger.exception("订单操作异常", action=action, error=str(exc))
            return ServiceResponse.failure("服务器内部错误", None, Internal.status_code)

    @staticmethod
    def _parse(model: Type[P], payload: Any) -> P:
        """dict 请求体 -> pydantic 模型；校验失败转换为 InvalidInput"""
        if isinstance(payload, model):
            return payload
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in exc.errors()
            ]
            raise InvalidInput("请求参数不合法", {"errors": errors}) from exc

    async def _require_order(self, order_id: str) -> Order:
        order = await load_order(self.db, order_id)
        if order is None:
            raise NotFound(f"订单不存在：{order_id}")
        if order.detail is None:
            raise Internal(f"订单 {order_id} 缺少订单明细")
        return order

    async def _order_data(self, order_id: str) -> Dict[str, Any]:
        order = await load_order(self.db, order_id)
        return OrderSchema.model_validate(order).model_dump(mode="json")

    # ------------------------------------------------------------------
    # 定价
    # ------------------------------------------------------------------

    async def _discount_basis(self, lines: List[PricedLine], fees: Optional[OtherFees], category: CustomerCategory):
        """
        规格折扣的计算基础：规格ID -> (按档位重新查询的单价, 数量)

        同一规格出现在多行时，数量取第一条匹配行的数量。
        """
        if fees is None or not fees.product_discounts:
            return {}
        first_qty: Dict[str, int] = {}
        for line in lines:
            if line.product_variant_id and line.product_variant_id not in first_qty:
                first_qty[line.product_variant_id] = line.product_qty
        basis = {}
        for discount in fees.product_discounts:
            variant_id = discount.product_variant_id
            if variant_id in basis or variant_id not in first_qty:
                continue
            basis[variant_id] = (await self.prices.variant_unit_price(variant_id, category), first_qty[variant_id])
        return basis

    async def _total(self, lines: List[PricedLine], fees: Optional[OtherFees], category: CustomerCategory) -> float:
        line_total = sum(line.subtotal for line in lines)
        basis = await self._discount_basis(lines, fees, category)
        return compute_total(line_total, fees, basis)

    async def _validate_fees(self, fees: Optional[OtherFees]) -> None:
        if fees is not None and fees.installments is not None:
            await self.refs.payment_method(fees.installments.payment_method_id, "分期收款方式")

    # ------------------------------------------------------------------
    # 创建
    # ------------------------------------------------------------------

    async def _create(self, payload: Any) -> ServiceResponse:
        data = self._parse(OrderCreate, payload)
        info = data.order
        detail_input = data.order_detail
        detail_info = detail_input.detail
        payment = detail_input.payment_method
        fees = detail_info.other_fees

        if payment.status == PaymentStatus.CANCEL:
            raise InvalidInput("新建订单的支付状态不能为 CANCEL")

        # 1. 引用校验
        orderer = await self.refs.customer(info.orderer_customer_id, "下单客户")
        target_id = info.delivery_target_customer_id or orderer.id
        if target_id != orderer.id:
            await self.refs.customer(target_id, "收货客户")
        await self.refs.delivery_place(info.delivery_place_id)
        await self.refs.sales_channel(info.sales_channel_id)
        await self.refs.payment_method(payment.id)
        await self._validate_fees(fees)

        products = await self.refs.products(line.product_id for line in detail_input.order_products)
        self.refs.check_line_variants(detail_input.order_products, products)

        if detail_info.code:
            code = detail_info.code
            await self.refs.ensure_code_available(code)
        else:
            code = await self.refs.allocate_code(self.settings)

        # 2. 定价
        priced = price_lines(products, detail_input.order_products, orderer.category)
        total = await self._total(priced, fees, orderer.category)
        override = detail_info.original_final_price
        final_price = override if override is not None else total

        # 3. 写入 + 扣减库存
        async def _write(db: AsyncSession) -> str:
            order = Order(
                id=generate_id(),
                orderer_customer_id=orderer.id,
                delivery_target_customer_id=target_id,
                delivery_place_id=info.delivery_place_id,
                sales_channel_id=info.sales_channel_id,
                order_date=info.order_date or datetime.now(),
                note=info.note,
                installments=[],
                shipping_services=[],
            )
            order.detail = OrderDetail(
                id=generate_id(),
                order_id=order.id,
                code=code,
                original_final_price=total,
                final_price=final_price,
                other_fees=_dump_fees(fees),
                payment_method_id=payment.id,
                payment_status=payment.status or PaymentStatus.PENDING,
                payment_date=payment.date,
                receipt_number=detail_info.receipt_number,
                products=[],
            )
            db.add(order)
            await db.flush()

            for line in priced:
                if line.product_variant_id:
                    await self.ledger.reserve(line.product_variant_id, line.product_qty)
                order.detail.products.append(
                    OrderProduct(
                        order_id=order.id,
                        product_id=line.product_id,
                        product_variant_id=line.product_variant_id,
                        product_qty=line.product_qty,
                        product_price=line.unit_price,
                    )
                )

            if _has_installment(fees):
                order.installments.append(
                    Installment(
                        order_id=order.id,
                        payment_method_id=fees.installments.payment_method_id,
                        payment_date=fees.installments.payment_date or datetime.now(),
                        amount=fees.installments.amount,
                    )
                )

            for service in detail_input.shipping_services:
                order.shipping_services.append(ShippingService(order_id=order.id, **service.model_dump()))

            await db.flush()
            return order.id

        order_id = await run_in_transaction(self.db, _write)
        logger.info("订单已创建", order_id=order_id, code=code, final_price=final_price, lines=len(priced))
        return ServiceResponse.ok("订单创建成功", await self._order_data(order_id), 201)

    # ------------------------------------------------------------------
    # 更新
    # ------------------------------------------------------------------

    async def _update(self, order_id: str, payload: Any) -> ServiceResponse:
        data = self._parse(OrderUpdate, payload)
        info = data.order or OrderInfoUpdate()
        detail_update = data.order_detail or OrderDetailUpdate()
        detail_info = detail_update.detail
        payment = detail_update.payment_method

        order = await self._require_order(order_id)
        detail = order.detail
        if detail.payment_status == PaymentStatus.CANCEL:
            raise Conflict("订单已取消，不能修改", {"order_id": order_id})
        if payment is not None and payment.status == PaymentStatus.CANCEL:
            raise InvalidInput("取消订单请使用取消接口")
        if detail_update.order_products is not None and not detail_update.order_products:
            raise InvalidInput("订单至少需要一个商品")

        # 1. 只校验发生变化的引用
        orderer_changed = bool(info.orderer_customer_id) and info.orderer_customer_id != order.orderer_customer_id
        orderer = await self.refs.customer(info.orderer_customer_id or order.orderer_customer_id, "下单客户")
        if info.delivery_target_customer_id:
            await self.refs.customer(info.delivery_target_customer_id, "收货客户")
        if "delivery_place_id" in info.model_fields_set:
            await self.refs.delivery_place(info.delivery_place_id)
        if "sales_channel_id" in info.model_fields_set:
            await self.refs.sales_channel(info.sales_channel_id)
        if payment is not None and "id" in payment.model_fields_set:
            await self.refs.payment_method(payment.id)

        fees_changed = detail_info is not None and "other_fees" in detail_info.model_fields_set
        fees = detail_info.other_fees if fees_changed else parse_stored_fees(detail.other_fees)
        if fees_changed:
            await self._validate_fees(fees)

        new_code = detail_info.code if detail_info is not None else None
        if new_code and new_code != detail.code:
            await self.refs.ensure_code_available(new_code)

        # 2. 重新定价
        lines_changed = detail_update.order_products is not None
        if lines_changed:
            lines = detail_update.order_products
        else:
            lines = [
                OrderLineInput(
                    product_id=row.product_id,
                    product_variant_id=row.product_variant_id,
                    product_qty=row.product_qty,
                )
                for row in detail.products
            ]

        if lines_changed or orderer_changed:
            products = await self.refs.products(line.product_id for line in lines)
            self.refs.check_line_variants(lines, products)
            priced = price_lines(products, lines, orderer.category)
        else:
            # 价格快照不变
            priced = [
                PricedLine(row.product_id, row.product_variant_id, row.product_qty, row.product_price)
                for row in detail.products
            ]

        override = detail_info.original_final_price if detail_info is not None else None
        reprice = lines_changed or orderer_changed or fees_changed
        total = await self._total(priced, fees, orderer.category) if reprice else None

        # 3. 写入 + 库存差额
        async def _write(db: AsyncSession) -> None:
            for field in ("orderer_customer_id", "delivery_target_customer_id"):
                value = getattr(info, field)
                if value:
                    setattr(order, field, value)
            for field in ("delivery_place_id", "sales_channel_id", "note"):
                if field in info.model_fields_set:
                    setattr(order, field, getattr(info, field))
            if info.order_date is not None:
                order.order_date = info.order_date

            if new_code:
                detail.code = new_code
            if detail_info is not None and "receipt_number" in detail_info.model_fields_set:
                detail.receipt_number = detail_info.receipt_number
            if fees_changed:
                detail.other_fees = _dump_fees(fees)

            if payment is not None:
                if "id" in payment.model_fields_set:
                    detail.payment_method_id = payment.id
                if payment.status is not None:
                    detail.payment_status = payment.status
                if "date" in payment.model_fields_set:
                    detail.payment_date = payment.date

            if total is not None:
                detail.original_final_price = total
                detail.final_price = override if override is not None else total
            elif override is not None:
                detail.final_price = override

            if lines_changed:
                await self._reconcile_stock(detail.products, priced)
                # 差额必须在删除旧订单行之前计算
                detail.products.clear()
                await db.flush()
                for line in priced:
                    detail.products.append(
                        OrderProduct(
                            order_id=order.id,
                            product_id=line.product_id,
                            product_variant_id=line.product_variant_id,
                            product_qty=line.product_qty,
                            product_price=line.unit_price,
                        )
                    )
            elif orderer_changed:
                for row, line in zip(detail.products, priced):
                    row.product_price = line.unit_price

            if fees_changed and _has_installment(fees):
                self._upsert_installment(order, fees)

            if detail_update.shipping_services is not None:
                order.shipping_services.clear()
                await db.flush()
                for service in detail_update.shipping_services:
                    order.shipping_services.append(ShippingService(order_id=order.id, **service.model_dump()))

            await db.flush()

        await run_in_transaction(self.db, _write)
        logger.info(
            "订单已更新",
            order_id=order_id,
            repriced=reprice,
            lines_changed=lines_changed,
            final_price=detail.final_price,
        )
        return ServiceResponse.ok("订单更新成功", await self._order_data(order_id))

    async def _reconcile_stock(self, previous_rows: List[OrderProduct], lines: List[PricedLine]) -> None:
        """
        按规格比较新旧数量，只对差额做库存变动

        先归还（数量减少 / 被移除的规格），再扣减，同一订单内换规格时不会被自己占用的库存卡住。
        """
        previous = _variant_quantities(previous_rows)
        current = _variant_quantities(lines)

        deltas = {variant_id: qty - previous.get(variant_id, 0) for variant_id, qty in current.items()}
        for variant_id, qty in previous.items():
            if variant_id not in current:
                deltas[variant_id] = -qty

        for variant_id, delta in sorted(deltas.items(), key=lambda item: item[1]):
            await self.ledger.adjust_by_delta(variant_id, delta)
            if delta:
                logger.debug("库存差额已调整", variant_id=variant_id, delta=delta)

    @staticmethod
    def _upsert_installment(order: Order, fees: OtherFees) -> None:
        """分期记录按收款方式查找或创建"""
        plan = fees.installments
        for installment in order.installments:
            if installment.payment_method_id == plan.payment_method_id:
                installment.amount = plan.amount
                if plan.payment_date is not None:
                    installment.payment_date = plan.payment_date
                return
        order.installments.append(
            Installment(
                order_id=order.id,
                payment_method_id=plan.payment_method_id,
                payment_date=plan.payment_date or datetime.now(),
                amount=plan.amount,
            )
        )

    # ------------------------------------------------------------------
    # 取消 / 删除
    # ------------------------------------------------------------------

    async def _cancel(self, order_id: str) -> ServiceResponse:
        order = await self._require_order(order_id)
        detail = order.detail
        if detail.payment_status == PaymentStatus.CANCEL:
            raise Conflict("订单已取消", {"order_id": order_id})

        restock_all = self.settings.cancel_restock_all_variants

        async def _write(db: AsyncSession) -> None:
            detail.payment_status = PaymentStatus.CANCEL
            for row in detail.products:
                if restock_all:
                    await self.ledger.release_product(row.product_id, row.product_qty)
                elif row.product_variant_id:
                    await self.ledger.release(row.product_variant_id, row.product_qty)
            await db.flush()

        await run_in_transaction(self.db, _write)
        logger.info("订单已取消", order_id=order_id, code=detail.code, restock_all_variants=restock_all)
        return ServiceResponse.ok("订单已取消", await self._order_data(order_id))

    async def _delete(self, order_id: str) -> ServiceResponse:
        order = await load_order(self.db, order_id)
        if order is None:
            raise NotFound(f"订单不存在：{order_id}")

        async def _write(db: AsyncSession) -> None:
            await db.delete(order)
            await db.flush()

        await run_in_transaction(self.db, _write)
        logger.info("订单已删除", order_id=order_id)
        return ServiceResponse.ok("订单已删除", {"id": order_id})

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def _get(self, order_id: str) -> ServiceResponse:
        order = await load_order(self.db, order_id)
        if order is None:
            raise NotFound(f"订单不存在：{order_id}")
        return ServiceResponse.ok("获取成功", OrderSchema.model_validate(order).model_dump(mode="json"))

    async def _list(self, order_filter: Any) -> ServiceResponse:
        criteria = self._parse(OrderFilter, order_filter or {})
        total, orders = await list_orders(self.db, criteria)
        body = OrderListResponse(total=total, items=[OrderSchema.model_validate(o) for o in orders])
        return ServiceResponse.ok("获取成功", body.model_dump(mode="json"))

    async def _summary(self, order_filter: Any) -> ServiceResponse:
        criteria = self._parse(OrderFilter, order_filter or {})
        summary = await summarize_orders(self.db, criteria)
        return ServiceResponse.ok("获取成功", summary.model_dump())
