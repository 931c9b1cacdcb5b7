"""
订单相关 API

路由只做转发：请求体交给 OrderService 校验，查询参数在这里组装成 OrderFilter；
响应体就是 ServiceResponse，HTTP 状态码取自其中的 statusCode。
"""
from datetime import date
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, Query
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database import get_db
from backoffice.models.customer import CustomerCategory
from backoffice.models.order import PaymentStatus
from backoffice.schemas.common import ServiceResponse
from backoffice.schemas.order import OrderFilter
from backoffice.services.order_service import OrderService

router = APIRouter()


def to_response(resp: ServiceResponse) -> JSONResponse:
    return JSONResponse(status_code=resp.status_code, content=resp.model_dump(mode="json", by_alias=True))


def order_filter_params(
    sales_channel_id: Optional[str] = Query(None, description="销售渠道ID"),
    customer_category: Optional[CustomerCategory] = Query(None, description="客户类别"),
    payment_status: Optional[PaymentStatus] = Query(None, description="支付状态"),
    product_id: Optional[str] = Query(None, description="商品ID"),
    payment_method_id: Optional[str] = Query(None, description="收款方式ID"),
    orderer_customer_id: Optional[str] = Query(None, description="下单客户ID"),
    delivery_target_customer_id: Optional[str] = Query(None, description="收货客户ID"),
    delivery_place_id: Optional[str] = Query(None, description="发货地点ID"),
    order_date: Optional[date] = Query(None, description="下单日期"),
    order_month: Optional[int] = Query(None, ge=1, le=12, description="月份"),
    order_year: Optional[int] = Query(None, ge=1, le=9999, description="年份"),
    start_date: Optional[date] = Query(None, description="开始日期"),
    end_date: Optional[date] = Query(None, description="结束日期"),
    code: Optional[str] = Query(None, description="订单编号（模糊）"),
    receipt_number: Optional[str] = Query(None, description="快递单号（模糊）"),
    unavailable_receipt: bool = Query(False, description="仅无快递单号"),
    customer_name: Optional[str] = Query(None, description="客户名称（模糊）"),
    product_name: Optional[str] = Query(None, description="商品名称（模糊）"),
    phone_number: Optional[str] = Query(None, description="手机号（模糊）"),
    page: int = Query(1, ge=1, le=10**6, description="页码"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量"),
) -> OrderFilter:
    """查询参数 -> OrderFilter"""
    try:
        return OrderFilter(
            sales_channel_id=sales_channel_id,
            customer_category=customer_category,
            payment_status=payment_status,
            product_id=product_id,
            payment_method_id=payment_method_id,
            orderer_customer_id=orderer_customer_id,
            delivery_target_customer_id=delivery_target_customer_id,
            delivery_place_id=delivery_place_id,
            order_date=order_date,
            order_month=order_month,
            order_year=order_year,
            start_date=start_date,
            end_date=end_date,
            code=code,
            receipt_number=receipt_number,
            unavailable_receipt=unavailable_receipt,
            customer_name=customer_name,
            product_name=product_name,
            phone_number=phone_number,
            page=page,
            page_size=page_size,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


@router.post("")
async def create_order(
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """创建订单"""
    return to_response(await OrderService(db).create_order(payload))


@router.get("")
async def list_orders(
    order_filter: OrderFilter = Depends(order_filter_params),
    db: AsyncSession = Depends(get_db),
):
    """获取订单列表"""
    return to_response(await OrderService(db).list_orders(order_filter))


@router.get("/summary")
async def get_summary(
    order_filter: OrderFilter = Depends(order_filter_params),
    db: AsyncSession = Depends(get_db),
):
    """订单汇总（筛选条件同订单列表，分页参数不生效）"""
    return to_response(await OrderService(db).get_summary(order_filter))


@router.get("/{order_id}")
async def get_order_detail(order_id: str, db: AsyncSession = Depends(get_db)):
    """获取订单详情"""
    return to_response(await OrderService(db).get_order(order_id))


@router.patch("/{order_id}")
async def update_order(
    order_id: str,
    payload: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """更新订单（只需传入要修改的字段）"""
    return to_response(await OrderService(db).update_order(order_id, payload))


@router.post("/{order_id}/cancel")
async def cancel_order(order_id: str, db: AsyncSession = Depends(get_db)):
    """取消订单并退回库存"""
    return to_response(await OrderService(db).cancel_order(order_id))


@router.delete("/{order_id}")
async def delete_order(order_id: str, db: AsyncSession = Depends(get_db)):
    """删除订单（不退回库存，需先取消）"""
    return to_response(await OrderService(db).delete_order(order_id))
