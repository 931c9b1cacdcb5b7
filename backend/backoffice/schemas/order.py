"""
订单相关 Schema
"""
from pydantic import BaseModel, Field, StrictFloat, field_validator
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from backoffice.models.customer import CustomerCategory
from backoffice.models.order import PaymentStatus


# ---------------------------------------------------------------------------
# otherFees：带版本号的结构化费用文档
# ---------------------------------------------------------------------------

class PercentDiscount(BaseModel):
    """按百分比折扣"""
    type: Literal["percent"]
    value: StrictFloat


class NominalDiscount(BaseModel):
    """固定金额折扣"""
    type: Literal["nominal"]
    value: StrictFloat


OrderDiscount = Annotated[Union[PercentDiscount, NominalDiscount], Field(discriminator="type")]


class ProductDiscount(BaseModel):
    """单个规格的折扣（按件）"""
    product_variant_id: str = Field(min_length=1)
    discount_type: Literal["percent", "nominal"]
    discount_amount: StrictFloat

    class Config:
        extra = "forbid"


class ShippingCostFee(BaseModel):
    """运费（固定金额）"""
    shipping_service: Optional[str] = None
    type: Optional[str] = None
    cost: StrictFloat = 0


class InstallmentFee(BaseModel):
    """分期付款：金额计入总价，并生成 Installment 记录"""
    payment_method_id: str = Field(min_length=1)
    payment_date: Optional[datetime] = None
    amount: StrictFloat


class OtherFees(BaseModel):
    """订单其他费用 / 折扣"""
    version: Literal[1] = 1
    packaging: Optional[StrictFloat] = None
    insurance: Optional[StrictFloat] = None
    # 按重量附加费：直接按原值加到总价上（重量系数固定为 1）
    weight: Optional[StrictFloat] = None
    shipping_cost: Optional[ShippingCostFee] = None
    discount: Optional[OrderDiscount] = None
    product_discounts: List[ProductDiscount] = []
    installments: Optional[InstallmentFee] = None

    class Config:
        extra = "forbid"


# ---------------------------------------------------------------------------
# 创建 / 更新订单的请求体
# ---------------------------------------------------------------------------

class OrderInfo(BaseModel):
    """订单基本信息"""
    orderer_customer_id: str = Field(min_length=1)
    # 不传则与下单客户相同
    delivery_target_customer_id: Optional[str] = None
    delivery_place_id: Optional[str] = None
    sales_channel_id: Optional[str] = None
    order_date: Optional[datetime] = None
    note: Optional[str] = None


class OrderDetailInfo(BaseModel):
    """订单明细信息"""
    code: Optional[str] = None
    other_fees: Optional[OtherFees] = None
    # 调用方手动指定的最终总价（覆盖系统计算值）
    original_final_price: Optional[StrictFloat] = None
    receipt_number: Optional[str] = None


class PaymentInfo(BaseModel):
    """支付信息"""
    id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    date: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value


class OrderLineInput(BaseModel):
    """订单行"""
    product_id: str = Field(min_length=1)
    product_variant_id: Optional[str] = None
    # 数量上限：32 位有符号整数
    product_qty: int = Field(gt=0, le=2**31 - 1)


class ShippingServiceInput(BaseModel):
    """物流服务"""
    shipping_name: str = Field(min_length=1)
    service_name: str = Field(min_length=1)
    type: Optional[str] = None
    etd: Optional[str] = None
    weight: Optional[float] = None
    is_cod: bool = False
    shipping_cost: Optional[float] = None
    shipping_cashback: Optional[float] = None
    shipping_cost_net: Optional[float] = None
    grandtotal: Optional[float] = None
    service_fee: Optional[float] = None
    net_income: Optional[float] = None


class OrderDetailInput(BaseModel):
    detail: OrderDetailInfo = OrderDetailInfo()
    payment_method: PaymentInfo = PaymentInfo()
    order_products: List[OrderLineInput] = Field(min_length=1)
    shipping_services: List[ShippingServiceInput] = []


class OrderCreate(BaseModel):
    """创建订单请求"""
    order: OrderInfo
    order_detail: OrderDetailInput


class OrderInfoUpdate(BaseModel):
    orderer_customer_id: Optional[str] = None
    delivery_target_customer_id: Optional[str] = None
    delivery_place_id: Optional[str] = None
    sales_channel_id: Optional[str] = None
    order_date: Optional[datetime] = None
    note: Optional[str] = None


class OrderDetailUpdate(BaseModel):
    detail: Optional[OrderDetailInfo] = None
    payment_method: Optional[PaymentInfo] = None
    # 传入则整体替换订单行
    order_products: Optional[List[OrderLineInput]] = None
    # 传入则删除旧记录后整体重建
    shipping_services: Optional[List[ShippingServiceInput]] = None


class OrderUpdate(BaseModel):
    """更新订单请求（所有字段可选）"""
    order: Optional[OrderInfoUpdate] = None
    order_detail: Optional[OrderDetailUpdate] = None


# ---------------------------------------------------------------------------
# 查询条件
# ---------------------------------------------------------------------------

class OrderFilter(BaseModel):
    """订单列表查询条件"""
    sales_channel_id: Optional[str] = None
    customer_category: Optional[CustomerCategory] = None
    payment_status: Optional[PaymentStatus] = None
    product_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    orderer_customer_id: Optional[str] = None
    delivery_target_customer_id: Optional[str] = None
    delivery_place_id: Optional[str] = None

    # 时间筛选（优先级：区间 > 月份 > 年份 > 单日）
    order_date: Optional[date] = None
    order_month: Optional[int] = Field(default=None, ge=1, le=12)
    order_year: Optional[int] = Field(default=None, ge=1, le=9999)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    # 模糊匹配
    code: Optional[str] = None
    receipt_number: Optional[str] = None
    unavailable_receipt: bool = False
    customer_name: Optional[str] = None
    product_name: Optional[str] = None
    phone_number: Optional[str] = None

    page: int = Field(default=1, ge=1, le=10**6)
    page_size: int = Field(default=20, ge=1, le=100)


# ---------------------------------------------------------------------------
# 响应
# ---------------------------------------------------------------------------

class CustomerBrief(BaseModel):
    id: str
    name: str
    category: CustomerCategory
    phone_number: Optional[str] = None

    class Config:
        from_attributes = True


class NamedRef(BaseModel):
    id: str
    name: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentMethodBrief(BaseModel):
    id: str
    name: Optional[str] = None
    bank_name: Optional[str] = None

    class Config:
        from_attributes = True


class OrderProductSchema(BaseModel):
    """订单行信息"""
    id: str
    product_id: str
    product_variant_id: Optional[str] = None
    product_qty: int
    product_price: float = 0
    product: Optional[NamedRef] = None

    class Config:
        from_attributes = True


class InstallmentSchema(BaseModel):
    id: str
    payment_method_id: str
    payment_date: datetime
    amount: float
    is_paid: bool

    class Config:
        from_attributes = True


class ShippingServiceSchema(BaseModel):
    id: str
    shipping_name: str
    service_name: str
    type: Optional[str] = None
    etd: Optional[str] = None
    weight: Optional[float] = None
    is_cod: bool = False
    shipping_cost: Optional[float] = None
    shipping_cashback: Optional[float] = None
    shipping_cost_net: Optional[float] = None
    grandtotal: Optional[float] = None
    service_fee: Optional[float] = None
    net_income: Optional[float] = None

    class Config:
        from_attributes = True


class OrderDetailSchema(BaseModel):
    """订单明细信息"""
    id: str
    code: str
    original_final_price: float
    final_price: float
    other_fees: Optional[Dict[str, Any]] = None
    payment_method_id: Optional[str] = None
    payment_method: Optional[PaymentMethodBrief] = None
    payment_status: PaymentStatus
    payment_date: Optional[datetime] = None
    receipt_number: Optional[str] = None
    products: List[OrderProductSchema] = []

    class Config:
        from_attributes = True


class OrderSchema(BaseModel):
    """订单信息"""
    id: str
    order_date: datetime
    note: Optional[str] = None

    orderer_customer: CustomerBrief
    delivery_target_customer: CustomerBrief
    delivery_place: Optional[NamedRef] = None
    sales_channel: Optional[NamedRef] = None

    detail: Optional[OrderDetailSchema] = None
    installments: List[InstallmentSchema] = []
    shipping_services: List[ShippingServiceSchema] = []

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    """订单列表响应"""
    total: int
    items: List[OrderSchema]


class OrderSummary(BaseModel):
    """订单汇总（仅统计已结清订单的金额）"""
    order_count: int = 0
    item_count: int = 0
    gross_sales: float = 0
    net_sales: float = 0
