"""
订单模型
"""
import enum
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, Float, Boolean, JSON, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Any, Dict, List, Optional

from backoffice.database import Base, generate_id
from backoffice.models.customer import Customer, DeliveryPlace, PaymentMethod, SalesChannel
from backoffice.models.product import Product


class PaymentStatus(str, enum.Enum):
    """支付状态"""
    PENDING = "PENDING"
    SETTLEMENT = "SETTLEMENT"
    CANCEL = "CANCEL"
    INSTALLMENTS = "INSTALLMENTS"


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    # 下单客户 / 收货客户（可以是同一人）
    orderer_customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id"), index=True, comment="下单客户ID"
    )
    delivery_target_customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id"), index=True, comment="收货客户ID"
    )
    delivery_place_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("delivery_places.id"), nullable=True, index=True, comment="发货地点ID"
    )
    sales_channel_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("sales_channels.id"), nullable=True, index=True, comment="销售渠道ID"
    )

    order_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, index=True, comment="下单日期")
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True, comment="备注")

    # 系统字段
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")

    # 关联关系
    orderer_customer: Mapped["Customer"] = relationship(
        Customer, foreign_keys=[orderer_customer_id], lazy="selectin"
    )
    delivery_target_customer: Mapped["Customer"] = relationship(
        Customer, foreign_keys=[delivery_target_customer_id], lazy="selectin"
    )
    delivery_place: Mapped[Optional["DeliveryPlace"]] = relationship(DeliveryPlace, lazy="selectin")
    sales_channel: Mapped[Optional["SalesChannel"]] = relationship(SalesChannel, lazy="selectin")
    detail: Mapped[Optional["OrderDetail"]] = relationship(
        "OrderDetail", back_populates="order", uselist=False, cascade="all, delete-orphan", lazy="selectin"
    )
    installments: Mapped[List["Installment"]] = relationship(
        "Installment", back_populates="order", cascade="all, delete-orphan", lazy="selectin"
    )
    shipping_services: Mapped[List["ShippingService"]] = relationship(
        "ShippingService", back_populates="order", cascade="all, delete-orphan", lazy="selectin"
    )


class OrderDetail(Base):
    """订单明细表（持有金额与支付状态）"""
    __tablename__ = "order_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), unique=True, comment="订单ID")
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, comment="订单编号")

    # 金额信息
    original_final_price: Mapped[float] = mapped_column(Float, default=0, comment="系统计算的总价")
    final_price: Mapped[float] = mapped_column(Float, default=0, comment="最终总价（可手动覆盖）")
    other_fees: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True, comment="其他费用/折扣")

    # 支付信息
    payment_method_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("payment_methods.id"), nullable=True, comment="收款方式ID"
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, native_enum=False, length=16),
        default=PaymentStatus.PENDING,
        index=True,
        comment="支付状态",
    )
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, comment="支付时间")
    receipt_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True, comment="快递单号")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")

    order: Mapped["Order"] = relationship("Order", back_populates="detail")
    payment_method: Mapped[Optional["PaymentMethod"]] = relationship(PaymentMethod, lazy="selectin")
    products: Mapped[List["OrderProduct"]] = relationship(
        "OrderProduct",
        back_populates="order_detail",
        cascade="all, delete-orphan",
        order_by=lambda: [OrderProduct.created_at, OrderProduct.id],
        lazy="selectin",
    )


class OrderProduct(Base):
    """订单行表"""
    __tablename__ = "order_products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), index=True, comment="订单ID")
    order_detail_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("order_details.id", ondelete="CASCADE"), index=True, comment="订单明细ID"
    )

    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True, comment="商品ID")
    product_variant_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("product_variants.id"), nullable=True, index=True, comment="规格ID"
    )

    # 数量和下单时的单价快照
    product_qty: Mapped[int] = mapped_column(Integer, default=1, comment="购买数量")
    product_price: Mapped[float] = mapped_column(Float, default=0, comment="单价")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")

    order: Mapped["Order"] = relationship("Order")
    order_detail: Mapped["OrderDetail"] = relationship("OrderDetail", back_populates="products")
    product: Mapped["Product"] = relationship(Product, lazy="selectin")


class Installment(Base):
    """分期付款记录表"""
    __tablename__ = "installments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), index=True, comment="订单ID")
    payment_method_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("payment_methods.id"), index=True, comment="收款方式ID"
    )
    payment_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="付款时间")
    amount: Mapped[float] = mapped_column(Float, default=0, comment="金额")
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否已付")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")

    order: Mapped["Order"] = relationship("Order", back_populates="installments")


class ShippingService(Base):
    """物流服务表（承运商 / 服务及费用明细）"""
    __tablename__ = "shipping_services"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), index=True, comment="订单ID")

    shipping_name: Mapped[str] = mapped_column(String(64), comment="快递公司")
    service_name: Mapped[str] = mapped_column(String(64), comment="服务名称")
    type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, comment="服务类型")
    etd: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, comment="预计时效")
    weight: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="重量")
    is_cod: Mapped[bool] = mapped_column(Boolean, default=False, comment="是否货到付款")

    # 费用明细
    shipping_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="运费")
    shipping_cashback: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="运费返现")
    shipping_cost_net: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="净运费")
    grandtotal: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="合计")
    service_fee: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="服务费")
    net_income: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="净收入")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")

    order: Mapped["Order"] = relationship("Order", back_populates="shipping_services")
