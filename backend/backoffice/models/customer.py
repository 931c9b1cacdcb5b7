"""
客户及订单引用的基础资料模型
"""
import enum
from datetime import datetime
from sqlalchemy import String, DateTime, Boolean, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional

from backoffice.database import Base, generate_id


class CustomerCategory(str, enum.Enum):
    """客户类别（决定价格档位）"""
    CUSTOMER = "CUSTOMER"
    DROPSHIPPER = "DROPSHIPPER"
    MEMBER = "MEMBER"
    RESELLER = "RESELLER"
    AGENT = "AGENT"


class Customer(Base):
    """客户表"""
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(128), index=True, comment="客户名称")
    category: Mapped[CustomerCategory] = mapped_column(
        SAEnum(CustomerCategory, native_enum=False, length=16),
        default=CustomerCategory.CUSTOMER,
        comment="客户类别",
    )
    status: Mapped[str] = mapped_column(String(16), default="ACTIVE", comment="状态")

    # 联系方式
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, comment="电话")
    email: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="邮箱")
    address: Mapped[Optional[str]] = mapped_column(String(512), nullable=True, comment="地址")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")


class PaymentMethod(Base):
    """收款方式表"""
    __tablename__ = "payment_methods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="名称")
    bank_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="银行名称")
    bank_branch: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, comment="开户行")
    account_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="账号")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")


class DeliveryPlace(Base):
    """发货地点表"""
    __tablename__ = "delivery_places"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(128), index=True, comment="名称")
    address: Mapped[Optional[str]] = mapped_column(String(512), nullable=True, comment="地址")
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, comment="电话")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")


class SalesChannel(Base):
    """销售渠道表"""
    __tablename__ = "sales_channels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(128), index=True, comment="渠道名称")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, comment="是否启用")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
