"""
商品 / 规格 / 价格模型
"""
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, Float, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import List, Optional

from backoffice.database import Base, generate_id


class Product(Base):
    """商品表"""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    name: Mapped[str] = mapped_column(String(256), index=True, comment="商品名称")
    type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, comment="商品类型")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")

    # 规格按 (created_at, id) 排序，第一个即默认规格
    variants: Mapped[List["ProductVariant"]] = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by=lambda: [ProductVariant.created_at, ProductVariant.id],
        lazy="selectin",
    )

    @property
    def default_variant(self) -> Optional["ProductVariant"]:
        """未指定规格的订单行使用的默认规格；没有规格时为 None"""
        return self.variants[0] if self.variants else None

    def find_variant(self, variant_id: str) -> Optional["ProductVariant"]:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class ProductVariant(Base):
    """商品规格表（库存计数器）"""
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("stock IS NULL OR stock >= 0", name="ck_variant_stock_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True, comment="商品ID")
    sku: Mapped[Optional[str]] = mapped_column(String(64), index=True, nullable=True, comment="SKU编码")

    # NULL 表示不跟踪库存（不限量）
    stock: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="库存")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now, comment="记录更新时间")

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    prices: Mapped[List["ProductPrice"]] = relationship(
        "ProductPrice",
        back_populates="variant",
        cascade="all, delete-orphan",
        order_by=lambda: [ProductPrice.created_at, ProductPrice.id],
        lazy="selectin",
    )

    @property
    def price(self) -> Optional["ProductPrice"]:
        """定价使用的价格记录（第一条）"""
        return self.prices[0] if self.prices else None


class ProductPrice(Base):
    """规格价格表"""
    __tablename__ = "product_prices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)

    product_variant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("product_variants.id"), index=True, comment="规格ID"
    )

    # 各档位价格；未设置的档位回退到 normal
    normal: Mapped[float] = mapped_column(Float, default=0, comment="零售价")
    member: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="会员价")
    reseller: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="分销价")
    agent: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="代理价")
    buy: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="进货价")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, comment="记录创建时间")

    variant: Mapped["ProductVariant"] = relationship("ProductVariant", back_populates="prices")
