"""
数据库模型
"""
from backoffice.models.customer import Customer, CustomerCategory, PaymentMethod, DeliveryPlace, SalesChannel
from backoffice.models.product import Product, ProductVariant, ProductPrice
from backoffice.models.order import Order, OrderDetail, OrderProduct, Installment, ShippingService, PaymentStatus
from backoffice.models.import_job import ImportJob

__all__ = [
    "Customer", "CustomerCategory", "PaymentMethod", "DeliveryPlace", "SalesChannel",
    "Product", "ProductVariant", "ProductPrice",
    "Order", "OrderDetail", "OrderProduct", "Installment", "ShippingService", "PaymentStatus",
    "ImportJob",
]
