"""
业务服务层
"""
from backoffice.services.order_service import OrderService
from backoffice.services.order_import import OrderImporter
from backoffice.services.excel_import import ExcelImportService

__all__ = [
    "OrderService",
    "OrderImporter",
    "ExcelImportService",
]
