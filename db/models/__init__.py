"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.order_sales_record import OrderSalesRecord

__all__ = [
    "OrderSalesRecord",
]
