"""
sales_etl/repositories package marker.
"""

from sales_etl.repositories.order_query_repository import OrderQueryRepository, build_statement
from sales_etl.repositories.order_sales_repository import OrderSalesRepository, record_to_row

__all__ = [
    "OrderQueryRepository",
    "OrderSalesRepository",
    "build_statement",
    "record_to_row",
]
