"""
sales_etl/api/routers package marker.
"""

from sales_etl.api.routers.etl import router as etl_router

__all__ = [
    "etl_router",
]
