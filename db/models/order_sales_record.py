"""
db/models/order_sales_record.py

Persisted order-sales table.

Table and column names reproduce the pre-existing `transformed_data`
layout exactly so tables created by earlier loaders remain readable.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class OrderSalesRecord(Base):
    __tablename__ = "transformed_data"

    order_id: Mapped[str] = mapped_column("Order_ID", String(255), primary_key=True)
    region: Mapped[str | None] = mapped_column("Region", String(255), nullable=True)
    country: Mapped[str | None] = mapped_column("Country", String(255), nullable=True)
    item_type: Mapped[str | None] = mapped_column("Item_Type", String(255), nullable=True)
    sales_channel: Mapped[str | None] = mapped_column("Sales_Channel", String(255), nullable=True)
    order_priority: Mapped[str | None] = mapped_column(
        "Order_Priority",
        String(255),
        nullable=True,
        comment="Low, Medium, High, Critical, Unknown",
    )
    order_date: Mapped[date | None] = mapped_column("Order_Date", Date, nullable=True)
    ship_date: Mapped[date | None] = mapped_column("Ship_Date", Date, nullable=True)
    units_sold: Mapped[int | None] = mapped_column("Units_Sold", Integer, nullable=True)
    unit_price: Mapped[float | None] = mapped_column("Unit_Price", Float, nullable=True)
    unit_cost: Mapped[float | None] = mapped_column("Unit_Cost", Float, nullable=True)
    total_revenue: Mapped[float | None] = mapped_column("Total_Revenue", Float, nullable=True)
    order_processing_time: Mapped[int | None] = mapped_column(
        "Order_Processing_Time",
        Integer,
        nullable=True,
        comment="Whole days between order and ship date",
    )
    gross_margin: Mapped[float | None] = mapped_column(
        "Gross_Margin",
        Float,
        nullable=True,
        comment="(total revenue - total cost) / total revenue",
    )
