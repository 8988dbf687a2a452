"""
db/base.py

Declarative base for the SQLAlchemy models.
"""

from typing import Any

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Project-wide declarative base.
    All models must inherit from this class.
    """

    type_annotation_map: dict[type, Any] = {}
