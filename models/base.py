"""
SQLAlchemy base configuration for Identity Reconciliation System
This module sets up the SQLAlchemy declarative base and the shared
columns every table carries (id, timestamps and soft delete)
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    """Timestamp source for created_at / updated_at"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models"""
    pass


class BaseModel(Base):
    """
    Abstract model carrying the primary key, audit timestamps and
    soft-delete marker shared by every table
    """
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Rows are never physically removed, only marked
    deleted_at = Column(DateTime, nullable=True, index=True)
