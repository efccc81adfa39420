"""
Storefront Core - Notification Models
=======================================
In-app notification records written by the notification sink.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, JSON, Index,
)
from sqlalchemy.sql import func

from config.database import Base


class NotificationEvent(str, enum.Enum):
    ORDER_PLACED = "order_placed"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_STATUS_CHANGED = "order_status_changed"
    RETURN_REQUESTED = "return_requested"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    event = Column(String, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    reference_type = Column(String, nullable=True)   # "order"
    reference_id = Column(String, nullable=True)
    metadata_json = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_notification_user_created", "user_id", "created_at"),
    )
