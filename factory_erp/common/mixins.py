"""
Common mixins for persisted models
"""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class AuditMixin:
    """Mixin recording the acting user supplied by the identity layer"""

    created_by = Column(String(64), nullable=True)
    updated_by = Column(String(64), nullable=True)

    def touch(self, user_id):
        self.updated_by = user_id
