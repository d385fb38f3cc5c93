"""
Common mixins for cooperative-scoped models
"""
from sqlalchemy import Column, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr
from sqlalchemy.sql import func


class CooperativeMixin:
    """Mixin for models owned by a cooperative (the tenant of this system)"""

    @declared_attr
    def cooperative_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("cooperatives.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

