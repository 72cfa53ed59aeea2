"""Tenant (connected shop) model."""
from sqlalchemy import Column, String, DateTime, Numeric, Text, JSON
from sqlalchemy.sql import func

from app.database import Base


class Tenant(Base):
    """A connected shop: its encrypted credential and surcharge configuration."""

    __tablename__ = "tenants"

    shop_id = Column(String(255), primary_key=True)  # shop domain, e.g. a.myshopify.com

    # Platform connection. access_token holds Fernet ciphertext only
    access_token = Column(Text)
    scope = Column(String(1024))

    # Surcharge configuration; min_order_value NULL means "not configured yet"
    min_order_value = Column(Numeric(12, 2))
    surcharge = Column(Numeric(12, 2))
    surcharge_label = Column(JSON, nullable=False, default=dict)  # locale -> display text

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_configured(self) -> bool:
        return self.min_order_value is not None

    def __repr__(self) -> str:
        # Never include access_token
        return f"<Tenant shop_id={self.shop_id!r} configured={self.is_configured}>"
