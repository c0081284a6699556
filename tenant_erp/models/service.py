"""Service model - bookable services (e.g. exterior wash)."""
from sqlalchemy import Column, String, Integer, Numeric, Text, DateTime, JSON
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class Service(Base):
    """Bookable service with price and duration in minutes."""

    __tablename__ = 'service'

    id = Column(IdType, primary_key=True, autoincrement=True)
    service_key = Column(String(100), nullable=False, unique=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration = Column(Integer, nullable=False, default=60)
    features = Column(JSON, nullable=True)
    badge = Column(String(50), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default='active')  # active, inactive
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Service(id={self.id}, key='{self.service_key}', price={self.price})>"
