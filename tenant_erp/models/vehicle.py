"""Vehicle model - customer cars that bookings are made for."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class Vehicle(Base):
    """Vehicle owned by a customer."""

    __tablename__ = 'vehicle'
    __table_args__ = (
        UniqueConstraint('customer_id', 'license_plate', name='uq_vehicle_customer_plate'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    customer_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=True)
    color = Column(String(50), nullable=True)
    license_plate = Column(String(20), nullable=True)
    vehicle_type = Column(String(50), nullable=True)  # sedan, suv, hatchback, ...
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('AppUser')

    def __repr__(self):
        return f"<Vehicle(id={self.id}, customer_id={self.customer_id}, plate='{self.license_plate}')>"
