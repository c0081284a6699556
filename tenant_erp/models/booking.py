"""Booking models - service appointments and their completion records."""
import enum
from sqlalchemy import Column, String, Numeric, Text, Date, Time, DateTime, ForeignKey, JSON, Float
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class BookingStatus(enum.Enum):
    """Booking lifecycle states."""
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    ASSIGNED = 'assigned'
    ALLOCATED = 'allocated'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class PaymentStatus(enum.Enum):
    """Payment states."""
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


TERMINAL_STATUSES = (BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value)


class Booking(Base):
    """Booking for one or more services on a customer's vehicle."""

    __tablename__ = 'booking'

    id = Column(IdType, primary_key=True, autoincrement=True)
    organization_id = Column(IdType, ForeignKey('organization.id'), nullable=True, index=True)
    customer_id = Column(IdType, ForeignKey('app_user.id'), nullable=False, index=True)
    washer_id = Column(IdType, ForeignKey('app_user.id'), nullable=True, index=True)
    vehicle_id = Column(IdType, ForeignKey('vehicle.id'), nullable=True)
    service_ids = Column(JSON, nullable=False)

    booking_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    address = Column(Text, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('AppUser', foreign_keys=[customer_id])
    washer = relationship('AppUser', foreign_keys=[washer_id])
    vehicle = relationship('Vehicle')
    history = relationship('BookingHistory', back_populates='booking', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Booking(id={self.id}, date={self.booking_date}, status='{self.status}')>"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES


class BookingHistory(Base):
    """Completion evidence: before/after photos and the customer's signature."""

    __tablename__ = 'booking_history'

    id = Column(IdType, primary_key=True, autoincrement=True)
    booking_id = Column(IdType, ForeignKey('booking.id', ondelete='CASCADE'), nullable=False, index=True)
    washer_id = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    before_image = Column(String(255), nullable=True)
    after_image = Column(String(255), nullable=True)
    signature_image = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    booking = relationship('Booking', back_populates='history')

    def __repr__(self):
        return f"<BookingHistory(id={self.id}, booking_id={self.booking_id})>"
