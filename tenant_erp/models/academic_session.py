"""AcademicSession model - school years/terms per institution."""
import enum
from sqlalchemy import Column, String, Boolean, Integer, Text, Date, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class SessionStatus(enum.Enum):
    """Academic session states."""
    UPCOMING = 'upcoming'
    ONGOING = 'ongoing'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


DEFAULT_WORKING_DAYS = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']


class AcademicSession(Base):
    """Academic session of one institution. At most one is active at a time."""

    __tablename__ = 'academic_session'
    __table_args__ = (
        UniqueConstraint('institution_id', 'session_name', name='uq_academic_session_name'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    institution_id = Column(IdType, ForeignKey('organization.id'), nullable=False, index=True)
    session_name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=SessionStatus.UPCOMING.value)
    description = Column(Text, nullable=True)
    working_days = Column(JSON, nullable=True)
    number_of_terms = Column(Integer, nullable=False, default=2)
    term_structure = Column(JSON, nullable=True)
    holidays = Column(JSON, nullable=True)
    settings = Column(JSON, nullable=True)
    created_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    updated_by = Column(IdType, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    institution = relationship('Organization')

    def __repr__(self):
        return f"<AcademicSession(id={self.id}, name='{self.session_name}', active={self.is_active})>"
