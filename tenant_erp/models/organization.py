"""Organization model - each institution/business (tenant) using the platform."""
import enum
from sqlalchemy import Column, String, Boolean, Integer, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tenant_erp.database import Base, IdType


class OrganizationStatus(enum.Enum):
    """Lifecycle states of an organization."""
    PENDING = 'pending'
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    REJECTED = 'rejected'


class InstitutionType(enum.Enum):
    """Kinds of institution that can register."""
    COLLEGE = 'college'
    SCHOOL = 'school'
    UNIVERSITY = 'university'
    INSTITUTE = 'institute'


class Organization(Base):
    """Organization (tenant) model."""

    __tablename__ = 'organization'

    id = Column(IdType, primary_key=True, autoincrement=True)
    institution_name = Column(String(200), nullable=False)
    institution_type = Column(String(20), nullable=False, default=InstitutionType.SCHOOL.value)
    principal_name = Column(String(200), nullable=False)
    contact_email = Column(String(255), nullable=False, unique=True)
    contact_phone = Column(String(20), nullable=False)
    established_year = Column(Integer, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    pincode = Column(String(10), nullable=True)
    website = Column(String(255), nullable=True)
    logo_path = Column(String(255), nullable=True)

    # Feature tree as JSON text: {system_key: {system_name, system_description, selected_modules: [...]}}
    selected_features = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=OrganizationStatus.PENDING.value)
    allow_login = Column(Boolean, nullable=False, default=True)
    allow_registration = Column(Boolean, nullable=False, default=True)
    show_in_listing = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    users = relationship('AppUser', back_populates='organization', foreign_keys='AppUser.organization_id')

    def __repr__(self):
        return f"<Organization(id={self.id}, name='{self.institution_name}', status='{self.status}')>"

    @property
    def is_active(self):
        return self.status == OrganizationStatus.ACTIVE.value

    def accepts_logins(self):
        """Check if members of this organization may log in."""
        return self.is_active and bool(self.allow_login)

    def accepts_registrations(self):
        """Check if new members may self-register."""
        return self.is_active and bool(self.allow_registration)
