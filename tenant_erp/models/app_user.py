"""AppUser model - global and organization-scoped accounts in one table."""
import enum
from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, JSON, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from tenant_erp.database import Base, IdType


class UserStatus(enum.Enum):
    """Account states. New registrations start as PENDING."""
    PENDING = 'pending'
    ACTIVE = 'active'
    INACTIVE = 'inactive'


class UserType(enum.Enum):
    """Kinds of account."""
    STUDENT = 'student'
    TEACHER = 'teacher'
    STAFF = 'staff'
    ADMIN = 'admin'
    SUPERADMIN = 'superadmin'
    CUSTOMER = 'customer'
    WASHER = 'washer'
    ACCOUNTANT = 'accountant'
    LIBRARIAN = 'librarian'
    DRIVER = 'driver'
    SECURITY = 'security'


ADMIN_TYPES = (UserType.ADMIN.value, UserType.SUPERADMIN.value)


class AppUser(Base):
    """
    Platform user.

    ``organization_id`` is NULL for global accounts and set for accounts that
    belong to one organization's scope. Global accounts may still be affiliated
    with an institution through ``institution_id`` (e.g. the superadmin created
    when an organization registers).
    """

    __tablename__ = 'app_user'
    __table_args__ = (
        UniqueConstraint('organization_id', 'email', name='uq_app_user_org_email'),
        # NULL organization_id never collides in the constraint above
        Index(
            'uq_app_user_global_email',
            'email',
            unique=True,
            postgresql_where=text('organization_id IS NULL'),
            sqlite_where=text('organization_id IS NULL')
        ),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    organization_id = Column(IdType, ForeignKey('organization.id'), nullable=True, index=True)
    institution_id = Column(IdType, ForeignKey('organization.id'), nullable=True, index=True)

    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    user_type = Column(String(20), nullable=False, default=UserType.CUSTOMER.value)
    phone = Column(String(20), nullable=True)
    role = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)
    profile_image = Column(String(255), nullable=True)
    custom_fields = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default=UserStatus.PENDING.value)

    # Feature tree as JSON text; empty means "inherit from organization"
    assigned_features = Column(Text, nullable=True)

    # Lockout bookkeeping (naive UTC)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization', back_populates='users', foreign_keys=[organization_id])
    institution = relationship('Organization', foreign_keys=[institution_id])

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_global(self):
        return self.organization_id is None

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE.value

    @property
    def is_admin(self):
        return self.user_type in ADMIN_TYPES

    @property
    def home_organization_id(self):
        """Organization whose feature selection this user inherits."""
        return self.organization_id if self.organization_id is not None else self.institution_id

    def is_locked(self, now):
        """Check if the account is inside a lockout window."""
        return self.locked_until is not None and self.locked_until > now

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}', org={self.organization_id}, type='{self.user_type}')>"
