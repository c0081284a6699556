"""Models package - exports all SQLAlchemy models."""
# Tenancy and identity
from tenant_erp.models.organization import Organization, OrganizationStatus, InstitutionType
from tenant_erp.models.app_user import AppUser, UserStatus, UserType, ADMIN_TYPES
from tenant_erp.models.system_feature import SystemFeature, FeatureModule

# Service business
from tenant_erp.models.vehicle import Vehicle
from tenant_erp.models.booking import Booking, BookingHistory, BookingStatus, PaymentStatus, TERMINAL_STATUSES

# Catalog
from tenant_erp.models.category import Category
from tenant_erp.models.product import Product, product_category
from tenant_erp.models.service import Service

# Institutions
from tenant_erp.models.academic_session import AcademicSession, SessionStatus, DEFAULT_WORKING_DAYS

__all__ = [
    'Organization', 'OrganizationStatus', 'InstitutionType',
    'AppUser', 'UserStatus', 'UserType', 'ADMIN_TYPES',
    'SystemFeature', 'FeatureModule',
    'Vehicle', 'Booking', 'BookingHistory', 'BookingStatus', 'PaymentStatus', 'TERMINAL_STATUSES',
    'Category', 'Product', 'product_category', 'Service',
    'AcademicSession', 'SessionStatus', 'DEFAULT_WORKING_DAYS',
]
