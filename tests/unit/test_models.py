"""
Unit tests for SQLAlchemy models.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from tenant_erp.models import AppUser, Organization, Product, SystemFeature, FeatureModule
from tenant_erp.utils.validators import utcnow


class TestOrganizationModel:
    """Tests for Organization model."""

    def test_defaults(self, session):
        """New organizations start pending and hidden from the public listing."""
        organization = Organization(
            institution_name='Riverside Institute',
            principal_name='Rita River',
            contact_email='hello@riverside.edu',
            contact_phone='9000000001',
        )
        session.add(organization)
        session.commit()

        assert organization.id is not None
        assert organization.status == 'pending'
        assert organization.institution_type == 'school'
        assert organization.show_in_listing is False
        assert organization.accepts_logins() is False

    def test_contact_email_unique(self, session, org):
        duplicate = Organization(
            institution_name='Copycat',
            principal_name='Copy Cat',
            contact_email=org.contact_email,
            contact_phone='9000000002',
        )
        session.add(duplicate)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_login_and_registration_flags(self, org):
        assert org.accepts_logins() is True
        assert org.accepts_registrations() is True

        org.allow_registration = False
        assert org.accepts_registrations() is False
        assert org.accepts_logins() is True


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_password_hashing(self, session):
        user = AppUser(name='Hash Test', email='hash@test.com')
        user.set_password('securepassword')
        session.add(user)
        session.commit()

        assert user.password_hash != 'securepassword'
        assert user.check_password('securepassword') is True
        assert user.check_password('wrong') is False

    def test_new_user_is_pending_global_customer(self, session):
        user = AppUser(name='New', email='new@test.com')
        user.set_password('password123')
        session.add(user)
        session.commit()

        assert user.status == 'pending'
        assert user.user_type == 'customer'
        assert user.is_global is True
        assert user.is_active is False
        assert user.failed_login_attempts == 0

    def test_same_email_allowed_in_different_scopes(self, session, org, other_org):
        """Uniqueness is per (organization, email)."""
        for org_id in (org.id, other_org.id):
            user = AppUser(name='Twin', email='twin@test.com', organization_id=org_id)
            user.set_password('password123')
            session.add(user)
        session.commit()

        assert session.query(AppUser).filter_by(email='twin@test.com').count() == 2

    def test_same_email_rejected_in_one_organization(self, session, org):
        for _ in range(2):
            user = AppUser(name='Twin', email='twin@test.com', organization_id=org.id)
            user.set_password('password123')
            session.add(user)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_same_email_rejected_globally(self, session, org):
        """Global accounts share one email namespace, affiliated or not."""
        for institution_id in (None, org.id):
            user = AppUser(name='Twin', email='twin@test.com', institution_id=institution_id)
            user.set_password('password123')
            session.add(user)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_global_email_may_repeat_inside_organization(self, session, org):
        for org_id in (None, org.id):
            user = AppUser(name='Twin', email='twin@test.com', organization_id=org_id)
            user.set_password('password123')
            session.add(user)
        session.commit()

        assert session.query(AppUser).filter_by(email='twin@test.com').count() == 2

    def test_home_organization(self, org_student, institution_superadmin, customer):
        assert org_student.home_organization_id == org_student.organization_id
        assert institution_superadmin.home_organization_id == institution_superadmin.institution_id
        assert customer.home_organization_id is None

    def test_lock_window(self):
        now = utcnow()
        user = AppUser(name='Locked', email='locked@test.com')
        assert user.is_locked(now) is False

        user.locked_until = now + timedelta(minutes=15)
        assert user.is_locked(now) is True
        assert user.is_locked(now + timedelta(minutes=16)) is False


class TestProductModel:
    """Tests for Product computed properties."""

    def test_effective_price_prefers_sale_price(self):
        product = Product(base_price=20, sale_price=15)
        assert product.effective_price == 15

        product.sale_price = None
        assert product.effective_price == 20

    @pytest.mark.parametrize('quantity, expected', [
        (0, 'out_of_stock'),
        (3, 'low_stock'),
        (5, 'low_stock'),
        (6, 'in_stock'),
    ])
    def test_stock_status(self, quantity, expected):
        product = Product(stock_quantity=quantity, low_stock_threshold=5)
        assert product.stock_status == expected


class TestSystemFeatureModel:
    """Tests for the feature catalog tables."""

    def test_modules_ordered_and_cascade_deleted(self, session, catalog_system):
        system = session.get(SystemFeature, catalog_system.id)
        assert [m.module_key for m in system.modules] == ['passes', 'lots']

        session.delete(system)
        session.commit()
        assert session.query(FeatureModule).count() == 0

    def test_module_as_selected_module(self):
        module = FeatureModule(module_key='passes', module_name='Passes', module_description=None)
        assert module.as_selected_module() == {'key': 'passes', 'name': 'Passes', 'description': 'Passes'}
