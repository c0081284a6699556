import json
from io import BytesIO

import pytest
from PIL import Image

from tenant_erp import create_app
from tenant_erp.database import create_all, drop_all, get_session
from tenant_erp.models import (
    AppUser, Organization, Vehicle, Category, Product, Service, SystemFeature, FeatureModule
)
from tenant_erp.services.feature_defaults import builtin_entry
from tenant_erp.services.token_service import issue_token

PASSWORD = 'password123'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestingConfig')
    return app


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema per test inside an application context."""
    with app.app_context():
        create_all()
        yield
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(database):
    """Database session shared with the request handlers."""
    return get_session()


def persist(session, obj):
    """Commit a row and detach it so later requests cannot expire it."""
    session.add(obj)
    session.commit()
    session.refresh(obj)
    session.expunge(obj)
    return obj


def make_user(session, email, user_type='student', organization_id=None, institution_id=None,
              status='active', **fields):
    user = AppUser(
        name=fields.pop('name', email.split('@')[0].title()),
        email=email,
        user_type=user_type,
        organization_id=organization_id,
        institution_id=institution_id,
        status=status,
        failed_login_attempts=0,
        **fields
    )
    user.set_password(PASSWORD)
    return persist(session, user)


def auth_headers(user):
    token, _ = issue_token(user)
    return {'Authorization': f'Bearer {token}'}


def png_upload(name='image.png', color='red'):
    """(stream, filename, mimetype) tuple accepted by the test client for multipart uploads."""
    buf = BytesIO()
    Image.new('RGB', (8, 8), color).save(buf, format='PNG')
    buf.seek(0)
    return buf, name, 'image/png'


# ============================================================================
# Organizations
# ============================================================================

@pytest.fixture(scope='function')
def org(session):
    """Active organization with id 5 that has library management selected."""
    organization = Organization(
        id=5,
        institution_name='Green Valley School',
        institution_type='school',
        principal_name='Ada Principal',
        contact_email='office@greenvalley.edu',
        contact_phone='9876543210',
        status='active',
        allow_login=True,
        allow_registration=True,
        show_in_listing=True,
        selected_features=json.dumps({
            'library_management': builtin_entry('library_management'),
            'system_administration': builtin_entry('system_administration'),
        }),
    )
    return persist(session, organization)


@pytest.fixture(scope='function')
def other_org(session):
    """Second active organization for isolation tests."""
    organization = Organization(
        id=9,
        institution_name='Hill Top College',
        institution_type='college',
        principal_name='Bo Dean',
        contact_email='office@hilltop.edu',
        contact_phone='9123456780',
        status='active',
    )
    return persist(session, organization)


# ============================================================================
# Users
# ============================================================================

@pytest.fixture(scope='function')
def platform_admin(session):
    """Global superadmin without an institution."""
    return make_user(session, 'root@platform.test', user_type='superadmin')


@pytest.fixture(scope='function')
def org_admin(session, org):
    return make_user(session, 'admin@greenvalley.edu', user_type='admin', organization_id=org.id)


@pytest.fixture(scope='function')
def org_student(session, org):
    return make_user(session, 'student@greenvalley.edu', user_type='student', organization_id=org.id)


@pytest.fixture(scope='function')
def other_admin(session, other_org):
    return make_user(session, 'admin@hilltop.edu', user_type='admin', organization_id=other_org.id)


@pytest.fixture(scope='function')
def institution_superadmin(session, org):
    """Global superadmin affiliated with the organization (created at registration)."""
    return make_user(session, 'owner@greenvalley.edu', user_type='superadmin', institution_id=org.id)


@pytest.fixture(scope='function')
def customer(session):
    return make_user(session, 'carla@customer.test', user_type='customer')


@pytest.fixture(scope='function')
def other_customer(session):
    return make_user(session, 'dan@customer.test', user_type='customer')


@pytest.fixture(scope='function')
def washer(session):
    return make_user(session, 'walt@washer.test', user_type='washer')


@pytest.fixture(scope='function')
def global_admin(session):
    """Global admin used to manage bookings and the catalog."""
    return make_user(session, 'ops@platform.test', user_type='admin')


# ============================================================================
# Catalog
# ============================================================================

@pytest.fixture(scope='function')
def vehicle(session, customer):
    return persist(session, Vehicle(
        customer_id=customer.id, make='Toyota', model='Corolla', year=2020,
        color='Blue', license_plate='ABC123', vehicle_type='sedan'
    ))


@pytest.fixture(scope='function')
def wash_service(session):
    return persist(session, Service(
        service_key='exterior_wash', title='Exterior Wash', price=25, duration=60,
        features=['Foam', 'Rinse'], display_order=1, status='active'
    ))


@pytest.fixture(scope='function')
def category(session):
    return persist(session, Category(category_key='car_care', name='Car Care', status='active'))


@pytest.fixture(scope='function')
def product(session, category):
    product = Product(
        product_key='shine_wax', name='Shine Wax', slug='shine-wax', sku='WAX-001',
        brand='Glossy', base_price=20, sale_price=15, stock_quantity=12,
        low_stock_threshold=5, featured=True, is_home_view=True, status='active'
    )
    product.categories.append(session.get(Category, category.id))
    return persist(session, product)


@pytest.fixture(scope='function')
def catalog_system(session):
    system = SystemFeature(
        system_key='parking_management', system_name='Parking Management',
        system_description='Parking lots and passes', display_order=30
    )
    system.modules.append(FeatureModule(module_key='passes', module_name='Passes', module_description='Parking passes'))
    system.modules.append(FeatureModule(module_key='lots', module_name='Lots', module_description='Parking lots',
                                        display_order=1))
    return persist(session, system)
