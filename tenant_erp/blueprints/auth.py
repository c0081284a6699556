"""Authentication blueprint - global and organization-scoped accounts."""
from flask import Blueprint, current_app, g

from tenant_erp.blueprints.metrics import record_login
from tenant_erp.database import get_session
from tenant_erp.exceptions import AccessDenied, AccountLocked, ApiError
from tenant_erp.middleware import get_organization, require_auth, resolve_acting_user
from tenant_erp.services import auth_service, feature_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_public_organization, serialize_user

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def _login_outcome(error):
    if isinstance(error, AccountLocked):
        return 'locked'
    if isinstance(error, AccessDenied):
        return 'inactive'
    return 'failed'


def _login_response(user, token, expires_in):
    return success({
        'token': token,
        'token_type': 'Bearer',
        'expires_in': expires_in,
        'user': serialize_user(user),
    }, 'Login successful')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Self-registration of a global account (starts pending)."""
    user = auth_service.register_global_user(get_session(), get_json_body())
    return created({'user': serialize_user(user)}, 'Registration successful. Awaiting approval.')


@auth_bp.route('/login', methods=['POST'])
def login():
    data = get_json_body()
    try:
        user, token, expires_in = auth_service.login_global(get_session(), data.get('email'), data.get('password'))
    except ApiError as e:
        record_login('global', _login_outcome(e))
        raise
    record_login('global', 'success')
    return _login_response(user, token, expires_in)


@auth_bp.route('/org/<org_id>/register', methods=['POST'])
def org_register(org_id):
    """Self-registration inside an organization (starts pending)."""
    organization = get_organization(org_id)
    user = auth_service.register_org_user(get_session(), organization, get_json_body())
    return created({
        'user': serialize_user(user),
        'organization': serialize_public_organization(organization),
    }, 'Registration successful. Awaiting approval.')


@auth_bp.route('/org/<org_id>/login', methods=['POST'])
def org_login(org_id):
    organization = get_organization(org_id)
    data = get_json_body()
    try:
        user, token, expires_in = auth_service.login_organization(
            get_session(), organization, data.get('email'), data.get('password')
        )
    except ApiError as e:
        record_login('organization', _login_outcome(e))
        raise
    record_login('organization', 'success')
    return _login_response(user, token, expires_in)


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    """Current account with its effective feature tree."""
    user = resolve_acting_user()
    tree, source = feature_service.effective_features(get_session(), user)
    return success({
        'user': serialize_user(user),
        'auth_type': g.auth.auth_type,
        'features': tree,
        'features_source': source,
        'feature_summary': feature_service.feature_summary(tree),
    })


@auth_bp.route('/refresh', methods=['POST'])
@require_auth
def refresh():
    token, expires_in = auth_service.refresh_token(resolve_acting_user())
    return success({'token': token, 'token_type': 'Bearer', 'expires_in': expires_in}, 'Token refreshed')


@auth_bp.route('/change-password', methods=['POST'])
@require_auth
def change_password():
    data = get_json_body()
    auth_service.change_password(
        get_session(), resolve_acting_user(), data.get('current_password'), data.get('new_password')
    )
    return success(message='Password changed successfully')


@auth_bp.route('/logout', methods=['POST'])
@require_auth
def logout():
    """Tokens are stateless; the client discards its copy."""
    current_app.logger.info(f"User {g.auth.user_id} logged out")
    return success(message='Logged out successfully')
