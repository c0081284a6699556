"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import g, request, current_app

from tenant_erp.database import get_session
from tenant_erp.exceptions import Unauthenticated, AccessDenied, OrganizationNotConfigured, BadRequest
from tenant_erp.models import AppUser, Organization
from tenant_erp.services.token_service import TokenError, decode_token, context_from_payload


def load_auth_context():
    """
    Load the caller's identity into g (Flask's per-request global).

    Called before each request. Sets g.auth to an AuthContext when a valid
    bearer token is present; otherwise g.auth is None and g.auth_error holds
    the reason, reported later by require_auth.
    """
    g.auth = None
    g.auth_error = None
    g.acting_user = None

    header = request.headers.get('Authorization', '')
    if not header:
        return
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        g.auth_error = 'Invalid authorization header'
        return

    try:
        g.auth = context_from_payload(decode_token(token.strip()))
    except TokenError as e:
        g.auth_error = e.message
        current_app.logger.info(f"Rejected token on {request.path}: {e.message}")


def require_auth(f):
    """
    Decorator: Require a valid bearer token.

    Raises Unauthenticated (401) with the decoding failure reason.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('auth') is None:
            raise Unauthenticated(g.get('auth_error') or 'Authentication required')
        return f(*args, **kwargs)
    return decorated_function


def require_user_type(*allowed_types):
    """
    Decorator: Restrict access to specific user types.

    Usage:
        @require_user_type('admin', 'superadmin')

    Must be used AFTER require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth = g.get('auth')
            if auth is None:
                raise Unauthenticated()
            if auth.user_type not in allowed_types:
                current_app.logger.warning(
                    f"User {auth.user_id} ({auth.user_type}) denied on {request.endpoint}"
                )
                raise AccessDenied('Insufficient permissions')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_admin(f):
    """Shortcut decorator for admin or superadmin access."""
    return require_user_type('admin', 'superadmin')(f)


def require_platform_admin(f):
    """Decorator: only a global superadmin without an institution."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = g.get('auth')
        if auth is None:
            raise Unauthenticated()
        if not auth.is_platform_admin:
            raise AccessDenied('Platform administrator access required')
        return f(*args, **kwargs)
    return decorated_function


def get_organization(org_id):
    """
    Resolve an organization id from the URL.

    Raises:
        BadRequest: id is not numeric
        OrganizationNotConfigured: no such organization
    """
    try:
        org_id = int(str(org_id))
    except (TypeError, ValueError):
        raise BadRequest('Invalid organization ID')
    organization = get_session().get(Organization, org_id)
    if organization is None:
        raise OrganizationNotConfigured(org_id)
    return organization


def check_org_access(auth, organization_id):
    """Raise AccessDenied unless the caller's tenant scope matches."""
    if not auth.can_access_org(organization_id):
        current_app.logger.warning(
            f"Tenant mismatch: user {auth.user_id} (scope={auth.org_scope}) requested org {organization_id}"
        )
        raise AccessDenied('Access denied to this organization')


def require_org_access(f):
    """
    Decorator: Enforce that the caller acts for the organization in the URL.

    Reads the ``org_id`` view argument, validates it, loads the organization
    into g.organization and compares it with the token scope.
    Must be used AFTER require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = g.get('auth')
        if auth is None:
            raise Unauthenticated()
        organization = get_organization(kwargs.get('org_id'))
        check_org_access(auth, organization.id)
        g.organization = organization
        return f(*args, **kwargs)
    return decorated_function


def scoped_user_query(session, auth):
    """
    Query over the caller's own account scope.

    Organization tokens see rows of their organization; global tokens see
    global rows only.
    """
    query = session.query(AppUser)
    if auth.is_organization:
        return query.filter(AppUser.organization_id == auth.organization_id)
    return query.filter(AppUser.organization_id.is_(None))


def resolve_acting_user(auth=None):
    """
    Load the caller's AppUser row, constrained to the token's scope.

    Raises:
        Unauthenticated: the account no longer exists in that scope
    """
    auth = auth or g.get('auth')
    if auth is None:
        raise Unauthenticated()
    cached = g.get('acting_user')
    if cached is not None and cached.id == auth.user_id:
        return cached
    user = scoped_user_query(get_session(), auth).filter(AppUser.id == auth.user_id).first()
    if user is None:
        raise Unauthenticated('User account not found')
    g.acting_user = user
    return user
