"""
Permission decorators for feature-gated endpoints.
Extends require_auth with checks against the caller's effective feature tree.
"""

from functools import wraps
from flask import g, current_app, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import AccessDenied, Unauthenticated
from tenant_erp.middleware import resolve_acting_user
from tenant_erp.services.feature_service import effective_features, has_feature


def require_feature(system_key, module_key=None):
    """
    Decorator to restrict access to users granted a feature system.

    Superadmins and platform admins are never gated. Everyone else needs the
    system (and module, when given) enabled in their effective tree.

    Usage:
        @require_feature('academic_management')
        @require_feature('library_management', 'circulation')

    Must be used AFTER require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            auth = g.get('auth')
            if auth is None:
                raise Unauthenticated()

            if auth.user_type == 'superadmin' or auth.is_platform_admin:
                return f(*args, **kwargs)

            tree, _ = effective_features(get_session(), resolve_acting_user(auth))
            if not has_feature(tree, system_key, module_key):
                current_app.logger.warning(
                    f"User {auth.user_id} lacks feature '{system_key}' on {request.endpoint}"
                )
                raise AccessDenied(f"Feature '{system_key}' is not enabled for your account")

            return f(*args, **kwargs)
        return decorated_function
    return decorator
