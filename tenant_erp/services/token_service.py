"""
JWT issuing and decoding.

Tokens are HS256 and carry the caller's scope so every request can be
authorized without a table lookup:

    user_id, email, user_type, institution_id,
    auth_type ('global' | 'organization'), organization_id (organization tokens),
    iat, exp
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from flask import current_app

from tenant_erp.models import ADMIN_TYPES, UserType

AUTH_TYPE_GLOBAL = 'global'
AUTH_TYPE_ORGANIZATION = 'organization'


class TokenError(Exception):
    """Raised when a token cannot be decoded."""
    def __init__(self, message, expired=False):
        super().__init__(message)
        self.message = message
        self.expired = expired


@dataclass(frozen=True)
class AuthContext:
    """Decoded identity of the caller."""
    user_id: int
    email: str
    user_type: str
    auth_type: str
    organization_id: Optional[int] = None
    institution_id: Optional[int] = None

    @property
    def is_organization(self):
        return self.auth_type == AUTH_TYPE_ORGANIZATION

    @property
    def org_scope(self):
        """Organization this caller acts for (None for unaffiliated global users)."""
        if self.is_organization:
            return self.organization_id
        return self.institution_id

    @property
    def is_admin(self):
        return self.user_type in ADMIN_TYPES

    @property
    def is_platform_admin(self):
        """Global superadmin not tied to any institution."""
        return (
            not self.is_organization
            and self.institution_id is None
            and self.user_type == UserType.SUPERADMIN.value
        )

    def can_access_org(self, organization_id):
        return self.is_platform_admin or (
            self.org_scope is not None and int(self.org_scope) == int(organization_id)
        )


def issue_token(user):
    """
    Create a signed token for an authenticated user.

    Returns:
        tuple: (token, expires_in_seconds)
    """
    config = current_app.config
    now = datetime.now(timezone.utc)
    lifetime = timedelta(hours=config.get('JWT_EXPIRATION_HOURS', 24))
    payload = {
        'user_id': user.id,
        'email': user.email,
        'user_type': user.user_type,
        'institution_id': user.institution_id if user.is_global else user.organization_id,
        'auth_type': AUTH_TYPE_GLOBAL if user.is_global else AUTH_TYPE_ORGANIZATION,
        'iat': now,
        'exp': now + lifetime,
    }
    if not user.is_global:
        payload['organization_id'] = user.organization_id

    token = jwt.encode(payload, config['JWT_SECRET_KEY'], algorithm=config.get('JWT_ALGORITHM', 'HS256'))
    return token, int(lifetime.total_seconds())


def decode_token(token):
    """
    Decode and verify a token.

    Raises:
        TokenError: expired or invalid token
    """
    config = current_app.config
    try:
        payload = jwt.decode(
            token,
            config['JWT_SECRET_KEY'],
            algorithms=[config.get('JWT_ALGORITHM', 'HS256')],
            options={'require': ['exp', 'iat']}
        )
    except jwt.ExpiredSignatureError:
        raise TokenError('Token has expired', expired=True)
    except jwt.InvalidTokenError:
        raise TokenError('Invalid token')
    return payload


def context_from_payload(payload):
    """Build an AuthContext from decoded claims."""
    try:
        auth_type = payload.get('auth_type', AUTH_TYPE_GLOBAL)
        if auth_type not in (AUTH_TYPE_GLOBAL, AUTH_TYPE_ORGANIZATION):
            raise TokenError('Invalid token')
        organization_id = payload.get('organization_id')
        if auth_type == AUTH_TYPE_ORGANIZATION and organization_id is None:
            raise TokenError('Invalid token')
        institution_id = payload.get('institution_id')
        return AuthContext(
            user_id=int(payload['user_id']),
            email=payload.get('email', ''),
            user_type=payload.get('user_type', ''),
            auth_type=auth_type,
            organization_id=int(organization_id) if organization_id is not None else None,
            institution_id=int(institution_id) if institution_id is not None else None,
        )
    except (KeyError, TypeError, ValueError):
        raise TokenError('Invalid token')

