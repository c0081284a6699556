"""
Authentication service for global and organization-scoped accounts.

Handles registration, credential checks with temporary lockout, and token
issuing. Both scopes live in the ``app_user`` table; the scope is selected by
``organization_id`` (NULL for global accounts).
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from tenant_erp.exceptions import (
    AccessDenied, AccountLocked, Conflict, Unauthenticated, ValidationFailed
)
from tenant_erp.models import AppUser, Organization, UserStatus, UserType
from tenant_erp.services.token_service import issue_token
from tenant_erp.utils.validators import (
    clean_str, is_valid_email, is_valid_phone, missing_fields, non_text_fields, utcnow
)

logger = logging.getLogger(__name__)

INACTIVE_ACCOUNT_MESSAGE = 'Account is not active. Please contact administrator.'
INVALID_CREDENTIALS_MESSAGE = 'Invalid email or password'

GLOBAL_SELF_REGISTER_TYPES = ('customer', 'washer', 'student', 'teacher', 'staff')
ORG_SELF_REGISTER_TYPES = (
    'student', 'teacher', 'staff', 'accountant', 'librarian', 'driver', 'security', 'customer', 'washer'
)


def normalize_email(email):
    return (email or '').strip().lower()


def validate_registration(data: dict, allowed_types=None) -> list:
    """Validate registration fields and return list of errors."""
    errors = missing_fields(data, ('name', 'email', 'password'))
    errors += non_text_fields(data, ('name', 'email', 'password', 'user_type'))

    email = data.get('email')
    if email and not is_valid_email(str(email).strip()):
        errors.append('Invalid email format')

    password = data.get('password')
    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 6)
    if password and len(str(password)) < min_length:
        errors.append(f'Password must be at least {min_length} characters long')

    phone = data.get('phone')
    if phone and not is_valid_phone(str(phone)):
        errors.append('Invalid phone number')

    user_type = data.get('user_type')
    if user_type and allowed_types is not None and user_type not in allowed_types:
        errors.append(f"Invalid user type. Must be one of: {', '.join(allowed_types)}")

    custom_fields = data.get('custom_fields')
    if custom_fields is not None and not isinstance(custom_fields, dict):
        errors.append('Custom fields must be an object')

    return errors


def global_email_exists(session, email) -> bool:
    return session.query(AppUser.id).filter(
        AppUser.organization_id.is_(None),
        func.lower(AppUser.email) == normalize_email(email)
    ).first() is not None


def org_email_exists(session, organization_id, email) -> bool:
    return session.query(AppUser.id).filter(
        AppUser.organization_id == organization_id,
        func.lower(AppUser.email) == normalize_email(email)
    ).first() is not None


def register_global_user(session, data: dict) -> AppUser:
    """
    Register a global account with status pending.

    Raises:
        ValidationFailed: invalid input
        Conflict: email already registered globally
    """
    errors = validate_registration(data, GLOBAL_SELF_REGISTER_TYPES)
    if errors:
        raise ValidationFailed(errors)

    email = normalize_email(data['email'])
    if global_email_exists(session, email):
        raise Conflict('Email already registered')

    institution_id = data.get('institution_id')
    if institution_id is not None:
        try:
            institution_id = int(institution_id)
        except (TypeError, ValueError):
            raise ValidationFailed(['Invalid institution ID'])
        if session.get(Organization, institution_id) is None:
            raise ValidationFailed(['Institution not found'])

    user = AppUser(
        name=data['name'].strip(),
        email=email,
        phone=clean_str(data.get('phone')),
        user_type=data.get('user_type') or UserType.CUSTOMER.value,
        institution_id=institution_id,
        status=UserStatus.PENDING.value,
    )
    user.set_password(data['password'])
    session.add(user)
    session.commit()

    logger.info(f"Registered global user {user.id} ({email})")
    return user


def register_org_user(session, organization: Organization, data: dict, default_user_type='student') -> AppUser:
    """
    Register an account inside an organization's scope with status pending.

    The email must be unused in the organization and in the global scope.
    """
    if not organization.accepts_registrations():
        raise AccessDenied('Organization does not accept registrations or is inactive')

    errors = validate_registration(data, ORG_SELF_REGISTER_TYPES)
    if errors:
        raise ValidationFailed(errors)

    email = normalize_email(data['email'])
    if org_email_exists(session, organization.id, email):
        raise Conflict('Email already registered in this organization')
    if global_email_exists(session, email):
        raise Conflict('Email already registered on the platform')

    user = AppUser(
        organization_id=organization.id,
        name=data['name'].strip(),
        email=email,
        phone=clean_str(data.get('phone')),
        user_type=data.get('user_type') or default_user_type,
        role=clean_str(data.get('role')),
        department=clean_str(data.get('department')),
        profile_image=clean_str(data.get('profile_image')),
        custom_fields=data.get('custom_fields') or None,
        status=UserStatus.PENDING.value,
    )
    user.set_password(data['password'])
    session.add(user)
    session.commit()

    logger.info(f"Registered user {user.id} ({email}) in organization {organization.id}")
    return user


def _record_failed_attempt(session, user: AppUser, now):
    """Count a failed login and lock the account at the threshold."""
    config = current_app.config
    max_attempts = config.get('LOGIN_MAX_ATTEMPTS', 5)

    # A lapsed lock starts a fresh window
    if user.locked_until is not None and user.locked_until <= now:
        user.failed_login_attempts = 0
        user.locked_until = None

    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= max_attempts:
        user.locked_until = now + timedelta(minutes=config.get('LOGIN_LOCKOUT_MINUTES', 15))
        logger.warning(
            f"Account {user.id} ({user.email}) locked until {user.locked_until.isoformat()} "
            f"after {user.failed_login_attempts} failed attempts"
        )
    session.commit()


def authenticate(session, query, email, password) -> AppUser:
    """
    Verify credentials against one account scope.

    Order: lookup -> lock window -> password -> active status.

    Raises:
        ValidationFailed: missing fields
        Unauthenticated: unknown email or wrong password
        AccountLocked: inside a lockout window (regardless of password)
        AccessDenied: account not active
    """
    credentials = {'email': email, 'password': password}
    errors = missing_fields(credentials, ('email', 'password'))
    errors += non_text_fields(credentials, ('email', 'password'))
    if errors:
        raise ValidationFailed(errors)

    user = query.filter(func.lower(AppUser.email) == normalize_email(email)).first()
    if user is None:
        logger.warning(f"Login attempt for unknown email: {normalize_email(email)}")
        raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

    now = utcnow()
    if user.is_locked(now):
        logger.warning(f"Login attempt on locked account {user.id}")
        raise AccountLocked(user.locked_until)

    if not user.check_password(password):
        _record_failed_attempt(session, user, now)
        if user.is_locked(now):
            raise AccountLocked(user.locked_until)
        raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)

    if not user.is_active:
        logger.info(f"Login refused for non-active account {user.id} (status={user.status})")
        raise AccessDenied(INACTIVE_ACCOUNT_MESSAGE)

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login = now
    session.commit()
    return user


def login_global(session, email, password):
    """Authenticate a global account and issue its token."""
    query = session.query(AppUser).filter(AppUser.organization_id.is_(None))
    user = authenticate(session, query, email, password)
    token, expires_in = issue_token(user)
    logger.info(f"Global login: user {user.id}")
    return user, token, expires_in


def login_organization(session, organization: Organization, email, password):
    """Authenticate an organization-scoped account and issue its token."""
    if not organization.accepts_logins():
        raise AccessDenied('Organization does not allow login or is inactive')
    query = session.query(AppUser).filter(AppUser.organization_id == organization.id)
    user = authenticate(session, query, email, password)
    token, expires_in = issue_token(user)
    logger.info(f"Organization login: user {user.id} in organization {organization.id}")
    return user, token, expires_in


def refresh_token(user: AppUser):
    """Issue a fresh token for a still-active account."""
    if not user.is_active:
        raise AccessDenied(INACTIVE_ACCOUNT_MESSAGE)
    return issue_token(user)


def change_password(session, user: AppUser, current_password, new_password):
    passwords = {'current_password': current_password, 'new_password': new_password}
    errors = missing_fields(passwords, ('current_password', 'new_password'))
    errors += non_text_fields(passwords, ('current_password', 'new_password'))
    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 6)
    if new_password and len(str(new_password)) < min_length:
        errors.append(f'Password must be at least {min_length} characters long')
    if errors:
        raise ValidationFailed(errors)
    if not user.check_password(current_password):
        raise ValidationFailed(['Current password is incorrect'])
    user.set_password(new_password)
    session.commit()
    logger.info(f"Password changed for user {user.id}")
