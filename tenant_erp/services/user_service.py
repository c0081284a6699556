"""User administration inside an organization scope."""
import logging

from sqlalchemy import false, func, or_

from tenant_erp.exceptions import NotFound, ValidationFailed, AccessDenied
from tenant_erp.models import AppUser, UserStatus
from tenant_erp.utils.validators import clean_str, is_valid_phone

logger = logging.getLogger(__name__)

USER_STATUSES = [s.value for s in UserStatus]


def org_members_query(session, organization_id):
    """Every account belonging to an organization's scope."""
    return session.query(AppUser).filter(AppUser.organization_id == organization_id)


def get_org_member(session, organization_id, user_id) -> AppUser:
    """Load a member of the organization or raise NotFound."""
    user = org_members_query(session, organization_id).filter(AppUser.id == user_id).first()
    if user is None:
        raise NotFound('User not found in this organization')
    return user


def get_user_in_reach(session, auth, user_id) -> AppUser:
    """
    Load any account the caller is allowed to see.

    Platform admins see everyone; organization callers see their organization's
    members and the global accounts affiliated with it.
    """
    user = session.get(AppUser, user_id)
    if user is None:
        raise NotFound('User not found')
    if user.id == auth.user_id and (user.organization_id == auth.organization_id):
        return user
    if auth.is_platform_admin:
        return user
    if auth.org_scope is None or user.home_organization_id != auth.org_scope:
        raise NotFound('User not found')
    return user


def users_in_reach(session, auth):
    """Accounts an administrator may manage: everyone for platform admins, else their organization."""
    query = session.query(AppUser)
    if auth.is_platform_admin:
        return query
    if auth.org_scope is None:
        return query.filter(false())
    return query.filter(or_(
        AppUser.organization_id == auth.org_scope,
        AppUser.institution_id == auth.org_scope
    ))


def list_members(session, organization_id, filters: dict, limit: int, offset: int, exclude_types=()):
    """Filter members by user_type, status, department and free-text search."""
    query = org_members_query(session, organization_id)
    if exclude_types:
        query = query.filter(AppUser.user_type.notin_(exclude_types))
    if filters.get('user_type'):
        query = query.filter(AppUser.user_type == filters['user_type'])
    if filters.get('status'):
        query = query.filter(AppUser.status == filters['status'])
    if filters.get('department'):
        query = query.filter(AppUser.department == filters['department'])
    if filters.get('search'):
        term = f"%{filters['search'].strip().lower()}%"
        query = query.filter(or_(
            func.lower(AppUser.name).like(term),
            func.lower(AppUser.email).like(term),
            func.lower(AppUser.phone).like(term)
        ))
    total = query.count()
    items = query.order_by(AppUser.name.asc(), AppUser.id.asc()).limit(limit).offset(offset).all()
    return items, total


def member_statistics(session, organization_id, exclude_types=()) -> dict:
    """Counts by status and by user_type."""
    base = session.query(AppUser).filter(AppUser.organization_id == organization_id)
    if exclude_types:
        base = base.filter(AppUser.user_type.notin_(exclude_types))

    by_status = dict(
        base.with_entities(AppUser.status, func.count(AppUser.id)).group_by(AppUser.status).all()
    )
    by_type = dict(
        base.with_entities(AppUser.user_type, func.count(AppUser.id)).group_by(AppUser.user_type).all()
    )
    return {
        'total': sum(by_status.values()),
        'active': by_status.get(UserStatus.ACTIVE.value, 0),
        'pending': by_status.get(UserStatus.PENDING.value, 0),
        'inactive': by_status.get(UserStatus.INACTIVE.value, 0),
        'by_user_type': by_type,
    }


def update_status(session, user: AppUser, status, acting_user_id=None) -> AppUser:
    """Set an account's status (active/inactive/pending)."""
    if status not in USER_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}"])
    if acting_user_id is not None and user.id == acting_user_id and status != UserStatus.ACTIVE.value:
        raise AccessDenied('You cannot deactivate your own account')
    previous = user.status
    user.status = status
    if status == UserStatus.ACTIVE.value:
        user.failed_login_attempts = 0
        user.locked_until = None
    session.commit()
    logger.info(f"User {user.id} status {previous} -> {status}")
    return user


def update_profile(session, user: AppUser, data: dict) -> AppUser:
    """Self-service profile update (name, phone, department)."""
    errors = []
    if 'name' in data and not clean_str(data.get('name')):
        errors.append('Name cannot be empty')
    if data.get('phone') and not is_valid_phone(str(data['phone'])):
        errors.append('Invalid phone number')
    if errors:
        raise ValidationFailed(errors)

    if 'name' in data:
        user.name = clean_str(data['name'])
    if 'phone' in data:
        user.phone = clean_str(data['phone'])
    if 'department' in data:
        user.department = clean_str(data['department'])
    session.commit()
    return user
