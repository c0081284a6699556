"""Employee management for an organization (every member except students)."""
import logging

from sqlalchemy import func

from tenant_erp.exceptions import AccessDenied, Conflict, NotFound, ValidationFailed
from tenant_erp.models import AppUser, UserType
from tenant_erp.services import auth_service, user_service
from tenant_erp.utils.validators import clean_str, is_valid_email, is_valid_phone, non_text_fields

logger = logging.getLogger(__name__)

EXCLUDED_TYPES = (UserType.STUDENT.value,)

EMPLOYEE_TYPES = [
    {'value': 'staff', 'label': 'Staff'},
    {'value': 'teacher', 'label': 'Teacher'},
    {'value': 'admin', 'label': 'Administrator'},
    {'value': 'accountant', 'label': 'Accountant'},
    {'value': 'librarian', 'label': 'Librarian'},
    {'value': 'driver', 'label': 'Driver'},
    {'value': 'security', 'label': 'Security'},
]
EMPLOYEE_TYPE_VALUES = [t['value'] for t in EMPLOYEE_TYPES]
SELF_REGISTER_TYPES = [t for t in EMPLOYEE_TYPE_VALUES if t != 'admin']

VIEWER_TYPES = ('superadmin', 'admin', 'staff', 'teacher')


def register_employee(session, organization, data: dict) -> AppUser:
    """Self-registration of an employee; status starts pending."""
    user_type = data.get('user_type') or UserType.STAFF.value
    if user_type not in SELF_REGISTER_TYPES:
        raise ValidationFailed([f"Invalid user type. Must be one of: {', '.join(SELF_REGISTER_TYPES)}"])
    data = dict(data, user_type=user_type)
    return auth_service.register_org_user(session, organization, data, default_user_type=UserType.STAFF.value)


def list_employees(session, organization_id, filters, limit, offset):
    return user_service.list_members(session, organization_id, filters, limit, offset, exclude_types=EXCLUDED_TYPES)


def get_employee(session, organization_id, employee_id) -> AppUser:
    employee = user_service.get_org_member(session, organization_id, employee_id)
    if employee.user_type in EXCLUDED_TYPES:
        raise NotFound('Employee not found')
    return employee


def statistics(session, organization_id) -> dict:
    stats = user_service.member_statistics(session, organization_id, exclude_types=EXCLUDED_TYPES)
    departments = session.query(AppUser.department, func.count(AppUser.id)).filter(
        AppUser.organization_id == organization_id,
        AppUser.user_type.notin_(EXCLUDED_TYPES),
        AppUser.department.isnot(None)
    ).group_by(AppUser.department).all()
    stats['by_department'] = dict(departments)
    return stats


def update_employee(session, employee: AppUser, data: dict) -> AppUser:
    """Admin update of an employee's profile fields."""
    errors = non_text_fields(data, ('name', 'email', 'user_type'))
    if 'name' in data and not clean_str(data.get('name')):
        errors.append('Name cannot be empty')
    if 'email' in data and not is_valid_email(str(data.get('email') or '').strip()):
        errors.append('Invalid email format')
    if data.get('phone') and not is_valid_phone(str(data['phone'])):
        errors.append('Invalid phone number')
    if data.get('user_type') and data['user_type'] not in EMPLOYEE_TYPE_VALUES:
        errors.append(f"Invalid user type. Must be one of: {', '.join(EMPLOYEE_TYPE_VALUES)}")
    if 'custom_fields' in data and data['custom_fields'] is not None and not isinstance(data['custom_fields'], dict):
        errors.append('Custom fields must be an object')
    if errors:
        raise ValidationFailed(errors)

    if 'email' in data:
        email = auth_service.normalize_email(data['email'])
        if email != employee.email:
            if auth_service.org_email_exists(session, employee.organization_id, email) \
                    or auth_service.global_email_exists(session, email):
                raise Conflict('Email already registered')
            employee.email = email

    for field in ('name', 'phone', 'department', 'role'):
        if field in data:
            setattr(employee, field, clean_str(data[field]))
    if data.get('user_type'):
        employee.user_type = data['user_type']
    if 'custom_fields' in data:
        employee.custom_fields = data['custom_fields'] or None

    session.commit()
    logger.info(f"Employee {employee.id} updated")
    return employee


def delete_employee(session, employee: AppUser, acting_user_id) -> None:
    if employee.id == acting_user_id:
        raise AccessDenied('You cannot delete your own account')
    session.delete(employee)
    session.commit()
    logger.info(f"Employee {employee.id} deleted from organization {employee.organization_id}")
