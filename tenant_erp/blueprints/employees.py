"""Employees blueprint - staff of one organization."""
from flask import Blueprint, current_app, g, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import ValidationFailed
from tenant_erp.middleware import (
    get_organization, require_admin, require_auth, require_org_access, require_user_type
)
from tenant_erp.services import employee_service, user_service
from tenant_erp.services.storage_service import get_storage_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_user
from tenant_erp.utils.validators import parse_pagination

employees_bp = Blueprint('employees', __name__, url_prefix='/employee/org/<org_id>')


@employees_bp.route('/register', methods=['POST'])
def register_employee(org_id):
    organization = get_organization(org_id)
    employee = employee_service.register_employee(get_session(), organization, get_json_body())
    return created({'employee': serialize_user(employee)}, 'Registration successful. Awaiting approval.')


@employees_bp.route('/upload-profile', methods=['POST'])
def upload_profile_image(org_id):
    """Upload a profile picture before registering; returns the stored path."""
    organization = get_organization(org_id)
    file = request.files.get('profile_image') or request.files.get('file')
    if file is None:
        raise ValidationFailed(['Profile image is required'])

    storage = get_storage_service()
    key = storage.save_upload(file, 'employees', organization.id, subfolder='profiles', prefix='profile')
    current_app.logger.info(f"[STORAGE] Profile image uploaded for organization {organization.id}: {key}")
    return created({'profile_image': key, 'profile_image_url': storage.public_url(key)}, 'Image uploaded successfully')


@employees_bp.route('/', methods=['GET'], strict_slashes=False)
@require_auth
@require_user_type(*employee_service.VIEWER_TYPES)
@require_org_access
def list_employees(org_id):
    limit, offset = parse_pagination(request.args)
    items, total = employee_service.list_employees(get_session(), g.organization.id, request.args, limit, offset)
    return success({
        'employees': [serialize_user(e) for e in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@employees_bp.route('/statistics', methods=['GET'])
@require_auth
@require_user_type(*employee_service.VIEWER_TYPES)
@require_org_access
def employee_statistics(org_id):
    return success(employee_service.statistics(get_session(), g.organization.id))


@employees_bp.route('/user-types', methods=['GET'])
@require_auth
@require_user_type(*employee_service.VIEWER_TYPES)
@require_org_access
def employee_user_types(org_id):
    return success({'user_types': employee_service.EMPLOYEE_TYPES})


@employees_bp.route('/<int:employee_id>', methods=['GET'])
@require_auth
@require_user_type(*employee_service.VIEWER_TYPES)
@require_org_access
def get_employee(org_id, employee_id):
    employee = employee_service.get_employee(get_session(), g.organization.id, employee_id)
    return success({'employee': serialize_user(employee, include_features=True)})


@employees_bp.route('/<int:employee_id>', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_employee(org_id, employee_id):
    session = get_session()
    employee = employee_service.get_employee(session, g.organization.id, employee_id)
    employee = employee_service.update_employee(session, employee, get_json_body())
    return success({'employee': serialize_user(employee)}, 'Employee updated successfully')


@employees_bp.route('/<int:employee_id>/status', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_employee_status(org_id, employee_id):
    session = get_session()
    employee = employee_service.get_employee(session, g.organization.id, employee_id)
    user_service.update_status(session, employee, get_json_body().get('status'), acting_user_id=g.auth.user_id)
    return success({'employee': serialize_user(employee)}, 'Employee status updated successfully')


@employees_bp.route('/<int:employee_id>', methods=['DELETE'])
@require_auth
@require_admin
@require_org_access
def delete_employee(org_id, employee_id):
    session = get_session()
    employee = employee_service.get_employee(session, g.organization.id, employee_id)
    employee_service.delete_employee(session, employee, g.auth.user_id)
    return success({'employee_id': employee_id, 'deleted': True}, 'Employee deleted successfully')
