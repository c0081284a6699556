"""Organizations blueprint - tenant registration and administration."""
from flask import Blueprint, current_app, g, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import ValidationFailed
from tenant_erp.middleware import (
    get_organization, require_admin, require_auth, require_org_access, require_platform_admin
)
from tenant_erp.services import feature_service, organization_service
from tenant_erp.services.storage_service import get_storage_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_organization, serialize_public_organization, serialize_user
from tenant_erp.utils.validators import parse_pagination

organizations_bp = Blueprint('organizations', __name__, url_prefix='/organizations')


@organizations_bp.route('', methods=['POST'])
def register_organization():
    """Public registration: creates the organization and its superadmin atomically."""
    organization, superadmin = organization_service.register_organization(get_session(), get_json_body())
    return created({
        'organization': serialize_organization(organization),
        'superadmin': serialize_user(superadmin),
    }, 'Organization registered successfully')


@organizations_bp.route('/public', methods=['GET'])
def public_organizations():
    organizations = organization_service.list_public(get_session())
    return success({'organizations': [serialize_public_organization(o) for o in organizations]})


@organizations_bp.route('/<org_id>/auth-info', methods=['GET'])
def auth_info(org_id):
    """What a login/registration page needs to know about an organization."""
    organization = get_organization(org_id)
    data = serialize_public_organization(organization)
    data['status'] = organization.status
    data['login_available'] = organization.accepts_logins()
    data['registration_available'] = organization.accepts_registrations()
    return success({'organization': data})


@organizations_bp.route('', methods=['GET'])
@require_auth
@require_platform_admin
def list_organizations():
    limit, offset = parse_pagination(request.args)
    items, total = organization_service.list_organizations(get_session(), request.args, limit, offset)
    return success({
        'organizations': [serialize_organization(o, include_features=False) for o in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@organizations_bp.route('/statistics', methods=['GET'])
@require_auth
@require_platform_admin
def organization_statistics():
    return success(organization_service.statistics(get_session()))


@organizations_bp.route('/<org_id>', methods=['GET'])
@require_auth
@require_org_access
def get_organization_detail(org_id):
    organization = g.organization
    data = serialize_organization(organization)
    data['feature_summary'] = feature_service.feature_summary(feature_service.organization_features(organization))
    data['member_count'] = organization_service.member_count(get_session(), organization.id)
    return success({'organization': data})


@organizations_bp.route('/<org_id>', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_organization(org_id):
    organization = organization_service.update_organization(get_session(), g.organization, get_json_body())
    return success({'organization': serialize_organization(organization)}, 'Organization updated successfully')


@organizations_bp.route('/<org_id>/status', methods=['PUT'])
@require_auth
@require_platform_admin
def update_organization_status(org_id):
    organization = get_organization(org_id)
    organization = organization_service.update_status(get_session(), organization, get_json_body().get('status'))
    return success({'organization': serialize_organization(organization, include_features=False)},
                   'Organization status updated')


@organizations_bp.route('/<org_id>', methods=['DELETE'])
@require_auth
@require_platform_admin
def delete_organization(org_id):
    """Soft delete: the organization becomes inactive."""
    organization = organization_service.deactivate(get_session(), get_organization(org_id))
    return success({'organization_id': organization.id, 'status': organization.status},
                   'Organization deactivated successfully')


@organizations_bp.route('/<org_id>/logo', methods=['POST'])
@require_auth
@require_admin
@require_org_access
def upload_logo(org_id):
    file = request.files.get('logo')
    if file is None:
        raise ValidationFailed(['Logo file is required'])

    session = get_session()
    organization = g.organization
    storage = get_storage_service()
    previous = organization.logo_path
    organization.logo_path = storage.save_upload(file, 'organizations', organization.id, prefix='logo')
    session.commit()
    if previous:
        storage.delete(previous)

    current_app.logger.info(f"[STORAGE] Organization {organization.id} logo updated: {organization.logo_path}")
    return success({
        'logo_path': organization.logo_path,
        'logo_url': storage.public_url(organization.logo_path),
    }, 'Logo uploaded successfully')
