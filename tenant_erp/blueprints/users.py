"""Users blueprint - feature assignment, member administration and profile."""
from flask import Blueprint, g, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import ValidationFailed
from tenant_erp.middleware import require_admin, require_auth, require_org_access, resolve_acting_user
from tenant_erp.models import Organization
from tenant_erp.services import feature_service, user_service
from tenant_erp.utils.responses import get_json_body, success
from tenant_erp.utils.serializers import serialize_user
from tenant_erp.utils.validators import parse_pagination

users_bp = Blueprint('users', __name__, url_prefix='/users')


def _feature_view(session, user):
    """Assigned, inherited and effective trees of one account."""
    org_id = user.home_organization_id
    inherited = feature_service.organization_features(session.get(Organization, org_id) if org_id else None)
    effective, source = feature_service.effective_features(session, user)
    return {
        'user_id': user.id,
        'user_name': user.name,
        'user_type': user.user_type,
        'assigned_features': feature_service.user_features(user),
        'inherited_features': inherited,
        'effective_features': effective,
        'source': source,
        'feature_summary': feature_service.feature_summary(effective),
    }


def _tree_from_body():
    data = get_json_body()
    tree = data.get('assigned_features', data.get('features'))
    if tree is None:
        raise ValidationFailed(['assigned_features is required'])
    return tree


@users_bp.route('/my-features', methods=['GET'])
@require_auth
def my_features():
    return success(_feature_view(get_session(), resolve_acting_user()))


@users_bp.route('/org/<org_id>/my-features', methods=['GET'])
@require_auth
@require_org_access
def my_org_features(org_id):
    data = _feature_view(get_session(), resolve_acting_user())
    data['organization_id'] = g.organization.id
    return success(data)


@users_bp.route('/<int:user_id>/features', methods=['GET'])
@require_auth
def get_user_features(user_id):
    session = get_session()
    user = user_service.get_user_in_reach(session, g.auth, user_id)
    if user.id != g.auth.user_id:
        feature_service.ensure_can_manage_user(g.auth, user)
    return success(_feature_view(session, user))


@users_bp.route('/<int:user_id>/features', methods=['PUT'])
@require_auth
@require_admin
def update_user_features(user_id):
    session = get_session()
    user = user_service.get_user_in_reach(session, g.auth, user_id)
    feature_service.ensure_can_manage_user(g.auth, user)
    feature_service.replace_features(session, user, _tree_from_body())
    return success(_feature_view(session, user), 'User features updated successfully')


@users_bp.route('/org/<org_id>', methods=['GET'])
@require_auth
@require_admin
@require_org_access
def list_org_users(org_id):
    limit, offset = parse_pagination(request.args)
    items, total = user_service.list_members(get_session(), g.organization.id, request.args, limit, offset)
    return success({
        'users': [serialize_user(u) for u in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@users_bp.route('/org/<org_id>/statistics', methods=['GET'])
@require_auth
@require_admin
@require_org_access
def org_user_statistics(org_id):
    return success(user_service.member_statistics(get_session(), g.organization.id))


@users_bp.route('/org/<org_id>/user/<int:user_id>/features', methods=['GET'])
@require_auth
@require_admin
@require_org_access
def get_org_user_features(org_id, user_id):
    session = get_session()
    user = user_service.get_org_member(session, g.organization.id, user_id)
    return success(_feature_view(session, user))


@users_bp.route('/org/<org_id>/user/<int:user_id>/features', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_org_user_features(org_id, user_id):
    session = get_session()
    user = user_service.get_org_member(session, g.organization.id, user_id)
    feature_service.replace_features(session, user, _tree_from_body())
    return success(_feature_view(session, user), 'User features updated successfully')


@users_bp.route('/org/<org_id>/user/<int:user_id>/status', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_org_user_status(org_id, user_id):
    session = get_session()
    user = user_service.get_org_member(session, g.organization.id, user_id)
    user_service.update_status(session, user, get_json_body().get('status'), acting_user_id=g.auth.user_id)
    return success({'user': serialize_user(user)}, 'User status updated successfully')


@users_bp.route('/org/<org_id>/bulk-assign-features', methods=['POST'])
@require_auth
@require_admin
@require_org_access
def bulk_assign_features(org_id):
    data = get_json_body()
    if not data.get('user_type'):
        raise ValidationFailed(['User type is required'])
    features = data.get('features', data.get('assigned_features'))
    if features is None:
        raise ValidationFailed(['Features are required'])
    count = feature_service.bulk_assign_by_user_type(get_session(), g.organization.id, data['user_type'], features)
    return success({'updated_count': count, 'user_type': data['user_type']},
                   f"Features assigned to {count} users")


@users_bp.route('/profile', methods=['GET'])
@require_auth
def get_profile():
    return success({'user': serialize_user(resolve_acting_user())})


@users_bp.route('/profile', methods=['PUT'])
@require_auth
def update_profile():
    user = user_service.update_profile(get_session(), resolve_acting_user(), get_json_body())
    return success({'user': serialize_user(user)}, 'Profile updated successfully')
