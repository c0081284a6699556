"""System features blueprint - feature catalog and feature assignment."""
from flask import Blueprint, g, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import ValidationFailed
from tenant_erp.middleware import require_admin, require_auth, require_org_access
from tenant_erp.services import feature_service, system_feature_service, user_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_feature_module, serialize_system_feature
from tenant_erp.utils.validators import parse_bool

system_features_bp = Blueprint('system_features', __name__, url_prefix='/system-features')


# ============================================================================
# Catalog
# ============================================================================

@system_features_bp.route('', methods=['GET'])
@require_auth
def list_systems():
    include_inactive = g.auth.is_admin and parse_bool(request.args.get('include_inactive'))
    systems = system_feature_service.list_systems(get_session(), include_inactive=include_inactive)
    return success({'systems': [serialize_system_feature(s) for s in systems], 'total': len(systems)})


@system_features_bp.route('/statistics', methods=['GET'])
@require_auth
@require_admin
def catalog_statistics():
    return success(system_feature_service.statistics(get_session()))


@system_features_bp.route('/usage', methods=['GET'])
@require_auth
@require_admin
def feature_usage():
    """Per system key, how many reachable users have it in their effective tree."""
    session = get_session()
    users = user_service.users_in_reach(session, g.auth).all()
    return success({'usage': feature_service.feature_usage(session, users), 'total_users': len(users)})


@system_features_bp.route('/<int:system_id>', methods=['GET'])
@require_auth
def get_system(system_id):
    return success({'system': serialize_system_feature(system_feature_service.get_system(get_session(), system_id))})


@system_features_bp.route('', methods=['POST'])
@require_auth
@require_admin
def create_system():
    system = system_feature_service.create_system(get_session(), get_json_body())
    return created({'system': serialize_system_feature(system)}, 'System feature created successfully')


@system_features_bp.route('/<int:system_id>', methods=['PUT'])
@require_auth
@require_admin
def update_system(system_id):
    session = get_session()
    system = system_feature_service.update_system(
        session, system_feature_service.get_system(session, system_id), get_json_body()
    )
    return success({'system': serialize_system_feature(system)}, 'System feature updated successfully')


@system_features_bp.route('/<int:system_id>/toggle-status', methods=['PUT'])
@require_auth
@require_admin
def toggle_system_status(system_id):
    session = get_session()
    system = system_feature_service.toggle_status(session, system_feature_service.get_system(session, system_id))
    return success({'system': serialize_system_feature(system, include_modules=False)},
                   'Feature status toggled successfully')


@system_features_bp.route('/<int:system_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_system(system_id):
    session = get_session()
    system_feature_service.delete_system(session, system_feature_service.get_system(session, system_id))
    return success({'system_id': system_id, 'deleted': True}, 'System feature deleted successfully')


# ============================================================================
# Modules
# ============================================================================

@system_features_bp.route('/<int:system_id>/modules', methods=['POST'])
@require_auth
@require_admin
def create_module(system_id):
    session = get_session()
    module = system_feature_service.create_module(
        session, system_feature_service.get_system(session, system_id), get_json_body()
    )
    return created({'module': serialize_feature_module(module)}, 'Module created successfully')


@system_features_bp.route('/modules/<int:module_id>', methods=['PUT'])
@require_auth
@require_admin
def update_module(module_id):
    session = get_session()
    module = system_feature_service.update_module(
        session, system_feature_service.get_module(session, module_id), get_json_body()
    )
    return success({'module': serialize_feature_module(module)}, 'Module updated successfully')


@system_features_bp.route('/modules/<int:module_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_module(module_id):
    session = get_session()
    system_feature_service.delete_module(session, system_feature_service.get_module(session, module_id))
    return success({'module_id': module_id, 'deleted': True}, 'Module deleted successfully')


# ============================================================================
# User assignment
# ============================================================================

def _managed_user(user_id):
    session = get_session()
    user = user_service.get_user_in_reach(session, g.auth, user_id)
    feature_service.ensure_can_manage_user(g.auth, user)
    return session, user


def _assignment_payload(user, tree):
    return {
        'user_id': user.id,
        'assigned_features': tree,
        'feature_summary': feature_service.feature_summary(tree),
    }


@system_features_bp.route('/users/<int:user_id>', methods=['GET'])
@require_auth
@require_admin
def get_user_features(user_id):
    _, user = _managed_user(user_id)
    return success(_assignment_payload(user, feature_service.user_features(user)))


@system_features_bp.route('/users/<int:user_id>', methods=['PUT'])
@require_auth
@require_admin
def replace_user_features(user_id):
    session, user = _managed_user(user_id)
    tree = get_json_body().get('assigned_features')
    if tree is None:
        raise ValidationFailed(['assigned_features is required'])
    feature_service.replace_features(session, user, tree)
    return success(_assignment_payload(user, feature_service.user_features(user)),
                   'User features updated successfully')


@system_features_bp.route('/users/<int:user_id>/add', methods=['POST'])
@require_auth
@require_admin
def add_user_feature(user_id):
    session, user = _managed_user(user_id)
    data = get_json_body()
    if not data.get('system_key'):
        raise ValidationFailed(['system_key is required'])
    tree = feature_service.add_feature(session, user, data['system_key'], data.get('selected_modules'))
    return success(_assignment_payload(user, tree), 'Feature added successfully')


@system_features_bp.route('/users/<int:user_id>/<system_key>', methods=['DELETE'])
@require_auth
@require_admin
def remove_user_feature(user_id, system_key):
    session, user = _managed_user(user_id)
    tree = feature_service.remove_feature(session, user, system_key)
    return success(_assignment_payload(user, tree), 'Feature removed successfully')


@system_features_bp.route('/users/<int:user_id>/<system_key>/toggle', methods=['PUT'])
@require_auth
@require_admin
def toggle_user_feature(user_id, system_key):
    session, user = _managed_user(user_id)
    tree, enabled = feature_service.toggle_feature(session, user, system_key)
    data = _assignment_payload(user, tree)
    data['system_key'] = system_key
    data['enabled'] = enabled
    return success(data, f"Feature {'enabled' if enabled else 'disabled'} successfully")


# ============================================================================
# Organization selection
# ============================================================================

@system_features_bp.route('/organizations/<org_id>', methods=['GET'])
@require_auth
@require_org_access
def get_organization_features(org_id):
    tree = feature_service.organization_features(g.organization)
    return success({
        'organization_id': g.organization.id,
        'selected_features': tree,
        'feature_summary': feature_service.feature_summary(tree),
    })


@system_features_bp.route('/organizations/<org_id>', methods=['PUT'])
@require_auth
@require_admin
@require_org_access
def update_organization_features(org_id):
    tree = get_json_body().get('selected_features')
    if tree is None:
        raise ValidationFailed(['selected_features is required'])
    tree = feature_service.replace_organization_features(get_session(), g.organization, tree)
    return success({
        'organization_id': g.organization.id,
        'selected_features': tree,
        'feature_summary': feature_service.feature_summary(tree),
    }, 'Organization features updated successfully')
