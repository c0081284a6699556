"""Categories blueprint - public browsing and admin management."""
from flask import Blueprint, request

from tenant_erp.database import get_session
from tenant_erp.middleware import require_admin, require_auth
from tenant_erp.services import category_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_category

categories_bp = Blueprint('categories', __name__, url_prefix='/categories')


@categories_bp.route('/active', methods=['GET'])
def active_categories():
    categories = category_service.list_active(get_session())
    return success({'categories': [serialize_category(c) for c in categories]})


@categories_bp.route('/top-level', methods=['GET'])
def top_level_categories():
    categories = category_service.list_top_level(get_session())
    return success({'categories': [serialize_category(c, include_children=True) for c in categories]})


@categories_bp.route('/<int:category_id>', methods=['GET'])
def get_category(category_id):
    category = category_service.get_category(get_session(), category_id, active_only=True)
    return success({'category': serialize_category(category, include_children=True)})


@categories_bp.route('/key/<key>', methods=['GET'])
def get_category_by_key(key):
    category = category_service.get_by_key(get_session(), key)
    return success({'category': serialize_category(category, include_children=True)})


@categories_bp.route('/<int:category_id>/subcategories', methods=['GET'])
def get_subcategories(category_id):
    children = category_service.subcategories(get_session(), category_id)
    return success({'categories': [serialize_category(c) for c in children]})


@categories_bp.route('', methods=['GET'])
@require_auth
@require_admin
def list_categories():
    categories = category_service.list_all(get_session(), request.args)
    return success({'categories': [serialize_category(c) for c in categories], 'total': len(categories)})


@categories_bp.route('', methods=['POST'])
@require_auth
@require_admin
def create_category():
    category = category_service.create_category(get_session(), get_json_body())
    return created({'category': serialize_category(category)}, 'Category created successfully')


@categories_bp.route('/<int:category_id>', methods=['PUT'])
@require_auth
@require_admin
def update_category(category_id):
    session = get_session()
    category = category_service.update_category(
        session, category_service.get_category(session, category_id), get_json_body()
    )
    return success({'category': serialize_category(category)}, 'Category updated successfully')


@categories_bp.route('/<int:category_id>/status', methods=['PUT'])
@require_auth
@require_admin
def update_category_status(category_id):
    session = get_session()
    category = category_service.update_status(
        session, category_service.get_category(session, category_id), get_json_body().get('status')
    )
    return success({'category': serialize_category(category)}, 'Category status updated successfully')


@categories_bp.route('/<int:category_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_category(category_id):
    session = get_session()
    category_service.delete_category(session, category_service.get_category(session, category_id))
    return success({'category_id': category_id, 'deleted': True}, 'Category deleted successfully')
