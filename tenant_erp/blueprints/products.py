"""Products blueprint - storefront listing and admin catalog management."""
from flask import Blueprint, request

from tenant_erp.database import get_session
from tenant_erp.middleware import require_admin, require_auth
from tenant_erp.services import product_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_product
from tenant_erp.utils.validators import parse_pagination

products_bp = Blueprint('products', __name__, url_prefix='/products')


def _product_payload():
    """JSON body, or multipart form fields plus an optional ``image`` file."""
    if request.files or request.form:
        data = request.form.to_dict()
        if 'category_ids' in request.form:
            data['category_ids'] = request.form.getlist('category_ids')
        return data, request.files.get('image')
    return get_json_body(), None


def _listing(query):
    limit, offset = parse_pagination(request.args, default_limit=20, max_limit=100)
    items, total = product_service.paginate(query, limit, offset)
    return success({
        'products': [serialize_product(p) for p in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@products_bp.route('/active', methods=['GET'])
def active_products():
    return _listing(product_service.active_products(get_session(), request.args))


@products_bp.route('/home', methods=['GET'])
def home_products():
    products = product_service.home_products(get_session())
    return success({'products': [serialize_product(p) for p in products]})


@products_bp.route('/brands', methods=['GET'])
def product_brands():
    return success({'brands': product_service.brands(get_session())})


@products_bp.route('/statistics', methods=['GET'])
@require_auth
@require_admin
def product_statistics():
    return success(product_service.statistics(get_session()))


@products_bp.route('/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = product_service.get_product(get_session(), product_id, active_only=True)
    return success({'product': serialize_product(product)})


@products_bp.route('/slug/<slug>', methods=['GET'])
def get_product_by_slug(slug):
    return success({'product': serialize_product(product_service.get_by_slug(get_session(), slug))})


@products_bp.route('', methods=['GET'])
@require_auth
@require_admin
def list_products():
    return _listing(product_service.all_products(get_session(), request.args))


@products_bp.route('', methods=['POST'])
@require_auth
@require_admin
def create_product():
    data, image = _product_payload()
    product = product_service.create_product(get_session(), data, image)
    return created({'product': serialize_product(product)}, 'Product created successfully')


@products_bp.route('/<int:product_id>', methods=['PUT'])
@require_auth
@require_admin
def update_product(product_id):
    session = get_session()
    data, image = _product_payload()
    product = product_service.update_product(session, product_service.get_product(session, product_id), data, image)
    return success({'product': serialize_product(product)}, 'Product updated successfully')


@products_bp.route('/<int:product_id>/status', methods=['PUT'])
@require_auth
@require_admin
def update_product_status(product_id):
    session = get_session()
    product = product_service.update_status(
        session, product_service.get_product(session, product_id), get_json_body().get('status')
    )
    return success({'product': serialize_product(product)}, 'Product status updated successfully')


@products_bp.route('/<int:product_id>/stock', methods=['PUT'])
@require_auth
@require_admin
def update_product_stock(product_id):
    session = get_session()
    data = get_json_body()
    product = product_service.adjust_stock(
        session, product_service.get_product(session, product_id), data.get('operation', 'set'), data.get('quantity')
    )
    return success({
        'product_id': product.id,
        'stock_quantity': product.stock_quantity,
        'stock_status': product.stock_status,
    }, 'Stock updated successfully')


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_product(product_id):
    session = get_session()
    product_service.delete_product(session, product_service.get_product(session, product_id))
    return success({'product_id': product_id, 'deleted': True}, 'Product deleted successfully')
