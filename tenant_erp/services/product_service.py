"""
Product catalog service.

Products carry a unique product_key, slug and (optional) sku. The slug is
derived from the name when not supplied. Stock is adjusted through
``adjust_stock`` so it never goes below zero.
"""
import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from tenant_erp.exceptions import BadRequest, Conflict, NotFound, ValidationFailed
from tenant_erp.models import Category, Product
from tenant_erp.services.storage_service import get_storage_service
from tenant_erp.utils.validators import (
    clean_str, generate_slug, is_valid_key, missing_fields, non_text_fields, parse_bool, parse_id, parse_number
)

logger = logging.getLogger(__name__)

PRODUCT_STATUSES = ('active', 'inactive', 'draft')
STOCK_OPERATIONS = ('add', 'subtract', 'set')
TEXT_FIELDS = ('name', 'short_description', 'description', 'brand')


def _money(value, label, errors):
    if value in (None, ''):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        errors.append(f'{label} must be a number')
        return None
    if amount < 0:
        errors.append(f'{label} cannot be negative')
    return amount


def _non_negative_int(value, label, errors, default=0):
    if value in (None, ''):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        errors.append(f'{label} must be a whole number')
        return default
    if number < 0:
        errors.append(f'{label} cannot be negative')
    return number


def _categories(session, ids, errors):
    if ids in (None, ''):
        return []
    if not isinstance(ids, list):
        ids = [ids]
    try:
        ids = [int(i) for i in ids]
    except (TypeError, ValueError):
        errors.append('Category IDs must be numeric')
        return []
    found = session.query(Category).filter(Category.id.in_(ids)).all()
    if len(found) != len(set(ids)):
        errors.append('One or more categories do not exist')
    return found


def _ensure_unique(session, product_id=None, **values):
    for field, value in values.items():
        if value is None:
            continue
        query = session.query(Product.id).filter(getattr(Product, field) == value)
        if product_id is not None:
            query = query.filter(Product.id != product_id)
        if query.first():
            raise Conflict(f"{field.replace('_', ' ').capitalize()} already exists")


def _commit(session):
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Product write rejected by constraint: {e.orig}")
        raise Conflict('Product key, slug or SKU already exists')


# ============================================================================
# Queries
# ============================================================================

def active_products(session, filters: dict):
    """Public listing filtered by category, brand, search, featured and price range."""
    query = session.query(Product).filter(Product.status == 'active')
    if filters.get('category_id'):
        category_id = parse_id(filters['category_id'], 'category ID')
        query = query.filter(Product.categories.any(Category.id == category_id))
    if filters.get('brand'):
        query = query.filter(func.lower(Product.brand) == filters['brand'].strip().lower())
    if filters.get('search'):
        term = f"%{filters['search'].strip().lower()}%"
        query = query.filter(or_(
            func.lower(Product.name).like(term),
            func.lower(Product.short_description).like(term),
            func.lower(Product.brand).like(term)
        ))
    if filters.get('featured') is not None:
        query = query.filter(Product.featured.is_(parse_bool(filters['featured'])))
    min_price = parse_number(filters.get('min_price'))
    if min_price is not None:
        query = query.filter(func.coalesce(Product.sale_price, Product.base_price) >= min_price)
    max_price = parse_number(filters.get('max_price'))
    if max_price is not None:
        query = query.filter(func.coalesce(Product.sale_price, Product.base_price) <= max_price)
    return query


def paginate(query, limit, offset):
    total = query.count()
    items = query.order_by(Product.featured.desc(), Product.name.asc(), Product.id.asc()) \
        .limit(limit).offset(offset).all()
    return items, total


def home_products(session, limit=12):
    return session.query(Product).filter(
        Product.status == 'active', Product.is_home_view.is_(True)
    ).order_by(Product.featured.desc(), Product.name.asc()).limit(limit).all()


def brands(session):
    rows = session.query(Product.brand).filter(
        Product.status == 'active', Product.brand.isnot(None)
    ).distinct().order_by(Product.brand.asc()).all()
    return [brand for (brand,) in rows]


def all_products(session, filters: dict):
    query = session.query(Product)
    if filters.get('status'):
        query = query.filter(Product.status == filters['status'])
    if filters.get('stock_status') == 'out_of_stock':
        query = query.filter(Product.stock_quantity <= 0)
    elif filters.get('stock_status') == 'low_stock':
        query = query.filter(Product.stock_quantity > 0, Product.stock_quantity <= Product.low_stock_threshold)
    if filters.get('search'):
        term = f"%{filters['search'].strip().lower()}%"
        query = query.filter(or_(func.lower(Product.name).like(term), func.lower(Product.sku).like(term)))
    return query


def get_product(session, product_id, active_only=False) -> Product:
    product = session.get(Product, product_id)
    if product is None or (active_only and product.status != 'active'):
        raise NotFound('Product not found')
    return product


def get_by_slug(session, slug) -> Product:
    product = session.query(Product).filter(Product.slug == slug, Product.status == 'active').first()
    if product is None:
        raise NotFound('Product not found')
    return product


# ============================================================================
# Mutations
# ============================================================================

def create_product(session, data: dict, image=None) -> Product:
    errors = missing_fields(data, ('product_key', 'name', 'base_price'))
    errors += non_text_fields(data, ('product_key', 'name'))
    key = clean_str(data.get('product_key'))
    if key and not is_valid_key(key):
        errors.append('Product key must be lowercase letters, digits and underscores')
    base_price = _money(data.get('base_price'), 'Base price', errors)
    sale_price = _money(data.get('sale_price'), 'Sale price', errors)
    if base_price is not None and sale_price is not None and sale_price > base_price:
        errors.append('Sale price cannot be greater than base price')
    stock = _non_negative_int(data.get('stock_quantity'), 'Stock quantity', errors)
    threshold = _non_negative_int(data.get('low_stock_threshold'), 'Low stock threshold', errors, default=10)
    status = data.get('status') or 'active'
    if status not in PRODUCT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}")
    categories = _categories(session, data.get('category_ids'), errors)
    if errors:
        raise ValidationFailed(errors)

    slug = generate_slug(clean_str(data.get('slug')) or data['name'])
    if not slug:
        raise ValidationFailed(['Slug could not be generated from name'])
    sku = clean_str(data.get('sku'))
    _ensure_unique(session, product_key=key, slug=slug, sku=sku)

    product = Product(
        product_key=key,
        name=data['name'].strip(),
        slug=slug,
        short_description=clean_str(data.get('short_description')),
        description=clean_str(data.get('description')),
        base_price=base_price,
        sale_price=sale_price,
        sku=sku,
        brand=clean_str(data.get('brand')),
        stock_quantity=stock,
        low_stock_threshold=threshold,
        featured=parse_bool(data.get('featured')),
        is_home_view=parse_bool(data.get('is_home_view')),
        status=status,
        categories=categories,
    )
    session.add(product)
    session.flush()

    if image:
        product.image_path = get_storage_service().save_upload(image, 'products', product.id, prefix='product')
    _commit(session)
    logger.info(f"Product {product.id} ({key}) created")
    return product


def update_product(session, product: Product, data: dict, image=None) -> Product:
    errors = []
    for field in ('name', 'base_price'):
        if field in data and data[field] in (None, ''):
            errors.append(f"{field.replace('_', ' ').capitalize()} cannot be empty")
    if 'product_key' in data and not is_valid_key(clean_str(data.get('product_key')) or ''):
        errors.append('Product key must be lowercase letters, digits and underscores')
    base_price = _money(data['base_price'], 'Base price', errors) if 'base_price' in data else product.base_price
    sale_price = _money(data.get('sale_price'), 'Sale price', errors) if 'sale_price' in data else product.sale_price
    if base_price is not None and sale_price is not None and Decimal(sale_price) > Decimal(base_price):
        errors.append('Sale price cannot be greater than base price')
    if 'low_stock_threshold' in data:
        threshold = _non_negative_int(data['low_stock_threshold'], 'Low stock threshold', errors, default=10)
    if 'status' in data and data['status'] not in PRODUCT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}")
    if 'category_ids' in data:
        categories = _categories(session, data['category_ids'], errors)
    if errors:
        raise ValidationFailed(errors)

    key = clean_str(data['product_key']) if 'product_key' in data else None
    slug = generate_slug(clean_str(data['slug']) or product.name) if 'slug' in data else None
    sku = clean_str(data['sku']) if 'sku' in data else None
    _ensure_unique(session, product_id=product.id, product_key=key, slug=slug, sku=sku)

    if key:
        product.product_key = key
    if slug:
        product.slug = slug
    if 'sku' in data:
        product.sku = sku
    for field in TEXT_FIELDS:
        if field in data:
            setattr(product, field, clean_str(data[field]))
    product.base_price = base_price
    product.sale_price = sale_price
    if 'low_stock_threshold' in data:
        product.low_stock_threshold = threshold
    for flag in ('featured', 'is_home_view'):
        if flag in data:
            setattr(product, flag, parse_bool(data[flag]))
    if 'status' in data:
        product.status = data['status']
    if 'category_ids' in data:
        product.categories = categories

    previous_image = None
    if image:
        previous_image = product.image_path
        product.image_path = get_storage_service().save_upload(image, 'products', product.id, prefix='product')
    _commit(session)
    if previous_image:
        get_storage_service().delete(previous_image)
    logger.info(f"Product {product.id} updated")
    return product


def update_status(session, product: Product, status) -> Product:
    if status not in PRODUCT_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(PRODUCT_STATUSES)}"])
    product.status = status
    session.commit()
    return product


def adjust_stock(session, product: Product, operation, quantity) -> Product:
    """
    Adjust stock with add/subtract/set.

    Raises:
        ValidationFailed: unknown operation or negative quantity
        BadRequest: subtracting more than is in stock
    """
    if operation not in STOCK_OPERATIONS:
        raise ValidationFailed([f"Invalid operation. Must be one of: {', '.join(STOCK_OPERATIONS)}"])
    errors = []
    quantity = _non_negative_int(quantity, 'Quantity', errors, default=None)
    if quantity is None and not errors:
        errors.append('Quantity is required')
    if errors:
        raise ValidationFailed(errors)

    if operation == 'add':
        product.stock_quantity += quantity
    elif operation == 'subtract':
        if quantity > product.stock_quantity:
            raise BadRequest(f"Insufficient stock. Available: {product.stock_quantity}")
        product.stock_quantity -= quantity
    else:
        product.stock_quantity = quantity
    session.commit()
    logger.info(f"Product {product.id} stock {operation} {quantity} -> {product.stock_quantity}")
    return product


def delete_product(session, product: Product) -> None:
    image = product.image_path
    session.delete(product)
    session.commit()
    if image:
        get_storage_service().delete(image)
    logger.info(f"Product {product.id} deleted")


def statistics(session) -> dict:
    by_status = dict(session.query(Product.status, func.count(Product.id)).group_by(Product.status).all())
    out_of_stock = session.query(func.count(Product.id)).filter(Product.stock_quantity <= 0).scalar()
    low_stock = session.query(func.count(Product.id)).filter(
        Product.stock_quantity > 0, Product.stock_quantity <= Product.low_stock_threshold
    ).scalar()
    featured = session.query(func.count(Product.id)).filter(Product.featured.is_(True)).scalar()
    return {
        'total': sum(by_status.values()),
        'by_status': {status: by_status.get(status, 0) for status in PRODUCT_STATUSES},
        'featured': featured,
        'low_stock': low_stock,
        'out_of_stock': out_of_stock,
    }
