"""Product categories (nested through parent_id)."""
import logging

from sqlalchemy.exc import IntegrityError

from tenant_erp.exceptions import Conflict, NotFound, ValidationFailed
from tenant_erp.models import Category, product_category
from tenant_erp.utils.validators import clean_str, is_valid_key, missing_fields, non_text_fields, parse_id

logger = logging.getLogger(__name__)

CATEGORY_STATUSES = ('active', 'inactive')


def active_query(session):
    return session.query(Category).filter(Category.status == 'active') \
        .order_by(Category.display_order.asc(), Category.name.asc())


def list_active(session):
    return active_query(session).all()


def list_top_level(session):
    return active_query(session).filter(Category.parent_id.is_(None)).all()


def list_all(session, filters: dict):
    query = session.query(Category)
    if filters.get('status'):
        query = query.filter(Category.status == filters['status'])
    if filters.get('parent_id'):
        query = query.filter(Category.parent_id == parse_id(filters['parent_id'], 'parent ID'))
    return query.order_by(Category.display_order.asc(), Category.name.asc()).all()


def get_category(session, category_id, active_only=False) -> Category:
    category = session.get(Category, category_id)
    if category is None or (active_only and category.status != 'active'):
        raise NotFound('Category not found')
    return category


def get_by_key(session, key) -> Category:
    category = session.query(Category).filter(
        Category.category_key == key, Category.status == 'active'
    ).first()
    if category is None:
        raise NotFound('Category not found')
    return category


def subcategories(session, category_id):
    parent = get_category(session, category_id, active_only=True)
    return [c for c in parent.children if c.status == 'active']


def _resolve_parent(session, parent_id, errors, self_id=None):
    if parent_id in (None, ''):
        return None
    try:
        parent_id = int(parent_id)
    except (TypeError, ValueError):
        errors.append('Invalid parent category ID')
        return None
    if self_id is not None and parent_id == self_id:
        errors.append('A category cannot be its own parent')
        return None
    if session.get(Category, parent_id) is None:
        errors.append('Parent category not found')
        return None
    return parent_id


def _display_order(value, errors):
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        errors.append('Display order must be a number')
        return 0


def _commit(session):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict('Category key already exists')


def create_category(session, data: dict) -> Category:
    errors = missing_fields(data, ('category_key', 'name'))
    errors += non_text_fields(data, ('category_key', 'name'))
    key = clean_str(data.get('category_key'))
    if key and not is_valid_key(key):
        errors.append('Category key must be lowercase letters, digits and underscores')
    parent_id = _resolve_parent(session, data.get('parent_id'), errors)
    order = _display_order(data.get('display_order'), errors)
    status = data.get('status') or 'active'
    if status not in CATEGORY_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CATEGORY_STATUSES)}")
    if errors:
        raise ValidationFailed(errors)

    if session.query(Category.id).filter(Category.category_key == key).first():
        raise Conflict('Category key already exists')

    category = Category(
        category_key=key,
        name=data['name'].strip(),
        description=clean_str(data.get('description')),
        parent_id=parent_id,
        image_url=clean_str(data.get('image_url')),
        icon=clean_str(data.get('icon')),
        display_order=order,
        status=status,
    )
    session.add(category)
    _commit(session)
    logger.info(f"Category {category.id} ({key}) created")
    return category


def update_category(session, category: Category, data: dict) -> Category:
    errors = []
    if 'name' in data and not clean_str(data.get('name')):
        errors.append('Name cannot be empty')
    if 'category_key' in data:
        key = clean_str(data.get('category_key'))
        if not key or not is_valid_key(key):
            errors.append('Category key must be lowercase letters, digits and underscores')
        elif key != category.category_key and \
                session.query(Category.id).filter(Category.category_key == key).first():
            raise Conflict('Category key already exists')
    if 'parent_id' in data:
        parent_id = _resolve_parent(session, data.get('parent_id'), errors, self_id=category.id)
    if 'display_order' in data:
        order = _display_order(data.get('display_order'), errors)
    if errors:
        raise ValidationFailed(errors)

    if 'category_key' in data:
        category.category_key = key
    if 'parent_id' in data:
        category.parent_id = parent_id
    if 'display_order' in data:
        category.display_order = order
    for field in ('name', 'description', 'image_url', 'icon'):
        if field in data:
            setattr(category, field, clean_str(data[field]))
    _commit(session)
    logger.info(f"Category {category.id} updated")
    return category


def update_status(session, category: Category, status) -> Category:
    if status not in CATEGORY_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(CATEGORY_STATUSES)}"])
    category.status = status
    session.commit()
    return category


def delete_category(session, category: Category) -> None:
    """Only empty leaf categories can be deleted."""
    has_products = session.query(product_category.c.product_id).filter(
        product_category.c.category_id == category.id
    ).first()
    if has_products:
        raise Conflict('Category has products and cannot be deleted')
    if session.query(Category.id).filter(Category.parent_id == category.id).first():
        raise Conflict('Category has subcategories and cannot be deleted')
    session.delete(category)
    session.commit()
    logger.info(f"Category {category.id} deleted")
