"""Convert models to JSON-ready dicts for API responses."""
from datetime import date, datetime, time
from decimal import Decimal

from tenant_erp.utils.json_fields import load_json_object


def _iso(value):
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime('%H:%M')
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _money(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def _url(key):
    if not key:
        return None
    from tenant_erp.services.storage_service import get_storage_service
    return get_storage_service().public_url(key)


def serialize_user(user, include_features=False):
    data = {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'user_type': user.user_type,
        'phone': user.phone,
        'role': user.role,
        'department': user.department,
        'status': user.status,
        'organization_id': user.organization_id,
        'institution_id': user.institution_id,
        'auth_type': 'global' if user.is_global else 'organization',
        'profile_image': user.profile_image,
        'profile_image_url': _url(user.profile_image),
        'custom_fields': user.custom_fields or {},
        'last_login': _iso(user.last_login),
        'created_at': _iso(user.created_at),
    }
    if include_features:
        data['assigned_features'] = load_json_object(user.assigned_features, f'app_user[{user.id}].assigned_features')
    return data


def serialize_organization(org, include_features=True):
    data = {
        'id': org.id,
        'institution_name': org.institution_name,
        'institution_type': org.institution_type,
        'principal_name': org.principal_name,
        'contact_email': org.contact_email,
        'contact_phone': org.contact_phone,
        'established_year': org.established_year,
        'address': org.address,
        'city': org.city,
        'state': org.state,
        'pincode': org.pincode,
        'website': org.website,
        'logo_path': org.logo_path,
        'logo_url': _url(org.logo_path),
        'status': org.status,
        'allow_login': bool(org.allow_login),
        'allow_registration': bool(org.allow_registration),
        'show_in_listing': bool(org.show_in_listing),
        'created_at': _iso(org.created_at),
    }
    if include_features:
        data['selected_features'] = load_json_object(org.selected_features, f'organization[{org.id}].selected_features')
    return data


def serialize_public_organization(org):
    """Subset that is safe to show before login."""
    return {
        'id': org.id,
        'institution_name': org.institution_name,
        'institution_type': org.institution_type,
        'city': org.city,
        'state': org.state,
        'logo_url': _url(org.logo_path),
        'allow_login': bool(org.allow_login),
        'allow_registration': bool(org.allow_registration),
    }


def serialize_system_feature(system, include_modules=True):
    data = {
        'id': system.id,
        'system_key': system.system_key,
        'system_name': system.system_name,
        'system_description': system.system_description,
        'system_icon': system.system_icon,
        'display_order': system.display_order,
        'status': system.status,
    }
    if include_modules:
        data['modules'] = [serialize_feature_module(m) for m in system.modules]
    return data


def serialize_feature_module(module):
    return {
        'id': module.id,
        'system_id': module.system_id,
        'module_key': module.module_key,
        'module_name': module.module_name,
        'module_description': module.module_description,
        'display_order': module.display_order,
        'status': module.status,
    }


def serialize_vehicle(vehicle):
    return {
        'id': vehicle.id,
        'customer_id': vehicle.customer_id,
        'make': vehicle.make,
        'model': vehicle.model,
        'year': vehicle.year,
        'color': vehicle.color,
        'license_plate': vehicle.license_plate,
        'vehicle_type': vehicle.vehicle_type,
        'created_at': _iso(vehicle.created_at),
    }


def serialize_booking_history(entry):
    return {
        'id': entry.id,
        'booking_id': entry.booking_id,
        'washer_id': entry.washer_id,
        'before_image': entry.before_image,
        'before_image_url': _url(entry.before_image),
        'after_image': entry.after_image,
        'after_image_url': _url(entry.after_image),
        'signature_image': entry.signature_image,
        'signature_image_url': _url(entry.signature_image),
        'notes': entry.notes,
        'completed_at': _iso(entry.completed_at),
    }


def serialize_booking(booking, include_history=False):
    data = {
        'id': booking.id,
        'organization_id': booking.organization_id,
        'customer_id': booking.customer_id,
        'customer_name': booking.customer.name if booking.customer else None,
        'washer_id': booking.washer_id,
        'washer_name': booking.washer.name if booking.washer else None,
        'vehicle_id': booking.vehicle_id,
        'vehicle': serialize_vehicle(booking.vehicle) if booking.vehicle else None,
        'service_ids': booking.service_ids or [],
        'booking_date': _iso(booking.booking_date),
        'start_time': _iso(booking.start_time),
        'end_time': _iso(booking.end_time),
        'address': booking.address,
        'latitude': booking.latitude,
        'longitude': booking.longitude,
        'total_price': _money(booking.total_price),
        'status': booking.status,
        'payment_status': booking.payment_status,
        'payment_method': booking.payment_method,
        'notes': booking.notes,
        'created_at': _iso(booking.created_at),
    }
    if include_history:
        data['history'] = [serialize_booking_history(h) for h in booking.history]
    return data


def serialize_category(category, include_children=False):
    data = {
        'id': category.id,
        'category_key': category.category_key,
        'name': category.name,
        'description': category.description,
        'parent_id': category.parent_id,
        'image_url': category.image_url,
        'icon': category.icon,
        'display_order': category.display_order,
        'status': category.status,
    }
    if include_children:
        data['subcategories'] = [serialize_category(c) for c in category.children]
    return data


def serialize_product(product):
    return {
        'id': product.id,
        'product_key': product.product_key,
        'name': product.name,
        'slug': product.slug,
        'short_description': product.short_description,
        'description': product.description,
        'base_price': _money(product.base_price),
        'sale_price': _money(product.sale_price),
        'effective_price': _money(product.effective_price),
        'sku': product.sku,
        'brand': product.brand,
        'image_url': _url(product.image_path),
        'stock_quantity': product.stock_quantity,
        'low_stock_threshold': product.low_stock_threshold,
        'stock_status': product.stock_status,
        'featured': bool(product.featured),
        'is_home_view': bool(product.is_home_view),
        'status': product.status,
        'category_ids': [c.id for c in product.categories],
    }


def serialize_service(service):
    return {
        'id': service.id,
        'service_key': service.service_key,
        'title': service.title,
        'description': service.description,
        'price': _money(service.price),
        'duration': service.duration,
        'features': service.features or [],
        'badge': service.badge,
        'display_order': service.display_order,
        'status': service.status,
    }


def serialize_session(session):
    return {
        'id': session.id,
        'institution_id': session.institution_id,
        'session_name': session.session_name,
        'start_date': _iso(session.start_date),
        'end_date': _iso(session.end_date),
        'is_active': bool(session.is_active),
        'status': session.status,
        'description': session.description,
        'working_days': session.working_days or [],
        'number_of_terms': session.number_of_terms,
        'term_structure': session.term_structure,
        'holidays': session.holidays or [],
        'settings': session.settings,
        'created_by': session.created_by,
        'created_at': _iso(session.created_at),
    }
