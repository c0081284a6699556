"""Bookable services (title, price, duration in minutes)."""
import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from tenant_erp.exceptions import Conflict, NotFound, ValidationFailed
from tenant_erp.models import Service
from tenant_erp.utils.validators import clean_str, is_valid_key, missing_fields, non_text_fields

logger = logging.getLogger(__name__)

SERVICE_STATUSES = ('active', 'inactive')


def _validate(data: dict, partial=False) -> list:
    errors = [] if partial else missing_fields(data, ('service_key', 'title', 'price'))
    errors += non_text_fields(data, ('service_key', 'title'))

    if 'service_key' in data and data['service_key'] and not is_valid_key(str(data['service_key']).strip()):
        errors.append('Service key must be lowercase letters, digits and underscores')
    if partial and 'title' in data and not clean_str(data.get('title')):
        errors.append('Title cannot be empty')
    if data.get('price') not in (None, ''):
        try:
            if Decimal(str(data['price'])) < 0:
                errors.append('Price cannot be negative')
        except (InvalidOperation, TypeError, ValueError):
            errors.append('Price must be a number')
    if 'duration' in data:
        try:
            if int(data['duration']) <= 0:
                errors.append('Duration must be greater than 0 minutes')
        except (TypeError, ValueError):
            errors.append('Duration must be a whole number of minutes')
    if data.get('display_order') not in (None, ''):
        try:
            int(data['display_order'])
        except (TypeError, ValueError):
            errors.append('Display order must be a number')
    if data.get('features') is not None and not isinstance(data['features'], list):
        errors.append('Features must be a list')
    if data.get('status') and data['status'] not in SERVICE_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(SERVICE_STATUSES)}")
    return errors


def list_active(session):
    return session.query(Service).filter(Service.status == 'active') \
        .order_by(Service.display_order.asc(), Service.title.asc()).all()


def list_all(session, status=None):
    query = session.query(Service)
    if status:
        query = query.filter(Service.status == status)
    return query.order_by(Service.display_order.asc(), Service.title.asc()).all()


def get_service(session, service_id, active_only=False) -> Service:
    service = session.get(Service, service_id)
    if service is None or (active_only and service.status != 'active'):
        raise NotFound('Service not found')
    return service


def _key_taken(session, key, exclude_id=None):
    query = session.query(Service.id).filter(Service.service_key == key)
    if exclude_id is not None:
        query = query.filter(Service.id != exclude_id)
    return query.first() is not None


def _commit(session):
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict('Service key already exists')


def create_service(session, data: dict) -> Service:
    errors = _validate(data)
    if errors:
        raise ValidationFailed(errors)
    key = data['service_key'].strip()
    if _key_taken(session, key):
        raise Conflict('Service key already exists')

    service = Service(
        service_key=key,
        title=data['title'].strip(),
        description=clean_str(data.get('description')),
        price=Decimal(str(data['price'])),
        duration=int(data.get('duration') or 60),
        features=data.get('features') or [],
        badge=clean_str(data.get('badge')),
        display_order=int(data.get('display_order') or 0),
        status=data.get('status') or 'active',
    )
    session.add(service)
    _commit(session)
    logger.info(f"Service {service.id} ({key}) created")
    return service


def update_service(session, service: Service, data: dict) -> Service:
    errors = _validate(data, partial=True)
    if errors:
        raise ValidationFailed(errors)

    if data.get('service_key'):
        key = data['service_key'].strip()
        if key != service.service_key and _key_taken(session, key, exclude_id=service.id):
            raise Conflict('Service key already exists')
        service.service_key = key
    if 'title' in data:
        service.title = data['title'].strip()
    for field in ('description', 'badge'):
        if field in data:
            setattr(service, field, clean_str(data[field]))
    if data.get('price') not in (None, ''):
        service.price = Decimal(str(data['price']))
    if 'duration' in data:
        service.duration = int(data['duration'])
    if 'features' in data:
        service.features = data['features'] or []
    if 'display_order' in data:
        service.display_order = int(data['display_order'] or 0)
    if data.get('status'):
        service.status = data['status']
    _commit(session)
    logger.info(f"Service {service.id} updated")
    return service


def update_status(session, service: Service, status) -> Service:
    if status not in SERVICE_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(SERVICE_STATUSES)}"])
    service.status = status
    session.commit()
    return service


def delete_service(session, service: Service) -> None:
    session.delete(service)
    session.commit()
    logger.info(f"Service {service.id} deleted")


def statistics(session) -> dict:
    by_status = dict(session.query(Service.status, func.count(Service.id)).group_by(Service.status).all())
    average = session.query(func.avg(Service.price)).filter(Service.status == 'active').scalar()
    return {
        'total': sum(by_status.values()),
        'active': by_status.get('active', 0),
        'inactive': by_status.get('inactive', 0),
        'average_price': round(float(average), 2) if average is not None else 0.0,
    }
