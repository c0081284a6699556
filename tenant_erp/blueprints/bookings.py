"""Bookings blueprint - service appointments, washer dispatch and completion."""
from flask import Blueprint, g, request

from tenant_erp.blueprints.metrics import record_booking_event
from tenant_erp.database import get_session
from tenant_erp.exceptions import NotFound, ValidationFailed
from tenant_erp.middleware import require_admin, require_auth, require_org_access, require_user_type, resolve_acting_user
from tenant_erp.models import Booking
from tenant_erp.services import booking_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_booking, serialize_booking_history, serialize_user
from tenant_erp.utils.validators import parse_date, parse_pagination, parse_time

bookings_bp = Blueprint('bookings', __name__, url_prefix='/bookings')


def _page(query):
    limit, offset = parse_pagination(request.args)
    query = booking_service.apply_filters(query, request.args)
    total = query.count()
    items = booking_service.ordered(query).limit(limit).offset(offset).all()
    return success({
        'bookings': [serialize_booking(b) for b in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


def _required_date(name='date'):
    day = parse_date(request.args.get(name))
    if day is None:
        raise ValidationFailed([f'{name.replace("_", " ").capitalize()} is required (YYYY-MM-DD)'])
    return day


@bookings_bp.route('', methods=['POST'])
@require_auth
def create_booking():
    booking = booking_service.create_booking(get_session(), g.auth, resolve_acting_user(), get_json_body())
    record_booking_event('created')
    return created({'booking': serialize_booking(booking)}, 'Booking created successfully')


@bookings_bp.route('', methods=['GET'])
@require_auth
def list_bookings():
    """Customers see their own bookings, washers their assignments, admins their scope."""
    return _page(booking_service.visible_bookings(get_session(), g.auth))


@bookings_bp.route('/org/<org_id>', methods=['GET'])
@require_auth
@require_admin
@require_org_access
def list_org_bookings(org_id):
    return _page(get_session().query(Booking).filter(Booking.organization_id == g.organization.id))


# ============================================================================
# Availability and reports
# ============================================================================

@bookings_bp.route('/available-slots', methods=['GET'])
@require_auth
def available_slots():
    day = _required_date()
    try:
        duration = int(request.args.get('duration', 60))
    except (TypeError, ValueError):
        raise ValidationFailed(['Duration must be a whole number of minutes'])
    if duration <= 0:
        raise ValidationFailed(['Duration must be greater than 0 minutes'])
    organization_id = booking_service.desk_for(g.auth, request.args.get('organization_id'))
    slots = booking_service.available_slots(get_session(), organization_id, day, duration)
    return success({'date': day.isoformat(), 'duration': duration, 'slots': slots})


@bookings_bp.route('/available-washers', methods=['GET'])
@require_auth
@require_admin
def available_washers():
    day = _required_date()
    start, end = parse_time(request.args.get('start_time')), parse_time(request.args.get('end_time'))
    if start is None or end is None or start >= end:
        raise ValidationFailed(['Valid start_time and end_time are required (HH:MM)'])
    organization_id = booking_service.desk_for(g.auth, request.args.get('organization_id'))
    washers = booking_service.washers_available(get_session(), organization_id, day, start, end)
    return success({'washers': [serialize_user(w) for w in washers], 'total': len(washers)})


@bookings_bp.route('/upcoming', methods=['GET'])
@require_auth
def upcoming_bookings():
    items = booking_service.upcoming(booking_service.visible_bookings(get_session(), g.auth))
    return success({'bookings': [serialize_booking(b) for b in items]})


@bookings_bp.route('/today', methods=['GET'])
@require_auth
def todays_bookings():
    items = booking_service.today(booking_service.visible_bookings(get_session(), g.auth))
    return success({'bookings': [serialize_booking(b) for b in items]})


@bookings_bp.route('/by-date-range', methods=['GET'])
@require_auth
def bookings_by_date_range():
    items = booking_service.by_date_range(
        booking_service.visible_bookings(get_session(), g.auth),
        request.args.get('start_date'), request.args.get('end_date')
    )
    return success({'bookings': [serialize_booking(b) for b in items], 'total': len(items)})


@bookings_bp.route('/statistics', methods=['GET'])
@require_auth
def booking_statistics():
    return success(booking_service.statistics(booking_service.visible_bookings(get_session(), g.auth)))


# ============================================================================
# Single booking
# ============================================================================

@bookings_bp.route('/<int:booking_id>', methods=['GET'])
@require_auth
def get_booking(booking_id):
    booking = booking_service.get_booking(get_session(), g.auth, booking_id)
    return success({'booking': serialize_booking(booking, include_history=True)})


@bookings_bp.route('/<int:booking_id>', methods=['PUT'])
@require_auth
def update_booking(booking_id):
    session = get_session()
    booking = booking_service.get_booking(session, g.auth, booking_id)
    booking = booking_service.update_booking(session, g.auth, booking, get_json_body())
    return success({'booking': serialize_booking(booking)}, 'Booking updated successfully')


@bookings_bp.route('/<int:booking_id>', methods=['DELETE'])
@require_auth
def delete_booking(booking_id):
    session = get_session()
    booking_service.delete_booking(session, g.auth, booking_service.get_booking(session, g.auth, booking_id))
    return success({'booking_id': booking_id, 'deleted': True}, 'Booking deleted successfully')


@bookings_bp.route('/<int:booking_id>/status', methods=['PUT'])
@require_auth
def update_booking_status(booking_id):
    session = get_session()
    booking = booking_service.get_booking(session, g.auth, booking_id)
    booking = booking_service.change_status(session, g.auth, booking, get_json_body().get('status'))
    record_booking_event(f"status_{booking.status}")
    return success({'booking': serialize_booking(booking)}, 'Booking status updated successfully')


@bookings_bp.route('/<int:booking_id>/payment-status', methods=['PUT'])
@require_auth
def update_payment_status(booking_id):
    session = get_session()
    data = get_json_body()
    booking = booking_service.get_booking(session, g.auth, booking_id)
    booking = booking_service.update_payment_status(
        session, g.auth, booking, data.get('payment_status'), data.get('payment_method')
    )
    return success({'booking': serialize_booking(booking)}, 'Payment status updated successfully')


@bookings_bp.route('/<int:booking_id>/assign-washer', methods=['PUT'])
@require_auth
@require_admin
def assign_washer(booking_id):
    session = get_session()
    washer_id = get_json_body().get('washer_id')
    if washer_id in (None, ''):
        raise ValidationFailed(['Washer ID is required'])
    booking = booking_service.get_booking(session, g.auth, booking_id)
    booking = booking_service.assign_washer(session, booking, washer_id)
    record_booking_event('assigned')
    return success({'booking': serialize_booking(booking)}, 'Washer assigned successfully')


@bookings_bp.route('/<int:booking_id>/accept', methods=['POST'])
@require_auth
@require_user_type('washer')
def accept_booking(booking_id):
    """Unassigned bookings are not in a washer's list yet, so look them up directly."""
    session = get_session()
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise NotFound('Booking not found')
    booking = booking_service.accept_booking(session, g.auth, booking)
    record_booking_event('accepted')
    return success({'booking': serialize_booking(booking)}, 'Booking accepted successfully')


@bookings_bp.route('/<int:booking_id>/complete', methods=['POST'])
@require_auth
def complete_booking(booking_id):
    """Multipart upload of before/after photos and the customer signature."""
    session = get_session()
    booking = booking_service.get_booking(session, g.auth, booking_id)
    entry = booking_service.complete_with_photos(session, g.auth, booking, request.files, request.form.get('notes'))
    record_booking_event('completed')
    return success({
        'booking': serialize_booking(booking),
        'history': serialize_booking_history(entry),
    }, 'Booking completed successfully')


@bookings_bp.route('/<int:booking_id>/history', methods=['GET'])
@require_auth
def booking_history(booking_id):
    booking = booking_service.get_booking(get_session(), g.auth, booking_id)
    return success({'history': [serialize_booking_history(h) for h in booking.history]})
