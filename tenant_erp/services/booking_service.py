"""
Booking lifecycle service.

Status changes are gated by role:

- customer: may cancel their own booking while it is pending or confirmed
- washer: may move a booking assigned to them to in_progress or completed
- admin/superadmin: any valid status

completed and cancelled are terminal.

Two bookings overlap when ``start < other_end AND end > other_start`` on the
same date; cancelled and completed bookings never block a slot.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func

from tenant_erp.exceptions import AccessDenied, BadRequest, Conflict, NotFound, ValidationFailed
from tenant_erp.models import (
    AppUser, Booking, BookingHistory, BookingStatus, PaymentStatus, Service, Vehicle,
    TERMINAL_STATUSES, UserStatus, UserType
)
from tenant_erp.services.storage_service import get_storage_service
from tenant_erp.utils.validators import clean_str, parse_date, parse_id, parse_number, parse_time

logger = logging.getLogger(__name__)

BOOKING_STATUSES = [s.value for s in BookingStatus]
PAYMENT_STATUSES = [s.value for s in PaymentStatus]
CUSTOMER_CANCELLABLE = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
WASHER_TARGETS = (BookingStatus.IN_PROGRESS.value, BookingStatus.COMPLETED.value)
ACCEPTABLE = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
COMPLETION_FILES = ('before_image', 'after_image', 'signature_image')


# ============================================================================
# Visibility
# ============================================================================

def visible_bookings(session, auth):
    """Bookings the caller may see: own (customer), assigned (washer), scope (admin)."""
    query = session.query(Booking)
    if auth.user_type == UserType.CUSTOMER.value:
        return query.filter(Booking.customer_id == auth.user_id)
    if auth.user_type == UserType.WASHER.value:
        return query.filter(Booking.washer_id == auth.user_id)
    if auth.is_admin:
        if auth.is_platform_admin:
            return query
        # Unaffiliated admins run the global (non-tenant) desk
        return query.filter(in_desk(Booking.organization_id, auth.org_scope))
    raise AccessDenied('Insufficient permissions')


def get_booking(session, auth, booking_id) -> Booking:
    booking = visible_bookings(session, auth).filter(Booking.id == booking_id).first()
    if booking is None:
        raise NotFound('Booking not found')
    return booking


def apply_filters(query, filters: dict):
    if filters.get('status'):
        query = query.filter(Booking.status == filters['status'])
    if filters.get('payment_status'):
        query = query.filter(Booking.payment_status == filters['payment_status'])
    if filters.get('date'):
        day = parse_date(filters['date'])
        if day is None:
            raise ValidationFailed(['Invalid date format. Use YYYY-MM-DD'])
        query = query.filter(Booking.booking_date == day)
    for field in ('washer_id', 'customer_id', 'vehicle_id'):
        if filters.get(field):
            query = query.filter(getattr(Booking, field) == parse_id(filters[field], field))
    return query


def ordered(query):
    return query.order_by(Booking.booking_date.desc(), Booking.start_time.desc(), Booking.id.desc())


# ============================================================================
# Slot arithmetic
# ============================================================================

def in_desk(column, organization_id):
    """Filter clause for one organization's rows, or the global desk's when ``organization_id`` is None."""
    if organization_id is None:
        return column.is_(None)
    return column == organization_id


def desk_for(auth, requested=None):
    """
    Organization whose slots and washers the caller works with.

    Platform admins pick one with ``requested`` and default to the global desk;
    everybody else is pinned to their own organization.
    """
    if auth.is_platform_admin:
        return parse_id(requested, 'organization ID') if requested not in (None, '') else None
    return auth.org_scope


def _intersecting(session, day, start, end, exclude_id=None):
    query = session.query(Booking).filter(
        Booking.booking_date == day,
        Booking.start_time < end,
        Booking.end_time > start,
        Booking.status.notin_(TERMINAL_STATUSES)
    )
    if exclude_id is not None:
        query = query.filter(Booking.id != exclude_id)
    return query


def overlapping(session, organization_id, day, start, end, exclude_id=None):
    """Active bookings of one desk intersecting [start, end) on ``day``."""
    return _intersecting(session, day, start, end, exclude_id) \
        .filter(in_desk(Booking.organization_id, organization_id))


def active_washers(session, organization_id):
    home = func.coalesce(AppUser.organization_id, AppUser.institution_id)
    return session.query(AppUser).filter(
        AppUser.user_type == UserType.WASHER.value,
        AppUser.status == UserStatus.ACTIVE.value,
        in_desk(home, organization_id)
    )


def slot_capacity(session, organization_id) -> int:
    """Parallel bookings per slot: one per active washer of the desk, at least one."""
    return max(active_washers(session, organization_id).count(), 1)


def is_slot_available(session, organization_id, day, start, end, exclude_id=None) -> bool:
    taken = overlapping(session, organization_id, day, start, end, exclude_id).count()
    return taken < slot_capacity(session, organization_id)


def is_washer_free(session, washer_id, day, start, end, exclude_id=None) -> bool:
    return _intersecting(session, day, start, end, exclude_id).filter(Booking.washer_id == washer_id).count() == 0


def available_slots(session, organization_id, day, duration_minutes=60):
    """
    Slots between the configured opening hours in fixed steps.

    Returns:
        list of {'start_time', 'end_time', 'available'}
    """
    config = current_app.config
    day_start = parse_time(config.get('BOOKING_DAY_START', '08:00'))
    day_end = parse_time(config.get('BOOKING_DAY_END', '20:00'))
    step = timedelta(minutes=config.get('BOOKING_SLOT_MINUTES', 30))
    duration = timedelta(minutes=duration_minutes)

    capacity = slot_capacity(session, organization_id)
    cursor = datetime.combine(day, day_start)
    closing = datetime.combine(day, day_end)
    now = datetime.now()

    slots = []
    while cursor + duration <= closing:
        start, end = cursor.time(), (cursor + duration).time()
        taken = overlapping(session, organization_id, day, start, end).count()
        slots.append({
            'start_time': start.strftime('%H:%M'),
            'end_time': end.strftime('%H:%M'),
            'available': taken < capacity and cursor > now,
        })
        cursor += step
    return slots


def washers_available(session, organization_id, day, start, end):
    busy = {
        washer_id for (washer_id,) in
        _intersecting(session, day, start, end).with_entities(Booking.washer_id)
        .filter(Booking.washer_id.isnot(None)).all()
    }
    washers = active_washers(session, organization_id).order_by(AppUser.name.asc()).all()
    return [w for w in washers if w.id not in busy]


# ============================================================================
# Input parsing
# ============================================================================

def _parse_schedule(data, errors, current=None):
    """Parse booking_date/start_time/end_time, falling back to the current booking."""
    day = parse_date(data['booking_date']) if 'booking_date' in data else (current.booking_date if current else None)
    start = parse_time(data['start_time']) if 'start_time' in data else (current.start_time if current else None)
    end = parse_time(data['end_time']) if 'end_time' in data else (current.end_time if current else None)

    if day is None:
        errors.append('Invalid booking date. Use YYYY-MM-DD')
    elif day < date.today() and (current is None or 'booking_date' in data):
        errors.append('Booking date cannot be in the past')
    if start is None:
        errors.append('Invalid start time. Use HH:MM')
    if end is None:
        errors.append('Invalid end time. Use HH:MM')
    if start is not None and end is not None and start >= end:
        errors.append('End time must be after start time')
    return day, start, end


def _parse_services(session, service_ids, errors):
    if not isinstance(service_ids, list) or not service_ids:
        errors.append('At least one service must be selected')
        return []
    try:
        ids = [int(s) for s in service_ids]
    except (TypeError, ValueError):
        errors.append('Service IDs must be numeric')
        return []
    found = {
        s.id for s in session.query(Service).filter(Service.id.in_(ids), Service.status == 'active').all()
    }
    missing = [i for i in ids if i not in found]
    if missing:
        errors.append(f"Unknown or inactive services: {', '.join(str(i) for i in missing)}")
    return ids


def _parse_location(data, errors, current=None):
    latitude = parse_number(data['latitude']) if 'latitude' in data else (current.latitude if current else None)
    longitude = parse_number(data['longitude']) if 'longitude' in data else (current.longitude if current else None)
    if latitude is None or not -90 <= latitude <= 90:
        errors.append('Latitude must be between -90 and 90')
    if longitude is None or not -180 <= longitude <= 180:
        errors.append('Longitude must be between -180 and 180')
    return latitude, longitude


def _parse_price(value, errors):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        errors.append('Total price must be a number')
        return None
    if price < 0:
        errors.append('Total price cannot be negative')
    return price


def _vehicle_for(session, vehicle_id, customer_id, errors):
    try:
        vehicle_id = int(vehicle_id)
    except (TypeError, ValueError):
        errors.append('Invalid vehicle ID')
        return None
    vehicle = session.get(Vehicle, vehicle_id)
    if vehicle is None or vehicle.customer_id != customer_id:
        errors.append('Vehicle not found or does not belong to the customer')
        return None
    return vehicle


# ============================================================================
# Mutations
# ============================================================================

def create_booking(session, auth, acting_user: AppUser, data: dict) -> Booking:
    """
    Create a pending booking.

    Customers book for themselves; admins must name ``customer_id``.
    """
    if auth.user_type == UserType.CUSTOMER.value:
        customer = acting_user
    elif auth.is_admin:
        if not data.get('customer_id'):
            raise ValidationFailed(['Customer ID is required'])
        customer = session.get(AppUser, parse_id(data['customer_id'], 'customer ID'))
        if customer is None or customer.user_type != UserType.CUSTOMER.value:
            raise ValidationFailed(['Customer not found'])
        if not auth.is_platform_admin and customer.home_organization_id != auth.org_scope:
            raise AccessDenied('Customer belongs to another organization')
    else:
        raise AccessDenied('Only customers and administrators can create bookings')

    errors = []
    for field in ('vehicle_id', 'service_ids', 'booking_date', 'start_time', 'end_time',
                  'address', 'latitude', 'longitude', 'total_price'):
        if field not in data or data[field] in (None, ''):
            errors.append(f"{field.replace('_', ' ').capitalize()} is required")
    if errors:
        raise ValidationFailed(errors)

    vehicle = _vehicle_for(session, data['vehicle_id'], customer.id, errors)
    service_ids = _parse_services(session, data['service_ids'], errors)
    day, start, end = _parse_schedule(data, errors)
    latitude, longitude = _parse_location(data, errors)
    price = _parse_price(data['total_price'], errors)
    address = clean_str(data.get('address'))
    if not address:
        errors.append('Address is required')
    if errors:
        raise ValidationFailed(errors)

    organization_id = customer.home_organization_id
    if not is_slot_available(session, organization_id, day, start, end):
        raise Conflict('Selected time slot is not available')

    booking = Booking(
        organization_id=organization_id,
        customer_id=customer.id,
        vehicle_id=vehicle.id,
        service_ids=service_ids,
        booking_date=day,
        start_time=start,
        end_time=end,
        address=address,
        latitude=latitude,
        longitude=longitude,
        total_price=price,
        status=BookingStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        payment_method=clean_str(data.get('payment_method')),
        notes=clean_str(data.get('notes')),
    )
    session.add(booking)
    session.commit()
    logger.info(f"Booking {booking.id} created for customer {customer.id} on {day} {start}-{end}")
    return booking


def _ensure_owner_or_admin(auth, booking):
    if auth.is_admin:
        return
    if auth.user_type == UserType.CUSTOMER.value and booking.customer_id == auth.user_id:
        return
    raise AccessDenied('You can only modify your own bookings')


def update_booking(session, auth, booking: Booking, data: dict) -> Booking:
    """Reschedule or edit details of a non-terminal booking."""
    _ensure_owner_or_admin(auth, booking)
    if booking.is_terminal:
        raise BadRequest(f"Cannot modify a {booking.status} booking")

    errors = []
    if 'vehicle_id' in data:
        vehicle = _vehicle_for(session, data['vehicle_id'], booking.customer_id, errors)
    if 'service_ids' in data:
        service_ids = _parse_services(session, data['service_ids'], errors)
    rescheduled = any(f in data for f in ('booking_date', 'start_time', 'end_time'))
    day, start, end = _parse_schedule(data, errors, current=booking)
    if 'latitude' in data or 'longitude' in data:
        latitude, longitude = _parse_location(data, errors, current=booking)
    if 'total_price' in data:
        price = _parse_price(data['total_price'], errors)
    if 'address' in data and not clean_str(data.get('address')):
        errors.append('Address cannot be empty')
    if errors:
        raise ValidationFailed(errors)

    if rescheduled:
        if booking.washer_id is not None:
            if not is_washer_free(session, booking.washer_id, day, start, end, exclude_id=booking.id):
                raise Conflict('Assigned washer is not available in the selected time slot')
        elif not is_slot_available(session, booking.organization_id, day, start, end, exclude_id=booking.id):
            raise Conflict('Selected time slot is not available')
        booking.booking_date, booking.start_time, booking.end_time = day, start, end

    if 'vehicle_id' in data:
        booking.vehicle_id = vehicle.id
    if 'service_ids' in data:
        booking.service_ids = service_ids
    if 'latitude' in data or 'longitude' in data:
        booking.latitude, booking.longitude = latitude, longitude
    if 'total_price' in data:
        booking.total_price = price
    for field in ('address', 'payment_method', 'notes'):
        if field in data:
            setattr(booking, field, clean_str(data[field]))

    session.commit()
    logger.info(f"Booking {booking.id} updated by user {auth.user_id}")
    return booking


def delete_booking(session, auth, booking: Booking) -> None:
    _ensure_owner_or_admin(auth, booking)
    if booking.status == BookingStatus.COMPLETED.value:
        raise BadRequest('Completed bookings cannot be deleted')
    session.delete(booking)
    session.commit()
    logger.info(f"Booking {booking.id} deleted by user {auth.user_id}")


def change_status(session, auth, booking: Booking, new_status: str) -> Booking:
    """Apply a role-gated status transition."""
    if new_status not in BOOKING_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}"])
    if booking.is_terminal:
        raise BadRequest(f"Booking is already {booking.status}")

    if auth.is_admin:
        pass
    elif auth.user_type == UserType.CUSTOMER.value:
        if booking.customer_id != auth.user_id:
            raise AccessDenied('You can only update your own bookings')
        if new_status != BookingStatus.CANCELLED.value:
            raise AccessDenied('Customers can only cancel bookings')
        if booking.status not in CUSTOMER_CANCELLABLE:
            raise BadRequest('Booking can no longer be cancelled')
    elif auth.user_type == UserType.WASHER.value:
        if booking.washer_id != auth.user_id:
            raise AccessDenied('This booking is not assigned to you')
        if new_status not in WASHER_TARGETS:
            raise AccessDenied('Washers can only set in_progress or completed')
    else:
        raise AccessDenied('Insufficient permissions')

    previous = booking.status
    booking.status = new_status
    session.commit()
    logger.info(f"Booking {booking.id} status {previous} -> {new_status} by user {auth.user_id}")
    return booking


def update_payment_status(session, auth, booking: Booking, payment_status, payment_method=None) -> Booking:
    if not (auth.is_admin or (auth.user_type == UserType.WASHER.value and booking.washer_id == auth.user_id)):
        raise AccessDenied('Insufficient permissions')
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationFailed([f"Invalid payment status. Must be one of: {', '.join(PAYMENT_STATUSES)}"])
    booking.payment_status = payment_status
    if payment_method:
        booking.payment_method = clean_str(payment_method)
    session.commit()
    logger.info(f"Booking {booking.id} payment status -> {payment_status}")
    return booking


def assign_washer(session, booking: Booking, washer_id) -> Booking:
    """Admin assignment; the washer must work the booking's desk, be active and be free in the slot."""
    if booking.is_terminal:
        raise BadRequest(f"Cannot assign a washer to a {booking.status} booking")
    washer = session.get(AppUser, parse_id(washer_id, 'washer ID'))
    if washer is None or washer.user_type != UserType.WASHER.value:
        raise NotFound('Washer not found')
    if washer.home_organization_id != booking.organization_id:
        raise NotFound('Washer not found')
    if not washer.is_active:
        raise ValidationFailed(['Washer account is not active'])
    if not is_washer_free(session, washer.id, booking.booking_date, booking.start_time, booking.end_time,
                          exclude_id=booking.id):
        raise Conflict('Washer is not available in this time slot')

    booking.washer_id = washer.id
    booking.status = BookingStatus.ASSIGNED.value
    session.commit()
    logger.info(f"Booking {booking.id} assigned to washer {washer.id}")
    return booking


def accept_booking(session, auth, booking: Booking) -> Booking:
    """A washer takes an unassigned pending/confirmed booking."""
    if auth.user_type != UserType.WASHER.value:
        raise AccessDenied('Only washers can accept bookings')
    if auth.org_scope != booking.organization_id:
        # Other desks' bookings do not exist for this washer
        raise NotFound('Booking not found')
    if booking.washer_id is not None and booking.washer_id != auth.user_id:
        raise Conflict('Booking has already been accepted by another washer')
    if booking.status not in ACCEPTABLE:
        raise BadRequest(f"Booking cannot be accepted while {booking.status}")
    if not is_washer_free(session, auth.user_id, booking.booking_date, booking.start_time, booking.end_time,
                          exclude_id=booking.id):
        raise Conflict('You already have a booking in this time slot')

    booking.washer_id = auth.user_id
    booking.status = BookingStatus.ALLOCATED.value
    session.commit()
    logger.info(f"Booking {booking.id} accepted by washer {auth.user_id}")
    return booking


def complete_with_photos(session, auth, booking: Booking, files, notes=None) -> BookingHistory:
    """
    Store completion evidence and mark the booking completed.

    Files are stored under ``bookings/<booking_id>/``; if anything fails the
    files written so far are removed again.
    """
    if not (auth.is_admin or (auth.user_type == UserType.WASHER.value and booking.washer_id == auth.user_id)):
        raise AccessDenied('This booking is not assigned to you')
    if booking.is_terminal:
        raise BadRequest(f"Booking is already {booking.status}")

    missing = [name for name in COMPLETION_FILES if not files.get(name)]
    if missing:
        raise ValidationFailed([f"{name.replace('_', ' ').capitalize()} is required" for name in missing])

    storage = get_storage_service()
    stored = {}
    try:
        for name in COMPLETION_FILES:
            stored[name] = storage.save_upload(files[name], 'bookings', booking.id, prefix=name.replace('_image', ''))

        entry = BookingHistory(
            booking_id=booking.id,
            washer_id=booking.washer_id,
            before_image=stored['before_image'],
            after_image=stored['after_image'],
            signature_image=stored['signature_image'],
            notes=clean_str(notes),
        )
        session.add(entry)
        booking.status = BookingStatus.COMPLETED.value
        session.commit()
    except Exception:
        session.rollback()
        for key in stored.values():
            storage.delete(key)
        raise

    logger.info(f"Booking {booking.id} completed with evidence by user {auth.user_id}")
    return entry


# ============================================================================
# Reports
# ============================================================================

def upcoming(query, limit=10):
    return query.filter(
        Booking.booking_date >= date.today(),
        Booking.status.notin_(TERMINAL_STATUSES)
    ).order_by(Booking.booking_date.asc(), Booking.start_time.asc()).limit(limit).all()


def today(query):
    return query.filter(Booking.booking_date == date.today()).order_by(Booking.start_time.asc()).all()


def by_date_range(query, start_date, end_date):
    start, end = parse_date(start_date), parse_date(end_date)
    if start is None or end is None:
        raise ValidationFailed(['Start date and end date are required (YYYY-MM-DD)'])
    if start > end:
        raise ValidationFailed(['Start date must be before end date'])
    return query.filter(
        Booking.booking_date >= start,
        Booking.booking_date <= end
    ).order_by(Booking.booking_date.asc(), Booking.start_time.asc()).all()


def statistics(query) -> dict:
    by_status = dict(query.with_entities(Booking.status, func.count(Booking.id)).group_by(Booking.status).all())
    by_payment = dict(
        query.with_entities(Booking.payment_status, func.count(Booking.id)).group_by(Booking.payment_status).all()
    )
    revenue = query.filter(Booking.payment_status == PaymentStatus.PAID.value) \
        .with_entities(func.coalesce(func.sum(Booking.total_price), 0)).scalar()
    return {
        'total_bookings': sum(by_status.values()),
        'by_status': {status: by_status.get(status, 0) for status in BOOKING_STATUSES},
        'by_payment_status': {status: by_payment.get(status, 0) for status in PAYMENT_STATUSES},
        'total_revenue': float(revenue or 0),
    }
