"""Customer vehicle management."""
import logging
from datetime import date

from sqlalchemy import func

from tenant_erp.exceptions import AccessDenied, Conflict, NotFound, ValidationFailed
from tenant_erp.models import AppUser, Booking, Vehicle, TERMINAL_STATUSES, UserType
from tenant_erp.utils.validators import clean_str, missing_fields, non_text_fields

logger = logging.getLogger(__name__)

VEHICLE_FIELDS = ('make', 'model', 'year', 'color', 'license_plate', 'vehicle_type')


def visible_vehicles(session, auth):
    """Customers see their own vehicles; admins see the vehicles of customers in scope."""
    query = session.query(Vehicle)
    if auth.user_type == UserType.CUSTOMER.value:
        return query.filter(Vehicle.customer_id == auth.user_id)
    if not auth.is_admin:
        raise AccessDenied('Insufficient permissions')
    if auth.is_platform_admin:
        return query
    owner_scope = func.coalesce(AppUser.organization_id, AppUser.institution_id)
    query = query.join(AppUser, Vehicle.customer_id == AppUser.id)
    if auth.org_scope is None:
        return query.filter(owner_scope.is_(None))
    return query.filter(owner_scope == auth.org_scope)


def get_vehicle(session, auth, vehicle_id) -> Vehicle:
    vehicle = visible_vehicles(session, auth).filter(Vehicle.id == vehicle_id).first()
    if vehicle is None:
        raise NotFound('Vehicle not found')
    return vehicle


def _validate(data: dict, partial=False) -> list:
    errors = [] if partial else missing_fields(data, ('make', 'model'))
    errors += non_text_fields(data, ('make', 'model'))
    for field in ('make', 'model'):
        if partial and field in data and not clean_str(data.get(field)):
            errors.append(f"{field.capitalize()} cannot be empty")
    year = data.get('year')
    if year not in (None, ''):
        try:
            year = int(year)
            if year < 1900 or year > date.today().year + 1:
                errors.append(f'Year must be between 1900 and {date.today().year + 1}')
        except (TypeError, ValueError):
            errors.append('Year must be a number')
    return errors


def _normalise_plate(plate):
    plate = clean_str(plate)
    return plate.upper() if plate else None


def _plate_taken(session, customer_id, plate, exclude_id=None) -> bool:
    if not plate:
        return False
    query = session.query(Vehicle.id).filter(
        Vehicle.customer_id == customer_id,
        func.upper(Vehicle.license_plate) == plate
    )
    if exclude_id is not None:
        query = query.filter(Vehicle.id != exclude_id)
    return query.first() is not None


def create_vehicle(session, customer_id, data: dict) -> Vehicle:
    errors = _validate(data)
    if errors:
        raise ValidationFailed(errors)

    plate = _normalise_plate(data.get('license_plate'))
    if _plate_taken(session, customer_id, plate):
        raise Conflict('A vehicle with this license plate already exists')

    vehicle = Vehicle(
        customer_id=customer_id,
        make=data['make'].strip(),
        model=data['model'].strip(),
        year=int(data['year']) if data.get('year') not in (None, '') else None,
        color=clean_str(data.get('color')),
        license_plate=plate,
        vehicle_type=clean_str(data.get('vehicle_type')),
    )
    session.add(vehicle)
    session.commit()
    logger.info(f"Vehicle {vehicle.id} registered for customer {customer_id}")
    return vehicle


def update_vehicle(session, vehicle: Vehicle, data: dict) -> Vehicle:
    errors = _validate(data, partial=True)
    if errors:
        raise ValidationFailed(errors)

    if 'license_plate' in data:
        plate = _normalise_plate(data['license_plate'])
        if _plate_taken(session, vehicle.customer_id, plate, exclude_id=vehicle.id):
            raise Conflict('A vehicle with this license plate already exists')
        vehicle.license_plate = plate

    for field in VEHICLE_FIELDS:
        if field not in data or field == 'license_plate':
            continue
        if field == 'year':
            vehicle.year = int(data['year']) if data['year'] not in (None, '') else None
        else:
            setattr(vehicle, field, clean_str(data[field]))

    session.commit()
    logger.info(f"Vehicle {vehicle.id} updated")
    return vehicle


def delete_vehicle(session, vehicle: Vehicle) -> None:
    """Delete a vehicle that no active booking refers to."""
    in_use = session.query(Booking.id).filter(
        Booking.vehicle_id == vehicle.id,
        Booking.status.notin_(TERMINAL_STATUSES)
    ).first()
    if in_use:
        raise Conflict('Vehicle has active bookings and cannot be deleted')

    # Finished bookings keep their history but drop the reference
    session.query(Booking).filter(Booking.vehicle_id == vehicle.id).update(
        {Booking.vehicle_id: None}, synchronize_session=False
    )
    session.delete(vehicle)
    session.commit()
    logger.info(f"Vehicle {vehicle.id} deleted")
