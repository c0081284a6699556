"""
Unit tests for booking slot arithmetic and washer availability.
"""

from datetime import date, time, timedelta

import pytest

from tenant_erp.models import AppUser, Booking
from tenant_erp.services import booking_service


def _book(session, customer_id, day, start, end, status='pending', washer_id=None):
    booking = Booking(
        customer_id=customer_id,
        washer_id=washer_id,
        service_ids=[1],
        booking_date=day,
        start_time=start,
        end_time=end,
        address='1 Main Street',
        latitude=12.97,
        longitude=77.59,
        total_price=25,
        status=status,
    )
    session.add(booking)
    session.commit()
    return booking


@pytest.fixture
def day():
    return date.today() + timedelta(days=3)


class TestOverlap:
    """Half-open intervals: touching bookings do not overlap."""

    def test_intersecting_bookings_overlap(self, session, customer, day):
        _book(session, customer.id, day, time(10, 0), time(11, 0))

        assert booking_service.overlapping(session, None, day, time(10, 30), time(11, 30)).count() == 1
        assert booking_service.overlapping(session, None, day, time(9, 0), time(12, 0)).count() == 1

    def test_touching_bookings_do_not_overlap(self, session, customer, day):
        _book(session, customer.id, day, time(10, 0), time(11, 0))

        assert booking_service.overlapping(session, None, day, time(11, 0), time(12, 0)).count() == 0
        assert booking_service.overlapping(session, None, day, time(9, 0), time(10, 0)).count() == 0

    def test_terminal_bookings_never_block(self, session, customer, day):
        _book(session, customer.id, day, time(10, 0), time(11, 0), status='cancelled')
        _book(session, customer.id, day, time(10, 0), time(11, 0), status='completed')

        assert booking_service.overlapping(session, None, day, time(10, 0), time(11, 0)).count() == 0

    def test_other_days_ignored(self, session, customer, day):
        _book(session, customer.id, day + timedelta(days=1), time(10, 0), time(11, 0))
        assert booking_service.overlapping(session, None, day, time(10, 0), time(11, 0)).count() == 0


class TestCapacity:
    """One parallel booking per active washer, at least one."""

    def test_capacity_without_washers_is_one(self, session, customer, day):
        assert booking_service.slot_capacity(session, None) == 1
        _book(session, customer.id, day, time(10, 0), time(11, 0))
        assert booking_service.is_slot_available(session, None, day, time(10, 0), time(11, 0)) is False

    def test_capacity_counts_active_washers(self, session, customer, washer, day):
        second = AppUser(name='Wanda', email='wanda@washer.test', user_type='washer', status='active')
        second.set_password('password123')
        pending = AppUser(name='Will', email='will@washer.test', user_type='washer', status='pending')
        pending.set_password('password123')
        session.add_all([second, pending])
        session.commit()

        assert booking_service.slot_capacity(session, None) == 2

        _book(session, customer.id, day, time(10, 0), time(11, 0))
        assert booking_service.is_slot_available(session, None, day, time(10, 0), time(11, 0)) is True
        _book(session, customer.id, day, time(10, 0), time(11, 0))
        assert booking_service.is_slot_available(session, None, day, time(10, 0), time(11, 0)) is False

    def test_excluding_own_booking(self, session, customer, day):
        booking = _book(session, customer.id, day, time(10, 0), time(11, 0))
        assert booking_service.is_slot_available(
            session, None, day, time(10, 30), time(11, 30), exclude_id=booking.id
        ) is True


class TestWasherAvailability:

    def test_busy_washer_filtered_out(self, session, customer, washer, day):
        other = AppUser(name='Abe', email='abe@washer.test', user_type='washer', status='active')
        other.set_password('password123')
        session.add(other)
        session.commit()
        _book(session, customer.id, day, time(10, 0), time(11, 0), washer_id=washer.id)

        free = booking_service.washers_available(session, None, day, time(10, 30), time(11, 30))
        assert [w.id for w in free] == [other.id]

        assert booking_service.is_washer_free(session, washer.id, day, time(11, 0), time(12, 0)) is True
        assert booking_service.is_washer_free(session, washer.id, day, time(10, 0), time(10, 30)) is False


class TestAvailableSlots:

    def test_slots_follow_opening_hours(self, app, session, day):
        slots = booking_service.available_slots(session, None, day, duration_minutes=60)

        # 08:00 .. 19:00 starts in 30 minute steps
        assert len(slots) == 23
        assert slots[0] == {'start_time': '08:00', 'end_time': '09:00', 'available': True}
        assert slots[-1]['start_time'] == '19:00'
        assert slots[-1]['end_time'] == '20:00'

    def test_taken_slots_marked_unavailable(self, session, customer, day):
        _book(session, customer.id, day, time(10, 0), time(11, 0))
        slots = {s['start_time']: s['available'] for s in booking_service.available_slots(session, None, day, 60)}

        assert slots['09:00'] is True
        assert slots['09:30'] is False
        assert slots['10:00'] is False
        assert slots['10:30'] is False
        assert slots['11:00'] is True

    def test_past_days_have_no_open_slots(self, session):
        slots = booking_service.available_slots(session, None, date.today() - timedelta(days=1), 60)
        assert slots and not any(s['available'] for s in slots)
