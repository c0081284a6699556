"""
Unit tests for academic session rules: validation, overlap and the single active session.
"""

import pytest

from tenant_erp.exceptions import AccessDenied, BadRequest, Conflict, NotFound, ValidationFailed
from tenant_erp.models import AcademicSession
from tenant_erp.services import session_service
from tenant_erp.services.token_service import AuthContext


def _payload(**overrides):
    data = {
        'session_name': '2025-2026',
        'start_date': '2025-06-01',
        'end_date': '2026-03-31',
    }
    data.update(overrides)
    return data


class TestResolveInstitution:

    def test_defaults_to_caller_scope(self):
        auth = AuthContext(1, 'a@b.co', 'admin', 'organization', organization_id=5, institution_id=5)
        assert session_service.resolve_institution(auth) == 5
        assert session_service.resolve_institution(auth, '5') == 5

    def test_other_institution_refused(self):
        auth = AuthContext(1, 'a@b.co', 'admin', 'organization', organization_id=5, institution_id=5)
        with pytest.raises(AccessDenied) as exc:
            session_service.resolve_institution(auth, 9)
        assert exc.value.message == 'Unauthorized access to this institution'

    def test_platform_admin_may_name_any(self):
        auth = AuthContext(1, 'root@b.co', 'superadmin', 'global')
        assert session_service.resolve_institution(auth, 9) == 9
        with pytest.raises(BadRequest):
            session_service.resolve_institution(auth)


class TestValidation:

    def test_required_fields(self):
        errors, *_ = session_service._validate({})
        assert errors == ['Session name is required', 'Start date is required', 'End date is required']

    def test_end_must_follow_start(self):
        errors, *_ = session_service._validate(_payload(end_date='2025-06-01'))
        assert 'End date must be after start date' in errors

    def test_bad_working_day_and_terms(self):
        errors, *_ = session_service._validate(_payload(working_days=['Monday', 'Funday'], number_of_terms=7))
        assert 'Invalid day: Funday' in errors
        assert 'Number of terms must be between 1 and 4' in errors

    def test_term_structure_must_match_number_of_terms(self):
        errors, *_ = session_service._validate(_payload(
            number_of_terms=2,
            term_structure=[{'term_name': 'Term 1', 'start_date': '2025-06-01', 'end_date': '2025-10-31'}]
        ))
        assert errors == ['Term structure must have exactly 2 terms']

    def test_term_entries_checked(self):
        errors, *_ = session_service._validate(_payload(
            number_of_terms=1,
            term_structure=[{'start_date': '2025-06-01', 'end_date': 'soon'}]
        ))
        assert errors == ['Term 1 missing term_name', 'Term 1 has invalid end_date']


class TestCreateSession:

    def test_defaults(self, session, org):
        created = session_service.create_session(session, org.id, _payload(), acting_user_id=None)

        assert created.status == 'upcoming'
        assert created.is_active is False
        assert created.number_of_terms == 2
        assert created.working_days == ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday']

    def test_duplicate_name_case_insensitive(self, session, org):
        session_service.create_session(session, org.id, _payload(session_name='Year One'), None)
        with pytest.raises(Conflict) as exc:
            session_service.create_session(session, org.id, _payload(
                session_name='YEAR ONE', start_date='2027-01-01', end_date='2027-12-31'
            ), None)
        assert exc.value.message == 'A session with this name already exists for this institution'

    def test_overlap_is_inclusive(self, session, org):
        first = session_service.create_session(session, org.id, _payload(), None)
        with pytest.raises(Conflict) as exc:
            session_service.create_session(session, org.id, _payload(
                session_name='Next', start_date='2026-03-31', end_date='2027-03-31'
            ), None)

        assert exc.value.message == 'Session dates overlap with existing session: 2025-2026'
        assert exc.value.payload['overlapping_session']['id'] == first.id

    def test_adjacent_sessions_allowed(self, session, org):
        session_service.create_session(session, org.id, _payload(), None)
        session_service.create_session(session, org.id, _payload(
            session_name='Next', start_date='2026-04-01', end_date='2027-03-31'
        ), None)
        assert session.query(AcademicSession).count() == 2

    def test_other_institution_may_overlap(self, session, org, other_org):
        session_service.create_session(session, org.id, _payload(), None)
        session_service.create_session(session, other_org.id, _payload(), None)
        assert session.query(AcademicSession).count() == 2


class TestActiveSession:

    def test_activation_is_exclusive(self, session, org, other_org):
        first = session_service.create_session(session, org.id, _payload(is_active=True), None)
        second = session_service.create_session(session, org.id, _payload(
            session_name='Next', start_date='2026-04-01', end_date='2027-03-31'
        ), None)
        foreign = session_service.create_session(session, other_org.id, _payload(is_active=True), None)

        session_service.toggle_active(session, second, {'is_active': True}, None)

        assert session.get(AcademicSession, first.id).is_active is False
        assert session.get(AcademicSession, second.id).is_active is True
        assert session.get(AcademicSession, foreign.id).is_active is True
        assert session_service.active_session(session, org.id).id == second.id

    def test_toggle_requires_flag(self, session, org):
        created = session_service.create_session(session, org.id, _payload(), None)
        with pytest.raises(BadRequest) as exc:
            session_service.toggle_active(session, created, {}, None)
        assert exc.value.message == 'is_active field is required'

    def test_no_active_session(self, session, org):
        with pytest.raises(NotFound) as exc:
            session_service.active_session(session, org.id)
        assert exc.value.message == 'No active session found'

    def test_active_session_cannot_be_deleted(self, session, org):
        created = session_service.create_session(session, org.id, _payload(is_active=True), None)
        with pytest.raises(BadRequest):
            session_service.delete_session(session, created)

        session_service.toggle_active(session, created, {'is_active': False}, None)
        session_service.delete_session(session, created)
        assert session.query(AcademicSession).count() == 0


class TestUpdateAndStatistics:

    def test_update_checks_overlap_against_others(self, session, org):
        session_service.create_session(session, org.id, _payload(), None)
        later = session_service.create_session(session, org.id, _payload(
            session_name='Next', start_date='2026-04-01', end_date='2027-03-31'
        ), None)

        with pytest.raises(Conflict):
            session_service.update_session(session, later, {'start_date': '2026-01-01'}, None)

        updated = session_service.update_session(session, later, {'end_date': '2027-04-30', 'status': 'ongoing'}, None)
        assert updated.end_date.isoformat() == '2027-04-30'
        assert updated.status == 'ongoing'

    def test_update_settings_requires_object(self, session, org):
        created = session_service.create_session(session, org.id, _payload(), None)
        with pytest.raises(ValidationFailed):
            session_service.update_settings(session, created, ['grading'], None)

    def test_statistics(self, session, org):
        session_service.create_session(session, org.id, _payload(is_active=True, status='ongoing'), None)
        session_service.create_session(session, org.id, _payload(
            session_name='Next', start_date='2026-04-01', end_date='2027-03-31'
        ), None)

        assert session_service.statistics(session, org.id) == {
            'total_sessions': 2,
            'active_sessions': 1,
            'ongoing_sessions': 1,
            'upcoming_sessions': 1,
            'completed_sessions': 0,
        }
