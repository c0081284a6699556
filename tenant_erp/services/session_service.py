"""
Academic sessions of an institution.

At most one session per institution is active; activating one deactivates
the others in the same transaction. Session date ranges of one institution
must not overlap (inclusive on both ends).
"""
import logging

from sqlalchemy import func

from tenant_erp.exceptions import AccessDenied, BadRequest, Conflict, NotFound, ValidationFailed
from tenant_erp.models import AcademicSession, SessionStatus, DEFAULT_WORKING_DAYS
from tenant_erp.utils.validators import clean_str, missing_fields, non_text_fields, parse_bool, parse_date

logger = logging.getLogger(__name__)

SESSION_STATUSES = [s.value for s in SessionStatus]
WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
MIN_TERMS, MAX_TERMS = 1, 4


def resolve_institution(auth, requested=None) -> int:
    """The caller's institution; an explicit different one is refused."""
    scope = auth.org_scope
    if requested not in (None, ''):
        try:
            requested = int(requested)
        except (TypeError, ValueError):
            raise BadRequest('Invalid institution ID')
        if requested != scope and not auth.is_platform_admin:
            raise AccessDenied('Unauthorized access to this institution')
        return requested
    if scope is None:
        raise BadRequest('Institution ID is required')
    return scope


def _term_errors(term_structure, number_of_terms) -> list:
    if not isinstance(term_structure, list):
        return ['Term structure must be an array']
    if len(term_structure) != number_of_terms:
        return [f'Term structure must have exactly {number_of_terms} terms']
    errors = []
    for index, term in enumerate(term_structure, start=1):
        term = term if isinstance(term, dict) else {}
        if not clean_str(term.get('term_name')):
            errors.append(f'Term {index} missing term_name')
        if parse_date(term.get('start_date')) is None:
            errors.append(f'Term {index} has invalid start_date')
        if parse_date(term.get('end_date')) is None:
            errors.append(f'Term {index} has invalid end_date')
    return errors


def _validate(data: dict, current: AcademicSession = None):
    """
    Validate a create payload, or an update payload merged over ``current``.

    Returns:
        tuple: (errors, start_date, end_date, number_of_terms)
    """
    errors = missing_fields(data, ('session_name', 'start_date', 'end_date')) if current is None else []
    errors += non_text_fields(data, ('session_name',))
    if current is not None and 'session_name' in data and not clean_str(data.get('session_name')):
        errors.append('Session name cannot be empty')

    start = parse_date(data['start_date']) if data.get('start_date') else (current.start_date if current else None)
    end = parse_date(data['end_date']) if data.get('end_date') else (current.end_date if current else None)
    if data.get('start_date') and start is None:
        errors.append('Invalid start date format. Use YYYY-MM-DD')
    if data.get('end_date') and end is None:
        errors.append('Invalid end date format. Use YYYY-MM-DD')
    if start is not None and end is not None and start >= end:
        errors.append('End date must be after start date')

    if data.get('status') and data['status'] not in SESSION_STATUSES:
        errors.append(f"Invalid status. Must be: {', '.join(SESSION_STATUSES)}")

    working_days = data.get('working_days')
    if working_days:
        if not isinstance(working_days, list):
            errors.append('Working days must be an array')
        else:
            invalid = [day for day in working_days if day not in WEEKDAYS]
            if invalid:
                errors.append(f'Invalid day: {invalid[0]}')

    number_of_terms = current.number_of_terms if current else 2
    if data.get('number_of_terms') not in (None, ''):
        try:
            number_of_terms = int(data['number_of_terms'])
            if not MIN_TERMS <= number_of_terms <= MAX_TERMS:
                raise ValueError
        except (TypeError, ValueError):
            errors.append(f'Number of terms must be between {MIN_TERMS} and {MAX_TERMS}')
            number_of_terms = None

    if data.get('term_structure') and number_of_terms is not None:
        errors.extend(_term_errors(data['term_structure'], number_of_terms))

    if data.get('holidays') is not None and not isinstance(data['holidays'], list):
        errors.append('Holidays must be an array')
    if data.get('settings') is not None and not isinstance(data['settings'], dict):
        errors.append('Settings must be an object')

    return errors, start, end, number_of_terms


def _ensure_unique_name(session, institution_id, name, exclude_id=None):
    query = session.query(AcademicSession.id).filter(
        AcademicSession.institution_id == institution_id,
        func.lower(AcademicSession.session_name) == name.lower()
    )
    if exclude_id is not None:
        query = query.filter(AcademicSession.id != exclude_id)
    if query.first():
        raise Conflict('A session with this name already exists for this institution')


def _ensure_no_overlap(session, institution_id, start, end, exclude_id=None):
    query = session.query(AcademicSession).filter(
        AcademicSession.institution_id == institution_id,
        AcademicSession.start_date <= end,
        AcademicSession.end_date >= start
    )
    if exclude_id is not None:
        query = query.filter(AcademicSession.id != exclude_id)
    overlap = query.first()
    if overlap is not None:
        raise Conflict(
            f'Session dates overlap with existing session: {overlap.session_name}',
            payload={'overlapping_session': {'id': overlap.id, 'session_name': overlap.session_name}}
        )


def _deactivate_others(session, institution_id, keep_id):
    session.query(AcademicSession).filter(
        AcademicSession.institution_id == institution_id,
        AcademicSession.id != keep_id,
        AcademicSession.is_active.is_(True)
    ).update({AcademicSession.is_active: False}, synchronize_session='fetch')


# ============================================================================
# Queries
# ============================================================================

def list_sessions(session, institution_id, filters: dict):
    query = session.query(AcademicSession).filter(AcademicSession.institution_id == institution_id)
    if filters.get('status'):
        query = query.filter(AcademicSession.status == filters['status'])
    if filters.get('is_active') not in (None, ''):
        query = query.filter(AcademicSession.is_active.is_(parse_bool(filters['is_active'])))
    return query.order_by(AcademicSession.start_date.desc()).all()


def get_session(session, auth, session_id) -> AcademicSession:
    academic_session = session.get(AcademicSession, session_id)
    if academic_session is None:
        raise NotFound('Session not found')
    if not auth.can_access_org(academic_session.institution_id):
        raise AccessDenied('Unauthorized access to this session')
    return academic_session


def active_session(session, institution_id) -> AcademicSession:
    academic_session = session.query(AcademicSession).filter(
        AcademicSession.institution_id == institution_id,
        AcademicSession.is_active.is_(True)
    ).first()
    if academic_session is None:
        raise NotFound('No active session found')
    return academic_session


def statistics(session, institution_id) -> dict:
    base = session.query(AcademicSession).filter(AcademicSession.institution_id == institution_id)
    by_status = dict(
        base.with_entities(AcademicSession.status, func.count(AcademicSession.id))
        .group_by(AcademicSession.status).all()
    )
    return {
        'total_sessions': sum(by_status.values()),
        'active_sessions': base.filter(AcademicSession.is_active.is_(True)).count(),
        'ongoing_sessions': by_status.get(SessionStatus.ONGOING.value, 0),
        'upcoming_sessions': by_status.get(SessionStatus.UPCOMING.value, 0),
        'completed_sessions': by_status.get(SessionStatus.COMPLETED.value, 0),
    }


# ============================================================================
# Mutations
# ============================================================================

def create_session(session, institution_id, data: dict, acting_user_id) -> AcademicSession:
    """
    Create a session for an institution.

    Raises:
        ValidationFailed: invalid dates, status, working days or terms
        Conflict: duplicate name or overlapping dates
    """
    errors, start, end, number_of_terms = _validate(data)
    if errors:
        raise ValidationFailed(errors)

    name = data['session_name'].strip()
    _ensure_unique_name(session, institution_id, name)
    _ensure_no_overlap(session, institution_id, start, end)

    is_active = parse_bool(data.get('is_active'))
    academic_session = AcademicSession(
        institution_id=institution_id,
        session_name=name,
        start_date=start,
        end_date=end,
        is_active=is_active,
        status=data.get('status') or SessionStatus.UPCOMING.value,
        description=clean_str(data.get('description')),
        working_days=data.get('working_days') or list(DEFAULT_WORKING_DAYS),
        number_of_terms=number_of_terms,
        term_structure=data.get('term_structure') or None,
        holidays=data.get('holidays') or [],
        settings=data.get('settings') or None,
        created_by=acting_user_id,
    )
    session.add(academic_session)
    session.flush()
    if is_active:
        _deactivate_others(session, institution_id, academic_session.id)
    session.commit()
    logger.info(f"Academic session {academic_session.id} created for institution {institution_id}")
    return academic_session


def update_session(session, academic_session: AcademicSession, data: dict, acting_user_id) -> AcademicSession:
    errors, start, end, number_of_terms = _validate(data, current=academic_session)
    if errors:
        raise ValidationFailed(errors)

    institution_id = academic_session.institution_id
    if 'session_name' in data:
        name = data['session_name'].strip()
        _ensure_unique_name(session, institution_id, name, exclude_id=academic_session.id)
        academic_session.session_name = name
    _ensure_no_overlap(session, institution_id, start, end, exclude_id=academic_session.id)

    academic_session.start_date = start
    academic_session.end_date = end
    academic_session.number_of_terms = number_of_terms
    if data.get('status'):
        academic_session.status = data['status']
    if 'description' in data:
        academic_session.description = clean_str(data['description'])
    for field in ('working_days', 'term_structure', 'holidays', 'settings'):
        if field in data:
            setattr(academic_session, field, data[field])
    academic_session.updated_by = acting_user_id
    session.commit()
    logger.info(f"Academic session {academic_session.id} updated")
    return academic_session


def toggle_active(session, academic_session: AcademicSession, data: dict, acting_user_id) -> AcademicSession:
    """Activate or deactivate; activation deactivates every other session atomically."""
    if 'is_active' not in data:
        raise BadRequest('is_active field is required')
    is_active = parse_bool(data['is_active'])
    try:
        if is_active:
            _deactivate_others(session, academic_session.institution_id, academic_session.id)
        academic_session.is_active = is_active
        academic_session.updated_by = acting_user_id
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"Academic session {academic_session.id} is_active -> {is_active}")
    return academic_session


def update_settings(session, academic_session: AcademicSession, settings, acting_user_id) -> AcademicSession:
    if not isinstance(settings, dict):
        raise ValidationFailed(['Settings must be an object'])
    academic_session.settings = settings
    academic_session.updated_by = acting_user_id
    session.commit()
    return academic_session


def delete_session(session, academic_session: AcademicSession) -> None:
    if academic_session.is_active:
        raise BadRequest('Cannot delete active session. Please deactivate it first.')
    session.delete(academic_session)
    session.commit()
    logger.info(f"Academic session {academic_session.id} deleted")
