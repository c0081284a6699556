"""
Organization (tenant) management.

Public registration creates the organization and its superadmin account in a
single transaction: either both rows exist afterwards or neither does.
"""
import logging
import re
from datetime import date

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from tenant_erp.exceptions import Conflict, ValidationFailed
from tenant_erp.models import AppUser, Organization, OrganizationStatus, InstitutionType, UserStatus, UserType
from tenant_erp.services import feature_service
from tenant_erp.services.auth_service import global_email_exists, normalize_email
from tenant_erp.utils.json_fields import dump_json_object
from tenant_erp.utils.validators import (
    clean_str, is_valid_email, is_valid_phone, missing_fields, non_text_fields, parse_bool, PINCODE_PATTERN
)

logger = logging.getLogger(__name__)

ORGANIZATION_STATUSES = [s.value for s in OrganizationStatus]
INSTITUTION_TYPES = [t.value for t in InstitutionType]

REQUIRED_REGISTRATION_FIELDS = (
    'institution_name', 'institution_type', 'principal_name',
    'contact_email', 'contact_phone', 'login_password'
)
EDITABLE_FIELDS = (
    'institution_name', 'institution_type', 'principal_name', 'contact_phone',
    'established_year', 'address', 'city', 'state', 'pincode', 'website'
)
FLAG_FIELDS = ('allow_login', 'allow_registration', 'show_in_listing')
TEXT_FIELDS = (
    'institution_name', 'institution_type', 'principal_name', 'contact_email', 'login_password',
    'address', 'city', 'state', 'website'
)


def _validate_profile(data: dict, partial=False) -> list:
    """Validate organization profile fields."""
    errors = [] if partial else missing_fields(data, REQUIRED_REGISTRATION_FIELDS)
    errors += non_text_fields(data, TEXT_FIELDS)

    if data.get('institution_type') and data['institution_type'] not in INSTITUTION_TYPES:
        errors.append(f"Invalid institution type. Must be one of: {', '.join(INSTITUTION_TYPES)}")

    if data.get('contact_email') and not is_valid_email(str(data['contact_email']).strip()):
        errors.append('Invalid contact email format')

    if data.get('contact_phone') and not is_valid_phone(str(data['contact_phone'])):
        errors.append('Invalid contact phone number')

    password = data.get('login_password')
    min_length = current_app.config.get('PASSWORD_MIN_LENGTH', 6)
    if password and len(str(password)) < min_length:
        errors.append(f'Password must be at least {min_length} characters long')

    year = data.get('established_year')
    if year not in (None, ''):
        try:
            year = int(year)
            if year < 1800 or year > date.today().year:
                errors.append(f'Established year must be between 1800 and {date.today().year}')
        except (TypeError, ValueError):
            errors.append('Established year must be a number')

    pincode = data.get('pincode')
    if pincode not in (None, '') and not re.match(PINCODE_PATTERN, str(pincode).strip()):
        errors.append('Pincode must be exactly 6 digits')

    website = data.get('website')
    if website and not str(website).startswith(('http://', 'https://')):
        errors.append('Website must start with http:// or https://')

    return errors


def register_organization(session, data: dict):
    """
    Register a new organization and its superadmin in one transaction.

    Returns:
        tuple: (organization, superadmin_user)

    Raises:
        ValidationFailed: invalid profile or feature selection
        Conflict: contact email already used by an organization or a global account
    """
    errors = _validate_profile(data)
    selected = data.get('selected_features') or {}
    if selected:
        errors.extend(feature_service.validate_feature_tree(selected, feature_service.allowed_system_keys(session)))
    if errors:
        raise ValidationFailed(errors)

    contact_email = normalize_email(data['contact_email'])
    if session.query(Organization.id).filter(func.lower(Organization.contact_email) == contact_email).first():
        raise Conflict('An organization with this contact email already exists')
    if global_email_exists(session, contact_email):
        raise Conflict('Email already registered on the platform')

    selected = feature_service.ensure_system_administration(selected)

    try:
        organization = Organization(
            institution_name=data['institution_name'].strip(),
            institution_type=data['institution_type'],
            principal_name=data['principal_name'].strip(),
            contact_email=contact_email,
            contact_phone=str(data['contact_phone']).strip(),
            established_year=int(data['established_year']) if data.get('established_year') not in (None, '') else None,
            address=clean_str(data.get('address')),
            city=clean_str(data.get('city')),
            state=clean_str(data.get('state')),
            pincode=clean_str(data.get('pincode')),
            website=clean_str(data.get('website')),
            selected_features=dump_json_object(selected),
            status=OrganizationStatus.PENDING.value,
            allow_login=parse_bool(data.get('allow_login'), True),
            allow_registration=parse_bool(data.get('allow_registration'), True),
            show_in_listing=parse_bool(data.get('show_in_listing'), False),
        )
        session.add(organization)
        session.flush()  # Get ID without committing

        superadmin = AppUser(
            name=organization.principal_name,
            email=contact_email,
            phone=organization.contact_phone,
            user_type=UserType.SUPERADMIN.value,
            role='Principal/Administrator',
            institution_id=organization.id,
            status=UserStatus.ACTIVE.value,
        )
        superadmin.set_password(data['login_password'])
        session.add(superadmin)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Organization registration rejected by constraint: {e.orig}")
        raise Conflict('Organization or administrator account already exists')
    except Exception:
        session.rollback()
        logger.exception("Organization registration failed; transaction rolled back")
        raise

    logger.info(f"Registered organization {organization.id} with superadmin {superadmin.id}")
    return organization, superadmin


def list_organizations(session, filters: dict, limit: int, offset: int):
    """Filter by status, institution_type, city and free-text search."""
    query = session.query(Organization)
    if filters.get('status'):
        query = query.filter(Organization.status == filters['status'])
    if filters.get('institution_type'):
        query = query.filter(Organization.institution_type == filters['institution_type'])
    if filters.get('city'):
        query = query.filter(func.lower(Organization.city) == filters['city'].strip().lower())
    if filters.get('search'):
        term = f"%{filters['search'].strip().lower()}%"
        query = query.filter(or_(
            func.lower(Organization.institution_name).like(term),
            func.lower(Organization.contact_email).like(term),
            func.lower(Organization.principal_name).like(term)
        ))
    total = query.count()
    items = query.order_by(Organization.created_at.desc(), Organization.id.desc()).limit(limit).offset(offset).all()
    return items, total


def list_public(session):
    """Active organizations that opted into the public listing."""
    return session.query(Organization).filter(
        Organization.status == OrganizationStatus.ACTIVE.value,
        Organization.show_in_listing.is_(True)
    ).order_by(Organization.institution_name.asc()).all()


def update_organization(session, organization: Organization, data: dict) -> Organization:
    """Update profile fields and login/registration/listing flags."""
    errors = _validate_profile(data, partial=True)
    for field in ('institution_name', 'principal_name', 'contact_phone'):
        if field in data and not clean_str(data.get(field)):
            errors.append(f"{field.replace('_', ' ').capitalize()} cannot be empty")
    if errors:
        raise ValidationFailed(errors)

    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'established_year':
            value = int(value) if value not in (None, '') else None
        elif field != 'institution_type':
            value = clean_str(value)
        setattr(organization, field, value)

    for flag in FLAG_FIELDS:
        if flag in data:
            setattr(organization, flag, parse_bool(data[flag]))

    session.commit()
    logger.info(f"Organization {organization.id} updated")
    return organization


def update_status(session, organization: Organization, status: str) -> Organization:
    if status not in ORGANIZATION_STATUSES:
        raise ValidationFailed([f"Invalid status. Must be one of: {', '.join(ORGANIZATION_STATUSES)}"])
    previous = organization.status
    organization.status = status
    session.commit()
    logger.info(f"Organization {organization.id} status {previous} -> {status}")
    return organization


def deactivate(session, organization: Organization) -> Organization:
    """Organizations are never hard-deleted; they become inactive."""
    return update_status(session, organization, OrganizationStatus.INACTIVE.value)


def statistics(session) -> dict:
    by_status = dict(
        session.query(Organization.status, func.count(Organization.id)).group_by(Organization.status).all()
    )
    by_type = dict(
        session.query(Organization.institution_type, func.count(Organization.id))
        .group_by(Organization.institution_type).all()
    )
    return {
        'total': sum(by_status.values()),
        'by_status': {status: by_status.get(status, 0) for status in ORGANIZATION_STATUSES},
        'by_type': {kind: by_type.get(kind, 0) for kind in INSTITUTION_TYPES},
    }


def member_count(session, organization_id) -> int:
    return session.query(func.count(AppUser.id)).filter(AppUser.organization_id == organization_id).scalar()
