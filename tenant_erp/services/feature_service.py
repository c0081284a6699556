"""
Feature-flag service.

A feature tree is a two-level document stored as JSON text on organizations
(``selected_features``) and users (``assigned_features``)::

    {
        "library_management": {
            "system_name": "Library Management",
            "system_description": "...",
            "enabled": true,                       # optional
            "selected_modules": [{"key": "...", "name": "...", "description": "..."}]
        }
    }

A user's effective tree is their own tree when it is non-empty, otherwise the
tree of the organization they belong to. Nothing is merged.
"""
import copy
import logging
from typing import Dict, List, Optional, Tuple

from tenant_erp.exceptions import Conflict, NotFound, ValidationFailed, AccessDenied
from tenant_erp.models import AppUser, Organization, SystemFeature
from tenant_erp.services.feature_defaults import (
    BUILTIN_SYSTEMS, FEATURE_SYSTEMS, SYSTEM_ADMINISTRATION, builtin_entry
)
from tenant_erp.utils.json_fields import load_json_object, dump_json_object

logger = logging.getLogger(__name__)

BULK_ASSIGNABLE_USER_TYPES = (
    'student', 'teacher', 'staff', 'admin', 'accountant', 'librarian', 'driver', 'security'
)

SOURCE_ASSIGNED = 'assigned'
SOURCE_ORGANIZATION = 'organization'
SOURCE_NONE = 'none'


# ============================================================================
# Reading
# ============================================================================

def user_features(user: AppUser) -> Dict:
    """The user's own (assigned) tree; malformed JSON reads as empty."""
    return load_json_object(user.assigned_features, f'app_user[{user.id}].assigned_features')


def organization_features(organization: Optional[Organization]) -> Dict:
    if organization is None:
        return {}
    return load_json_object(organization.selected_features, f'organization[{organization.id}].selected_features')


def effective_features(session, user: AppUser) -> Tuple[Dict, str]:
    """
    Compute the effective feature tree for a user.

    Returns:
        tuple: (tree, source) where source is 'assigned', 'organization' or 'none'
    """
    assigned = user_features(user)
    if assigned:
        return assigned, SOURCE_ASSIGNED

    org_id = user.home_organization_id
    if org_id is None:
        return {}, SOURCE_NONE
    inherited = organization_features(session.get(Organization, org_id))
    if inherited:
        return inherited, SOURCE_ORGANIZATION
    return {}, SOURCE_NONE


def has_feature(tree: Dict, system_key: str, module_key: Optional[str] = None) -> bool:
    """Check that a system (and optionally one of its modules) is granted and enabled."""
    entry = tree.get(system_key)
    if not isinstance(entry, dict) or entry.get('enabled', True) is False:
        return False
    if module_key is None:
        return True
    return any(
        isinstance(m, dict) and m.get('key') == module_key
        for m in entry.get('selected_modules') or []
    )


def feature_summary(tree: Dict) -> Dict:
    """Count systems and modules in a tree."""
    total_modules = 0
    for entry in tree.values():
        modules = entry.get('selected_modules') if isinstance(entry, dict) else None
        if isinstance(modules, list):
            total_modules += len(modules)
    return {'total_systems': len(tree), 'total_modules': total_modules}


# ============================================================================
# Validation
# ============================================================================

def allowed_system_keys(session) -> set:
    """Closed list of system keys: built-ins plus everything in the catalog table."""
    keys = set(FEATURE_SYSTEMS)
    keys.update(key for (key,) in session.query(SystemFeature.system_key).all())
    return keys


def validate_feature_tree(tree, allowed_keys) -> List[str]:
    """Return itemized validation errors for a candidate tree."""
    errors = []
    if not isinstance(tree, dict):
        return ['Selected features must be an object']

    for system_key, entry in tree.items():
        if system_key not in allowed_keys:
            errors.append(f"Invalid feature system: {system_key}")
            continue
        if not isinstance(entry, dict):
            errors.append(f"Feature system '{system_key}' must be an object")
            continue

        for field in ('system_name', 'system_description', 'selected_modules'):
            if field not in entry or entry[field] is None:
                errors.append(f"Missing '{field}' in feature system '{system_key}'")

        modules = entry.get('selected_modules')
        if modules is None:
            continue
        if not isinstance(modules, list):
            errors.append(f"Selected modules for '{system_key}' must be an array")
            continue
        if not modules:
            errors.append(f"At least one module must be selected for '{system_key}'")
            continue
        for module in modules:
            if not isinstance(module, dict):
                errors.append(f"Module in '{system_key}' must be an object")
                continue
            for field in ('key', 'name', 'description'):
                if not module.get(field):
                    errors.append(f"Missing or empty '{field}' in module for '{system_key}'")

        if 'enabled' in entry and not isinstance(entry['enabled'], bool):
            errors.append(f"'enabled' in feature system '{system_key}' must be a boolean")

    return errors


def require_valid_tree(session, tree) -> Dict:
    """Validate a tree and raise ValidationFailed with every problem found."""
    errors = validate_feature_tree(tree, allowed_system_keys(session))
    if errors:
        raise ValidationFailed(errors, 'Invalid feature selection')
    return tree


def ensure_system_administration(tree: Dict) -> Dict:
    """Add the default system administration block when it is missing."""
    if not tree.get(SYSTEM_ADMINISTRATION):
        tree = dict(tree)
        tree[SYSTEM_ADMINISTRATION] = builtin_entry(SYSTEM_ADMINISTRATION)
    return tree


# ============================================================================
# Catalog lookup
# ============================================================================

def catalog_entry(session, system_key: str, module_keys: Optional[List] = None) -> Dict:
    """
    Build a tree entry for ``system_key`` from the catalog.

    The catalog table wins; built-in systems that were never seeded fall back
    to their defaults. ``module_keys`` restricts the copied modules.
    """
    system = session.query(SystemFeature).filter_by(system_key=system_key).first()
    if system is not None:
        if not system.is_active:
            raise ValidationFailed([f"Feature system '{system_key}' is inactive"])
        entry = {
            'system_name': system.system_name,
            'system_description': system.system_description or system.system_name,
            'system_icon': system.system_icon,
            'selected_modules': [m.as_selected_module() for m in system.modules if m.status == 'active'],
        }
    elif system_key in BUILTIN_SYSTEMS:
        entry = builtin_entry(system_key)
    else:
        raise NotFound(f"Feature system '{system_key}' not found in catalog")

    if module_keys:
        wanted = [m.get('key') if isinstance(m, dict) else m for m in module_keys]
        available = {m['key']: m for m in entry['selected_modules']}
        unknown = [k for k in wanted if k not in available]
        if unknown:
            raise ValidationFailed([f"Unknown module '{k}' for '{system_key}'" for k in unknown])
        entry['selected_modules'] = [available[k] for k in wanted]

    if not entry['selected_modules']:
        raise ValidationFailed([f"At least one module must be selected for '{system_key}'"])
    return entry


# ============================================================================
# Mutations (commit on success)
# ============================================================================

def _store(session, user: AppUser, tree: Dict):
    user.assigned_features = dump_json_object(tree)
    session.commit()


def add_feature(session, user: AppUser, system_key: str, module_keys: Optional[List] = None) -> Dict:
    """
    Add one system to the user's own tree.

    Raises:
        Conflict: the system is already assigned
        NotFound: the system is not in the catalog
    """
    tree = user_features(user)
    if system_key in tree:
        raise Conflict(f"Feature '{system_key}' is already assigned to this user")
    tree[system_key] = catalog_entry(session, system_key, module_keys)
    _store(session, user, tree)
    logger.info(f"[FEATURES] Added '{system_key}' to user {user.id}")
    return tree


def remove_feature(session, user: AppUser, system_key: str) -> Dict:
    """Remove one system; NotFound if it is not assigned."""
    tree = user_features(user)
    if system_key not in tree:
        raise NotFound(f"Feature '{system_key}' is not assigned to this user")
    del tree[system_key]
    _store(session, user, tree)
    logger.info(f"[FEATURES] Removed '{system_key}' from user {user.id}")
    return tree


def toggle_feature(session, user: AppUser, system_key: str) -> Tuple[Dict, bool]:
    """Flip the ``enabled`` flag of an assigned system (missing flag counts as enabled)."""
    tree = user_features(user)
    entry = tree.get(system_key)
    if not isinstance(entry, dict):
        raise NotFound(f"Feature '{system_key}' is not assigned to this user")
    enabled = not entry.get('enabled', True)
    entry['enabled'] = enabled
    _store(session, user, tree)
    logger.info(f"[FEATURES] Toggled '{system_key}' for user {user.id} -> {enabled}")
    return tree, enabled


def replace_features(session, user: AppUser, tree: Dict) -> Dict:
    """Overwrite the user's tree with a validated one (empty means inherit)."""
    require_valid_tree(session, tree)
    _store(session, user, copy.deepcopy(tree))
    return tree


def replace_organization_features(session, organization: Organization, tree: Dict) -> Dict:
    require_valid_tree(session, tree)
    tree = ensure_system_administration(tree)
    organization.selected_features = dump_json_object(tree)
    session.commit()
    logger.info(f"[FEATURES] Organization {organization.id} selection updated ({len(tree)} systems)")
    return tree


def bulk_assign_by_user_type(session, organization_id: int, user_type: str, tree: Dict) -> int:
    """
    Overwrite the tree of every user of ``user_type`` in an organization.

    Returns:
        int: number of users updated
    """
    if user_type not in BULK_ASSIGNABLE_USER_TYPES:
        raise ValidationFailed([f"Invalid user type. Must be one of: {', '.join(BULK_ASSIGNABLE_USER_TYPES)}"])
    require_valid_tree(session, tree)

    users = session.query(AppUser).filter(
        AppUser.organization_id == organization_id,
        AppUser.user_type == user_type
    ).all()
    payload = dump_json_object(tree)
    for user in users:
        user.assigned_features = payload
    session.commit()
    logger.info(f"[FEATURES] Bulk-assigned {len(tree)} systems to {len(users)} '{user_type}' users in org {organization_id}")
    return len(users)


# ============================================================================
# Reach
# ============================================================================

def ensure_can_manage_user(auth, user: AppUser):
    """
    Check that the caller may administer ``user``'s features.

    Platform admins reach everyone; other admins reach users of their own
    organization scope; anyone reaches themselves for read operations only
    (checked by callers).
    """
    if auth.is_platform_admin:
        return
    if not auth.is_admin:
        raise AccessDenied('Insufficient permissions')
    if auth.org_scope is None or user.home_organization_id != auth.org_scope:
        raise AccessDenied('Access denied to this user')


def feature_usage(session, users) -> Dict[str, int]:
    """Count users whose effective tree contains each system key."""
    counts: Dict[str, int] = {}
    for user in users:
        tree, _ = effective_features(session, user)
        for key in tree:
            counts[key] = counts.get(key, 0) + 1
    return counts
