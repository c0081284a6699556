"""Feature catalog administration: systems and their modules."""
import logging

from sqlalchemy import func

from tenant_erp.exceptions import Conflict, NotFound, ValidationFailed
from tenant_erp.models import FeatureModule, SystemFeature
from tenant_erp.services.feature_defaults import BUILTIN_SYSTEMS
from tenant_erp.utils.validators import clean_str, is_valid_key, missing_fields, non_text_fields

logger = logging.getLogger(__name__)

CATALOG_STATUSES = ('active', 'inactive')
KEY_FORMAT_MESSAGE = '{} must start with a lowercase letter and contain only lowercase letters, digits and underscores'


def _display_order(data, errors):
    try:
        return int(data.get('display_order') or 0)
    except (TypeError, ValueError):
        errors.append('Display order must be a number')
        return 0


def list_systems(session, include_inactive=False):
    query = session.query(SystemFeature)
    if not include_inactive:
        query = query.filter(SystemFeature.status == 'active')
    return query.order_by(SystemFeature.display_order.asc(), SystemFeature.system_name.asc()).all()


def get_system(session, system_id) -> SystemFeature:
    system = session.get(SystemFeature, system_id)
    if system is None:
        raise NotFound('System feature not found')
    return system


def create_system(session, data: dict) -> SystemFeature:
    errors = missing_fields(data, ('system_key', 'system_name'))
    errors += non_text_fields(data, ('system_key', 'system_name'))
    key = clean_str(data.get('system_key'))
    if key and not is_valid_key(key):
        errors.append(KEY_FORMAT_MESSAGE.format('System key'))
    order = _display_order(data, errors)
    status = data.get('status') or 'active'
    if status not in CATALOG_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CATALOG_STATUSES)}")
    modules = data.get('modules') or []
    if not isinstance(modules, list):
        errors.append('Modules must be an array')
        modules = []
    for module in modules:
        errors.extend(_module_errors(module if isinstance(module, dict) else {}))
    if errors:
        raise ValidationFailed(errors)

    if session.query(SystemFeature.id).filter(SystemFeature.system_key == key).first():
        raise Conflict('A feature with this system key already exists')
    module_keys = [m['module_key'].strip() for m in modules]
    if len(module_keys) != len(set(module_keys)):
        raise Conflict('Module keys must be unique within a system')

    system = SystemFeature(
        system_key=key,
        system_name=data['system_name'].strip(),
        system_description=clean_str(data.get('system_description')),
        system_icon=clean_str(data.get('system_icon')),
        display_order=order,
        status=status,
    )
    for index, module in enumerate(modules):
        system.modules.append(FeatureModule(
            module_key=module['module_key'].strip(),
            module_name=module['module_name'].strip(),
            module_description=clean_str(module.get('module_description')),
            display_order=index,
        ))
    session.add(system)
    session.commit()
    logger.info(f"[FEATURES] Catalog system '{key}' created with {len(modules)} modules")
    return system


def update_system(session, system: SystemFeature, data: dict) -> SystemFeature:
    errors = []
    if 'system_name' in data and not clean_str(data.get('system_name')):
        errors.append('System name cannot be empty')
    if 'system_key' in data:
        key = clean_str(data.get('system_key'))
        if not key or not is_valid_key(key):
            errors.append(KEY_FORMAT_MESSAGE.format('System key'))
    if 'display_order' in data:
        order = _display_order(data, errors)
    if data.get('status') and data['status'] not in CATALOG_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CATALOG_STATUSES)}")
    if errors:
        raise ValidationFailed(errors)

    if 'system_key' in data and key != system.system_key:
        if session.query(SystemFeature.id).filter(SystemFeature.system_key == key).first():
            raise Conflict('A feature with this system key already exists')
        system.system_key = key
    for field in ('system_name', 'system_description', 'system_icon'):
        if field in data:
            setattr(system, field, clean_str(data[field]))
    if 'display_order' in data:
        system.display_order = order
    if data.get('status'):
        system.status = data['status']
    session.commit()
    logger.info(f"[FEATURES] Catalog system {system.id} updated")
    return system


def toggle_status(session, system: SystemFeature) -> SystemFeature:
    system.status = 'inactive' if system.is_active else 'active'
    session.commit()
    logger.info(f"[FEATURES] Catalog system '{system.system_key}' -> {system.status}")
    return system


def delete_system(session, system: SystemFeature) -> None:
    """Remove a system and its modules. Trees that already name it keep their copy."""
    session.delete(system)
    session.commit()
    logger.info(f"[FEATURES] Catalog system '{system.system_key}' deleted")


def _module_errors(data: dict, partial=False) -> list:
    errors = [] if partial else missing_fields(data, ('module_key', 'module_name'))
    errors += non_text_fields(data, ('module_key', 'module_name'))
    key = data.get('module_key')
    if key and not is_valid_key(str(key).strip()):
        errors.append(KEY_FORMAT_MESSAGE.format('Module key'))
    if partial and 'module_name' in data and not clean_str(data.get('module_name')):
        errors.append('Module name cannot be empty')
    return errors


def _module_key_taken(session, system_id, key, exclude_id=None):
    query = session.query(FeatureModule.id).filter(
        FeatureModule.system_id == system_id, FeatureModule.module_key == key
    )
    if exclude_id is not None:
        query = query.filter(FeatureModule.id != exclude_id)
    return query.first() is not None


def get_module(session, module_id) -> FeatureModule:
    module = session.get(FeatureModule, module_id)
    if module is None:
        raise NotFound('Module not found')
    return module


def create_module(session, system: SystemFeature, data: dict) -> FeatureModule:
    errors = _module_errors(data)
    order = _display_order(data, errors)
    if errors:
        raise ValidationFailed(errors)
    key = data['module_key'].strip()
    if _module_key_taken(session, system.id, key):
        raise Conflict(f"Module '{key}' already exists in '{system.system_key}'")

    module = FeatureModule(
        system_id=system.id,
        module_key=key,
        module_name=data['module_name'].strip(),
        module_description=clean_str(data.get('module_description')),
        display_order=order,
    )
    session.add(module)
    session.commit()
    logger.info(f"[FEATURES] Module '{key}' added to '{system.system_key}'")
    return module


def update_module(session, module: FeatureModule, data: dict) -> FeatureModule:
    errors = _module_errors(data, partial=True)
    if 'display_order' in data:
        order = _display_order(data, errors)
    if data.get('status') and data['status'] not in CATALOG_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CATALOG_STATUSES)}")
    if errors:
        raise ValidationFailed(errors)

    if data.get('module_key'):
        key = data['module_key'].strip()
        if key != module.module_key and _module_key_taken(session, module.system_id, key, exclude_id=module.id):
            raise Conflict(f"Module '{key}' already exists in this system")
        module.module_key = key
    if 'module_name' in data:
        module.module_name = data['module_name'].strip()
    if 'module_description' in data:
        module.module_description = clean_str(data['module_description'])
    if 'display_order' in data:
        module.display_order = order
    if data.get('status'):
        module.status = data['status']
    session.commit()
    return module


def delete_module(session, module: FeatureModule) -> None:
    session.delete(module)
    session.commit()
    logger.info(f"[FEATURES] Module {module.id} deleted")


def statistics(session) -> dict:
    by_status = dict(
        session.query(SystemFeature.status, func.count(SystemFeature.id)).group_by(SystemFeature.status).all()
    )
    return {
        'total_systems': sum(by_status.values()),
        'active_systems': by_status.get('active', 0),
        'inactive_systems': by_status.get('inactive', 0),
        'total_modules': session.query(func.count(FeatureModule.id)).scalar(),
    }


def seed_builtin_systems(session) -> int:
    """
    Insert the built-in systems that are not in the catalog yet.

    Returns:
        int: number of systems created
    """
    existing = {key for (key,) in session.query(SystemFeature.system_key).all()}
    created = 0
    for order, (key, (name, description, icon, modules)) in enumerate(BUILTIN_SYSTEMS.items()):
        if key in existing:
            continue
        system = SystemFeature(
            system_key=key,
            system_name=name,
            system_description=description,
            system_icon=icon,
            display_order=order,
        )
        for index, (module_key, module_name, module_description) in enumerate(modules):
            system.modules.append(FeatureModule(
                module_key=module_key,
                module_name=module_name,
                module_description=module_description,
                display_order=index,
            ))
        session.add(system)
        created += 1
    session.commit()
    logger.info(f"[FEATURES] Seeded {created} built-in systems")
    return created
