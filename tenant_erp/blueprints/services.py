"""Services blueprint - bookable service catalog."""
from flask import Blueprint, request

from tenant_erp.database import get_session
from tenant_erp.middleware import require_admin, require_auth
from tenant_erp.services import service_catalog_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_service

services_bp = Blueprint('services', __name__, url_prefix='/services')


@services_bp.route('/active', methods=['GET'])
def active_services():
    services = service_catalog_service.list_active(get_session())
    return success({'services': [serialize_service(s) for s in services]})


@services_bp.route('/statistics', methods=['GET'])
@require_auth
@require_admin
def service_statistics():
    return success(service_catalog_service.statistics(get_session()))


@services_bp.route('/<int:service_id>', methods=['GET'])
def get_service(service_id):
    service = service_catalog_service.get_service(get_session(), service_id, active_only=True)
    return success({'service': serialize_service(service)})


@services_bp.route('', methods=['GET'])
@require_auth
@require_admin
def list_services():
    services = service_catalog_service.list_all(get_session(), request.args.get('status'))
    return success({'services': [serialize_service(s) for s in services], 'total': len(services)})


@services_bp.route('', methods=['POST'])
@require_auth
@require_admin
def create_service():
    service = service_catalog_service.create_service(get_session(), get_json_body())
    return created({'service': serialize_service(service)}, 'Service created successfully')


@services_bp.route('/<int:service_id>', methods=['PUT'])
@require_auth
@require_admin
def update_service(service_id):
    session = get_session()
    service = service_catalog_service.update_service(
        session, service_catalog_service.get_service(session, service_id), get_json_body()
    )
    return success({'service': serialize_service(service)}, 'Service updated successfully')


@services_bp.route('/<int:service_id>/status', methods=['PUT'])
@require_auth
@require_admin
def update_service_status(service_id):
    session = get_session()
    service = service_catalog_service.update_status(
        session, service_catalog_service.get_service(session, service_id), get_json_body().get('status')
    )
    return success({'service': serialize_service(service)}, 'Service status updated successfully')


@services_bp.route('/<int:service_id>', methods=['DELETE'])
@require_auth
@require_admin
def delete_service(service_id):
    session = get_session()
    service_catalog_service.delete_service(session, service_catalog_service.get_service(session, service_id))
    return success({'service_id': service_id, 'deleted': True}, 'Service deleted successfully')
