"""Vehicles blueprint - customer cars."""
from flask import Blueprint, g, request

from tenant_erp.database import get_session
from tenant_erp.exceptions import AccessDenied
from tenant_erp.middleware import require_auth
from tenant_erp.models import UserType, Vehicle
from tenant_erp.services import vehicle_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_vehicle
from tenant_erp.utils.validators import parse_id

vehicles_bp = Blueprint('vehicles', __name__, url_prefix='/vehicles')


@vehicles_bp.route('', methods=['GET'])
@require_auth
def list_vehicles():
    query = vehicle_service.visible_vehicles(get_session(), g.auth)
    if g.auth.is_admin and request.args.get('customer_id'):
        query = query.filter(Vehicle.customer_id == parse_id(request.args['customer_id'], 'customer ID'))
    vehicles = query.order_by(Vehicle.created_at.desc(), Vehicle.id.desc()).all()
    return success({'vehicles': [serialize_vehicle(v) for v in vehicles], 'total': len(vehicles)})


@vehicles_bp.route('', methods=['POST'])
@require_auth
def create_vehicle():
    if g.auth.user_type != UserType.CUSTOMER.value:
        raise AccessDenied('Only customers can register vehicles')
    vehicle = vehicle_service.create_vehicle(get_session(), g.auth.user_id, get_json_body())
    return created({'vehicle': serialize_vehicle(vehicle)}, 'Vehicle added successfully')


@vehicles_bp.route('/<int:vehicle_id>', methods=['GET'])
@require_auth
def get_vehicle(vehicle_id):
    return success({'vehicle': serialize_vehicle(vehicle_service.get_vehicle(get_session(), g.auth, vehicle_id))})


@vehicles_bp.route('/<int:vehicle_id>', methods=['PUT'])
@require_auth
def update_vehicle(vehicle_id):
    session = get_session()
    vehicle = vehicle_service.get_vehicle(session, g.auth, vehicle_id)
    vehicle = vehicle_service.update_vehicle(session, vehicle, get_json_body())
    return success({'vehicle': serialize_vehicle(vehicle)}, 'Vehicle updated successfully')


@vehicles_bp.route('/<int:vehicle_id>', methods=['DELETE'])
@require_auth
def delete_vehicle(vehicle_id):
    session = get_session()
    vehicle_service.delete_vehicle(session, vehicle_service.get_vehicle(session, g.auth, vehicle_id))
    return success({'vehicle_id': vehicle_id, 'deleted': True}, 'Vehicle deleted successfully')
