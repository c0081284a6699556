"""Academic sessions blueprint - school years of the caller's institution."""
from flask import Blueprint, g, request

from tenant_erp.database import get_session
from tenant_erp.decorators.permissions import require_feature
from tenant_erp.middleware import require_admin, require_auth
from tenant_erp.services import session_service
from tenant_erp.utils.responses import created, get_json_body, success
from tenant_erp.utils.serializers import serialize_session

sessions_bp = Blueprint('sessions', __name__, url_prefix='/sessions')

ACADEMIC_FEATURE = 'academic_management'


@sessions_bp.route('', methods=['POST'])
@require_auth
@require_admin
@require_feature(ACADEMIC_FEATURE)
def create_session():
    data = get_json_body()
    institution_id = session_service.resolve_institution(g.auth, data.get('institution_id'))
    academic_session = session_service.create_session(get_session(), institution_id, data, g.auth.user_id)
    return created({'session': serialize_session(academic_session)}, 'Session created successfully')


@sessions_bp.route('', methods=['GET'])
@require_auth
def list_sessions():
    institution_id = session_service.resolve_institution(g.auth, request.args.get('institution_id'))
    sessions = session_service.list_sessions(get_session(), institution_id, request.args)
    return success({'sessions': [serialize_session(s) for s in sessions], 'total': len(sessions)})


@sessions_bp.route('/active', methods=['GET'])
@require_auth
def active_session():
    institution_id = session_service.resolve_institution(g.auth, request.args.get('institution_id'))
    return success({'session': serialize_session(session_service.active_session(get_session(), institution_id))})


@sessions_bp.route('/statistics', methods=['GET'])
@require_auth
def session_statistics():
    institution_id = session_service.resolve_institution(g.auth, request.args.get('institution_id'))
    return success(session_service.statistics(get_session(), institution_id))


@sessions_bp.route('/<int:session_id>', methods=['GET'])
@require_auth
def get_academic_session(session_id):
    return success({'session': serialize_session(session_service.get_session(get_session(), g.auth, session_id))})


@sessions_bp.route('/<int:session_id>', methods=['PUT'])
@require_auth
@require_admin
@require_feature(ACADEMIC_FEATURE)
def update_session(session_id):
    db = get_session()
    academic_session = session_service.get_session(db, g.auth, session_id)
    academic_session = session_service.update_session(db, academic_session, get_json_body(), g.auth.user_id)
    return success({'session': serialize_session(academic_session)}, 'Session updated successfully')


@sessions_bp.route('/<int:session_id>/toggle-active', methods=['PUT'])
@require_auth
@require_admin
@require_feature(ACADEMIC_FEATURE)
def toggle_session_active(session_id):
    db = get_session()
    academic_session = session_service.get_session(db, g.auth, session_id)
    academic_session = session_service.toggle_active(db, academic_session, get_json_body(), g.auth.user_id)
    message = 'Session activated successfully' if academic_session.is_active else 'Session deactivated successfully'
    return success({'session': serialize_session(academic_session)}, message)


@sessions_bp.route('/<int:session_id>/settings', methods=['PUT'])
@require_auth
@require_admin
@require_feature(ACADEMIC_FEATURE)
def update_session_settings(session_id):
    db = get_session()
    academic_session = session_service.get_session(db, g.auth, session_id)
    data = get_json_body()
    settings = data.get('settings', data)
    academic_session = session_service.update_settings(db, academic_session, settings, g.auth.user_id)
    return success({'session': serialize_session(academic_session)}, 'Session settings updated successfully')


@sessions_bp.route('/<int:session_id>', methods=['DELETE'])
@require_auth
@require_admin
@require_feature(ACADEMIC_FEATURE)
def delete_academic_session(session_id):
    db = get_session()
    session_service.delete_session(db, session_service.get_session(db, g.auth, session_id))
    return success({'session_id': session_id, 'deleted': True}, 'Session deleted successfully')
