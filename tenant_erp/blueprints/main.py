"""Main blueprint: health probe and locally stored uploads."""
import logging
import os

from flask import Blueprint, jsonify, send_file
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tenant_erp.database import get_session
from tenant_erp.exceptions import NotFound
from tenant_erp.services.storage_service import get_storage_service

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Liveness probe for the load balancer.

    Returns:
        200: database answered ``SELECT 1``
        500: database unreachable or answered something else
    """
    session = get_session()
    storage = get_storage_service().backend
    try:
        value = session.execute(text('SELECT 1')).scalar()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'storage': storage,
            'error': str(e),
        }), 500

    if value != 1:
        return jsonify({'status': 'unhealthy', 'database': 'error', 'storage': storage}), 500
    return jsonify({'status': 'healthy', 'database': 'connected', 'storage': storage}), 200


@main_bp.route('/uploads/<path:key>')
def uploaded_file(key):
    """Serve a file written by the local storage backend."""
    storage = get_storage_service()
    if storage.backend != 'local':
        raise NotFound('File not found')
    path = storage.local_path(key)
    if not os.path.isfile(path):
        raise NotFound('File not found')
    return send_file(path)
