"""JSON response envelope helpers.

Every endpoint answers with ``{success, message, data?, errors?}``.
"""
from flask import jsonify, request

from tenant_erp.exceptions import BadRequest


def success(data=None, message='Success', status_code=200):
    """Build a success envelope."""
    body = {'success': True, 'message': message}
    if data is not None:
        body['data'] = data
    return jsonify(body), status_code


def created(data=None, message='Created successfully'):
    return success(data, message, 201)


def error(message, status_code=400, errors=None):
    """Build an error envelope (used by the error handlers)."""
    body = {'success': False, 'message': message}
    if errors:
        body['errors'] = errors
    return jsonify(body), status_code


def get_json_body():
    """Return the request JSON object or raise BadRequest."""
    data = request.get_json(silent=True)
    if data is None:
        if request.form:
            return request.form.to_dict()
        raise BadRequest('Request body must be a JSON object')
    if not isinstance(data, dict):
        raise BadRequest('Request body must be a JSON object')
    return data
