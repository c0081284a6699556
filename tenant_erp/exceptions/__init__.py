"""Custom exceptions for the tenant ERP API.

Every exception carries the HTTP status it maps to and renders itself into the
standard response envelope ``{success, message, errors?}``.
"""


class ApiError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['success'] = False
        rv['message'] = self.message
        return rv


class ValidationFailed(ApiError):
    """Raised when request input fails validation (itemized errors)."""
    def __init__(self, errors, message="Validation failed"):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(message, 400, {'errors': list(errors)})
        self.errors = list(errors)


class BadRequest(ApiError):
    """Raised for malformed requests that are not field validation issues."""
    def __init__(self, message="Bad request", payload=None):
        super().__init__(message, 400, payload)


class Unauthenticated(ApiError):
    """Raised when no valid credentials accompany the request."""
    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


class AccessDenied(ApiError):
    """Raised on tenant or role mismatch."""
    def __init__(self, message="Access denied"):
        super().__init__(message, 403)


class NotFound(ApiError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class OrganizationNotConfigured(NotFound):
    """Raised when an organization id does not resolve to a tenant."""
    def __init__(self, organization_id=None):
        super().__init__("Organization not found")
        self.organization_id = organization_id


class Conflict(ApiError):
    """Raised for duplicates and overlapping resources."""
    def __init__(self, message="Resource already exists", payload=None):
        super().__init__(message, 409, payload)


class AccountLocked(ApiError):
    """Raised while an account is temporarily locked after failed logins."""
    def __init__(self, locked_until=None, message=None):
        if message is None:
            message = "Account is temporarily locked due to too many failed login attempts. Please try again later."
        payload = None
        if locked_until is not None:
            payload = {'data': {'locked_until': locked_until.isoformat()}}
        super().__init__(message, 423, payload)
