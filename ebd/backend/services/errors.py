# --- Custom Service Layer Exception Classes ---

class ServiceError(Exception):
    """General exception class for the service layer."""
    pass

class AuthorizationError(ServiceError):
    """The caller's role or class scope does not allow the operation."""
    pass

class ValidationError(ServiceError):
    """A required field is missing."""
    pass

class ReferentialIntegrityError(ServiceError):
    """The entity is still referenced and cannot be deleted."""
    pass

class SessionResolutionError(ServiceError):
    """No session could be established; the caller has to log in again."""
    pass
