"""Custom exceptions for the restaurant orders application."""

class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(BusinessLogicError):
    """Bad or missing input. Raised before any write, safe to retry."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidStateError(BusinessLogicError):
    """Raised when a resource is not in a state that allows the operation."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class ConcurrentEditError(InvalidStateError):
    """Raised when an edit was prepared against an older version of the order."""
    def __init__(self, order_id, expected_version, current_version, applied_steps=None):
        self.expected_version = expected_version
        self.current_version = current_version
        self.applied_steps = list(applied_steps or [])
        super().__init__(
            f'Order {order_id} was modified by someone else '
            f'(expected version {expected_version}, found {current_version}). Reload and retry.'
        )

class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, ingredient_name, required, available):
        req_fmt = f"{int(required)}" if required % 1 == 0 else f"{required:.3f}".rstrip('0').rstrip('.')
        avail_fmt = f"{int(available)}" if available % 1 == 0 else f"{available:.3f}".rstrip('0').rstrip('.')
        message = f"Insufficient stock for {ingredient_name}: required {req_fmt}, available {avail_fmt}"
        super().__init__(message, status_code=409)

class PersistenceError(SaasError):
    """Raised when a write to the store fails."""
    def __init__(self, message="Failed to persist changes", payload=None):
        super().__init__(message, 500, payload)

class PartialApplicationError(PersistenceError):
    """A later step failed after earlier steps were already committed."""
    def __init__(self, message, applied_steps=None, failed_step=None):
        self.applied_steps = list(applied_steps or [])
        self.failed_step = failed_step
        super().__init__(message, payload={
            'applied_steps': self.applied_steps,
            'failed_step': failed_step,
        })
