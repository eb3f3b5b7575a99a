"""Custom exceptions for the POS engine."""

class PosError(Exception):
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

class DomainError(PosError):
    """Exception raised for business rule violations. Terminal to the call."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class ValidationError(DomainError):
    """Malformed rule, combo, selection or cancellation reason."""
    def __init__(self, message, errors=None):
        self.errors = list(errors or [])
        payload = {'errors': self.errors} if self.errors else None
        super().__init__(message, 400, payload)

class EmptyCartError(DomainError):
    """Raised when finalizing a cart without lines."""
    def __init__(self, message='No se puede finalizar una orden vacía'):
        super().__init__(message, 400)

class NoActiveShiftError(DomainError):
    """Raised when an order is attempted outside an open shift."""
    def __init__(self, message='No hay una jornada activa. Debe iniciar una jornada antes de crear órdenes.'):
        super().__init__(message, 409)

class NotFoundError(DomainError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidStateError(DomainError):
    """Raised when a state transition is not allowed (e.g. cancelling twice)."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class ConflictError(DomainError):
    """Raised when optimistic stock writes keep losing races."""
    def __init__(self, message='El stock fue modificado por otra operación. Intente nuevamente.', attempts=None):
        payload = {'attempts': attempts} if attempts is not None else None
        super().__init__(message, 409, payload)

class InsufficientStockError(DomainError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_id, available, required, product_name=None):
        self.product_id = product_id
        self.available = available
        self.required = required
        label = product_name or f'producto #{product_id}'
        message = f"Stock insuficiente para {label}: se requieren {required}, disponible {available}"
        super().__init__(message, 409, {
            'product_id': product_id,
            'available': available,
            'required': required,
        })
