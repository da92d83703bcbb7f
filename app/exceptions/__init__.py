"""Custom exceptions for the storefront application."""

class StoreError(Exception):
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

class BusinessLogicError(StoreError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(StoreError):
    """Exception raised when a product, variant or order does not exist."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class OutOfStockError(BusinessLogicError):
    """Raised when the requested quantity exceeds available stock."""
    def __init__(self, product_name, requested, available):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        message = f"Not enough stock for {product_name}: requested {requested}, available {available}"
        super().__init__(message, status_code=409, payload={'available': available})

class CartLockedError(BusinessLogicError):
    """Raised when the cart is mutated while a checkout is in progress."""
    def __init__(self, message="Checkout in progress: the cart can no longer be modified"):
        super().__init__(message, status_code=409)

class PaymentProviderError(StoreError):
    """Raised when the hosted payment session cannot be created or queried."""
    def __init__(self, message="Payment provider request failed", payload=None):
        super().__init__(message, 502, payload)

class AuthenticationError(StoreError):
    """Raised when an inbound webhook fails signature verification."""
    def __init__(self, message="Invalid signature"):
        super().__init__(message, 401)

class CorrelationError(StoreError):
    """Raised when a payment event cannot be mapped to a cart session."""
    def __init__(self, message="Payment event cannot be correlated to a cart", payload=None):
        super().__init__(message, 400, payload)

class PersistenceError(StoreError):
    """Raised when a store operation fails and was rolled back."""
    def __init__(self, message="Database operation failed"):
        super().__init__(message, 500)

class NotificationError(StoreError):
    """Raised by notification consumers; never propagated to order creation."""
    def __init__(self, message="Notification dispatch failed"):
        super().__init__(message, 500)
