"""
Storefront Error Taxonomy

Every error raised by the storefront core derives from StorefrontError and
carries a short operator-facing message. The HTTP layer maps each class to
a status code; nothing here is fatal to the process.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront errors"""

    code = "storefront_error"
    status_code = 500

    def __init__(self, message: str, *, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class SchemaMismatchError(StorefrontError):
    """The store lacks a table or column the operation needs"""

    code = "schema_mismatch"
    status_code = 409


class NotFoundError(StorefrontError):
    """A referenced product, order or record does not exist"""

    code = "not_found"
    status_code = 404


class TransientStoreError(StorefrontError):
    """Any other store or channel failure; the operation was abandoned"""

    code = "store_unavailable"
    status_code = 503


class ValidationFailedError(StorefrontError):
    """Input rejected before any write"""

    code = "validation_failed"
    status_code = 422


class InvalidTransitionError(ValidationFailedError):
    """Order status change not allowed by the lifecycle"""

    code = "invalid_transition"
