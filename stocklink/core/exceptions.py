class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass

class PlatformServiceError(BaseServiceError):
    """Base exception for platform service errors."""
    pass

class TransportError(PlatformServiceError):
    """Raised when a call to a platform fails at the network or HTTP level."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code

class ShopifyAPIError(TransportError):
    """Raised when Shopify API calls fail."""
    pass

class ShopifyGraphQLError(ShopifyAPIError):
    """Raised when a GraphQL response carries top level errors."""
    def __init__(self, errors):
        self.errors = errors
        message = "GraphQL query failed with errors:\n"
        for error in errors:
            msg = error.get('message', 'Unknown error')
            path = error.get('path', [])
            message += f"- Message: {msg}, Path: {path}\n"
        super().__init__(message)

class EtsyAPIError(TransportError):
    """Raised when Etsy API calls fail."""
    pass

class BulkOperationError(PlatformServiceError):
    """Base exception for Shopify bulk export errors."""
    pass

class BulkSubmitRejected(BulkOperationError):
    """Raised when Shopify refuses to create a bulk operation."""

    def __init__(self, message: str, user_errors=None):
        super().__init__(message)
        self.user_errors = user_errors or []

class BulkOperationFailed(BulkOperationError):
    """Raised when a bulk operation ends in a failed state."""

    def __init__(self, operation_id: str, status: str, error_code=None):
        super().__init__(f"Bulk operation {operation_id} ended with status {status} (error code: {error_code})")
        self.operation_id = operation_id
        self.status = status
        self.error_code = error_code

class BulkOperationTimeout(BulkOperationError):
    """Raised when a bulk operation is not ready within the polling budget."""

    def __init__(self, operation_id: str, attempts: int, interval: float):
        super().__init__(
            f"Bulk operation {operation_id} not completed after {attempts} polls "
            f"({attempts * interval:.0f}s budget)"
        )
        self.operation_id = operation_id
        self.attempts = attempts

class SnapshotParseError(BaseServiceError):
    """Raised when a snapshot line cannot be parsed."""
    pass

class PersistenceError(BaseServiceError):
    """Raised when the stock record store cannot read or write."""
    pass

class TokenError(BaseServiceError):
    """Raised when a platform access token cannot be obtained."""
    pass

class SyncStageError(BaseServiceError):
    """Raised when a sync run terminates early in a given stage."""

    def __init__(self, stage, cause: Exception):
        stage_name = getattr(stage, "value", stage)
        super().__init__(f"Sync failed during {stage_name}: {cause}")
        self.stage = stage
        self.cause = cause
