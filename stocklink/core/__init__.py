"""
Core module exports.
"""
from .enums import (
    Platform,
    BulkOperationStatus,
    RecordKind,
    SyncStage
)

from .exceptions import (
    BaseServiceError,
    PlatformServiceError,
    TransportError,
    ShopifyAPIError,
    ShopifyGraphQLError,
    EtsyAPIError,
    BulkOperationError,
    BulkSubmitRejected,
    BulkOperationFailed,
    BulkOperationTimeout,
    SnapshotParseError,
    PersistenceError,
    TokenError,
    SyncStageError
)
