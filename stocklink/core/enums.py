"""
Shared enums and constants used across the application.
"""

from enum import Enum


class Platform(str, Enum):
    SHOPIFY = "SHOPIFY"
    ETSY = "ETSY"

    @property
    def slug(self):
        return self.value.lower()

    @property
    def opposite(self) -> "Platform":
        # Two platforms only; a change seen on one side is applied to the other
        return Platform.ETSY if self is Platform.SHOPIFY else Platform.SHOPIFY


class BulkOperationStatus(str, Enum):
    """Shopify bulk operation states (BulkOperationStatus in the Admin API)"""
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELING = "CANCELING"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"

    @property
    def is_failure(self) -> bool:
        return self in (
            BulkOperationStatus.FAILED,
            BulkOperationStatus.CANCELING,
            BulkOperationStatus.CANCELED,
            BulkOperationStatus.EXPIRED,
        )


class RecordKind(str, Enum):
    """Kinds of normalized snapshot record"""
    INVENTORY_LEVEL = "inventory_level"   # Shopify bulk export: stock at a location
    PRODUCT_VARIANT = "product_variant"   # Shopify bulk export: variant descriptor
    ETSY_PRODUCT = "etsy_product"         # Etsy listing inventory product


class SyncStage(str, Enum):
    LOAD_OVERRIDES = "load_overrides"
    SHOPIFY_TOKEN = "shopify_token"
    SHOPIFY_INVENTORY_LEVELS = "shopify_inventory_levels"
    SHOPIFY_PRODUCT_VARIANTS = "shopify_product_variants"
    ETSY_TOKEN = "etsy_token"
    ETSY_LISTINGS = "etsy_listings"
    RECONCILE = "reconcile"
    APPLY_ETSY = "apply_etsy"
    APPLY_SHOPIFY = "apply_shopify"
