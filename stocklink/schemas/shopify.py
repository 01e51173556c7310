"""
Line shapes found in Shopify bulk operation exports (JSONL).

Each line of a bulk export is one node; nested connection nodes carry a
`__parentId` pointing at the row they hang off. Lines are validated here so
nothing downstream touches raw vendor JSON.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stocklink.core.enums import BulkOperationStatus

INVENTORY_LEVEL_GID_PREFIX = "gid://shopify/InventoryLevel/"
PRODUCT_VARIANT_GID_PREFIX = "gid://shopify/ProductVariant/"


class ShopifyLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LocationRef(ShopifyLine):
    id: str = ""


class QuantityEntry(ShopifyLine):
    name: str
    quantity: int


class InventoryLevelLine(ShopifyLine):
    id: str
    parent_id: str = Field(alias="__parentId", min_length=1)
    location: Optional[LocationRef] = None
    available: Optional[int] = None  # API versions before 2023-01
    quantities: List[QuantityEntry] = []

    @property
    def location_id(self) -> str:
        return self.location.id if self.location else ""

    @property
    def available_quantity(self) -> Optional[int]:
        if self.available is not None:
            return self.available
        for entry in self.quantities:
            if entry.name == "available":
                return entry.quantity
        return None


class InventoryItemRef(ShopifyLine):
    id: str = Field(min_length=1)
    tracked: Optional[bool] = None


class ProductRef(ShopifyLine):
    id: str = ""
    title: str = ""


class ProductVariantLine(ShopifyLine):
    id: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    sku: Optional[str] = None
    inventory_management: Optional[str] = Field(default=None, alias="inventoryManagement")
    inventory_item: InventoryItemRef = Field(alias="inventoryItem")
    product: Optional[ProductRef] = None
    parent_id: Optional[str] = Field(default=None, alias="__parentId")

    @property
    def is_platform_managed(self) -> bool:
        """Only variants whose stock Shopify tracks take part in sync."""
        if self.inventory_management is not None:
            return self.inventory_management.upper() == "SHOPIFY"
        return bool(self.inventory_item.tracked)


class PendingExport(ShopifyLine):
    """A submitted bulk operation as reported by Shopify."""
    id: str
    status: BulkOperationStatus
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    url: Optional[str] = None
    partial_data_url: Optional[str] = Field(default=None, alias="partialDataUrl")
    object_count: Optional[str] = Field(default=None, alias="objectCount")

    @property
    def result_url(self) -> Optional[str]:
        # Only a COMPLETED export has a usable result; partial data is never used
        return self.url if self.status == BulkOperationStatus.COMPLETED else None
