from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field

from stocklink.core.enums import Platform, RecordKind


class StockRecordUpdate(BaseModel):
    """
    Normalized snapshot record handed from an ingester to the store.

    Attributes left as None are absent from this snapshot and must not
    overwrite what the store already holds.
    """
    kind: RecordKind
    platform: Platform
    key: str
    quantity: Optional[int] = None

    sku: Optional[str] = None
    shopify_location_id: Optional[str] = None
    shopify_variant_id: Optional[str] = None
    shopify_variant_name: Optional[str] = None
    shopify_parent_id: Optional[str] = None
    shopify_parent_title: Optional[str] = None
    etsy_product_id: Optional[int] = None
    etsy_listing_id: Optional[int] = None
    etsy_shop_id: Optional[int] = None
    etsy_title: Optional[str] = None
    etsy_variation: Optional[str] = None

    def record_fields(self) -> Dict[str, Any]:
        return self.model_dump(
            exclude={"kind", "platform", "key", "quantity"},
            exclude_none=True,
        )


@dataclass(frozen=True)
class SideState:
    """One platform's view of a record: the last two observations."""
    current: Optional[int]
    previous: Optional[int]
    initialized: bool

    @property
    def change(self) -> Optional[int]:
        if not self.initialized or self.current is None or self.previous is None:
            return None
        return self.current - self.previous


@dataclass(frozen=True)
class KeyDelta:
    key: str
    shopify_delta: Optional[int] = None   # change seen on Etsy, to apply to Shopify
    etsy_delta: Optional[int] = None      # change seen on Shopify, to apply to Etsy
    is_new_key: bool = False
    override_applied: bool = False
    absorbed: Tuple[Platform, ...] = ()   # sides whose change is folded into the baseline unpropagated


@dataclass(frozen=True)
class OverrideInstruction:
    key: str
    platform: Platform
    quantity: int
    sku: Optional[str] = None


@dataclass
class OverrideSet:
    instructions: List[OverrideInstruction] = field(default_factory=list)
    sku_links: Dict[int, str] = field(default_factory=dict)  # etsy product id -> sku

    def for_platform(self, platform: Platform) -> Dict[str, int]:
        return {i.key: i.quantity for i in self.instructions if i.platform == platform}

    def platforms_for(self, key: str) -> Set[Platform]:
        return {i.platform for i in self.instructions if i.key == key}


@dataclass
class ReconciliationDelta:
    shopify_deltas: Dict[str, int] = field(default_factory=dict)
    etsy_deltas: Dict[str, int] = field(default_factory=dict)
    shopify_overrides: Dict[str, int] = field(default_factory=dict)
    etsy_overrides: Dict[str, int] = field(default_factory=dict)
    new_keys: Set[str] = field(default_factory=set)
    override_keys: Set[str] = field(default_factory=set)
    skipped_keys: Set[str] = field(default_factory=set)
    failed_keys: Set[str] = field(default_factory=set)

    @property
    def shopify_has_changes(self) -> bool:
        return bool(self.shopify_deltas or self.shopify_overrides)

    @property
    def etsy_has_changes(self) -> bool:
        return bool(self.etsy_deltas or self.etsy_overrides)

    def deltas_for(self, platform: Platform) -> Dict[str, int]:
        return self.shopify_deltas if platform == Platform.SHOPIFY else self.etsy_deltas

    def overrides_for(self, platform: Platform) -> Dict[str, int]:
        return self.shopify_overrides if platform == Platform.SHOPIFY else self.etsy_overrides


@dataclass(frozen=True)
class ApplyFailure:
    key: str
    reason: str


@dataclass
class ApplyResult:
    platform: Platform
    attempted: int = 0
    succeeded: int = 0
    failures: List[ApplyFailure] = field(default_factory=list)
    applied: Dict[str, int] = field(default_factory=dict)  # key -> quantity written

    @property
    def is_systemic_failure(self) -> bool:
        return self.attempted > 0 and self.succeeded == 0

    def summary(self) -> Dict[str, Any]:
        return {
            "platform": self.platform.value,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": len(self.failures),
        }


class SyncRunResult(BaseModel):
    run_id: str
    shop_domain: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    success: bool = False
    stages: Dict[str, Dict[str, int]] = {}
    applied: List[Dict[str, Any]] = []
    failed_stage: Optional[str] = None
    error: Optional[str] = None


# --- Operator API ---

class StockRecordRead(BaseModel):
    key: str
    sku: Optional[str] = None
    shopify_current: Optional[int] = None
    shopify_previous: Optional[int] = None
    shopify_variant_name: Optional[str] = None
    etsy_current: Optional[int] = None
    etsy_previous: Optional[int] = None
    etsy_initialized: bool = False
    etsy_product_id: Optional[int] = None
    etsy_title: Optional[str] = None
    override_requested: bool = False
    override_value: Optional[int] = None
    override_platform: Optional[str] = None
    link_sku_requested: bool = False
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OverrideRequest(BaseModel):
    quantity: int = Field(ge=0)
    platform: Optional[Platform] = None  # None forces both platforms


class LinkSkuRequest(BaseModel):
    etsy_product_id: int
    sku: Optional[str] = None  # defaults to the record's own SKU
