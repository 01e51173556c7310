# stocklink/models/stock_record.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, UniqueConstraint

from stocklink.core.enums import Platform
from ..database import Base


def utc_now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StockRecord(Base):
    """
    One row per stocked unit tracked across Shopify and Etsy.

    `key` is the Shopify inventory item GID for anything seen on Shopify and
    `etsy-product:<id>` for Etsy products with no matching SKU.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        UniqueConstraint("shop_domain", "key", name="uq_stock_records_shop_key"),
    )

    id = Column(Integer, primary_key=True)
    shop_domain = Column(String(255), nullable=False, index=True)
    key = Column(String(255), nullable=False, index=True)
    sku = Column(String(255), nullable=True, index=True)

    # Shopify side
    shopify_current = Column(Integer, nullable=True)
    shopify_previous = Column(Integer, nullable=True)
    shopify_initialized = Column(Boolean, nullable=False, default=False)
    shopify_location_id = Column(String(255), nullable=True)
    shopify_variant_id = Column(String(255), nullable=True, index=True)
    shopify_variant_name = Column(String(500), nullable=True)
    shopify_parent_id = Column(String(255), nullable=True)
    shopify_parent_title = Column(String(500), nullable=True)

    # Etsy side
    etsy_current = Column(Integer, nullable=True)
    etsy_previous = Column(Integer, nullable=True)
    etsy_initialized = Column(Boolean, nullable=False, default=False)
    etsy_product_id = Column(BigInteger, nullable=True, index=True)
    etsy_listing_id = Column(BigInteger, nullable=True, index=True)
    etsy_shop_id = Column(BigInteger, nullable=True)
    etsy_title = Column(String(500), nullable=True)
    etsy_variation = Column(String(500), nullable=True)

    # Operator intent
    override_requested = Column(Boolean, nullable=False, default=False, index=True)
    override_value = Column(Integer, nullable=True)
    override_platform = Column(String(20), nullable=True)  # SHOPIFY, ETSY or NULL for both
    link_sku_requested = Column(Boolean, nullable=False, default=False, index=True)

    first_seen_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    # Column defaults only fire on flush; set them up front so transient
    # records read the same as persisted ones.
    def __init__(self, **kwargs):
        kwargs.setdefault("shopify_initialized", False)
        kwargs.setdefault("etsy_initialized", False)
        kwargs.setdefault("override_requested", False)
        kwargs.setdefault("link_sku_requested", False)
        kwargs.setdefault("first_seen_at", utc_now())
        kwargs.setdefault("updated_at", kwargs["first_seen_at"])
        super().__init__(**kwargs)

    def merge(self, fields: Dict[str, Any]) -> None:
        """Partial update: None values never overwrite what is stored. `key` is immutable."""
        for name, value in fields.items():
            if value is None or name in ("id", "key", "shop_domain"):
                continue
            if not hasattr(self, name):
                raise AttributeError(f"StockRecord has no field '{name}'")
            setattr(self, name, value)
        self.updated_at = utc_now()

    def current(self, platform: Platform) -> Optional[int]:
        return getattr(self, f"{platform.slug}_current")

    def previous(self, platform: Platform) -> Optional[int]:
        return getattr(self, f"{platform.slug}_previous")

    def initialized(self, platform: Platform) -> bool:
        return bool(getattr(self, f"{platform.slug}_initialized"))

    def override_targets(self):
        """Platforms an active override applies to."""
        if not self.override_requested or self.override_value is None:
            return ()
        if self.override_platform:
            return (Platform(self.override_platform),)
        return (Platform.SHOPIFY, Platform.ETSY)

    def __repr__(self):
        return (
            f"<StockRecord key={self.key!r} sku={self.sku!r} "
            f"shopify={self.shopify_previous}->{self.shopify_current} "
            f"etsy={self.etsy_previous}->{self.etsy_current}>"
        )
