"""
Etsy Open API v3 payloads used by the sync.
"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EtsyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class EtsyTokenResponse(EtsyModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str


class EtsyShop(EtsyModel):
    shop_id: int
    shop_name: str = ""


class EtsyListing(EtsyModel):
    listing_id: int
    shop_id: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    state: Optional[str] = None
    quantity: Optional[int] = None  # combined quantity of every product on the listing


class EtsyListingsPage(EtsyModel):
    count: int = 0
    results: List[EtsyListing] = []


class EtsyPrice(EtsyModel):
    amount: int
    divisor: int = 100
    currency_code: Optional[str] = None

    @property
    def decimal(self) -> float:
        # updateListingInventory takes a plain decimal rather than the Money object
        if not self.divisor:
            return float(self.amount)
        return float(Decimal(self.amount) / Decimal(self.divisor))


class EtsyOffering(EtsyModel):
    offering_id: Optional[int] = None
    quantity: int
    is_enabled: bool = True
    is_deleted: bool = False
    price: EtsyPrice


class EtsyPropertyValue(EtsyModel):
    property_id: int
    property_name: Optional[str] = None
    scale_id: Optional[int] = None
    value_ids: List[int] = []
    values: List[str] = []


class EtsyProduct(EtsyModel):
    product_id: int
    sku: Optional[str] = None
    is_deleted: bool = False
    offerings: List[EtsyOffering] = Field(min_length=1)
    property_values: List[EtsyPropertyValue] = []

    @property
    def quantity(self) -> int:
        return self.offerings[0].quantity

    @property
    def variation_description(self) -> str:
        return ", ".join(
            f"{pv.property_name}: {'-'.join(pv.values)}" for pv in self.property_values
        )


class EtsyListingInventory(EtsyModel):
    products: List[EtsyProduct] = []
    price_on_property: List[int] = []
    quantity_on_property: List[int] = []
    sku_on_property: List[int] = []
