from typing import Dict, List, Optional, Sequence, Tuple

from stocklink.core.exceptions import EtsyAPIError, ShopifyAPIError
from stocklink.schemas.etsy import EtsyListing, EtsyListingInventory, EtsyShop
from stocklink.services.shopify.bulk import INVENTORY_LEVELS_QUERY

INVENTORY_ITEM = "gid://shopify/InventoryItem/{}"
LOCATION = "gid://shopify/Location/1"


def lines_from(*lines: str):
    """Async iterator factory over ready-made JSONL lines."""
    async def _gen(*_args, **_kwargs):
        for line in lines:
            yield line
    return _gen


def etsy_inventory(products: Sequence[Tuple[int, Optional[str], int]], deleted: Sequence[int] = ()) -> EtsyListingInventory:
    """Listing inventory with one offering per (product_id, sku, quantity)."""
    return EtsyListingInventory.model_validate({
        "products": [
            {
                "product_id": product_id,
                "sku": sku,
                "is_deleted": product_id in deleted,
                "offerings": [{
                    "offering_id": product_id * 10,
                    "quantity": quantity,
                    "is_enabled": True,
                    "price": {"amount": 1250, "divisor": 100, "currency_code": "GBP"},
                }],
                "property_values": [{
                    "property_id": 513,
                    "property_name": "Size",
                    "value_ids": [1],
                    "values": ["Large"],
                }],
            }
            for product_id, sku, quantity in products
        ],
        "price_on_property": [],
        "quantity_on_property": [513],
        "sku_on_property": [513],
    })


class FakeShopifyClient:
    """Serves canned bulk exports and records inventory writes."""

    def __init__(self, levels: Optional[List[str]] = None, variants: Optional[List[str]] = None):
        self.results: Dict[str, List[str]] = {
            "https://results/levels.jsonl": levels or [],
            "https://results/variants.jsonl": variants or [],
        }
        self.submitted: List[str] = []
        self.inventory_calls: List[Dict] = []
        self.failing_items: set = set()  # inventory item GIDs whose write fails

    async def run_bulk_query(self, query: str):
        self.submitted.append(query)
        op = "levels" if query == INVENTORY_LEVELS_QUERY else "variants"
        return {"bulkOperation": {"id": f"gid://shopify/BulkOperation/{op}", "status": "CREATED"}, "userErrors": []}

    async def get_bulk_operation(self, operation_id: str):
        op = operation_id.rsplit("/", 1)[-1]
        return {"id": operation_id, "status": "COMPLETED", "url": f"https://results/{op}.jsonl", "objectCount": "1"}

    async def stream_bulk_result(self, url: str):
        for line in self.results[url]:
            yield line

    async def set_inventory_level(self, location_id: str, inventory_item_id: str, available: int):
        if inventory_item_id in self.failing_items:
            raise ShopifyAPIError("simulated Shopify failure", status_code=500)
        self.inventory_calls.append({
            "location_id": location_id,
            "inventory_item_id": inventory_item_id,
            "available": available,
        })
        return {"inventory_level": {"available": available}}


class FakeEtsyClient:
    """Etsy shop held in memory: listing id -> inventory."""

    def __init__(self, inventories: Optional[Dict[int, EtsyListingInventory]] = None, shop_id: int = 9001):
        self.inventories = inventories or {}
        self.shop_id = shop_id
        self.update_calls: List[Dict] = []
        self.failing_listings: set = set()
        self.unreadable_listings: set = set()

    async def get_user_shop(self, user_id=None) -> EtsyShop:
        return EtsyShop(shop_id=self.shop_id, shop_name="TestEtsyShop")

    async def get_all_listings(self, shop_id: int, page_size: int = 100) -> List[EtsyListing]:
        return [EtsyListing(listing_id=lid, shop_id=shop_id, title=f"Listing {lid}") for lid in self.inventories]

    async def get_listing_inventory(self, listing_id: int) -> EtsyListingInventory:
        if listing_id in self.unreadable_listings or listing_id not in self.inventories:
            raise EtsyAPIError(f"listing {listing_id} not readable", status_code=404)
        return self.inventories[listing_id]

    async def update_listing_inventory(self, listing_id: int, payload: Dict):
        if listing_id in self.failing_listings:
            raise EtsyAPIError("simulated Etsy failure", status_code=500)
        self.update_calls.append({"listing_id": listing_id, "payload": payload})
        return payload

    def set_quantity(self, listing_id: int, product_id: int, quantity: int):
        for product in self.inventories[listing_id].products:
            if product.product_id == product_id:
                product.offerings[0].quantity = quantity
