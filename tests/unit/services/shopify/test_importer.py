import json

import pytest
from unittest.mock import AsyncMock

from stocklink.core.enums import RecordKind
from stocklink.core.exceptions import SnapshotParseError
from stocklink.services.shopify.importer import ShopifyImporter, SnapshotIngester
from tests.mocks.mock_clients import LOCATION, lines_from

ITEM_1 = "gid://shopify/InventoryItem/1"
ITEM_2 = "gid://shopify/InventoryItem/2"


def level_line(n, item, quantity, location=LOCATION):
    return json.dumps({
        "id": f"gid://shopify/InventoryLevel/{n}?inventory_item_id={n}",
        "location": {"id": location},
        "quantities": [{"name": "available", "quantity": quantity}],
        "__parentId": item,
    })


def variant_line(n, item, sku, tracked=True, management=None):
    line = {
        "id": f"gid://shopify/ProductVariant/{n}",
        "displayName": f"Tee - Size {n}",
        "sku": sku,
        "product": {"id": "gid://shopify/Product/9", "title": "Tee"},
        "inventoryItem": {"id": item, "tracked": tracked},
        "__parentId": "gid://shopify/Product/9",
    }
    if management:
        line["inventoryManagement"] = management
    return json.dumps(line)


@pytest.fixture
def ingester(store):
    return SnapshotIngester(client=AsyncMock(), store=store)


"""
1. Line parsing
"""

def test_parse_inventory_level_line(ingester):
    update = ingester.parse_line(level_line(1, ITEM_1, 6), RecordKind.INVENTORY_LEVEL)

    assert update.key == ITEM_1
    assert update.quantity == 6
    assert update.shopify_location_id == LOCATION


def test_parse_legacy_available_field(ingester):
    line = json.dumps({
        "id": "gid://shopify/InventoryLevel/5",
        "location": {"id": LOCATION},
        "available": 2,
        "__parentId": ITEM_1,
    })

    assert ingester.parse_line(line, RecordKind.INVENTORY_LEVEL).quantity == 2


def test_parent_rows_are_ignored(ingester):
    line = json.dumps({"id": ITEM_1, "sku": "A"})

    assert ingester.parse_line(line, RecordKind.INVENTORY_LEVEL) is None


def test_level_without_parent_is_malformed(ingester):
    line = json.dumps({"id": "gid://shopify/InventoryLevel/1", "location": {"id": LOCATION}, "available": 1})

    with pytest.raises(SnapshotParseError):
        ingester.parse_line(line, RecordKind.INVENTORY_LEVEL)


def test_invalid_json_is_malformed(ingester):
    with pytest.raises(SnapshotParseError):
        ingester.parse_line("{not json", RecordKind.INVENTORY_LEVEL)


def test_levels_at_other_locations_are_filtered(store):
    ingester = SnapshotIngester(client=AsyncMock(), store=store, location_gid=LOCATION)

    assert ingester.parse_line(level_line(1, ITEM_1, 6, location="gid://shopify/Location/2"),
                               RecordKind.INVENTORY_LEVEL) is None
    assert ingester.parse_line(level_line(1, ITEM_1, 6), RecordKind.INVENTORY_LEVEL) is not None


def test_unmanaged_variants_are_ignored(ingester):
    assert ingester.parse_line(variant_line(1, ITEM_1, "A", tracked=False), RecordKind.PRODUCT_VARIANT) is None
    assert ingester.parse_line(
        variant_line(2, ITEM_2, "B", tracked=True, management="NOT_MANAGED"), RecordKind.PRODUCT_VARIANT
    ) is None


def test_variant_line_normalized(ingester):
    update = ingester.parse_line(variant_line(1, ITEM_1, "TEE-S"), RecordKind.PRODUCT_VARIANT)

    assert update.key == ITEM_1
    assert update.quantity is None
    assert update.record_fields() == {
        "sku": "TEE-S",
        "shopify_variant_id": "gid://shopify/ProductVariant/1",
        "shopify_variant_name": "Tee - Size 1",
        "shopify_parent_id": "gid://shopify/Product/9",
        "shopify_parent_title": "Tee",
    }


"""
2. Streaming ingestion
"""

@pytest.mark.asyncio
async def test_malformed_line_does_not_stop_ingestion(ingester, store):
    lines = lines_from(
        json.dumps({"id": ITEM_1}),
        level_line(1, ITEM_1, 4),
        "{broken",
        level_line(2, ITEM_2, 9),
    )

    stats = await ingester.ingest_lines(lines(), RecordKind.INVENTORY_LEVEL)

    assert stats["malformed"] == 1
    assert stats["accepted"] == 2
    assert stats["ignored"] == 1
    assert store.records[ITEM_2].shopify_current == 9
    assert ingester.seeded_keys == {ITEM_1, ITEM_2}


@pytest.mark.asyncio
async def test_second_snapshot_updates_current_only(ingester, store):
    await ingester.ingest_lines(lines_from(level_line(1, ITEM_1, 10))(), RecordKind.INVENTORY_LEVEL)
    ingester.seeded_keys.clear()

    stats = await ingester.ingest_lines(lines_from(level_line(1, ITEM_1, 7))(), RecordKind.INVENTORY_LEVEL)

    record = store.records[ITEM_1]
    assert (record.shopify_previous, record.shopify_current) == (10, 7)
    assert stats["seeded"] == 0
    assert ingester.seeded_keys == set()


@pytest.mark.asyncio
async def test_variant_snapshot_adds_descriptors_without_touching_stock(ingester, store):
    store.seed(ITEM_1, shopify=(3, 3))

    await ingester.ingest_lines(lines_from(variant_line(1, ITEM_1, "TEE-S"))(), RecordKind.PRODUCT_VARIANT)

    record = store.records[ITEM_1]
    assert record.sku == "TEE-S"
    assert (record.shopify_previous, record.shopify_current) == (3, 3)


@pytest.mark.asyncio
async def test_persistence_error_skips_item(ingester, store):
    store.fail_on_keys.add(ITEM_1)

    stats = await ingester.ingest_lines(
        lines_from(level_line(1, ITEM_1, 1), level_line(2, ITEM_2, 2))(), RecordKind.INVENTORY_LEVEL
    )

    assert stats["errors"] == 1
    assert stats["accepted"] == 1
    assert ITEM_2 in store.records


@pytest.mark.asyncio
async def test_empty_export_is_empty_snapshot(ingester):
    stats = await ingester.ingest(None, RecordKind.INVENTORY_LEVEL)

    assert stats["lines"] == 0
    ingester.client.stream_bulk_result.assert_not_called()


@pytest.mark.asyncio
async def test_importer_runs_bulk_export_and_ingests(store):
    client = AsyncMock()
    client.stream_bulk_result = lines_from(level_line(1, ITEM_1, 5))
    poller = AsyncMock()
    poller.run.return_value = "https://storage/levels.jsonl"

    importer = ShopifyImporter(client, store, poller=poller)
    stats = await importer.import_inventory_levels()

    assert stats["accepted"] == 1
    assert importer.seeded_keys == {ITEM_1}
    assert store.records[ITEM_1].shopify_current == 5
