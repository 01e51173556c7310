# stocklink.services.shopify.bulk
"""
Shopify bulk export protocol: submit a bulk query, poll the operation until it
is COMPLETED and hand back the URL of its JSONL result.
"""
import asyncio
import logging
from typing import Optional

from stocklink.core.enums import BulkOperationStatus
from stocklink.core.exceptions import BulkOperationFailed, BulkOperationTimeout, BulkSubmitRejected
from stocklink.schemas.shopify import PendingExport
from stocklink.services.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)


INVENTORY_LEVELS_QUERY = """
{
  inventoryItems {
    edges {
      node {
        id
        sku
        inventoryLevels {
          edges {
            node {
              id
              location { id }
              quantities(names: ["available"]) { name quantity }
            }
          }
        }
      }
    }
  }
}
"""

PRODUCT_VARIANTS_QUERY = """
{
  products {
    edges {
      node {
        id
        title
        variants {
          edges {
            node {
              id
              displayName
              sku
              product { id title }
              inventoryItem { id tracked }
            }
          }
        }
      }
    }
  }
}
"""


class BulkJobPoller:

    def __init__(
        self,
        client: ShopifyClient,
        max_attempts: int = 12,
        interval: float = 20.0,
        sleep=asyncio.sleep,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep

    async def submit(self, query: str) -> str:
        """Start a bulk export; returns the operation id."""
        payload = await self.client.run_bulk_query(query)
        user_errors = payload.get("userErrors") or []
        if user_errors:
            messages = "; ".join(e.get("message", "unknown error") for e in user_errors)
            logger.error(f"Bulk operation rejected: {messages}")
            raise BulkSubmitRejected(f"Bulk operation rejected: {messages}", user_errors=user_errors)

        operation = payload.get("bulkOperation") or {}
        status = operation.get("status")
        if not operation.get("id") or status != BulkOperationStatus.CREATED.value:
            raise BulkSubmitRejected(f"Bulk operation not created (status: {status})")

        logger.info(f"Submitted bulk operation {operation['id']}")
        return operation["id"]

    async def poll_until_ready(
        self,
        operation_id: str,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> Optional[str]:
        """
        Poll until the operation completes and return its result URL.

        A COMPLETED export with no URL matched no objects; None is returned and
        callers treat it as an empty snapshot.

        Raises:
            BulkOperationFailed: the operation reached a failure state
            BulkOperationTimeout: still not COMPLETED after the last poll
        """
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.interval if interval is None else interval

        for attempt in range(1, max_attempts + 1):
            node = await self.client.get_bulk_operation(operation_id)
            if node is None:
                raise BulkOperationFailed(operation_id, "MISSING")
            export = PendingExport.model_validate(node)

            logger.debug(f"Bulk operation {operation_id} poll {attempt}/{max_attempts}: {export.status.value}")

            if export.status == BulkOperationStatus.COMPLETED:
                logger.info(f"Bulk operation {operation_id} completed ({export.object_count} objects)")
                return export.result_url

            if export.status.is_failure:
                logger.error(f"Bulk operation {operation_id} ended {export.status.value}: {export.error_code}")
                raise BulkOperationFailed(operation_id, export.status.value, export.error_code)

            if attempt < max_attempts:
                await self._sleep(interval)

        logger.error(f"Bulk operation {operation_id} not ready after {max_attempts} polls")
        raise BulkOperationTimeout(operation_id, max_attempts, interval)

    async def run(self, query: str) -> Optional[str]:
        operation_id = await self.submit(query)
        return await self.poll_until_ready(operation_id)
