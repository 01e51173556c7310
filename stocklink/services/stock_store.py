# stocklink/services/stock_store.py
"""
Persistent keyed storage for stock records.

`StockRecordStore` defines the primitives (get, get_all_where, find_one,
upsert_merge) and builds the sync-specific writes on top of them, so the
observation/baseline rules live in one place whatever the backend.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stocklink.core.enums import Platform
from stocklink.core.exceptions import PersistenceError
from stocklink.models.stock_record import StockRecord

logger = logging.getLogger(__name__)


class StockRecordStore(ABC):

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain

    # --- Primitives ---

    @abstractmethod
    async def get(self, key: str) -> Optional[StockRecord]:
        """Return the record stored under key, or None"""
        pass

    @abstractmethod
    async def get_all_where(self, **flags: Any) -> List[StockRecord]:
        """Return every record whose fields equal the given values"""
        pass

    @abstractmethod
    async def find_one(self, **fields: Any) -> Optional[StockRecord]:
        """Return the first record matching the given field values"""
        pass

    @abstractmethod
    async def upsert_merge(self, key: str, fields: Dict[str, Any]) -> Tuple[StockRecord, bool]:
        """Create or partially update a record. Returns (record, created)."""
        pass

    async def get_all(self) -> List[StockRecord]:
        return await self.get_all_where()

    # --- Sync writes ---

    async def record_observation(
        self,
        key: str,
        platform: Platform,
        quantity: int,
        fields: Optional[Dict[str, Any]] = None,
    ) -> Tuple[StockRecord, bool]:
        """
        Store a freshly observed quantity for one platform.

        The first observation of a platform seeds previous = current so it
        yields no delta. Later observations only move `current`.
        Returns (record, seeded).
        """
        slug = platform.slug
        existing = await self.get(key)
        update = dict(fields or {})
        update[f"{slug}_current"] = quantity

        seeded = existing is None or not existing.initialized(platform)
        if seeded:
            update[f"{slug}_previous"] = quantity
            update[f"{slug}_initialized"] = True
            logger.debug(f"Seeding {slug} baseline for {key} at {quantity}")
        else:
            logger.debug(f"Observed {slug} stock for {key}: {existing.previous(platform)} -> {quantity}")

        record, _ = await self.upsert_merge(key, update)
        return record, seeded

    async def set_baseline(self, key: str, platform: Platform, quantity: int, **extra: Any) -> StockRecord:
        """Record a quantity just written to a platform as both current and previous."""
        slug = platform.slug
        update = {f"{slug}_current": quantity, f"{slug}_previous": quantity, **extra}
        record, _ = await self.upsert_merge(key, update)
        return record

    async def acknowledge(self, key: str, platform: Platform) -> Optional[StockRecord]:
        """Fold the pending change on a platform into its baseline (previous = current)."""
        record = await self.get(key)
        if record is None or record.current(platform) is None:
            return record
        if record.current(platform) == record.previous(platform):
            return record
        record, _ = await self.upsert_merge(key, {f"{platform.slug}_previous": record.current(platform)})
        return record

    async def complete_override(self, key: str, platform: Platform) -> None:
        """Clear the override for one platform, keeping any remaining target."""
        record = await self.get(key)
        if record is None or not record.override_requested:
            return
        remaining = [p for p in record.override_targets() if p != platform]
        if remaining:
            await self.upsert_merge(key, {"override_platform": remaining[0].value})
        else:
            await self.upsert_merge(key, {"override_requested": False})


class SQLAlchemyStockRecordStore(StockRecordStore):
    """
    Store backed by the stock_records table.

    Every upsert commits on its own, mirroring the single-document atomicity
    of the upsert primitive: one failed write never rolls back another.
    """

    def __init__(self, session: AsyncSession, shop_domain: str):
        super().__init__(shop_domain)
        self.session = session

    async def get(self, key: str) -> Optional[StockRecord]:
        stmt = select(StockRecord).where(
            StockRecord.shop_domain == self.shop_domain,
            StockRecord.key == key,
        )
        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load stock record {key}: {e}")
            raise PersistenceError(f"Failed to load stock record {key}: {e}") from e

    async def get_all_where(self, **flags: Any) -> List[StockRecord]:
        stmt = select(StockRecord).where(StockRecord.shop_domain == self.shop_domain)
        for name, value in flags.items():
            stmt = stmt.where(getattr(StockRecord, name) == value)
        stmt = stmt.order_by(StockRecord.id)
        try:
            result = await self.session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to query stock records ({flags}): {e}")
            raise PersistenceError(f"Failed to query stock records: {e}") from e

    async def find_one(self, **fields: Any) -> Optional[StockRecord]:
        stmt = select(StockRecord).where(StockRecord.shop_domain == self.shop_domain)
        for name, value in fields.items():
            stmt = stmt.where(getattr(StockRecord, name) == value)
        stmt = stmt.order_by(StockRecord.id).limit(1)
        try:
            result = await self.session.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to query stock record ({fields}): {e}")
            raise PersistenceError(f"Failed to query stock record: {e}") from e

    async def upsert_merge(self, key: str, fields: Dict[str, Any]) -> Tuple[StockRecord, bool]:
        record = await self.get(key)
        created = record is None
        try:
            if created:
                record = StockRecord(shop_domain=self.shop_domain, key=key)
                self.session.add(record)
            record.merge(fields)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to upsert stock record {key}: {e}")
            raise PersistenceError(f"Failed to upsert stock record {key}: {e}") from e
        return record, created
