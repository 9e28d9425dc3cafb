"""
PostgreSQL document persistence for the Premium service.

Each entity kind lives in a collection table holding one JSONB document per
record, keyed by a unique text column (``entity_id`` for entitlements,
``code`` for redemption codes).
"""

import json
from datetime import datetime
from typing import List, Optional, Type, TypeVar

import asyncpg
import pydantic

from shared.errors import StorageUnavailableError
from shared.logging import get_logger
from ..models import Entitlement, PremiumModel, RedemptionCode
from .base import StorageBackend


PREMIUMS_TABLE = "premiums"
CODES_TABLE = "premium_codes"

# Errors that mean the database could not serve the request
_UNAVAILABLE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

ModelT = TypeVar("ModelT", bound=PremiumModel)


class PostgresDocumentStorage(StorageBackend):
    """Document-store backend on PostgreSQL JSONB."""

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10, command_timeout: float = 30):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("premium.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout
                )

            await self._create_tables()

            self.logger.info("PostgreSQL document storage started")

        except _UNAVAILABLE_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL document storage", error=str(e))
            raise StorageUnavailableError("start", str(e)) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL document storage stopped")

    async def _create_tables(self):
        """Create collection tables."""
        async with self.pool.acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {PREMIUMS_TABLE} (
                    entity_id TEXT PRIMARY KEY,
                    document JSONB NOT NULL
                );
            """)
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {CODES_TABLE} (
                    code TEXT PRIMARY KEY,
                    document JSONB NOT NULL
                );
            """)
            await conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_premiums_is_premium
                ON {PREMIUMS_TABLE} (((document->>'isPremium')::boolean));
            """)

    async def find_entitlement(self, entity_id: str) -> Optional[Entitlement]:
        row = await self._fetchrow(
            "find_entitlement",
            f"SELECT document FROM {PREMIUMS_TABLE} WHERE entity_id = $1",
            entity_id
        )
        return self._load(Entitlement, row, "find_entitlement") if row else None

    async def save_entitlement(self, entitlement: Entitlement) -> None:
        await self._execute(
            "save_entitlement",
            f"""
            INSERT INTO {PREMIUMS_TABLE} (entity_id, document) VALUES ($1, $2::jsonb)
            ON CONFLICT (entity_id) DO UPDATE SET document = EXCLUDED.document
            """,
            entitlement.entity_id, json.dumps(entitlement.to_document())
        )
        self.logger.debug("Entitlement saved", entity_id=entitlement.entity_id)

    async def find_code(self, code: str) -> Optional[RedemptionCode]:
        row = await self._fetchrow(
            "find_code",
            f"SELECT document FROM {CODES_TABLE} WHERE code = $1",
            code
        )
        return self._load(RedemptionCode, row, "find_code") if row else None

    async def save_code(self, code: RedemptionCode) -> None:
        await self._execute(
            "save_code",
            f"""
            INSERT INTO {CODES_TABLE} (code, document) VALUES ($1, $2::jsonb)
            ON CONFLICT (code) DO UPDATE SET document = {CODES_TABLE}.document || EXCLUDED.document
            """,
            code.code, json.dumps(code.to_document())
        )
        self.logger.debug("Code saved", code=code.code)

    async def find_expired_entitlements(self, now: datetime) -> List[Entitlement]:
        rows = await self._fetch(
            "find_expired_entitlements",
            f"""
            SELECT document FROM {PREMIUMS_TABLE}
            WHERE (document->>'isPremium')::boolean = TRUE
              AND document->>'expiresAt' IS NOT NULL
              AND (document->>'expiresAt')::timestamptz < $1
            """,
            now
        )
        return [self._load(Entitlement, row, "find_expired_entitlements") for row in rows]

    async def list_all_entitlements(self) -> List[Entitlement]:
        rows = await self._fetch("list_all_entitlements", f"SELECT document FROM {PREMIUMS_TABLE}")
        return [self._load(Entitlement, row, "list_all_entitlements") for row in rows]

    async def list_all_codes(self) -> List[RedemptionCode]:
        rows = await self._fetch("list_all_codes", f"SELECT document FROM {CODES_TABLE}")
        return [self._load(RedemptionCode, row, "list_all_codes") for row in rows]

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except _UNAVAILABLE_ERRORS:
            return False

    def _load(self, model: Type[ModelT], row, operation: str) -> ModelT:
        try:
            return model.from_document(_decode(row["document"]))
        except (pydantic.ValidationError, json.JSONDecodeError) as e:
            self.logger.error("Malformed document", operation=operation, error=str(e))
            raise StorageUnavailableError(operation, f"malformed document: {e}") from e

    def _require_pool(self, operation: str) -> asyncpg.Pool:
        if self.pool is None:
            raise StorageUnavailableError(operation, "storage not started")
        return self.pool

    async def _fetchrow(self, operation: str, query: str, *args):
        pool = self._require_pool(operation)
        try:
            async with pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except _UNAVAILABLE_ERRORS as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e)) from e

    async def _fetch(self, operation: str, query: str, *args):
        pool = self._require_pool(operation)
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except _UNAVAILABLE_ERRORS as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e)) from e

    async def _execute(self, operation: str, query: str, *args) -> None:
        pool = self._require_pool(operation)
        try:
            async with pool.acquire() as conn:
                await conn.execute(query, *args)
        except _UNAVAILABLE_ERRORS as e:
            self.logger.error("Query failed", operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e)) from e


def _decode(document):
    # asyncpg returns jsonb as text unless a codec is registered
    return json.loads(document) if isinstance(document, str) else document
