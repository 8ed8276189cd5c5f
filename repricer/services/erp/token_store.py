"""
Persistent token storage for the ERP API.

The ERP rotates the token pair on refresh and sometimes on ordinary calls,
so the database row is the only source of truth. Nothing is cached in memory.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.logging_config import mask_token
from repricer.database import dialect_insert
from repricer.models.erp_token import ErpToken
from repricer.schemas.erp import TokenPair

logger = logging.getLogger(__name__)


class TokenStore:
    """
    Reads and writes the singleton ErpToken row.
    Every save is committed immediately so a rotated pair survives a later failure.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self) -> Optional[TokenPair]:
        """Return the stored pair, always re-read from the database."""
        row = await self.db.scalar(
            select(ErpToken)
            .where(ErpToken.id == ErpToken.SINGLETON_ID)
            .execution_options(populate_existing=True)
        )
        if row is None:
            return None
        return TokenPair(access_token=row.access_token, refresh_token=row.refresh_token)

    async def exists(self) -> bool:
        return await self.get() is not None

    async def save(
        self,
        tokens: TokenPair,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ) -> None:
        """Upsert the singleton row. Client credentials are only written when given."""
        values = {
            "id": ErpToken.SINGLETON_ID,
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
        }
        update_values = {
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token,
        }
        if client_id is not None:
            values["client_id"] = update_values["client_id"] = client_id
        if client_secret is not None:
            values["client_secret"] = update_values["client_secret"] = client_secret

        stmt = dialect_insert(self.db, ErpToken).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={**update_values, "updated_at": func.now()},
        )
        await self.db.execute(stmt)
        await self.db.commit()

        logger.info(f"Saved ERP token pair (access={mask_token(tokens.access_token)})")
