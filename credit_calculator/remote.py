"""Remote mirror of the profile document, keyed by the per-device user id.

Constructed once at startup and passed to whatever needs it. Without
credentials a `NullRemote` stands in and every call is skipped.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from supabase import AsyncClient, create_async_client

logger = structlog.get_logger(__name__)


class NullRemote:
    enabled = False

    async def upsert(self, key: str, document: Dict[str, Any]) -> bool:
        return True

    async def delete(self, key: str) -> bool:
        return True

    async def ping(self) -> bool:
        return True


class SupabaseRemote:
    enabled = True

    def __init__(self, client: AsyncClient, table: str = "grade_profiles"):
        self.client = client
        self.table = table

    async def upsert(self, key: str, document: Dict[str, Any]) -> bool:
        row = {
            "user_id": key,
            "data": document,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.client.table(self.table).upsert(row, on_conflict="user_id").execute()
        except Exception as e:
            logger.warning("remote_upsert_failed", user_id=key, error=str(e))
            return False
        logger.debug("remote_upserted", user_id=key)
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self.client.table(self.table).delete().eq("user_id", key).execute()
        except Exception as e:
            logger.warning("remote_delete_failed", user_id=key, error=str(e))
            return False
        logger.debug("remote_deleted", user_id=key)
        return True

    async def ping(self) -> bool:
        try:
            await self.client.table(self.table).select("user_id").limit(1).execute()
        except Exception as e:
            logger.debug("remote_unreachable", error=str(e))
            return False
        return True


async def build_remote(url: Optional[str], key: Optional[str], table: str = "grade_profiles"):
    if not (url and key):
        logger.info("remote_sync_disabled")
        return NullRemote()
    try:
        client = await create_async_client(url, key)
    except Exception as e:
        logger.error("remote_client_init_failed", error=str(e))
        return NullRemote()
    logger.info("remote_sync_enabled", table=table)
    return SupabaseRemote(client, table)
