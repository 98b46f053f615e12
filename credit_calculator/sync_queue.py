"""Durable queue of remote writes awaiting retry.

Operations are replayed strictly in enqueue order. A flush stops at the first
operation the remote rejects, leaving it and everything behind it queued.
All methods run on one event loop; `_flushing` is the single-flight guard
and `_writing` marks a direct write in flight.
"""
from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from credit_calculator.storage import LocalStore

logger = structlog.get_logger(__name__)

QUEUE_KEY = "ukCreditCalculator_syncQueue"

UPSERT = "upsert"
DELETE = "delete"


class SyncStatus(str, enum.Enum):
    SYNCED = "synced"
    SYNCING = "syncing"
    OFFLINE = "offline"
    ERROR = "error"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncOperation:
    type: str
    user_id: str
    data: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=_now)

    def __post_init__(self):
        if self.type not in (UPSERT, DELETE):
            raise ValueError(f"Unknown sync operation type: {self.type!r}")

    def to_dict(self) -> Dict[str, Any]:
        doc = {"type": self.type, "userId": self.user_id, "timestamp": self.timestamp}
        if self.data is not None:
            doc["data"] = self.data
        return doc

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SyncOperation":
        return cls(
            type=raw["type"],
            user_id=str(raw["userId"]),
            data=raw.get("data"),
            timestamp=str(raw.get("timestamp") or _now()),
        )


class SyncQueue:
    def __init__(self, store: LocalStore, remote, key: str = QUEUE_KEY):
        self.store = store
        self.remote = remote
        self.key = key
        self.online = True
        self._ops: List[SyncOperation] = self._load()
        # restored writes have not reached the remote yet
        self.status = SyncStatus.OFFLINE if self._ops else SyncStatus.SYNCED
        self._flushing = False
        self._writing = False
        self._scheduled: Optional[asyncio.Task] = None

    # --- persistence ---

    def _load(self) -> List[SyncOperation]:
        try:
            raw = self.store.get(self.key)
        except (OSError, ValueError) as e:
            logger.warning("sync_queue_load_failed", error=str(e))
            return []
        if not isinstance(raw, list):
            return []

        ops = []
        for item in raw:
            try:
                ops.append(SyncOperation.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("sync_queue_entry_dropped", entry=repr(item)[:200], error=str(e))
        if ops:
            logger.info("sync_queue_restored", pending=len(ops))
        return ops

    def _persist(self) -> None:
        try:
            self.store.set(self.key, [op.to_dict() for op in self._ops])
        except (OSError, TypeError, ValueError) as e:
            logger.error("sync_queue_persist_failed", error=str(e))

    # --- inspection ---

    @property
    def pending(self) -> int:
        return len(self._ops)

    @property
    def operations(self) -> List[SyncOperation]:
        return list(self._ops)

    @property
    def flushing(self) -> bool:
        return self._flushing

    # --- queue operations ---

    def enqueue(self, op: SyncOperation) -> None:
        self._ops.append(op)
        self._persist()
        logger.debug("sync_op_enqueued", type=op.type, pending=len(self._ops))

    async def _apply(self, op: SyncOperation) -> bool:
        if op.type == UPSERT:
            return await self.remote.upsert(op.user_id, op.data or {})
        return await self.remote.delete(op.user_id)

    async def flush(self) -> SyncStatus:
        if self._flushing or self._writing or not self._ops:
            return self.status

        self._flushing = True
        self.status = SyncStatus.SYNCING
        try:
            while self._ops:
                op = self._ops[0]
                if not await self._apply(op):
                    logger.warning("sync_flush_stopped", type=op.type, pending=len(self._ops))
                    break
                self._ops.pop(0)
                self._persist()
        finally:
            self._flushing = False

        self.status = SyncStatus.ERROR if self._ops else SyncStatus.SYNCED
        logger.info("sync_flush_finished", status=self.status.value, pending=len(self._ops))
        return self.status

    def schedule_flush(self) -> Optional[asyncio.Task]:
        """Run a flush on the next loop iteration instead of inline."""
        if self._scheduled is not None and not self._scheduled.done():
            return self._scheduled
        self._scheduled = asyncio.get_running_loop().create_task(self.flush())
        return self._scheduled

    async def submit(self, op: SyncOperation) -> bool:
        """Write directly to the remote; on failure queue the write for retry."""
        if self._ops or self._writing:
            # keep ordering behind writes that have not gone through yet
            self.enqueue(op)
            if not self._writing:
                self.schedule_flush()
            return False

        self._writing = True
        try:
            ok = await self._apply(op)
        finally:
            self._writing = False

        if ok:
            if self._ops:
                self.schedule_flush()
            else:
                self.status = SyncStatus.SYNCED
            return True

        # anything queued while this write was in flight came after it
        self._ops.insert(0, op)
        self._persist()
        self.status = SyncStatus.OFFLINE
        self.schedule_flush()
        return False

    # --- triggers ---

    def set_offline(self) -> None:
        if self.online:
            logger.info("sync_went_offline", pending=len(self._ops))
        self.online = False
        self.status = SyncStatus.OFFLINE

    async def set_online(self) -> SyncStatus:
        was_offline = not self.online
        self.online = True
        if was_offline:
            logger.info("sync_back_online", pending=len(self._ops))
        if not self._ops:
            if not self._flushing:
                self.status = SyncStatus.SYNCED
            return self.status
        return await self.flush()

    async def tick(self, probe: Optional[Callable[[], Awaitable[bool]]] = None) -> SyncStatus:
        """One timer step: check connectivity, then retry pending writes."""
        if probe is not None and not await probe():
            self.set_offline()
            return self.status
        if not self.online:
            return await self.set_online()
        return await self.flush()

    async def run_periodic(self, interval: float,
                           probe: Optional[Callable[[], Awaitable[bool]]] = None) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.tick(probe)
