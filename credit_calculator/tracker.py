from concurrent.futures import Future
from typing import Any, Dict, Iterable, List, Optional

import structlog

from credit_calculator import backend_logic as bl
from credit_calculator.remote import NullRemote
from credit_calculator.storage import LocalStore, ProfileStore, get_or_create_user_id
from credit_calculator.sync_queue import DELETE, UPSERT, SyncOperation, SyncQueue

logger = structlog.get_logger(__name__)


class GradeTracker:
    """
    Owns the in-memory Profile and pushes every change through local storage
    first, then (when configured) to the remote mirror via the sync queue.

    Mutators change the profile and save it locally straight away; the remote
    write happens in `persist()`, or in `persist_in_background()` when the
    caller must not wait on the network.
    """

    def __init__(self, profile: bl.Profile, profiles: ProfileStore, queue: SyncQueue,
                 user_id: str, remote=None, default_batch: str = bl.DEFAULT_BATCH):
        self.profile = profile
        self.profiles = profiles
        self.queue = queue
        self.user_id = user_id
        self.remote = remote if remote is not None else NullRemote()
        self.default_batch = default_batch

    @classmethod
    def open(cls, store: LocalStore, remote=None, default_batch: str = bl.DEFAULT_BATCH) -> "GradeTracker":
        remote = remote if remote is not None else NullRemote()
        profiles = ProfileStore(store)
        profile = profiles.load()
        if profile is None:
            profile = bl.default_profile(default_batch)
            logger.info("profile_initialised")
        return cls(
            profile=profile,
            profiles=profiles,
            queue=SyncQueue(store, remote),
            user_id=get_or_create_user_id(store),
            remote=remote,
            default_batch=default_batch,
        )

    @property
    def remote_enabled(self) -> bool:
        return bool(getattr(self.remote, "enabled", False))

    async def start(self):
        if self.remote_enabled:
            await self.queue.flush()

    async def probe(self) -> bool:
        return await self.remote.ping()

    async def run_sync_timer(self, interval: float) -> None:
        if self.remote_enabled:
            await self.queue.run_periodic(interval, self.probe)

    # --- persistence ---

    def save_local(self) -> bool:
        return self.profiles.save(self.profile)

    def stage(self) -> Optional[SyncOperation]:
        """Save locally and snapshot the profile for the remote, on the caller's thread."""
        self.save_local()
        if not self.remote_enabled:
            return None
        return SyncOperation(UPSERT, self.user_id, bl.profile_to_dict(self.profile))

    async def push(self, op: Optional[SyncOperation]) -> bool:
        if op is None:
            return True
        return await self.queue.submit(op)

    async def persist(self) -> bool:
        return await self.push(self.stage())

    def persist_in_background(self, runner) -> Optional[Future]:
        """Stage now, push on `runner` without waiting for the remote."""
        op = self.stage()
        if op is None:
            return None
        return runner.spawn(self.push(op))

    def stage_reset(self) -> Optional[SyncOperation]:
        self.profile = bl.default_profile(self.default_batch)
        self.profiles.clear()
        self.save_local()
        logger.info("profile_reset")
        if not self.remote_enabled:
            return None
        return SyncOperation(DELETE, self.user_id)

    async def reset(self) -> bool:
        return await self.push(self.stage_reset())

    def reset_in_background(self, runner) -> Optional[Future]:
        op = self.stage_reset()
        if op is None:
            return None
        return runner.spawn(self.push(op))

    # --- mutations ---

    def set_user_name(self, name: str) -> None:
        self.profile.user_name = name or ""
        self.save_local()

    def set_user_batch(self, batch: str) -> None:
        self.profile.user_batch = batch or self.default_batch
        self.save_local()

    def add_semester(self) -> bl.Semester:
        semester = bl.add_semester(self.profile)
        self.save_local()
        return semester

    def rename_semester(self, semester_id: str, name: str) -> Optional[bl.Semester]:
        semester = bl.rename_semester(self.profile, semester_id, name)
        self.save_local()
        return semester

    def delete_semester(self, semester_id: str) -> Optional[bl.Semester]:
        semester = bl.delete_semester(self.profile, semester_id)
        self.save_local()
        return semester

    def add_module(self, semester_id: str) -> Optional[bl.Module]:
        module = bl.add_module(self.profile, semester_id)
        self.save_local()
        return module

    def update_module(self, semester_id: str, module_id: str, field_name: str, value: Any) -> Optional[bl.Module]:
        module = bl.update_module(self.profile, semester_id, module_id, field_name, value)
        self.save_local()
        return module

    def delete_module(self, semester_id: str, module_id: str) -> Optional[bl.Module]:
        module = bl.delete_module(self.profile, semester_id, module_id)
        self.save_local()
        return module

    def import_modules(self, semester_id: str, modules: Iterable[bl.Module]) -> List[bl.Module]:
        semester = bl.find_semester(self.profile, semester_id)
        if semester is None:
            return []
        added = list(modules)
        semester.modules.extend(added)
        self.save_local()
        return added

    # --- derived values ---

    def summary(self) -> Dict[str, Any]:
        average = bl.weighted_average(self.profile)
        classification = bl.classify(average)
        return {
            "weighted_average": average,
            "weighted_average_rounded": bl.round_1dp_half_up(average),
            "classification": classification.label,
            "tier": classification.tier,
            "total_credits": bl.total_credits(self.profile),
            "graded_credits": bl.graded_credits(self.profile),
            "semesters": [
                {
                    "id": s.id,
                    "name": s.name,
                    "average": bl.semester_average(s),
                    "credits": bl.semester_credits(s),
                }
                for s in self.profile.semesters
                if bl.has_graded_modules(s)
            ],
            "sync_status": self.queue.status.value,
            "pending": self.queue.pending,
            "remote_enabled": self.remote_enabled,
        }
