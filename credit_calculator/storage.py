import json
import os
import re
import uuid
from pathlib import Path
from typing import Any, Optional

import structlog

from credit_calculator.backend_logic import Profile, profile_from_dict, profile_to_dict

logger = structlog.get_logger(__name__)

PROFILE_KEY = "ukCreditCalculator"
USER_ID_KEY = "ukCreditCalculator_userId"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class LocalStore:
    """Device-local key/value store: one JSON file per key under `root`."""

    def __init__(self, root):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / f"{_UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def set(self, key: str, value: Any) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(value), encoding="utf-8")
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class ProfileStore:
    """Whole-document persistence of the Profile. Best effort: never raises."""

    def __init__(self, store: LocalStore, key: str = PROFILE_KEY):
        self.store = store
        self.key = key

    def save(self, profile: Profile) -> bool:
        try:
            self.store.set(self.key, profile_to_dict(profile))
        except (OSError, TypeError, ValueError) as e:
            logger.error("profile_save_failed", key=self.key, error=str(e))
            return False
        return True

    def load(self) -> Optional[Profile]:
        try:
            doc = self.store.get(self.key)
        except (OSError, ValueError) as e:
            logger.warning("profile_load_failed", key=self.key, error=str(e))
            return None
        if doc is None:
            return None
        try:
            return profile_from_dict(doc)
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning("profile_document_malformed", key=self.key, error=str(e))
            return None

    def clear(self) -> None:
        try:
            self.store.remove(self.key)
        except OSError as e:
            logger.error("profile_clear_failed", key=self.key, error=str(e))


def get_or_create_user_id(store: LocalStore) -> str:
    """Stable per-device identifier, generated once and reused across sessions."""
    try:
        existing = store.get(USER_ID_KEY)
    except (OSError, ValueError) as e:
        logger.warning("user_id_load_failed", error=str(e))
        existing = None
    if isinstance(existing, str) and existing:
        return existing

    user_id = uuid.uuid4().hex
    try:
        store.set(USER_ID_KEY, user_id)
    except OSError as e:
        logger.error("user_id_save_failed", error=str(e))
    logger.info("user_id_created", user_id=user_id)
    return user_id
