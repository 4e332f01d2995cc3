"""
Profile store: JSON persistence for the profile set and the active profile id.

Document shape:
    {
      "profiles": [ {...Profile.to_dict()...}, ... ],
      "active_profile_id": "<id>" | null
    }

load() never raises: a missing, unreadable or corrupt file yields an empty
document (the manager then falls back to a default profile). save() writes
atomically through a temp file and logs I/O errors instead of raising.
"""

import json
import logging
import os
import tempfile
import threading
from typing import List, Optional, Tuple

import config
from utils.profile_models import Profile

logger = logging.getLogger(__name__)


class ProfileStore:

    def __init__(self, path: Optional[str] = None):
        self.path = path or config.PROFILE_STORE_PATH
        self._lock = threading.Lock()

    def load(self) -> Tuple[List[Profile], Optional[str]]:
        """Return (profiles, active_profile_id). Malformed entries are dropped."""
        with self._lock:
            if not os.path.exists(self.path):
                return [], None
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Could not read profile store %s: %s", self.path, e)
                return [], None

        if not isinstance(data, dict):
            logger.warning("Profile store %s has unexpected shape; ignoring", self.path)
            return [], None
        profiles = [p for p in (Profile.from_dict(x) for x in data.get("profiles") or []) if p is not None]
        active_id = data.get("active_profile_id")
        return profiles, (str(active_id) if active_id else None)

    def save(self, profiles: List[Profile], active_profile_id: Optional[str]) -> bool:
        doc = {
            "profiles": [p.to_dict() for p in profiles],
            "active_profile_id": active_profile_id,
        }
        with self._lock:
            directory = os.path.dirname(os.path.abspath(self.path))
            try:
                os.makedirs(directory, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(prefix=".profiles-", suffix=".json", dir=directory)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(doc, f, indent=2)
                os.replace(tmp_path, self.path)
            except OSError as e:
                logger.error("Could not save profile store %s: %s", self.path, e)
                return False
        return True
