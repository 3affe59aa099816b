"""
Goal persistence: one document per user holding that user's goal array.
"""

import copy
import json
import logging
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, List

logger = logging.getLogger(__name__)


class GoalStore(ABC):
    """Port the goals API reads and writes through."""

    @abstractmethod
    def load(self, uid: str) -> List[Dict[str, Any]]:
        """Return the user's goals, or an empty list."""

    @abstractmethod
    def save(self, uid: str, goals: List[Dict[str, Any]]) -> bool:
        """Replace the user's goals. Returns False when the write fails."""

    @abstractmethod
    def exists(self, uid: str) -> bool:
        """Whether the user has a goals document at all."""


class InMemoryGoalStore(GoalStore):
    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}

    def load(self, uid: str) -> List[Dict[str, Any]]:
        document = self._documents.get(uid)
        return copy.deepcopy(document["goals"]) if document else []

    def save(self, uid: str, goals: List[Dict[str, Any]]) -> bool:
        self._documents[uid] = {
            "goals": copy.deepcopy(goals),
            "lastUpdated": datetime.now().isoformat()
        }
        return True

    def exists(self, uid: str) -> bool:
        return uid in self._documents


class JsonGoalStore(GoalStore):
    """
    JSON file-backed store.

    Layout: {"users": {uid: {"goals": [...], "lastUpdated": iso}}, "metadata": {...}}
    Writes go through a unique temp file and keep the previous file as a .bak copy.
    One lock serializes every read and read-modify-write within the process.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()

    def _empty(self) -> Dict[str, Any]:
        return {"users": {}, "metadata": {"created_at": datetime.now().isoformat()}}

    def _read(self) -> Dict[str, Any]:
        with self._lock:
            if not os.path.exists(self.path):
                return self._empty()

            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.error(f"JSON decode error in {self.path}: {e}")
                return self._empty()
            except OSError as e:
                logger.error(f"File read error in {self.path}: {e}")
                return self._empty()

        if not isinstance(data, dict):
            logger.warning(f"Invalid goals data format in {self.path}, resetting")
            return self._empty()

        if not isinstance(data.get("users"), dict):
            data["users"] = {}
        if "metadata" not in data:
            data["metadata"] = {}

        return data

    def _write(self, data: Dict[str, Any]) -> bool:
        backup_file = f"{self.path}.bak"
        directory = os.path.dirname(self.path)
        tmp_file = None

        try:
            if directory:
                os.makedirs(directory, exist_ok=True)

            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=directory or ".",
                prefix=f"{os.path.basename(self.path)}.", suffix=".tmp", delete=False
            ) as f:
                tmp_file = f.name
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)

            if os.path.exists(self.path):
                try:
                    shutil.copy2(self.path, backup_file)
                except OSError as e:
                    logger.warning(f"Could not back up {self.path}: {e}")

            os.replace(tmp_file, self.path)
            return True

        except OSError as e:
            logger.error(f"Save error for {self.path}: {e}")
            if tmp_file and os.path.exists(tmp_file):
                try:
                    os.remove(tmp_file)
                except OSError as cleanup_error:
                    logger.warning(f"Could not remove {tmp_file}: {cleanup_error}")
            return False

    def load(self, uid: str) -> List[Dict[str, Any]]:
        document = self._read()["users"].get(uid)
        if not isinstance(document, dict):
            return []
        goals = document.get("goals") or []
        return goals if isinstance(goals, list) else []

    def save(self, uid: str, goals: List[Dict[str, Any]]) -> bool:
        with self._lock:
            data = self._read()
            data["users"][uid] = {
                "goals": goals,
                "lastUpdated": datetime.now().isoformat()
            }
            return self._write(data)

    def exists(self, uid: str) -> bool:
        return uid in self._read()["users"]
