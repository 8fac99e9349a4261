"""
Device-local record storage.

One JSON document per device:

    {
      "records": {"user:<uid>:<kind>:<key>": {...}},
      "indexes": {"user:<uid>:<index_name>": ["<key>", ...]},
      "meta":    {"migration_done": "<iso timestamp>"}
    }

Keys mirror the server's Redis layout so the same record has the same address in
both places. Writes go to a temp file and are swapped in with os.replace.

A store constructed without a path represents an execution context with no
device storage: every operation raises LocalStorageUnavailable.
"""
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError

from core.config import settings
from core.errors import LocalStorageUnavailable
from schemas import ImportBundle, RecordKind, index_key, parse_record, record_key

logger = logging.getLogger(__name__)

MIGRATION_MARKER = "migration_done"


def _empty_document() -> Dict[str, dict]:
    return {"records": {}, "indexes": {}, "meta": {}}


class LocalStore:
    def __init__(self, path: Optional[Path]):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "LocalStore":
        return cls(Path(settings.LOCAL_STORE_PATH) if settings.LOCAL_STORE_PATH else None)

    @property
    def available(self) -> bool:
        return self.path is not None

    def _require_path(self) -> Path:
        if self.path is None:
            raise LocalStorageUnavailable("No device storage in this context")
        return self.path

    def _load(self) -> Dict[str, dict]:
        path = self._require_path()
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return _empty_document()
        except (OSError, json.JSONDecodeError) as e:
            raise LocalStorageUnavailable(f"Could not read {path}: {e}") from e

        for section in ("records", "indexes", "meta"):
            document.setdefault(section, {})
        return document

    def _save(self, document: Dict[str, dict]) -> None:
        path = self._require_path()
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise LocalStorageUnavailable(f"Could not write {path}: {e}") from e

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def put(self, user_id: str, kind: RecordKind, key: str, record: BaseModel) -> None:
        with self._lock:
            document = self._load()
            # Assessments keep only caller-set fields; uploads merge into the server copy
            document["records"][record_key(user_id, kind, key)] = record.model_dump(
                mode="json", exclude_unset=kind is RecordKind.ASSESSMENT
            )
            index = document["indexes"].setdefault(index_key(user_id, kind), [])
            if key not in index:
                index.append(key)
            self._save(document)

    def get(self, user_id: str, kind: RecordKind, key: str) -> Optional[BaseModel]:
        with self._lock:
            document = self._load()
        return self._decode(kind, document["records"].get(record_key(user_id, kind, key)))

    def list(self, user_id: str, kind: RecordKind) -> List[BaseModel]:
        """Records in insertion order; index entries without a record are skipped."""
        with self._lock:
            document = self._load()
        records = []
        for key in document["indexes"].get(index_key(user_id, kind), []):
            record = self._decode(kind, document["records"].get(record_key(user_id, kind, key)))
            if record is not None:
                records.append(record)
        return records

    def delete(self, user_id: str, kind: RecordKind, key: str) -> None:
        with self._lock:
            document = self._load()
            document["records"].pop(record_key(user_id, kind, key), None)
            index = document["indexes"].get(index_key(user_id, kind), [])
            if key in index:
                index.remove(key)
            self._save(document)

    def clear(self, user_id: str) -> int:
        """Drop every record and index of one user. Returns the number of keys removed."""
        prefix = f"user:{user_id}:"
        with self._lock:
            document = self._load()
            removed = 0
            for section in ("records", "indexes"):
                doomed = [k for k in document[section] if k.startswith(prefix)]
                for k in doomed:
                    del document[section][k]
                removed += len(doomed)
            self._save(document)
        return removed

    def dump_bundle(self, user_id: str) -> ImportBundle:
        return ImportBundle(
            assessments=self.list(user_id, RecordKind.ASSESSMENT),
            fatigue_scales=self.list(user_id, RecordKind.FATIGUE_SCALE),
            exercise_sessions=self.list(user_id, RecordKind.EXERCISE_SESSION),
        )

    # -------------------------------------------------------------------------
    # Migration marker (per device)
    # -------------------------------------------------------------------------

    def migration_done(self) -> bool:
        with self._lock:
            return MIGRATION_MARKER in self._load()["meta"]

    def mark_migration_done(self) -> None:
        with self._lock:
            document = self._load()
            document["meta"][MIGRATION_MARKER] = datetime.now(timezone.utc).isoformat()
            self._save(document)

    @staticmethod
    def _decode(kind: RecordKind, data) -> Optional[BaseModel]:
        if data is None:
            return None
        try:
            return parse_record(kind, data)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable local {kind.value} record: {e.error_count()} validation error(s)")
            return None
