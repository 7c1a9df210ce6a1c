# backend/storage/scratch_store.py
# Per-registration scratch records (one JSON file per RegID)

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import structlog

from core.errors import StorageError
from integrations.models import RegistrationContext


logger = structlog.get_logger(__name__)


class ScratchStore:
    """
    Keyed scratch records bridging session init and payment confirmation

    No locking, last writer wins. Failures never reach the caller:
    `get` degrades to an empty record, `put` to False.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not key:
            raise StorageError("registration id is empty")
        # quote() keeps the file inside root whatever the id contains
        return self.root / f"{quote(key, safe='')}.json"

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot read {path.name}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"{path.name} does not hold an object")
        return data

    def _write(self, key: str, data: Dict[str, Any]) -> None:
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        except OSError as e:
            raise StorageError(f"cannot write {path.name}: {e}")

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            try:
                os.unlink(tmp)
            except OSError:
                logger.warning("scratch_tmp_cleanup_failed", tmp=tmp)
            raise StorageError(f"cannot write {path.name}: {e}")

    def get(self, key: str) -> RegistrationContext:
        """Stored record, or an empty one when nothing usable is there yet"""
        try:
            data = self._read(key)
        except StorageError as e:
            logger.warning("scratch_read_failed", reg_id=key, error=e.message)
            return RegistrationContext()

        if data is None:
            return RegistrationContext()

        try:
            return RegistrationContext.model_validate(data)
        except ValueError as e:
            logger.warning("scratch_record_invalid", reg_id=key, error=str(e))
            return RegistrationContext()

    def put(self, key: str, record: RegistrationContext) -> bool:
        """Overwrite the record under key; False (logged) on failure"""
        try:
            self._write(key, record.to_store())
        except StorageError as e:
            logger.error("scratch_write_failed", reg_id=key, error=e.message)
            return False
        return True
