"""
Local JSON file persistence for the Premium service.
"""

import asyncio
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import pydantic

from shared.errors import StorageUnavailableError
from shared.logging import get_logger
from ..models import Entitlement, PremiumModel, RedemptionCode
from .base import StorageBackend


PREMIUMS_FILE = "premiums.json"
CODES_FILE = "premiumsCodes.json"

ModelT = TypeVar("ModelT", bound=PremiumModel)


class LocalFileStorage(StorageBackend):
    """
    Stores each collection as a JSON list in ``data_dir``.

    Every save reads the whole list, applies the change and rewrites the
    file atomically through a temporary file and ``os.replace``.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.premiums_path = self.data_dir / PREMIUMS_FILE
        self.codes_path = self.data_dir / CODES_FILE
        self.logger = get_logger("premium.persistence.local_file")
        self._locks: Dict[Path, asyncio.Lock] = {}

    async def start(self):
        """Create the data directory."""
        try:
            await asyncio.to_thread(self.data_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error("Failed to prepare data directory", data_dir=str(self.data_dir), error=str(e))
            raise StorageUnavailableError("start", str(e)) from e
        self.logger.info("Local file storage started", data_dir=str(self.data_dir))

    async def health_check(self) -> bool:
        return os.access(self.data_dir, os.W_OK)

    async def find_entitlement(self, entity_id: str) -> Optional[Entitlement]:
        records = await self._read(self.premiums_path, "find_entitlement")
        for record in records:
            if record.get("entityId") == entity_id:
                return self._load(Entitlement, record, self.premiums_path, "find_entitlement")
        return None

    async def save_entitlement(self, entitlement: Entitlement) -> None:
        async with self._lock(self.premiums_path):
            records = await self._read(self.premiums_path, "save_entitlement")
            document = entitlement.to_document()
            for index, record in enumerate(records):
                if record.get("entityId") == entitlement.entity_id:
                    records[index] = document
                    break
            else:
                records.append(document)
            await self._write(self.premiums_path, records, "save_entitlement")

    async def find_code(self, code: str) -> Optional[RedemptionCode]:
        records = await self._read(self.codes_path, "find_code")
        for record in records:
            if record.get("code") == code:
                return self._load(RedemptionCode, record, self.codes_path, "find_code")
        return None

    async def save_code(self, code: RedemptionCode) -> None:
        async with self._lock(self.codes_path):
            records = await self._read(self.codes_path, "save_code")
            document = code.to_document()
            for index, record in enumerate(records):
                if record.get("code") == code.code:
                    records[index] = {**record, **document}
                    break
            else:
                records.append(document)
            await self._write(self.codes_path, records, "save_code")

    async def find_expired_entitlements(self, now: datetime) -> List[Entitlement]:
        records = await self._read(self.premiums_path, "find_expired_entitlements")
        entitlements = [
            self._load(Entitlement, record, self.premiums_path, "find_expired_entitlements") for record in records
        ]
        return [
            e for e in entitlements
            if e.is_premium and e.expires_at is not None and e.expires_at < now
        ]

    async def list_all_entitlements(self) -> List[Entitlement]:
        records = await self._read(self.premiums_path, "list_all_entitlements")
        return [self._load(Entitlement, record, self.premiums_path, "list_all_entitlements") for record in records]

    async def list_all_codes(self) -> List[RedemptionCode]:
        records = await self._read(self.codes_path, "list_all_codes")
        return [self._load(RedemptionCode, record, self.codes_path, "list_all_codes") for record in records]

    def _lock(self, path: Path) -> asyncio.Lock:
        if path not in self._locks:
            self._locks[path] = asyncio.Lock()
        return self._locks[path]

    async def _read(self, path: Path, operation: str) -> List[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(_read_json_list, path)
        except (OSError, ValueError) as e:
            self.logger.error("Error reading data file", path=str(path), operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e), {"path": str(path)}) from e

    def _load(self, model: Type[ModelT], record: Dict[str, Any], path: Path, operation: str) -> ModelT:
        try:
            return model.from_document(record)
        except pydantic.ValidationError as e:
            self.logger.error("Malformed record in data file", path=str(path), operation=operation, error=str(e))
            raise StorageUnavailableError(operation, f"malformed record: {e}", {"path": str(path)}) from e

    async def _write(self, path: Path, records: List[Dict[str, Any]], operation: str) -> None:
        try:
            await asyncio.to_thread(_write_json_atomic, path, records)
        except OSError as e:
            self.logger.error("Error writing data file", path=str(path), operation=operation, error=str(e))
            raise StorageUnavailableError(operation, str(e), {"path": str(path)}) from e
        self.logger.debug("Data file written", path=str(path), records=len(records))


def _read_json_list(path: Path) -> List[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return []
    if not isinstance(data, list):
        raise ValueError(f"{path.name} does not contain a JSON list")
    if not all(isinstance(record, dict) for record in data):
        raise ValueError(f"{path.name} contains a non-object record")
    return data


def _write_json_atomic(path: Path, records: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(records, fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
