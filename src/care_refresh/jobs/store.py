from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
import re
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

from care_refresh.core.exceptions import PersistenceError, ValidationError
from care_refresh.core.models import CanonicalRecord, DataKind, Facility, Law, NewsUpdate
from care_refresh.core.pipeline import NEWS_RECENCY_DAYS, DatasetStore

logger = logging.getLogger(__name__)

_REGION_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
_DECIMAL_FIELDS = {"latitude", "longitude", "relevance_score"}
_DATETIME_FIELDS = {"effective_date", "last_updated", "published_at", "created_at"}
_RECORD_TYPES: dict[DataKind, type] = {
    DataKind.FACILITIES: Facility,
    DataKind.LAWS: Law,
    DataKind.NEWS: NewsUpdate,
}


def _serialize(record: CanonicalRecord) -> dict[str, Any]:
    payload = asdict(record)
    for key, value in payload.items():
        if isinstance(value, Decimal):
            payload[key] = str(value)
        elif isinstance(value, datetime):
            payload[key] = value.isoformat()
    return payload


def _deserialize(kind: DataKind, payload: dict[str, Any]) -> CanonicalRecord:
    values = dict(payload)
    for key in _DECIMAL_FIELDS & values.keys():
        if values[key] is not None:
            values[key] = Decimal(str(values[key]))
    for key in _DATETIME_FIELDS & values.keys():
        if values[key] is not None:
            values[key] = datetime.fromisoformat(str(values[key]))
    return _RECORD_TYPES[kind](**values)


class JsonlDatasetStore(DatasetStore):
    """One JSONL file per (kind, region), rewritten through a temp file and ``os.replace``.

    Each unit has a sibling ``.lock`` file held with ``flock`` for the whole
    read-modify-write, so writers in other processes (``serve`` and
    ``generate``) are serialized per unit and the last commit wins. Every row
    is serialized before the data file is touched, so a failure leaves the
    previous file in place.
    """

    def __init__(self, output_dir: str, news_recency_days: int = NEWS_RECENCY_DAYS) -> None:
        super().__init__(news_recency_days=news_recency_days)
        self._dir = Path(output_dir)

    def file_path(self, region: str, kind: DataKind) -> Path:
        if not _REGION_PATTERN.match(region):
            raise ValidationError(f"invalid region key: {region!r}")
        return self._dir / kind.value / f"{region}.jsonl"

    async def replace(
        self,
        region: str,
        kind: DataKind,
        records: Sequence[CanonicalRecord],
        now: datetime | None = None,
    ) -> int:
        self.check_batch(kind, records)
        path = self.file_path(region, kind)
        cutoff = self.news_cutoff(now)
        try:
            await asyncio.to_thread(self._replace_locked, path, kind, records, cutoff)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"jsonl replace failed: region={region}, kind={kind.value}") from exc
        logger.info(
            "dataset_replaced",
            extra={"backend": "jsonl", "region": region, "kind": kind.value, "saved_count": len(records)},
        )
        return len(records)

    async def list_records(self, region: str, kind: DataKind) -> list[CanonicalRecord]:
        path = self.file_path(region, kind)
        rows = await asyncio.to_thread(self._read_locked, path)
        return [_deserialize(kind, row) for row in rows]

    def _replace_locked(
        self,
        path: Path,
        kind: DataKind,
        records: Sequence[CanonicalRecord],
        cutoff: datetime,
    ) -> None:
        with self._unit_lock(path, fcntl.LOCK_EX):
            rows = [row for row in self._read_rows(path) if self._keeps(row, kind, cutoff)]
            rows.extend(_serialize(record) for record in records)
            lines = [json.dumps(row, ensure_ascii=True) for row in rows]
            self._write_atomically(path, lines)

    def _read_locked(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        with self._unit_lock(path, fcntl.LOCK_SH):
            return self._read_rows(path)

    @contextmanager
    def _unit_lock(self, path: Path, mode: int) -> Iterator[None]:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path.with_suffix(".lock"), "a", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), mode)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _keeps(self, row: dict[str, Any], kind: DataKind, cutoff: datetime) -> bool:
        if kind is not DataKind.NEWS:
            return False
        published_at = datetime.fromisoformat(row["published_at"])
        if published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)
        return published_at >= cutoff

    def _read_rows(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]

    def _write_atomically(self, path: Path, lines: list[str]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
            os.replace(temp_path, path)
        finally:
            if temp_path.exists():
                temp_path.unlink()
