from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from care_refresh.core.exceptions import PipelineError, ProviderRequestError
from care_refresh.core.metrics import InMemoryPipelineMetricsCollector
from care_refresh.core.models import SourceRecord
from care_refresh.providers.base import BaseSourceAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceBatch:
    records: list[SourceRecord]
    used_fallback: bool = False
    failed_sources: tuple[str, ...] = field(default_factory=tuple)


class PrioritizedSourceChain:
    """Query live adapters in priority order and concatenate their output.

    A failing adapter contributes nothing. When the concatenation is empty
    the fallback adapter's records are returned instead. Without a fallback,
    a chain whose every adapter failed raises ``ProviderRequestError``.
    """

    def __init__(
        self,
        adapters: Sequence[BaseSourceAdapter],
        fallback: BaseSourceAdapter | None = None,
        metrics: InMemoryPipelineMetricsCollector | None = None,
    ) -> None:
        self._adapters = tuple(adapters)
        self._fallback = fallback
        self._metrics = metrics

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(adapter.source_name for adapter in self._adapters)

    async def collect(self, region: str) -> SourceBatch:
        records: list[SourceRecord] = []
        failed: list[str] = []
        last_error: PipelineError | None = None
        for adapter in self._adapters:
            try:
                produced = await adapter.fetch_records(region)
            except PipelineError as exc:
                failed.append(adapter.source_name)
                last_error = exc
                logger.warning(
                    "source_failed",
                    extra={"source": adapter.source_name, "region": region, "error": str(exc)},
                )
                continue
            records.extend(produced)

        if not records and self._fallback is None and last_error is not None and len(failed) == len(self._adapters):
            raise ProviderRequestError(f"all sources failed ({', '.join(failed)}): {last_error}") from last_error
        if records or self._fallback is None:
            return SourceBatch(records=records, failed_sources=tuple(failed))

        logger.info("source_fallback_used", extra={"source": self._fallback.source_name, "region": region})
        if self._metrics:
            self._metrics.increment_fallback(region)
        fallback_records = await self._fallback.fetch_records(region)
        return SourceBatch(records=fallback_records, used_fallback=True, failed_sources=tuple(failed))
