"""Collaborator contracts that supply raw data to detectors and guardrails.

Concrete warehouse connectors live outside this package. The in-memory
implementations back tests, replays and embedding in other services.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable, Mapping
from datetime import date, timedelta

from src.core.types import Entity, KeywordQuality, LandingPage, UrlHealth


class MetricSource(abc.ABC):
    """Time-series values per entity, one per reporting period."""

    @abc.abstractmethod
    async def fetch_metrics(
        self,
        entity: Entity,
        metric: str,
        start: date,
        end: date,
    ) -> list[float]:
        """Return every available value of *metric* between *start* and *end* (inclusive)."""


class QualityScoreSource(abc.ABC):
    """Latest keyword quality-score rows for an entity."""

    @abc.abstractmethod
    async def fetch_quality_scores(self, entity: Entity) -> list[KeywordQuality]:
        """Return quality-score rows, highest impressions first."""


class LandingPageSource(abc.ABC):
    """Landing pages currently served by an entity's ads."""

    @abc.abstractmethod
    async def fetch_landing_pages(self, entity: Entity) -> list[LandingPage]:
        """Return the landing pages for *entity*."""


class UrlHealthSource(abc.ABC):
    """Crawl health of landing pages."""

    @abc.abstractmethod
    async def fetch_url_health(self, url: str) -> UrlHealth | None:
        """Return the latest health snapshot, or None if never checked."""


# ── In-memory implementations ───────────────────────────────────


class InMemoryMetricSource(MetricSource):
    """Series keyed by ``(entity.id, metric)`` → ``{date: value}``."""

    def __init__(self) -> None:
        self._series: dict[tuple[str, str], dict[date, float]] = {}

    def set(self, entity_id: str, metric: str, values: Mapping[date, float]) -> None:
        self._series[(entity_id, metric)] = dict(values)

    def set_daily(
        self,
        entity_id: str,
        metric: str,
        end: date,
        values: Iterable[float],
    ) -> None:
        """Store *values* as consecutive days, the last one falling on *end*."""
        items = list(values)
        start = end - timedelta(days=len(items) - 1)
        self.set(
            entity_id,
            metric,
            {start + timedelta(days=i): v for i, v in enumerate(items)},
        )

    async def fetch_metrics(
        self,
        entity: Entity,
        metric: str,
        start: date,
        end: date,
    ) -> list[float]:
        series = self._series.get((entity.id, metric), {})
        return [v for d, v in sorted(series.items()) if start <= d <= end]


class InMemoryQualityScoreSource(QualityScoreSource):
    def __init__(self, rows: Mapping[str, list[KeywordQuality]] | None = None) -> None:
        self._rows: dict[str, list[KeywordQuality]] = dict(rows or {})

    def set(self, entity_id: str, rows: list[KeywordQuality]) -> None:
        self._rows[entity_id] = list(rows)

    async def fetch_quality_scores(self, entity: Entity) -> list[KeywordQuality]:
        rows = self._rows.get(entity.id, [])
        return sorted(rows, key=lambda r: r.impressions, reverse=True)


class InMemoryLandingPageSource(LandingPageSource):
    def __init__(self, pages: Mapping[str, list[LandingPage]] | None = None) -> None:
        self._pages: dict[str, list[LandingPage]] = dict(pages or {})

    def set(self, entity_id: str, pages: list[LandingPage]) -> None:
        self._pages[entity_id] = list(pages)

    async def fetch_landing_pages(self, entity: Entity) -> list[LandingPage]:
        if entity.url and entity.id not in self._pages:
            return [LandingPage(url=entity.url, product=entity.product)]
        return list(self._pages.get(entity.id, []))


class InMemoryUrlHealthSource(UrlHealthSource):
    def __init__(self, snapshots: Iterable[UrlHealth] = ()) -> None:
        self._health: dict[str, UrlHealth] = {h.url: h for h in snapshots}

    def set(self, health: UrlHealth) -> None:
        self._health[health.url] = health

    async def fetch_url_health(self, url: str) -> UrlHealth | None:
        return self._health.get(url)
