"""Detector registry keyed by alert type."""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from src.alerts.pipeline import AlertPipeline
from src.core.config import Settings
from src.core.types import AlertType
from src.detectors.base import Clock, Detector
from src.detectors.conversion import ConversionDropDetector
from src.detectors.cpc import CpcJumpDetector
from src.detectors.ctr import CtrDropDetector
from src.detectors.exceptions import UnknownDetectorError
from src.detectors.lp_health import LpHealthDetector
from src.detectors.lp_regression import LpRegressionDetector
from src.detectors.quality_score import QualityScoreDetector
from src.detectors.sources import (
    LandingPageSource,
    MetricSource,
    QualityScoreSource,
    UrlHealthSource,
)
from src.detectors.spend import SpendDropDetector, SpendSpikeDetector

logger = structlog.stdlib.get_logger()


class DetectorRegistry:
    """Ordered set of detectors, at most one per alert type."""

    def __init__(self, detectors: list[Detector] | None = None) -> None:
        self._detectors: dict[AlertType, Detector] = {}
        for detector in detectors or []:
            self.register(detector)

    def register(self, detector: Detector) -> None:
        """Add *detector*, replacing any registered for the same alert type."""
        if detector.alert_type in self._detectors:
            logger.info("detector_replaced", alert_type=detector.alert_type.value)
        self._detectors[detector.alert_type] = detector

    def get(self, alert_type: AlertType | str) -> Detector:
        try:
            return self._detectors[AlertType(alert_type)]
        except (KeyError, ValueError) as exc:
            raise UnknownDetectorError(f"No detector for alert type {alert_type!r}") from exc

    @property
    def types(self) -> list[AlertType]:
        return list(self._detectors)

    def enabled(self) -> list[Detector]:
        return [d for d in self._detectors.values() if d.enabled]

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors.values())

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, alert_type: object) -> bool:
        return alert_type in self._detectors


def build_default_registry(
    settings: Settings,
    pipeline: AlertPipeline,
    metrics: MetricSource,
    quality_scores: QualityScoreSource | None = None,
    landing_pages: LandingPageSource | None = None,
    url_health: UrlHealthSource | None = None,
    clock: Clock | None = None,
) -> DetectorRegistry:
    """Wire every detector whose data sources are available.

    Time-series detectors always register; the quality-score and
    landing-page detectors need their extra sources. Landing-page health
    reads page metrics from *metrics* and status codes from *url_health*.
    """
    registry = DetectorRegistry()
    for cls in (
        SpendSpikeDetector,
        SpendDropDetector,
        CtrDropDetector,
        CpcJumpDetector,
        ConversionDropDetector,
    ):
        registry.register(cls(settings.alert_config(cls.alert_type), metrics, pipeline, clock))

    if quality_scores is not None:
        registry.register(QualityScoreDetector(
            settings.alert_config(AlertType.QUALITY_SCORE), quality_scores, pipeline, clock,
        ))
    if landing_pages is not None and url_health is not None:
        registry.register(LpRegressionDetector(
            settings.alert_config(AlertType.LP_REGRESSION),
            landing_pages,
            url_health,
            pipeline,
            clock,
        ))
    if url_health is not None:
        registry.register(LpHealthDetector(
            settings.alert_config(AlertType.LP_HEALTH),
            metrics,
            pipeline,
            health=url_health,
            clock=clock,
        ))

    logger.debug("detector_registry_built", types=[t.value for t in registry.types])
    return registry
