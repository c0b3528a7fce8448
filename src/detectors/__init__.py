"""Detection module — statistics, data sources, detectors and their registry."""

from src.detectors.base import Detector, SeriesReader
from src.detectors.conversion import ConversionDropDetector
from src.detectors.cpc import CpcJumpDetector
from src.detectors.ctr import CtrDropDetector
from src.detectors.exceptions import (
    DetectionError,
    MetricSourceError,
    UnknownDetectorError,
)
from src.detectors.lp_health import LpHealthDetector
from src.detectors.lp_regression import LpRegressionDetector
from src.detectors.quality_score import QualityScoreDetector
from src.detectors.registry import DetectorRegistry, build_default_registry
from src.detectors.sources import (
    InMemoryLandingPageSource,
    InMemoryMetricSource,
    InMemoryQualityScoreSource,
    InMemoryUrlHealthSource,
    LandingPageSource,
    MetricSource,
    QualityScoreSource,
    UrlHealthSource,
)
from src.detectors.spend import SpendDropDetector, SpendSpikeDetector
from src.detectors.stats import (
    classify_severity,
    compute_baseline,
    compute_current,
    z_score,
)

__all__ = [
    "ConversionDropDetector",
    "CpcJumpDetector",
    "CtrDropDetector",
    "DetectionError",
    "Detector",
    "DetectorRegistry",
    "InMemoryLandingPageSource",
    "InMemoryMetricSource",
    "InMemoryQualityScoreSource",
    "InMemoryUrlHealthSource",
    "LandingPageSource",
    "LpHealthDetector",
    "LpRegressionDetector",
    "MetricSource",
    "MetricSourceError",
    "QualityScoreDetector",
    "QualityScoreSource",
    "SeriesReader",
    "SpendDropDetector",
    "SpendSpikeDetector",
    "UnknownDetectorError",
    "UrlHealthSource",
    "build_default_registry",
    "classify_severity",
    "compute_baseline",
    "compute_current",
    "z_score",
]
