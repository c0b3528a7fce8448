"""Tests for the concrete detectors: volume gates, triggers, noise control, errors."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

from src.alerts.identity import alert_id
from src.alerts.pipeline import AlertPipeline
from src.alerts.store import InMemoryAlertStore
from src.core.config import (
    AlertConfig,
    AlertThresholds,
    NoiseControlConfig,
    PageHealthLimits,
    SeverityBands,
)
from src.core.types import (
    AlertStatus,
    AlertType,
    Entity,
    EntityType,
    KeywordQuality,
    LandingPage,
    Severity,
    TimeWindow,
    UrlHealth,
)
from src.detectors.conversion import ConversionDropDetector
from src.detectors.cpc import CpcJumpDetector
from src.detectors.ctr import CtrDropDetector
from src.detectors.lp_health import (
    HealthIssueType,
    LpHealthDetector,
    PageVitals,
    critical_issues,
    degradation_issues,
)
from src.detectors.lp_regression import LpRegressionDetector, PageIssueType, page_issues
from src.detectors.quality_score import QualityScoreDetector, find_issues
from src.detectors.sources import (
    InMemoryLandingPageSource,
    InMemoryMetricSource,
    InMemoryQualityScoreSource,
    InMemoryUrlHealthSource,
    MetricSource,
)
from src.detectors.spend import ZERO_BASELINE_RATIO, SpendDropDetector, SpendSpikeDetector

# ── Helpers ─────────────────────────────────────────────────────

_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)
_TODAY = _NOW.date()
_BANDS = SeverityBands(critical=0.5, high=0.3, medium=0.2)


class _Clock:
    def __init__(self, now: datetime = _NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class _FailingSource(MetricSource):
    async def fetch_metrics(
        self,
        entity: Entity,
        metric: str,
        start: date,
        end: date,
    ) -> list[float]:
        raise RuntimeError("warehouse down")


def _cfg(alert_type: AlertType, checks: int = 1, **thresholds: object) -> AlertConfig:
    return AlertConfig(
        type=alert_type,
        thresholds=AlertThresholds(**thresholds),  # type: ignore[arg-type]
        noise_control=NoiseControlConfig(consecutive_checks=checks),
    )


def _keyword() -> Entity:
    return Entity(
        id="kw1",
        type=EntityType.KEYWORD,
        product="shoes",
        market="us",
        campaign="c1",
        ad_group="ag1",
        keyword="red shoes",
    )


def _series(source: InMemoryMetricSource, metric: str, baseline: float, current: float) -> None:
    """14 baseline days then 3 current days ending today."""
    source.set_daily("kw1", metric, _TODAY, [baseline] * 14 + [current] * 3)


def _pipeline(clock: _Clock) -> AlertPipeline:
    return AlertPipeline(InMemoryAlertStore(clock=clock), clock=clock)


# ── CPC jump ────────────────────────────────────────────────────


class TestCpcJump:
    def _detector(
        self,
        source: MetricSource,
        clock: _Clock,
        pipeline: AlertPipeline | None = None,
        checks: int = 1,
    ) -> CpcJumpDetector:
        cfg = _cfg(
            AlertType.CPC_JUMP,
            checks=checks,
            change_factor=1.5,
            min_volume=50,
            severity_bands=_BANDS,
        )
        return CpcJumpDetector(cfg, source, pipeline or _pipeline(clock), clock)

    async def test_triggers(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 2.0)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, clock).detect(_keyword())

        assert result.triggered
        alert = result.alert
        assert alert is not None
        assert alert.id == alert_id(AlertType.CPC_JUMP, _keyword())
        assert alert.type == AlertType.CPC_JUMP
        assert alert.severity == Severity.CRITICAL
        assert alert.playbook == "pb_cpc_jump"
        assert alert.metrics.baseline.mean == 1.0
        assert alert.metrics.current.value == 2.0
        assert alert.metrics.change_percentage == 100.0
        assert alert.metrics.additional["clicks"] == 60
        assert alert.metrics.additional["cost_impact"] == 60.0
        assert "CPC increased 100.0%" in alert.why
        assert [a.action for a in alert.suggested_actions][0] == "identify_waste_ngrams"

    async def test_min_volume_gate(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 50.0)
        source.set_daily("kw1", "clicks", _TODAY, [5, 3, 2])

        result = await self._detector(source, clock).detect(_keyword())

        assert not result.triggered
        assert result.alert is None
        assert "Insufficient clicks" in result.reason
        assert "10" in result.reason

    async def test_min_volume_gate_skips_noise_control(self) -> None:
        clock = _Clock()
        pipeline = _pipeline(clock)
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 50.0)
        source.set_daily("kw1", "clicks", _TODAY, [1, 1, 1])

        await self._detector(source, clock, pipeline).detect(_keyword())

        assert await pipeline.store.get_state(alert_id(AlertType.CPC_JUMP, _keyword())) is None

    async def test_below_factor(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 1.2)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, clock).detect(_keyword())

        assert not result.triggered
        assert "below threshold" in result.reason

    async def test_source_error_becomes_reason(self) -> None:
        result = await self._detector(_FailingSource(), _Clock()).detect(_keyword())
        assert not result.triggered
        assert result.reason.startswith("Detection error")
        assert "warehouse down" in result.reason

    async def test_consecutive_debounce(self) -> None:
        clock = _Clock()
        pipeline = _pipeline(clock)
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 2.0)
        _series(source, "clicks", 20, 20)
        detector = self._detector(source, clock, pipeline, checks=3)

        first = await detector.detect(_keyword())
        clock.advance(hours=1)
        second = await detector.detect(_keyword())
        clock.advance(hours=1)
        third = await detector.detect(_keyword())

        assert not first.triggered
        assert first.reason.startswith("Noise control")
        assert not second.triggered
        assert third.triggered
        state = await pipeline.store.get_state(alert_id(AlertType.CPC_JUMP, _keyword()))
        assert state is not None
        assert state.consecutive_occurrences == 3
        assert third.alert is not None
        assert third.alert.detection.consecutive_occurrences == 3

    async def test_repeat_detection_updates_single_row(self) -> None:
        clock = _Clock()
        pipeline = _pipeline(clock)
        source = InMemoryMetricSource()
        _series(source, "cpc", 1.0, 2.0)
        _series(source, "clicks", 20, 20)
        detector = self._detector(source, clock, pipeline)

        a = await detector.detect(_keyword())
        b = await detector.detect(_keyword())

        assert a.alert is not None and b.alert is not None
        assert a.alert.id == b.alert.id
        states = await pipeline.store.list_states()
        assert len(states) == 1
        assert states[0].consecutive_occurrences == 2

    async def test_custom_window(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        source.set_daily("kw1", "cpc", _TODAY, [1.0] * 7 + [3.0])
        source.set_daily("kw1", "clicks", _TODAY, [60.0] * 8)

        window = TimeWindow(baseline_days=7, current_days=1)
        result = await self._detector(source, clock).detect(_keyword(), window)

        assert result.triggered
        assert result.alert is not None
        assert result.alert.window == window
        assert result.alert.metrics.current.count == 1
        assert result.alert.metrics.baseline.count == 7


# ── Spend ───────────────────────────────────────────────────────


class TestSpendSpike:
    def _detector(self, source: MetricSource, clock: _Clock) -> SpendSpikeDetector:
        cfg = _cfg(
            AlertType.SPEND_SPIKE,
            change_factor=2.0,
            min_absolute_increase=50,
            min_volume=30,
            severity_bands=_BANDS,
        )
        return SpendSpikeDetector(cfg, source, _pipeline(clock), clock)

    async def test_factor_trigger(self) -> None:
        source = InMemoryMetricSource()
        _series(source, "spend", 20.0, 45.0)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, _Clock()).detect(_keyword())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.metrics.additional["change_dollar"] == 25.0

    async def test_absolute_trigger(self) -> None:
        source = InMemoryMetricSource()
        _series(source, "spend", 100.0, 160.0)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, _Clock()).detect(_keyword())

        assert result.triggered

    async def test_below_both_thresholds(self) -> None:
        source = InMemoryMetricSource()
        _series(source, "spend", 100.0, 140.0)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, _Clock()).detect(_keyword())

        assert not result.triggered
        assert "Spend ratio 1.40" in result.reason

    async def test_zero_baseline(self) -> None:
        source = InMemoryMetricSource()
        source.set_daily("kw1", "spend", _TODAY, [60.0] * 3)
        _series(source, "clicks", 20, 20)

        result = await self._detector(source, _Clock()).detect(_keyword())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.severity == Severity.CRITICAL
        assert f"{(ZERO_BASELINE_RATIO - 1) * 100:.1f}%" in result.alert.why


class TestSpendDrop:
    async def test_triggers_on_drop(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "spend", 100.0, 30.0)
        _series(source, "impressions", 500, 500)
        cfg = _cfg(AlertType.SPEND_DROP, change_factor=0.5, min_volume=1000)

        result = await SpendDropDetector(cfg, source, _pipeline(clock), clock).detect(_keyword())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.suggested_actions[0].action == "check_budget_limits"

    async def test_insufficient_impressions(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "spend", 100.0, 30.0)
        _series(source, "impressions", 10, 10)
        cfg = _cfg(AlertType.SPEND_DROP, change_factor=0.5, min_volume=1000)

        result = await SpendDropDetector(cfg, source, _pipeline(clock), clock).detect(_keyword())

        assert not result.triggered
        assert result.reason.startswith("Insufficient impressions")


# ── CTR / conversion ────────────────────────────────────────────


class TestCtrDrop:
    async def test_triggers(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "ctr", 0.05, 0.02)
        _series(source, "impressions", 500, 500)
        cfg = _cfg(AlertType.CTR_DROP, change_factor=0.7, min_volume=1000, severity_bands=_BANDS)

        result = await CtrDropDetector(cfg, source, _pipeline(clock), clock).detect(_keyword())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.severity == Severity.CRITICAL
        assert "CTR fell 60.0%" in result.alert.why

    async def test_steady_ctr(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "ctr", 0.05, 0.049)
        _series(source, "impressions", 500, 500)
        cfg = _cfg(AlertType.CTR_DROP, change_factor=0.7, min_volume=1000)

        result = await CtrDropDetector(cfg, source, _pipeline(clock), clock).detect(_keyword())

        assert not result.triggered
        assert "above threshold" in result.reason


class TestConversionDrop:
    def _cfg(self) -> AlertConfig:
        return _cfg(AlertType.CONVERSION_DROP, change_factor=0.6, min_volume=100)

    async def test_url_entity_gets_page_actions(self) -> None:
        clock = _Clock()
        entity = Entity(id="u1", type=EntityType.URL, product="shoes", url="https://x.test/a")
        source = InMemoryMetricSource()
        source.set_daily("u1", "conversion_rate", _TODAY, [0.1] * 14 + [0.02] * 3)
        source.set_daily("u1", "clicks", _TODAY, [50.0] * 17)

        detector = ConversionDropDetector(self._cfg(), source, _pipeline(clock), clock)
        result = await detector.detect(entity)

        assert result.triggered
        assert result.alert is not None
        assert result.alert.suggested_actions[0].action == "check_page_health"
        assert result.alert.metrics.additional["absolute_conversions"] == 3

    async def test_keyword_entity_gets_search_term_actions(self) -> None:
        clock = _Clock()
        source = InMemoryMetricSource()
        _series(source, "conversion_rate", 0.1, 0.02)
        _series(source, "clicks", 50, 50)

        detector = ConversionDropDetector(self._cfg(), source, _pipeline(clock), clock)
        result = await detector.detect(_keyword())

        assert result.alert is not None
        assert result.alert.suggested_actions[0].action == "analyze_search_terms"


# ── Quality score ───────────────────────────────────────────────


def _qs_rows() -> list[KeywordQuality]:
    return [
        KeywordQuality(
            keyword="cheap shoes",
            quality_score=3,
            ad_relevance="Below average",
            impressions=500,
            cost=80.0,
        ),
        KeywordQuality(keyword="red shoes", quality_score=8, impressions=900),
        KeywordQuality(keyword="tiny shoes", quality_score=2, impressions=50),
        KeywordQuality(
            keyword="blue shoes",
            quality_score=4,
            expected_ctr="Below average",
            landing_page_experience="Below average",
            impressions=300,
            cost=20.0,
        ),
    ]


class TestQualityScore:
    def _detector(self, source: InMemoryQualityScoreSource, clock: _Clock) -> QualityScoreDetector:
        cfg = _cfg(
            AlertType.QUALITY_SCORE,
            score_threshold=5,
            min_volume=100,
            severity_bands=SeverityBands(critical=3, high=4, medium=5),
        )
        return QualityScoreDetector(cfg, source, _pipeline(clock), clock)

    def test_find_issues(self) -> None:
        issues = find_issues(_qs_rows(), threshold=5, min_impressions=100)
        assert [i.keyword for i in issues] == ["cheap shoes", "blue shoes"]
        assert issues[0].component_issues == ["ad_relevance"]
        assert issues[1].component_issues == ["expected_ctr", "landing_page_experience"]

    async def test_triggers_on_worst_score(self) -> None:
        source = InMemoryQualityScoreSource({"kw1": _qs_rows()})

        result = await self._detector(source, _Clock()).detect(_keyword())

        assert result.triggered
        alert = result.alert
        assert alert is not None
        assert alert.severity == Severity.CRITICAL
        assert alert.id == alert_id(AlertType.QUALITY_SCORE, _keyword())
        assert alert.metrics.additional["worst_score"] == 3
        assert alert.metrics.additional["affected_keywords"] == 2
        assert alert.metrics.additional["total_cost"] == 100.0
        actions = [a.action for a in alert.suggested_actions]
        assert actions[:3] == [
            "improve_ad_relevance",
            "improve_expected_ctr",
            "improve_landing_page_experience",
        ]
        assert alert.suggested_actions[-1].params["affected_keywords"] == ["cheap shoes"]

    async def test_no_data(self) -> None:
        result = await self._detector(InMemoryQualityScoreSource(), _Clock()).detect(_keyword())
        assert not result.triggered
        assert result.reason == "No quality score data available"

    async def test_all_above_threshold(self) -> None:
        source = InMemoryQualityScoreSource({
            "kw1": [KeywordQuality(keyword="a", quality_score=7, impressions=1000)],
        })
        result = await self._detector(source, _Clock()).detect(_keyword())
        assert not result.triggered
        assert result.reason == "All quality scores above threshold"


# ── Landing page regression ─────────────────────────────────────


class TestPageIssues:
    def test_missing_health(self) -> None:
        issues = page_issues(LandingPage(url="https://x.test/a"), None, max_redirects=1)
        assert [i.type for i in issues] == [PageIssueType.NO_HEALTH_DATA]

    def test_multiple_issues(self) -> None:
        health = UrlHealth(
            url="https://x.test/a",
            status_code=503,
            is_noindex=True,
            canonical_ok=False,
            redirect_chain=3,
        )
        issues = page_issues(LandingPage(url="https://x.test/a"), health, max_redirects=1)
        assert {i.type for i in issues} == {
            PageIssueType.STATUS_5XX,
            PageIssueType.NOINDEX,
            PageIssueType.CANONICAL,
            PageIssueType.REDIRECT_CHAIN,
        }

    def test_healthy(self) -> None:
        health = UrlHealth(url="https://x.test/a", redirect_chain=1)
        assert page_issues(LandingPage(url="https://x.test/a"), health, max_redirects=1) == []


class TestLpRegression:
    def _entity(self) -> Entity:
        return Entity(id="u1", type=EntityType.URL, product="shoes", url="https://x.test/a")

    def _detector(self, health: InMemoryUrlHealthSource, clock: _Clock) -> LpRegressionDetector:
        cfg = _cfg(AlertType.LP_REGRESSION)
        return LpRegressionDetector(
            cfg, InMemoryLandingPageSource(), health, _pipeline(clock), clock,
        )

    async def test_broken_page_is_critical(self) -> None:
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/a", status_code=404)])

        result = await self._detector(health, _Clock()).detect(self._entity())

        assert result.triggered
        alert = result.alert
        assert alert is not None
        assert alert.severity == Severity.CRITICAL
        assert alert.metrics.additional["affected_urls"] == ["https://x.test/a"]
        assert alert.metrics.additional["issues"][0]["type"] == "status_404"
        assert alert.suggested_actions[0].action == "block_applies"
        assert "fix_server_errors" in [a.action for a in alert.suggested_actions]

    async def test_missing_health_data_triggers(self) -> None:
        result = await self._detector(InMemoryUrlHealthSource(), _Clock()).detect(self._entity())
        assert result.triggered
        assert result.alert is not None
        assert result.alert.metrics.additional["issues"][0]["type"] == "no_health_data"

    async def test_healthy_page(self) -> None:
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/a")])
        result = await self._detector(health, _Clock()).detect(self._entity())
        assert not result.triggered
        assert result.reason == "All landing pages healthy"

    async def test_no_pages(self) -> None:
        entity = Entity(id="c1", type=EntityType.CAMPAIGN, product="shoes")
        result = await self._detector(InMemoryUrlHealthSource(), _Clock()).detect(entity)
        assert not result.triggered
        assert result.reason == "No landing pages for entity"

    async def test_reopens_closed_alert(self) -> None:
        clock = _Clock()
        pipeline = _pipeline(clock)
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/a", status_code=500)])
        detector = LpRegressionDetector(
            _cfg(AlertType.LP_REGRESSION), InMemoryLandingPageSource(), health, pipeline, clock,
        )
        aid = alert_id(AlertType.LP_REGRESSION, self._entity())

        await detector.detect(self._entity())
        await pipeline.store.upsert_state(aid, {"status": AlertStatus.CLOSED})
        clock.advance(hours=2)
        result = await detector.detect(self._entity())

        assert result.triggered
        state = await pipeline.store.get_state(aid)
        assert state is not None
        assert state.status == AlertStatus.OPEN


# ── Landing page health ─────────────────────────────────────────


class TestHealthIssues:
    def test_critical_limits(self) -> None:
        vitals = PageVitals(
            response_time_ms=6000, error_rate=0.2, bounce_rate=0.9, status_code=503,
        )
        issues = critical_issues(vitals, PageHealthLimits())
        assert [i.type for i in issues] == [
            HealthIssueType.SLOW_RESPONSE,
            HealthIssueType.HIGH_ERROR_RATE,
            HealthIssueType.CRITICAL_STATUS,
            HealthIssueType.HIGH_BOUNCE_RATE,
        ]
        assert all(i.critical for i in issues)

    def test_missing_metrics_never_critical(self) -> None:
        assert critical_issues(PageVitals(status_code=404), PageHealthLimits()) == []

    def test_error_rate_floor(self) -> None:
        issues = degradation_issues(
            PageVitals(error_rate=0.008), PageVitals(error_rate=0.001), PageHealthLimits(),
        )
        assert issues == []

    def test_zero_baseline_response_skipped(self) -> None:
        issues = degradation_issues(
            PageVitals(response_time_ms=900), PageVitals(response_time_ms=0), PageHealthLimits(),
        )
        assert issues == []


class TestLpHealth:
    def _entity(self) -> Entity:
        return Entity(id="u1", type=EntityType.URL, product="shoes", url="https://x.test/a")

    def _detector(
        self,
        metrics: InMemoryMetricSource,
        health: InMemoryUrlHealthSource | None = None,
    ) -> LpHealthDetector:
        clock = _Clock()
        return LpHealthDetector(
            _cfg(AlertType.LP_HEALTH),
            metrics,
            _pipeline(clock),
            health=health,
            clock=clock,
        )

    @staticmethod
    def _page(source: InMemoryMetricSource, metric: str, baseline: float, current: float) -> None:
        source.set_daily("u1", metric, _TODAY, [baseline] * 14 + [current] * 3)

    async def test_critical_status_from_health_monitor(self) -> None:
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/a", status_code=503)])

        result = await self._detector(InMemoryMetricSource(), health).detect(self._entity())

        assert result.triggered
        alert = result.alert
        assert alert is not None
        assert alert.type == AlertType.LP_HEALTH
        assert alert.severity == Severity.CRITICAL
        assert alert.playbook == "pb_lp_health"
        assert alert.metrics.additional["url"] == "https://x.test/a"
        assert alert.metrics.additional["issues"][0]["type"] == "critical_status"
        actions = [a.action for a in alert.suggested_actions]
        assert "check_server_logs" in actions
        assert "escalate_server_error" in actions

    async def test_slow_response_is_critical(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 800, 6000)

        result = await self._detector(metrics).detect(self._entity())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.severity == Severity.CRITICAL
        assert result.alert.metrics.current.value == 6000
        assert result.alert.suggested_actions[0].action == "optimize_page_speed"

    async def test_configured_limits(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 1200, 1200)

        clock = _Clock()
        detector = LpHealthDetector(
            _cfg(AlertType.LP_HEALTH, health=PageHealthLimits(max_response_ms=1000)),
            metrics,
            _pipeline(clock),
            clock=clock,
        )

        result = await detector.detect(self._entity())

        assert result.triggered
        assert result.alert is not None
        assert result.alert.severity == Severity.CRITICAL

    async def test_degradation_count_sets_severity(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 1000, 1600)
        self._page(metrics, "error_rate", 0.01, 0.03)
        self._page(metrics, "bounce_rate", 0.5, 0.65)

        result = await self._detector(metrics).detect(self._entity())

        assert result.triggered
        alert = result.alert
        assert alert is not None
        assert alert.severity == Severity.HIGH
        assert {i["type"] for i in alert.metrics.additional["issues"]} == {
            "response_degraded",
            "error_rate_degraded",
            "bounce_degraded",
        }
        assert "review_page_content" in [a.action for a in alert.suggested_actions]

    async def test_two_degradations_medium(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 1000, 1600)
        self._page(metrics, "bounce_rate", 0.5, 0.65)

        result = await self._detector(metrics).detect(self._entity())

        assert result.alert is not None
        assert result.alert.severity == Severity.MEDIUM

    async def test_single_degradation_low(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 1000, 1600)

        result = await self._detector(metrics).detect(self._entity())

        assert result.alert is not None
        assert result.alert.severity == Severity.LOW

    async def test_normal(self) -> None:
        metrics = InMemoryMetricSource()
        self._page(metrics, "response_time_ms", 1000, 1100)
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/a")])

        result = await self._detector(metrics, health).detect(self._entity())

        assert not result.triggered
        assert result.reason == "Landing page health is normal"

    async def test_no_url(self) -> None:
        result = await self._detector(InMemoryMetricSource()).detect(_keyword())
        assert not result.triggered
        assert result.reason == "Entity has no URL to monitor"

    async def test_url_entity_id_used_as_url(self) -> None:
        entity = Entity(id="https://x.test/b", type=EntityType.URL, product="shoes")
        health = InMemoryUrlHealthSource([UrlHealth(url="https://x.test/b", status_code=500)])

        result = await self._detector(InMemoryMetricSource(), health).detect(entity)

        assert result.triggered
        assert result.alert is not None
        assert result.alert.metrics.additional["url"] == "https://x.test/b"

    async def test_no_data(self) -> None:
        result = await self._detector(
            InMemoryMetricSource(), InMemoryUrlHealthSource(),
        ).detect(self._entity())
        assert not result.triggered
        assert result.reason == "No health metrics available"
