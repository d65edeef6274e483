"""
Monetization Models — Ifrit Content Factory

Shared data classes and enums for the monetization layer: revenue data
points, per-content and per-site roll-ups, revenue events, niche CPM
reference data, CPM prediction requests/results, ad configuration and the
AdSense report shapes.

All money values are integer cents (smallest currency unit).

Usage:
    from ifrit.models import RevenueEvent, AdNetwork

    event = RevenueEvent(site_id="techblog", page_views=1200, revenue=480,
                         network=AdNetwork.ADSENSE)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger("models")


def _today_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _enum_from_string(enum_cls: type, value: str, label: str) -> Any:
    normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
    for member in enum_cls:
        if member.value == normalized or member.name.lower() == normalized:
            return member
    raise ValueError(f"Unknown {label}: {value!r}")


# ===================================================================
# Enums
# ===================================================================


class AdNetwork(Enum):
    """Supported ad networks."""
    ADSENSE = "adsense"
    MEDIAVINE = "mediavine"
    EZOIC = "ezoic"
    ADTHRIVE = "adthrive"
    MANUAL = "manual"

    @classmethod
    def from_string(cls, value: str) -> AdNetwork:
        """Parse a network from a loose string (case-insensitive)."""
        return _enum_from_string(cls, value, "ad network")


class AdFormat(Enum):
    DISPLAY = "display"
    NATIVE = "native"
    ANCHOR = "anchor"          # sticky anchor
    VIGNETTE = "vignette"      # full-screen interstitial
    MULTIPLEX = "multiplex"
    VIDEO = "video"
    AUTO = "auto"

    @classmethod
    def from_string(cls, value: str) -> AdFormat:
        return _enum_from_string(cls, value, "ad format")


class AdPlacement(Enum):
    HEADER = "header"
    SIDEBAR = "sidebar"
    IN_CONTENT = "in_content"
    AFTER_PARAGRAPH_1 = "after_paragraph_1"
    AFTER_PARAGRAPH_3 = "after_paragraph_3"
    MID_CONTENT = "mid_content"
    AFTER_CONTENT = "after_content"
    FOOTER = "footer"
    STICKY = "sticky"

    @classmethod
    def from_string(cls, value: str) -> AdPlacement:
        return _enum_from_string(cls, value, "ad placement")


class TrafficSource(Enum):
    ORGANIC = "organic"
    SOCIAL = "social"
    DIRECT = "direct"
    REFERRAL = "referral"

    @classmethod
    def from_string(cls, value: str) -> TrafficSource:
        return _enum_from_string(cls, value, "traffic source")


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class Trend(Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


# ===================================================================
# Revenue data
# ===================================================================


@dataclass
class RevenueDataPoint:
    """A single day's metrics. Derived ratios come from :meth:`compute`."""
    date: str                              # ISO YYYY-MM-DD
    page_views: int = 0
    impressions: int = 0
    clicks: int = 0
    revenue: int = 0                       # cents
    rpm: float = 0.0                       # revenue per 1000 page views
    ctr: float = 0.0                       # clicks / impressions * 100
    cpc: float = 0.0                       # revenue per click

    @classmethod
    def compute(
        cls,
        date: str,
        page_views: int,
        impressions: int,
        clicks: int,
        revenue: int,
    ) -> RevenueDataPoint:
        """Build a point from raw counters, deriving rpm / ctr / cpc."""
        return cls(
            date=date,
            page_views=page_views,
            impressions=impressions,
            clicks=clicks,
            revenue=revenue,
            rpm=(revenue / page_views * 1000) if page_views > 0 else 0.0,
            ctr=(clicks / impressions * 100) if impressions > 0 else 0.0,
            cpc=(revenue / clicks) if clicks > 0 else 0.0,
        )

    @classmethod
    def empty(cls, date: Optional[str] = None) -> RevenueDataPoint:
        return cls(date=date or _today_iso())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> RevenueDataPoint:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class ContentRevenue:
    """Per-article revenue roll-up."""
    content_id: str
    site_id: str = ""
    content_title: str = ""
    content_url: str = ""
    campaign_id: Optional[str] = None
    author_id: Optional[str] = None
    page_views: int = 0
    revenue: int = 0
    rpm: float = 0.0
    first_revenue: Optional[int] = None    # epoch ms
    last_revenue: Optional[int] = None
    daily_data: list[RevenueDataPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SiteRevenue:
    """Per-site revenue roll-up.

    Totals are kept current by the event path. The period buckets and the
    trend are only written by a bulk import.
    """
    site_id: str
    domain: str = ""
    total_revenue: int = 0
    total_page_views: int = 0
    avg_rpm: float = 0.0
    today: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    yesterday: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    last_7_days: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    last_30_days: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    this_month: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    last_month: RevenueDataPoint = field(default_factory=RevenueDataPoint.empty)
    top_content: list[ContentRevenue] = field(default_factory=list)
    trend: Trend = Trend.STABLE
    trend_percent: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["trend"] = self.trend.value
        return d


@dataclass
class RevenueEvent:
    """An atomic revenue fact. ``id`` and ``timestamp`` are assigned on record."""
    site_id: str
    page_views: int = 0
    impressions: int = 0
    clicks: int = 0
    revenue: int = 0                       # cents
    network: AdNetwork = AdNetwork.ADSENSE
    content_id: Optional[str] = None
    campaign_id: Optional[str] = None
    author_id: Optional[str] = None
    ad_format: Optional[AdFormat] = None
    id: str = ""
    timestamp: int = 0                     # epoch ms

    def __post_init__(self) -> None:
        # Events are never rejected: unknown labels fall back instead of raising
        if isinstance(self.network, str):
            try:
                self.network = AdNetwork.from_string(self.network)
            except ValueError:
                logger.warning("Unknown ad network %r on event for %s, recording as manual",
                               self.network, self.site_id)
                self.network = AdNetwork.MANUAL
        if isinstance(self.ad_format, str):
            try:
                self.ad_format = AdFormat.from_string(self.ad_format)
            except ValueError:
                logger.warning("Unknown ad format %r on event for %s, dropping it",
                               self.ad_format, self.site_id)
                self.ad_format = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["network"] = self.network.value
        d["ad_format"] = self.ad_format.value if self.ad_format else None
        return d

    @classmethod
    def from_dict(cls, data: dict) -> RevenueEvent:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class RevenueTrackingState:
    last_sync: int = 0
    sync_status: SyncStatus = SyncStatus.IDLE
    sync_error: Optional[str] = None
    sites: dict[str, SiteRevenue] = field(default_factory=dict)
    content: dict[str, ContentRevenue] = field(default_factory=dict)
    events: list[RevenueEvent] = field(default_factory=list)


# ===================================================================
# CPM modeling
# ===================================================================


@dataclass(frozen=True)
class SeasonalFactors:
    q1: float = 1.0
    q2: float = 1.0
    q3: float = 1.0
    q4: float = 1.0

    def for_quarter(self, quarter: int) -> float:
        return getattr(self, f"q{quarter}")


@dataclass(frozen=True)
class SourceFactors:
    organic: float = 1.0
    social: float = 1.0
    direct: float = 1.0
    referral: float = 1.0

    def for_source(self, source: TrafficSource) -> float:
        return getattr(self, source.value)


@dataclass(frozen=True)
class NicheCPMData:
    """Hand-curated CPM reference data for one content niche (cents)."""
    niche: str
    avg_cpm: int
    min_cpm: int
    max_cpm: int
    sample_size: int
    seasonal_factors: SeasonalFactors
    by_source: Optional[SourceFactors] = None
    last_updated: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CPMPredictionRequest:
    niche: str
    topic: Optional[str] = None
    traffic_source: Optional[TrafficSource] = None
    month: Optional[int] = None            # 1-12
    geo_target: Optional[str] = None       # ISO country code

    def __post_init__(self) -> None:
        if isinstance(self.traffic_source, str):
            self.traffic_source = TrafficSource.from_string(self.traffic_source)


@dataclass
class CPMRange:
    min: int
    max: int


@dataclass
class CPMPrediction:
    estimated_cpm: int
    confidence: int                        # 0-100, heuristic
    range: CPMRange
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ===================================================================
# Ad configuration
# ===================================================================


@dataclass
class AdUnit:
    id: str
    name: str
    format: AdFormat
    placement: AdPlacement
    network: AdNetwork
    network_ad_unit_id: Optional[str] = None   # e.g. AdSense ad-slot
    enabled: bool = True
    lazy_load: bool = True
    refresh_interval: int = 0                  # seconds, 0 = no refresh
    responsive: bool = True
    min_width: Optional[int] = None
    max_width: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.format, str):
            self.format = AdFormat.from_string(self.format)
        if isinstance(self.placement, str):
            self.placement = AdPlacement.from_string(self.placement)
        if isinstance(self.network, str):
            self.network = AdNetwork.from_string(self.network)

    def fits_width(self, width: int) -> bool:
        """Whether the unit may render in a container *width* pixels wide."""
        if self.min_width is not None and width < self.min_width:
            return False
        if self.max_width is not None and width > self.max_width:
            return False
        return True

    def to_dict(self) -> dict:
        d = asdict(self)
        d["format"] = self.format.value
        d["placement"] = self.placement.value
        d["network"] = self.network.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> AdUnit:
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class MonetizationStrategy:
    site_id: str
    primary_network: AdNetwork
    ad_units: list[AdUnit] = field(default_factory=list)
    auto_ads_enabled: bool = False
    ads_per_page: int = 3
    word_count_for_ads: int = 300              # articles shorter than this get no ads
    adsense_publisher_id: Optional[str] = None
    adsense_client_id: Optional[str] = None
    monthly_revenue_target: Optional[int] = None   # cents
    rpm_target: Optional[float] = None

    def __post_init__(self) -> None:
        if isinstance(self.primary_network, str):
            self.primary_network = AdNetwork.from_string(self.primary_network)

    def units_for_article(self, word_count: int) -> list[AdUnit]:
        """Enabled units to place in an article, capped at ``ads_per_page``.

        Articles below ``word_count_for_ads`` get none.
        """
        if word_count < self.word_count_for_ads:
            return []
        return [u for u in self.ad_units if u.enabled][:self.ads_per_page]

    def to_dict(self) -> dict:
        d = asdict(self)
        d["primary_network"] = self.primary_network.value
        d["ad_units"] = [u.to_dict() for u in self.ad_units]
        return d

    @classmethod
    def from_dict(cls, data: dict) -> MonetizationStrategy:
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["ad_units"] = [
            u if isinstance(u, AdUnit) else AdUnit.from_dict(u)
            for u in known.get("ad_units", [])
        ]
        return cls(**known)


# ===================================================================
# AdSense API shapes
# ===================================================================


@dataclass
class AdSenseAccount:
    id: str
    name: str
    reporting_time_zone: str = "UTC"
    create_time: str = ""
    pending_tasks: list[str] = field(default_factory=list)


@dataclass
class ReportDate:
    year: int
    month: int
    day: int

    @classmethod
    def from_date(cls, d: Any) -> ReportDate:
        return cls(year=d.year, month=d.month, day=d.day)


@dataclass
class AdSenseReportRequest:
    start_date: ReportDate
    end_date: ReportDate
    dimensions: Optional[list[str]] = None     # DATE, PAGE_URL, AD_UNIT_NAME, COUNTRY_CODE
    metrics: Optional[list[str]] = None        # PAGE_VIEWS, IMPRESSIONS, CLICKS, ESTIMATED_EARNINGS


@dataclass
class AdSenseReportResponse:
    """Report rows; callers index cells by header name."""
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    totals: Optional[list[str]] = None
    warnings: list[str] = field(default_factory=list)

    def header_index(self) -> dict[str, int]:
        return {name: i for i, name in enumerate(self.headers)}
