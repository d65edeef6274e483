"""
Revenue Tracker — Ifrit Content Factory

In-memory revenue attribution across sites, articles, campaigns and authors.

Two independent write paths feed the site roll-ups:

    EVENTS  — record_revenue_event(): additive, real-time. Every event is
              appended to the log and added to its site (and content) totals.
    IMPORT  — import_revenue_data(): bulk historical import (e.g. an AdSense
              daily report). Recomputes the site totals from the supplied
              data points, fills the period buckets and classifies the trend.

The two paths are not reconciled: whichever ran last defines a site's
``total_revenue``. Nothing is persisted; state lives for the life of the
tracker instance.

Usage:
    from ifrit.revenue_tracker import RevenueTracker
    from ifrit.models import RevenueEvent

    tracker = RevenueTracker()
    tracker.record_revenue_event(RevenueEvent(site_id="techblog",
                                              content_id="post-42",
                                              page_views=1000, revenue=350))
    print(tracker.format_site_summary("techblog"))

    # or through the process-wide default tracker
    from ifrit.revenue_tracker import record_revenue_event, get_site_revenue

CLI:
    python -m ifrit.revenue_tracker import --file points.json --site techblog --domain techblog.com
    python -m ifrit.revenue_tracker events --file events.json --top 5
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import math
import sys
import time
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from ifrit.models import (
    ContentRevenue,
    RevenueDataPoint,
    RevenueEvent,
    RevenueTrackingState,
    SiteRevenue,
    SyncStatus,
    Trend,
)

logger = logging.getLogger("revenue_tracker")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TREND_WINDOW_DAYS = 7
TREND_MIN_POINTS = TREND_WINDOW_DAYS * 2
TREND_THRESHOLD_PCT = 5
TOP_CONTENT_PER_SITE = 10

SORT_FIELDS = ("revenue", "page_views", "rpm")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return int(time.time() * 1000)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now_utc().date()


def _gen_event_id() -> str:
    return f"rev_{_now_ms()}_{uuid.uuid4().hex[:4]}"


def _rpm(revenue: float, page_views: float) -> float:
    return (revenue / page_views * 1000) if page_views > 0 else 0.0


def _parse_date(d: str) -> Optional[date]:
    try:
        return date.fromisoformat(d[:10])
    except (TypeError, ValueError):
        return None


def _previous_month(d: date) -> tuple[int, int]:
    if d.month == 1:
        return d.year - 1, 12
    return d.year, d.month - 1


def _format_cents(cents: float) -> str:
    return f"${cents / 100:,.2f}"


def aggregate_data_points(points: list[RevenueDataPoint]) -> RevenueDataPoint:
    """Sum raw counters across *points* and recompute rpm / ctr / cpc.

    The result carries the date of the first point, or today when empty.
    """
    if not points:
        return RevenueDataPoint.empty(_today().isoformat())
    return RevenueDataPoint.compute(
        date=points[0].date,
        page_views=sum(p.page_views for p in points),
        impressions=sum(p.impressions for p in points),
        clicks=sum(p.clicks for p in points),
        revenue=sum(p.revenue for p in points),
    )


def _rollup(items: list[Any], revenue_attr: str, views_attr: str) -> dict:
    total_revenue = sum(getattr(i, revenue_attr) for i in items)
    total_views = sum(getattr(i, views_attr) for i in items)
    return {
        "total_revenue": total_revenue,
        "total_page_views": total_views,
        "avg_rpm": _rpm(total_revenue, total_views),
    }


# ===================================================================
# RevenueTracker
# ===================================================================


class RevenueTracker:
    """
    Revenue aggregation engine.

    Owns one :class:`RevenueTrackingState`. Every method runs to completion
    synchronously; instances are not shared across threads.
    """

    def __init__(self) -> None:
        self._state = RevenueTrackingState()
        logger.debug("RevenueTracker initialized")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_tracking_state(self) -> RevenueTrackingState:
        """Shallow snapshot: the maps are copied, their values are shared."""
        return dataclasses.replace(
            self._state,
            sites=dict(self._state.sites),
            content=dict(self._state.content),
            events=list(self._state.events),
        )

    def reset_tracking_state(self) -> None:
        self._state = RevenueTrackingState()
        logger.debug("Tracking state reset")

    def set_sync_status(self, status: SyncStatus | str, error: Optional[str] = None) -> None:
        """Update sync status. Returning to ``idle`` stamps ``last_sync``.

        An unrecognised status string is logged and leaves the state unchanged.
        """
        if isinstance(status, str):
            try:
                status = SyncStatus(status.strip().lower())
            except ValueError:
                logger.warning("Ignoring unknown sync status %r", status)
                return
        self._state.sync_status = status
        self._state.sync_error = error
        if status is SyncStatus.IDLE:
            self._state.last_sync = _now_ms()
        if error:
            logger.warning("Revenue sync status %s: %s", status.value, error)

    # ==================================================================
    # EVENT PATH
    # ==================================================================

    def record_revenue_event(self, event: RevenueEvent | dict) -> RevenueEvent:
        """Stamp, log and aggregate a revenue event.

        No validation is performed: negative or duplicate values flow
        straight into the totals.
        """
        if isinstance(event, dict):
            event = RevenueEvent.from_dict(event)

        full_event = dataclasses.replace(event, id=_gen_event_id(), timestamp=_now_ms())
        self._state.events.append(full_event)

        self._update_site_revenue(full_event)
        if full_event.content_id:
            self._update_content_revenue(full_event)
            self._refresh_top_content(full_event.site_id)

        logger.info(
            "Recorded %s %s for %s%s",
            _format_cents(full_event.revenue), full_event.network.value,
            full_event.site_id,
            f"/{full_event.content_id}" if full_event.content_id else "",
        )
        return full_event

    def _site(self, site_id: str) -> SiteRevenue:
        site = self._state.sites.get(site_id)
        if site is None:
            site = SiteRevenue(site_id=site_id)
            self._state.sites[site_id] = site
        return site

    def _update_site_revenue(self, event: RevenueEvent) -> None:
        site = self._site(event.site_id)
        site.total_revenue += event.revenue
        site.total_page_views += event.page_views
        site.avg_rpm = _rpm(site.total_revenue, site.total_page_views)

    def _update_content_revenue(self, event: RevenueEvent) -> None:
        content = self._state.content.get(event.content_id)
        if content is None:
            content = ContentRevenue(
                content_id=event.content_id,
                site_id=event.site_id,
                campaign_id=event.campaign_id,
                author_id=event.author_id,
            )
            self._state.content[event.content_id] = content

        content.page_views += event.page_views
        content.revenue += event.revenue
        content.rpm = _rpm(content.revenue, content.page_views)
        if not content.first_revenue:
            content.first_revenue = event.timestamp
        content.last_revenue = event.timestamp

    def _refresh_top_content(self, site_id: str) -> None:
        site_content = [c for c in self._state.content.values() if c.site_id == site_id]
        site_content.sort(key=lambda c: c.revenue, reverse=True)
        self._site(site_id).top_content = site_content[:TOP_CONTENT_PER_SITE]

    # ==================================================================
    # QUERIES
    # ==================================================================

    def get_site_revenue(self, site_id: str) -> Optional[SiteRevenue]:
        return self._state.sites.get(site_id)

    def get_content_revenue(self, content_id: str) -> Optional[ContentRevenue]:
        return self._state.content.get(content_id)

    def get_campaign_revenue(self, campaign_id: str) -> dict:
        """Roll up all content attributed to *campaign_id*.

        Returns ``{total_revenue, total_page_views, avg_rpm, content_count,
        content}``; unknown campaigns yield zeros and an empty list.
        """
        matched = [c for c in self._state.content.values() if c.campaign_id == campaign_id]
        result = _rollup(matched, "revenue", "page_views")
        result["content_count"] = len(matched)
        result["content"] = matched
        return result

    def get_author_revenue(self, author_id: str) -> dict:
        matched = [c for c in self._state.content.values() if c.author_id == author_id]
        result = _rollup(matched, "revenue", "page_views")
        result["content_count"] = len(matched)
        return result

    def get_top_content(self, limit: int = 10, sort_by: str = "revenue") -> list[ContentRevenue]:
        """Content sorted by *sort_by* (revenue, page_views or rpm), highest first."""
        if sort_by not in SORT_FIELDS:
            logger.warning("Unknown sort field %r, falling back to revenue", sort_by)
            sort_by = "revenue"
        ranked = sorted(
            self._state.content.values(),
            key=lambda c: getattr(c, sort_by),
            reverse=True,
        )
        return ranked[:limit]

    def get_total_revenue_summary(self) -> dict:
        sites = list(self._state.sites.values())
        result = _rollup(sites, "total_revenue", "total_page_views")
        result["site_count"] = len(sites)
        result["content_count"] = len(self._state.content)
        return result

    # ==================================================================
    # IMPORT PATH
    # ==================================================================

    def import_revenue_data(
        self,
        site_id: str,
        domain: str,
        data_points: list[RevenueDataPoint | dict],
        today: Optional[date] = None,
    ) -> SiteRevenue:
        """Replace a site's totals with an aggregate of *data_points*.

        *data_points* must be in chronological order. Also fills the period
        buckets relative to *today* and, with at least 14 points, compares
        the last 7 against the preceding 7 to classify the trend.
        """
        points = [
            p if isinstance(p, RevenueDataPoint) else RevenueDataPoint.from_dict(p)
            for p in data_points
        ]
        site = self._site(site_id)
        site.domain = domain

        combined = aggregate_data_points(points)
        site.total_revenue = combined.revenue
        site.total_page_views = combined.page_views
        site.avg_rpm = combined.rpm

        self._fill_period_buckets(site, points, today or _today())
        self._update_trend(site, points)

        self._state.last_sync = _now_ms()
        logger.info(
            "Imported %d data points for %s (%s): %s, trend %s",
            len(points), site_id, domain, _format_cents(site.total_revenue), site.trend.value,
        )
        return site

    def _fill_period_buckets(
        self, site: SiteRevenue, points: list[RevenueDataPoint], today: date
    ) -> None:
        dated: list[tuple[date, RevenueDataPoint]] = []
        for p in points:
            d = _parse_date(p.date)
            if d is None:
                logger.warning("Skipping data point with bad date %r for %s", p.date, site.site_id)
                continue
            dated.append((d, p))

        yesterday = today - timedelta(days=1)
        last_month = _previous_month(today)

        def bucket(predicate) -> RevenueDataPoint:
            selected = [p for d, p in dated if predicate(d)]
            return aggregate_data_points(selected)

        site.today = bucket(lambda d: d == today)
        site.yesterday = bucket(lambda d: d == yesterday)
        site.last_7_days = bucket(lambda d: today - timedelta(days=7) < d <= today)
        site.last_30_days = bucket(lambda d: today - timedelta(days=30) < d <= today)
        site.this_month = bucket(lambda d: (d.year, d.month) == (today.year, today.month))
        site.last_month = bucket(lambda d: (d.year, d.month) == last_month)

    def _update_trend(self, site: SiteRevenue, points: list[RevenueDataPoint]) -> None:
        if len(points) < TREND_MIN_POINTS:
            return
        recent = points[-TREND_WINDOW_DAYS:]
        previous = points[-TREND_MIN_POINTS:-TREND_WINDOW_DAYS]
        recent_total = sum(p.revenue for p in recent)
        previous_total = sum(p.revenue for p in previous)
        if previous_total <= 0:
            return

        delta = recent_total - previous_total
        site.trend_percent = math.floor(delta * 100 / previous_total + 0.5)
        # Compared in integer cents so exactly +-5% stays stable
        if delta * 100 > TREND_THRESHOLD_PCT * previous_total:
            site.trend = Trend.UP
        elif delta * 100 < -TREND_THRESHOLD_PCT * previous_total:
            site.trend = Trend.DOWN
        else:
            site.trend = Trend.STABLE

    # ==================================================================
    # FORMATTING
    # ==================================================================

    def format_site_summary(self, site_id: str) -> str:
        """Format a site's revenue as a concise text summary for messaging."""
        site = self.get_site_revenue(site_id)
        if site is None:
            return f"No revenue recorded for {site_id}"

        lines: list[str] = []
        lines.append(f"SITE REVENUE — {site.domain or site.site_id}")
        lines.append(f"{'=' * 30}")
        lines.append(f"Total: {_format_cents(site.total_revenue)}")
        lines.append(f"Page views: {site.total_page_views:,}")
        lines.append(f"RPM: {_format_cents(site.avg_rpm)}")

        arrow = "+" if site.trend_percent >= 0 else ""
        lines.append(f"Trend: {site.trend.value} ({arrow}{site.trend_percent}%)")

        if site.last_7_days.page_views or site.last_30_days.page_views:
            lines.append("")
            lines.append(f"Last 7 days:  {_format_cents(site.last_7_days.revenue)}")
            lines.append(f"Last 30 days: {_format_cents(site.last_30_days.revenue)}")

        if site.top_content:
            lines.append("")
            lines.append("Top content:")
            for c in site.top_content[:5]:
                lines.append(f"  {c.content_id}: {_format_cents(c.revenue)} ({c.page_views:,} views)")

        return "\n".join(lines)

    # ==================================================================
    # ASYNC INTERFACES
    # ==================================================================

    async def arecord_revenue_event(self, event: RevenueEvent | dict) -> RevenueEvent:
        """Async wrapper for record_revenue_event."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.record_revenue_event, event)

    async def aimport_revenue_data(
        self,
        site_id: str,
        domain: str,
        data_points: list[RevenueDataPoint | dict],
        today: Optional[date] = None,
    ) -> SiteRevenue:
        """Async wrapper for import_revenue_data."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.import_revenue_data(site_id, domain, data_points, today)
        )


# ===================================================================
# Module-Level Convenience API
# ===================================================================

_tracker_instance: Optional[RevenueTracker] = None


def get_tracker() -> RevenueTracker:
    """Return the process-wide default RevenueTracker."""
    global _tracker_instance
    if _tracker_instance is None:
        _tracker_instance = RevenueTracker()
    return _tracker_instance


def get_tracking_state() -> RevenueTrackingState:
    return get_tracker().get_tracking_state()


def reset_tracking_state() -> None:
    get_tracker().reset_tracking_state()


def record_revenue_event(event: RevenueEvent | dict) -> RevenueEvent:
    return get_tracker().record_revenue_event(event)


def get_site_revenue(site_id: str) -> Optional[SiteRevenue]:
    return get_tracker().get_site_revenue(site_id)


def get_content_revenue(content_id: str) -> Optional[ContentRevenue]:
    return get_tracker().get_content_revenue(content_id)


def get_campaign_revenue(campaign_id: str) -> dict:
    return get_tracker().get_campaign_revenue(campaign_id)


def get_author_revenue(author_id: str) -> dict:
    return get_tracker().get_author_revenue(author_id)


def get_top_content(limit: int = 10, sort_by: str = "revenue") -> list[ContentRevenue]:
    return get_tracker().get_top_content(limit, sort_by)


def get_total_revenue_summary() -> dict:
    return get_tracker().get_total_revenue_summary()


def set_sync_status(status: SyncStatus | str, error: Optional[str] = None) -> None:
    get_tracker().set_sync_status(status, error)


def import_revenue_data(
    site_id: str,
    domain: str,
    data_points: list[RevenueDataPoint | dict],
    today: Optional[date] = None,
) -> SiteRevenue:
    return get_tracker().import_revenue_data(site_id, domain, data_points, today)


# ===================================================================
# CLI Entry Point
# ===================================================================


def _load_json_list(path: str) -> list[dict]:
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"JSON file not found: {path}")
    with open(file_path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list in {path}")
    return data


def main() -> None:
    """CLI entry point: python -m ifrit.revenue_tracker <command> [options]."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="revenue_tracker",
        description="Ifrit Revenue Tracker — CLI Interface",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_import = subparsers.add_parser("import", help="Import daily data points for a site")
    p_import.add_argument("--file", required=True, help="JSON list of daily data points")
    p_import.add_argument("--site", required=True, help="Site ID")
    p_import.add_argument("--domain", default="", help="Site domain")

    p_events = subparsers.add_parser("events", help="Aggregate a JSON list of revenue events")
    p_events.add_argument("--file", required=True, help="JSON list of revenue events")
    p_events.add_argument("--top", type=int, default=5, help="Top content to show (default: 5)")
    p_events.add_argument("--by", choices=SORT_FIELDS, default="revenue",
                          help="Top content metric (default: revenue)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    tracker = get_tracker()

    if args.command == "import":
        tracker.import_revenue_data(args.site, args.domain, _load_json_list(args.file))
        print(tracker.format_site_summary(args.site))

    elif args.command == "events":
        for raw in _load_json_list(args.file):
            try:
                tracker.record_revenue_event(raw)
            except TypeError as exc:
                logger.warning("Skipping malformed event %s: %s", raw, exc)

        summary = tracker.get_total_revenue_summary()
        print("REVENUE SUMMARY")
        print(f"{'=' * 40}")
        print(f"Total:      {_format_cents(summary['total_revenue'])}")
        print(f"Page views: {summary['total_page_views']:,}")
        print(f"RPM:        {_format_cents(summary['avg_rpm'])}")
        print(f"Sites: {summary['site_count']}  Content: {summary['content_count']}")

        top = tracker.get_top_content(args.top, args.by)
        if top:
            print(f"\nTOP {len(top)} CONTENT (by {args.by})")
            print(f"{'=' * 40}")
            for i, c in enumerate(top, 1):
                print(f"  {i}. {c.content_id:<22} {_format_cents(c.revenue):>10}"
                      f"  {c.page_views:>8,} views")


if __name__ == "__main__":
    main()
