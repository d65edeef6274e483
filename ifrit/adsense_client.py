"""
AdSense Management API Client — Ifrit Content Factory

Thin adapter over the Google AdSense Management API v2
(https://developers.google.com/adsense/management/reference/rest) for
fetching live earnings.

Authentication is an OAuth2 refresh token issued to an installed/web client.
Everything Google-specific (discovery service, request parameter spelling,
response JSON) stays inside this module; callers only see the dataclasses
from ``ifrit.models``.

Failure policy: never raise. API and auth errors are logged and turned into
``AdSenseConnectionStatus(connected=False, error=...)``, ``None`` or ``[]``.

Configuration (environment):
    ADSENSE_CLIENT_ID       OAuth client id
    ADSENSE_CLIENT_SECRET   OAuth client secret
    ADSENSE_REFRESH_TOKEN   Long-lived refresh token
    ADSENSE_TOKEN_URI       Token endpoint (default: Google OAuth2)

Usage:
    from ifrit.adsense_client import AdSenseClient, AdSenseCredentials

    client = AdSenseClient(AdSenseCredentials.from_env())
    status = client.test_connection()
    points = client.get_last_7_days_earnings()

CLI:
    python -m ifrit.adsense_client status
    python -m ifrit.adsense_client report --days 7
    python -m ifrit.adsense_client pages --days 30 --limit 20
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ifrit.models import (
    AdSenseAccount,
    AdSenseReportRequest,
    AdSenseReportResponse,
    ReportDate,
    RevenueDataPoint,
    SiteRevenue,
)

logger = logging.getLogger("adsense_client")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Credentials may live in a .env file; real environment variables take precedence
ENV_PATH = Path(os.getenv("IFRIT_ENV_FILE", ".env"))
load_dotenv(ENV_PATH)

ADSENSE_CLIENT_ID = os.getenv("ADSENSE_CLIENT_ID", "")
ADSENSE_CLIENT_SECRET = os.getenv("ADSENSE_CLIENT_SECRET", "")
ADSENSE_REFRESH_TOKEN = os.getenv("ADSENSE_REFRESH_TOKEN", "")
ADSENSE_TOKEN_URI = os.getenv("ADSENSE_TOKEN_URI", "https://oauth2.googleapis.com/token")

ADSENSE_SCOPES = ["https://www.googleapis.com/auth/adsense.readonly"]
ADSENSE_API_NAME = "adsense"
ADSENSE_API_VERSION = "v2"

DEFAULT_DIMENSIONS = ["DATE"]
DEFAULT_METRICS = ["PAGE_VIEWS", "IMPRESSIONS", "CLICKS", "ESTIMATED_EARNINGS"]

# ESTIMATED_EARNINGS arrives in micros (1/1,000,000 of the currency unit)
MICROS_PER_CENT = 10_000


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------

@dataclass
class AdSenseCredentials:
    client_id: str
    client_secret: str
    refresh_token: str
    token_uri: str = ADSENSE_TOKEN_URI

    @classmethod
    def from_env(cls) -> AdSenseCredentials:
        """Build credentials from the ADSENSE_* environment variables."""
        return cls(
            client_id=os.getenv("ADSENSE_CLIENT_ID", ADSENSE_CLIENT_ID),
            client_secret=os.getenv("ADSENSE_CLIENT_SECRET", ADSENSE_CLIENT_SECRET),
            refresh_token=os.getenv("ADSENSE_REFRESH_TOKEN", ADSENSE_REFRESH_TOKEN),
            token_uri=os.getenv("ADSENSE_TOKEN_URI", ADSENSE_TOKEN_URI),
        )

    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)


@dataclass
class AdSenseConnectionStatus:
    connected: bool
    account_id: Optional[str] = None
    account_name: Optional[str] = None
    error: Optional[str] = None
    last_sync: Optional[int] = None        # epoch ms

    def __bool__(self) -> bool:
        return self.connected


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _parse_int(value: Any) -> int:
    try:
        return int(str(value).split(".")[0])
    except (TypeError, ValueError):
        return 0


def micros_to_cents(micros: int) -> int:
    """Convert an earnings value in micros to whole cents (half up)."""
    return (micros + MICROS_PER_CENT // 2) // MICROS_PER_CENT


def _error_message(exc: Exception) -> str:
    if isinstance(exc, HttpError):
        reason = exc.reason if hasattr(exc, "reason") else ""
        return f"HTTP {exc.resp.status}: {reason or exc}"
    return str(exc) or exc.__class__.__name__


def _account_id(name: str) -> str:
    return name.replace("accounts/", "", 1) if name else ""


def _time_zone(raw: Any) -> str:
    # v2 returns {"id": "America/New_York", "version": ...}
    if isinstance(raw, dict):
        return str(raw.get("id") or "UTC")
    return str(raw or "UTC")


def parse_report(data: dict) -> AdSenseReportResponse:
    """Flatten a raw ``reports.generate`` response into header/row strings."""
    def cells(row: dict) -> list[str]:
        return [c.get("value") or "0" for c in row.get("cells", [])]

    totals = data.get("totals")
    return AdSenseReportResponse(
        headers=[h.get("name", "") for h in data.get("headers", [])],
        rows=[cells(r) for r in data.get("rows", [])],
        totals=cells(totals) if totals else None,
        warnings=list(data.get("warnings", [])),
    )


def _cell_getter(report: AdSenseReportResponse, row: list[str]):
    index = report.header_index()

    def get(name: str) -> str:
        i = index.get(name)
        if i is None or i >= len(row):
            return "0"
        return row[i] or "0"

    return get


def parse_earnings_rows(report: AdSenseReportResponse) -> list[RevenueDataPoint]:
    """Turn a DATE-dimension report into daily RevenueDataPoints (cents)."""
    points: list[RevenueDataPoint] = []
    for row in report.rows:
        get = _cell_getter(report, row)
        points.append(RevenueDataPoint.compute(
            date=get("DATE"),
            page_views=_parse_int(get("PAGE_VIEWS")),
            impressions=_parse_int(get("IMPRESSIONS")),
            clicks=_parse_int(get("CLICKS")),
            revenue=micros_to_cents(_parse_int(get("ESTIMATED_EARNINGS"))),
        ))
    return points


def parse_page_rows(report: AdSenseReportResponse) -> list[dict]:
    """Turn a PAGE_URL-dimension report into ``{url, revenue, page_views, rpm}`` rows."""
    results: list[dict] = []
    for row in report.rows:
        get = _cell_getter(report, row)
        page_views = _parse_int(get("PAGE_VIEWS"))
        revenue = micros_to_cents(_parse_int(get("ESTIMATED_EARNINGS")))
        results.append({
            "url": get("PAGE_URL"),
            "revenue": revenue,
            "page_views": page_views,
            "rpm": (revenue / page_views * 1000) if page_views > 0 else 0.0,
        })
    return results


def _build_service(credentials: AdSenseCredentials) -> Any:
    """Refresh the access token and build the AdSense v2 discovery service."""
    creds = Credentials(
        token=None,
        refresh_token=credentials.refresh_token,
        client_id=credentials.client_id,
        client_secret=credentials.client_secret,
        token_uri=credentials.token_uri,
        scopes=ADSENSE_SCOPES,
    )
    creds.refresh(Request())
    return build(ADSENSE_API_NAME, ADSENSE_API_VERSION, credentials=creds, cache_discovery=False)


# ===================================================================
# AdSenseClient
# ===================================================================


class AdSenseClient:
    """
    AdSense Management API v2 adapter.

    The discovery service is built on first use. Pass *service* to supply a
    pre-built (or fake) service object.
    """

    def __init__(self, credentials: AdSenseCredentials, service: Any = None) -> None:
        self.credentials = credentials
        self._service = service

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = _build_service(self.credentials)
        return self._service

    def _list_accounts(self) -> list[dict]:
        response = self.service.accounts().list().execute()
        return response.get("accounts", []) or []

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def test_connection(self) -> AdSenseConnectionStatus:
        """Verify credentials by listing accounts."""
        try:
            accounts = self._list_accounts()
        except Exception as exc:
            message = _error_message(exc)
            logger.error("AdSense connection failed: %s", message)
            return AdSenseConnectionStatus(connected=False, error=message)

        if not accounts:
            return AdSenseConnectionStatus(
                connected=False, error="No AdSense accounts found for this user",
            )

        primary = accounts[0]
        status = AdSenseConnectionStatus(
            connected=True,
            account_id=_account_id(primary.get("name", "")),
            account_name=primary.get("displayName") or "AdSense Account",
            last_sync=int(time.time() * 1000),
        )
        logger.info("AdSense connected: %s (%s)", status.account_name, status.account_id)
        return status

    def get_account(self) -> Optional[AdSenseAccount]:
        try:
            accounts = self._list_accounts()
        except Exception as exc:
            logger.error("Failed to get AdSense account: %s", _error_message(exc))
            return None

        if not accounts:
            return None

        account = accounts[0]
        return AdSenseAccount(
            id=_account_id(account.get("name", "")),
            name=account.get("displayName") or "AdSense Account",
            reporting_time_zone=_time_zone(account.get("timeZone")),
            create_time=account.get("createTime", ""),
            pending_tasks=list(account.get("pendingTasks", [])),
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_report(self, request: AdSenseReportRequest) -> Optional[AdSenseReportResponse]:
        """Run a custom-range report against the primary account."""
        try:
            accounts = self._list_accounts()
            if not accounts:
                logger.error("AdSense report skipped: no accounts found")
                return None

            data = self.service.accounts().reports().generate(
                account=accounts[0]["name"],
                dateRange="CUSTOM",
                startDate_year=request.start_date.year,
                startDate_month=request.start_date.month,
                startDate_day=request.start_date.day,
                endDate_year=request.end_date.year,
                endDate_month=request.end_date.month,
                endDate_day=request.end_date.day,
                dimensions=request.dimensions or DEFAULT_DIMENSIONS,
                metrics=request.metrics or DEFAULT_METRICS,
            ).execute()
        except Exception as exc:
            logger.error("Failed to generate AdSense report: %s", _error_message(exc))
            return None

        report = parse_report(data)
        for warning in report.warnings:
            logger.warning("AdSense report warning: %s", warning)
        return report

    def fetch_earnings_report(self, start: date, end: date) -> list[RevenueDataPoint]:
        """Daily earnings for [start, end] as RevenueDataPoints."""
        report = self.generate_report(AdSenseReportRequest(
            start_date=ReportDate.from_date(start),
            end_date=ReportDate.from_date(end),
            dimensions=["DATE"],
            metrics=list(DEFAULT_METRICS),
        ))
        if report is None:
            return []
        return parse_earnings_rows(report)

    def get_todays_earnings(self) -> Optional[RevenueDataPoint]:
        today = date.today()
        points = self.fetch_earnings_report(today, today)
        return points[0] if points else None

    def get_last_7_days_earnings(self) -> list[RevenueDataPoint]:
        end = date.today()
        return self.fetch_earnings_report(end - timedelta(days=7), end)

    def get_last_30_days_earnings(self) -> list[RevenueDataPoint]:
        end = date.today()
        return self.fetch_earnings_report(end - timedelta(days=30), end)

    def get_earnings_by_page(self, start: date, end: date, limit: int = 50) -> list[dict]:
        """Per-URL earnings for [start, end], highest revenue first."""
        report = self.generate_report(AdSenseReportRequest(
            start_date=ReportDate.from_date(start),
            end_date=ReportDate.from_date(end),
            dimensions=["PAGE_URL"],
            metrics=["PAGE_VIEWS", "ESTIMATED_EARNINGS"],
        ))
        if report is None:
            return []
        rows = parse_page_rows(report)
        rows.sort(key=lambda r: r["revenue"], reverse=True)
        return rows[:limit]

    # ------------------------------------------------------------------
    # Tracker sync
    # ------------------------------------------------------------------

    def sync_site_revenue(
        self, tracker: Any, site_id: str, domain: str, days: int = 30
    ) -> Optional[SiteRevenue]:
        """Import the last *days* of earnings into a RevenueTracker."""
        tracker.set_sync_status("syncing")
        end = date.today()
        points = self.fetch_earnings_report(end - timedelta(days=days), end)
        if not points:
            tracker.set_sync_status("error", f"No AdSense earnings returned for {site_id}")
            return None
        site = tracker.import_revenue_data(site_id, domain, points)
        tracker.set_sync_status("idle")
        return site

    # ------------------------------------------------------------------
    # Async interfaces
    # ------------------------------------------------------------------

    async def atest_connection(self) -> AdSenseConnectionStatus:
        """Async wrapper for test_connection."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.test_connection)

    async def afetch_earnings_report(self, start: date, end: date) -> list[RevenueDataPoint]:
        """Async wrapper for fetch_earnings_report."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fetch_earnings_report, start, end)

    async def aget_earnings_by_page(self, start: date, end: date, limit: int = 50) -> list[dict]:
        """Async wrapper for get_earnings_by_page."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_earnings_by_page, start, end, limit)

    async def async_site_revenue(
        self, tracker: Any, site_id: str, domain: str, days: int = 30
    ) -> Optional[SiteRevenue]:
        """Async wrapper for sync_site_revenue."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.sync_site_revenue(tracker, site_id, domain, days)
        )


# ===================================================================
# Module-Level Convenience API
# ===================================================================


def get_adsense_client(credentials: Optional[AdSenseCredentials] = None) -> AdSenseClient:
    """Return a client for *credentials*, or for the environment's credentials."""
    return AdSenseClient(credentials or AdSenseCredentials.from_env())


def test_adsense_connection(credentials: AdSenseCredentials) -> AdSenseConnectionStatus:
    """Check credentials; building the service itself may fail on a bad token."""
    try:
        client = AdSenseClient(credentials)
        return client.test_connection()
    except Exception as exc:
        message = _error_message(exc)
        logger.error("AdSense connection failed: %s", message)
        return AdSenseConnectionStatus(connected=False, error=message)


# Keep pytest from collecting the helper above as a test
test_adsense_connection.__test__ = False


# ===================================================================
# CLI Entry Point
# ===================================================================


def main() -> None:
    """CLI entry point: python -m ifrit.adsense_client <command> [options]."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="adsense_client",
        description="Ifrit AdSense client — live earnings from the AdSense Management API",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("status", help="Test the AdSense connection")

    p_report = subparsers.add_parser("report", help="Daily earnings report")
    p_report.add_argument("--days", type=int, default=7, help="Days back (default: 7)")

    p_pages = subparsers.add_parser("pages", help="Earnings by page URL")
    p_pages.add_argument("--days", type=int, default=30, help="Days back (default: 30)")
    p_pages.add_argument("--limit", type=int, default=20, help="Rows to show (default: 20)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    credentials = AdSenseCredentials.from_env()
    if not credentials.is_complete():
        print("AdSense credentials missing. Set ADSENSE_CLIENT_ID, "
              "ADSENSE_CLIENT_SECRET and ADSENSE_REFRESH_TOKEN.")
        sys.exit(1)

    if args.command == "status":
        status = test_adsense_connection(credentials)
        if status.connected:
            print(f"Connected: {status.account_name} ({status.account_id})")
        else:
            print(f"Not connected: {status.error}")
            sys.exit(1)
        return

    try:
        client = AdSenseClient(credentials)
        end = date.today()
        start = end - timedelta(days=args.days)

        if args.command == "report":
            points = client.fetch_earnings_report(start, end)
            print(f"ADSENSE EARNINGS {start.isoformat()} to {end.isoformat()}")
            print(f"{'=' * 50}")
            for p in points:
                print(f"  {p.date}  ${p.revenue / 100:>9,.2f}  {p.page_views:>8,} views"
                      f"  RPM ${p.rpm / 100:,.2f}")
            total = sum(p.revenue for p in points)
            print(f"{'=' * 50}")
            print(f"  TOTAL       ${total / 100:>9,.2f}")

        elif args.command == "pages":
            rows = client.get_earnings_by_page(start, end, args.limit)
            print(f"TOP {len(rows)} PAGES ({args.days} days)")
            print(f"{'=' * 50}")
            for i, r in enumerate(rows, 1):
                print(f"  {i:>2}. ${r['revenue'] / 100:>8,.2f}  {r['url']}")
    except Exception as exc:
        print(f"AdSense error: {_error_message(exc)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
