"""
Tests for the AdSense Management API client.

The Google discovery service is replaced with a MagicMock shaped like
``build("adsense", "v2")``; nothing touches the network.
"""

import os
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from ifrit.adsense_client import (
    DEFAULT_METRICS,
    AdSenseClient,
    AdSenseCredentials,
    micros_to_cents,
    parse_report,
    test_adsense_connection as check_adsense_connection,
)
from ifrit.models import AdSenseReportRequest, ReportDate, SyncStatus


def _http_error(status=403, message="The caller does not have permission"):
    resp = MagicMock(status=status, reason="Forbidden")
    content = ('{"error": {"code": %d, "message": "%s"}}' % (status, message)).encode("utf-8")
    return HttpError(resp, content)


def _generate(service):
    return service.accounts.return_value.reports.return_value.generate


PAGE_REPORT = {
    "headers": [{"name": "PAGE_URL"}, {"name": "PAGE_VIEWS"}, {"name": "ESTIMATED_EARNINGS"}],
    "rows": [
        {"cells": [{"value": "https://a.com/low"}, {"value": "100"}, {"value": "10000"}]},
        {"cells": [{"value": "https://a.com/high"}, {"value": "400"}, {"value": "2000000"}]},
        {"cells": [{"value": "https://a.com/mid"}, {"value": "0"}, {"value": "1000000"}]},
    ],
}


# ===================================================================
# Credentials & service construction
# ===================================================================

class TestCredentials:

    @pytest.mark.unit
    def test_from_env(self):
        env = {
            "ADSENSE_CLIENT_ID": "cid",
            "ADSENSE_CLIENT_SECRET": "secret",
            "ADSENSE_REFRESH_TOKEN": "refresh",
            "ADSENSE_TOKEN_URI": "https://tokens.example/token",
        }
        with patch.dict(os.environ, env):
            creds = AdSenseCredentials.from_env()
        assert creds.client_id == "cid"
        assert creds.token_uri == "https://tokens.example/token"
        assert creds.is_complete()

    @pytest.mark.unit
    def test_incomplete(self):
        assert not AdSenseCredentials("cid", "", "refresh").is_complete()

    @pytest.mark.unit
    def test_service_built_lazily_once(self, credentials, adsense_service):
        with patch("ifrit.adsense_client._build_service", return_value=adsense_service) as mock_build:
            client = AdSenseClient(credentials)
            mock_build.assert_not_called()
            assert client.service is adsense_service
            assert client.service is adsense_service
        mock_build.assert_called_once_with(credentials)

    @pytest.mark.unit
    def test_build_service_refreshes_and_builds(self, credentials):
        from ifrit.adsense_client import _build_service

        with patch("ifrit.adsense_client.Credentials") as mock_creds, \
             patch("ifrit.adsense_client.Request") as mock_request, \
             patch("ifrit.adsense_client.build") as mock_build:
            service = _build_service(credentials)

        kwargs = mock_creds.call_args.kwargs
        assert kwargs["refresh_token"] == "1//refresh"
        assert kwargs["client_id"] == credentials.client_id
        assert kwargs["client_secret"] == "shhh"
        mock_creds.return_value.refresh.assert_called_once_with(mock_request.return_value)
        mock_build.assert_called_once_with(
            "adsense", "v2", credentials=mock_creds.return_value, cache_discovery=False,
        )
        assert service is mock_build.return_value


# ===================================================================
# Connection & account
# ===================================================================

class TestConnection:

    @pytest.mark.unit
    def test_connected(self, credentials, adsense_service):
        status = AdSenseClient(credentials, service=adsense_service).test_connection()
        assert status.connected
        assert status.account_id == "pub-1234567890"
        assert status.account_name == "Ifrit Publisher"
        assert status.error is None
        assert status.last_sync > 0

    @pytest.mark.unit
    def test_no_accounts(self, credentials, adsense_service_factory):
        service = adsense_service_factory(accounts=[])
        status = AdSenseClient(credentials, service=service).test_connection()
        assert not status.connected
        assert status.error == "No AdSense accounts found for this user"

    @pytest.mark.unit
    def test_default_account_name(self, credentials, adsense_service_factory):
        service = adsense_service_factory(accounts=[{"name": "accounts/pub-9"}])
        status = AdSenseClient(credentials, service=service).test_connection()
        assert status.account_name == "AdSense Account"
        assert status.account_id == "pub-9"

    @pytest.mark.unit
    def test_http_error_never_raises(self, credentials, adsense_service_factory):
        service = adsense_service_factory(list_error=_http_error(403))
        status = AdSenseClient(credentials, service=service).test_connection()
        assert not status.connected
        assert "403" in status.error

    @pytest.mark.unit
    def test_auth_error_never_raises(self, credentials, adsense_service_factory):
        service = adsense_service_factory(list_error=RefreshError("invalid_grant"))
        status = AdSenseClient(credentials, service=service).test_connection()
        assert not status.connected
        assert "invalid_grant" in status.error

    @pytest.mark.unit
    def test_module_helper_catches_build_failure(self, credentials):
        with patch("ifrit.adsense_client._build_service",
                   side_effect=RefreshError("invalid_grant")):
            status = check_adsense_connection(credentials)
        assert not status.connected
        assert "invalid_grant" in status.error

    @pytest.mark.unit
    def test_get_account(self, credentials, adsense_service):
        account = AdSenseClient(credentials, service=adsense_service).get_account()
        assert account.id == "pub-1234567890"
        assert account.reporting_time_zone == "America/New_York"
        assert account.create_time == "2024-05-01T12:00:00Z"
        assert account.pending_tasks == ["VERIFY_SITE"]

    @pytest.mark.unit
    def test_get_account_default_time_zone(self, credentials, adsense_service_factory):
        service = adsense_service_factory(accounts=[{"name": "accounts/pub-9"}])
        account = AdSenseClient(credentials, service=service).get_account()
        assert account.reporting_time_zone == "UTC"
        assert account.pending_tasks == []

    @pytest.mark.unit
    def test_get_account_failures(self, credentials, adsense_service_factory):
        for service in (adsense_service_factory(accounts=[]),
                        adsense_service_factory(list_error=_http_error(500))):
            assert AdSenseClient(credentials, service=service).get_account() is None


# ===================================================================
# Reports
# ===================================================================

class TestReports:

    @pytest.mark.unit
    def test_micros_to_cents(self):
        assert micros_to_cents(12_345_678) == 1235
        assert micros_to_cents(5_000) == 1
        assert micros_to_cents(4_999) == 0
        assert micros_to_cents(0) == 0

    @pytest.mark.unit
    def test_parse_report_defaults_missing_cells(self):
        report = parse_report({
            "headers": [{"name": "DATE"}, {"name": "CLICKS"}],
            "rows": [{"cells": [{"value": "2026-03-01"}, {}]}],
            "totals": {"cells": [{"value": ""}, {"value": "4"}]},
        })
        assert report.headers == ["DATE", "CLICKS"]
        assert report.rows == [["2026-03-01", "0"]]
        assert report.totals == ["0", "4"]
        assert report.warnings == []

    @pytest.mark.unit
    def test_generate_report_parameters(self, credentials, adsense_service):
        client = AdSenseClient(credentials, service=adsense_service)
        report = client.generate_report(AdSenseReportRequest(
            start_date=ReportDate(2026, 3, 1), end_date=ReportDate(2026, 3, 14),
        ))
        _generate(adsense_service).assert_called_once_with(
            account="accounts/pub-1234567890",
            dateRange="CUSTOM",
            startDate_year=2026, startDate_month=3, startDate_day=1,
            endDate_year=2026, endDate_month=3, endDate_day=14,
            dimensions=["DATE"],
            metrics=DEFAULT_METRICS,
        )
        assert report.headers[0] == "DATE"
        assert len(report.rows) == 2

    @pytest.mark.unit
    def test_generate_report_failures(self, credentials, adsense_service_factory):
        request = AdSenseReportRequest(ReportDate(2026, 3, 1), ReportDate(2026, 3, 2))

        service = adsense_service_factory(report_error=_http_error(429, "Quota exceeded"))
        assert AdSenseClient(credentials, service=service).generate_report(request) is None

        service = adsense_service_factory(accounts=[])
        assert AdSenseClient(credentials, service=service).generate_report(request) is None
        _generate(service).assert_not_called()

    @pytest.mark.unit
    def test_fetch_earnings_report(self, credentials, adsense_service):
        client = AdSenseClient(credentials, service=adsense_service)
        points = client.fetch_earnings_report(date(2026, 3, 12), date(2026, 3, 13))

        assert [p.date for p in points] == ["2026-03-12", "2026-03-13"]
        first, second = points
        assert first.revenue == 1235
        assert first.page_views == 2000
        assert first.rpm == pytest.approx(617.5)
        assert first.ctr == pytest.approx(0.5)
        assert first.cpc == pytest.approx(61.75)
        assert second.revenue == 500
        assert (second.ctr, second.cpc) == (0.0, 0.0)

    @pytest.mark.unit
    def test_cells_indexed_by_header_name(self, credentials, adsense_service_factory):
        service = adsense_service_factory(report={
            "headers": [{"name": "ESTIMATED_EARNINGS"}, {"name": "DATE"}],
            "rows": [{"cells": [{"value": "3000000"}, {"value": "2026-03-01"}]}],
        })
        points = AdSenseClient(credentials, service=service).fetch_earnings_report(
            date(2026, 3, 1), date(2026, 3, 1))
        assert points[0].date == "2026-03-01"
        assert points[0].revenue == 300
        assert points[0].page_views == 0

    @pytest.mark.unit
    def test_fetch_failure_is_empty(self, credentials, adsense_service_factory):
        service = adsense_service_factory(report_error=_http_error(500))
        client = AdSenseClient(credentials, service=service)
        assert client.fetch_earnings_report(date(2026, 3, 1), date(2026, 3, 2)) == []
        assert client.get_todays_earnings() is None

    @pytest.mark.unit
    def test_last_7_and_30_day_ranges(self, credentials, adsense_service):
        client = AdSenseClient(credentials, service=adsense_service)
        for fetch, days in ((client.get_last_7_days_earnings, 7),
                            (client.get_last_30_days_earnings, 30)):
            _generate(adsense_service).reset_mock()
            assert len(fetch()) == 2
            kw = _generate(adsense_service).call_args.kwargs
            start = date(kw["startDate_year"], kw["startDate_month"], kw["startDate_day"])
            end = date(kw["endDate_year"], kw["endDate_month"], kw["endDate_day"])
            assert end - start == timedelta(days=days)

    @pytest.mark.unit
    def test_todays_earnings_first_row(self, credentials, adsense_service):
        point = AdSenseClient(credentials, service=adsense_service).get_todays_earnings()
        assert point.date == "2026-03-12"

    @pytest.mark.unit
    def test_earnings_by_page(self, credentials, adsense_service_factory):
        service = adsense_service_factory(report=PAGE_REPORT)
        client = AdSenseClient(credentials, service=service)
        rows = client.get_earnings_by_page(date(2026, 3, 1), date(2026, 3, 14), limit=2)

        assert [r["url"] for r in rows] == ["https://a.com/high", "https://a.com/mid"]
        assert rows[0]["revenue"] == 200
        assert rows[0]["rpm"] == pytest.approx(500.0)
        assert rows[1]["rpm"] == 0.0
        kw = _generate(service).call_args.kwargs
        assert kw["dimensions"] == ["PAGE_URL"]
        assert kw["metrics"] == ["PAGE_VIEWS", "ESTIMATED_EARNINGS"]


# ===================================================================
# Tracker sync
# ===================================================================

class TestSyncSiteRevenue:

    @pytest.mark.unit
    def test_imports_into_tracker(self, credentials, adsense_service, tracker):
        client = AdSenseClient(credentials, service=adsense_service)
        site = client.sync_site_revenue(tracker, "techblog", "techblog.com", days=7)

        assert site is tracker.get_site_revenue("techblog")
        assert site.total_revenue == 1735
        assert site.total_page_views == 3000
        state = tracker.get_tracking_state()
        assert state.sync_status is SyncStatus.IDLE
        assert state.last_sync > 0

    @pytest.mark.unit
    def test_empty_fetch_sets_error(self, credentials, adsense_service_factory, tracker):
        service = adsense_service_factory(report_error=_http_error(500))
        client = AdSenseClient(credentials, service=service)
        assert client.sync_site_revenue(tracker, "techblog", "techblog.com") is None

        state = tracker.get_tracking_state()
        assert state.sync_status is SyncStatus.ERROR
        assert "techblog" in state.sync_error
        assert tracker.get_site_revenue("techblog") is None


# ===================================================================
# Async wrappers
# ===================================================================

class TestAsync:

    @pytest.mark.asyncio
    async def test_atest_connection(self, credentials, adsense_service):
        status = await AdSenseClient(credentials, service=adsense_service).atest_connection()
        assert status.connected

    @pytest.mark.asyncio
    async def test_afetch_earnings_report(self, credentials, adsense_service):
        client = AdSenseClient(credentials, service=adsense_service)
        points = await client.afetch_earnings_report(date(2026, 3, 12), date(2026, 3, 13))
        assert len(points) == 2

    @pytest.mark.asyncio
    async def test_aget_earnings_by_page(self, credentials, adsense_service_factory):
        client = AdSenseClient(credentials, service=adsense_service_factory(report=PAGE_REPORT))
        rows = await client.aget_earnings_by_page(date(2026, 3, 1), date(2026, 3, 2))
        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_async_site_revenue(self, credentials, adsense_service, tracker):
        client = AdSenseClient(credentials, service=adsense_service)
        site = await client.async_site_revenue(tracker, "techblog", "techblog.com")
        assert site.total_revenue == 1735
