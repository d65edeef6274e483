"""
Shared fixtures for the Ifrit test suite.

Provides sample data, temp directories and a fake AdSense discovery service
so that all tests run WITHOUT any external services.
"""

from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from ifrit.models import RevenueDataPoint
from ifrit.revenue_tracker import RevenueTracker


# ---------------------------------------------------------------------------
# Revenue fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tracker():
    """A fresh, empty RevenueTracker."""
    return RevenueTracker()


@pytest.fixture
def import_today():
    """Fixed 'today' for import tests."""
    return date(2026, 3, 14)


def make_points(end: date, revenues: list[int], page_views: int = 1000) -> list[RevenueDataPoint]:
    """Consecutive daily points ending on *end*, oldest first."""
    start = end - timedelta(days=len(revenues) - 1)
    return [
        RevenueDataPoint.compute(
            date=(start + timedelta(days=i)).isoformat(),
            page_views=page_views,
            impressions=page_views * 2,
            clicks=10,
            revenue=rev,
        )
        for i, rev in enumerate(revenues)
    ]


@pytest.fixture
def points_factory():
    return make_points


# ---------------------------------------------------------------------------
# AdSense fixtures
# ---------------------------------------------------------------------------

SAMPLE_ACCOUNT = {
    "name": "accounts/pub-1234567890",
    "displayName": "Ifrit Publisher",
    "timeZone": {"id": "America/New_York"},
    "createTime": "2024-05-01T12:00:00Z",
    "pendingTasks": ["VERIFY_SITE"],
}

SAMPLE_DATE_REPORT = {
    "headers": [
        {"name": "DATE", "type": "DIMENSION"},
        {"name": "PAGE_VIEWS", "type": "METRIC_INTEGER"},
        {"name": "IMPRESSIONS", "type": "METRIC_INTEGER"},
        {"name": "CLICKS", "type": "METRIC_INTEGER"},
        {"name": "ESTIMATED_EARNINGS", "type": "METRIC_CURRENCY"},
    ],
    "rows": [
        {"cells": [{"value": "2026-03-12"}, {"value": "2000"}, {"value": "4000"},
                   {"value": "20"}, {"value": "12345678"}]},
        {"cells": [{"value": "2026-03-13"}, {"value": "1000"}, {"value": "0"},
                   {"value": "0"}, {"value": "5000000"}]},
    ],
    "totals": {"cells": [{"value": ""}, {"value": "3000"}, {"value": "4000"},
                         {"value": "20"}, {"value": "17345678"}]},
}


def make_adsense_service(accounts=None, report=None, list_error=None, report_error=None):
    """MagicMock shaped like ``build("adsense", "v2")``."""
    service = MagicMock()

    list_call = service.accounts.return_value.list.return_value
    if list_error is not None:
        list_call.execute.side_effect = list_error
    else:
        list_call.execute.return_value = {
            "accounts": [SAMPLE_ACCOUNT] if accounts is None else accounts,
        }

    generate = service.accounts.return_value.reports.return_value.generate
    if report_error is not None:
        generate.return_value.execute.side_effect = report_error
    else:
        generate.return_value.execute.return_value = (
            SAMPLE_DATE_REPORT if report is None else report
        )
    return service


@pytest.fixture
def adsense_service():
    return make_adsense_service()


@pytest.fixture
def adsense_service_factory():
    return make_adsense_service


@pytest.fixture
def credentials():
    from ifrit.adsense_client import AdSenseCredentials
    return AdSenseCredentials(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="shhh",
        refresh_token="1//refresh",
    )


# ---------------------------------------------------------------------------
# Markdown fixtures
# ---------------------------------------------------------------------------

ARTICLE_WITH_FRONTMATTER = """---
title: "Best Budget Laptops Review 2026"
date: 2026-02-01
description: Hands-on review of cheap laptops
author: Jane Writer
category: reviews
tags: [laptops, "best picks", budget]
template: review
---

# Best Budget Laptops

We tested twelve laptops under five hundred dollars.
"""

ARTICLE_BLOCK_TAGS = """---
title: How to Brew Cold Coffee
category: Guides
tags:
  - coffee
  - step-by-step
---
Grind the beans coarse and wait.
"""


@pytest.fixture
def article_markdown():
    return ARTICLE_WITH_FRONTMATTER


@pytest.fixture
def block_tags_markdown():
    return ARTICLE_BLOCK_TAGS


@pytest.fixture
def drafts_dir(tmp_path):
    """A drafts folder with loose files and folder-per-article drafts."""
    drafts = tmp_path / "drafts"
    drafts.mkdir()

    (drafts / "loose-post.md").write_text(ARTICLE_WITH_FRONTMATTER, encoding="utf-8")
    (drafts / "no-frontmatter.md").write_text(
        "Intro line\n\n# Plain Heading\n\nSome body text here.\n", encoding="utf-8",
    )
    (drafts / "notes.txt").write_text("not a draft", encoding="utf-8")

    folder = drafts / "big-guide"
    (folder / "cover").mkdir(parents=True)
    (folder / "images").mkdir()
    (folder / "article.md").write_text(ARTICLE_BLOCK_TAGS, encoding="utf-8")
    (folder / "other.md").write_text("# Ignored\n", encoding="utf-8")
    (folder / "cover" / "hero.JPG").write_bytes(b"\xff\xd8")
    (folder / "images" / "step-1.png").write_bytes(b"\x89PNG")
    (folder / "images" / "step-2.webp").write_bytes(b"RIFF")
    (folder / "images" / "readme.txt").write_text("skip", encoding="utf-8")

    second = drafts / "second-guide"
    second.mkdir()
    (second / "zeta.md").write_text("# Zeta\n", encoding="utf-8")
    (second / "alpha.md").write_text("# Alpha Title\nbody words\n", encoding="utf-8")

    (drafts / "empty-folder").mkdir()
    return drafts
