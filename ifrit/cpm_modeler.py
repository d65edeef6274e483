"""
CPM Modeler — Ifrit Content Factory

Predicts display-ad CPM for a content niche from a hand-curated reference
table. The prediction is a chain of fixed multipliers applied to the niche's
average CPM:

    base CPM (niche)
      x seasonal factor   (calendar quarter)
      x traffic factor    (organic / social / direct / referral)
      x geo factor        (country code, US = 1.0 baseline)

There is no statistical model behind these numbers. "Confidence" is a display
heuristic derived from the niche sample size and the number of assumptions
layered on top of it.

All CPM values are in cents.

Usage:
    from ifrit.cpm_modeler import predict_cpm, estimate_monthly_revenue
    from ifrit.models import CPMPredictionRequest

    prediction = predict_cpm(CPMPredictionRequest(niche="insurance", month=11))
    estimate = estimate_monthly_revenue(25_000, "technology")

CLI:
    python -m ifrit.cpm_modeler predict --niche insurance --month 11
    python -m ifrit.cpm_modeler predict --topic "best budget apps" --source organic --geo GB
    python -m ifrit.cpm_modeler estimate --views 25000 --niche technology
    python -m ifrit.cpm_modeler top --count 5
"""

from __future__ import annotations

import json
import logging
import math
import sys
from datetime import datetime, timezone
from typing import Optional

from ifrit.models import (
    CPMPrediction,
    CPMPredictionRequest,
    CPMRange,
    NicheCPMData,
    SeasonalFactors,
    SourceFactors,
    TrafficSource,
)

logger = logging.getLogger("cpm_modeler")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_NICHE = "lifestyle"

RANGE_VARIANCE = 0.30          # +/- 30% around the final CPM
CONFIDENCE_BASE = 50
CONFIDENCE_CAP = 90
CONFIDENCE_SAMPLE_DIVISOR = 20
CONFIDENCE_MODIFIER_PENALTY = 5

# US is the baseline; anything unlisted is treated as a mid/low-value market
GEO_FACTORS: dict[str, float] = {
    "US": 1.0,
    "GB": 0.9,
    "CA": 0.85,
    "AU": 0.85,
    "DE": 0.8,
    "FR": 0.75,
    "IN": 0.3,
    "BR": 0.4,
}
DEFAULT_GEO_FACTOR = 0.6

_TABLE_DATE = "2025-01-01"

NICHE_CPM_DATA: dict[str, NicheCPMData] = {
    "technology": NicheCPMData(
        niche="technology", avg_cpm=350, min_cpm=200, max_cpm=600, sample_size=1000,
        seasonal_factors=SeasonalFactors(q1=0.85, q2=0.95, q3=1.0, q4=1.2),
        by_source=SourceFactors(organic=1.2, social=0.7, direct=1.0, referral=0.9),
        last_updated=_TABLE_DATE,
    ),
    "personal finance": NicheCPMData(
        niche="personal finance", avg_cpm=500, min_cpm=300, max_cpm=800, sample_size=800,
        seasonal_factors=SeasonalFactors(q1=1.1, q2=0.9, q3=0.9, q4=1.1),    # tax season
        by_source=SourceFactors(organic=1.3, social=0.6, direct=1.0, referral=1.1),
        last_updated=_TABLE_DATE,
    ),
    "health": NicheCPMData(
        niche="health", avg_cpm=400, min_cpm=250, max_cpm=700, sample_size=900,
        seasonal_factors=SeasonalFactors(q1=1.2, q2=0.9, q3=0.85, q4=0.95),  # resolutions
        by_source=SourceFactors(organic=1.25, social=0.8, direct=1.0, referral=0.95),
        last_updated=_TABLE_DATE,
    ),
    "insurance": NicheCPMData(
        niche="insurance", avg_cpm=1200, min_cpm=800, max_cpm=2000, sample_size=500,
        seasonal_factors=SeasonalFactors(q1=0.9, q2=1.0, q3=1.0, q4=1.1),
        by_source=SourceFactors(organic=1.4, social=0.5, direct=1.1, referral=1.2),
        last_updated=_TABLE_DATE,
    ),
    "legal": NicheCPMData(
        niche="legal", avg_cpm=800, min_cpm=500, max_cpm=1500, sample_size=400,
        seasonal_factors=SeasonalFactors(q1=0.95, q2=1.0, q3=1.0, q4=1.05),
        by_source=SourceFactors(organic=1.35, social=0.4, direct=1.1, referral=1.15),
        last_updated=_TABLE_DATE,
    ),
    "travel": NicheCPMData(
        niche="travel", avg_cpm=300, min_cpm=150, max_cpm=500, sample_size=750,
        seasonal_factors=SeasonalFactors(q1=0.7, q2=1.1, q3=1.2, q4=1.0),    # summer peak
        by_source=SourceFactors(organic=1.15, social=0.9, direct=1.0, referral=0.85),
        last_updated=_TABLE_DATE,
    ),
    "food": NicheCPMData(
        niche="food", avg_cpm=250, min_cpm=150, max_cpm=400, sample_size=850,
        seasonal_factors=SeasonalFactors(q1=0.9, q2=0.95, q3=1.0, q4=1.15),  # holiday recipes
        by_source=SourceFactors(organic=1.1, social=1.1, direct=1.0, referral=0.85),
        last_updated=_TABLE_DATE,
    ),
    "lifestyle": NicheCPMData(
        niche="lifestyle", avg_cpm=200, min_cpm=100, max_cpm=350, sample_size=1200,
        seasonal_factors=SeasonalFactors(q1=0.85, q2=0.95, q3=1.0, q4=1.2),
        by_source=SourceFactors(organic=1.0, social=1.1, direct=1.0, referral=0.9),
        last_updated=_TABLE_DATE,
    ),
    "gaming": NicheCPMData(
        niche="gaming", avg_cpm=280, min_cpm=150, max_cpm=450, sample_size=700,
        seasonal_factors=SeasonalFactors(q1=0.8, q2=0.9, q3=1.0, q4=1.3),    # holiday releases
        by_source=SourceFactors(organic=1.05, social=1.0, direct=1.1, referral=0.95),
        last_updated=_TABLE_DATE,
    ),
    "education": NicheCPMData(
        niche="education", avg_cpm=350, min_cpm=200, max_cpm=550, sample_size=600,
        seasonal_factors=SeasonalFactors(q1=1.0, q2=0.85, q3=1.15, q4=1.0),  # back to school
        by_source=SourceFactors(organic=1.25, social=0.8, direct=1.0, referral=1.1),
        last_updated=_TABLE_DATE,
    ),
}

# Checked in table order; the first niche with a matching keyword wins
NICHE_KEYWORDS: dict[str, list[str]] = {
    "technology": ["tech", "software", "programming", "ai", "computer", "app", "digital"],
    "personal finance": ["money", "invest", "budget", "savings", "retirement", "credit"],
    "health": ["fitness", "nutrition", "wellness", "diet", "medical", "exercise", "weight"],
    "insurance": ["car insurance", "life insurance", "health insurance", "policy"],
    "legal": ["lawyer", "attorney", "law", "lawsuit", "court", "legal"],
    "travel": ["vacation", "trip", "destination", "hotel", "flight", "tourism"],
    "food": ["recipe", "cooking", "restaurant", "meal", "cuisine", "baking"],
    "lifestyle": ["home", "fashion", "beauty", "relationship", "productivity"],
    "gaming": ["games", "video game", "esports", "console", "pc gaming"],
    "education": ["learning", "course", "study", "school", "university", "training"],
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _round_half_up(value: float) -> int:
    """Round half up; ``round()`` rounds half to even."""
    return int(math.floor(value + 0.5))


def _format_dollars(cents: float) -> str:
    return f"${cents / 100:.2f}"


def _format_adjustment(factor: float) -> str:
    """Render a multiplier as a signed percentage, e.g. 1.25 -> '+25%'."""
    sign = "+" if factor > 1 else ""
    return f"{sign}{(factor - 1) * 100:.0f}%"


def find_matching_niche(text: str) -> str:
    """Classify free text into one of the reference niches.

    Exact niche names match directly; otherwise the first niche whose keyword
    appears as a substring wins. Falls back to ``lifestyle``.
    """
    lowered = text.strip().lower()
    if lowered in NICHE_CPM_DATA:
        return lowered
    for niche, keywords in NICHE_KEYWORDS.items():
        if any(kw in lowered for kw in keywords):
            return niche
    return DEFAULT_NICHE


def get_quarter(month: Optional[int] = None) -> int:
    """Return the calendar quarter (1-4) for *month*, or for the current month."""
    m = month or datetime.now(timezone.utc).month
    if m <= 3:
        return 1
    if m <= 6:
        return 2
    if m <= 9:
        return 3
    return 4


def resolve_niche(request: CPMPredictionRequest) -> str:
    """A niche that names a table row wins; otherwise classify the topic (or niche text)."""
    direct = (request.niche or "").strip().lower()
    if direct in NICHE_CPM_DATA:
        return direct
    return find_matching_niche(request.topic or request.niche or "")


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------

def predict_cpm(request: CPMPredictionRequest) -> CPMPrediction:
    """Predict CPM (cents) for the given niche / season / traffic / geo mix."""
    niche = resolve_niche(request)
    geo = (request.geo_target or "").strip().upper()
    data = NICHE_CPM_DATA.get(niche, NICHE_CPM_DATA[DEFAULT_NICHE])
    factors: list[str] = []

    cpm = float(data.avg_cpm)
    factors.append(f"Base CPM for {data.niche}: {_format_dollars(cpm)}")

    quarter = get_quarter(request.month)
    season_factor = data.seasonal_factors.for_quarter(quarter)
    cpm *= season_factor
    if season_factor != 1.0:
        factors.append(f"Q{quarter} seasonal adjustment: {_format_adjustment(season_factor)}")

    if request.traffic_source is not None:
        source_factor = data.by_source.for_source(request.traffic_source) if data.by_source else 1.0
        cpm *= source_factor
        factors.append(
            f"{request.traffic_source.value} traffic: {_format_adjustment(source_factor)}"
        )

    if geo:
        geo_factor = GEO_FACTORS.get(geo, DEFAULT_GEO_FACTOR)
        cpm *= geo_factor
        factors.append(f"{geo} geo target: {_format_adjustment(geo_factor)}")

    confidence = min(
        CONFIDENCE_CAP,
        CONFIDENCE_BASE + data.sample_size / CONFIDENCE_SAMPLE_DIVISOR,
    )
    if request.traffic_source is not None:
        confidence -= CONFIDENCE_MODIFIER_PENALTY
    if geo:
        confidence -= CONFIDENCE_MODIFIER_PENALTY

    prediction = CPMPrediction(
        estimated_cpm=_round_half_up(cpm),
        confidence=_round_half_up(confidence),
        range=CPMRange(
            min=_round_half_up(cpm * (1 - RANGE_VARIANCE)),
            max=_round_half_up(cpm * (1 + RANGE_VARIANCE)),
        ),
        factors=factors,
    )
    logger.debug(
        "Predicted CPM %d for niche=%s quarter=Q%d (confidence %d)",
        prediction.estimated_cpm, niche, quarter, prediction.confidence,
    )
    return prediction


def estimate_monthly_revenue(
    page_views: int,
    niche: str,
    month: Optional[int] = None,
    traffic_source: Optional[TrafficSource | str] = None,
    geo_target: Optional[str] = None,
) -> dict:
    """Estimate revenue (cents) for *page_views* at the predicted CPM.

    Returns ``{"estimated_revenue", "cpm_used", "breakdown"}``.
    """
    prediction = predict_cpm(CPMPredictionRequest(
        niche=niche,
        month=month,
        traffic_source=traffic_source,
        geo_target=geo_target,
    ))
    revenue_cents = page_views / 1000 * prediction.estimated_cpm
    return {
        "estimated_revenue": _round_half_up(revenue_cents),
        "cpm_used": prediction.estimated_cpm,
        "breakdown": (
            f"{page_views:,} views x {_format_dollars(prediction.estimated_cpm)} CPM"
            f" = {_format_dollars(revenue_cents)}"
        ),
    }


def get_top_niches_by_cpm(limit: int = 5) -> list[dict]:
    """Return ``[{"niche", "avg_cpm"}]`` sorted by average CPM, highest first."""
    ranked = sorted(NICHE_CPM_DATA.values(), key=lambda n: n.avg_cpm, reverse=True)
    return [{"niche": n.niche, "avg_cpm": n.avg_cpm} for n in ranked[:limit]]


def get_niche_cpm_data(niche: str) -> Optional[NicheCPMData]:
    return NICHE_CPM_DATA.get(niche.strip().lower())


# ===================================================================
# CLI Entry Point
# ===================================================================


def main() -> None:
    """CLI entry point: python -m ifrit.cpm_modeler <command> [options]."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="cpm_modeler",
        description="Ifrit CPM Modeler — niche CPM predictions and revenue estimates",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def _add_modifiers(p: argparse.ArgumentParser) -> None:
        p.add_argument("--month", type=int, choices=range(1, 13), help="Month (1-12)")
        p.add_argument("--source", choices=[s.value for s in TrafficSource],
                       help="Traffic source")
        p.add_argument("--geo", help="Country code (US, GB, DE, ...)")

    p_pred = subparsers.add_parser("predict", help="Predict CPM for a niche or topic")
    p_pred.add_argument("--niche", default="", help="Niche name")
    p_pred.add_argument("--topic", help="Free-text topic to classify")
    p_pred.add_argument("--json", action="store_true", help="Print JSON")
    _add_modifiers(p_pred)

    p_est = subparsers.add_parser("estimate", help="Estimate monthly revenue")
    p_est.add_argument("--views", type=int, required=True, help="Monthly page views")
    p_est.add_argument("--niche", required=True, help="Niche name")
    _add_modifiers(p_est)

    p_top = subparsers.add_parser("top", help="Highest-CPM niches")
    p_top.add_argument("--count", type=int, default=5, help="Number of niches (default: 5)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.command == "predict":
        if not args.niche and not args.topic:
            parser.error("predict requires --niche or --topic")
        prediction = predict_cpm(CPMPredictionRequest(
            niche=args.niche,
            topic=args.topic,
            traffic_source=args.source,
            month=args.month,
            geo_target=args.geo,
        ))
        if args.json:
            print(json.dumps(prediction.to_dict(), indent=2))
            return
        print("CPM PREDICTION")
        print(f"{'=' * 40}")
        print(f"Estimated CPM: {_format_dollars(prediction.estimated_cpm)}")
        print(f"Range:         {_format_dollars(prediction.range.min)}"
              f" - {_format_dollars(prediction.range.max)}")
        print(f"Confidence:    {prediction.confidence}%")
        print("\nFactors:")
        for f in prediction.factors:
            print(f"  - {f}")

    elif args.command == "estimate":
        result = estimate_monthly_revenue(
            args.views, args.niche,
            month=args.month, traffic_source=args.source, geo_target=args.geo,
        )
        print(result["breakdown"])

    elif args.command == "top":
        print(f"TOP {args.count} NICHES BY CPM")
        print(f"{'=' * 40}")
        for i, row in enumerate(get_top_niches_by_cpm(args.count), 1):
            print(f"  {i}. {row['niche']:<22} {_format_dollars(row['avg_cpm']):>8}")


if __name__ == "__main__":
    main()
