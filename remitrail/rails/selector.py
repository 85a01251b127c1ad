"""
Rail selection — filter the catalog by hard constraints, then score.

Scoring per priority (higher wins):
    cost:        (5 - cost%) * 40 + reliability * 0.6
    speed:       reliability, +50 when typical settlement is under a minute
    reliability: reliability * 1.5 + 10 per underlying provider

Ties are broken by rail id ascending, so selection is a pure function of
the requirements and the catalog.
"""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from remitrail.errors import NoSuitableRail
from remitrail.rails.catalog import GLOBAL_REGION, RAIL_CATALOG
from remitrail.schemas.rail import Rail, RailRequirements, RouteSelection

logger = logging.getLogger(__name__)

COST_CEILING_PERCENT = Decimal("5")
COST_WEIGHT = Decimal("40")
COST_RELIABILITY_WEIGHT = Decimal("0.6")
SUB_MINUTE_BONUS = Decimal("50")
SUB_MINUTE_SECONDS = 60
RELIABILITY_WEIGHT = Decimal("1.5")
PROVIDER_REDUNDANCY_BONUS = Decimal("10")


def is_eligible(rail: Rail, req: RailRequirements) -> bool:
    """Capacity, currency and region constraints (compliance checked separately)."""
    if rail.max_amount < req.amount:
        return False
    if req.from_currency.upper() not in rail.supported_currencies:
        return False
    regions = rail.supported_regions
    return req.from_region in regions or GLOBAL_REGION in regions


def meets_compliance(rail: Rail) -> bool:
    return rail.compliance.aml and rail.compliance.kyc


def score_rail(rail: Rail, priority: str) -> Decimal:
    if priority == "cost":
        score = (
            (COST_CEILING_PERCENT - rail.cost_percentage) * COST_WEIGHT
            + rail.reliability * COST_RELIABILITY_WEIGHT
        )
    elif priority == "speed":
        score = rail.reliability
        if rail.settlement_seconds < SUB_MINUTE_SECONDS:
            score += SUB_MINUTE_BONUS
    elif priority == "reliability":
        score = (
            rail.reliability * RELIABILITY_WEIGHT
            + PROVIDER_REDUNDANCY_BONUS * len(rail.providers)
        )
    else:
        raise ValueError(f"Unknown rail priority: {priority}")
    return score


def rank_rails(
    req: RailRequirements,
    catalog: tuple[Rail, ...] = RAIL_CATALOG,
) -> list[tuple[Rail, Decimal]]:
    """Return eligible rails with their scores, best first."""
    candidates = [r for r in catalog if is_eligible(r, req)]
    if req.compliance_required:
        candidates = [r for r in candidates if meets_compliance(r)]

    scored = [(rail, score_rail(rail, req.priority)) for rail in candidates]
    scored.sort(key=lambda pair: (-pair[1], pair[0].id))
    return scored


def select_rail(
    req: RailRequirements,
    catalog: tuple[Rail, ...] = RAIL_CATALOG,
) -> RouteSelection:
    """
    Pick a primary rail and (when available) a fallback.

    Raises NoSuitableRail when no rail survives the filters.
    """
    ranked = rank_rails(req, catalog)
    if not ranked:
        raise NoSuitableRail(
            f"No payment rail supports {req.amount} {req.from_currency.upper()} "
            f"from {req.from_region}"
            + (" with full compliance" if req.compliance_required else "")
        )

    primary, primary_score = ranked[0]
    fallback, fallback_score = ranked[1] if len(ranked) > 1 else (None, None)

    estimated_cost = (req.amount * primary.cost_percentage / Decimal("100")).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP,
    )

    logger.debug(
        "Rail selection (%s): primary=%s fallback=%s candidates=%d",
        req.priority, primary.id, fallback.id if fallback else None, len(ranked),
    )

    return RouteSelection(
        primary=primary,
        fallback=fallback,
        primary_score=primary_score,
        fallback_score=fallback_score,
        estimated_cost=estimated_cost,
        estimated_time=primary.settlement_time,
    )
