"""
Rail catalog — the settlement rails a transfer can be routed over.

Rails are static: cost, typical settlement time, capacity, coverage and
screening capabilities never change at runtime.
"""

from decimal import Decimal

from remitrail.schemas.rail import Rail, RailCompliance

GLOBAL_REGION = "Global"

FULL_COMPLIANCE = RailCompliance(aml=True, kyc=True, sanctions=True)
NO_COMPLIANCE = RailCompliance(aml=False, kyc=False, sanctions=False)

RAIL_CATALOG: tuple[Rail, ...] = (
    Rail(
        id="stripe-traditional",
        name="Stripe Traditional",
        type="traditional",
        cost_percentage=Decimal("2.9"),
        settlement_time="2-3 business days",
        settlement_seconds=216_000,
        max_amount=Decimal("999999"),
        supported_currencies=frozenset({"USD", "GBP", "EUR", "CAD", "AUD"}),
        supported_regions=frozenset({"US", "UK", "EU", "CA", "AU"}),
        compliance=FULL_COMPLIANCE,
        reliability=Decimal("99.9"),
        providers=("stripe",),
    ),
    Rail(
        id="circle-usdc",
        name="Circle USDC",
        type="blockchain",
        cost_percentage=Decimal("0.5"),
        settlement_time="2-5 minutes",
        settlement_seconds=300,
        max_amount=Decimal("100000"),
        supported_currencies=frozenset({"USDC", "USD"}),
        supported_regions=frozenset({"US", "UK", "EU", "MX", "NG"}),
        compliance=FULL_COMPLIANCE,
        reliability=Decimal("99.8"),
        providers=("circle",),
    ),
    Rail(
        id="solana-usdc",
        name="Solana USDC",
        type="blockchain",
        cost_percentage=Decimal("0.1"),
        settlement_time="30 seconds",
        settlement_seconds=30,
        max_amount=Decimal("50000"),
        supported_currencies=frozenset({"USDC", "SOL"}),
        supported_regions=frozenset({GLOBAL_REGION}),
        compliance=NO_COMPLIANCE,
        reliability=Decimal("99.95"),
        providers=("solana",),
    ),
    Rail(
        id="hybrid-rail",
        name="Stripe + Blockchain Hybrid",
        type="hybrid",
        cost_percentage=Decimal("1.5"),
        settlement_time="5-10 minutes",
        settlement_seconds=600,
        max_amount=Decimal("75000"),
        supported_currencies=frozenset({"USD", "USDC", "GBP", "MXN", "NGN"}),
        supported_regions=frozenset({"US", "UK", "MX", "NG"}),
        compliance=FULL_COMPLIANCE,
        reliability=Decimal("99.99"),
        providers=("stripe", "circle"),
    ),
    Rail(
        id="triple-redundant",
        name="Stripe + Circle + Alchemy",
        type="hybrid",
        cost_percentage=Decimal("1.2"),
        settlement_time="30 seconds - 2 days",
        settlement_seconds=120,
        max_amount=Decimal("250000"),
        supported_currencies=frozenset({"USD", "USDC", "GBP", "EUR"}),
        supported_regions=frozenset({"US", "UK", "EU"}),
        compliance=FULL_COMPLIANCE,
        reliability=Decimal("99.999"),
        providers=("stripe", "circle", "alchemy"),
    ),
)

# Home region of each currency, for callers that only know the corridor
CURRENCY_REGIONS: dict[str, str] = {
    "USD": "US",
    "USDC": GLOBAL_REGION,
    "MXN": "MX",
    "NGN": "NG",
    "PHP": "PH",
    "GBP": "UK",
    "EUR": "EU",
    "CAD": "CA",
    "AUD": "AU",
}


def get_rail(rail_id: str, catalog: tuple[Rail, ...] = RAIL_CATALOG) -> Rail | None:
    for rail in catalog:
        if rail.id == rail_id:
            return rail
    return None


def region_for_currency(currency: str) -> str:
    """Map a currency to its home region (unknown currencies map to themselves)."""
    code = currency.upper()
    return CURRENCY_REGIONS.get(code, code)
