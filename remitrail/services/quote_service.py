"""
Quote engine — fee breakdown, FX conversion, and quote issuance.

``calculate_quote`` is a pure function of its inputs; ``QuoteService``
binds it to the configured fee schedule and corridor table and records
issued quotes through the payment store.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable

from remitrail.config import settings
from remitrail.errors import (
    AmountExceedsLimit,
    InvalidAmount,
    QuoteExpired,
    QuoteNotFound,
    UnsupportedCorridor,
)
from remitrail.schemas.quote import FeeBreakdown, Quote

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round2(value: Decimal) -> Decimal:
    """Round a monetary amount to cents (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def generate_quote_id() -> str:
    return f"QT-{uuid.uuid4().hex[:12].upper()}"


def corridor_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency.upper()}-{to_currency.upper()}"


def lookup_rate(
    from_currency: str,
    to_currency: str,
    corridor_rates: dict[str, Decimal],
) -> Decimal:
    """Return the exchange rate for a corridor (1 for same-currency transfers)."""
    if from_currency.upper() == to_currency.upper():
        return Decimal("1")
    key = corridor_key(from_currency, to_currency)
    rate = corridor_rates.get(key)
    if rate is None:
        raise UnsupportedCorridor(f"Unsupported currency corridor: {key}")
    return Decimal(str(rate))


def calculate_quote(
    amount: Decimal,
    from_currency: str,
    to_currency: str,
    *,
    corridor_rates: dict[str, Decimal],
    platform_fee_percent: Decimal,
    network_fee: Decimal,
    max_amount: Decimal,
    compliance_threshold: Decimal,
    ttl_seconds: int,
    estimated_time: str,
    now: datetime,
    quote_id: str | None = None,
) -> Quote:
    """
    Build a quote for converting ``amount`` of ``from_currency``.

    Fees are deducted from the input amount before conversion:
        platform_fee = amount * platform_fee_percent
        total        = platform_fee + network_fee
        output       = round2((amount - total) * rate)

    Intermediate values are kept at full precision; each monetary field
    is rounded exactly once when written into the quote.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount("Invalid amount: must be greater than zero")
    if amount > max_amount:
        raise AmountExceedsLimit(
            f"Amount exceeds maximum limit of {max_amount:,.2f} {from_currency.upper()}"
        )

    rate = lookup_rate(from_currency, to_currency, corridor_rates)

    platform_fee = amount * platform_fee_percent
    total_fees = platform_fee + network_fee
    if amount <= total_fees:
        raise InvalidAmount(
            f"Invalid amount: must exceed total fees of {round2(total_fees)} "
            f"{from_currency.upper()}"
        )
    output_amount = round2((amount - total_fees) * rate)

    fees = FeeBreakdown(
        platform_fee=round2(platform_fee),
        platform_fee_percent=platform_fee_percent,
        network_fee=round2(network_fee),
        fx_spread=Decimal("0.00"),
        partner_fee=Decimal("0.00"),
        total=round2(total_fees),
    )

    return Quote(
        quote_id=quote_id or generate_quote_id(),
        input_amount=round2(amount),
        input_currency=from_currency.upper(),
        output_amount=output_amount,
        output_currency=to_currency.upper(),
        exchange_rate=rate,
        fees=fees,
        corridor=corridor_key(from_currency, to_currency),
        estimated_time=estimated_time,
        compliance_required=amount > compliance_threshold,
        valid_until=now + timedelta(seconds=ttl_seconds),
        created_at=now,
    )


# ---------------------------------------------------------------------------
# QuoteService
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteService:
    """Issues quotes from configured fees and records them in the store."""

    def __init__(self, store, clock: Callable[[], datetime] = _utcnow, config=settings):
        self.store = store
        self.clock = clock
        self.config = config

    async def issue_quote(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
    ) -> Quote:
        """
        Calculate and record a quote.

        Recording is best effort: a store failure is logged and the quote
        is still returned to the caller.
        """
        quote = calculate_quote(
            amount,
            from_currency,
            to_currency,
            corridor_rates=self.config.CORRIDOR_RATES,
            platform_fee_percent=self.config.PLATFORM_FEE_PERCENT,
            network_fee=self.config.NETWORK_FEE_USD,
            max_amount=self.config.MAX_TRANSACTION_AMOUNT_USD,
            compliance_threshold=self.config.COMPLIANCE_THRESHOLD_USD,
            ttl_seconds=self.config.QUOTE_TTL_SECONDS,
            estimated_time=self.config.QUOTE_ESTIMATED_TIME,
            now=self.clock(),
        )

        try:
            await self.store.create_quote(quote)
        except Exception:
            logger.exception("Failed to save quote %s", quote.quote_id)
        else:
            logger.info(
                "Quote %s issued: %s %s -> %s %s",
                quote.quote_id, quote.input_amount, quote.input_currency,
                quote.output_amount, quote.output_currency,
            )

        return quote

    async def get_quote(self, quote_id: str, now: datetime | None = None) -> Quote:
        """Return a live quote or raise QuoteNotFound / QuoteExpired."""
        quote = await self.store.get_quote(quote_id)
        if quote is None:
            raise QuoteNotFound(f"Quote {quote_id} not found")
        if quote.is_expired(now or self.clock()):
            raise QuoteExpired(f"Quote {quote_id} has expired")
        return quote
