"""
Demo payment — quotes and settles one transfer end to end from the command line.

Usage:
    python scripts/run_demo_payment.py [AMOUNT] [TO_CURRENCY] [LAST_NAME]

Runs against the in-memory store with mock compliance providers and the
simulated settlement API, so no database, Redis or partner credentials
are needed. Pass LAST_NAME "Review" or "Blocked" to see a payment held for manual
review or rejected by screening.
"""

import asyncio
import json
import sys
from decimal import Decimal

from remitrail.config import settings
from remitrail.schemas.payment import Address, BankAccount, RecipientDetails
from remitrail.services.factory import build_orchestrator
from remitrail.services.orchestrator import build_status_response


async def main(amount: Decimal, to_currency: str, last_name: str):
    """Quote, submit, wait for the pipeline and print the final status."""
    config = settings.model_copy(update={
        "STORE_BACKEND": "memory",
        "PIPELINE_BACKEND": "asyncio",
        "COMPLIANCE_MOCK": True,
        "SETTLEMENT_API_URL": "",
    })
    orchestrator = build_orchestrator(config)

    quote = await orchestrator.quote_service.issue_quote(amount, "USD", to_currency)
    print(f"Quote {quote.quote_id}: {quote.input_amount} USD -> {quote.output_amount} {quote.output_currency}")

    recipient = RecipientDetails(
        first_name="Test",
        last_name=last_name,
        email="recipient@example.com",
        address=Address(street="1 Main St", city="Mexico City", postal_code="06600", country="MX"),
        bank_account=BankAccount(account_number="012180001234567890", bank_name="Demo Bank"),
    )
    payment = await orchestrator.process_payment(quote.quote_id, "demo-sender", recipient)
    await orchestrator.scheduler.drain()

    view = build_status_response(await orchestrator.get_payment(payment.id))
    print("\n=== Payment Status ===")
    print(json.dumps(view.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    amount = Decimal(sys.argv[1]) if len(sys.argv) > 1 else Decimal("100")
    to_currency = sys.argv[2] if len(sys.argv) > 2 else "MXN"
    last_name = sys.argv[3] if len(sys.argv) > 3 else "Recipient"
    asyncio.run(main(amount, to_currency, last_name))
