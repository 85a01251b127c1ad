"""
Settlement service — fiat/stablecoin conversion, on-chain transfer, bank payout.

Each settlement leg of the pipeline maps to one call here. When
SETTLEMENT_API_URL is empty (dev/test) the service simulates the call and
returns generated references. Otherwise it calls the settlement API and
maps transport/HTTP errors to the pipeline error for that leg.
"""

import logging
import uuid
from decimal import Decimal

import httpx

from remitrail.config import settings
from remitrail.errors import ConversionFailed, PaymentError, SettlementFailed, TransferFailed

logger = logging.getLogger(__name__)


def _reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


class SettlementService:
    """Settlement API client for the conversion, transfer and payout legs."""

    def __init__(
        self,
        base_url: str = settings.SETTLEMENT_API_URL,
        api_key: str = settings.SETTLEMENT_API_KEY,
        timeout: float = settings.SETTLEMENT_TIMEOUT_SECONDS,
        stablecoin: str = settings.STABLECOIN,
        network: str = settings.BLOCKCHAIN_NETWORK,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.stablecoin = stablecoin
        self.network = network

    @property
    def simulated(self) -> bool:
        return not self.base_url

    async def _post(self, path: str, payload: dict, error_cls: type[PaymentError]) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}{path}",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Settlement API %s returned %s", path, exc.response.status_code)
            raise error_cls(
                f"Settlement API returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Settlement API %s unreachable: %s", path, exc)
            raise error_cls(f"Settlement API unreachable: {exc}") from exc

    async def convert_fiat_to_stable(self, amount: Decimal, account: str) -> dict:
        """Convert the sender's fiat amount into the stablecoin."""
        if self.simulated:
            return {
                "reference": _reference("CNV"),
                "amount": str(amount),
                "currency": self.stablecoin,
                "status": "completed",
            }

        data = await self._post(
            "/v1/conversions",
            {"amount": str(amount), "source": "USD", "target": self.stablecoin, "account": account},
            ConversionFailed,
        )
        if not data.get("reference"):
            raise ConversionFailed("Conversion response missing reference")
        return data

    async def transfer_on_chain(self, amount: Decimal, destination: str) -> dict:
        """Move the stablecoin on-chain to the payout partner's wallet."""
        if self.simulated:
            return {
                "tx_reference": f"0x{uuid.uuid4().hex}{uuid.uuid4().hex}",
                "network": self.network,
                "status": "confirmed",
            }

        data = await self._post(
            "/v1/transfers",
            {
                "amount": str(amount),
                "currency": self.stablecoin,
                "destination": destination,
                "network": self.network,
            },
            TransferFailed,
        )
        if not data.get("tx_reference"):
            raise TransferFailed("Transfer response missing transaction reference")
        return data

    async def convert_stable_to_fiat(self, amount: Decimal, currency: str, account: str) -> dict:
        """Convert the stablecoin into the recipient's local currency."""
        if self.simulated:
            return {
                "reference": _reference("CNV"),
                "amount": str(amount),
                "currency": currency,
                "status": "completed",
            }

        data = await self._post(
            "/v1/conversions",
            {"amount": str(amount), "source": self.stablecoin, "target": currency, "account": account},
            ConversionFailed,
        )
        if not data.get("reference"):
            raise ConversionFailed("Conversion response missing reference")
        return data

    async def settle_to_bank(self, amount: Decimal, currency: str, bank_account: dict) -> dict:
        """Pay out the local-currency amount to the recipient's bank account."""
        if self.simulated:
            return {
                "reference": _reference("STL"),
                "amount": str(amount),
                "currency": currency,
                "status": "completed",
            }

        data = await self._post(
            "/v1/payouts",
            {"amount": str(amount), "currency": currency, "bank_account": bank_account},
            SettlementFailed,
        )
        if not data.get("reference"):
            raise SettlementFailed("Payout response missing reference")
        return data

    async def ping(self) -> bool:
        if self.simulated:
            return True
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self.base_url}/v1/health")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False
