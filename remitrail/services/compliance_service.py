"""
Compliance screening — identity verification, transaction risk, aggregation.

Architecture:
  - IdentityProvider / RiskProvider (protocols) define the interfaces
  - MockIdentityProvider / MockRiskProvider return deterministic test data
  - CircleComplianceProvider calls the Circle compliance API
  - aggregate_compliance() combines both results, most restrictive wins
  - ComplianceScreener runs both checks for a payment and aggregates
  - build_compliance_dashboard() summarises stored screening snapshots

COMPLIANCE_MOCK=true (default) selects the mock providers. Switch to
production by setting COMPLIANCE_MOCK=false and providing COMPLIANCE_API_KEY.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Protocol

import httpx

from remitrail.config import settings
from remitrail.models.payment import PaymentStatus
from remitrail.schemas.compliance import (
    AMLScreeningData,
    ComplianceDashboard,
    ComplianceResult,
    KYCData,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Scoring rules
# ---------------------------------------------------------------------------

IDENTITY_WEIGHT = Decimal("0.4")
RISK_WEIGHT = Decimal("0.6")

RECOMMENDATION_RANK = {"approve": 0, "review": 1, "reject": 2}

REJECT_SCORE = Decimal("80")
REVIEW_SCORE = Decimal("50")
HIGH_RISK_FLAG_SCORE = Decimal("70")


def risk_level_for(score: Decimal) -> str:
    if score < 30:
        return "low"
    if score < 70:
        return "medium"
    return "high"


def recommendation_for(score: Decimal, sanctions_count: int = 0) -> str:
    """Sanctions hit or score >= 80 rejects; score >= 50 needs review."""
    if sanctions_count > 0 or score >= REJECT_SCORE:
        return "reject"
    if score >= REVIEW_SCORE:
        return "review"
    return "approve"


def screening_flags(score: Decimal, sanctions: list, risk_factors: list) -> list[str]:
    flags = []
    if score >= HIGH_RISK_FLAG_SCORE:
        flags.append("high_risk_score")
    if sanctions:
        flags.append("sanctions_detected")
    if risk_factors:
        flags.append("risk_factors_detected")
    return flags


def aggregate_compliance(
    identity: ComplianceResult,
    risk: ComplianceResult,
) -> ComplianceResult:
    """
    Combine identity and risk screening into one result.

    - risk_score: weighted average, identity 0.4 / transaction risk 0.6
    - recommendation: most restrictive of the two (reject > review > approve)
    - flags: union of both
    """
    score = (identity.risk_score * IDENTITY_WEIGHT + risk.risk_score * RISK_WEIGHT).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP,
    )
    recommendation = max(
        (identity.recommendation, risk.recommendation),
        key=RECOMMENDATION_RANK.__getitem__,
    )

    return ComplianceResult(
        success=identity.success and risk.success,
        risk_level=risk_level_for(score),
        risk_score=score,
        recommendation=recommendation,
        flags=set(identity.flags) | set(risk.flags),
        details={
            "identity": identity.details,
            "risk": risk.details,
        },
    )


# ---------------------------------------------------------------------------
# Provider protocols
# ---------------------------------------------------------------------------


class IdentityProvider(Protocol):
    async def screen_identity(self, kyc: KYCData) -> ComplianceResult: ...


class RiskProvider(Protocol):
    async def screen_risk(self, aml: AMLScreeningData) -> ComplianceResult: ...


# ---------------------------------------------------------------------------
# Mock providers (development / testing)
# ---------------------------------------------------------------------------

# Recipient names with predictable identity outcomes
_MOCK_IDENTITY_DB: dict[str, dict] = {
    "test review": {"score": Decimal("55"), "flags": ["identity_partial_match"]},
    "test blocked": {"score": Decimal("95"), "flags": ["watchlist_match"]},
}

# Recipient accounts with predictable screening outcomes
_MOCK_SANCTIONED_ACCOUNTS = {"000000000000"}
_MOCK_HIGH_RISK_ACCOUNTS = {"999999999999"}


class MockIdentityProvider:
    """Approves everyone except the names in the mock identity DB."""

    async def screen_identity(self, kyc: KYCData) -> ComplianceResult:
        name = f"{kyc.first_name} {kyc.last_name}".strip().lower()
        record = _MOCK_IDENTITY_DB.get(name)
        score = record["score"] if record else Decimal("15")
        return ComplianceResult(
            success=True,
            risk_level=risk_level_for(score),
            risk_score=score,
            recommendation=recommendation_for(score),
            flags=record["flags"] if record else [],
            details={
                "verification_id": f"mock_kyc_{kyc.reference}",
                "provider": "mock",
            },
        )


class MockRiskProvider:
    """Risk grows with amount; listed accounts are sanctioned or high risk."""

    async def screen_risk(self, aml: AMLScreeningData) -> ComplianceResult:
        sanctions: list[str] = []
        risk_factors: list[str] = []
        score = min(aml.amount / Decimal("500"), Decimal("45")).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP,
        )
        if aml.counterparty_account in _MOCK_SANCTIONED_ACCOUNTS:
            sanctions.append("mock_sanctions_list")
            score = Decimal("95")
        elif aml.counterparty_account in _MOCK_HIGH_RISK_ACCOUNTS:
            risk_factors.append("high_risk_counterparty")
            score = Decimal("60")

        return ComplianceResult(
            success=True,
            risk_level=risk_level_for(score),
            risk_score=score,
            recommendation=recommendation_for(score, len(sanctions)),
            flags=screening_flags(score, sanctions, risk_factors),
            details={
                "sanctions": sanctions,
                "risk_factors": risk_factors,
                "provider": "mock",
            },
        )


# ---------------------------------------------------------------------------
# Real Circle compliance provider
# ---------------------------------------------------------------------------


class CircleComplianceProvider:
    """Calls the Circle compliance engine for KYC and AML screening."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 30):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _failed(flag: str, error: str) -> ComplianceResult:
        # Unreachable provider: hold for a human rather than approve
        return ComplianceResult(
            success=False,
            risk_level="high",
            risk_score=Decimal("100"),
            recommendation="review",
            flags=[flag],
            details={"error": error, "provider": "circle_compliance"},
        )

    async def screen_identity(self, kyc: KYCData) -> ComplianceResult:
        url = f"{self._base_url}/v1/compliance/kyc"
        payload = {
            "customerReference": kyc.reference,
            "personalDetails": {
                "firstName": kyc.first_name,
                "lastName": kyc.last_name,
                "email": kyc.email,
                "phone": kyc.phone,
            },
            "address": {"country": kyc.country},
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Circle KYC request failed: %s", exc.response.status_code)
            return self._failed("kyc_verification_failed", f"HTTP {exc.response.status_code}")
        except httpx.RequestError as exc:
            logger.error("Circle KYC request error: %s", exc)
            return self._failed("kyc_verification_failed", str(exc))

        score = Decimal(str(data.get("riskScore", 15)))
        return ComplianceResult(
            success=True,
            risk_level=risk_level_for(score),
            risk_score=score,
            recommendation=data.get("recommendation") or recommendation_for(score),
            flags=data.get("flags", []),
            details={
                "verification_id": data.get("verificationId"),
                "status": data.get("status"),
                "provider": "circle_compliance",
            },
        )

    async def screen_risk(self, aml: AMLScreeningData) -> ComplianceResult:
        url = f"{self._base_url}/v1/compliance/screening"
        payload = {
            "walletAddress": aml.wallet_address,
            "counterparty": {
                "name": aml.counterparty_name,
                "account": aml.counterparty_account,
            },
            "amount": str(aml.amount),
            "currency": aml.currency,
            "blockchain": aml.blockchain or "ethereum",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Circle AML request failed: %s", exc.response.status_code)
            return self._failed("aml_screening_failed", f"HTTP {exc.response.status_code}")
        except httpx.RequestError as exc:
            logger.error("Circle AML request error: %s", exc)
            return self._failed("aml_screening_failed", str(exc))

        score = Decimal(str(data.get("riskScore", 0)))
        sanctions = data.get("sanctions") or []
        risk_factors = data.get("riskFactors") or []

        logger.info(
            "Circle AML screening completed: score=%s sanctions=%d risk_factors=%d",
            score, len(sanctions), len(risk_factors),
        )

        return ComplianceResult(
            success=True,
            risk_level=risk_level_for(score),
            risk_score=score,
            recommendation=recommendation_for(score, len(sanctions)),
            flags=screening_flags(score, sanctions, risk_factors),
            details={
                "sanctions": sanctions,
                "risk_factors": risk_factors,
                "provider": "circle_compliance",
            },
        )

    async def ping(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5) as client:
                resp = await client.get(f"{self._base_url}/v1/ping", headers=self._headers)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False


def build_compliance_providers(config=settings) -> tuple[IdentityProvider, RiskProvider]:
    """Return the (identity, risk) providers selected by configuration."""
    if config.COMPLIANCE_MOCK:
        logger.info("Using mock compliance providers")
        return MockIdentityProvider(), MockRiskProvider()

    logger.info("Using CircleComplianceProvider (live API)")
    provider = CircleComplianceProvider(
        base_url=config.COMPLIANCE_API_URL,
        api_key=config.COMPLIANCE_API_KEY,
    )
    return provider, provider


# ---------------------------------------------------------------------------
# Screener — builds inputs from a payment and aggregates
# ---------------------------------------------------------------------------


class ComplianceScreener:
    """Runs identity and risk screening for a payment."""

    def __init__(self, identity_provider: IdentityProvider, risk_provider: RiskProvider):
        self.identity_provider = identity_provider
        self.risk_provider = risk_provider

    @staticmethod
    def build_inputs(payment) -> tuple[KYCData, AMLScreeningData]:
        request = payment.request
        recipient = request.recipient_details
        kyc = KYCData(
            first_name=recipient.first_name,
            last_name=recipient.last_name,
            email=recipient.email,
            phone=recipient.phone,
            country=recipient.address.country,
            reference=payment.id,
        )
        aml = AMLScreeningData(
            amount=request.amount_usd,
            currency=request.from_currency,
            counterparty_name=recipient.full_name,
            counterparty_account=recipient.bank_account.account_number,
            blockchain=settings.BLOCKCHAIN_NETWORK,
        )
        return kyc, aml

    async def screen(self, payment) -> ComplianceResult:
        """Screen identity and risk concurrently and combine the results."""
        kyc, aml = self.build_inputs(payment)
        identity, risk = await asyncio.gather(
            self.identity_provider.screen_identity(kyc),
            self.risk_provider.screen_risk(aml),
        )
        combined = aggregate_compliance(identity, risk)

        logger.info(
            "Compliance check for %s: identity=%s risk=%s combined=%s (score %s)",
            payment.id, identity.recommendation, risk.recommendation,
            combined.recommendation, combined.risk_score,
        )
        return combined

    async def verify_identity(self, kyc: KYCData) -> ComplianceResult:
        """Standalone identity check, outside any payment."""
        result = await self.identity_provider.screen_identity(kyc)
        logger.info(
            "Identity verification %s: %s (score %s)",
            kyc.reference, result.recommendation, result.risk_score,
        )
        return result

    async def screen_transaction(self, aml: AMLScreeningData) -> ComplianceResult:
        """Standalone transaction risk screening, outside any payment."""
        result = await self.risk_provider.screen_risk(aml)
        logger.info(
            "Transaction screening for %s %s: %s (score %s)",
            aml.amount, aml.currency, result.recommendation, result.risk_score,
        )
        return result

    async def ping(self) -> bool:
        checks = []
        for provider in {id(p): p for p in (self.identity_provider, self.risk_provider)}.values():
            ping = getattr(provider, "ping", None)
            if ping is not None:
                checks.append(await ping())
        return all(checks)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def build_compliance_dashboard(payments) -> ComplianceDashboard:
    """
    Summarise the compliance snapshots of ``payments``.

    Payments never screened are ignored. ``awaiting_review`` counts
    payments still parked for a manual decision.
    """
    screened = [p for p in payments if p.compliance is not None]

    by_recommendation = Counter({key: 0 for key in RECOMMENDATION_RANK})
    by_risk_level = Counter({"low": 0, "medium": 0, "high": 0})
    flags: Counter = Counter()
    total_score = Decimal("0")
    awaiting_review = 0

    for payment in screened:
        result = payment.compliance
        by_recommendation[result.recommendation] += 1
        by_risk_level[result.risk_level] += 1
        flags.update(result.flags)
        total_score += result.risk_score
        if payment.status == PaymentStatus.COMPLIANCE_REVIEW and result.recommendation == "review":
            awaiting_review += 1

    average = Decimal("0")
    if screened:
        average = (total_score / len(screened)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return ComplianceDashboard(
        total_screened=len(screened),
        by_recommendation=dict(by_recommendation),
        by_risk_level=dict(by_risk_level),
        flags=dict(sorted(flags.items())),
        average_risk_score=average,
        awaiting_review=awaiting_review,
    )
