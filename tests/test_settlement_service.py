"""Tests for the settlement service — simulated mode and API error mapping."""

import json
from decimal import Decimal

import httpx
import pytest

from remitrail.errors import ConversionFailed, SettlementFailed, TransferFailed
from remitrail.services import settlement_service
from remitrail.services.settlement_service import SettlementService


def _patch_httpx(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(settlement_service.httpx, "AsyncClient", factory)


@pytest.fixture
def live_service():
    return SettlementService(base_url="https://settlement.test/", api_key="secret", timeout=5)


# ---------------------------------------------------------------------------
# Simulated mode (empty base URL)
# ---------------------------------------------------------------------------


class TestSimulated:

    @pytest.mark.asyncio
    async def test_every_leg_returns_a_reference(self):
        svc = SettlementService(base_url="")
        assert svc.simulated is True

        inbound = await svc.convert_fiat_to_stable(Decimal("98.49"), "sender-1")
        transfer = await svc.transfer_on_chain(Decimal("98.49"), "maria@example.mx")
        outbound = await svc.convert_stable_to_fiat(Decimal("98.49"), "MXN", "maria@example.mx")
        payout = await svc.settle_to_bank(Decimal("1822.07"), "MXN", {"account_number": "0121"})

        assert inbound["reference"].startswith("CNV-")
        assert outbound["reference"].startswith("CNV-")
        assert payout["reference"].startswith("STL-")
        assert payout["currency"] == "MXN"
        assert transfer["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_transaction_hash_shape(self):
        transfer = await SettlementService(base_url="").transfer_on_chain(Decimal("10"), "dest")
        assert transfer["tx_reference"].startswith("0x")
        assert len(transfer["tx_reference"]) == 66

    @pytest.mark.asyncio
    async def test_ping(self):
        assert await SettlementService(base_url="").ping() is True


# ---------------------------------------------------------------------------
# Live API
# ---------------------------------------------------------------------------


class TestLiveApi:

    @pytest.mark.asyncio
    async def test_transfer_posts_to_api(self, monkeypatch, live_service):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"tx_reference": "0xfeed"})

        _patch_httpx(monkeypatch, handler)
        result = await live_service.transfer_on_chain(Decimal("98.49"), "wallet-1")

        assert result["tx_reference"] == "0xfeed"
        assert seen["path"] == "/v1/transfers"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["amount"] == "98.49"
        assert seen["body"]["network"] == "solana"

    @pytest.mark.asyncio
    async def test_conversion_http_error(self, monkeypatch, live_service):
        _patch_httpx(monkeypatch, lambda request: httpx.Response(500))
        with pytest.raises(ConversionFailed, match="HTTP 500"):
            await live_service.convert_fiat_to_stable(Decimal("10"), "sender-1")

    @pytest.mark.asyncio
    async def test_transfer_transport_error(self, monkeypatch, live_service):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        _patch_httpx(monkeypatch, handler)
        with pytest.raises(TransferFailed, match="unreachable"):
            await live_service.transfer_on_chain(Decimal("10"), "wallet-1")

    @pytest.mark.asyncio
    async def test_payout_http_error(self, monkeypatch, live_service):
        _patch_httpx(monkeypatch, lambda request: httpx.Response(422, json={"error": "bad account"}))
        with pytest.raises(SettlementFailed):
            await live_service.settle_to_bank(Decimal("1822.07"), "MXN", {"account_number": "0121"})

    @pytest.mark.asyncio
    async def test_missing_reference_is_a_failure(self, monkeypatch, live_service):
        _patch_httpx(monkeypatch, lambda request: httpx.Response(200, json={"status": "queued"}))
        with pytest.raises(ConversionFailed, match="missing reference"):
            await live_service.convert_stable_to_fiat(Decimal("10"), "MXN", "acct")
