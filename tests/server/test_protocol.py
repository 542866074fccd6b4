"""
Tests for the challenge-response PaymentGate.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from algox402.encoding import decode_payment_response
from algox402.exceptions import FacilitatorHttpError
from algox402.server import ChallengeIssued, Granted, PaymentGate, Rejected, RouteConfig
from algox402.types import Reason, SettleResponse, VerifyResponse

URL = "https://api.example.com/weather?city=paris"


@pytest.fixture
def route(seller_address):
    return RouteConfig(
        pay_to=seller_address,
        max_amount_required=1000,
        network="algorand-testnet",
        description="Weather report",
    )


@pytest.fixture
def mock_facilitator():
    facilitator = MagicMock()
    facilitator.verify = AsyncMock(return_value=VerifyResponse(isValid=True))
    facilitator.settle = AsyncMock(
        return_value=SettleResponse(success=True, transaction="TX1", network="algorand-testnet")
    )
    return facilitator


class TestBuildRequirements:
    def test_requirements_from_route(self, mock_facilitator, route):
        requirements = PaymentGate(mock_facilitator, route).build_requirements(URL)
        assert requirements.scheme == "exact"
        assert requirements.network == "algorand-testnet"
        assert requirements.pay_to == route.pay_to
        assert requirements.asset == "0"
        assert requirements.max_amount_required == "1000"
        assert requirements.resource == URL
        assert requirements.max_timeout_seconds == 60

    def test_deterministic(self, mock_facilitator, route):
        gate = PaymentGate(mock_facilitator, route)
        assert gate.build_requirements(URL) == gate.build_requirements(URL)


class TestProcess:
    @pytest.mark.anyio
    async def test_no_header_issues_challenge(self, mock_facilitator, route):
        outcome = await PaymentGate(mock_facilitator, route).process(None, URL)
        assert isinstance(outcome, ChallengeIssued)
        body = outcome.body.model_dump(by_alias=True)
        assert body["x402Version"] == 1
        assert body["accepts"][0]["resource"] == URL
        assert body["accepts"][0]["maxAmountRequired"] == "1000"
        mock_facilitator.verify.assert_not_called()

    @pytest.mark.anyio
    async def test_granted(self, mock_facilitator, route, make_avm_header, payer_account):
        header = make_avm_header()
        outcome = await PaymentGate(mock_facilitator, route).process(header, URL)

        assert isinstance(outcome, Granted)
        assert outcome.settlement.transaction == "TX1"
        assert decode_payment_response(outcome.header_value) == {
            "success": True,
            "transaction": "TX1",
            "network": "algorand-testnet",
            "payer": payer_account[1],
        }

        requirements = mock_facilitator.verify.await_args.args[1]
        assert requirements == mock_facilitator.settle.await_args.args[1]
        assert requirements.resource == URL

    @pytest.mark.anyio
    async def test_rejected_at_verify(self, mock_facilitator, route, make_avm_header):
        mock_facilitator.verify.return_value = VerifyResponse(
            isValid=False, invalidReason=Reason.AMOUNT_TOO_LARGE
        )
        outcome = await PaymentGate(mock_facilitator, route).process(make_avm_header(), URL)
        assert outcome == Rejected(stage="verify", reason=Reason.AMOUNT_TOO_LARGE)
        assert outcome.error == "payment_invalid"
        mock_facilitator.settle.assert_not_called()

    @pytest.mark.anyio
    async def test_rejected_at_settle(self, mock_facilitator, route, make_avm_header):
        mock_facilitator.settle.return_value = SettleResponse(
            success=False, error=Reason.SETTLEMENT_PENDING
        )
        outcome = await PaymentGate(mock_facilitator, route).process(make_avm_header(), URL)
        assert outcome == Rejected(stage="settle", reason=Reason.SETTLEMENT_PENDING)
        assert outcome.error == "payment_not_settled"

    @pytest.mark.anyio
    async def test_verify_transport_error(self, mock_facilitator, route, make_avm_header):
        mock_facilitator.verify.side_effect = FacilitatorHttpError("/verify", "connection refused")
        outcome = await PaymentGate(mock_facilitator, route).process(make_avm_header(), URL)
        assert outcome.reason == Reason.VERIFY_HTTP_ERROR
        assert outcome.error == Reason.VERIFY_HTTP_ERROR

    @pytest.mark.anyio
    async def test_settle_transport_error(self, mock_facilitator, route, make_avm_header):
        mock_facilitator.settle.side_effect = FacilitatorHttpError("/settle", "HTTP 502")
        outcome = await PaymentGate(mock_facilitator, route).process(make_avm_header(), URL)
        assert outcome == Rejected(stage="settle", reason=Reason.SETTLE_HTTP_ERROR)

    @pytest.mark.anyio
    async def test_payer_unknown_for_undecodable_header(self, mock_facilitator, route):
        outcome = await PaymentGate(mock_facilitator, route).process("opaque", URL)
        assert isinstance(outcome, Granted)
        assert outcome.payment_response.payer is None
