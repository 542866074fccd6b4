"""
Tests for the payer side: authorization helpers, X402Client and the HTTP adapters.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from algox402.clients import (
    DirectProofHttpClient,
    X402Client,
    X402HttpClient,
    create_authorization,
    create_nonce,
    signing_domain_for,
)
from algox402.config import NetworkConfig
from algox402.encoding import decode_payment_header
from algox402.exceptions import UnsupportedNetworkError
from algox402.requirements import validate
from algox402.signers import (
    AvmClientSigner,
    AvmSignatureScheme,
    EvmClientSigner,
    EvmSignatureScheme,
)
from algox402.types import PaymentRequired, PaymentRequirements


@pytest.fixture
def requirements(avm_requirements):
    return avm_requirements.model_copy(update={"resource": "https://api.example.com/weather"})


@pytest.fixture
def avm_client(payer_account):
    private_key, _ = payer_account
    return X402Client().register(["algorand-testnet"], AvmClientSigner(private_key))


class TestHelpers:
    def test_nonce_formats(self):
        evm_nonce = create_nonce("base-sepolia")
        assert evm_nonce.startswith("0x")
        assert len(evm_nonce) == 2 + 64

        avm_nonce = create_nonce("algorand-testnet")
        assert len(base64.b64decode(avm_nonce)) == 32
        assert avm_nonce != create_nonce("algorand-testnet")

    def test_create_authorization_defaults(self, requirements):
        auth = create_authorization("PAYER", requirements, now=1000)
        assert auth.payer == "PAYER"
        assert auth.seller == requirements.pay_to
        assert auth.asset_id == "0"
        assert auth.amount == "1000000"
        assert auth.valid_after == "1000"
        assert auth.valid_before == "1060"
        assert auth.resource == "https://api.example.com/weather"

    def test_create_authorization_overrides(self, requirements):
        auth = create_authorization("PAYER", requirements, amount=5, valid_for_seconds=10, now=0)
        assert auth.amount == "5"
        assert auth.valid_before == "10"

    def test_no_domain_on_algorand(self, requirements):
        assert signing_domain_for(requirements) is None

    def test_evm_domain(self):
        usdc = NetworkConfig.get_usdc_address("base-sepolia")
        requirements = PaymentRequirements(
            scheme="exact",
            network="base-sepolia",
            payTo="0x" + "22" * 20,
            asset=usdc,
            maxAmountRequired="1",
        )
        domain = signing_domain_for(requirements)
        assert domain.chain_id == 84532
        assert domain.verifying_contract == usdc
        assert domain.name == NetworkConfig.USDC_DOMAIN_NAME


class TestX402Client:
    @pytest.mark.anyio
    async def test_header_passes_matching_and_signature(
        self, avm_client, requirements, payer_account
    ):
        raw = await avm_client.create_payment_header(requirements)

        header = decode_payment_header(raw)
        assert header.x402_version == 1
        assert header.network == "algorand-testnet"

        match = validate(header, requirements)
        assert match.ok
        auth = match.signed.authorization
        assert auth.payer == payer_account[1]
        assert AvmSignatureScheme().check(auth, match.signed.signature) is None

    @pytest.mark.anyio
    async def test_evm_header_verifies(self, evm_private_key):
        requirements = PaymentRequirements(
            scheme="exact",
            network="base-sepolia",
            payTo="0x" + "22" * 20,
            asset=NetworkConfig.get_usdc_address("base-sepolia"),
            maxAmountRequired="1000",
        )
        client = X402Client().register(["base-sepolia"], EvmClientSigner(evm_private_key))

        raw = await client.create_payment_header(requirements)
        match = validate(decode_payment_header(raw), requirements)
        assert match.ok

        scheme = EvmSignatureScheme.for_network("base-sepolia")
        domain = scheme.domain_for(requirements)
        assert scheme.check(match.signed.authorization, match.signed.signature, domain) is None

    def test_select_first_supported(self, avm_client, requirements):
        other = requirements.model_copy(update={"network": "base"})
        assert avm_client.select_payment_requirements([other, requirements]) is requirements

    def test_select_nothing_supported(self, avm_client, requirements):
        other = requirements.model_copy(update={"network": "base"})
        with pytest.raises(UnsupportedNetworkError):
            avm_client.select_payment_requirements([other])

    @pytest.mark.anyio
    async def test_unregistered_network(self, avm_client, requirements):
        with pytest.raises(UnsupportedNetworkError):
            await avm_client.create_payment_header(
                requirements.model_copy(update={"network": "algorand-mainnet"})
            )

    @pytest.mark.anyio
    async def test_handle_payment_with_selector(self, avm_client, requirements):
        cheap = requirements.model_copy(update={"max_amount_required": "10"})
        raw = await avm_client.handle_payment([requirements, cheap], selector=lambda a: a[-1])
        header = decode_payment_header(raw)
        assert header.payload["authorization"]["amount"] == "10"


class TestX402HttpClient:
    @pytest.mark.anyio
    async def test_pays_and_retries(self, avm_client, requirements):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            payment = request.headers.get("X-PAYMENT")
            seen.append(payment)
            if payment is None:
                body = PaymentRequired(x402Version=1, accepts=[requirements])
                return httpx.Response(402, json=body.model_dump(by_alias=True, exclude_none=True))
            match = validate(decode_payment_header(payment), requirements)
            assert match.ok
            return httpx.Response(200, json={"forecast": "sunny"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            response = await X402HttpClient(http, avm_client).get(requirements.resource)

        assert response.status_code == 200
        assert seen[0] is None
        assert seen[1] is not None

    @pytest.mark.anyio
    async def test_non_402_passes_through(self, avm_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            response = await X402HttpClient(http, avm_client).post("https://api.example.com/x")
        assert response.json() == {"ok": True}

    @pytest.mark.anyio
    async def test_unparseable_402_returned(self, avm_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(402, text="pay up")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            response = await X402HttpClient(http, avm_client).get("https://api.example.com/x")
        assert response.status_code == 402


class TestDirectProofHttpClient:
    @pytest.mark.anyio
    async def test_pays_then_presents_proof(self):
        url = "https://api.example.com/premium"
        payment = {
            "version": "algox402-1.0",
            "chain": "algorand-testnet",
            "assetId": 0,
            "amount": 2500,
            "sellerAddress": "SELLER",
            "description": "GET /premium",
            "expiry": 9999999999,
            "nonce": "req-1",
            "facilitatorAllowed": True,
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if "payment_proof" not in request.url.params:
                return httpx.Response(402, json={"payment": payment})
            assert request.url.params["payment_proof"] == "TX7"
            assert request.headers["X-Algox402-Nonce"] == "req-1"
            return httpx.Response(200, json={"premium": True})

        ledger = MagicMock()
        ledger.get_address.return_value = "BUYER"
        ledger.transfer = AsyncMock(return_value="TX7")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            response = await DirectProofHttpClient(http, ledger).get(url)

        assert response.json() == {"premium": True}
        ledger.transfer.assert_awaited_once_with(
            sender="BUYER",
            receiver="SELLER",
            amount=2500,
            asset="0",
            note=f"algox402:req-1:{url}",
        )
