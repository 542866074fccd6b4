"""
Tests for X402Facilitator verify/settle orchestration.
"""

import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from algosdk import account

from algox402.encoding import settlement_key
from algox402.facilitator import X402Facilitator
from algox402.settlement import InMemorySettlementStore, SettlementState
from algox402.signers import AvmSignatureScheme
from algox402.types import Reason


@pytest.fixture
def mock_adapter():
    adapter = MagicMock()
    adapter.get_address.return_value = "FACILITATOR"
    adapter.transfer = AsyncMock(return_value="TX1")
    return adapter


@pytest.fixture
def facilitator(mock_adapter):
    return X402Facilitator().register(["algorand-testnet"], AvmSignatureScheme(), mock_adapter)


class TestSupported:
    def test_supported_kinds(self, mock_adapter):
        facilitator = X402Facilitator().register(
            ["algorand-testnet", "algorand-mainnet"], AvmSignatureScheme(), mock_adapter
        )
        kinds = facilitator.supported().kinds
        assert {(k.x402_version, k.scheme, k.network) for k in kinds} == {
            (1, "exact", "algorand-testnet"),
            (1, "exact", "algorand-mainnet"),
        }


class TestVerify:
    @pytest.mark.anyio
    async def test_valid_authorization(self, facilitator, avm_requirements, make_avm_header):
        result = await facilitator.verify(make_avm_header(), avm_requirements)
        assert result.is_valid is True
        assert result.invalid_reason is None

    @pytest.mark.anyio
    async def test_amount_too_large(self, facilitator, avm_requirements, make_avm_header):
        result = await facilitator.verify(make_avm_header(amount="1000001"), avm_requirements)
        assert result.is_valid is False
        assert result.invalid_reason == Reason.AMOUNT_TOO_LARGE

    @pytest.mark.anyio
    async def test_wrong_key(self, facilitator, avm_requirements, make_avm_header):
        other_key, _ = account.generate_account()
        result = await facilitator.verify(make_avm_header(sign_with=other_key), avm_requirements)
        assert result.invalid_reason == Reason.INVALID_SIGNATURE

    @pytest.mark.anyio
    async def test_unsupported_version(self, facilitator, avm_requirements, make_avm_header):
        result = await facilitator.verify(make_avm_header(), avm_requirements, x402_version=2)
        assert result.invalid_reason == Reason.UNSUPPORTED_X402_VERSION

    @pytest.mark.anyio
    async def test_header_version_checked(self, facilitator, avm_requirements, make_avm_header):
        data = json.loads(base64.b64decode(make_avm_header()))
        data["x402Version"] = 2
        raw = base64.b64encode(json.dumps(data).encode()).decode()
        result = await facilitator.verify(raw, avm_requirements)
        assert result.invalid_reason == Reason.UNSUPPORTED_X402_VERSION

    @pytest.mark.anyio
    async def test_undecodable_header(self, facilitator, avm_requirements):
        result = await facilitator.verify("%%%", avm_requirements)
        assert result.invalid_reason == Reason.MISSING_PAYLOAD

    @pytest.mark.anyio
    async def test_unregistered_network(self, facilitator, avm_requirements, make_avm_header):
        requirements = avm_requirements.model_copy(update={"network": "algorand-mainnet"})
        header = make_avm_header(network="algorand-mainnet")
        result = await facilitator.verify(header, requirements)
        assert result.invalid_reason == Reason.UNSUPPORTED_NETWORK

    @pytest.mark.anyio
    async def test_verify_has_no_side_effects(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header
    ):
        header = make_avm_header()
        await facilitator.verify(header, avm_requirements)
        await facilitator.verify(header, avm_requirements)
        assert len(facilitator.store) == 0
        mock_adapter.transfer.assert_not_called()

    @pytest.mark.anyio
    async def test_unexpected_error_is_internal_error(
        self, mock_adapter, avm_requirements, make_avm_header
    ):
        scheme = MagicMock()
        scheme.name.return_value = "broken"
        scheme.domain_for.return_value = None
        scheme.check.side_effect = RuntimeError("boom")
        facilitator = X402Facilitator().register(["algorand-testnet"], scheme, mock_adapter)

        result = await facilitator.verify(make_avm_header(), avm_requirements)
        assert result.invalid_reason == Reason.INTERNAL_ERROR

        settled = await facilitator.settle(make_avm_header(), avm_requirements)
        assert settled.success is False
        assert settled.error == Reason.INTERNAL_ERROR


class TestSettle:
    @pytest.mark.anyio
    async def test_settle_then_replay(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header, payer_account
    ):
        header = make_avm_header()

        first = await facilitator.settle(header, avm_requirements)
        assert first.success is True
        assert first.transaction == "TX1"
        assert first.network == "algorand-testnet"

        second = await facilitator.settle(header, avm_requirements)
        assert second.success is True
        assert second.transaction == "TX1"

        mock_adapter.transfer.assert_awaited_once()
        kwargs = mock_adapter.transfer.await_args.kwargs
        assert kwargs["sender"] == payer_account[1]
        assert kwargs["receiver"] == avm_requirements.pay_to
        assert kwargs["amount"] == 1000000
        assert kwargs["asset"] == "0"
        assert kwargs["note"] == "algox402:n1:r"
        assert kwargs["signed"].signature

    @pytest.mark.anyio
    async def test_verify_after_success_still_valid(
        self, facilitator, avm_requirements, make_avm_header
    ):
        header = make_avm_header()
        await facilitator.settle(header, avm_requirements)
        assert (await facilitator.verify(header, avm_requirements)).is_valid is True

    @pytest.mark.anyio
    async def test_invalid_header_never_transfers(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header
    ):
        result = await facilitator.settle(make_avm_header(amount="1000001"), avm_requirements)
        assert result.success is False
        assert result.error == Reason.AMOUNT_TOO_LARGE
        mock_adapter.transfer.assert_not_called()
        assert len(facilitator.store) == 0

    @pytest.mark.anyio
    async def test_concurrent_settles_transfer_once(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header
    ):
        async def slow_transfer(**kwargs):
            await asyncio.sleep(0.05)
            return "TX-SLOW"

        mock_adapter.transfer = AsyncMock(side_effect=slow_transfer)
        header = make_avm_header()

        results = await asyncio.gather(
            *(facilitator.settle(header, avm_requirements) for _ in range(5))
        )

        assert mock_adapter.transfer.await_count == 1
        successes = [r for r in results if r.success]
        assert len(successes) == 1
        assert successes[0].transaction == "TX-SLOW"
        assert all(r.error == Reason.SETTLEMENT_PENDING for r in results if not r.success)

        replay = await facilitator.settle(header, avm_requirements)
        assert replay.transaction == "TX-SLOW"

    @pytest.mark.anyio
    async def test_transfer_failure_is_terminal(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header
    ):
        mock_adapter.transfer = AsyncMock(side_effect=RuntimeError("node unavailable"))
        header = make_avm_header()

        result = await facilitator.settle(header, avm_requirements)
        assert result.success is False
        assert result.error == Reason.ONCHAIN_SETTLE_FAILED

        verify = await facilitator.verify(header, avm_requirements)
        assert verify.invalid_reason == Reason.NONCE_FAILED

        retry = await facilitator.settle(header, avm_requirements)
        assert retry.error == Reason.NONCE_FAILED
        assert mock_adapter.transfer.await_count == 1

    @pytest.mark.anyio
    @pytest.mark.parametrize("tx_id", ["", None])
    async def test_missing_transaction_reference_is_terminal(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header, tx_id
    ):
        mock_adapter.transfer = AsyncMock(return_value=tx_id)
        header = make_avm_header()

        first = await facilitator.settle(header, avm_requirements)
        assert first.error == Reason.ONCHAIN_SETTLE_FAILED

        second = await facilitator.settle(header, avm_requirements)
        assert second.error == Reason.NONCE_FAILED

        record = await facilitator.store.get(settlement_key(header))
        assert record.state is SettlementState.FAILED
        assert mock_adapter.transfer.await_count == 1

    @pytest.mark.anyio
    async def test_settled_keys_hold_no_locks(
        self, facilitator, avm_requirements, make_avm_header
    ):
        header = make_avm_header()
        await facilitator.verify(header, avm_requirements)
        assert facilitator.store.lock_count == 0

        await facilitator.settle(header, avm_requirements)
        await facilitator.settle(header, avm_requirements)
        assert facilitator.store.lock_count == 0

    @pytest.mark.anyio
    async def test_new_nonce_after_failure_is_independent(
        self, facilitator, mock_adapter, avm_requirements, make_avm_header
    ):
        mock_adapter.transfer = AsyncMock(side_effect=[RuntimeError("fail"), "TX2"])

        failed = await facilitator.settle(make_avm_header(nonce="n1"), avm_requirements)
        assert failed.error == Reason.ONCHAIN_SETTLE_FAILED

        fresh = await facilitator.settle(make_avm_header(nonce="n2"), avm_requirements)
        assert fresh.success is True
        assert fresh.transaction == "TX2"

    @pytest.mark.anyio
    async def test_unsupported_version(self, facilitator, avm_requirements, make_avm_header):
        result = await facilitator.settle(make_avm_header(), avm_requirements, x402_version=0)
        assert result.error == Reason.UNSUPPORTED_X402_VERSION


class TestInjectedStore:
    @pytest.mark.anyio
    async def test_uses_given_store(self, mock_adapter, avm_requirements, make_avm_header):
        store = InMemorySettlementStore()
        facilitator = X402Facilitator(store=store).register(
            ["algorand-testnet"], AvmSignatureScheme(), mock_adapter
        )
        header = make_avm_header()

        await facilitator.settle(header, avm_requirements)

        record = await store.get(settlement_key(header))
        assert record.state is SettlementState.SUCCESS
        assert record.transaction == "TX1"
