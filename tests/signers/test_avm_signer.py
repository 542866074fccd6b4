"""
Tests for the Ed25519 (Algorand) signature scheme and payer signer.
"""

import pytest
from algosdk import account, mnemonic

from algox402.signers import AvmClientSigner, AvmSignatureScheme
from algox402.types import Authorization, Reason


@pytest.fixture
def authorization(payer_account, seller_address):
    _, payer = payer_account
    return Authorization(
        payer=payer,
        seller=seller_address,
        assetId="0",
        amount="1000000",
        validAfter="100",
        validBefore="200",
        nonce="bm9uY2U=",
        resource="https://example.com/r",
    )


@pytest.fixture
def signer(payer_account):
    private_key, _ = payer_account
    return AvmClientSigner(private_key)


class TestAvmClientSigner:
    def test_address(self, signer, payer_account):
        assert signer.get_address() == payer_account[1]

    def test_from_mnemonic(self, payer_account):
        private_key, address = payer_account
        restored = AvmClientSigner.from_mnemonic(mnemonic.from_private_key(private_key))
        assert restored.get_address() == address


class TestAvmSignatureScheme:
    @pytest.mark.anyio
    async def test_roundtrip(self, signer, authorization):
        signature = await signer.sign_authorization(authorization)
        scheme = AvmSignatureScheme()
        assert scheme.check(authorization, signature, None) is None
        assert scheme.verify(authorization, signature) is True

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        "field,value",
        [
            ("amount", "1000001"),
            ("nonce", "b3RoZXI="),
            ("resource", "https://example.com/other"),
            ("valid_before", "201"),
        ],
    )
    async def test_modified_field_fails(self, signer, authorization, field, value):
        signature = await signer.sign_authorization(authorization)
        tampered = authorization.model_copy(update={field: value})
        assert AvmSignatureScheme().check(tampered, signature, None) == Reason.INVALID_SIGNATURE

    @pytest.mark.anyio
    async def test_signature_of_other_payer_fails(self, authorization):
        other_key, _ = account.generate_account()
        signature = await AvmClientSigner(other_key).sign_authorization(authorization)
        assert AvmSignatureScheme().verify(authorization, signature) is False

    def test_garbage_signature(self, authorization):
        assert (
            AvmSignatureScheme().check(authorization, "not-a-signature", None)
            == Reason.INVALID_SIGNATURE
        )

    @pytest.mark.anyio
    async def test_bad_payer_address(self, signer, authorization):
        signature = await signer.sign_authorization(authorization)
        broken = authorization.model_copy(update={"payer": "NOT-AN-ADDRESS"})
        assert AvmSignatureScheme().check(broken, signature, None) == Reason.INVALID_SIGNATURE

    def test_no_domain(self, avm_requirements):
        assert AvmSignatureScheme().domain_for(avm_requirements) is None
