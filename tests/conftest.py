"""
Pytest configuration and shared fixtures
"""

import time

import pytest
from algosdk import account, util

from algox402.clients import create_payment_header
from algox402.encoding import encode_authorization
from algox402.types import Authorization, PaymentRequirements

# Well-known throwaway test key, never funded
EVM_TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def payer_account():
    """Algorand payer (private key, address)"""
    return account.generate_account()


@pytest.fixture
def seller_address():
    _, address = account.generate_account()
    return address


@pytest.fixture
def evm_private_key():
    return EVM_TEST_PRIVATE_KEY


@pytest.fixture
def avm_requirements(seller_address):
    return PaymentRequirements(
        scheme="exact",
        network="algorand-testnet",
        payTo=seller_address,
        asset="0",
        maxAmountRequired="1000000",
        maxTimeoutSeconds=60,
    )


@pytest.fixture
def make_avm_header(payer_account, seller_address):
    """Factory for signed AVM X-PAYMENT headers; keyword overrides patch the authorization"""
    private_key, payer = payer_account

    def _make(sign_with=None, network="algorand-testnet", **overrides):
        now = int(time.time())
        fields = {
            "payer": payer,
            "seller": seller_address,
            "assetId": "0",
            "amount": "1000000",
            "validAfter": str(now - 10),
            "validBefore": str(now + 50),
            "nonce": "n1",
            "resource": "r",
        }
        fields.update(overrides)
        authorization = Authorization.model_validate(fields)
        signature = util.sign_bytes(encode_authorization(authorization), sign_with or private_key)
        return create_payment_header(authorization, signature, network)

    return _make
