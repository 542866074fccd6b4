"""
Facilitator HTTP service
Exposes an X402Facilitator over FastAPI: /supported, /verify and /settle.
"""

import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from algox402.config import FacilitatorSettings, NetworkConfig
from algox402.exceptions import ConfigurationError
from algox402.facilitator.x402_facilitator import X402Facilitator
from algox402.ledger.algorand import AlgorandLedgerAdapter
from algox402.ledger.evm import EvmLedgerAdapter
from algox402.logging_config import setup_logging
from algox402.signers.avm_signer import AvmSignatureScheme
from algox402.signers.evm_signer import EvmSignatureScheme
from algox402.types import Reason, SettleRequest, SupportedResponse, VerifyRequest

logger = logging.getLogger(__name__)


def _status_for(reason: str | None) -> int:
    if reason == Reason.UNSUPPORTED_X402_VERSION:
        return 400
    if reason == Reason.INTERNAL_ERROR:
        return 500
    return 200


def create_app(facilitator: X402Facilitator) -> FastAPI:
    """
    Create the facilitator FastAPI application.

    Args:
        facilitator: Facilitator serving the requests

    Returns:
        FastAPI app
    """
    app = FastAPI(
        title="algox402 Facilitator",
        description="Facilitator service for the algox402 payment protocol",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/supported", response_model=SupportedResponse)
    async def supported():
        """Get supported capabilities"""
        return facilitator.supported()

    @app.post("/verify")
    async def verify(request: VerifyRequest):
        """Verify a payment header against payment requirements"""
        result = await facilitator.verify(
            request.payment_header,
            request.payment_requirements,
            x402_version=request.x402_version,
        )
        return JSONResponse(
            content=result.model_dump(by_alias=True),
            status_code=_status_for(result.invalid_reason),
        )

    @app.post("/settle")
    async def settle(request: SettleRequest):
        """Settle a payment on-chain"""
        result = await facilitator.settle(
            request.payment_header,
            request.payment_requirements,
            x402_version=request.x402_version,
        )
        return JSONResponse(
            content=result.model_dump(by_alias=True, exclude_none=True),
            status_code=_status_for(result.error),
        )

    return app


def build_facilitator(settings: FacilitatorSettings) -> X402Facilitator:
    """Build a facilitator with the networks configured in *settings*"""
    if not NetworkConfig.is_avm(settings.algorand_network):
        raise ConfigurationError(f"Unknown Algorand network: {settings.algorand_network}")

    facilitator = X402Facilitator(pending_timeout=settings.pending_timeout)

    facilitator.register(
        [settings.algorand_network],
        AvmSignatureScheme(),
        AlgorandLedgerAdapter.from_settings(settings),
    )

    if settings.facilitator_private_key:
        network = settings.evm_network
        rpc_url = settings.evm_rpc_url or NetworkConfig.get_rpc_url(network)
        facilitator.register(
            [network],
            EvmSignatureScheme.for_network(network, settings.usdc_address),
            EvmLedgerAdapter(settings.facilitator_private_key, rpc_url or ""),
        )
    else:
        logger.warning("FACILITATOR_PK not set, EVM settlement disabled")

    return facilitator


def main() -> None:
    """Start the facilitator server"""
    load_dotenv(Path.cwd() / ".env")
    settings = FacilitatorSettings.from_env()
    setup_logging(settings.log_level)

    app = create_app(build_facilitator(settings))
    logger.info("Starting algox402 facilitator on %s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
