"""
algox402 Network Configuration
Centralized configuration for network tags, contract addresses and process settings
"""

import os
from dataclasses import dataclass
from typing import Dict, Optional

from algox402.exceptions import ConfigurationError, UnsupportedNetworkError


class NetworkConfig:
    """Network configuration for chain IDs, token contracts and RPC endpoints"""

    # Algorand (AVM) networks
    ALGORAND_MAINNET = "algorand-mainnet"
    ALGORAND_TESTNET = "algorand-testnet"
    ALGORAND_LOCALNET = "algorand-localnet"

    # EVM networks
    BASE_MAINNET = "base"
    BASE_SEPOLIA = "base-sepolia"

    AVM_NETWORKS = (ALGORAND_MAINNET, ALGORAND_TESTNET, ALGORAND_LOCALNET)

    CHAIN_IDS: Dict[str, int] = {
        "base": 8453,
        "base-sepolia": 84532,
    }

    # USDC (EIP-3009 transferWithAuthorization) contracts
    USDC_ADDRESSES: Dict[str, str] = {
        "base": "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",
        "base-sepolia": "0x036cbd53842c5426634e7929541ec2318f3dcf7e",
    }

    # EIP-712 domain name/version of the USDC contracts above
    USDC_DOMAIN_NAME = "USD Coin"
    USDC_DOMAIN_VERSION = "2"

    RPC_URLS: Dict[str, str] = {
        "base": "https://mainnet.base.org",
        "base-sepolia": "https://sepolia.base.org",
    }

    @classmethod
    def is_avm(cls, network: str) -> bool:
        return network in cls.AVM_NETWORKS

    @classmethod
    def is_evm(cls, network: str) -> bool:
        return network in cls.CHAIN_IDS or network.startswith("eip155:")

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        """Get chain ID for an EVM network

        Args:
            network: Network identifier (e.g., "base", "eip155:8453")

        Returns:
            Chain ID as integer

        Raises:
            UnsupportedNetworkError: If network is not an EVM network we know
        """
        if network.startswith("eip155:"):
            try:
                return int(network.split(":", 1)[1])
            except (ValueError, IndexError):
                raise UnsupportedNetworkError(f"Invalid EVM network: {network}")

        chain_id = cls.CHAIN_IDS.get(network)
        if chain_id is None:
            raise UnsupportedNetworkError(f"Unsupported network: {network}")
        return chain_id

    @classmethod
    def get_usdc_address(cls, network: str) -> str:
        addr = cls.USDC_ADDRESSES.get(network)
        if addr is None:
            raise UnsupportedNetworkError(f"No USDC contract configured for {network}")
        return addr

    @classmethod
    def get_rpc_url(cls, network: str) -> str | None:
        """Get RPC URL for an EVM network, or None if not configured"""
        return cls.RPC_URLS.get(network)


@dataclass
class FacilitatorSettings:
    """Process settings of the facilitator service, read from the environment"""

    algod_token: str = ""
    algod_server: str = "http://localhost"
    algod_port: int = 4001
    indexer_token: str = ""
    indexer_server: str = "http://localhost"
    indexer_port: int = 8980
    algorand_network: str = NetworkConfig.ALGORAND_TESTNET
    facilitator_mnemonic: Optional[str] = None
    evm_network: str = NetworkConfig.BASE_MAINNET
    evm_rpc_url: Optional[str] = None
    facilitator_private_key: Optional[str] = None
    usdc_address: Optional[str] = None
    pending_timeout: Optional[float] = 300.0
    host: str = "0.0.0.0"
    port: int = 4100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "FacilitatorSettings":
        """Build settings from environment variables"""
        try:
            timeout_raw = os.getenv("SETTLEMENT_PENDING_TIMEOUT", "300")
            return cls(
                algod_token=os.getenv("ALGOD_TOKEN", ""),
                algod_server=os.getenv("ALGOD_SERVER", "http://localhost"),
                algod_port=int(os.getenv("ALGOD_PORT", "4001")),
                indexer_token=os.getenv("INDEXER_TOKEN", ""),
                indexer_server=os.getenv("INDEXER_SERVER", "http://localhost"),
                indexer_port=int(os.getenv("INDEXER_PORT", "8980")),
                algorand_network=os.getenv("ALGORAND_NETWORK", NetworkConfig.ALGORAND_TESTNET),
                facilitator_mnemonic=os.getenv("FACILITATOR_MNEMONIC") or None,
                evm_network=os.getenv("EVM_NETWORK", NetworkConfig.BASE_MAINNET),
                evm_rpc_url=os.getenv("BASE_RPC_URL") or None,
                facilitator_private_key=os.getenv("FACILITATOR_PK") or None,
                usdc_address=os.getenv("USDC_ADDRESS") or None,
                pending_timeout=float(timeout_raw) if timeout_raw else None,
                host=os.getenv("FACILITATOR_HOST", "0.0.0.0"),
                port=int(os.getenv("FACILITATOR_PORT", "4100")),
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid facilitator setting: {e}")

    @property
    def algod_address(self) -> str:
        return f"{self.algod_server}:{self.algod_port}"

    @property
    def indexer_address(self) -> str:
        return f"{self.indexer_server}:{self.indexer_port}"
