# rsk_attest/settings.py
from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from rsk_attest.errors import ConfigurationError


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    rpc_url: str
    chain_id: int
    eas_contract_address: str
    schema_registry_address: str
    graphql_endpoint: str


ROOTSTOCK_NETWORKS = {
    "mainnet": NetworkConfig(
        name="Rootstock Mainnet",
        rpc_url="https://public-node.rsk.co",
        chain_id=30,
        eas_contract_address="0x54c0726E9D2D57Bc37aD52C7E219a3229E0ee963",
        schema_registry_address="0xef29675d82Cc5967069D6D9c17F2719F67728F5b",
        graphql_endpoint="https://rootstock.easscan.org/graphql",
    ),
    "testnet": NetworkConfig(
        name="Rootstock Testnet",
        rpc_url="https://public-node.testnet.rsk.co",
        chain_id=31,
        eas_contract_address="0x54c0726E9D2D57Bc37aD52C7E219a3229E0ee963",
        schema_registry_address="0xef29675d82Cc5967069D6D9c17F2719F67728F5b",
        graphql_endpoint="https://rootstock-testnet.easscan.org/graphql",
    ),
}


class Settings(BaseSettings):
    RSK_NETWORK: str = "testnet"
    RPC_URL: Optional[str] = None
    EAS_CONTRACT_ADDRESS: Optional[str] = None
    SCHEMA_REGISTRY_ADDRESS: Optional[str] = None
    GRAPHQL_ENDPOINT: Optional[str] = None

    PRIVATE_KEY: str | None = None
    MNEMONIC: str | None = None

    LOG_LEVEL: str = "INFO"
    INDEXER_TIMEOUT: float = 30.0

    HOST: str = "127.0.0.1"
    PORT: int = 8000

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def network(self) -> NetworkConfig:
        """
        Resolve the preset for RSK_NETWORK and apply any explicit overrides.
        """
        preset = ROOTSTOCK_NETWORKS.get(self.RSK_NETWORK)
        if preset is None:
            raise ConfigurationError(f"Unsupported network: {self.RSK_NETWORK}")
        return NetworkConfig(
            name=preset.name,
            rpc_url=self.RPC_URL or preset.rpc_url,
            chain_id=preset.chain_id,
            eas_contract_address=self.EAS_CONTRACT_ADDRESS or preset.eas_contract_address,
            schema_registry_address=self.SCHEMA_REGISTRY_ADDRESS or preset.schema_registry_address,
            graphql_endpoint=self.GRAPHQL_ENDPOINT or preset.graphql_endpoint,
        )

    def validate_for_signing(self) -> None:
        """Write operations need either a private key or a mnemonic."""
        if not self.PRIVATE_KEY and not self.MNEMONIC:
            raise ConfigurationError(
                "Either PRIVATE_KEY or MNEMONIC must be provided in environment variables"
            )
        net = self.network()
        if not net.rpc_url:
            raise ConfigurationError("RPC URL is required for network configuration")
        if not net.eas_contract_address:
            raise ConfigurationError("EAS contract address is required")

    def safe_view(self) -> dict:
        net = self.network()
        return {
            "network": {
                "name": net.name,
                "chainId": net.chain_id,
                "rpcUrl": net.rpc_url,
                "easContractAddress": net.eas_contract_address,
                "schemaRegistryAddress": net.schema_registry_address,
                "graphqlEndpoint": net.graphql_endpoint,
            },
            "logLevel": self.LOG_LEVEL,
            "hasPrivateKey": bool(self.PRIVATE_KEY),
            "hasMnemonic": bool(self.MNEMONIC),
        }


settings = Settings()
