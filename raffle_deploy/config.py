"""Configuration models for the raffle provisioner."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml
from web3 import Web3

DEFAULT_CONFIG_PATH = Path("config/networks.yml")
DEFAULT_DEVELOPMENT_CHAINS: Tuple[str, ...] = ("hardhat", "localhost")
DEFAULT_VERIFICATION_BLOCK_CONFIRMATIONS = 6
DEFAULT_LINK_TOKEN_DECIMALS = 18
LOCAL_RPC_URL = "http://127.0.0.1:8545"

_ENV_PLACEHOLDER = re.compile(r"\$(\{[A-Za-z_][A-Za-z0-9_]*\}|[A-Za-z_][A-Za-z0-9_]*)")


class ConfigurationError(ValueError):
    """Raised when the networks file is missing or inconsistent."""


def _is_hex(value: Any, *, nbytes: int) -> bool:
    if not isinstance(value, str) or not value.startswith("0x") or len(value) != 2 + 2 * nbytes:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True


def _checksum(value: Any, field_name: str) -> str:
    if not _is_hex(value, nbytes=20):
        raise ConfigurationError(f"{field_name} must be a 0x-prefixed 20-byte address")
    return Web3.to_checksum_address(value)


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip().replace("_", "")
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise ConfigurationError(f"{field_name} must be an integer (got {value!r})") from exc
    raise ConfigurationError(f"{field_name} must be an integer (got {value!r})")


@dataclass
class NetworkConfig:
    """Per-network deployment parameters for the Raffle and its subscription."""

    name: str
    chain_id: int
    gas_lane: str
    update_interval: int
    entrance_fee: int
    callback_gas_limit: int
    subscription_id: int = 0
    vrf_coordinator: Optional[str] = None
    link_token: Optional[str] = None
    rpc_url: Optional[str] = None
    block_confirmations: Optional[int] = None
    link_token_decimals: int = DEFAULT_LINK_TOKEN_DECIMALS

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("network name must be provided")
        if self.chain_id <= 0:
            raise ConfigurationError(f"{self.name}: chainId must be a positive integer")
        if not _is_hex(self.gas_lane, nbytes=32):
            raise ConfigurationError(f"{self.name}: gasLane must be a 0x-prefixed 32-byte key hash")
        self.gas_lane = self.gas_lane.lower()
        if self.update_interval <= 0:
            raise ConfigurationError(f"{self.name}: keepersUpdateInterval must be positive")
        if self.entrance_fee < 0:
            raise ConfigurationError(f"{self.name}: raffleEntranceFee must be non-negative")
        if self.callback_gas_limit <= 0:
            raise ConfigurationError(f"{self.name}: callbackGasLimit must be positive")
        if self.subscription_id < 0:
            raise ConfigurationError(f"{self.name}: subscriptionId must be non-negative")
        if self.vrf_coordinator is not None:
            self.vrf_coordinator = _checksum(self.vrf_coordinator, f"{self.name}: vrfCoordinatorV2")
        if self.link_token is not None:
            self.link_token = _checksum(self.link_token, f"{self.name}: linkToken")
        if self.block_confirmations is not None and self.block_confirmations <= 0:
            raise ConfigurationError(f"{self.name}: blockConfirmations must be positive when provided")
        if not (0 <= self.link_token_decimals <= 36):
            raise ConfigurationError(f"{self.name}: linkTokenDecimals must be between 0 and 36")
        if self.rpc_url:
            self.rpc_url = os.path.expandvars(self.rpc_url)

    @classmethod
    def from_mapping(cls, name: str, data: Dict[str, Any]) -> "NetworkConfig":
        def _resolve(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        def _required(*keys: str) -> Any:
            value = _resolve(*keys)
            if value is None:
                raise ConfigurationError(f"{name}: missing required setting {keys[-1]!r}")
            return value

        confirmations = _resolve("block_confirmations", "blockConfirmations")
        return cls(
            name=name,
            chain_id=_as_int(_required("chain_id", "chainId"), "chainId"),
            gas_lane=str(_required("gas_lane", "gasLane")),
            update_interval=_as_int(
                _required("update_interval", "keepersUpdateInterval"), "keepersUpdateInterval"
            ),
            entrance_fee=_as_int(_required("entrance_fee", "raffleEntranceFee"), "raffleEntranceFee"),
            callback_gas_limit=_as_int(
                _required("callback_gas_limit", "callbackGasLimit"), "callbackGasLimit"
            ),
            subscription_id=_as_int(_resolve("subscription_id", "subscriptionId", default=0), "subscriptionId"),
            vrf_coordinator=_resolve("vrf_coordinator", "vrfCoordinatorV2", "vrfCoordinator"),
            link_token=_resolve("link_token", "linkToken"),
            rpc_url=_resolve("rpc_url", "rpcUrl"),
            block_confirmations=(
                _as_int(confirmations, "blockConfirmations") if confirmations is not None else None
            ),
            link_token_decimals=_as_int(
                _resolve("link_token_decimals", "linkTokenDecimals", default=DEFAULT_LINK_TOKEN_DECIMALS),
                "linkTokenDecimals",
            ),
        )

    def endpoint(self, default: str = LOCAL_RPC_URL) -> str:
        """Return the RPC URL to connect to, failing on an unset ${VAR} placeholder."""

        if not self.rpc_url:
            return default
        unresolved = _ENV_PLACEHOLDER.search(self.rpc_url)
        if unresolved:
            raise ConfigurationError(f"{self.name}: rpcUrl references unset variable {unresolved.group(0)}")
        return self.rpc_url

    def require_live_contracts(self) -> Tuple[str, str]:
        """Return ``(coordinator, link_token)`` or fail for an incomplete live network."""

        if not self.vrf_coordinator or not self.link_token:
            raise ConfigurationError(
                f"{self.name}: vrfCoordinatorV2 and linkToken are required on persistent networks"
            )
        return self.vrf_coordinator, self.link_token


@dataclass
class ProvisioningSettings:
    """Loaded networks file."""

    networks: Dict[str, NetworkConfig] = field(default_factory=dict)
    development_chains: Tuple[str, ...] = DEFAULT_DEVELOPMENT_CHAINS
    verification_block_confirmations: int = DEFAULT_VERIFICATION_BLOCK_CONFIRMATIONS

    def __post_init__(self) -> None:
        self.development_chains = tuple(str(name) for name in self.development_chains)
        if self.verification_block_confirmations <= 0:
            raise ConfigurationError("verificationBlockConfirmations must be positive")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "ProvisioningSettings":
        networks_data = data.get("networks") or {}
        if not isinstance(networks_data, dict):
            raise ConfigurationError("networks must be a mapping of network name to settings")
        networks = {}
        for name, network_data in networks_data.items():
            if not isinstance(network_data, dict):
                raise ConfigurationError(f"{name}: network settings must be a mapping")
            networks[str(name)] = NetworkConfig.from_mapping(str(name), network_data)
        chains: Iterable[str] = (
            data.get("development_chains") or data.get("developmentChains") or DEFAULT_DEVELOPMENT_CHAINS
        )
        if isinstance(chains, str):
            chains = [chains]
        elif not isinstance(chains, (list, tuple)):
            raise ConfigurationError("developmentChains must be a list of network names")
        confirmations = data.get("verification_block_confirmations", data.get("verificationBlockConfirmations"))
        return cls(
            networks=networks,
            development_chains=tuple(chains),
            verification_block_confirmations=(
                _as_int(confirmations, "verificationBlockConfirmations")
                if confirmations is not None
                else DEFAULT_VERIFICATION_BLOCK_CONFIRMATIONS
            ),
        )

    def network(self, name: str) -> NetworkConfig:
        try:
            return self.networks[name]
        except KeyError:
            known = ", ".join(sorted(self.networks)) or "none"
            raise ConfigurationError(f"Unknown network {name!r} (configured: {known})") from None


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Return the networks file path from the argument, ``RAFFLE_DEPLOY_CONFIG`` or the default."""

    if path:
        return Path(path)
    override = os.getenv("RAFFLE_DEPLOY_CONFIG", "").strip()
    return Path(override) if override else DEFAULT_CONFIG_PATH


def load_config(path: str | Path | None = None) -> ProvisioningSettings:
    """Load provisioning settings from a YAML or JSON file."""

    config_path = resolve_config_path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file '{config_path}' not found")
    text = config_path.read_text(encoding="utf-8")
    if config_path.suffix == ".json":
        data = json.loads(text or "{}")
    else:
        data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("provisioning configuration must be a mapping")
    return ProvisioningSettings.from_mapping(data)


__all__ = [
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "LOCAL_RPC_URL",
    "NetworkConfig",
    "ProvisioningSettings",
    "load_config",
    "resolve_config_path",
]
