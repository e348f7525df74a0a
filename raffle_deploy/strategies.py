"""Environment strategies for each provisioning step.

The classifier picks one strategy per run. Ephemeral networks are rebuilt from
scratch every time, so their strategy acts unconditionally against the mock
coordinator. Durable networks keep state between runs, so their strategy reads
remote state first and only sends a transaction when something is missing.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Tuple

from .chain import ChainClient
from .config import ConfigurationError, NetworkConfig
from .coordinator import LinkToken, MockVRFCoordinator, VRFCoordinator, encode_subscription_id
from .deployments import (
    MOCK_COORDINATOR_NAME,
    RAFFLE_CONTRACT_NAME,
    DeploymentNotFound,
    DeploymentRecord,
)
from .metrics import ProvisioningMetrics
from .network import Environment, NetworkPolicy

LOGGER = logging.getLogger(__name__)

# VRFCoordinatorV2Mock(baseFee, gasPriceLink): 0.25 LINK premium, 1 gwei-equivalent of LINK per gas.
MOCK_BASE_FEE = 25 * 10**16
MOCK_GAS_PRICE_LINK = 10**9
MOCK_FUND_AMOUNT = 10**18
FUNDING_THRESHOLD = 1


class DeploymentService(Protocol):
    def get(self, name: str) -> DeploymentRecord:  # pragma: no cover - protocol
        ...

    def deploy(self, name: str, args: Sequence[Any], *, confirmations: int) -> DeploymentRecord:  # pragma: no cover
        ...


class ChainServices(Protocol):
    """Factory for the remote collaborators a strategy drives."""

    deployer: DeploymentService

    def coordinator(self, address: str) -> VRFCoordinator:  # pragma: no cover - protocol
        ...

    def mock_coordinator(self, address: str) -> MockVRFCoordinator:  # pragma: no cover - protocol
        ...

    def link_token(self, address: str) -> LinkToken:  # pragma: no cover - protocol
        ...


@dataclass
class Web3Services:
    """Production services bound to a live RPC endpoint."""

    chain: ChainClient
    deployer: DeploymentService

    def coordinator(self, address: str) -> VRFCoordinator:
        return VRFCoordinator(self.chain, address)

    def mock_coordinator(self, address: str) -> MockVRFCoordinator:
        return MockVRFCoordinator(self.chain, address)

    def link_token(self, address: str) -> LinkToken:
        return LinkToken(self.chain, address)


@dataclass(frozen=True)
class SubscriptionResolution:
    subscription_id: int
    created: bool


@dataclass(frozen=True)
class DeploymentResolution:
    record: DeploymentRecord
    deployed: bool


def _same_arguments(stored: Sequence[Any], desired: Sequence[Any]) -> bool:
    if len(stored) != len(desired):
        return False
    return all(str(a).lower() == str(b).lower() for a, b in zip(stored, desired))


class EnvironmentStrategy(abc.ABC):
    """Behaviour of every provisioning step for one kind of network."""

    environment: Environment

    def __init__(
        self,
        *,
        policy: NetworkPolicy,
        network: NetworkConfig,
        services: ChainServices,
        metrics: ProvisioningMetrics,
    ) -> None:
        self.policy = policy
        self.network = network
        self.services = services
        self.metrics = metrics

    @property
    def confirmations(self) -> int:
        return self.policy.confirmations

    @abc.abstractmethod
    def attach_coordinator(self) -> VRFCoordinator:
        """Return the coordinator the Raffle will draw randomness from."""

    @abc.abstractmethod
    def resolve_subscription(self, coordinator: VRFCoordinator) -> SubscriptionResolution:
        """Create or reuse the subscription."""

    @abc.abstractmethod
    def fund_subscription(self, coordinator: VRFCoordinator, subscription_id: int) -> bool:
        """Bring the balance to at least the funding threshold; ``True`` when funds were sent."""

    @abc.abstractmethod
    def reconcile_deployment(self, constructor_arguments: Tuple[Any, ...]) -> DeploymentResolution:
        """Deploy the Raffle or reuse an existing deployment."""

    @abc.abstractmethod
    def register_consumer(self, coordinator: VRFCoordinator, subscription_id: int, address: str) -> bool:
        """Authorise ``address`` on the subscription; ``True`` when a registration was sent."""

    def verification_allowed(self, api_key: Optional[str]) -> bool:
        return False

    def _deploy_raffle(self, constructor_arguments: Tuple[Any, ...]) -> DeploymentResolution:
        record = self.services.deployer.deploy(
            RAFFLE_CONTRACT_NAME,
            list(constructor_arguments),
            confirmations=self.confirmations,
        )
        self.metrics.transaction("deploy")
        self.metrics.step("deploy", "deployed")
        return DeploymentResolution(record=record, deployed=True)


class EphemeralStrategy(EnvironmentStrategy):
    environment = Environment.EPHEMERAL

    def attach_coordinator(self) -> MockVRFCoordinator:
        LOGGER.info("Local network detected: using %s", MOCK_COORDINATOR_NAME)
        try:
            record = self.services.deployer.get(MOCK_COORDINATOR_NAME)
        except DeploymentNotFound:
            record = self.services.deployer.deploy(
                MOCK_COORDINATOR_NAME,
                [MOCK_BASE_FEE, MOCK_GAS_PRICE_LINK],
                confirmations=self.confirmations,
            )
            self.metrics.transaction("deploy_mocks")
        return self.services.mock_coordinator(record.address)

    def resolve_subscription(self, coordinator: VRFCoordinator) -> SubscriptionResolution:
        LOGGER.info("Creating VRF v2 subscription...")
        subscription_id = coordinator.create_subscription(confirmations=self.confirmations)
        self.metrics.transaction("create_subscription")
        self.metrics.step("subscription", "created")
        LOGGER.info("Subscription id: %s", subscription_id)
        return SubscriptionResolution(subscription_id=subscription_id, created=True)

    def fund_subscription(self, coordinator: MockVRFCoordinator, subscription_id: int) -> bool:  # type: ignore[override]
        # The mock mints the balance, so there is nothing to check first.
        coordinator.fund_subscription(subscription_id, MOCK_FUND_AMOUNT, confirmations=self.confirmations)
        self.metrics.transaction("fund_subscription")
        self.metrics.step("funding", "funded")
        LOGGER.info("Funded subscription %s through the mock", subscription_id)
        return True

    def reconcile_deployment(self, constructor_arguments: Tuple[Any, ...]) -> DeploymentResolution:
        return self._deploy_raffle(constructor_arguments)

    def register_consumer(self, coordinator: VRFCoordinator, subscription_id: int, address: str) -> bool:
        LOGGER.info("Adding consumer %s...", address)
        coordinator.add_consumer(subscription_id, address, confirmations=self.confirmations)
        self.metrics.transaction("add_consumer")
        self.metrics.step("consumer", "added")
        LOGGER.info("Consumer successfully added")
        return True


class DurableStrategy(EnvironmentStrategy):
    environment = Environment.DURABLE

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._coordinator_address, self._link_address = self.network.require_live_contracts()

    def attach_coordinator(self) -> VRFCoordinator:
        return self.services.coordinator(self._coordinator_address)

    def resolve_subscription(self, coordinator: VRFCoordinator) -> SubscriptionResolution:
        configured = self.network.subscription_id
        if configured:
            self.metrics.step("subscription", "reused")
            LOGGER.info("Subscription id: %s", configured)
            return SubscriptionResolution(subscription_id=configured, created=False)
        LOGGER.info("Creating VRF v2 subscription...")
        subscription_id = coordinator.create_subscription(confirmations=self.confirmations)
        self.metrics.transaction("create_subscription")
        self.metrics.step("subscription", "created")
        LOGGER.info("Subscription id: %s", subscription_id)
        return SubscriptionResolution(subscription_id=subscription_id, created=True)

    def fund_subscription(self, coordinator: VRFCoordinator, subscription_id: int) -> bool:
        token = self.services.link_token(self._link_address)
        decimals = self.network.link_token_decimals
        onchain_decimals = token.decimals()
        if onchain_decimals != decimals:
            raise ConfigurationError(
                f"{self.network.name}: linkTokenDecimals is {decimals} but the token reports {onchain_decimals}"
            )

        LOGGER.info("Checking subscription balance...")
        info = coordinator.get_subscription(subscription_id)
        balance = info.whole_units(decimals)
        LOGGER.info("Subscription balance is: %s LINK", balance)
        if balance >= FUNDING_THRESHOLD:
            self.metrics.step("funding", "sufficient")
            return False

        # One whole token at the verified scale.
        amount = FUNDING_THRESHOLD * 10**decimals
        LOGGER.info("Funding subscription with %s LINK...", FUNDING_THRESHOLD)
        token.transfer_and_call(
            coordinator.address,
            amount,
            encode_subscription_id(subscription_id),
            confirmations=self.confirmations,
        )
        self.metrics.transaction("fund_subscription")
        self.metrics.step("funding", "funded")
        updated = coordinator.get_subscription(subscription_id)
        LOGGER.info("Funding completed. Updated subscription balance is: %s LINK", updated.whole_units(decimals))
        return True

    def reconcile_deployment(self, constructor_arguments: Tuple[Any, ...]) -> DeploymentResolution:
        LOGGER.info("Checking if %s already exists...", RAFFLE_CONTRACT_NAME)
        try:
            record = self.services.deployer.get(RAFFLE_CONTRACT_NAME)
        except DeploymentNotFound:
            LOGGER.info("%s does not exist yet", RAFFLE_CONTRACT_NAME)
            return self._deploy_raffle(constructor_arguments)

        LOGGER.info("%s already exists: %s", RAFFLE_CONTRACT_NAME, record.address)
        if record.constructor_arguments and not _same_arguments(record.constructor_arguments, constructor_arguments):
            LOGGER.warning(
                "Existing %s was deployed with different constructor arguments; keeping it",
                RAFFLE_CONTRACT_NAME,
                extra={"context": {"stored": list(record.constructor_arguments)}},
            )
        self.metrics.step("deploy", "reused")
        return DeploymentResolution(record=record, deployed=False)

    def register_consumer(self, coordinator: VRFCoordinator, subscription_id: int, address: str) -> bool:
        info = coordinator.get_subscription(subscription_id)
        LOGGER.info("Consumers: %s", ", ".join(info.consumers) or "none")
        if info.has_consumer(address):
            self.metrics.step("consumer", "present")
            return False

        LOGGER.info("Adding consumer %s...", address)
        coordinator.add_consumer(subscription_id, address, confirmations=self.confirmations)
        self.metrics.transaction("add_consumer")
        self.metrics.step("consumer", "added")
        updated = coordinator.get_subscription(subscription_id)
        LOGGER.info("Consumer successfully added. Consumers: %s", ", ".join(updated.consumers))
        return True

    def verification_allowed(self, api_key: Optional[str]) -> bool:
        return bool(api_key)


def select_strategy(
    policy: NetworkPolicy,
    *,
    network: NetworkConfig,
    services: ChainServices,
    metrics: Optional[ProvisioningMetrics] = None,
) -> EnvironmentStrategy:
    """Build the strategy matching the classified environment."""

    strategy_cls = EphemeralStrategy if policy.is_ephemeral else DurableStrategy
    return strategy_cls(
        policy=policy,
        network=network,
        services=services,
        metrics=metrics or ProvisioningMetrics(),
    )


__all__ = [
    "ChainServices",
    "DeploymentResolution",
    "DurableStrategy",
    "EnvironmentStrategy",
    "EphemeralStrategy",
    "FUNDING_THRESHOLD",
    "MOCK_FUND_AMOUNT",
    "SubscriptionResolution",
    "Web3Services",
    "select_strategy",
]
