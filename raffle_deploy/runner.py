"""End-to-end provisioning run for a single network."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from .chain import ChainClient
from .config import NetworkConfig, ProvisioningSettings
from .deployments import ArtifactLoader, Deployer, DeploymentRecord, DeploymentStore
from .metrics import ProvisioningMetrics
from .network import NetworkPolicy, classify_network
from .strategies import EnvironmentStrategy, Web3Services, select_strategy
from .verification import EtherscanVerifier, VerificationError

LOGGER = logging.getLogger(__name__)

VERIFICATION_API_KEY_ENV = "ETHERSCAN_API_KEY"


def build_constructor_args(
    coordinator_address: str,
    subscription_id: int,
    network: NetworkConfig,
) -> Tuple[Any, ...]:
    """Positional arguments of ``Raffle``'s constructor, in declaration order."""

    return (
        coordinator_address,
        subscription_id,
        network.gas_lane,
        network.update_interval,
        network.entrance_fee,
        network.callback_gas_limit,
    )


@dataclass
class ProvisioningReport:
    network: str
    environment: str
    subscription_id: int
    subscription_created: bool
    funded: bool
    deployment: DeploymentRecord
    deployed: bool
    consumer_added: bool
    verified: Optional[bool] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "network": self.network,
            "environment": self.environment,
            "subscription_id": self.subscription_id,
            "subscription_created": self.subscription_created,
            "funded": self.funded,
            "deployment": self.deployment.as_dict(),
            "deployed": self.deployed,
            "consumer_added": self.consumer_added,
            "verified": self.verified,
        }


class RaffleProvisioner:
    """Run the provisioning steps in dependency order.

    Each step's output is handed to the next explicitly: the subscription id
    feeds funding and the constructor arguments, and the deployment record
    feeds consumer registration and verification.
    """

    def __init__(
        self,
        strategy: EnvironmentStrategy,
        *,
        verifier: Optional[EtherscanVerifier] = None,
        verification_api_key: Optional[str] = None,
    ) -> None:
        self._strategy = strategy
        self._verifier = verifier
        self._api_key = verification_api_key

    @property
    def policy(self) -> NetworkPolicy:
        return self._strategy.policy

    @property
    def metrics(self) -> ProvisioningMetrics:
        return self._strategy.metrics

    def run(self) -> ProvisioningReport:
        strategy = self._strategy
        LOGGER.info(
            "Provisioning Raffle on %s (%s, %s confirmation(s))",
            self.policy.network,
            self.policy.environment.value,
            self.policy.confirmations,
        )

        coordinator = strategy.attach_coordinator()
        subscription = strategy.resolve_subscription(coordinator)
        funded = strategy.fund_subscription(coordinator, subscription.subscription_id)
        LOGGER.info("----------------------------------------------------")

        arguments = build_constructor_args(coordinator.address, subscription.subscription_id, strategy.network)
        deployment = strategy.reconcile_deployment(arguments)
        LOGGER.info("Raffle contract deployed at: %s", deployment.record.address)

        consumer_added = strategy.register_consumer(
            coordinator,
            subscription.subscription_id,
            deployment.record.address,
        )
        verified = self._verify(deployment.record)

        return ProvisioningReport(
            network=self.policy.network,
            environment=self.policy.environment.value,
            subscription_id=subscription.subscription_id,
            subscription_created=subscription.created,
            funded=funded,
            deployment=deployment.record,
            deployed=deployment.deployed,
            consumer_added=consumer_added,
            verified=verified,
        )

    def _verify(self, record: DeploymentRecord) -> Optional[bool]:
        if self._verifier is None or not self._strategy.verification_allowed(self._api_key):
            return None
        LOGGER.info("Verifying Raffle contract... %s", record.address)
        try:
            verified = self._verifier.verify(record)
        except (VerificationError, httpx.HTTPError) as exc:
            LOGGER.warning("Verification of %s failed: %s", record.address, exc)
            self.metrics.step("verification", "failed")
            return False
        self.metrics.step("verification", "verified")
        return verified


def build_provisioner(
    settings: ProvisioningSettings,
    network_name: str,
    *,
    artifacts_dir: Path,
    deployments_dir: Path,
    chain: Optional[ChainClient] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RaffleProvisioner:
    """Wire a provisioner against a live RPC endpoint."""

    env = os.environ if environ is None else environ
    network = settings.network(network_name)
    policy = classify_network(network_name, settings)

    if chain is None:
        chain = ChainClient.from_rpc(
            network.endpoint(),
            private_key=env.get("PRIVATE_KEY") or None,
        )
        chain.ensure_connection()

    artifacts = ArtifactLoader(artifacts_dir)
    # Local chains are rebuilt per run, so their records must not outlive it.
    store = DeploymentStore(network_name, None if policy.is_ephemeral else deployments_dir)
    services = Web3Services(chain=chain, deployer=Deployer(chain, artifacts, store))
    strategy = select_strategy(policy, network=network, services=services)

    api_key = env.get(VERIFICATION_API_KEY_ENV) or None
    verifier = None
    if api_key and not policy.is_ephemeral:
        verifier = EtherscanVerifier(api_key=api_key, chain_id=network.chain_id, artifacts=artifacts)
    return RaffleProvisioner(strategy, verifier=verifier, verification_api_key=api_key)


__all__ = [
    "ProvisioningReport",
    "RaffleProvisioner",
    "VERIFICATION_API_KEY_ENV",
    "build_constructor_args",
    "build_provisioner",
]
