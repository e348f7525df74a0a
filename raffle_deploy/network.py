"""Classify the target network and derive its provisioning policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .config import ProvisioningSettings

EPHEMERAL_CONFIRMATIONS = 1


class Environment(str, Enum):
    EPHEMERAL = "ephemeral"
    DURABLE = "durable"


@dataclass(frozen=True)
class NetworkPolicy:
    """Environment-dependent knobs for one provisioning run."""

    network: str
    environment: Environment
    confirmations: int

    @property
    def is_ephemeral(self) -> bool:
        return self.environment is Environment.EPHEMERAL

    @property
    def uses_mocks(self) -> bool:
        return self.is_ephemeral


def classify_network(name: str, settings: ProvisioningSettings) -> NetworkPolicy:
    """Return the policy for ``name``.

    Development chains are disposable and only need the transaction mined.
    Every other network keeps state between runs and waits for a deeper
    confirmation count to ride out reorganisations.
    """

    if name in settings.development_chains:
        return NetworkPolicy(
            network=name,
            environment=Environment.EPHEMERAL,
            confirmations=EPHEMERAL_CONFIRMATIONS,
        )
    confirmations = settings.verification_block_confirmations
    network = settings.networks.get(name)
    if network is not None and network.block_confirmations is not None:
        confirmations = network.block_confirmations
    return NetworkPolicy(network=name, environment=Environment.DURABLE, confirmations=confirmations)


__all__ = ["EPHEMERAL_CONFIRMATIONS", "Environment", "NetworkPolicy", "classify_network"]
