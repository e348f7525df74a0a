"""Idempotent provisioning of the Raffle contract and its VRF subscription."""

from .config import ConfigurationError, NetworkConfig, ProvisioningSettings, load_config
from .deployments import DeploymentNotFound, DeploymentRecord
from .network import Environment, NetworkPolicy, classify_network
from .runner import ProvisioningReport, RaffleProvisioner, build_constructor_args, build_provisioner
from .strategies import DurableStrategy, EnvironmentStrategy, EphemeralStrategy, select_strategy

__all__ = [
    "ConfigurationError",
    "DeploymentNotFound",
    "DeploymentRecord",
    "DurableStrategy",
    "Environment",
    "EnvironmentStrategy",
    "EphemeralStrategy",
    "NetworkConfig",
    "NetworkPolicy",
    "ProvisioningReport",
    "ProvisioningSettings",
    "RaffleProvisioner",
    "build_constructor_args",
    "build_provisioner",
    "classify_network",
    "load_config",
    "select_strategy",
]
