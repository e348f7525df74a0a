"""In-memory stand-ins for the chain services used by the provisioner tests."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import pytest
from web3 import Web3

from raffle_deploy.config import NetworkConfig, ProvisioningSettings
from raffle_deploy.coordinator import SubscriptionInfo
from raffle_deploy.deployments import DeploymentNotFound, DeploymentRecord

GAS_LANE = "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c"
LIVE_COORDINATOR = "0x8103B0A8A00be2DDC778e6e7eaa21791Cd364625"
LIVE_LINK = "0x779877A7B0D9E8603169DdbD7836e478b4624789"
DEPLOYER = "0x000000000000000000000000000000000000dEaD"
ONE_LINK = 10**18


@dataclass
class Subscription:
    balance: int = 0
    request_count: int = 0
    owner: str = DEPLOYER
    consumers: List[str] = field(default_factory=list)


class FakeLedger:
    """Remote state shared by every fake contract, plus a log of sent transactions."""

    def __init__(self) -> None:
        self.subscriptions: Dict[int, Subscription] = {}
        self.transactions: List[Tuple[str, Tuple[Any, ...]]] = []
        self._next_id = 1

    def record(self, name: str, *args: Any) -> None:
        self.transactions.append((name, args))

    def sent(self, name: str) -> int:
        return sum(1 for tx, _ in self.transactions if tx == name)

    def open_subscription(self, *, balance: int = 0, consumers: Sequence[str] = ()) -> int:
        subscription_id = self._next_id
        self._next_id += 1
        self.subscriptions[subscription_id] = Subscription(balance=balance, consumers=list(consumers))
        return subscription_id


class FakeCoordinator:
    def __init__(self, ledger: FakeLedger, address: str, *, fail_create: Exception | None = None) -> None:
        self._ledger = ledger
        self.address = Web3.to_checksum_address(address)
        self._fail_create = fail_create

    def create_subscription(self, *, confirmations: int) -> int:
        if self._fail_create is not None:
            raise self._fail_create
        subscription_id = self._ledger.open_subscription()
        self._ledger.record("createSubscription", confirmations)
        return subscription_id

    def get_subscription(self, subscription_id: int) -> SubscriptionInfo:
        sub = self._ledger.subscriptions[subscription_id]
        return SubscriptionInfo.from_tuple((sub.balance, sub.request_count, sub.owner, list(sub.consumers)))

    def add_consumer(self, subscription_id: int, consumer: str, *, confirmations: int) -> dict:
        self._ledger.subscriptions[subscription_id].consumers.append(consumer)
        self._ledger.record("addConsumer", subscription_id, consumer, confirmations)
        return {"status": 1}

    def fund_subscription(self, subscription_id: int, amount: int, *, confirmations: int) -> dict:
        self._ledger.subscriptions[subscription_id].balance += amount
        self._ledger.record("fundSubscription", subscription_id, amount, confirmations)
        return {"status": 1}


class FakeLinkToken:
    def __init__(self, ledger: FakeLedger, address: str, *, decimals: int = 18) -> None:
        self._ledger = ledger
        self.address = address
        self._decimals = decimals

    def decimals(self) -> int:
        return self._decimals

    def transfer_and_call(self, to: str, amount: int, data: bytes, *, confirmations: int) -> dict:
        subscription_id = int.from_bytes(data, "big")
        self._ledger.subscriptions[subscription_id].balance += amount
        self._ledger.record("transferAndCall", to, amount, data, confirmations)
        return {"status": 1}


class FakeDeployer:
    def __init__(self, ledger: FakeLedger) -> None:
        self._ledger = ledger
        self.records: Dict[str, DeploymentRecord] = {}
        self._counter = 0

    def get(self, name: str) -> DeploymentRecord:
        try:
            return self.records[name]
        except KeyError:
            raise DeploymentNotFound(name) from None

    def deploy(self, name: str, args: Sequence[Any], *, confirmations: int) -> DeploymentRecord:
        self._counter += 1
        record = DeploymentRecord(
            contract_name=name,
            address="0x" + f"{0xC0DE0000 + self._counter:040x}",
            constructor_arguments=tuple(args),
            transaction_hash="0x" + f"{self._counter:064x}",
            block_number=self._counter,
        )
        self.records[name] = record
        self._ledger.record("deploy", name, tuple(args), confirmations)
        return record


class FakeServices:
    def __init__(self, *, link_decimals: int = 18, fail_create: Exception | None = None) -> None:
        self.ledger = FakeLedger()
        self.deployer = FakeDeployer(self.ledger)
        self._link_decimals = link_decimals
        self._fail_create = fail_create

    def coordinator(self, address: str) -> FakeCoordinator:
        return FakeCoordinator(self.ledger, address, fail_create=self._fail_create)

    def mock_coordinator(self, address: str) -> FakeCoordinator:
        return FakeCoordinator(self.ledger, address, fail_create=self._fail_create)

    def link_token(self, address: str) -> FakeLinkToken:
        return FakeLinkToken(self.ledger, address, decimals=self._link_decimals)


def make_network(name: str = "sepolia", **overrides: Any) -> NetworkConfig:
    values: Dict[str, Any] = {
        "name": name,
        "chain_id": 11155111,
        "gas_lane": GAS_LANE,
        "update_interval": 30,
        "entrance_fee": 10**16,
        "callback_gas_limit": 500_000,
        "subscription_id": 0,
        "vrf_coordinator": LIVE_COORDINATOR,
        "link_token": LIVE_LINK,
    }
    values.update(overrides)
    return NetworkConfig(**values)


@pytest.fixture
def settings() -> ProvisioningSettings:
    return ProvisioningSettings(
        networks={
            "hardhat": make_network(
                "hardhat", chain_id=31337, vrf_coordinator=None, link_token=None
            ),
            "sepolia": make_network("sepolia"),
        }
    )


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def services_factory():
    return FakeServices


@pytest.fixture
def network_factory():
    return make_network


@pytest.fixture
def artifacts_dir(tmp_path: Path) -> Path:
    """A hardhat ``artifacts`` tree holding ``Raffle`` and its build info."""

    artifacts = tmp_path / "artifacts"
    contract_dir = artifacts / "contracts" / "Raffle.sol"
    build_dir = artifacts / "build-info"
    contract_dir.mkdir(parents=True)
    build_dir.mkdir(parents=True)
    constructor = {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "vrfCoordinatorV2", "type": "address"},
            {"name": "subscriptionId", "type": "uint64"},
            {"name": "gasLane", "type": "bytes32"},
            {"name": "interval", "type": "uint256"},
            {"name": "entranceFee", "type": "uint256"},
            {"name": "callbackGasLimit", "type": "uint32"},
        ],
    }
    (contract_dir / "Raffle.json").write_text(
        json.dumps(
            {
                "contractName": "Raffle",
                "sourceName": "contracts/Raffle.sol",
                "abi": [constructor],
                "bytecode": "0x6080604052",
            }
        )
    )
    (contract_dir / "Raffle.dbg.json").write_text(json.dumps({"buildInfo": "../../build-info/abc123.json"}))
    (build_dir / "abc123.json").write_text(
        json.dumps(
            {
                "solcLongVersion": "0.8.7+commit.e28d00a7",
                "input": {"language": "Solidity", "sources": {"contracts/Raffle.sol": {"content": "// raffle"}}},
            }
        )
    )
    return artifacts
