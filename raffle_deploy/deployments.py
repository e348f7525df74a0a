"""Compiled artifacts, deployment records and the deployment service.

Records are kept in the hardhat-deploy layout, one JSON document per contract
under ``<root>/<network>/<Contract>.json``, so a repository that was
provisioned by the JavaScript toolchain is recognised as already deployed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from web3 import Web3

from .chain import ChainClient

LOGGER = logging.getLogger(__name__)

RAFFLE_CONTRACT_NAME = "Raffle"
MOCK_COORDINATOR_NAME = "VRFCoordinatorV2Mock"


class DeploymentNotFound(LookupError):
    """Raised when no deployment record exists for a contract on this network."""


class ArtifactNotFound(FileNotFoundError):
    """Raised when the compiled artifact for a contract is missing."""


@dataclass(frozen=True)
class DeploymentRecord:
    contract_name: str
    address: str
    constructor_arguments: Tuple[Any, ...] = ()
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", Web3.to_checksum_address(self.address))
        object.__setattr__(self, "constructor_arguments", tuple(self.constructor_arguments))

    def to_mapping(self, *, abi: Optional[Sequence[Dict[str, Any]]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "address": self.address,
            "args": list(self.constructor_arguments),
        }
        if abi is not None:
            payload["abi"] = list(abi)
        if self.transaction_hash:
            payload["transactionHash"] = self.transaction_hash
        if self.block_number is not None:
            payload["receipt"] = {"blockNumber": self.block_number}
        return payload

    @classmethod
    def from_mapping(cls, contract_name: str, data: Dict[str, Any]) -> "DeploymentRecord":
        address = data.get("address")
        if not isinstance(address, str) or not Web3.is_address(address):
            raise ValueError(f"Deployment record for {contract_name} has no valid address")
        receipt = data.get("receipt") or {}
        block_number = data.get("blockNumber", receipt.get("blockNumber"))
        return cls(
            contract_name=contract_name,
            address=address,
            constructor_arguments=tuple(data.get("args") or ()),
            transaction_hash=data.get("transactionHash"),
            block_number=int(block_number) if block_number is not None else None,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "contract_name": self.contract_name,
            "address": self.address,
            "constructor_arguments": [str(arg) for arg in self.constructor_arguments],
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
        }


@dataclass(frozen=True)
class ContractArtifact:
    contract_name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    path: Path
    source_name: Optional[str] = None

    @property
    def fully_qualified_name(self) -> str:
        if self.source_name:
            return f"{self.source_name}:{self.contract_name}"
        return self.contract_name

    def constructor_types(self) -> List[str]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return [str(item["type"]) for item in entry.get("inputs", [])]
        return []


@dataclass(frozen=True)
class BuildInfo:
    compiler_version: str
    input: Dict[str, Any] = field(default_factory=dict)


class ArtifactLoader:
    """Locate hardhat-style compiled artifacts below ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._cache: Dict[str, ContractArtifact] = {}

    def load(self, name: str) -> ContractArtifact:
        if name in self._cache:
            return self._cache[name]
        for candidate in sorted(self._root.rglob(f"{name}.json")):
            if "build-info" in candidate.parts:
                continue
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            if not isinstance(data, dict) or "abi" not in data or "bytecode" not in data:
                continue
            artifact = ContractArtifact(
                contract_name=str(data.get("contractName") or name),
                abi=list(data["abi"]),
                bytecode=str(data["bytecode"]),
                path=candidate,
                source_name=data.get("sourceName"),
            )
            self._cache[name] = artifact
            return artifact
        raise ArtifactNotFound(f"No compiled artifact for {name} under {self._root}")

    def build_info(self, artifact: ContractArtifact) -> BuildInfo:
        """Follow the ``.dbg.json`` pointer next to an artifact to its solc build info."""

        debug_path = artifact.path.with_name(f"{artifact.contract_name}.dbg.json")
        if not debug_path.exists():
            raise ArtifactNotFound(f"Missing debug file {debug_path}")
        with debug_path.open("r", encoding="utf-8") as handle:
            debug = json.load(handle)
        pointer = debug.get("buildInfo") if isinstance(debug, dict) else None
        if not isinstance(pointer, str) or not pointer:
            raise ArtifactNotFound(f"{debug_path} does not reference a build info file")
        build_path = (debug_path.parent / pointer).resolve()
        if not build_path.exists():
            raise ArtifactNotFound(f"Build info not found at {build_path}")
        with build_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict) or not isinstance(data.get("input"), dict):
            raise ArtifactNotFound(f"{build_path} holds no compiler input")
        return BuildInfo(
            compiler_version=str(data.get("solcLongVersion") or data.get("solcVersion") or ""),
            input=data["input"],
        )


class DeploymentStore:
    """Deployment records for one network, on disk or in memory."""

    def __init__(self, network: str, root: Optional[Path] = None) -> None:
        self.network = network
        self._root = Path(root) if root is not None else None
        self._memory: Dict[str, DeploymentRecord] = {}

    @property
    def persistent(self) -> bool:
        return self._root is not None

    def _path(self, name: str) -> Path:
        assert self._root is not None
        return self._root / self.network / f"{name}.json"

    def get(self, name: str) -> DeploymentRecord:
        if name in self._memory:
            return self._memory[name]
        if self._root is None:
            raise DeploymentNotFound(f"No deployment named {name} on {self.network}")
        path = self._path(name)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            raise DeploymentNotFound(f"No deployment named {name} on {self.network}") from None
        record = DeploymentRecord.from_mapping(name, data)
        self._memory[name] = record
        return record

    def save(self, record: DeploymentRecord, *, abi: Optional[Sequence[Dict[str, Any]]] = None) -> None:
        self._memory[record.contract_name] = record
        if self._root is None:
            return
        path = self._path(record.contract_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record.to_mapping(abi=abi), indent=2) + "\n", encoding="utf-8")
        LOGGER.debug("Saved deployment record %s", path)


class Deployer:
    """Deploy contracts from artifacts and remember where they landed."""

    def __init__(self, chain: ChainClient, artifacts: ArtifactLoader, store: DeploymentStore) -> None:
        self._chain = chain
        self._artifacts = artifacts
        self._store = store

    def get(self, name: str) -> DeploymentRecord:
        return self._store.get(name)

    def deploy(self, name: str, args: Sequence[Any], *, confirmations: int) -> DeploymentRecord:
        artifact = self._artifacts.load(name)
        LOGGER.info("Deploying %s from %s", name, self._chain.sender)
        receipt = self._chain.deploy(
            artifact.abi,
            artifact.bytecode,
            list(args),
            confirmations=confirmations,
            label=f"deploy {name}",
        )
        record = DeploymentRecord(
            contract_name=name,
            address=receipt["contractAddress"],
            constructor_arguments=tuple(args),
            transaction_hash=Web3.to_hex(receipt["transactionHash"]),
            block_number=int(receipt["blockNumber"]),
        )
        self._store.save(record, abi=artifact.abi)
        LOGGER.info(
            "Deployed %s at %s",
            name,
            record.address,
            extra={"tx_hash": record.transaction_hash},
        )
        return record


__all__ = [
    "ArtifactLoader",
    "ArtifactNotFound",
    "BuildInfo",
    "ContractArtifact",
    "Deployer",
    "DeploymentNotFound",
    "DeploymentRecord",
    "DeploymentStore",
    "MOCK_COORDINATOR_NAME",
    "RAFFLE_CONTRACT_NAME",
]
