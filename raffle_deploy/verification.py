"""Etherscan source verification for deployed contracts."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx
from eth_abi import encode
from eth_abi.exceptions import EncodingError
from web3 import Web3

from .deployments import ArtifactLoader, ArtifactNotFound, ContractArtifact, DeploymentRecord

LOGGER = logging.getLogger(__name__)

ETHERSCAN_API_URL = "https://api.etherscan.io/v2/api"
_PENDING = "pending in queue"
_ALREADY_VERIFIED = ("already verified", "source code already verified")


class VerificationError(RuntimeError):
    """Raised when Etherscan rejects or fails a verification request."""

    def __init__(self, message: str, *, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type.startswith("bytes") and isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    if abi_type.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    return value


def encode_constructor_arguments(artifact: ContractArtifact, args: Sequence[Any]) -> str:
    """ABI-encode constructor arguments the way Etherscan expects them (hex, no prefix)."""

    types = artifact.constructor_types()
    if len(types) != len(args):
        raise VerificationError(
            f"{artifact.contract_name} constructor takes {len(types)} arguments, got {len(args)}"
        )
    try:
        values = [_normalize(abi_type, value) for abi_type, value in zip(types, args)]
        return encode(types, values).hex()
    except (EncodingError, ValueError, TypeError) as exc:
        raise VerificationError(f"Cannot encode {artifact.contract_name} constructor arguments: {exc}") from exc


def _is_already_verified(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _ALREADY_VERIFIED)


class EtherscanVerifier:
    """Submit standard-JSON compiler input to Etherscan and wait for the verdict."""

    def __init__(
        self,
        *,
        api_key: str,
        chain_id: int,
        artifacts: ArtifactLoader,
        api_url: str = ETHERSCAN_API_URL,
        client: Optional[httpx.Client] = None,
        poll_interval: float = 5.0,
        max_polls: int = 12,
    ) -> None:
        self._api_key = api_key
        self._chain_id = chain_id
        self._artifacts = artifacts
        self._api_url = api_url
        self._client = client or httpx.Client(timeout=30.0)
        self._poll_interval = poll_interval
        self._max_polls = max_polls

    def verify(self, record: DeploymentRecord) -> bool:
        """Return ``True`` once Etherscan reports the contract verified."""

        try:
            artifact = self._artifacts.load(record.contract_name)
            build_info = self._artifacts.build_info(artifact)
        except (ArtifactNotFound, OSError, ValueError) as exc:
            raise VerificationError(f"Cannot load compiler input for {record.contract_name}: {exc}") from exc

        form = {
            "module": "contract",
            "action": "verifysourcecode",
            "apikey": self._api_key,
            "contractaddress": record.address,
            "sourceCode": json.dumps(build_info.input),
            "codeformat": "solidity-standard-json-input",
            "contractname": artifact.fully_qualified_name,
            "compilerversion": f"v{build_info.compiler_version}",
            # Etherscan's parameter name is misspelled upstream.
            "constructorArguements": encode_constructor_arguments(artifact, record.constructor_arguments),
        }
        payload = self._request("POST", data=form)
        result = str(payload.get("result") or "")
        if str(payload.get("status")) != "1":
            if _is_already_verified(result):
                LOGGER.info("%s at %s is already verified", record.contract_name, record.address)
                return True
            raise VerificationError(f"Etherscan rejected verification: {result or payload.get('message')}")

        return self._wait_for_verdict(guid=result)

    def _wait_for_verdict(self, *, guid: str) -> bool:
        params = {"module": "contract", "action": "checkverifystatus", "guid": guid, "apikey": self._api_key}
        for _ in range(self._max_polls):
            payload = self._request("GET", params=params)
            result = str(payload.get("result") or "")
            if result.lower().startswith(_PENDING):
                time.sleep(self._poll_interval)
                continue
            if str(payload.get("status")) == "1" or _is_already_verified(result):
                LOGGER.info("Verification passed: %s", result)
                return True
            raise VerificationError(f"Verification failed: {result}")
        raise VerificationError(f"Verification still pending after {self._max_polls} checks (guid={guid})")

    def _request(self, method: str, **kwargs: Any) -> Dict[str, Any]:
        params = dict(kwargs.pop("params", None) or {})
        params["chainid"] = self._chain_id
        response = self._client.request(method, self._api_url, params=params, **kwargs)
        if response.status_code >= 400:
            raise VerificationError(f"Etherscan HTTP {response.status_code}", code=response.status_code)
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise VerificationError("Invalid Etherscan response") from exc
        if not isinstance(data, dict):
            raise VerificationError("Etherscan returned an unexpected payload")
        return data


__all__ = ["ETHERSCAN_API_URL", "EtherscanVerifier", "VerificationError", "encode_constructor_arguments"]
