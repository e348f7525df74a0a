"""Transaction submission and confirmation tracking."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract.contract import Contract, ContractFunction
from web3.exceptions import TransactionNotFound
from web3.types import TxReceipt

LOGGER = logging.getLogger(__name__)


class ChainError(RuntimeError):
    """Raised when the RPC endpoint cannot serve the provisioning run."""


class TransactionFailed(ChainError):
    """Raised when a transaction is mined with a failing status."""

    def __init__(self, message: str, *, tx_hash: str, receipt: Optional[TxReceipt] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.receipt = receipt


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


class ChainClient:
    """A thin wrapper around Web3 that sends transactions and waits for depth."""

    def __init__(
        self,
        web3: Web3,
        *,
        account: Optional[LocalAccount] = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.web3 = web3
        self._account = account
        self._poll_interval = poll_interval
        self._sender: Optional[str] = account.address if account is not None else None

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        *,
        private_key: Optional[str] = None,
        request_timeout: float = 30.0,
        poll_interval: float = 1.0,
    ) -> "ChainClient":
        web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        account = Account.from_key(private_key) if private_key else None
        LOGGER.debug("Chain client initialized for %s", rpc_url)
        return cls(web3, account=account, poll_interval=poll_interval)

    def ensure_connection(self) -> None:
        if not self.web3.is_connected():
            raise ChainError("Unable to connect to the configured RPC endpoint")

    @property
    def sender(self) -> str:
        """Address that signs every provisioning transaction."""

        if self._sender is None:
            accounts = self.web3.eth.accounts
            if not accounts:
                raise ChainError("No PRIVATE_KEY configured and the node exposes no unlocked accounts")
            self._sender = Web3.to_checksum_address(accounts[0])
        return self._sender

    def contract(self, address: str, abi: Sequence[Dict[str, Any]]) -> Contract:
        return self.web3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))

    def transact(self, function: ContractFunction, *, confirmations: int, label: str) -> TxReceipt:
        """Send a state-changing contract call and wait for ``confirmations`` blocks."""

        tx = function.build_transaction(self._tx_params())
        return self._send(tx, confirmations=confirmations, label=label)

    def deploy(
        self,
        abi: Sequence[Dict[str, Any]],
        bytecode: str,
        args: Sequence[Any],
        *,
        confirmations: int,
        label: str,
    ) -> TxReceipt:
        factory = self.web3.eth.contract(abi=list(abi), bytecode=bytecode)
        tx = factory.constructor(*args).build_transaction(self._tx_params())
        receipt = self._send(tx, confirmations=confirmations, label=label)
        if not receipt.get("contractAddress"):
            raise TransactionFailed(
                f"{label}: receipt carries no contract address",
                tx_hash=_hex(receipt["transactionHash"]),
                receipt=receipt,
            )
        return receipt

    def wait_for_receipt(self, tx_hash: str, *, confirmations: int) -> TxReceipt:
        """Poll until the transaction is mined and buried under enough blocks.

        There is no deadline: a transaction that never confirms blocks the run.
        """

        while True:
            try:
                receipt = self.web3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            if receipt is not None:
                break
            time.sleep(self._poll_interval)

        if receipt.get("status") != 1:
            raise TransactionFailed(f"Transaction {tx_hash} reverted", tx_hash=tx_hash, receipt=receipt)

        target_block = receipt["blockNumber"] + max(1, confirmations) - 1
        while self.web3.eth.block_number < target_block:
            time.sleep(self._poll_interval)
        return receipt

    def _tx_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"from": self.sender}
        if self._account is not None:
            params["nonce"] = self.web3.eth.get_transaction_count(self.sender, "pending")
        return params

    def _send(self, tx: Dict[str, Any], *, confirmations: int, label: str) -> TxReceipt:
        if self._account is not None:
            signed = self._account.sign_transaction(tx)
            raw_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        else:
            raw_hash = self.web3.eth.send_transaction(tx)
        tx_hash = _hex(raw_hash)
        LOGGER.info(
            "%s: sent transaction, waiting for %s confirmation(s)",
            label,
            confirmations,
            extra={"tx_hash": tx_hash},
        )
        receipt = self.wait_for_receipt(tx_hash, confirmations=confirmations)
        LOGGER.debug("%s: confirmed in block %s", label, receipt["blockNumber"], extra={"tx_hash": tx_hash})
        return receipt


__all__ = ["ChainClient", "ChainError", "TransactionFailed"]
