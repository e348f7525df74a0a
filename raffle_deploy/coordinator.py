"""Boundary adapters for the VRF coordinator and the LINK funding token.

The coordinator's ``getSubscription`` returns a positional tuple. It is mapped
to :class:`SubscriptionInfo` here, once, so callers never index into it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

from web3 import Web3
from web3.contract.contract import Contract
from web3.logs import DISCARD
from web3.types import TxReceipt

from .abi import LINK_TOKEN_ABI, VRF_COORDINATOR_ABI, VRF_COORDINATOR_MOCK_ABI
from .chain import ChainClient


SUBSCRIPTION_ID_WIDTH = 32


class SubscriptionEventMissing(RuntimeError):
    """Raised when a createSubscription receipt carries no SubscriptionCreated log."""


@dataclass(frozen=True)
class SubscriptionInfo:
    balance: int
    request_count: int
    owner: str
    consumers: Tuple[str, ...]

    @classmethod
    def from_tuple(cls, raw: Sequence[Any]) -> "SubscriptionInfo":
        balance, request_count, owner, consumers = raw
        return cls(
            balance=int(balance),
            request_count=int(request_count),
            owner=str(owner),
            consumers=tuple(str(consumer) for consumer in consumers),
        )

    def has_consumer(self, address: str) -> bool:
        needle = address.lower()
        return any(consumer.lower() == needle for consumer in self.consumers)

    def whole_units(self, decimals: int) -> int:
        """Balance in whole funding-token units, rounded down."""

        return self.balance // (10**decimals)


def encode_subscription_id(subscription_id: int) -> bytes:
    """Encode the id as the 32-byte big-endian payload ``onTokenTransfer`` expects."""

    if subscription_id < 0:
        raise ValueError("subscription id must be non-negative")
    return int(subscription_id).to_bytes(SUBSCRIPTION_ID_WIDTH, "big")


class VRFCoordinator:
    """Live VRF v2 coordinator."""

    _abi: Sequence[Any] = VRF_COORDINATOR_ABI

    def __init__(self, chain: ChainClient, address: str) -> None:
        self._chain = chain
        self._contract: Contract = chain.contract(address, self._abi)

    @property
    def address(self) -> str:
        return self._contract.address

    def create_subscription(self, *, confirmations: int) -> int:
        receipt = self._chain.transact(
            self._contract.functions.createSubscription(),
            confirmations=confirmations,
            label="createSubscription",
        )
        return self._subscription_id_from(receipt)

    def get_subscription(self, subscription_id: int) -> SubscriptionInfo:
        raw = self._contract.functions.getSubscription(subscription_id).call()
        return SubscriptionInfo.from_tuple(raw)

    def add_consumer(self, subscription_id: int, consumer: str, *, confirmations: int) -> TxReceipt:
        return self._chain.transact(
            self._contract.functions.addConsumer(subscription_id, Web3.to_checksum_address(consumer)),
            confirmations=confirmations,
            label="addConsumer",
        )

    def _subscription_id_from(self, receipt: TxReceipt) -> int:
        events = self._contract.events.SubscriptionCreated().process_receipt(receipt, errors=DISCARD)
        if not events:
            raise SubscriptionEventMissing(
                f"createSubscription receipt {Web3.to_hex(receipt['transactionHash'])} has no SubscriptionCreated event"
            )
        return int(events[0]["args"]["subId"])


class MockVRFCoordinator(VRFCoordinator):
    """``VRFCoordinatorV2Mock`` deployed on development chains."""

    _abi = VRF_COORDINATOR_MOCK_ABI

    def fund_subscription(self, subscription_id: int, amount: int, *, confirmations: int) -> TxReceipt:
        return self._chain.transact(
            self._contract.functions.fundSubscription(subscription_id, amount),
            confirmations=confirmations,
            label="fundSubscription",
        )


class LinkToken:
    """ERC-677 LINK token used to top up live subscriptions."""

    def __init__(self, chain: ChainClient, address: str) -> None:
        self._chain = chain
        self._contract: Contract = chain.contract(address, LINK_TOKEN_ABI)

    @property
    def address(self) -> str:
        return self._contract.address

    def decimals(self) -> int:
        return int(self._contract.functions.decimals().call())

    def transfer_and_call(self, to: str, amount: int, data: bytes, *, confirmations: int) -> TxReceipt:
        return self._chain.transact(
            self._contract.functions.transferAndCall(Web3.to_checksum_address(to), amount, data),
            confirmations=confirmations,
            label="transferAndCall",
        )


__all__ = [
    "LinkToken",
    "MockVRFCoordinator",
    "SUBSCRIPTION_ID_WIDTH",
    "SubscriptionEventMissing",
    "SubscriptionInfo",
    "VRFCoordinator",
    "encode_subscription_id",
]
