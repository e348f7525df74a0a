"""Minimal ABIs for the contracts the provisioner talks to.

Only the entries the provisioner calls or decodes are declared.
"""

from __future__ import annotations

from typing import Any, Dict, List

_GET_SUBSCRIPTION: Dict[str, Any] = {
    "type": "function",
    "name": "getSubscription",
    "stateMutability": "view",
    "inputs": [{"name": "subId", "type": "uint64"}],
    "outputs": [
        {"name": "balance", "type": "uint96"},
        {"name": "reqCount", "type": "uint64"},
        {"name": "owner", "type": "address"},
        {"name": "consumers", "type": "address[]"},
    ],
}

_CREATE_SUBSCRIPTION: Dict[str, Any] = {
    "type": "function",
    "name": "createSubscription",
    "stateMutability": "nonpayable",
    "inputs": [],
    "outputs": [{"name": "subId", "type": "uint64"}],
}

_ADD_CONSUMER: Dict[str, Any] = {
    "type": "function",
    "name": "addConsumer",
    "stateMutability": "nonpayable",
    "inputs": [
        {"name": "subId", "type": "uint64"},
        {"name": "consumer", "type": "address"},
    ],
    "outputs": [],
}

_SUBSCRIPTION_CREATED: Dict[str, Any] = {
    "type": "event",
    "name": "SubscriptionCreated",
    "anonymous": False,
    "inputs": [
        {"name": "subId", "type": "uint64", "indexed": True},
        {"name": "owner", "type": "address", "indexed": False},
    ],
}

VRF_COORDINATOR_ABI: List[Dict[str, Any]] = [
    _CREATE_SUBSCRIPTION,
    _GET_SUBSCRIPTION,
    _ADD_CONSUMER,
    _SUBSCRIPTION_CREATED,
]

VRF_COORDINATOR_MOCK_ABI: List[Dict[str, Any]] = VRF_COORDINATOR_ABI + [
    {
        "type": "function",
        "name": "fundSubscription",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_subId", "type": "uint64"},
            {"name": "_amount", "type": "uint96"},
        ],
        "outputs": [],
    },
]

LINK_TOKEN_ABI: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "transferAndCall",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "data", "type": "bytes"},
        ],
        "outputs": [{"name": "success", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "decimals",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
]

__all__ = ["LINK_TOKEN_ABI", "VRF_COORDINATOR_ABI", "VRF_COORDINATOR_MOCK_ABI"]
