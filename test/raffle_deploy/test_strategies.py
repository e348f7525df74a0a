import dataclasses
import logging

import pytest

from raffle_deploy.chain import TransactionFailed
from raffle_deploy.config import ConfigurationError
from raffle_deploy.deployments import MOCK_COORDINATOR_NAME, RAFFLE_CONTRACT_NAME
from raffle_deploy.network import classify_network
from raffle_deploy.runner import RaffleProvisioner, build_constructor_args
from raffle_deploy.strategies import (
    FUNDING_THRESHOLD,
    MOCK_BASE_FEE,
    MOCK_GAS_PRICE_LINK,
    DurableStrategy,
    EphemeralStrategy,
    select_strategy,
)

ONE_LINK = 10**18


def _provision(settings, name, services, network=None):
    network = network or settings.network(name)
    strategy = select_strategy(classify_network(name, settings), network=network, services=services)
    return RaffleProvisioner(strategy).run(), strategy


def test_select_strategy_by_environment(settings, services):
    assert isinstance(
        select_strategy(classify_network("hardhat", settings), network=settings.network("hardhat"), services=services),
        EphemeralStrategy,
    )
    assert isinstance(
        select_strategy(classify_network("sepolia", settings), network=settings.network("sepolia"), services=services),
        DurableStrategy,
    )


def test_ephemeral_run_acts_unconditionally(settings, services):
    report, strategy = _provision(settings, "hardhat", services)
    ledger = services.ledger

    assert [name for name, _ in ledger.transactions] == [
        "deploy",
        "createSubscription",
        "fundSubscription",
        "deploy",
        "addConsumer",
    ]
    mock_deploy = ledger.transactions[0][1]
    assert mock_deploy == (MOCK_COORDINATOR_NAME, (MOCK_BASE_FEE, MOCK_GAS_PRICE_LINK), 1)
    assert all(args[-1] == 1 for _, args in ledger.transactions)

    mock_address = services.deployer.records[MOCK_COORDINATOR_NAME].address
    raffle = services.deployer.records[RAFFLE_CONTRACT_NAME]
    network = settings.network("hardhat")
    assert raffle.constructor_arguments == (
        mock_address,
        report.subscription_id,
        network.gas_lane,
        network.update_interval,
        network.entrance_fee,
        network.callback_gas_limit,
    )
    assert ledger.subscriptions[report.subscription_id].consumers == [raffle.address]
    assert report.environment == "ephemeral"
    assert report.subscription_created and report.funded and report.deployed and report.consumer_added
    assert report.verified is None
    assert strategy.metrics.transactions_sent("add_consumer") == 1


def test_ephemeral_run_reuses_mock_within_a_session(settings, services):
    _provision(settings, "hardhat", services)
    _provision(settings, "hardhat", services)

    deploys = [args[0] for name, args in services.ledger.transactions if name == "deploy"]
    assert deploys.count(MOCK_COORDINATOR_NAME) == 1
    assert deploys.count(RAFFLE_CONTRACT_NAME) == 2
    assert services.ledger.sent("createSubscription") == 2


def test_durable_run_from_scratch(settings, services):
    report, _ = _provision(settings, "sepolia", services)
    ledger = services.ledger
    network = settings.network("sepolia")

    assert [name for name, _ in ledger.transactions] == [
        "createSubscription",
        "transferAndCall",
        "deploy",
        "addConsumer",
    ]
    assert all(args[-1] == 6 for _, args in ledger.transactions)

    _, (to, amount, data, _) = ledger.transactions[1]
    assert to == network.vrf_coordinator
    assert amount == ONE_LINK
    assert data == report.subscription_id.to_bytes(32, "big")

    raffle = services.deployer.records[RAFFLE_CONTRACT_NAME]
    assert raffle.constructor_arguments == build_constructor_args(network.vrf_coordinator, report.subscription_id, network)
    assert ledger.subscriptions[report.subscription_id].balance == ONE_LINK
    assert report.deployment == raffle


def test_durable_rerun_sends_nothing(settings, services):
    first, _ = _provision(settings, "sepolia", services)
    configured = dataclasses.replace(settings.network("sepolia"), subscription_id=first.subscription_id)
    sent_before = len(services.ledger.transactions)

    second, strategy = _provision(settings, "sepolia", services, network=configured)

    assert len(services.ledger.transactions) == sent_before
    assert second.subscription_id == first.subscription_id
    assert second.deployment.address == first.deployment.address
    assert not (second.subscription_created or second.funded or second.deployed or second.consumer_added)
    assert services.ledger.subscriptions[first.subscription_id].consumers == [first.deployment.address]
    for step in ("create_subscription", "fund_subscription", "deploy", "add_consumer"):
        assert strategy.metrics.transactions_sent(step) == 0


@pytest.mark.parametrize(
    "balance,should_fund",
    [(0, True), (ONE_LINK // 2, True), (ONE_LINK - 1, True), (ONE_LINK, False), (3 * ONE_LINK, False)],
)
def test_durable_funding_threshold(settings, services, network_factory, balance, should_fund):
    subscription_id = services.ledger.open_subscription(balance=balance)
    network = network_factory("sepolia", subscription_id=subscription_id)

    report, _ = _provision(settings, "sepolia", services, network=network)

    assert report.funded is should_fund
    assert services.ledger.sent("transferAndCall") == int(should_fund)
    assert services.ledger.sent("createSubscription") == 0
    final = services.ledger.subscriptions[subscription_id].balance
    assert final // ONE_LINK >= FUNDING_THRESHOLD


def test_durable_funding_uses_configured_decimals(settings, services_factory, network_factory):
    services = services_factory(link_decimals=8)
    subscription_id = services.ledger.open_subscription(balance=2 * 10**8)
    network = network_factory("sepolia", subscription_id=subscription_id, link_token_decimals=8)

    report, _ = _provision(settings, "sepolia", services, network=network)

    assert not report.funded


@pytest.mark.parametrize("decimals", [0, 8, 18, 24])
def test_top_up_is_one_whole_token_at_configured_decimals(settings, services_factory, network_factory, decimals):
    services = services_factory(link_decimals=decimals)
    subscription_id = services.ledger.open_subscription()
    network = network_factory("sepolia", subscription_id=subscription_id, link_token_decimals=decimals)

    report, _ = _provision(settings, "sepolia", services, network=network)

    assert report.funded
    funding = [args for name, args in services.ledger.transactions if name == "transferAndCall"]
    assert len(funding) == 1
    assert funding[0][1] == 10**decimals
    balance = services.ledger.subscriptions[subscription_id].balance
    assert balance // 10**decimals == FUNDING_THRESHOLD


def test_decimals_mismatch_stops_before_funding(settings, services_factory, network_factory):
    services = services_factory(link_decimals=8)
    subscription_id = services.ledger.open_subscription()
    network = network_factory("sepolia", subscription_id=subscription_id)

    with pytest.raises(ConfigurationError, match="linkTokenDecimals"):
        _provision(settings, "sepolia", services, network=network)

    assert services.ledger.transactions == []


def test_existing_consumer_is_not_added_twice(settings, services, network_factory):
    first, _ = _provision(settings, "sepolia", services)
    network = network_factory("sepolia", subscription_id=first.subscription_id)

    _provision(settings, "sepolia", services, network=network)

    assert services.ledger.sent("addConsumer") == 1
    assert services.ledger.subscriptions[first.subscription_id].consumers == [first.deployment.address]


def test_other_consumers_are_preserved(settings, services, network_factory):
    other = "0x000000000000000000000000000000000000bEEF"
    subscription_id = services.ledger.open_subscription(balance=ONE_LINK, consumers=[other])
    network = network_factory("sepolia", subscription_id=subscription_id)

    report, _ = _provision(settings, "sepolia", services, network=network)

    assert services.ledger.subscriptions[subscription_id].consumers == [other, report.deployment.address]


def test_reused_deployment_with_other_arguments_warns(settings, services, network_factory, caplog):
    first, _ = _provision(settings, "sepolia", services)
    network = network_factory("sepolia", subscription_id=first.subscription_id, update_interval=60)

    with caplog.at_level(logging.WARNING, logger="raffle_deploy.strategies"):
        second, _ = _provision(settings, "sepolia", services, network=network)

    assert not second.deployed
    assert second.deployment.address == first.deployment.address
    assert "different constructor arguments" in caplog.text


def test_durable_network_requires_live_contracts(settings, services, network_factory):
    network = network_factory("sepolia", vrf_coordinator=None)

    with pytest.raises(ConfigurationError):
        select_strategy(classify_network("sepolia", settings), network=network, services=services)


def test_failed_subscription_creation_stops_the_run(settings, services_factory):
    services = services_factory(fail_create=TransactionFailed("reverted", tx_hash="0x01"))

    with pytest.raises(TransactionFailed):
        _provision(settings, "sepolia", services)

    assert services.ledger.sent("deploy") == 0
    assert services.deployer.records == {}


def test_verification_is_durable_only(settings, services):
    ephemeral = select_strategy(classify_network("hardhat", settings), network=settings.network("hardhat"), services=services)
    durable = select_strategy(classify_network("sepolia", settings), network=settings.network("sepolia"), services=services)

    assert not ephemeral.verification_allowed("key")
    assert durable.verification_allowed("key")
    assert not durable.verification_allowed(None)
