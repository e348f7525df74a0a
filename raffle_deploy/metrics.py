"""Prometheus counters describing what a provisioning run changed."""

from __future__ import annotations

from pathlib import Path

from prometheus_client import CollectorRegistry, Counter, generate_latest


class ProvisioningMetrics:
    """Per-run registry so repeated runs in one process do not collide."""

    def __init__(self) -> None:
        self.registry = CollectorRegistry()
        self._transactions = Counter(
            "raffle_provisioning_transactions",
            "Transactions sent by the provisioner",
            labelnames=("step",),
            registry=self.registry,
        )
        self._steps = Counter(
            "raffle_provisioning_steps",
            "Provisioning steps by outcome",
            labelnames=("step", "outcome"),
            registry=self.registry,
        )

    def transaction(self, step: str) -> None:
        self._transactions.labels(step).inc()

    def step(self, step: str, outcome: str) -> None:
        self._steps.labels(step, outcome).inc()

    def transactions_sent(self, step: str) -> float:
        value = self.registry.get_sample_value("raffle_provisioning_transactions_total", {"step": step})
        return value or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def write_textfile(self, path: str | Path) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(self.render())


__all__ = ["ProvisioningMetrics"]
