"""Command line entry point: provision the Raffle on the selected network."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import load_config
from .logging_utils import configure_logging
from .runner import build_provisioner

LOGGER = logging.getLogger("raffle_deploy.cli")

DEFAULT_NETWORK = "hardhat"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="raffle-deploy",
        description="Provision the Raffle contract and its VRF subscription.",
    )
    parser.add_argument(
        "--network",
        default=os.getenv("RAFFLE_DEPLOY_NETWORK", DEFAULT_NETWORK),
        help="Network name from the networks file (default: $RAFFLE_DEPLOY_NETWORK or hardhat)",
    )
    parser.add_argument("--config", default=None, help="Networks file (default: $RAFFLE_DEPLOY_CONFIG or config/networks.yml)")
    parser.add_argument("--artifacts", default="artifacts", type=Path, help="Compiled artifacts directory")
    parser.add_argument("--deployments", default="deployments", type=Path, help="Deployment records directory")
    parser.add_argument("--metrics-file", type=Path, default=None, help="Write Prometheus metrics to this file")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON logs")
    parser.add_argument("--log-dir", default=None, help="Also write rotating logs to this directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO", json_output=args.json_logs, log_dir=args.log_dir)

    settings = load_config(args.config)
    provisioner = build_provisioner(
        settings,
        args.network,
        artifacts_dir=args.artifacts,
        deployments_dir=args.deployments,
    )
    try:
        report = provisioner.run()
    finally:
        if args.metrics_file is not None:
            provisioner.metrics.write_textfile(args.metrics_file)
            LOGGER.debug("Wrote metrics to %s", args.metrics_file)

    json.dump(report.as_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


__all__ = ["build_parser", "main"]
