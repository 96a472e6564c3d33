#!/usr/bin/env python3

"""
This is a script to verify a provider against its consumer contracts.
You can directly execute the script, or use a CLI command `contract-verifier` that should be available after setting
up the project.

The script starts the provider app and the provider-states service, replays every interaction of the contracts,
and prints the result of each interaction.

usage: contract-verifier [-h] [-c CONFIG] [-p PACT_DIR] [--consumer CONSUMER] [-b BROKER_URL] [--provider-port PORT]
                         [--provider-states-port PORT] [--publish] [--provider-version VERSION]
                         [--provider-branch BRANCH] [--header NAME:VALUE ...] [--timeout SECONDS] [--no-color]

Exit codes:
  0: All interactions passed
  1: One or more interactions failed
  2: The verification was aborted (config error, contract source unavailable, malformed contract, listener failure)

A failure to publish the verification results is reported but doesn't change the exit code.
"""

from __future__ import annotations

import argparse
import sys
from typing import Any

from contract_verifier.config import load_config
from contract_verifier.exceptions import ConfigError, ContractVerifierError
from contract_verifier.libraries.common.logging import get_logger
from contract_verifier.reporter import ResultReporter
from contract_verifier.runner import run_verification

logger = get_logger(__name__)


EXIT_CODE_SUCCESS = 0
EXIT_CODE_VERIFICATION_FAILED = 1
EXIT_CODE_ABORTED = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify a provider against its consumer contracts")
    parser.add_argument("-c", "--config", dest="config", help="Path to a verifier config (YAML)")
    parser.add_argument("-p", "--pact-dir", dest="pact_dir", help="A pact file or a directory of pact files")
    parser.add_argument("--consumer", dest="consumer", help="Only verify contracts from this consumer")
    parser.add_argument("-b", "--broker-url", dest="broker_url", help="Pact broker base URL")
    parser.add_argument("--provider-port", dest="provider_port", type=int, help="Port of the provider app")
    parser.add_argument(
        "--provider-states-port", dest="provider_states_port", type=int, help="Port of the provider-states service"
    )
    parser.add_argument(
        "--publish", dest="publish", action="store_true", help="Publish verification results to the broker"
    )
    parser.add_argument("--provider-version", dest="provider_version", help="The provider version being verified")
    parser.add_argument("--provider-branch", dest="provider_branch", help="The provider branch being verified")
    parser.add_argument(
        "-H",
        "--header",
        dest="headers",
        nargs="*",
        default=[],
        help='Custom header(s) added to every replayed request. The format of each header should be "<name>:<value>"',
    )
    parser.add_argument("--timeout", dest="run_timeout", type=float, help="Max duration of the run in seconds")
    parser.add_argument("--no-color", dest="no_color", action="store_true", help="Do not color the output")
    return parser.parse_args(argv)


def _to_config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    headers = {}
    for header in args.headers:
        name, sep, value = header.partition(":")
        if not sep:
            raise ConfigError(f'Invalid header "{header}". The format should be "<name>:<value>"')
        headers[name.strip()] = value.strip()

    return {
        "pact_dir": args.pact_dir,
        "consumer": args.consumer,
        "run_timeout": args.run_timeout,
        "custom_headers": headers or None,
        "provider": {"port": args.provider_port},
        "provider_states": {"port": args.provider_states_port},
        "broker": {"base_url": args.broker_url},
        "publish": {
            "enabled": args.publish or None,
            "provider_version": args.provider_version,
            "provider_branch": args.provider_branch,
        },
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    reporter = ResultReporter(use_color=False if args.no_color else None)
    try:
        config = load_config(args.config, overrides=_to_config_overrides(args))
        summary = run_verification(config, reporter=reporter)
    except ContractVerifierError as e:
        reporter.report_fatal(e)
        return EXIT_CODE_ABORTED
    return EXIT_CODE_SUCCESS if summary.success else EXIT_CODE_VERIFICATION_FAILED


if __name__ == "__main__":
    sys.exit(main())
