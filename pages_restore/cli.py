"""restore-pages - replay a Pages snapshot onto an appliance or cluster.

Usage:
    restore-pages ghe.example.com
    restore-pages --snapshot 20261001T020000 --cluster ghe-head.example.com
    GHE_DATA_DIR=/backup/data restore-pages -v admin@10.0.0.5

Exit status is 0 on success (including an empty snapshot or an empty
route table), 1 when a restore step fails and 2 for usage or
configuration errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pages_restore.config import load_config
from pages_restore.errors import ConfigurationError, PagesRestoreError
from pages_restore.logging_config import configure_third_party_loggers, setup_logging
from pages_restore.metrics import write_metrics
from pages_restore.pipeline import PagesRestore

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restore-pages",
        description="Restore Pages content from a snapshot onto a host or cluster.",
    )
    parser.add_argument("host", help="Target appliance, optionally user@host")
    parser.add_argument(
        "--snapshot",
        help="Snapshot label to restore (default: current)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="YAML config file (default: $PAGES_RESTORE_CONFIG)",
    )
    cluster = parser.add_mutually_exclusive_group()
    cluster.add_argument(
        "--cluster",
        dest="cluster",
        action="store_true",
        default=None,
        help="Target is a cluster head node",
    )
    cluster.add_argument(
        "--no-cluster",
        dest="cluster",
        action="store_false",
        help="Target is a single appliance",
    )
    parser.add_argument(
        "--parallel-transfers",
        type=int,
        help="Run up to N node transfers at once (default: 1, sequential)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=Path, help="Also log to this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(
        "pages_restore",
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
    )
    configure_third_party_loggers(quiet=not args.verbose)

    try:
        config = load_config(
            args.config,
            overrides={
                "snapshot": args.snapshot,
                "cluster": args.cluster,
                "parallel_transfers": args.parallel_transfers,
            },
        )
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_USAGE

    try:
        result = PagesRestore(config, args.host).run()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_USAGE
    except PagesRestoreError as e:
        logger.error("Restore of pages to %s failed: %s", args.host, e)
        return EXIT_FAILURE
    finally:
        write_metrics(config.metrics_textfile)

    print(result.message)
    return EXIT_OK


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
