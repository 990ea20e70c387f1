"""Command line entry point for sampling and scanning Kamino Lend transactions."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

from solana.rpc.api import Client
from solders.pubkey import Pubkey

from . import config
from .report import log_summary, write_report
from .rpc_source import (
    RpcTableFetcher,
    RpcTransactionSource,
    SignatureSample,
    fetch_signatures,
    filter_successful,
    rpc_client,
    write_signatures,
)
from .scanner import KaminoScanner


def scan_config_from_args(args: argparse.Namespace) -> config.ScanConfig:
    return config.ScanConfig.from_env(
        rpc_endpoint=args.rpc,
        program_id=None if getattr(args, "all_programs", False) else config.KAMINO_LEND_PROGRAM_ID,
        include_failed=args.include_failed,
    )


def sample(args: argparse.Namespace, client: Client) -> List[SignatureSample]:
    program_id = Pubkey.from_string(config.KAMINO_LEND_PROGRAM_ID)
    samples = list(fetch_signatures(client, program_id, args.limit, before=args.before))
    logging.info("Found %d total recent transactions", len(samples))
    if not args.include_failed:
        samples = filter_successful(samples)
    return samples


def cmd_signatures(args: argparse.Namespace) -> int:
    scan_config = scan_config_from_args(args)
    client = rpc_client(scan_config)
    samples = sample(args, client)
    if not samples:
        logging.warning("No signatures retrieved")
        return 0
    write_signatures(samples, args.output)
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    scan_config = scan_config_from_args(args)
    client = rpc_client(scan_config)
    samples = sample(args, client)
    if not samples:
        logging.warning("No signatures retrieved, nothing to scan")
        return 0

    source = RpcTransactionSource(client)
    scanner = KaminoScanner(scan_config, RpcTableFetcher(client))
    result = scanner.run(source.iter_transactions(samples))
    result.warnings.extend(source.warnings)

    log_summary(result, scan_config)
    write_report(result, scan_config, args.output_dir)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kamino Lend borrow scanner")
    parser.add_argument("--rpc", default=None, help="RPC endpoint to use (default: RPC_URL or public mainnet)")
    parser.add_argument("--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--limit", type=int, default=config.MAX_TX_SAMPLE, help="Signatures to fetch")
    common.add_argument("--before", default=None, help="Start paging before this signature")
    common.add_argument("--include-failed", action="store_true", help="Keep failed transactions")

    signatures = sub.add_parser("signatures", parents=[common], help="List recent program signatures")
    signatures.add_argument(
        "--output",
        type=Path,
        default=config.RAW_DATA_DIR / "tx_signatures.csv",
        help="CSV path for output",
    )
    signatures.set_defaults(func=cmd_signatures)

    scan = sub.add_parser("scan", parents=[common], help="Aggregate flash loan and borrow amounts")
    scan.add_argument(
        "--output-dir",
        type=Path,
        default=config.PROCESSED_DATA_DIR,
        help="Directory for totals.csv, counts.csv and warnings.csv",
    )
    scan.add_argument(
        "--all-programs",
        action="store_true",
        help="Match discriminators in every instruction, not only Kamino Lend ones",
    )
    scan.set_defaults(func=cmd_scan)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    if args.limit <= 0:
        parser.error("--limit must be positive")
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
