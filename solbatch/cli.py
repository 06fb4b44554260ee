#!/usr/bin/env python3
"""solbatch command line.

  solbatch sweep [--dry-run]   sweep every wallet in keys_file_path into the first one
  solbatch scan                filter wallets_file_path by balance / transaction count

Env:
  - RPC_URL or SOLANA_URL (optional override)
  - HELIUS_API_KEY (optional)
"""

from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from dotenv import load_dotenv

from .config import DEFAULT_CONFIG_PATH, Settings, load_settings
from .errors import ConfigError
from .keys import read_lines
from .logs import Reporter, setup_loggers
from .models import fmt_sol
from .rpc import SolanaRpcClient
from .scan import ScanWorkflow, write_results
from .sweep import SweepStatus, SweepWorkflow


async def run_sweep(settings: Settings, reporter: Reporter, *, dry_run: bool = False, limit: int = 0) -> int:
    settings.require_sweep()
    lines = read_lines(settings.keys_file_path)
    if limit and limit > 0:
        # keep the recipient line plus the first N senders
        lines = lines[: limit + 1]

    reporter.echo(f"RPC: {settings.rpc_endpoint}")
    reporter.echo(f"Mode: {'DRY RUN' if dry_run else 'EXECUTE'}")
    reporter.echo("-" * 80)

    async with SolanaRpcClient(settings.rpc_endpoint) as client:
        report = await SweepWorkflow(client, settings, reporter, dry_run=dry_run).run(lines)

    reporter.echo("-" * 80)
    if dry_run:
        reporter.echo(f"Planned transfers: {report.count(SweepStatus.PLANNED)}")
    reporter.echo(
        f"Skipped (insufficient): {report.count(SweepStatus.SKIPPED_INSUFFICIENT)} | "
        f"Unconfirmed: {report.count(SweepStatus.UNCONFIRMED)} | "
        f"Failed: {report.count(SweepStatus.FAILED) + report.count(SweepStatus.INVALID_CREDENTIAL)}"
    )
    reporter.echo(
        f"Finished. Total actions completed: {report.processed} ({fmt_sol(report.total_sent_lamports)} SOL)"
    )
    return 0


async def run_scan(settings: Settings, reporter: Reporter, *, limit: int = 0) -> int:
    settings.require_scan()
    addresses = read_lines(settings.wallets_file_path)
    if limit and limit > 0:
        addresses = addresses[:limit]

    reporter.echo(f"RPC: {settings.rpc_endpoint}")
    async with SolanaRpcClient(settings.rpc_endpoint) as client:
        report = await ScanWorkflow(client, settings, reporter).run(addresses)

    out = write_results(report.records, settings.results_file_path)
    reporter.echo(f"Checked {report.checked} wallets ({report.errors} errors).")
    reporter.echo(f"Results saved to {out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Settings TOML file (default: {DEFAULT_CONFIG_PATH})",
    )
    common.add_argument("--rpc-url", default="", help="RPC URL override (default: RPC_URL/SOLANA_URL/HELIUS_API_KEY)")
    common.add_argument("--limit", type=int, default=0, help="Only process first N wallets (0 = all)")

    ap = argparse.ArgumentParser(
        prog="solbatch",
        description="Batch Solana wallet operations: sweep balances into one wallet, or scan a wallet list.",
    )
    sub = ap.add_subparsers(dest="command", required=True)
    sweep = sub.add_parser("sweep", parents=[common], help="Sweep SOL from every sender wallet into the first wallet")
    sweep.add_argument("--dry-run", action="store_true", help="Compute transfers without broadcasting")
    sub.add_parser("scan", parents=[common], help="Filter wallets by balance and transaction count")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config, rpc_override=args.rpc_url)
        reporter = setup_loggers(settings.transactions_log_file, settings.errors_log_file)
    except ConfigError as exc:
        print(f"ERROR: {exc}")
        return 2
    except OSError as exc:
        print(f"ERROR: cannot open log files: {exc}")
        return 2

    try:
        if args.command == "sweep":
            return asyncio.run(run_sweep(settings, reporter, dry_run=args.dry_run, limit=args.limit))
        return asyncio.run(run_scan(settings, reporter, limit=args.limit))
    except ConfigError as exc:
        reporter.errors.error("Configuration error: %s", exc)
        print(f"ERROR: {exc}")
        return 2
    except Exception as exc:
        reporter.errors.error("General error: %s", exc, exc_info=True)
        print("An error occurred. Check logs for details.")
        return 1
    finally:
        reporter.close()


if __name__ == "__main__":
    raise SystemExit(main())
