"""Filter a wallet list by SOL balance and transaction count.

Wallets are checked concurrently (bounded by ``max_concurrent_requests``).
The signature count is taken from a single ``getSignaturesForAddress`` page,
so wallets with more history than ``signature_page_limit`` report the cap.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from .config import Settings
from .keys import parse_address
from .logs import Reporter
from .models import WalletRecord, fmt_sol
from .pool import run_bounded
from .retry import call_with_retry


@dataclass
class ScanReport:
    records: List[WalletRecord] = field(default_factory=list)
    checked: int = 0
    errors: int = 0


def write_results(records: Sequence[WalletRecord], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump([r.to_dict() for r in records], fh, indent=2)
    return path


class ScanWorkflow:
    def __init__(
        self,
        client,
        settings: Settings,
        reporter: Reporter,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.settings = settings
        self.reporter = reporter
        self._sleep = sleep
        self.min_balance_lamports = settings.min_balance_lamports
        self.count_min, self.count_max = settings.transaction_count_range or (0, settings.signature_page_limit)

    def _retry(self, operation):
        return call_with_retry(
            operation,
            max_retries=self.settings.max_retries,
            initial_delay=self.settings.retry_initial_delay_seconds,
            on_retry=self.reporter.retry_warning,
            sleep=self._sleep,
        )

    async def check_wallet(self, address: str) -> Optional[WalletRecord]:
        """Return a WalletRecord when ``address`` passes both filters, else None.

        Raises InvalidAddress / RemoteCallFailed / RetryExhausted; ``run`` turns
        those into per-wallet errors.
        """
        pubkey = parse_address(address)

        balance = await self._retry(lambda: self.client.get_balance(pubkey))
        if balance < self.min_balance_lamports:
            return None

        signatures = await self._retry(
            lambda: self.client.get_signatures_for_address(pubkey, limit=self.settings.signature_page_limit)
        )
        transaction_count = len(signatures)
        if transaction_count < self.count_min or transaction_count > self.count_max:
            return None

        record = WalletRecord(address=address, balance_lamports=balance, transaction_count=transaction_count)
        self.reporter.transactions.info(json.dumps(record.to_dict()))
        return record

    async def run(self, addresses: Sequence[str]) -> ScanReport:
        report = ScanReport(checked=len(addresses))

        def on_error(address: str, exc: BaseException) -> None:
            report.errors += 1
            self.reporter.errors.error(json.dumps({"address": address, "error": str(exc)}))
            self.reporter.echo(f"Error processing wallet {address}: {exc}")

        self.reporter.echo(
            f"Filtering wallets with balance >= {fmt_sol(self.min_balance_lamports)} SOL "
            f"and transaction count between {self.count_min} and {self.count_max}..."
        )
        results = await run_bounded(
            addresses,
            self.settings.max_concurrent_requests,
            self.check_wallet,
            on_error=on_error,
        )
        report.records = [r for r in results if r is not None]
        self.reporter.echo(f"Found {len(report.records)} wallets matching the criteria.")
        return report
