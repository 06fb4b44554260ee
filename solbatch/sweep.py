"""Sweep SOL from every sender wallet in a keys file into one recipient.

Line 0 of the keys file is the recipient; every following line is a sender.
Per sender, processed one at a time:
  1) Parse the credential (bad lines are logged and skipped)
  2) Query balance and the rent-exempt reserve for a zero-size account
  3) amount = balance - reserve - fee; skip when <= 0
  4) Submit the transfer, then wait for confirmation up to the configured timeout
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import Settings
from .deadline import await_with_deadline
from .errors import (
    ConfigError,
    ConfirmationTimeout,
    InsufficientBalance,
    InvalidCredentialFormat,
    RetryExhausted,
    SolbatchError,
    TransactionFailed,
)
from .keys import mask_address, parse_credential
from .logs import Reporter
from .models import SubmissionResult, TransactionStatus, TransferIntent, fmt_sol
from .retry import call_with_retry


class SweepStatus(str, Enum):
    SENT = "sent"
    PLANNED = "planned"
    SKIPPED_INSUFFICIENT = "skipped_insufficient"
    SKIPPED_RECIPIENT = "skipped_recipient"
    INVALID_CREDENTIAL = "invalid_credential"
    UNCONFIRMED = "unconfirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class WalletOutcome:
    index: int
    status: SweepStatus
    address: Optional[str] = None
    amount: int = 0
    signature: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SweepReport:
    recipient: str
    outcomes: List[WalletOutcome] = field(default_factory=list)

    def count(self, status: SweepStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def processed(self) -> int:
        return self.count(SweepStatus.SENT)

    @property
    def total_sent_lamports(self) -> int:
        return sum(o.amount for o in self.outcomes if o.status is SweepStatus.SENT)


def plan_amount(balance: int, reserve: int, fee: int) -> int:
    amount = balance - reserve - fee
    if amount <= 0:
        raise InsufficientBalance(balance, reserve, fee)
    return amount


def _preflight_logs(exc: BaseException) -> List[str]:
    if isinstance(exc, RetryExhausted) and exc.last_error is not None:
        exc = exc.last_error
    return list(getattr(exc, "logs", None) or [])


class SweepWorkflow:
    def __init__(
        self,
        client,
        settings: Settings,
        reporter: Reporter,
        *,
        dry_run: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.client = client
        self.settings = settings
        self.reporter = reporter
        self.dry_run = dry_run
        self._sleep = sleep
        self._clock = clock

    # ---------------- helpers ----------------
    def _retry(self, operation):
        return call_with_retry(
            operation,
            max_retries=self.settings.max_retries,
            initial_delay=self.settings.retry_initial_delay_seconds,
            on_retry=self.reporter.retry_warning,
            sleep=self._sleep,
        )

    async def _wait_for_confirmation(self, signature: str) -> SubmissionResult:
        interval = self.settings.confirmation_poll_interval_seconds

        async def poll() -> SubmissionResult:
            while True:
                status = await self._retry(lambda: self.client.get_signature_status(signature))
                if status.status is TransactionStatus.CONFIRMED:
                    return SubmissionResult(signature, status.status)
                if status.status is TransactionStatus.FAILED:
                    raise TransactionFailed(signature, status.reason)
                await self._sleep(interval)

        return await await_with_deadline(
            poll(),
            self.settings.confirmation_timeout_seconds,
            sleep=self._sleep,
            clock=self._clock,
            signature=signature,
        )

    async def _fetch_logs(self, exc: BaseException, signature: Optional[str]) -> List[str]:
        logs = _preflight_logs(exc)
        if logs or signature is None:
            return logs
        try:
            return await self.client.get_transaction_logs(signature)
        except Exception:  # diagnostics only; the triggering error is what gets reported
            return []

    async def _failed(
        self,
        index: int,
        sender: Pubkey,
        signature: Optional[str],
        exc: BaseException,
        *,
        exc_info: bool = False,
    ) -> WalletOutcome:
        logs = await self._fetch_logs(exc, signature)
        self.reporter.errors.error(
            "Iteration %s: Transfer error - %s. Logs: %s", index, exc, json.dumps(logs), exc_info=exc_info
        )
        self.reporter.echo(f"Iteration {index}: Transfer error. Check errors.log for details.")
        return WalletOutcome(index, SweepStatus.FAILED, address=str(sender), signature=signature, error=str(exc))

    # ---------------- per wallet ----------------
    async def sweep_wallet(self, index: int, line: str, recipient: Pubkey) -> WalletOutcome:
        log = self.reporter.transactions
        try:
            sender: Keypair = parse_credential(line)
        except InvalidCredentialFormat as exc:
            self.reporter.errors.error("Iteration %s: Invalid private key format. (%s)", index, exc)
            self.reporter.echo(f"Iteration {index}: Invalid private key format. Check errors.log for details.")
            return WalletOutcome(index, SweepStatus.INVALID_CREDENTIAL, error=str(exc))

        sender_pub = sender.pubkey()
        masked = mask_address(sender_pub)
        self.reporter.echo(f"Processing Wallet {index}: {masked}")

        if sender_pub == recipient:
            log.info("Iteration %s: Wallet %s is the recipient; skipping.", index, masked)
            return WalletOutcome(index, SweepStatus.SKIPPED_RECIPIENT, address=str(sender_pub))

        signature: Optional[str] = None
        try:
            balance = await self._retry(lambda: self.client.get_balance(sender_pub))
            reserve = await self._retry(lambda: self.client.get_minimum_balance_for_rent_exemption(0))
            self.reporter.echo(f"Wallet {index}: Balance = {fmt_sol(balance)} SOL")

            try:
                amount = plan_amount(balance, reserve, self.settings.fee_lamports)
            except InsufficientBalance as exc:
                log.info("Iteration %s: Insufficient balance for wallet %s. (%s)", index, masked, exc)
                return WalletOutcome(index, SweepStatus.SKIPPED_INSUFFICIENT, address=str(sender_pub))

            intent = TransferIntent(sender=sender_pub, recipient=recipient, amount=amount)
            if self.dry_run:
                log.info(
                    "Dry run: would send %s SOL from %s to %s.",
                    fmt_sol(amount), masked, mask_address(recipient),
                )
                return WalletOutcome(index, SweepStatus.PLANNED, address=str(sender_pub), amount=amount)

            signature = await self._retry(lambda: self.client.send_transaction([intent.to_instruction()], sender))
            result = await self._wait_for_confirmation(signature)

        except ConfirmationTimeout as exc:
            # Funds may have moved; only the confirmation was not observed.
            self.reporter.errors.error(
                "Iteration %s: Transfer outcome unknown for %s - %s Signature: %s",
                index, masked, exc, signature,
            )
            self.reporter.echo(
                f"Iteration {index}: Transfer not confirmed in time (outcome unknown). Signature: {signature}"
            )
            return WalletOutcome(
                index, SweepStatus.UNCONFIRMED, address=str(sender_pub), signature=signature, error=str(exc)
            )
        except SolbatchError as exc:
            return await self._failed(index, sender_pub, signature, exc)
        except Exception as exc:
            # one malformed response or signing error must not stop the remaining wallets
            return await self._failed(index, sender_pub, signature, exc, exc_info=True)

        log.info(
            "Sent %s SOL from %s to %s. Transaction: %s",
            fmt_sol(amount), masked, mask_address(recipient), signature,
        )
        return WalletOutcome(
            index, SweepStatus.SENT, address=str(sender_pub), amount=amount, signature=result.signature
        )

    # ---------------- run ----------------
    async def run(self, lines: Sequence[str]) -> SweepReport:
        if len(lines) < 2:
            raise ConfigError("At least two wallets are required.")

        try:
            recipient = parse_credential(lines[0]).pubkey()
        except InvalidCredentialFormat as exc:
            self.reporter.errors.error("Recipient key parsing error: %s", exc)
            raise ConfigError("Failed to parse the recipient private key.") from exc

        self.reporter.echo(f"Recipient Wallet: {mask_address(recipient)}")
        report = SweepReport(recipient=str(recipient))

        for index in range(1, len(lines)):
            outcome = await self.sweep_wallet(index, lines[index], recipient)
            report.outcomes.append(outcome)
            if outcome.status is SweepStatus.SENT:
                self.reporter.echo(f"Actions completed: {report.processed}")

        return report
