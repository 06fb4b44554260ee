import asyncio
import logging
from decimal import Decimal
from itertools import count
from pathlib import Path

from solbatch.config import Settings
from solbatch.errors import RemoteCallFailed, RpcErrorKind
from solbatch.keys import b58encode
from solbatch.logs import Reporter
from solbatch.models import SignatureStatus, TransactionStatus

_ids = count()


class MemoryHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)

    @property
    def messages(self):
        return [r.getMessage() for r in self.records]


def memory_reporter():
    """Reporter whose loggers and console output are captured in memory."""
    base = f"solbatch.tests.{next(_ids)}"
    console = []
    reporter = Reporter(
        transactions=logging.getLogger(f"{base}.transactions"),
        errors=logging.getLogger(f"{base}.errors"),
        echo=console.append,
    )
    reporter.transaction_records = MemoryHandler()
    reporter.error_records = MemoryHandler()
    reporter.console = console
    for logger, handler, level in (
        (reporter.transactions, reporter.transaction_records, logging.INFO),
        (reporter.errors, reporter.error_records, logging.ERROR),
    ):
        logger.setLevel(level)
        logger.propagate = False
        logger.addHandler(handler)
    return reporter


def make_settings(tmp_dir=".", **overrides):
    tmp = Path(tmp_dir)
    values = dict(
        rpc_endpoint="http://rpc.local",
        logs_dir_path=tmp / "logs",
        transactions_log_file=tmp / "logs" / "transactions.log",
        errors_log_file=tmp / "logs" / "errors.log",
        results_file_path=tmp / "logs" / "filtered_wallets.json",
        transaction_fee_sol=Decimal("0.001"),
        confirmation_timeout_seconds=60,
        confirmation_poll_interval_seconds=0.5,
        min_balance_sol=Decimal("0.5"),
        transaction_count_range=(10, 100),
        max_concurrent_requests=3,
        max_retries=5,
        retry_initial_delay_seconds=0.5,
    )
    values.update(overrides)
    return Settings(**values)


def keypair_line(kp, *, as_array=False):
    raw = bytes(kp)
    if as_array:
        return "[" + ",".join(str(b) for b in raw) + "]"
    return b58encode(raw)


def rate_limited(message="429 Too Many Requests"):
    return RemoteCallFailed(message, kind=RpcErrorKind.RATE_LIMITED, code=429)


async def settle(rounds=20):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Deterministic stand-in for the event loop clock and asyncio.sleep."""

    def __init__(self, start=0.0):
        self.now = start
        self._waiters = []
        self.sleeps = []

    def time(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now + delay, fut))
        await fut

    def advance(self, seconds):
        self.now += seconds
        for deadline, fut in self._waiters:
            if deadline <= self.now and not fut.done():
                fut.set_result(None)
        self._waiters = [(d, f) for d, f in self._waiters if not f.done()]


class FakeRpcClient:
    """In-memory RPC collaborator with per-method call tracking."""

    def __init__(self, balances=None, *, reserve=890_880, signatures=None, statuses=None):
        self.balances = dict(balances or {})
        self.reserve = reserve
        self.signatures = dict(signatures or {})
        self.statuses = dict(statuses or {})
        self.sent = []
        self.calls = {
            "get_balance": 0,
            "get_minimum_balance_for_rent_exemption": 0,
            "get_signatures_for_address": 0,
            "send_transaction": 0,
            "get_signature_status": 0,
            "get_transaction_logs": 0,
        }
        self.transaction_logs = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def get_balance(self, pubkey):
        self.calls["get_balance"] += 1
        value = self.balances.get(str(pubkey), 0)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_minimum_balance_for_rent_exemption(self, size=0):
        self.calls["get_minimum_balance_for_rent_exemption"] += 1
        return self.reserve

    async def get_signatures_for_address(self, pubkey, limit=1000):
        self.calls["get_signatures_for_address"] += 1
        return list(self.signatures.get(str(pubkey), []))[:limit]

    async def send_transaction(self, instructions, signer):
        self.calls["send_transaction"] += 1
        self.sent.append((instructions, signer))
        return f"sig-{len(self.sent)}"

    async def get_signature_status(self, signature):
        self.calls["get_signature_status"] += 1
        return self.statuses.get(signature, SignatureStatus(TransactionStatus.CONFIRMED))

    async def get_transaction_logs(self, signature):
        self.calls["get_transaction_logs"] += 1
        return self.transaction_logs.get(signature, [])
