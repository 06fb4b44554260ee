import asyncio
import unittest
from decimal import Decimal
from unittest.mock import AsyncMock

from solders.keypair import Keypair

from solbatch.errors import ConfigError, InsufficientBalance, RemoteCallFailed
from solbatch.models import LAMPORTS_PER_SOL, SignatureStatus, TransactionStatus
from solbatch.sweep import SweepStatus, SweepWorkflow, plan_amount
from tests.helpers import FakeClock, FakeRpcClient, keypair_line, make_settings, memory_reporter, rate_limited, settle

RESERVE = 890_880
FEE = 1_000_000  # 0.001 SOL


class PlanAmountTests(unittest.TestCase):
    def test_positive_amount(self):
        self.assertEqual(plan_amount(LAMPORTS_PER_SOL, RESERVE, FEE), LAMPORTS_PER_SOL - RESERVE - FEE)

    def test_zero_or_negative_is_insufficient(self):
        with self.assertRaises(InsufficientBalance):
            plan_amount(RESERVE + FEE, RESERVE, FEE)
        with self.assertRaises(InsufficientBalance) as ctx:
            plan_amount(100, RESERVE, FEE)
        self.assertEqual(ctx.exception.shortfall, RESERVE + FEE - 100)


class SweepWorkflowTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.recipient = Keypair()
        self.a = Keypair()
        self.b = Keypair()
        self.clock = FakeClock()
        self.reporter = memory_reporter()
        self.settings = make_settings(transaction_fee_sol=Decimal("0.001"))

    def workflow(self, client, **kwargs):
        return SweepWorkflow(client, self.settings, self.reporter, sleep=self.clock.sleep, clock=self.clock.time, **kwargs)

    def lines(self, *kps):
        return [keypair_line(kp) for kp in (self.recipient,) + kps]

    async def test_sends_one_and_skips_insufficient(self):
        client = FakeRpcClient(
            {
                str(self.a.pubkey()): LAMPORTS_PER_SOL,
                str(self.b.pubkey()): RESERVE + FEE - 1,
            },
            reserve=RESERVE,
        )

        report = await self.workflow(client).run(self.lines(self.a, self.b))

        self.assertEqual(report.processed, 1)
        self.assertEqual(report.count(SweepStatus.SKIPPED_INSUFFICIENT), 1)
        self.assertEqual(client.calls["send_transaction"], 1)

        instructions, signer = client.sent[0]
        self.assertEqual(signer.pubkey(), self.a.pubkey())
        self.assertEqual(len(instructions), 1)

        sent = report.outcomes[0]
        self.assertEqual(sent.status, SweepStatus.SENT)
        self.assertEqual(sent.amount, LAMPORTS_PER_SOL - RESERVE - FEE)
        self.assertEqual(sent.signature, "sig-1")

        messages = self.reporter.transaction_records.messages
        self.assertTrue(any(m.startswith("Sent 0.99810912 SOL from") and "Transaction: sig-1" in m for m in messages))
        self.assertTrue(any("Insufficient balance" in m for m in messages))
        self.assertEqual(self.reporter.error_records.messages, [])
        self.assertIn("Actions completed: 1", self.reporter.console)

    async def test_insufficient_balance_builds_no_transfer(self):
        client = FakeRpcClient({str(self.a.pubkey()): RESERVE + FEE}, reserve=RESERVE)

        report = await self.workflow(client).run(self.lines(self.a))

        self.assertEqual(report.outcomes[0].status, SweepStatus.SKIPPED_INSUFFICIENT)
        self.assertEqual(client.calls["send_transaction"], 0)
        self.assertEqual(self.reporter.error_records.records, [])
        insufficient = [r for r in self.reporter.transaction_records.records if "Insufficient" in r.getMessage()]
        self.assertEqual(insufficient[0].levelname, "INFO")

    async def test_requires_two_wallets(self):
        client = FakeRpcClient()
        with self.assertRaises(ConfigError):
            await self.workflow(client).run(self.lines())
        self.assertEqual(client.calls["get_balance"], 0)

    async def test_bad_recipient_is_fatal(self):
        client = FakeRpcClient()
        with self.assertRaises(ConfigError):
            await self.workflow(client).run(["not-a-key", keypair_line(self.a)])
        self.assertEqual(client.calls["get_balance"], 0)

    async def test_invalid_sender_is_logged_and_skipped(self):
        client = FakeRpcClient({str(self.b.pubkey()): LAMPORTS_PER_SOL})
        lines = [keypair_line(self.recipient), "[1,2,3]", keypair_line(self.b)]

        report = await self.workflow(client).run(lines)

        self.assertEqual([o.status for o in report.outcomes], [SweepStatus.INVALID_CREDENTIAL, SweepStatus.SENT])
        self.assertTrue(any("Iteration 1: Invalid private key format" in m for m in self.reporter.error_records.messages))

    async def test_recipient_listed_again_is_skipped(self):
        client = FakeRpcClient({str(self.recipient.pubkey()): LAMPORTS_PER_SOL})

        report = await self.workflow(client).run(self.lines(self.recipient))

        self.assertEqual(report.outcomes[0].status, SweepStatus.SKIPPED_RECIPIENT)
        self.assertEqual(client.calls["get_balance"], 0)

    async def test_dry_run_submits_nothing(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})

        report = await self.workflow(client, dry_run=True).run(self.lines(self.a))

        self.assertEqual(report.outcomes[0].status, SweepStatus.PLANNED)
        self.assertEqual(report.processed, 0)
        self.assertEqual(client.calls["send_transaction"], 0)

    async def test_rate_limited_balance_is_retried(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})
        client.get_balance = AsyncMock(side_effect=[rate_limited(), LAMPORTS_PER_SOL])

        task = asyncio.create_task(self.workflow(client).run(self.lines(self.a)))
        await settle()
        self.clock.advance(0.5)
        report = await task

        self.assertEqual(report.processed, 1)
        self.assertEqual(client.get_balance.await_count, 2)
        self.assertEqual(self.clock.sleeps[0], 0.5)
        self.assertTrue(any("Rate limited" in m for m in self.reporter.transaction_records.messages))

    async def test_submission_failure_logs_preflight_logs(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})
        client.send_transaction = AsyncMock(
            side_effect=RemoteCallFailed(
                "RPC error -32002 for sendTransaction: simulation failed",
                code=-32002,
                logs=["Program 11111111111111111111111111111111 failed: insufficient lamports"],
            )
        )

        report = await self.workflow(client).run(self.lines(self.a))

        self.assertEqual(report.outcomes[0].status, SweepStatus.FAILED)
        [message] = self.reporter.error_records.messages
        self.assertIn("Transfer error", message)
        self.assertIn("insufficient lamports", message)
        self.assertEqual(client.calls["get_transaction_logs"], 0)

    async def test_failed_transaction_fetches_remote_logs(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})
        client.statuses["sig-1"] = SignatureStatus(TransactionStatus.FAILED, reason={"InstructionError": [0, "X"]})
        client.transaction_logs["sig-1"] = ["Program log: custom failure"]

        report = await self.workflow(client).run(self.lines(self.a))

        self.assertEqual(report.outcomes[0].status, SweepStatus.FAILED)
        self.assertEqual(report.outcomes[0].signature, "sig-1")
        self.assertIn("custom failure", self.reporter.error_records.messages[0])

    async def test_log_fetch_failure_is_ignored(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})
        client.statuses["sig-1"] = SignatureStatus(TransactionStatus.FAILED, reason="err")
        client.get_transaction_logs = AsyncMock(side_effect=RemoteCallFailed("RPC HTTP 500"))

        report = await self.workflow(client).run(self.lines(self.a))

        self.assertEqual(report.outcomes[0].status, SweepStatus.FAILED)
        self.assertIn("Logs: []", self.reporter.error_records.messages[0])

    async def test_confirmation_timeout_is_reported_as_unknown(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})

        async def never_settles(signature):
            await asyncio.Event().wait()

        client.get_signature_status = AsyncMock(side_effect=never_settles)

        task = asyncio.create_task(self.workflow(client).run(self.lines(self.a)))
        await settle()
        self.clock.advance(60)
        report = await task

        outcome = report.outcomes[0]
        self.assertEqual(outcome.status, SweepStatus.UNCONFIRMED)
        self.assertEqual(outcome.signature, "sig-1")
        self.assertEqual(report.processed, 0)
        [message] = self.reporter.error_records.messages
        self.assertIn("outcome unknown", message)
        self.assertIn("sig-1", message)
        self.assertNotIn("Transfer error", message)

    async def test_pending_status_is_polled_until_confirmed(self):
        client = FakeRpcClient({str(self.a.pubkey()): LAMPORTS_PER_SOL})
        client.get_signature_status = AsyncMock(
            side_effect=[
                SignatureStatus(TransactionStatus.PENDING),
                SignatureStatus(TransactionStatus.CONFIRMED),
            ]
        )

        task = asyncio.create_task(self.workflow(client).run(self.lines(self.a)))
        await settle()
        self.clock.advance(0.5)
        report = await task

        self.assertEqual(report.processed, 1)
        self.assertEqual(client.get_signature_status.await_count, 2)

    async def test_unexpected_error_fails_only_that_wallet(self):
        client = FakeRpcClient(
            {
                str(self.a.pubkey()): KeyError("value"),
                str(self.b.pubkey()): LAMPORTS_PER_SOL,
            }
        )

        report = await self.workflow(client).run(self.lines(self.a, self.b))

        self.assertEqual([o.status for o in report.outcomes], [SweepStatus.FAILED, SweepStatus.SENT])
        self.assertEqual(client.calls["send_transaction"], 1)
        self.assertEqual(client.sent[0][1].pubkey(), self.b.pubkey())
        [message] = self.reporter.error_records.messages
        self.assertIn("Iteration 1: Transfer error", message)
        self.assertIn("'value'", message)
