from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

LAMPORTS_PER_SOL = 1_000_000_000


# ---------------- Units ----------------
def sol_to_lamports(value: Union[int, float, str, Decimal]) -> int:
    # str() first so 0.001 does not carry binary float noise into the product
    return int(Decimal(str(value)) * LAMPORTS_PER_SOL)


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def fmt_sol(lamports: int) -> str:
    return f"{lamports / LAMPORTS_PER_SOL:.9f}".rstrip("0").rstrip(".") or "0"


# ---------------- Transfers ----------------
@dataclass(frozen=True)
class TransferIntent:
    sender: Pubkey
    recipient: Pubkey
    amount: int

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"transfer amount must be positive (got {self.amount})")

    def to_instruction(self) -> Instruction:
        return transfer(TransferParams(from_pubkey=self.sender, to_pubkey=self.recipient, lamports=int(self.amount)))


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class SignatureStatus:
    status: TransactionStatus
    reason: Optional[object] = None

    @property
    def settled(self) -> bool:
        return self.status is not TransactionStatus.PENDING


@dataclass(frozen=True)
class SubmissionResult:
    signature: str
    status: TransactionStatus = TransactionStatus.PENDING
    reason: Optional[object] = None


# ---------------- Scan output ----------------
@dataclass(frozen=True)
class WalletRecord:
    address: str
    balance_lamports: int
    transaction_count: int

    @property
    def balance(self) -> float:
        return lamports_to_sol(self.balance_lamports)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "balance": self.balance,
            "transactionCount": self.transaction_count,
        }


# ---------------- Retry bookkeeping ----------------
@dataclass(slots=True)
class RetryState:
    attempt: int = 0
    delay: float = 0.5

    def advance(self) -> None:
        self.attempt += 1
        self.delay *= 2
