"""Error taxonomy shared by the sweep and scan workflows."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class SolbatchError(Exception):
    pass


class ConfigError(SolbatchError):
    """Fatal: raised before any wallet is processed."""


class InvalidCredentialFormat(SolbatchError):
    pass


class InvalidAddress(SolbatchError):
    pass


class InsufficientBalance(SolbatchError):
    """Informational: the wallet cannot cover reserve + fee."""

    def __init__(self, balance: int, reserve: int, fee: int) -> None:
        self.balance = balance
        self.reserve = reserve
        self.fee = fee
        super().__init__(f"balance={balance} reserve={reserve} fee={fee}")

    @property
    def shortfall(self) -> int:
        return self.reserve + self.fee - self.balance


class RpcErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


class RemoteCallFailed(SolbatchError):
    def __init__(
        self,
        message: str,
        *,
        kind: RpcErrorKind = RpcErrorKind.OTHER,
        code: Optional[int] = None,
        logs: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        # Program logs from preflight simulation, when the node returned them.
        self.logs = list(logs or [])

    @property
    def rate_limited(self) -> bool:
        return self.kind is RpcErrorKind.RATE_LIMITED


class RetryExhausted(SolbatchError):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Maximum retry attempts reached ({attempts}): {last_error}")


class ConfirmationTimeout(SolbatchError):
    def __init__(self, timeout: float, elapsed: float, signature: Optional[str] = None) -> None:
        self.timeout = timeout
        self.elapsed = elapsed
        self.signature = signature
        super().__init__(f"Transaction was not confirmed in {timeout:g} seconds (elapsed {elapsed:.1f}s).")


class TransactionFailed(SolbatchError):
    def __init__(self, signature: str, reason: object) -> None:
        self.signature = signature
        self.reason = reason
        super().__init__(f"Transaction {signature} failed: {reason}")
