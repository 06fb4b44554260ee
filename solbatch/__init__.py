"""Batch Solana wallet tooling.

Provides the sweep and scan workflows plus the retry, bounded-concurrency and
deadline helpers they are built on.
"""

from .errors import (
    ConfigError,
    ConfirmationTimeout,
    InvalidAddress,
    InvalidCredentialFormat,
    RemoteCallFailed,
    RetryExhausted,
)
from .scan import ScanWorkflow
from .sweep import SweepWorkflow

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "ConfirmationTimeout",
    "InvalidAddress",
    "InvalidCredentialFormat",
    "RemoteCallFailed",
    "RetryExhausted",
    "ScanWorkflow",
    "SweepWorkflow",
]
