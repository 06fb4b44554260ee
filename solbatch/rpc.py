"""
Async Solana JSON-RPC client.

Single responsibility: talk to the node and translate its failures into
RemoteCallFailed with a RATE_LIMITED / OTHER tag. Retrying is the caller's job.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Callable, List, Optional, Sequence, TypeVar, Union

import aiohttp
from solders.hash import Hash, ParseHashError
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from .errors import RemoteCallFailed, RpcErrorKind
from .models import SignatureStatus, TransactionStatus

logger = logging.getLogger(__name__)

# HTTP 429, plus the JSON-RPC codes some providers use for the same condition
RATE_LIMIT_HTTP_STATUS = 429
RATE_LIMIT_RPC_CODES = frozenset({429, -32429})

SIGNATURE_PAGE_LIMIT = 1000

_SETTLED_COMMITMENTS = {"confirmed", "finalized"}

T = TypeVar("T")


def classify_http_error(method: str, status: int, body: str = "") -> RemoteCallFailed:
    kind = RpcErrorKind.RATE_LIMITED if status == RATE_LIMIT_HTTP_STATUS else RpcErrorKind.OTHER
    return RemoteCallFailed(f"RPC HTTP {status} for {method}: {body[:200]}", kind=kind, code=status)


def classify_rpc_error(method: str, error: Any) -> RemoteCallFailed:
    if not isinstance(error, dict):
        return RemoteCallFailed(f"RPC error for {method}: {error}")

    code = error.get("code")
    message = error.get("message") or "unknown error"
    data = error.get("data")
    logs = data.get("logs") if isinstance(data, dict) else None
    kind = RpcErrorKind.RATE_LIMITED if code in RATE_LIMIT_RPC_CODES else RpcErrorKind.OTHER
    return RemoteCallFailed(f"RPC error {code} for {method}: {message}", kind=kind, code=code, logs=logs)


# ---------------- Result parsing ----------------
def _parse(method: str, result: Any, parse: Callable[[Any], T]) -> T:
    """Apply ``parse`` to a ``result`` member; a shape mismatch is a RemoteCallFailed."""
    try:
        return parse(result)
    except (AttributeError, LookupError, TypeError, ValueError, ParseHashError) as e:
        raise RemoteCallFailed(f"RPC returned malformed result for {method}: {result!r}") from e


def _signatures(result: Any) -> List[str]:
    if not isinstance(result, list):
        raise TypeError(f"expected a list, got {type(result).__name__}")
    return [str(entry["signature"]) for entry in result]


def _signature_status(result: Any) -> SignatureStatus:
    val = result["value"][0]
    if val is None:
        return SignatureStatus(TransactionStatus.PENDING)
    err = val.get("err")
    if err:
        return SignatureStatus(TransactionStatus.FAILED, reason=err)
    status = (val.get("confirmationStatus") or "").lower()
    if status in _SETTLED_COMMITMENTS:
        return SignatureStatus(TransactionStatus.CONFIRMED)
    return SignatureStatus(TransactionStatus.PENDING)


class SolanaRpcClient:
    """
    Async client for a Solana JSON-RPC endpoint.

    Usage:
        async with SolanaRpcClient(url) as client:
            lamports = await client.get_balance(pubkey)
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        commitment: str = "confirmed",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.commitment = commitment
        self._session = session
        self._owns_session = session is None
        self._request_id = 0

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_session = True

    async def close(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def call(self, method: str, params: list) -> Any:
        """Raw JSON-RPC call; returns the ``result`` member."""
        await self._ensure_session()
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        try:
            async with self._session.post(self.url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise classify_http_error(method, response.status, body)
                out = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteCallFailed(f"RPC transport error for {method}: {e}") from e
        except asyncio.TimeoutError as e:
            raise RemoteCallFailed(f"RPC request timed out for {method}") from e
        except ValueError as e:
            raise RemoteCallFailed(f"RPC returned invalid JSON for {method}") from e

        if not isinstance(out, dict):
            raise RemoteCallFailed(f"RPC returned unexpected payload for {method}: {out!r}")
        if "error" in out:
            raise classify_rpc_error(method, out["error"])
        return out.get("result")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_balance(self, pubkey: Union[Pubkey, str]) -> int:
        result = await self.call("getBalance", [str(pubkey), {"commitment": self.commitment}])
        return _parse("getBalance", result, lambda r: int(r["value"]))

    async def get_minimum_balance_for_rent_exemption(self, size: int = 0) -> int:
        result = await self.call("getMinimumBalanceForRentExemption", [int(size)])
        return _parse("getMinimumBalanceForRentExemption", result, int)

    async def get_signatures_for_address(
        self,
        pubkey: Union[Pubkey, str],
        limit: int = SIGNATURE_PAGE_LIMIT,
    ) -> List[str]:
        # Single page only: history beyond ``limit`` is not followed.
        result = await self.call(
            "getSignaturesForAddress",
            [str(pubkey), {"limit": int(limit), "commitment": self.commitment}],
        )
        return _parse("getSignaturesForAddress", result, _signatures)

    async def get_latest_blockhash(self) -> Hash:
        result = await self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        return _parse("getLatestBlockhash", result, lambda r: Hash.from_string(r["value"]["blockhash"]))

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        result = await self.call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        return _parse("getSignatureStatuses", result, _signature_status)

    async def get_transaction_logs(self, signature: str) -> List[str]:
        result = await self.call(
            "getTransaction",
            [signature, {"commitment": "confirmed", "encoding": "json", "maxSupportedTransactionVersion": 0}],
        )
        if not result:
            return []
        return _parse("getTransaction", result, lambda r: list((r.get("meta") or {}).get("logMessages") or []))

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def send_transaction(
        self,
        instructions: Sequence[Instruction],
        signer: Keypair,
        *,
        skip_preflight: bool = False,
    ) -> str:
        """Sign and submit; returns the signature once the node accepts it.

        Acceptance is not confirmation, see get_signature_status().
        """
        if not instructions:
            raise ValueError("No instructions to send")

        bh = await self.get_latest_blockhash()
        msg = Message.new_with_blockhash(list(instructions), signer.pubkey(), bh)
        tx = Transaction.new_unsigned(msg)
        tx.sign([signer], bh)
        tx_b64 = base64.b64encode(bytes(tx)).decode("utf-8")

        sig = await self.call(
            "sendTransaction",
            [
                tx_b64,
                {
                    "encoding": "base64",
                    "skipPreflight": bool(skip_preflight),
                    "preflightCommitment": self.commitment,
                },
            ],
        )
        if not sig:
            raise RemoteCallFailed("sendTransaction returned no signature")
        logger.debug("submitted transaction %s", sig)
        return str(sig)
