"""Credential / address parsing.

Keys files hold one secret per line, either a solana-keygen style byte array
(``[12, 34, ...]``) or a base58 string of the same 64 raw bytes.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .errors import ConfigError, InvalidAddress, InvalidCredentialFormat

SECRET_KEY_LENGTH = 64


# ---------------- Minimal base58 (no external dependency) ----------------
_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_B58_INDEX = {c: i for i, c in enumerate(_B58_ALPHABET)}


def b58decode(s: str) -> bytes:
    try:
        s_bytes = s.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError("Invalid base58 string: non-ascii input") from e
    n = 0
    for ch in s_bytes:
        try:
            n = n * 58 + _B58_INDEX[ch]
        except KeyError as e:
            raise ValueError(f"Invalid base58 character: {chr(ch)!r}") from e
    out = n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""
    pad = len(s_bytes) - len(s_bytes.lstrip(_B58_ALPHABET[:1]))
    return b"\x00" * pad + out


def b58encode(b: bytes) -> str:
    if not b:
        return ""
    n = int.from_bytes(b, "big")
    out = bytearray()
    while n > 0:
        n, rem = divmod(n, 58)
        out.append(_B58_ALPHABET[rem])
    pad = len(b) - len(b.lstrip(b"\x00"))
    out.extend(_B58_ALPHABET[0] for _ in range(pad))
    out.reverse()
    return out.decode("ascii")


# ---------------- Parsing ----------------
def _parse_byte_array(body: str) -> bytes:
    try:
        values = [int(part.strip(), 10) for part in body.split(",")]
    except ValueError as e:
        raise InvalidCredentialFormat("Invalid byte array format") from e
    if any(v < 0 or v > 255 for v in values):
        raise InvalidCredentialFormat("Byte array values must be in 0..255")
    return bytes(values)


def parse_credential(line: str) -> Keypair:
    line = line.strip()
    if line.startswith("[") and line.endswith("]"):
        raw = _parse_byte_array(line[1:-1])
    else:
        try:
            raw = b58decode(line)
        except ValueError as e:
            raise InvalidCredentialFormat("Invalid Base58 format") from e

    if len(raw) != SECRET_KEY_LENGTH:
        raise InvalidCredentialFormat(f"Keypair must be {SECRET_KEY_LENGTH} bytes (got {len(raw)})")
    try:
        return Keypair.from_bytes(raw)
    except Exception as e:  # solders raises its own error types for bad key material
        raise InvalidCredentialFormat(f"Invalid keypair bytes: {e}") from e


def parse_address(text: str) -> Pubkey:
    try:
        return Pubkey.from_string(text.strip())
    except ValueError as e:
        raise InvalidAddress(f"Invalid address: {text!r}") from e


def mask_address(address: Union[str, Pubkey]) -> str:
    address = str(address)
    if len(address) <= 10:
        return address
    return f"{address[:5]}...{address[-5:]}"


def read_lines(path: Path) -> List[str]:
    """Non-blank, stripped lines of ``path``; unreadable files are fatal."""
    try:
        data = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    return [line.strip() for line in data.splitlines() if line.strip()]
