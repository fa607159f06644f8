from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Callable

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

SECP256K1_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
ENCRYPTION_KEY_BYTES = 32


@dataclass(frozen=True)
class Signer:
    """Wallet signer handed to the messaging transport."""

    identifier: str
    sign_message: Callable[[str], bytes]
    kind: str = "EOA"


def parse_private_key(wallet_key: str) -> ec.EllipticCurvePrivateKey:
    """Parse a hex secp256k1 private key, with or without 0x prefix."""

    raw = wallet_key.strip()
    if raw.startswith(("0x", "0X")):
        raw = raw[2:]
    try:
        value = int(raw, 16)
    except ValueError as exc:
        raise ValueError("WALLET_KEY must be a hex-encoded private key.") from exc
    if len(raw) != 64 or not 0 < value < SECP256K1_ORDER:
        raise ValueError("WALLET_KEY must be a 32-byte secp256k1 private key.")
    return ec.derive_private_key(value, ec.SECP256K1())


def create_signer(wallet_key: str, identifier: str) -> Signer:
    """Build the signer handed to the bundled loopback transport.

    Signatures are 64-byte ``r || s`` ECDSA values over SHA-256 digests, not
    Ethereum personal_sign (EIP-191) signatures, and ``identifier`` is the
    agent address reported by the backend rather than one derived from
    ``wallet_key``. A network transport factory needing wallet signatures
    must build its own signer from the same settings.
    """

    private_key = parse_private_key(wallet_key)

    def sign_message(message: str) -> bytes:
        der = private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    return Signer(identifier=identifier.lower(), sign_message=sign_message)


def generate_wallet_key_hex() -> str:
    """Generate a random secp256k1 private key as 0x-prefixed hex."""

    private_key = ec.generate_private_key(ec.SECP256K1())
    value = private_key.private_numbers().private_value
    return "0x" + value.to_bytes(32, "big").hex()


def generate_encryption_key_hex() -> str:
    """Generate a random local database encryption key as hex."""

    return secrets.token_bytes(ENCRYPTION_KEY_BYTES).hex()


def get_encryption_key_from_hex(value: str) -> bytes:
    """Decode the database encryption key; it must be exactly 32 bytes."""

    raw = value.strip()
    if raw.startswith(("0x", "0X")):
        raw = raw[2:]
    try:
        key = bytes.fromhex(raw)
    except ValueError as exc:
        raise ValueError("ENCRYPTION_KEY must be hex encoded.") from exc
    if len(key) != ENCRYPTION_KEY_BYTES:
        raise ValueError(f"ENCRYPTION_KEY must be {ENCRYPTION_KEY_BYTES} bytes.")
    return key
