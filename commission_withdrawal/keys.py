"""Signing key loading and bech32 address derivation."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import bech32
from Crypto.Hash import RIPEMD160
from eth_keys import keys
from eth_keys.constants import SECPK1_N
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import decode_hex

from .errors import (
    AddressDerivationError,
    InvalidKeyError,
    KeyDecodeError,
    KeyLoadError,
    SigningError,
)

_LOGGER = logging.getLogger(__name__)

PRIVATE_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64
DEFAULT_ACCOUNT_PREFIX = "somm"
DEFAULT_VALIDATOR_PREFIX = "sommvaloper"


@dataclass(frozen=True)
class SigningIdentity:
    """A secp256k1 private key together with its compressed public key."""

    private_key: bytes = field(repr=False)
    public_key_bytes: bytes

    @classmethod
    def from_bytes(cls, raw: bytes) -> "SigningIdentity":
        """Build an identity from the raw 32-byte private scalar.

        Raises:
            InvalidKeyError: If ``raw`` has the wrong length or is not a valid
                secp256k1 scalar.
        """

        if len(raw) != PRIVATE_KEY_LENGTH:
            raise InvalidKeyError(
                f"secp256k1 private keys are {PRIVATE_KEY_LENGTH} bytes, got {len(raw)}"
            )
        scalar = int.from_bytes(raw, "big")
        if not 0 < scalar < SECPK1_N:
            raise InvalidKeyError("private key is outside the secp256k1 curve order")
        try:
            private_key = keys.PrivateKey(bytes(raw))
        except ValidationError as exc:
            raise InvalidKeyError(f"invalid secp256k1 private key: {exc}") from exc
        return cls(
            private_key=bytes(raw),
            public_key_bytes=private_key.public_key.to_compressed_bytes(),
        )

    def sign(self, payload: bytes) -> bytes:
        """Return the 64-byte ``r || s`` signature over ``sha256(payload)``.

        ``s`` is always in the lower half of the curve order, which is the
        only form Cosmos SDK nodes accept.
        """

        digest = hashlib.sha256(payload).digest()
        try:
            signature = keys.PrivateKey(self.private_key).sign_msg_hash(digest)
        except (ValidationError, ValueError) as exc:
            raise SigningError(f"secp256k1 signing failed: {exc}") from exc
        s = signature.s
        if s > SECPK1_N // 2:
            s = SECPK1_N - s
        return signature.r.to_bytes(32, "big") + s.to_bytes(32, "big")


@dataclass(frozen=True)
class DerivedAddresses:
    account: str
    validator_operator: str


def verify_signature(public_key_bytes: bytes, payload: bytes, signature: bytes) -> bool:
    """Check a compact ``r || s`` signature over ``sha256(payload)``."""

    if len(signature) != SIGNATURE_LENGTH:
        return False
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    if not (0 < r < SECPK1_N and 0 < s <= SECPK1_N // 2):
        return False
    try:
        public_key = keys.PublicKey.from_compressed_bytes(public_key_bytes)
    except (ValidationError, ValueError):
        return False

    digest = hashlib.sha256(payload).digest()
    # The recovery id is not part of a Cosmos signature; try both.
    for v in (0, 1):
        try:
            if public_key.verify_msg_hash(digest, keys.Signature(vrs=(v, r, s))):
                return True
        except (BadSignature, ValidationError):
            continue
    return False


def _validate_prefix(prefix: str) -> None:
    if not prefix:
        raise AddressDerivationError("address prefix must not be empty")
    if prefix != prefix.lower() or any(ord(char) < 33 or ord(char) > 126 for char in prefix):
        raise AddressDerivationError(f"invalid bech32 prefix {prefix!r}")


def derive_address(public_key_bytes: bytes, prefix: str) -> str:
    """Return the bech32 address ``prefix1...`` for a compressed public key."""

    _validate_prefix(prefix)
    key_hash = RIPEMD160.new(hashlib.sha256(public_key_bytes).digest()).digest()
    words = bech32.convertbits(key_hash, 8, 5)
    if words is None:
        raise AddressDerivationError("unable to convert public key hash to bech32 words")
    address = bech32.bech32_encode(prefix, words)
    if not address or len(address) > 90:
        raise AddressDerivationError(f"bech32 encoding failed for prefix {prefix!r}")
    return address


def derive_addresses(
    identity: SigningIdentity,
    account_prefix: str = DEFAULT_ACCOUNT_PREFIX,
    validator_prefix: str = DEFAULT_VALIDATOR_PREFIX,
) -> DerivedAddresses:
    if account_prefix == validator_prefix:
        raise AddressDerivationError(
            f"account and validator prefixes must differ (both {account_prefix!r})"
        )
    return DerivedAddresses(
        account=derive_address(identity.public_key_bytes, account_prefix),
        validator_operator=derive_address(identity.public_key_bytes, validator_prefix),
    )


def load_signing_identity(path: Union[str, Path]) -> SigningIdentity:
    """Load a hex-encoded secp256k1 key from ``path``.

    Surrounding whitespace and an optional ``0x`` prefix are ignored.

    Raises:
        KeyLoadError: If the file cannot be read.
        KeyDecodeError: If the contents are not hexadecimal.
        InvalidKeyError: If the decoded bytes are not a usable key.
    """

    key_path = Path(path)
    try:
        text = key_path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as exc:
        raise KeyLoadError(f"unable to read signing key from {key_path}: {exc}") from exc

    try:
        raw = decode_hex(text)
    except (ValueError, TypeError) as exc:
        raise KeyDecodeError(f"signing key in {key_path} is not valid hex: {exc}") from exc

    identity = SigningIdentity.from_bytes(raw)
    _LOGGER.debug("Loaded signing key from %s", key_path)
    return identity


__all__ = [
    "DEFAULT_ACCOUNT_PREFIX",
    "DEFAULT_VALIDATOR_PREFIX",
    "DerivedAddresses",
    "SigningIdentity",
    "derive_address",
    "derive_addresses",
    "load_signing_identity",
    "verify_signature",
]
