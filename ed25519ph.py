"""Ed25519ph (RFC 8032, section 5.1) verification over an already-finalized SHA-512 digest.

``cryptography`` only exposes pure Ed25519, so the prehash variant goes
through pycryptodome's RFC 8032 verifier, which switches to Ed25519ph when
handed a SHA-512 hash object instead of message bytes. When only the finished
digest is available, wrap it in :class:`PrecomputedDigest`: it ignores
``update`` calls and always yields the value it was built with.
"""

from __future__ import annotations

from Crypto.Hash import SHA512
from Crypto.Signature import eddsa
from cryptography.exceptions import InvalidSignature

SHA512_DIGEST_SIZE = 64
SIGNATURE_SIZE = 64


class PrecomputedDigest(SHA512.SHA512Hash):
    """SHA-512 hash object whose result is fixed at construction time."""

    def __init__(self, digest: bytes) -> None:
        if len(digest) != SHA512_DIGEST_SIZE:
            raise ValueError(f"precomputed digest must be {SHA512_DIGEST_SIZE} bytes, got {len(digest)}")
        super().__init__(None, None)
        self._digest = bytes(digest)

    def update(self, data: bytes) -> None:
        pass

    def digest(self) -> bytes:
        return self._digest


def is_valid_public_key(key: bytes) -> bool:
    try:
        eddsa.import_public_key(key)
    except ValueError:
        return False
    return True


def verify_prehashed(public_key: bytes, prehash: SHA512.SHA512Hash, signature: bytes) -> None:
    try:
        verifier = eddsa.new(eddsa.import_public_key(public_key), "rfc8032")
        verifier.verify(prehash, signature)
    except ValueError as exc:
        raise InvalidSignature(str(exc)) from exc
