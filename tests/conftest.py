"""Shared fixtures: deterministic test authorities signing with real Ed25519/Ed25519ph."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

import pytest
from Crypto.Hash import SHA512
from Crypto.Signature import eddsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from authority_keys import SLOT_KEY_NAMES, TAG_TO_KEY_NAME, AuthorityKey, KeyRegistry


@dataclass
class Signer:
    seed: bytes

    @property
    def public_key(self) -> bytes:
        public = Ed25519PrivateKey.from_private_bytes(self.seed).public_key()
        return public.public_bytes(Encoding.Raw, PublicFormat.Raw)

    def sign_prehashed(self, image: bytes) -> bytes:
        """Ed25519ph signature over SHA-512 of the raw image."""
        signer = eddsa.new(eddsa.import_private_key(self.seed), "rfc8032")
        return signer.sign(SHA512.new(image))

    def sign(self, message: bytes) -> bytes:
        return Ed25519PrivateKey.from_private_bytes(self.seed).sign(message)


@pytest.fixture
def signers() -> dict[str, Signer]:
    return {name: Signer(hashlib.sha256(f"test-{name}".encode()).digest()) for name in SLOT_KEY_NAMES}


@pytest.fixture
def registry(signers) -> KeyRegistry:
    keys = [AuthorityKey(name, signer.public_key) for name, signer in signers.items()]
    keys.append(AuthorityKey("dev", signers["developer"].public_key))
    return KeyRegistry(keys, tags=TAG_TO_KEY_NAME, slots=SLOT_KEY_NAMES)


@pytest.fixture
def firmware() -> bytes:
    return b"\x7fBOOT" + bytes(range(256)) * 16


@pytest.fixture
def digest(firmware) -> bytes:
    return hashlib.sha512(firmware).digest()
