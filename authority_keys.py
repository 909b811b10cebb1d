"""Fixed table of boot-chain authority public keys (Ed25519, 32 bytes each)."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from attest_errors import InvalidHex, UnknownKeyName, WrongLength, must_hex_to_bytes, normalize_hex

PUBLIC_KEY_SIZE = 32

# Key slots as burned into the boot ROM: 0=bao1, 1=bao2, 2=beta, 3=developer.
AUTHORITY_KEY_HEX = (
    ("bao1", "a87a5f98daabfb512fc3c2e5749b3beb192388d20160a7dd5888fb9da409523a"),
    ("bao2", "79135dc667aff4f7d352b90328788ebf92c7867821388b77370b15194e312888"),
    ("beta", "80979929edd04e40124b52cae9ae54b24bdff72a7b8a004c41065bd1402078a7"),
    ("developer", "1c9beae32aeac87507c18094387eff1c74614282affd8152d871352edf3f58bb"),
    ("dev", "1c9beae32aeac87507c18094387eff1c74614282affd8152d871352edf3f58bb"),
)

# Tags are 4-byte fields in the signature block and may be space padded.
TAG_TO_KEY_NAME = {
    "bao1": "bao1",
    "bao2": "bao2",
    "beta": "beta",
    "devl": "developer",
    "dev": "developer",
}

SLOT_KEY_NAMES = ("bao1", "bao2", "beta", "developer")


@dataclass(frozen=True)
class AuthorityKey:
    name: str
    key: bytes

    def __post_init__(self) -> None:
        if len(self.key) != PUBLIC_KEY_SIZE:
            raise WrongLength(f"authority key {self.name}", PUBLIC_KEY_SIZE, len(self.key))


class KeyRegistry:
    """Read-only lookup of authority keys by name, alias, tag, slot, or bytes."""

    def __init__(
        self,
        keys: Iterable[AuthorityKey],
        tags: Mapping[str, str] | None = None,
        slots: Iterable[str] = (),
    ) -> None:
        self._keys = tuple(keys)
        self._tags = {tag.lower(): name for tag, name in (tags or {}).items()}
        self._slots = tuple(slots)
        known = {entry.name.lower() for entry in self._keys}
        for name in [*self._tags.values(), *self._slots]:
            if name.lower() not in known:
                raise ValueError(f"tag or slot refers to unregistered key {name!r}")

    @classmethod
    def from_hex_table(
        cls,
        table: Iterable[tuple[str, str]],
        tags: Mapping[str, str] | None = None,
        slots: Iterable[str] = (),
    ) -> KeyRegistry:
        keys = [AuthorityKey(name, bytes.fromhex(key_hex)) for name, key_hex in table]
        return cls(keys, tags=tags, slots=slots)

    @property
    def keys(self) -> tuple[AuthorityKey, ...]:
        return self._keys

    def names(self) -> list[str]:
        return [entry.name for entry in self._keys]

    def lookup(self, name: str) -> bytes | None:
        for entry in self._keys:
            if entry.name.lower() == name.lower():
                return entry.key
        return None

    def resolve(self, value: str) -> bytes:
        """Return the key bytes for a registered name/alias or a 64-char hex string."""
        named = self.lookup(value.strip())
        if named is not None:
            return named

        cleaned = normalize_hex(value)
        if not re.fullmatch(r"[0-9a-f]+", cleaned):
            if len(cleaned) == PUBLIC_KEY_SIZE * 2:
                raise InvalidHex("pubkey")
            raise UnknownKeyName(value)
        data = must_hex_to_bytes("pubkey", cleaned)
        if len(data) != PUBLIC_KEY_SIZE:
            raise WrongLength("pubkey", PUBLIC_KEY_SIZE, len(data))
        return data

    def identify(self, key: bytes) -> str | None:
        # First match in table order; display only, never used for authorization.
        for entry in self._keys:
            if entry.key == key:
                return entry.name
        return None

    def name_for_tag(self, tag: str) -> str | None:
        return self._tags.get(tag.strip().lower())

    def name_for_slot(self, slot: int) -> str | None:
        if 0 <= slot < len(self._slots):
            return self._slots[slot]
        return None


DEFAULT_REGISTRY = KeyRegistry.from_hex_table(
    AUTHORITY_KEY_HEX,
    tags=TAG_TO_KEY_NAME,
    slots=SLOT_KEY_NAMES,
)
