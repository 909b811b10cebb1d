"""Error kinds raised while resolving keys and verifying attestation records."""

from __future__ import annotations

import re


class VerificationError(Exception):
    """Base class for per-stage failures. ``kind`` names the failure in summaries."""

    kind = "VerificationError"


class InvalidHex(VerificationError):
    kind = "InvalidHex"

    def __init__(self, field: str, reason: str = "not valid hex") -> None:
        super().__init__(f"{field} is {reason}")
        self.field = field


class WrongLength(VerificationError):
    kind = "WrongLength"

    def __init__(self, field: str, expected: int, actual: int) -> None:
        super().__init__(f"{field} must be {expected} bytes, got {actual}")
        self.field = field
        self.expected = expected
        self.actual = actual


class UnknownKeyName(VerificationError):
    kind = "UnknownKeyName"

    def __init__(self, value: str) -> None:
        super().__init__(f"unrecognized key name: {value!r}")
        self.value = value


class InvalidKey(VerificationError):
    kind = "InvalidKey"


class UnresolvedStageKey(VerificationError):
    kind = "UnresolvedStageKey"

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"{reason} for {stage}")
        self.stage = stage


class SignatureMismatch(VerificationError):
    kind = "SignatureMismatch"

    def __init__(self, label: str) -> None:
        super().__init__(f"{label} verification failed")
        self.label = label


class IncompleteRecord(VerificationError):
    kind = "IncompleteRecord"

    def __init__(self, stage: str, missing: list[str]) -> None:
        super().__init__(f"incomplete data for {stage} (missing {' and '.join(missing)})")
        self.stage = stage
        self.missing = missing


class NoUsableInput(Exception):
    """Raised when the input holds nothing that can be verified at all."""


def normalize_hex(value: str) -> str:
    return value.lower().strip().removeprefix("0x")


def must_hex_to_bytes(field: str, value: str) -> bytes:
    cleaned = normalize_hex(value)
    if not re.fullmatch(r"[0-9a-f]*", cleaned):
        raise InvalidHex(field)
    if len(cleaned) % 2 != 0:
        raise InvalidHex(field, "odd-length hex")
    return bytes.fromhex(cleaned)


def must_fixed_hex(field: str, value: str, size: int) -> bytes:
    data = must_hex_to_bytes(field, value)
    if len(data) != size:
        raise WrongLength(field, size, len(data))
    return data
