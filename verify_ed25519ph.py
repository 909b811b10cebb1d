#!/usr/bin/env python3
"""Verify Ed25519ph / FIDO2-style boot attestation signatures from audit output.

Examples:
  cat audit.txt | verify_ed25519ph.py
  verify_ed25519ph.py --pubkey developer --hash <hex> --sig <hex> --name boot1
  verify_ed25519ph.py --pubkey beta --hash <hex> --sig <hex> --aad <hex>
"""

from __future__ import annotations

import argparse
import hashlib
import os
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from attest_errors import (
    IncompleteRecord,
    InvalidKey,
    NoUsableInput,
    SignatureMismatch,
    UnresolvedStageKey,
    VerificationError,
    must_fixed_hex,
    must_hex_to_bytes,
    normalize_hex,
)
from audit_log import STAGES, StageRecord, format_records, parse_audit_output
from authority_keys import DEFAULT_REGISTRY, KeyRegistry
from ed25519ph import SHA512_DIGEST_SIZE, SIGNATURE_SIZE, PrecomputedDigest, is_valid_public_key, verify_prehashed

DEFAULT_FALLBACK_KEY = "developer"


class SigningMode(Enum):
    PREHASH = "Ed25519ph"
    COMPOSITE = "FIDO2"

    @classmethod
    def for_aad(cls, aad: bytes | str | None) -> SigningMode:
        return cls.COMPOSITE if aad else cls.PREHASH


@dataclass(frozen=True)
class VerificationOutcome:
    stage_name: str
    mode: SigningMode
    resolved_key_name: str | None
    passed: bool
    detail: str
    error: VerificationError | None = None


def _redact(value: str, keep: int = 16) -> str:
    return f"{value[:keep]}...{value[-keep:]}"


def composite_message(aad: bytes, digest: bytes) -> bytes:
    return aad + hashlib.sha256(digest).digest()


def check_signature(public_key: bytes, digest: bytes, signature: bytes, aad: bytes | None = None) -> SigningMode:
    """Run the cryptographic check only. Raises ``InvalidSignature`` on mismatch."""
    if aad:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, composite_message(aad, digest))
        return SigningMode.COMPOSITE

    verify_prehashed(public_key, PrecomputedDigest(digest), signature)
    return SigningMode.PREHASH


def verify_single(
    pubkey: str,
    digest_hex: str,
    signature_hex: str,
    aad_hex: str | None = None,
    label: str = "all",
    registry: KeyRegistry = DEFAULT_REGISTRY,
    out: TextIO | None = None,
) -> SigningMode:
    public_key = registry.resolve(pubkey)
    digest = must_fixed_hex("hash", digest_hex, SHA512_DIGEST_SIZE)
    signature = must_fixed_hex("signature", signature_hex, SIGNATURE_SIZE)
    aad = must_hex_to_bytes("aad", aad_hex) if aad_hex else None
    mode = SigningMode.for_aad(aad)

    if not is_valid_public_key(public_key):
        raise InvalidKey(f"public key for {label} is not a valid Ed25519 point")

    print(f"=== Verifying {label} ===", file=out)
    print(f"Mode:       {mode.value}", file=out)
    key_name = registry.identify(public_key)
    print(f"Public key: {key_name or _redact(public_key.hex())}", file=out)
    print(f"Hash:       {_redact(digest.hex())}", file=out)
    print(f"Signature:  {_redact(signature.hex())}", file=out)
    if aad:
        print(f"AAD:        {len(aad)} bytes", file=out)

    try:
        check_signature(public_key, digest, signature, aad)
    except InvalidSignature as exc:
        print(f"[FAIL] FAILED: {str(exc) or 'signature mismatch'}\n", file=out)
        raise SignatureMismatch(label) from exc

    print("[OK] PASSED\n", file=out)
    return mode


def resolve_stage_key(
    stage: str,
    record: StageRecord,
    registry: KeyRegistry = DEFAULT_REGISTRY,
    fallback: str | None = DEFAULT_FALLBACK_KEY,
    out: TextIO | None = None,
) -> str:
    if record.key_tag is not None:
        name = registry.name_for_tag(record.key_tag)
        if name is None:
            raise UnresolvedStageKey(stage, f"unknown key tag {record.key_tag!r}")
        return name

    if record.key_slot is not None:
        name = registry.name_for_slot(record.key_slot)
        if name is None:
            raise UnresolvedStageKey(stage, f"unknown key slot {record.key_slot}")
        return name

    if not fallback:
        raise UnresolvedStageKey(stage, "no key tag or slot")
    print(f"[WARN] no key info for {stage}, using {fallback} key", file=out)
    return fallback


def verify_stage(
    stage: str,
    record: StageRecord,
    pubkey: str | None = None,
    registry: KeyRegistry = DEFAULT_REGISTRY,
    fallback: str | None = DEFAULT_FALLBACK_KEY,
    out: TextIO | None = None,
) -> VerificationOutcome:
    mode = SigningMode.for_aad(normalize_hex(record.aad_hex or ""))
    key_name: str | None = None

    try:
        if not record.complete:
            raise IncompleteRecord(stage, record.missing_fields())
        key_input = pubkey if pubkey is not None else resolve_stage_key(stage, record, registry, fallback, out)
        key_name = registry.identify(registry.resolve(key_input))
        mode = verify_single(
            key_input,
            record.digest_hex,
            record.signature_hex,
            record.aad_hex,
            label=stage,
            registry=registry,
            out=out,
        )
    except VerificationError as exc:
        if not isinstance(exc, SignatureMismatch):
            print(f"[FAIL] {stage}: {exc.kind}: {exc}\n", file=out)
        return VerificationOutcome(stage, mode, key_name, False, str(exc), exc)

    return VerificationOutcome(stage, mode, key_name, True, f"{mode.value} signature verified")


def verify_records(
    records: dict[str, StageRecord],
    stages: Iterable[str] = STAGES,
    pubkey: str | None = None,
    registry: KeyRegistry = DEFAULT_REGISTRY,
    fallback: str | None = DEFAULT_FALLBACK_KEY,
    out: TextIO | None = None,
) -> list[VerificationOutcome]:
    outcomes: list[VerificationOutcome] = []
    for stage in stages:
        record = records.get(stage)
        if record is None:
            continue
        outcomes.append(verify_stage(stage, record, pubkey, registry, fallback, out))
    return outcomes


def requested_stages(name: str) -> tuple[str, ...]:
    return STAGES if name == "all" else (name,)


def select_usable_records(records: dict[str, StageRecord], stages: tuple[str, ...]) -> dict[str, StageRecord]:
    if not records:
        raise NoUsableInput("no attestation data found in input (expected boot0.sig:<hex>, boot0.hash:<hex>, ...)")

    selected = {stage: records[stage] for stage in stages if stage in records}
    if not selected:
        raise NoUsableInput(f"no attestation data for requested stage(s): {', '.join(stages)}")
    if not any(record.complete for record in selected.values()):
        raise NoUsableInput("no complete attestation records (each stage needs both sig and hash)")
    return selected


def print_summary(outcomes: list[VerificationOutcome], out: TextIO | None = None) -> bool:
    print("=== Summary ===", file=out)
    for outcome in outcomes:
        if outcome.passed:
            print(f"{outcome.stage_name}: VERIFIED", file=out)
        else:
            kind = outcome.error.kind if outcome.error is not None else "VerificationError"
            print(f"{outcome.stage_name}: FAILED ({kind})", file=out)

    all_passed = all(outcome.passed for outcome in outcomes)
    print(f"\nFINAL VERDICT: {'PASS' if all_passed else 'FAIL'}", file=out)
    return all_passed


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    if not path.is_file():
        raise NoUsableInput(f"file not found: {path}")
    return path.read_text(errors="replace")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument(
        "-p",
        "--pubkey",
        help=(
            "Public key as 32-byte hex or key name "
            f"({', '.join(DEFAULT_REGISTRY.names())}). Overrides key hints from audit output."
        ),
    )
    parser.add_argument("-H", "--hash", help="SHA-512 hash of the signed region in hex (64 bytes).")
    parser.add_argument("-s", "--sig", help="Signature in hex (64 bytes).")
    parser.add_argument(
        "-a",
        "--aad",
        help="Additional authenticated data in hex. If non-empty, verifies in FIDO2 mode.",
    )
    parser.add_argument(
        "-n",
        "--name",
        default=os.environ.get("VERIFY_ED25519PH_NAME", "all"),
        help="Stage to verify (boot0, boot1, loader) or 'all' (default: all or VERIFY_ED25519PH_NAME).",
    )
    parser.add_argument(
        "--input",
        default="-",
        help="Audit output file to parse when no explicit key/hash/sig triple is given (default: stdin).",
    )
    parser.add_argument(
        "--fallback-key",
        default=os.environ.get("VERIFY_ED25519PH_FALLBACK_KEY", DEFAULT_FALLBACK_KEY),
        help="Key used for stages without tag or slot info; empty disables the fallback (default: developer).",
    )
    parser.add_argument(
        "--dump-records",
        action="store_true",
        help="Print the attestation records parsed from the audit output.",
    )
    parser.add_argument(
        "--dump-format",
        choices=("yaml", "json"),
        default="yaml",
        help="Output format for --dump-records (default: yaml).",
    )
    parser.add_argument(
        "--dump-only",
        action="store_true",
        help="Only print parsed records and skip verification.",
    )
    args = parser.parse_args(argv)

    if args.dump_only:
        args.dump_records = True

    if args.pubkey and args.hash and args.sig:
        try:
            verify_single(args.pubkey, args.hash, args.sig, args.aad, args.name)
        except VerificationError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        return 0

    try:
        text = _read_input(args.input)
        if not text.strip():
            raise NoUsableInput("no input provided")
        records = parse_audit_output(text)

        if args.dump_records and records:
            print(format_records(records, dump_format=args.dump_format))
            if args.dump_only:
                return 0
            print()

        stages = requested_stages(args.name)
        selected = select_usable_records(records, stages)
    except NoUsableInput as exc:
        print(f"error: {exc}", file=sys.stderr)
        print("usage: cat audit.txt | verify_ed25519ph.py", file=sys.stderr)
        print("   or: verify_ed25519ph.py --pubkey <key> --hash <hex> --sig <hex>", file=sys.stderr)
        return 2

    print(f"Found attestation data for: {', '.join(records)}\n")

    outcomes = verify_records(selected, stages, pubkey=args.pubkey, fallback=args.fallback_key or None)
    return 0 if print_summary(outcomes) else 1


if __name__ == "__main__":
    raise SystemExit(main())
