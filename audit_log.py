"""Recover per-stage attestation records from free-form boot audit output.

The audit log is meant for humans, so parsing is permissive: every line is
checked against two independent patterns and anything that does not match
is ignored.

Field lines::

    boot0.sig:<128 hex chars>
    boot0.hash:<128 hex chars>
    boot0.aad_len:<decimal>
    boot0.aad:<hex>

Key annotation lines::

    Boot0: key 2/true (beta) -> ...
    Boot1: key 3/true (dev ) -> ...
    Next stage: key 0/true (bao1) -> ...
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

STAGES = ("boot0", "boot1", "loader")

U32_MAX = 2**32 - 1

KEY_LINE_PREFIXES = (
    ("Boot0:", "boot0"),
    ("Boot1:", "boot1"),
    ("Next stage:", "loader"),
)

FIELD_LINE_RE = re.compile(r"^(?P<stage>boot0|boot1|loader)\.(?P<field>sig|hash|aad_len|aad):(?P<value>.*)$")
SLOT_RE = re.compile(r"([0-9]+)[^0-9]")


@dataclass
class StageRecord:
    signature_hex: str | None = None
    digest_hex: str | None = None
    key_slot: int | None = None
    key_tag: str | None = None
    aad_len: int | None = None
    aad_hex: str | None = None

    @property
    def complete(self) -> bool:
        return self.signature_hex is not None and self.digest_hex is not None

    def missing_fields(self) -> list[str]:
        missing = []
        if self.signature_hex is None:
            missing.append("sig")
        if self.digest_hex is None:
            missing.append("hash")
        return missing


def parse_key_line(line: str, prefix: str) -> tuple[int, str] | None:
    """Extract ``(slot, tag)`` from an annotation line starting with *prefix*."""
    if not line.startswith(prefix):
        return None

    key_idx = line.find("key ")
    if key_idx < 0:
        return None
    slot_match = SLOT_RE.match(line, key_idx + 4)
    if slot_match is None:
        return None
    slot = int(slot_match.group(1))

    paren_start = line.find("(")
    paren_end = line.find(")")
    if paren_start < 0 or paren_end < paren_start:
        return None
    return slot, line[paren_start + 1 : paren_end]


def _apply_field(record: StageRecord, field: str, value: str) -> bool:
    if field == "sig":
        record.signature_hex = value
    elif field == "hash":
        record.digest_hex = value
    elif field == "aad":
        record.aad_hex = value
    elif field == "aad_len":
        # Informational only; never checked against the decoded AAD.
        if not re.fullmatch(r"[0-9]+", value) or int(value) > U32_MAX:
            return False
        record.aad_len = int(value)
    return True


def parse_audit_output(text: str) -> dict[str, StageRecord]:
    records: dict[str, StageRecord] = {}
    seen_fields: set[str] = set()

    for raw_line in text.splitlines():
        line = raw_line.strip()

        match = FIELD_LINE_RE.match(line)
        if match is not None:
            stage = match.group("stage")
            record = records.setdefault(stage, StageRecord())
            if _apply_field(record, match.group("field"), match.group("value").strip()):
                seen_fields.add(stage)

        for prefix, stage in KEY_LINE_PREFIXES:
            parsed = parse_key_line(line, prefix)
            if parsed is None:
                continue
            record = records.setdefault(stage, StageRecord())
            record.key_slot, record.key_tag = parsed

    return {stage: records[stage] for stage in STAGES if stage in seen_fields}


def _hex_preview(value: str | None, keep: int = 16) -> str | None:
    if value is None or len(value) <= keep * 2:
        return value
    return f"{value[:keep]}...{value[-keep:]}"


def _hex_byte_length(value: str | None) -> int | None:
    if value is None:
        return None
    cleaned = value.lower().removeprefix("0x")
    if len(cleaned) % 2 != 0 or not re.fullmatch(r"[0-9a-f]*", cleaned):
        return None
    return len(cleaned) // 2


def records_to_dump(records: dict[str, StageRecord], include_raw: bool = False) -> dict[str, Any]:
    dump: dict[str, Any] = {}
    for stage, record in records.items():
        entry: dict[str, Any] = {"complete": record.complete}
        for label, value in (
            ("sig", record.signature_hex),
            ("hash", record.digest_hex),
            ("aad", record.aad_hex),
        ):
            if value is None:
                continue
            entry[label] = value if include_raw else _hex_preview(value)
            entry[f"{label}_bytes"] = _hex_byte_length(value)
        if record.aad_len is not None:
            entry["aad_len"] = record.aad_len
        if record.key_slot is not None:
            entry["key_slot"] = record.key_slot
        if record.key_tag is not None:
            entry["key_tag"] = record.key_tag
        dump[stage] = entry
    return dump


def _yaml_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    text = str(value)
    if text and text == text.strip() and all(ch.isalnum() or ch in "_./:+-" for ch in text):
        return text
    return json.dumps(text)


def _to_yaml_like_lines(value: Any, indent: int = 0) -> list[str]:
    pad = " " * indent
    if not isinstance(value, dict):
        return [f"{pad}{_yaml_scalar(value)}"]
    if not value:
        return [f"{pad}{{}}"]

    lines: list[str] = []
    for key, item in value.items():
        if isinstance(item, dict):
            lines.append(f"{pad}{key}:")
            lines.extend(_to_yaml_like_lines(item, indent + 2))
        else:
            lines.append(f"{pad}{key}: {_yaml_scalar(item)}")
    return lines


def format_yaml_like(value: Any) -> str:
    return "\n".join(_to_yaml_like_lines(value))


def format_records(records: dict[str, StageRecord], dump_format: str = "yaml", include_raw: bool = False) -> str:
    dump = records_to_dump(records, include_raw=include_raw)
    if dump_format == "json":
        return json.dumps(dump, indent=2, sort_keys=False)
    return format_yaml_like(dump)
