from __future__ import annotations

import hashlib
import io
import json

import pytest

from verify_ed25519ph import composite_message, main

AAD = b"\xa5" * 37


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("VERIFY_ED25519PH_NAME", raising=False)
    monkeypatch.delenv("VERIFY_ED25519PH_FALLBACK_KEY", raising=False)


@pytest.fixture
def stdin(monkeypatch):
    def _feed(text: str) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO(text))

    return _feed


def _explicit(key: bytes, digest: bytes, signature: bytes, *extra: str) -> list[str]:
    return ["--pubkey", key.hex(), "--hash", digest.hex(), "--sig", signature.hex(), *extra]


def test_explicit_prehash_pair(signers, firmware, digest, capsys):
    signer = signers["beta"]
    signature = signer.sign_prehashed(firmware)

    assert main(_explicit(signer.public_key, digest, signature)) == 0
    out = capsys.readouterr().out
    assert "=== Verifying all ===" in out
    assert "Mode:       Ed25519ph" in out
    assert "[OK] PASSED" in out

    bad_digest = hashlib.sha512(firmware[1:]).digest()
    assert main(_explicit(signer.public_key, bad_digest, signature, "--name", "boot1")) == 1
    captured = capsys.readouterr()
    assert "[FAIL] FAILED" in captured.out
    assert "error: boot1 verification failed" in captured.err


def test_explicit_composite_differs_from_prehash(signers, digest, capsys):
    signer = signers["bao1"]
    signature = signer.sign(composite_message(AAD, digest))

    assert main(_explicit(signer.public_key, digest, signature, "--aad", AAD.hex())) == 0
    assert "Mode:       FIDO2" in capsys.readouterr().out

    assert main(_explicit(signer.public_key, digest, signature)) == 1
    assert "Mode:       Ed25519ph" in capsys.readouterr().out


def test_explicit_decode_error_exits_1(signers, digest, capsys):
    assert main(["-p", "developer", "-H", digest.hex(), "-s", "00" * 10]) == 1
    assert "signature must be 64 bytes, got 10" in capsys.readouterr().err


def test_stdin_audit_with_pubkey_override(signers, firmware, digest, stdin, capsys):
    signer = signers["developer"]
    signature = signer.sign_prehashed(firmware).hex()
    stdin(
        f"boot0.sig:{signature}\nboot0.hash:{digest.hex()}\nBoot0: key 3/true (dev ) -> ok\n"
        f"boot1.sig:{signature}\nboot1.hash:{hashlib.sha512(b'other').hexdigest()}\n"
    )

    assert main(["--pubkey", signer.public_key.hex()]) == 1
    out = capsys.readouterr().out
    assert "Found attestation data for: boot0, boot1" in out
    assert "boot0: VERIFIED" in out
    assert "boot1: FAILED (SignatureMismatch)" in out
    assert "FINAL VERDICT: FAIL" in out

    stdin(f"boot0.sig:{signature}\nboot0.hash:{digest.hex()}\n")
    assert main(["--pubkey", signer.public_key.hex(), "--name", "boot0"]) == 0
    assert "FINAL VERDICT: PASS" in capsys.readouterr().out


def test_stdin_builtin_keys_and_key_failures(signers, firmware, digest, stdin, capsys):
    signature = signers["developer"].sign_prehashed(firmware).hex()
    stdin(
        f"boot0.sig:{signature}\nboot0.hash:{digest.hex()}\nBoot0: key 3/true (dev ) -> ok\n"
        f"boot1.sig:{signature}\nboot1.hash:{digest.hex()}\nBoot1: key 3/true (qqqq) -> ok\n"
        f"loader.sig:{signature}\n"
    )

    assert main([]) == 1
    out = capsys.readouterr().out
    # Test keys are not the production developer key.
    assert "Public key: developer" in out
    assert "boot0: FAILED (SignatureMismatch)" in out
    assert "boot1: FAILED (UnresolvedStageKey)" in out
    assert "loader: FAILED (IncompleteRecord)" in out


def test_input_file_and_dump_only(tmp_path, capsys):
    audit = tmp_path / "audit.txt"
    audit.write_text(f"boot1.sig:{'ab' * 64}\nBoot1: key 3/true (dev ) -> ok\n")

    assert main(["--input", str(audit), "--dump-only", "--dump-format", "json"]) == 0
    dumped = json.loads(capsys.readouterr().out)
    assert dumped["boot1"]["key_tag"] == "dev "
    assert dumped["boot1"]["complete"] is False


@pytest.mark.parametrize(
    "text, argv, message",
    [
        ("", [], "no input provided"),
        ("   \n\n", [], "no input provided"),
        ("hello\nworld\n", [], "no attestation data found"),
        (f"boot0.sig:{'ab' * 64}\n", [], "no complete attestation records"),
        (f"boot0.sig:{'ab' * 64}\nboot0.hash:{'cd' * 64}\n", ["--name", "loader"], "requested stage(s): loader"),
    ],
)
def test_startup_failures_exit_2(stdin, capsys, text, argv, message):
    stdin(text)
    assert main(argv) == 2
    assert message in capsys.readouterr().err


def test_missing_input_file(tmp_path, capsys):
    assert main(["--input", str(tmp_path / "missing.txt")]) == 2
    assert "file not found" in capsys.readouterr().err
