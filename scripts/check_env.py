"""Operator checks for the broker's environment configuration.

Subcommands:

``check``
    Load ``AppSettings`` from the given ``.env`` file and print the resolved
    redirect URI and storage backends, so a bad deployment fails here instead
    of on the first pairing.
``record`` / ``verify``
    Store, and later compare, a fingerprint of ``TOKEN_ENC_KEY_B64``. Every
    session in the KV store is encrypted under that key; replacing it makes
    all of them undecryptable. Other settings may change freely.
``generate-key``
    Print a new random key for ``TOKEN_ENC_KEY_B64``.

Example usages::

    python -m scripts.check_env generate-key
    python -m scripts.check_env record --env-file /opt/broker/.env \
        --fingerprint-file /opt/broker/key.fingerprint
    python -m scripts.check_env verify --env-file /opt/broker/.env \
        --fingerprint-file /opt/broker/key.fingerprint
"""

from __future__ import annotations

import argparse
import base64
import hashlib
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from broker.core.config import AppSettings, _load_env_file, decode_key_material

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_KEY_MISMATCH = 3
EXIT_RUNTIME_ERROR = 5

# Domain-separates the fingerprint from any other hash of the raw key.
_FINGERPRINT_CONTEXT = b"smartthings-broker/token-key/v1:"


def generate_key() -> str:
    return base64.b64encode(os.urandom(32)).decode("ascii")


def key_fingerprint(settings: AppSettings) -> str:
    """Hash of the decoded key; identical for the standard and URL-safe spellings."""
    raw = decode_key_material(settings.security.token_encryption_key)
    return hashlib.sha256(_FINGERPRINT_CONTEXT + raw).hexdigest()


def load_settings(env_file: Path) -> AppSettings:
    if not env_file.exists():
        raise FileNotFoundError(f"Environment file {env_file} does not exist.")
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


def _describe(settings: AppSettings) -> None:
    print(f"Redirect URI:     {settings.smartthings.resolved_redirect_uri}")
    print(f"KV backend:       {settings.storage.backend}")
    print(f"Rate limiter:     {settings.rate_limit.backend}")
    print("Settings OK.")


def _record(settings: AppSettings, fingerprint_file: Path) -> int:
    fingerprint = key_fingerprint(settings)
    fingerprint_file.write_text(f"{fingerprint}\n", encoding="utf-8")
    print(f"Recorded encryption key fingerprint to {fingerprint_file}")
    return EXIT_OK


def _verify(settings: AppSettings, fingerprint_file: Path) -> int:
    if not fingerprint_file.exists():
        print(
            f"Fingerprint file {fingerprint_file} is missing; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = fingerprint_file.read_text(encoding="utf-8").strip()
    if key_fingerprint(settings) == expected:
        print("Encryption key matches the recorded fingerprint.")
        return EXIT_OK

    print(
        "TOKEN_ENC_KEY_B64 differs from the recorded key. Starting the broker "
        "with it would make every stored session fail to decrypt.",
        file=sys.stderr,
    )
    return EXIT_KEY_MISMATCH


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Broker configuration checks.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Validate settings.")
    for name, help_text in (
        ("record", "Validate settings and store the key fingerprint."),
        ("verify", "Validate settings and compare the key fingerprint."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--fingerprint-file", required=True, type=Path)
        sub.add_argument("--env-file", default=Path(".env"), type=Path)
    check_parser.add_argument("--env-file", default=Path(".env"), type=Path)

    subparsers.add_parser("generate-key", help="Print a new TOKEN_ENC_KEY_B64 value.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "generate-key":
        print(generate_key())
        return EXIT_OK

    try:
        settings = load_settings(args.env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(f"Settings validation failed:\n{exc.json(indent=2)}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if args.command == "record":
        return _record(settings, args.fingerprint_file)
    if args.command == "verify":
        return _verify(settings, args.fingerprint_file)
    _describe(settings)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
