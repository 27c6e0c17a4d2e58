"""
Wallet key loading.

Accepts the two formats Solana tooling commonly produces:
    - base58 string decoding to 64 bytes (Phantom / Solflare export)
    - JSON byte array of length 64 (solana-keygen file contents)

The secret is never logged.
"""
from __future__ import annotations

import json

import base58
from solders.keypair import Keypair


class ConfigurationError(Exception):
    """Raised when configuration or credentials are missing or invalid."""

    pass


def load_keypair(secret: str) -> Keypair:
    """
    Load a keypair from a base58 or JSON-array secret.

    Raises:
        ConfigurationError: If the secret is empty or malformed
    """
    if not secret or not secret.strip():
        raise ConfigurationError("WALLET_PRIVATE_KEY is empty or not set")

    secret = secret.strip()

    if secret.startswith("["):
        try:
            key_bytes = bytes(json.loads(secret))
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Wallet key is not a valid JSON byte array: {e}") from e
    else:
        try:
            key_bytes = base58.b58decode(secret)
        except ValueError as e:
            raise ConfigurationError(f"Wallet key is not valid base58: {e}") from e

    if len(key_bytes) != 64:
        raise ConfigurationError(
            f"Wallet key decoded to {len(key_bytes)} bytes, expected 64"
        )

    try:
        return Keypair.from_bytes(key_bytes)
    except ValueError as e:
        raise ConfigurationError(f"Wallet key rejected: {e}") from e
