import json
import os
import base58
from solders.keypair import Keypair
from loguru import logger

KEYPAIR_LENGTH = 64


class WalletLoadError(Exception):
    """Raised when a keypair file cannot be turned into a Keypair."""


def _keypair_bytes(payload):
    if isinstance(payload, list):
        return bytes(payload)
    if isinstance(payload, str):
        return base58.b58decode(payload.strip())
    raise ValueError(f"unsupported keypair format: {type(payload).__name__}")


def load_wallet(path):
    """Load a signing keypair from a file.

    Accepts the solana-keygen format (JSON array of 64 ints) or a base58
    encoded 64-byte secret, either bare or as a JSON string.
    """
    path = os.path.expanduser(str(path))
    try:
        with open(path, 'r') as f:
            content = f.read()
    except OSError as e:
        raise WalletLoadError(f"failed to read keypair file {path}: {e}") from e

    try:
        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            payload = content
        key_bytes = _keypair_bytes(payload)
        if len(key_bytes) != KEYPAIR_LENGTH:
            raise ValueError(f"expected {KEYPAIR_LENGTH} bytes, got {len(key_bytes)}")
        keypair = Keypair.from_bytes(key_bytes)
    except (TypeError, ValueError) as e:
        raise WalletLoadError(f"failed to read keypair file {path}: {e}") from e

    logger.debug(f"🔑 Wallet loaded from file: {keypair.pubkey()}")
    return keypair
