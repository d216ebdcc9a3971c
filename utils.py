import argparse
from typing import Dict
import base58
from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

TOKEN_PROGRAMS: Dict[str, Pubkey] = {
    'token': TOKEN_PROGRAM_ID,
    'token-2022': TOKEN_2022_PROGRAM_ID,
}


def token_program_id(name: str) -> Pubkey:
    """Map a program name from the command line to its id"""
    try:
        return TOKEN_PROGRAMS[name]
    except KeyError:
        raise ValueError(f"unknown token program: {name}") from None


def derive_associated_token_address(owner: Pubkey, mint: Pubkey, program_id: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``.

    The address is the program-derived address of the associated token
    program with seeds [owner, token program id, mint]. No network access.
    """
    seeds = [bytes(owner), bytes(program_id), bytes(mint)]
    address, _ = Pubkey.find_program_address(seeds, ASSOCIATED_TOKEN_PROGRAM_ID)
    return address


def decode_base58(key: str) -> bytes:
    """Decode a base58 (bitcoin alphabet) string. Raises ValueError on bad input."""
    return base58.b58decode(key)


def format_bytes(data: bytes) -> str:
    return str(list(data))


def pubkey_arg(value: str) -> Pubkey:
    """argparse type for base58 public keys"""
    try:
        return Pubkey.from_string(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid public key: {value}") from None


def truncate_address(address, length: int = 8) -> str:
    """Truncate Solana address for display"""
    address = str(address)
    if len(address) <= length * 2:
        return address
    return f"{address[:length]}...{address[-length:]}"
