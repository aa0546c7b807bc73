"""Address validation utilities."""

from solders.pubkey import Pubkey


def is_valid_address(address: str) -> bool:
    """Return True if address is a valid base58 Solana public key."""
    if not isinstance(address, str):
        return False
    try:
        Pubkey.from_string(address.strip())
        return True
    except Exception:
        return False
