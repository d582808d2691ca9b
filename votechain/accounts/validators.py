from django.core.exceptions import ValidationError
from web3 import Web3


def normalize_address(value: str) -> str:
    """
    Validate an Ethereum address and return its EIP-55 checksum form.
    The ledger compares identities as plain strings, so every address
    must reach it in the same spelling.
    """
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValidationError(f"'{value}' is not a valid wallet address")
    return Web3.to_checksum_address(value)


def validate_wallet_address(value: str) -> None:
    normalize_address(value)
