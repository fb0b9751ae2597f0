"""Canonical form for account identifiers used as storage partition keys."""

from eth_utils import is_address

from delegate_tracker.shared.exceptions import InvalidAddressException

ADDRESS_PREFIX = "0x"
ADDRESS_LENGTH = 42


def normalize_address(value: object) -> str:
    """
    Validate an address and return its canonical lower-case form.

    Mixed-case input must carry a valid EIP-55 checksum. All-lower and
    all-upper hex are accepted as-is.

    Raises:
        InvalidAddressException: if the value is not a valid address
    """
    if not isinstance(value, str):
        raise InvalidAddressException(value)

    candidate = value.strip()
    if (
        len(candidate) != ADDRESS_LENGTH
        or not candidate.startswith(ADDRESS_PREFIX)
        or not is_address(candidate)
    ):
        raise InvalidAddressException(value)

    return candidate.lower()
