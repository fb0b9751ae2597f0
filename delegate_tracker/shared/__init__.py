from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.exceptions import (
    AlreadyActiveException,
    ConfigurationException,
    InvalidAddressException,
    NonRetryableException,
    NotFoundException,
    ProviderException,
    RetryableException,
    StorageException,
)

__all__ = [
    "normalize_address",
    "AlreadyActiveException",
    "ConfigurationException",
    "InvalidAddressException",
    "NonRetryableException",
    "NotFoundException",
    "ProviderException",
    "RetryableException",
    "StorageException",
]
