"""
Exception hierarchy for the delegate tracker.

Exception Categories:
- RetryableException: Transient failures that may succeed on retry (RPC, network)
- NonRetryableException: Permanent failures that won't benefit from retry (bad input, storage)
- ConfigurationException: Startup/config errors that prevent operation

Domain exceptions:
- InvalidAddressException -> NonRetryableException (malformed caller input)
- NotFoundException -> NonRetryableException (nothing synced yet)
- AlreadyActiveException -> NonRetryableException (sync already running)
- StorageException -> NonRetryableException (durable read/write failed)
- ProviderException -> RetryableException (chain-data / vote-source failures)
"""

from typing import Optional


class RetryableException(Exception):
    """A transient failure such as an RPC timeout or rate limit."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NonRetryableException(Exception):
    """A failure that would repeat on retry, e.g. bad input or broken storage."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationException(NonRetryableException):
    """Missing or invalid settings (DT_* variables, config file)."""


class InvalidAddressException(NonRetryableException):
    """Raised when an account identifier is not a valid address."""

    def __init__(self, value: object):
        super().__init__(f"Invalid address: {value!r}")
        self.value = value


class NotFoundException(NonRetryableException):
    """Raised when no data has been synced yet for an address."""

    def __init__(self, address: str, what: str = "data"):
        super().__init__(f"No {what} found for {address}. Run a sync first.")
        self.address = address


class AlreadyActiveException(NonRetryableException):
    """Raised when a sync is already running for an address."""

    def __init__(self, address: str, kind: str = "sync"):
        super().__init__(f"A {kind} is already active for {address}")
        self.address = address
        self.kind = kind


class StorageException(NonRetryableException):
    """
    Exception for durable storage failures.

    Never treated as "no data": a read that fails raises this instead of
    returning None, so callers can tell corruption from an empty store.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        address: Optional[str] = None,
    ):
        super().__init__(message)
        self.key = key
        self.address = address


class ProviderException(RetryableException):
    """
    Exception for chain-data provider and vote-source failures.

    Inherits from RetryableException because RPC and API failures
    are often transient (rate limits, timeouts).
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source
