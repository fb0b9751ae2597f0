from delegate_tracker.utils.file_utils import atomic_write_bytes, load_json
from delegate_tracker.utils.formatters import (
    console,
    format_address,
    format_timestamp,
    format_voting_power,
)

__all__ = [
    "atomic_write_bytes",
    "load_json",
    "console",
    "format_address",
    "format_timestamp",
    "format_voting_power",
]
