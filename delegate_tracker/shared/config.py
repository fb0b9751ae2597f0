"""
Runtime configuration.

Values come from environment variables (a local .env file is loaded with
python-dotenv) and, optionally, from a JSON config file pointed to by
DT_CONFIG_FILE:

    {
        "chainId": 1,
        "tokenAddress": "0x...",
        "coreGovernor": "0x...",
        "treasuryGovernor": "0x...",
        "governorStartBlock": 16000000,
        "snapshotSpace": "example.eth",
        "delegates": [
            {"address": "0x...", "name": "Alice", "startBlock": 17000000}
        ]
    }

Environment variables win over the file.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import (
    SnapshotConstants,
    StorageConstants,
    SyncConstants,
)
from delegate_tracker.shared.exceptions import (
    ConfigurationException,
    InvalidAddressException,
)
from delegate_tracker.utils.file_utils import load_json


@dataclass(frozen=True)
class DelegateConfig:
    """A tracked delegate and the block its history starts at."""

    address: str
    name: str = ""
    start_block: int = SyncConstants.DEFAULT_START_BLOCK


@dataclass
class Settings:
    data_dir: str = "data"
    rpc_url: Optional[str] = None
    chain_id: int = 1
    token_address: Optional[str] = None
    batch_size: int = SyncConstants.DEFAULT_BATCH_SIZE
    default_start_block: int = SyncConstants.DEFAULT_START_BLOCK
    short_ttl: float = StorageConstants.SHORT_TTL
    long_ttl: float = StorageConstants.LONG_TTL
    snapshot_url: str = SnapshotConstants.DEFAULT_URL
    snapshot_space: Optional[str] = None
    core_governor: Optional[str] = None
    treasury_governor: Optional[str] = None
    governor_start_block: int = SyncConstants.DEFAULT_START_BLOCK
    delegates: List[DelegateConfig] = field(default_factory=list)

    def start_block_for(self, address: str) -> int:
        """Configured start block for a delegate, else the default."""
        normalized = normalize_address(address)
        for delegate in self.delegates:
            if delegate.address == normalized:
                return delegate.start_block
        return self.default_start_block

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)

        file_data: Dict[str, Any] = {}
        config_file = os.getenv("DT_CONFIG_FILE")
        if config_file:
            try:
                file_data = load_json(config_file)
            except (OSError, ValueError) as e:
                raise ConfigurationException(
                    f"Could not load config file {config_file}: {e}"
                )

        default_start_block = _int_setting(
            "DT_DEFAULT_START_BLOCK", SyncConstants.DEFAULT_START_BLOCK
        )
        return cls(
            data_dir=os.getenv("DT_DATA_DIR", "data"),
            rpc_url=os.getenv("DT_RPC_URL") or None,
            chain_id=_int_setting(
                "DT_CHAIN_ID", file_data.get("chainId", 1)
            ),
            token_address=_address_setting(
                "DT_TOKEN_ADDRESS", file_data.get("tokenAddress")
            ),
            batch_size=_int_setting(
                "DT_BATCH_SIZE", SyncConstants.DEFAULT_BATCH_SIZE, minimum=1
            ),
            default_start_block=default_start_block,
            short_ttl=_float_setting(
                "DT_SHORT_TTL", StorageConstants.SHORT_TTL
            ),
            long_ttl=_float_setting("DT_LONG_TTL", StorageConstants.LONG_TTL),
            snapshot_url=os.getenv(
                "DT_SNAPSHOT_URL", SnapshotConstants.DEFAULT_URL
            ),
            snapshot_space=os.getenv("DT_SNAPSHOT_SPACE")
            or file_data.get("snapshotSpace"),
            core_governor=_address_setting(
                "DT_CORE_GOVERNOR", file_data.get("coreGovernor")
            ),
            treasury_governor=_address_setting(
                "DT_TREASURY_GOVERNOR", file_data.get("treasuryGovernor")
            ),
            governor_start_block=_int_setting(
                "DT_GOVERNOR_START_BLOCK",
                file_data.get("governorStartBlock", default_start_block),
            ),
            delegates=_parse_delegates(file_data.get("delegates", [])),
        )


def _int_setting(name: str, default: Any, minimum: int = 0) -> int:
    raw = os.getenv(name)
    value = default if raw is None or raw == "" else raw
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationException(f"{name} must be an integer, got {value!r}")
    if parsed < minimum:
        raise ConfigurationException(f"{name} must be >= {minimum}")
    return parsed


def _float_setting(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationException(f"{name} must be a number, got {raw!r}")


def _address_setting(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name) or default
    if not value:
        return None
    try:
        return normalize_address(value)
    except InvalidAddressException:
        raise ConfigurationException(f"{name} is not a valid address: {value}")


def _parse_delegates(raw: List[Dict[str, Any]]) -> List[DelegateConfig]:
    delegates = []
    for item in raw:
        try:
            delegates.append(
                DelegateConfig(
                    address=normalize_address(item["address"]),
                    name=item.get("name", ""),
                    start_block=int(
                        item.get(
                            "startBlock", SyncConstants.DEFAULT_START_BLOCK
                        )
                    ),
                )
            )
        except (KeyError, TypeError, ValueError, InvalidAddressException) as e:
            raise ConfigurationException(f"Invalid delegate entry {item}: {e}")
    return delegates
