"""
Chain-data providers for the timeline builder.

The builder only depends on ChainDataProvider. Web3DelegationProvider is the
reference implementation for ERC20Votes-style tokens: every
DelegateVotesChanged log for the delegate carries the exact change in voting
power, and the log just before it in the same transaction (DelegateChanged
or Transfer) tells us which delegator caused it.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from eth_abi import decode
from web3 import Web3

from delegate_tracker.shared.address import normalize_address
from delegate_tracker.shared.constants import EventConstants, SyncConstants
from delegate_tracker.shared.exceptions import ProviderException
from delegate_tracker.shared.logging import get_logger
from delegate_tracker.storage.cache import LRUCache
from delegate_tracker.timeline.models import DelegationEvent

logger = get_logger(__name__)


class ChainDataProvider(ABC):
    """Source of delegation events for a delegate."""

    @abstractmethod
    async def get_latest_block(self) -> int:
        """Latest block number known to the provider."""

    @abstractmethod
    async def get_delegation_events(
        self, delegate: str, from_block: int, to_block: int
    ) -> List[DelegationEvent]:
        """Events affecting `delegate` in [from_block, to_block], inclusive."""


def _address_topic(address: str) -> str:
    return "0x" + "0" * 24 + normalize_address(address)[2:]


def _topic_address(topic: Any) -> str:
    return "0x" + Web3.to_hex(topic)[-40:].lower()


class Web3DelegationProvider(ChainDataProvider):
    def __init__(
        self,
        rpc_url: str,
        token_address: str,
        w3: Optional[Web3] = None,
        block_cache_size: int = SyncConstants.BLOCK_TIMESTAMP_CACHE_SIZE,
    ):
        self.token_address = normalize_address(token_address)
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self._block_timestamps: LRUCache[int, int] = LRUCache(block_cache_size)

    async def get_latest_block(self) -> int:
        try:
            return await asyncio.to_thread(lambda: self.w3.eth.block_number)
        except Exception as e:
            raise ProviderException(
                f"Failed to fetch latest block: {e}", source="chain"
            ) from e

    async def get_delegation_events(
        self, delegate: str, from_block: int, to_block: int
    ) -> List[DelegationEvent]:
        try:
            return await asyncio.to_thread(
                self._fetch_events, normalize_address(delegate), from_block, to_block
            )
        except ProviderException:
            raise
        except Exception as e:
            raise ProviderException(
                f"Failed to fetch delegation events {from_block}-{to_block}: {e}",
                source="chain",
            ) from e

    def _fetch_events(
        self, delegate: str, from_block: int, to_block: int
    ) -> List[DelegationEvent]:
        logs = self.w3.eth.get_logs(
            {
                "fromBlock": from_block,
                "toBlock": to_block,
                "address": Web3.to_checksum_address(self.token_address),
                "topics": [
                    EventConstants.DELEGATE_VOTES_CHANGED,
                    _address_topic(delegate),
                ],
            }
        )
        logger.debug(
            f"{len(logs)} DelegateVotesChanged logs for {delegate} "
            f"in {from_block}-{to_block}"
        )

        events = []
        for log in logs:
            previous_balance, new_balance = decode(
                ["uint256", "uint256"], bytes(log["data"])
            )
            delta = new_balance - previous_balance
            tx_hash = Web3.to_hex(log["transactionHash"])
            events.append(
                DelegationEvent(
                    block_number=log["blockNumber"],
                    log_index=log["logIndex"],
                    block_timestamp=self._get_block_timestamp(
                        log["blockNumber"]
                    ),
                    delegator=self._resolve_delegator(
                        tx_hash, log["logIndex"], delegate, delta
                    ),
                    voting_power_delta=delta,
                    transaction_hash=tx_hash,
                )
            )
        return events

    def _resolve_delegator(
        self, tx_hash: str, log_index: int, delegate: str, delta: int
    ) -> str:
        """Find the account whose delegation or transfer moved the votes."""
        receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        preceding = sorted(
            (
                log
                for log in receipt["logs"]
                if log["logIndex"] < log_index
                and normalize_address(log["address"]) == self.token_address
            ),
            key=lambda log: log["logIndex"],
            reverse=True,
        )

        for log in preceding:
            topics = log["topics"]
            topic0 = Web3.to_hex(topics[0]) if topics else None

            if topic0 == EventConstants.DELEGATE_CHANGED and len(topics) == 4:
                from_delegate = _topic_address(topics[2])
                to_delegate = _topic_address(topics[3])
                if delegate in (from_delegate, to_delegate):
                    return _topic_address(topics[1])

            if topic0 == EventConstants.TRANSFER and len(topics) == 3:
                sender = _topic_address(topics[1])
                recipient = _topic_address(topics[2])
                holder = recipient if delta > 0 else sender
                if holder != EventConstants.ZERO_ADDRESS:
                    return holder

        # Fall back to the transaction sender
        return normalize_address(receipt["from"])

    def _get_block_timestamp(self, block_number: int) -> int:
        timestamp = self._block_timestamps.get(block_number)
        if timestamp is None:
            timestamp = int(self.w3.eth.get_block(block_number)["timestamp"])
            self._block_timestamps.set(block_number, timestamp)
        return timestamp
