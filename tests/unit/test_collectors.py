"""
Unit tests for the Snapshot and governor vote collectors.
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from eth_abi import encode
from hexbytes import HexBytes

from delegate_tracker.shared.constants import EventConstants
from delegate_tracker.shared.exceptions import ProviderException
from delegate_tracker.shared.retry import RetryConfig
from delegate_tracker.votes.collectors import (
    GovernorVoteCollector,
    SnapshotVoteCollector,
)
from delegate_tracker.votes.models import VoteSource

GOVERNOR = "0x" + "99" * 20
NO_RETRY = RetryConfig(max_attempts=1, base_delay=0.0)


def snapshot_vote(index, created, voter, vp=1.5):
    return {
        "id": f"vote-{index}",
        "voter": voter,
        "vp": vp,
        "created": created,
        "choice": 1,
        "reason": "",
        "proposal": {"id": f"0xproposal{index}", "title": f"Proposal {index}"},
    }


def snapshot_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSnapshotVoteCollector:
    @pytest.mark.asyncio
    async def test_paginates_by_created(self, delegate_address):
        voter = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        pages = [
            [snapshot_vote(1, 100, voter), snapshot_vote(2, 200, voter)],
            [snapshot_vote(3, 300, voter, vp="2")],
        ]
        requests = []

        def handler(request):
            body = json.loads(request.content)
            requests.append(body["variables"])
            return httpx.Response(200, json={"data": {"votes": pages[len(requests) - 1]}})

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                space="example.eth",
                client=client,
                page_size=2,
                retry_config=NO_RETRY,
            )
            votes = await collector.collect(delegate_address)

        # The cursor steps back a second to re-read votes sharing the last timestamp
        assert [r["createdGt"] for r in requests] == [0, 199]
        assert requests[0]["voter"] == voter
        assert requests[0]["space"] == "example.eth"
        assert requests[0]["first"] == 2

        assert [v.proposal_id for v in votes] == [
            "0xproposal1",
            "0xproposal2",
            "0xproposal3",
        ]
        assert all(v.source == VoteSource.SNAPSHOT for v in votes)
        assert votes[0].weight == 1_500_000_000_000_000_000
        assert votes[2].weight == 2 * 10**18
        assert votes[0].voter == delegate_address
        assert votes[0].proposal_title == "Proposal 1"
        assert votes[0].reason is None
        assert votes[0].snapshot_timestamp == 100

    @pytest.mark.asyncio
    async def test_keeps_votes_sharing_a_timestamp_across_pages(
        self, delegate_address
    ):
        voter = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        hub_votes = [
            snapshot_vote(1, 100, voter),
            snapshot_vote(2, 200, voter),
            snapshot_vote(3, 200, voter),
            snapshot_vote(4, 300, voter),
        ]
        cursors = []

        def handler(request):
            variables = json.loads(request.content)["variables"]
            cursors.append(variables["createdGt"])
            page = [v for v in hub_votes if v["created"] > variables["createdGt"]]
            return httpx.Response(
                200, json={"data": {"votes": page[: variables["first"]]}}
            )

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                page_size=2,
                retry_config=NO_RETRY,
            )
            votes = await collector.collect(delegate_address)

        assert [v.proposal_id for v in votes] == [
            "0xproposal1",
            "0xproposal2",
            "0xproposal3",
            "0xproposal4",
        ]
        assert cursors == [0, 199, 200]

    @pytest.mark.asyncio
    async def test_stops_on_a_repeated_full_page(self, delegate_address):
        voter = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        page = [snapshot_vote(1, 100, voter), snapshot_vote(2, 200, voter)]
        calls = []

        def handler(request):
            calls.append(request)
            # Ignores the cursor and always answers with the same page
            return httpx.Response(200, json={"data": {"votes": page}})

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                page_size=2,
                retry_config=NO_RETRY,
            )
            votes = await collector.collect(delegate_address)

        assert len(votes) == 2
        assert len(calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "item",
        [
            {"id": "x", "vp": 1, "proposal": {"id": "p"}},
            {"id": "x", "vp": "lots", "created": 1, "voter": GOVERNOR},
            {"id": "x", "vp": 1, "created": 1, "voter": "nobody"},
        ],
    )
    async def test_malformed_vote_raises_provider_exception(
        self, delegate_address, item
    ):
        def handler(request):
            return httpx.Response(200, json={"data": {"votes": [item]}})

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                retry_config=NO_RETRY,
            )
            with pytest.raises(ProviderException) as exc_info:
                await collector.collect(delegate_address)

        assert exc_info.value.source == "snapshot"
        assert "Malformed Snapshot vote" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_space_filter_is_optional(self, delegate_address):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"data": {"votes": []}})

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                retry_config=NO_RETRY,
            )
            assert await collector.collect(delegate_address) == []

        assert "space" not in seen["variables"]
        assert "$space" not in seen["query"]

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self, delegate_address):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "bad query"}]})

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                retry_config=NO_RETRY,
            )
            with pytest.raises(ProviderException) as exc_info:
                await collector.collect(delegate_address)

        assert "bad query" in str(exc_info.value)
        assert exc_info.value.source == "snapshot"

    @pytest.mark.asyncio
    async def test_http_error_raises(self, delegate_address):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="upstream down")

        async with snapshot_client(handler) as client:
            collector = SnapshotVoteCollector(
                url="https://hub.example/graphql",
                client=client,
                retry_config=NO_RETRY,
            )
            with pytest.raises(ProviderException):
                await collector.collect(delegate_address)

        assert len(calls) == 1


def vote_cast_log(proposal_id, support, weight, reason, block_number=5):
    return {
        "blockNumber": block_number,
        "logIndex": 0,
        "transactionHash": HexBytes("0x" + "cd" * 32),
        "data": HexBytes(
            encode(
                ["uint256", "uint8", "uint256", "string"],
                [proposal_id, support, weight, reason],
            )
        ),
    }


class TestGovernorVoteCollector:
    def test_rejects_snapshot_source(self):
        with pytest.raises(ValueError):
            GovernorVoteCollector(MagicMock(), GOVERNOR, VoteSource.SNAPSHOT)

    @pytest.mark.asyncio
    async def test_decodes_vote_cast_logs(self, delegate_address):
        w3 = MagicMock()
        w3.eth.get_logs.return_value = [
            vote_cast_log(42, 1, 10**21, "Supports the roadmap"),
            vote_cast_log(43, 2, 5, "", block_number=5),
        ]
        w3.eth.get_block.return_value = {"timestamp": 1_700_000_000}
        w3.eth.block_number = 1_500

        collector = GovernorVoteCollector(
            w3,
            GOVERNOR,
            VoteSource.ONCHAIN_CORE,
            start_block=1_000,
            retry_config=NO_RETRY,
        )
        votes = await collector.collect(delegate_address)

        params = w3.eth.get_logs.call_args.args[0]
        assert params["fromBlock"] == 1_000
        assert params["toBlock"] == 1_500
        assert params["topics"][0] == EventConstants.VOTE_CAST
        assert params["topics"][1] == "0x" + "0" * 24 + delegate_address[2:]

        assert [v.proposal_id for v in votes] == ["42", "43"]
        assert votes[0].choice == "for"
        assert votes[1].choice == "abstain"
        assert votes[0].weight == 10**21
        assert votes[0].reason == "Supports the roadmap"
        assert votes[1].reason is None
        assert votes[0].source == VoteSource.ONCHAIN_CORE
        assert votes[0].snapshot_timestamp == 1_700_000_000
        assert votes[0].transaction_hash == "0x" + "cd" * 32
        assert votes[0].block_number == 5
        # Both votes share a block
        w3.eth.get_block.assert_called_once_with(5)

    @pytest.mark.asyncio
    async def test_rpc_failure_raises_provider_exception(self, delegate_address):
        w3 = MagicMock()
        w3.eth.block_number = 10
        w3.eth.get_logs.side_effect = ValueError("query returned more than 10000 results")

        collector = GovernorVoteCollector(
            w3, GOVERNOR, VoteSource.ONCHAIN_TREASURY, retry_config=NO_RETRY
        )
        with pytest.raises(ProviderException) as exc_info:
            await collector.collect(delegate_address)

        assert exc_info.value.source == "onchain-treasury"

    @pytest.mark.asyncio
    async def test_reads_the_range_in_chunks(self, delegate_address):
        w3 = MagicMock()
        w3.eth.block_number = 3_500
        w3.eth.get_block.return_value = {"timestamp": 1_700_000_000}

        def get_logs(params):
            if params["fromBlock"] == 2_000:
                return [vote_cast_log(7, 0, 1, "", block_number=2_345)]
            return []

        w3.eth.get_logs.side_effect = get_logs

        collector = GovernorVoteCollector(
            w3,
            GOVERNOR,
            VoteSource.ONCHAIN_CORE,
            start_block=1_000,
            chunk_size=1_000,
            retry_config=NO_RETRY,
        )
        votes = await collector.collect(delegate_address)

        ranges = sorted(
            (call.args[0]["fromBlock"], call.args[0]["toBlock"])
            for call in w3.eth.get_logs.call_args_list
        )
        assert ranges == [(1_000, 1_999), (2_000, 2_999), (3_000, 3_500)]
        assert [(v.proposal_id, v.choice, v.block_number) for v in votes] == [
            ("7", "against", 2_345)
        ]

    @pytest.mark.asyncio
    async def test_start_after_head_reads_nothing(self, delegate_address):
        w3 = MagicMock()
        w3.eth.block_number = 99

        collector = GovernorVoteCollector(
            w3,
            GOVERNOR,
            VoteSource.ONCHAIN_CORE,
            start_block=100,
            retry_config=NO_RETRY,
        )

        assert await collector.collect(delegate_address) == []
        w3.eth.get_logs.assert_not_called()

    def test_rejects_empty_chunks(self):
        with pytest.raises(ValueError):
            GovernorVoteCollector(
                MagicMock(), GOVERNOR, VoteSource.ONCHAIN_CORE, chunk_size=0
            )
