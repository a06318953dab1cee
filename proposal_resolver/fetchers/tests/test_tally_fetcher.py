"""Unit tests for the Tally fetcher."""
import asyncio
import json

import httpx

from ..tally_fetcher import TallyFetcher, parse_timestamp, transform_tally_proposal
from proposal_resolver.clients.fetch_client import ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.schemas.identifiers import TallyIdentifier
from proposal_resolver.schemas.payloads import TallyProposalPayload
from proposal_resolver.schemas.proposal import DataSource, ProposalStage

TALLY_API = "https://tally.test/query"


async def _no_sleep(_seconds):
    return None


def tally_node(**overrides):
    node = {
        "id": "2786",
        "onchainId": "42",
        "status": "ACTIVE",
        "quorum": "4000000000000000000",
        "metadata": {"title": "Upgrade governor", "description": "Details"},
        "voteStats": [
            {"type": "for", "votesCount": "5000000000000000000", "votersCount": 3, "percent": 80.0},
            {"type": "against", "votesCount": "1000000000000000000", "votersCount": 1, "percent": 20.0},
            {"type": "abstain", "votesCount": "0", "votersCount": 0, "percent": 0.0},
        ],
        "governor": {"token": {"decimals": 18}},
        "end": {"timestamp": "2024-01-01T00:00:00Z"},
    }
    node.update(overrides)
    return node


def make_fetcher(handler, api_key="test-key"):
    settings = PipelineSettings.from_env(tally_api_url=TALLY_API, tally_api_key=api_key)
    client = ResilientFetchClient(transport=httpx.MockTransport(handler), sleep=_no_sleep)
    return TallyFetcher(client, settings), client


class TestTransformTallyProposal:

    def test_scaled_votes_and_metadata(self):
        identifier = TallyIdentifier(organization="uniswap", proposal_id="42")
        record = transform_tally_proposal(TallyProposalPayload.from_graphql(tally_node()), identifier)

        assert record.vote_stats.votes_for.count == 5
        assert record.vote_stats.votes_against.count == 1
        assert record.vote_stats.votes_for.voters == 3
        assert record.vote_stats.total == 6
        assert record.vote_stats.total_voters == 4
        assert record.quorum == 4
        assert record.status == "active"
        assert record.stage == ProposalStage.FINAL
        assert record.data_source == DataSource.TALLY
        assert record.end_time == 1704067200
        assert record.url == "https://www.tally.xyz/gov/uniswap/proposal/42"

    def test_no_vote_stats_means_unavailable(self):
        identifier = TallyIdentifier(organization="uniswap", proposal_id="42")
        payload = TallyProposalPayload.from_graphql(tally_node(voteStats=None, quorum=None))
        record = transform_tally_proposal(payload, identifier)
        assert record.vote_stats.available is False
        assert record.quorum is None

    def test_token_decimals_respected(self):
        identifier = TallyIdentifier(organization="dao", proposal_id="1")
        node = tally_node(
            governor={"token": {"decimals": 6}},
            voteStats=[{"type": "for", "votesCount": "2500000", "votersCount": 1}],
        )
        record = transform_tally_proposal(TallyProposalPayload.from_graphql(node), identifier)
        assert record.vote_stats.votes_for.count == 2
        assert record.vote_stats.votes_against.count == 0


class TestParseTimestamp:

    def test_iso_and_numeric(self):
        assert parse_timestamp("2024-01-01T00:00:00Z") == 1704067200
        assert parse_timestamp("1704067200") == 1704067200

    def test_invalid(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("not a date") is None


class TestTallyFetcher:

    def test_resolves_governor_then_proposal(self):
        requests = []

        def handler(request):
            body = json.loads(request.content)
            requests.append((request.headers.get("api-key"), body["variables"]["input"]))
            if "governor(" in body["query"]:
                return httpx.Response(200, json={"data": {"governor": {"id": "eip155:1:0xgov"}}})
            return httpx.Response(200, json={"data": {"proposal": tally_node()}})

        fetcher, client = make_fetcher(handler)

        async def run():
            async with client:
                return await fetcher.fetch(TallyIdentifier(organization="uniswap", proposal_id="42"))

        record = asyncio.run(run())
        assert record is not None
        assert requests[0] == ("test-key", {"slug": "uniswap"})
        assert requests[1] == ("test-key", {"onchainId": "42", "governorId": "eip155:1:0xgov"})

    def test_governor_id_from_url_skips_lookup(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {"proposal": tally_node()}})

        fetcher, client = make_fetcher(handler)
        identifier = TallyIdentifier(organization="uniswap", proposal_id="42", governor_id="eip155:1:0xgov")

        async def run():
            async with client:
                return await fetcher.fetch(identifier)

        assert asyncio.run(run()) is not None
        assert len(requests) == 1

    def test_missing_api_key_skips_requests(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={})

        fetcher, client = make_fetcher(handler, api_key=None)

        async def run():
            async with client:
                return await fetcher.fetch(TallyIdentifier(organization="uniswap", proposal_id="42"))

        assert asyncio.run(run()) is None
        assert requests == []

    def test_unknown_proposal_returns_none(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"proposal": None}})

        fetcher, client = make_fetcher(handler)
        identifier = TallyIdentifier(organization="uniswap", proposal_id="42", governor_id="eip155:1:0xgov")

        async def run():
            async with client:
                return await fetcher.fetch(identifier)

        assert asyncio.run(run()) is None
