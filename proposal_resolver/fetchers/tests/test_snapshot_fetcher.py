"""Unit tests for the Snapshot fetcher and proposal transform."""
import asyncio
import json

import httpx
import pytest

from ..snapshot_fetcher import SnapshotFetcher, detect_stage, transform_snapshot_proposal
from proposal_resolver.clients.fetch_client import ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.schemas.identifiers import SnapshotIdentifier
from proposal_resolver.schemas.payloads import SnapshotProposalPayload
from proposal_resolver.schemas.proposal import DataSource, ProposalStage

HUB = "https://hub.test/graphql"
TESTNET_HUB = "https://testnet.hub.test/graphql"


async def _no_sleep(_seconds):
    return None


def make_fetcher(handler):
    settings = PipelineSettings.from_env(snapshot_endpoint=HUB, snapshot_testnet_endpoint=TESTNET_HUB)
    client = ResilientFetchClient(transport=httpx.MockTransport(handler), sleep=_no_sleep)
    return SnapshotFetcher(client, settings), client


def proposal_payload(**overrides):
    data = {
        "id": "0xabc",
        "title": "[ARFC] Add weETH",
        "body": "Proposal body",
        "choices": ["For", "Against", "Abstain"],
        "scores": [100, 50, 10],
        "scores_total": 160,
        "start": 1700000000,
        "end": 1700500000,
        "state": "closed",
        "votes": 42,
        "quorum": 0,
        "space": {"id": "aave.eth", "name": "Aave"},
    }
    data.update(overrides)
    return data


class TestTransformSnapshotProposal:

    def test_for_against_abstain(self):
        payload = SnapshotProposalPayload.model_validate(proposal_payload())
        record = transform_snapshot_proposal(payload, "aave.eth")

        stats = record.vote_stats
        assert stats.votes_for.count == 100
        assert stats.votes_against.count == 50
        assert stats.votes_abstain.count == 10
        assert stats.votes_for.percent == pytest.approx(62.5)
        assert stats.total == 160
        assert stats.total_voters == 42
        assert record.status == "passed"
        assert record.stage == ProposalStage.SECOND_ROUND
        assert record.data_source == DataSource.SNAPSHOT
        assert record.url == "https://snapshot.org/#/aave.eth/proposal/0xabc"
        assert record.quorum is None
        assert record.end_time == 1700500000

    def test_reported_total_kept_but_counted_total_drives_percent(self):
        payload = SnapshotProposalPayload.model_validate(proposal_payload(scores_total=200))
        record = transform_snapshot_proposal(payload, "aave.eth")

        assert record.vote_stats.total == 200
        assert record.vote_stats.reported_total == 200
        assert record.vote_stats.counted_total == 160
        assert record.vote_stats.votes_for.percent == pytest.approx(62.5)

    def test_aave_yae_nay_choices(self):
        payload = SnapshotProposalPayload.model_validate(
            proposal_payload(choices=["YAE", "NAY"], scores=[7, 3], scores_total=10)
        )
        record = transform_snapshot_proposal(payload, "aave.eth")
        assert record.vote_stats.votes_for.count == 7
        assert record.vote_stats.votes_against.count == 3

    @pytest.mark.parametrize("choices", [
        ["Vote YAE", "Vote NAY", "Abstain"],
        ["Reject (Against)", "Approve (For)", "Abstain"],
    ])
    def test_choice_names_matched_anywhere_in_label(self, choices):
        scores = [6, 3, 1] if choices[0].startswith("Vote") else [3, 6, 1]
        payload = SnapshotProposalPayload.model_validate(
            proposal_payload(choices=choices, scores=scores, scores_total=10)
        )
        record = transform_snapshot_proposal(payload, "aave.eth")
        assert record.vote_stats.votes_for.count == 6
        assert record.vote_stats.votes_against.count == 3
        assert record.vote_stats.votes_abstain.count == 1

    def test_unmatched_choices_use_first_two_scores(self):
        payload = SnapshotProposalPayload.model_validate(
            proposal_payload(choices=["Option A", "Option B", "Option C"], scores=[5, 4, 1], scores_total=10)
        )
        record = transform_snapshot_proposal(payload, "aave.eth")
        assert record.vote_stats.votes_for.count == 5
        assert record.vote_stats.votes_against.count == 4
        assert record.vote_stats.votes_abstain.count == 0

    def test_closed_with_against_majority_stays_closed(self):
        payload = SnapshotProposalPayload.model_validate(proposal_payload(scores=[10, 50, 0], scores_total=60))
        record = transform_snapshot_proposal(payload, "aave.eth")
        assert record.status == "closed"

    @pytest.mark.parametrize("state,expected", [
        ("active", "active"),
        ("open", "active"),
        ("pending", "pending"),
        ("weird", "weird"),
    ])
    def test_state_mapping(self, state, expected):
        payload = SnapshotProposalPayload.model_validate(proposal_payload(state=state))
        assert transform_snapshot_proposal(payload, "aave.eth").status == expected

    def test_positive_quorum_kept(self):
        payload = SnapshotProposalPayload.model_validate(proposal_payload(quorum=320000))
        assert transform_snapshot_proposal(payload, "aave.eth").quorum == 320000

    def test_space_prefixed_id_uses_hash_in_url(self):
        payload = SnapshotProposalPayload.model_validate(proposal_payload(id="aave.eth/0xfff"))
        record = transform_snapshot_proposal(payload, "aave.eth")
        assert record.url == "https://snapshot.org/#/aave.eth/proposal/0xfff"


class TestDetectStage:

    def test_temp_check_title(self):
        assert detect_stage("[Temp Check] Onboard X", "") == ProposalStage.FIRST_ROUND

    def test_tempcheck_in_body(self):
        assert detect_stage("Onboard X", "This TempCheck asks...") == ProposalStage.FIRST_ROUND

    def test_arfc(self):
        assert detect_stage("[ARFC] Onboard X", None) == ProposalStage.SECOND_ROUND

    def test_default(self):
        assert detect_stage(None, None) == ProposalStage.SECOND_ROUND


class TestSnapshotFetcher:

    def test_falls_back_through_id_formats(self):
        requested_ids = []

        def handler(request):
            body = json.loads(request.content)
            requested_ids.append(body["variables"]["id"])
            if body["variables"]["id"] == "0xabc":
                return httpx.Response(200, json={"data": {"proposal": proposal_payload()}})
            return httpx.Response(200, json={"data": {"proposal": None}})

        fetcher, client = make_fetcher(handler)
        identifier = SnapshotIdentifier(space="aave.eth", proposal_id="0xabc")

        async def run():
            async with client:
                return await fetcher.fetch(identifier)

        record = asyncio.run(run())
        assert requested_ids == ["aave.eth/0xabc", "0xabc"]
        assert record is not None
        assert record.title == "[ARFC] Add weETH"

    def test_testnet_uses_testnet_endpoint(self):
        hosts = []

        def handler(request):
            hosts.append(str(request.url))
            return httpx.Response(200, json={"data": {"proposal": proposal_payload()}})

        fetcher, client = make_fetcher(handler)
        identifier = SnapshotIdentifier(space="s-tn:aave.eth", proposal_id="0xabc", is_testnet=True)

        async def run():
            async with client:
                return await fetcher.fetch(identifier)

        record = asyncio.run(run())
        assert hosts == [TESTNET_HUB]
        assert record.url.startswith("https://testnet.snapshot.box/#/s-tn:aave.eth/")

    def test_graphql_errors_return_none(self):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "bad id"}]})

        fetcher, client = make_fetcher(handler)

        async def run():
            async with client:
                return await fetcher.fetch(SnapshotIdentifier(space="aave.eth", proposal_id="0xabc"))

        assert asyncio.run(run()) is None

    def test_all_formats_missing_returns_none(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"proposal": None}})

        fetcher, client = make_fetcher(handler)

        async def run():
            async with client:
                return await fetcher.fetch(SnapshotIdentifier(space="aave.eth", proposal_id="0xabc"))

        assert asyncio.run(run()) is None

    def test_network_failure_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        fetcher, client = make_fetcher(handler)

        async def run():
            async with client:
                return await fetcher.fetch(SnapshotIdentifier(space="aave.eth", proposal_id="0xabc"))

        assert asyncio.run(run()) is None
        assert len(client.handled) >= 2
