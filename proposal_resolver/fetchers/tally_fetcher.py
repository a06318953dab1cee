"""
Tally governor proposal fetcher.

Uses the Tally GraphQL API. Proposals are addressed by their on-chain id
plus the governor id; when the URL did not carry `govId` the governor is
looked up by the organization slug first.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from proposal_resolver.clients.fetch_client import ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.exceptions import NetworkError
from proposal_resolver.fetchers.aave_fetcher import scale_fixed_point
from proposal_resolver.schemas.identifiers import TallyIdentifier
from proposal_resolver.schemas.payloads import TallyProposalPayload
from proposal_resolver.schemas.proposal import DataSource, ProposalRecord, ProposalStage, VoteStats
from proposal_resolver.utils.logger import logger

GOVERNOR_QUERY = """
query Governor($input: GovernorInput!) {
  governor(input: $input) {
    id
  }
}
"""

PROPOSAL_QUERY = """
query Proposal($input: ProposalInput!) {
  proposal(input: $input) {
    id
    onchainId
    status
    quorum
    metadata {
      title
      description
    }
    voteStats {
      type
      votesCount
      votersCount
      percent
    }
    governor {
      token {
        decimals
      }
    }
    end {
      ... on Block {
        timestamp
      }
      ... on BlocklessTimestamp {
        timestamp
      }
    }
  }
}
"""


def parse_timestamp(value: Optional[str]) -> Optional[int]:
    """ISO-8601 or numeric timestamp string to unix seconds."""
    if not value:
        return None
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"[Tally] Unparseable timestamp: {value}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def transform_tally_proposal(
    payload: TallyProposalPayload,
    identifier: TallyIdentifier,
    url_template: str = "https://www.tally.xyz/gov/{organization}/proposal/{proposal_id}",
) -> ProposalRecord:
    """Map a Tally proposal onto a canonical record, scaling by token decimals."""
    stats: Dict[str, Any] = {stat.type.lower(): stat for stat in payload.vote_stats}
    decimals = payload.token_decimals

    def count(vote_type: str) -> Optional[int]:
        stat = stats.get(vote_type)
        return scale_fixed_point(stat.votes_count, decimals) if stat else None

    def voters(vote_type: str) -> int:
        stat = stats.get(vote_type)
        return stat.voters_count if stat else 0

    if stats:
        for_count = count("for") or 0
        against_count = count("against") or 0
    else:
        for_count = against_count = None

    vote_stats = VoteStats.from_counts(
        for_count,
        against_count,
        count("abstain") or 0,
        for_voters=voters("for"),
        against_voters=voters("against"),
        abstain_voters=voters("abstain"),
        total_voters=sum(stat.voters_count for stat in payload.vote_stats) if stats else None,
    )

    quorum = scale_fixed_point(payload.quorum, decimals)
    proposal_id = payload.onchain_id or identifier.proposal_id
    return ProposalRecord(
        id=payload.id,
        title=payload.title or f"Proposal {proposal_id}",
        description=payload.description or "",
        status=(payload.status or "unknown").lower(),
        stage=ProposalStage.FINAL,
        vote_stats=vote_stats,
        quorum=quorum if quorum else None,
        end_time=parse_timestamp(payload.end_timestamp),
        url=url_template.format(organization=identifier.organization, proposal_id=proposal_id),
        type="tally",
        space=identifier.organization,
        data_source=DataSource.TALLY,
    )


class TallyFetcher:
    """Fetches governor proposals from the Tally API (requires an API key)."""

    def __init__(self, client: ResilientFetchClient, settings: PipelineSettings):
        self.client = client
        self.settings = settings

    async def _query(self, query: str, variables: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = await self.client.post_json(
                self.settings.tally_api_url,
                {"query": query, "variables": variables},
                headers={"Api-Key": self.settings.tally_api_key},
            )
        except NetworkError as e:
            logger.warning(f"[Tally] Request failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"[Tally] HTTP {response.status_code}: {response.text[:200]}")
            return None

        try:
            result = response.json()
        except ValueError as e:
            logger.warning(f"[Tally] Invalid JSON response: {e}")
            return None

        if result.get("errors"):
            logger.warning(f"[Tally] GraphQL errors: {result['errors']}")
            return None
        return result.get("data") or {}

    async def resolve_governor_id(self, organization: str) -> Optional[str]:
        data = await self._query(GOVERNOR_QUERY, {"input": {"slug": organization}})
        governor = (data or {}).get("governor")
        if not governor:
            logger.info(f"[Tally] No governor found for '{organization}'")
            return None
        return governor.get("id")

    async def fetch_payload(self, identifier: TallyIdentifier) -> Optional[TallyProposalPayload]:
        if not self.settings.tally_api_key:
            logger.warning("[Tally] TALLY_API_KEY not configured, skipping")
            return None

        governor_id = identifier.governor_id or await self.resolve_governor_id(identifier.organization)
        if not governor_id:
            return None

        data = await self._query(
            PROPOSAL_QUERY,
            {"input": {"onchainId": identifier.proposal_id, "governorId": governor_id}},
        )
        node = (data or {}).get("proposal")
        if not node:
            logger.info(f"[Tally] Proposal {identifier.proposal_id} not found for governor {governor_id}")
            return None

        logger.debug(f"[Tally] Raw proposal: {node}")
        try:
            return TallyProposalPayload.from_graphql(node)
        except ValidationError as e:
            logger.warning(f"[Tally] Unexpected proposal shape: {e}")
            return None

    async def fetch(self, identifier: TallyIdentifier) -> Optional[ProposalRecord]:
        """Fetch and transform a Tally proposal."""
        logger.info(f"[Tally] Fetching {identifier.organization} proposal {identifier.proposal_id}")
        payload = await self.fetch_payload(identifier)
        if payload is None:
            return None
        return transform_tally_proposal(payload, identifier, self.settings.tally_url_template)
