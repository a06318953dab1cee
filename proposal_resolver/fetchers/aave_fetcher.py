"""
Aave Governance V3 (on-chain-gov) fetcher.

Three tiers feed one proposal:
- indexed: the governance subgraph, tried first since it needs no chain client
- on-chain: the governance contract, when the subgraph fails or has no votes
- document: markdown with front-matter, consulted last for title/description

The tiers are combined by `merge_proposal_sources`.
"""
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from proposal_resolver.clients.fetch_client import ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.exceptions import NetworkError
from proposal_resolver.fetchers.onchain_client import get_onchain_client, read_proposal
from proposal_resolver.pipeline.merger import merge_proposal_sources
from proposal_resolver.schemas.identifiers import APP_AAVE_SOURCE, VOTE_ONAAVE_SOURCE, AaveIdentifier
from proposal_resolver.schemas.payloads import (
    DocumentProposal,
    IndexedProposal,
    MergedProposal,
    OnChainProposal,
    SubgraphProposalPayload,
)
from proposal_resolver.utils.logger import logger

# The two front-ends disagree on what each integer state code means
APP_AAVE_STATES = {
    0: "null",
    1: "created",
    2: "active",
    3: "queued",
    4: "executed",
    5: "failed",
    6: "cancelled",
    7: "expired",
}

VOTE_ONAAVE_STATES = {
    0: "created",
    1: "voting",
    2: "passed",
    3: "failed",
    4: "executed",
    5: "expired",
    6: "cancelled",
    7: "active",
}

SUBGRAPH_PROPOSAL_QUERY = """
query Proposal($proposalId: String!) {
  proposals(where: { proposalId: $proposalId }) {
    proposalId
    state
    creator
    ipfsHash
    votingDuration
    proposalMetadata {
      title
    }
    votes {
      forVotes
      againstVotes
    }
    transactions {
      created {
        timestamp
      }
      active {
        timestamp
      }
    }
    votingConfig {
      cooldownBeforeVotingStart
      votingDuration
    }
  }
}
"""

DESCRIPTION_PREVIEW_CHARS = 200


def get_state_mapping(url_source: str) -> Dict[int, str]:
    """State enum for a front-end; anything but vote.onaave.com uses app.aave.com."""
    if url_source == VOTE_ONAAVE_SOURCE:
        return VOTE_ONAAVE_STATES
    return APP_AAVE_STATES


def state_to_status(state: Optional[int], url_source: str = APP_AAVE_SOURCE) -> str:
    if state is None:
        return "unknown"
    return get_state_mapping(url_source).get(int(state), "unknown")


def scale_fixed_point(raw: Any, decimals: int = 18) -> Optional[int]:
    """
    Convert a fixed-point integer (string or int) to whole units.

    Uses truncating integer division so large values keep full precision.
    Returns None when there is no value to convert.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.debug(f"[AaveFetcher] Non-integer vote value: {raw!r}")
        return None
    return value // (10 ** decimals)


def parse_front_matter(text: Optional[str]) -> Tuple[Dict[str, str], str]:
    """
    Split `---\\nkey: value\\n---\\nbody` into (metadata, body).

    Missing or unterminated front-matter yields empty metadata and the
    whole text as body.
    """
    if not text or not text.startswith("---"):
        return {}, text or ""

    end_index = text.find("\n---", 4)
    if end_index == -1:
        return {}, text

    metadata: Dict[str, str] = {}
    for line in text[4:end_index].split("\n"):
        if ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip()
        if not key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        metadata[key] = value

    body = text[end_index + 4:].strip()
    return metadata, body


def transform_subgraph_proposal(payload: SubgraphProposalPayload, decimals: int = 18) -> IndexedProposal:
    """Apply unit conversion and timing derivation to a subgraph proposal."""
    if payload.votes is not None:
        votes_for = scale_fixed_point(payload.votes.for_votes, decimals)
        votes_against = scale_fixed_point(payload.votes.against_votes, decimals)
        votes_for = votes_for if votes_for is not None else 0
        votes_against = votes_against if votes_against is not None else 0
    else:
        # Voting never started or votes are not indexed yet
        votes_for = votes_against = None

    config = payload.voting_config
    transactions = payload.transactions
    activation = None
    if transactions and transactions.active and transactions.active.timestamp:
        activation = transactions.active.timestamp
    elif (
        transactions
        and transactions.created
        and transactions.created.timestamp
        and config
        and config.cooldown_before_voting_start
    ):
        activation = transactions.created.timestamp + config.cooldown_before_voting_start

    duration = payload.voting_duration or (config.voting_duration if config else None)
    end_time = activation + duration if activation and duration else None

    return IndexedProposal(
        proposal_id=payload.proposal_id,
        title=payload.title,
        status=state_to_status(payload.state, APP_AAVE_SOURCE),
        state_code=payload.state,
        creator=payload.creator,
        ipfs_hash=payload.ipfs_hash,
        votes_for=votes_for,
        votes_against=votes_against,
        voting_duration=duration,
        voting_activation_timestamp=activation,
        end_time=end_time,
    )


def transform_onchain_proposal(data: Dict[str, Any], url_source: str, decimals: int = 18) -> OnChainProposal:
    """Map a decoded getProposal result onto the on-chain tier model."""
    return OnChainProposal(
        proposal_id=str(data["id"]),
        status=state_to_status(data.get("state"), url_source),
        state_code=data.get("state"),
        creator=data.get("creator"),
        start_time=data.get("start_time"),
        end_time=data.get("end_time"),
        votes_for=scale_fixed_point(data.get("for_votes"), decimals),
        votes_against=scale_fixed_point(data.get("against_votes"), decimals),
        executed=data.get("executed", False),
        canceled=data.get("canceled", False),
    )


class AaveFetcher:
    """Resolves Aave V3 proposals across the indexed, on-chain and document tiers."""

    def __init__(self, client: ResilientFetchClient, settings: PipelineSettings, onchain_client_factory=get_onchain_client):
        self.client = client
        self.settings = settings
        self._onchain_client_factory = onchain_client_factory

    async def fetch_indexed(self, identifier: AaveIdentifier) -> Optional[IndexedProposal]:
        """Query the governance subgraph. None when unconfigured, missing or failed."""
        if not self.settings.aave_subgraph_url:
            logger.debug("[AaveSubgraph] Subgraph URL not configured, skipping")
            return None

        try:
            response = await self.client.post_json(
                self.settings.aave_subgraph_url,
                {"query": SUBGRAPH_PROPOSAL_QUERY, "variables": {"proposalId": identifier.proposal_id}},
            )
        except NetworkError as e:
            logger.warning(f"[AaveSubgraph] Request failed for proposal {identifier.proposal_id}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"[AaveSubgraph] HTTP {response.status_code} for proposal {identifier.proposal_id}")
            return None

        try:
            result = response.json()
        except ValueError as e:
            logger.warning(f"[AaveSubgraph] Invalid JSON response: {e}")
            return None

        if result.get("errors"):
            logger.warning(f"[AaveSubgraph] GraphQL errors: {result['errors']}")
            return None

        proposals = (result.get("data") or {}).get("proposals") or []
        if not proposals:
            logger.info(f"[AaveSubgraph] No proposal found with id {identifier.proposal_id}")
            return None

        logger.debug(f"[AaveSubgraph] Raw proposal: {proposals[0]}")
        try:
            payload = SubgraphProposalPayload.model_validate(proposals[0])
        except ValidationError as e:
            logger.warning(f"[AaveSubgraph] Unexpected proposal shape: {e}")
            return None

        indexed = transform_subgraph_proposal(payload, self.settings.vote_decimals)
        if indexed.votes_for is None:
            logger.info(f"[AaveSubgraph] No vote data indexed for proposal {identifier.proposal_id}")
        return indexed

    async def fetch_onchain(self, identifier: AaveIdentifier) -> Optional[OnChainProposal]:
        """Read the proposal from the governance contract. Fails soft to None."""
        try:
            proposal_id = int(identifier.proposal_id)
        except ValueError:
            logger.debug(f"[OnChain] Invalid proposal id: {identifier.proposal_id}")
            return None
        if proposal_id <= 0:
            return None

        client = self._onchain_client_factory(
            self.settings.eth_rpc_url,
            self.settings.governance_address,
            self.settings.governance_abi,
        )
        if client is None:
            logger.info("[OnChain] On-chain client unavailable, skipping")
            return None

        try:
            data = await read_proposal(client, proposal_id, timeout=self.settings.fetch_timeout_seconds)
        except Exception as e:
            logger.warning(f"[OnChain] Error reading proposal {proposal_id}: {type(e).__name__}: {e}")
            return None

        if data is None:
            return None
        return transform_onchain_proposal(data, identifier.url_source, self.settings.vote_decimals)

    async def fetch_document(self, identifier: AaveIdentifier) -> Optional[DocumentProposal]:
        """Fetch the proposal markdown document, if a document store is configured."""
        if not self.settings.aave_document_url:
            logger.debug("[AaveDocument] Document URL not configured, skipping")
            return None

        try:
            response = await self.client.fetch_with_retry(
                self.settings.aave_document_url,
                params={"proposalId": identifier.proposal_id},
                headers={"Accept": "text/plain, text/markdown"},
            )
        except NetworkError as e:
            logger.warning(f"[AaveDocument] Request failed for proposal {identifier.proposal_id}: {e}")
            return None

        if response.status_code != 200:
            logger.debug(f"[AaveDocument] HTTP {response.status_code} for proposal {identifier.proposal_id}")
            return None

        metadata, body = parse_front_matter(response.text)
        return DocumentProposal(
            title=metadata.get("title") or metadata.get("name") or None,
            description=metadata.get("description") or body[:DESCRIPTION_PREVIEW_CHARS] or None,
            markdown=body,
            metadata=metadata,
        )

    async def fetch(self, identifier: AaveIdentifier) -> Optional[MergedProposal]:
        """
        Resolve one proposal through all tiers.

        Returns None only when neither the indexed nor the on-chain tier
        produced lifecycle data.
        """
        logger.info(f"[AaveFetcher] Fetching proposal {identifier.proposal_id} (source: {identifier.url_source})")

        indexed = await self.fetch_indexed(identifier)
        on_chain = None
        if indexed is None or indexed.votes_for is None:
            on_chain = await self.fetch_onchain(identifier)

        if indexed is None and on_chain is None:
            logger.warning(f"[AaveFetcher] Subgraph and on-chain both unavailable for proposal {identifier.proposal_id}")
            return None

        document = await self.fetch_document(identifier)
        merged = merge_proposal_sources(on_chain, document, indexed, proposal_id=identifier.proposal_id)
        logger.info(
            f"[AaveFetcher] Proposal {identifier.proposal_id} resolved "
            f"(data: {merged.data_source}, content: {merged.content_source})"
        )
        return merged
