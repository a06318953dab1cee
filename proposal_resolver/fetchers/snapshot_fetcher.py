"""
Snapshot (off-chain vote) fetcher.

Queries the Snapshot hub GraphQL API, trying each historical proposal id
format until one resolves, and maps the proposal onto a `ProposalRecord`.
"""
from typing import Optional

from pydantic import ValidationError

from proposal_resolver.classifier.url_parser import snapshot_id_candidates
from proposal_resolver.clients.fetch_client import ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.exceptions import NetworkError
from proposal_resolver.schemas.identifiers import SnapshotIdentifier
from proposal_resolver.schemas.payloads import SnapshotProposalPayload
from proposal_resolver.schemas.proposal import DataSource, ProposalRecord, ProposalStage, VoteStats
from proposal_resolver.utils.logger import logger

SNAPSHOT_PROPOSAL_QUERY = """
query Proposal($id: String!) {
  proposal(id: $id) {
    id
    title
    body
    choices
    start
    end
    state
    author
    quorum
    scores
    scores_total
    votes
    space {
      id
      name
    }
  }
}
"""

FOR_CHOICES = ("for", "yes", "yae")
AGAINST_CHOICES = ("against", "no", "nay")
ABSTAIN_CHOICES = ("abstain",)


def detect_stage(title: Optional[str], body: Optional[str]) -> ProposalStage:
    """Temp checks are first-round; ARFCs and anything else are second-round."""
    text = f"{title or ''}\n{body or ''}".lower()
    if "temp check" in text or "tempcheck" in text:
        return ProposalStage.FIRST_ROUND
    return ProposalStage.SECOND_ROUND


def _choice_index(choices, names) -> int:
    for index, choice in enumerate(choices):
        label = (choice or "").strip().lower()
        if any(name in label for name in names):
            return index
    return -1


def _score_at(scores, index: int) -> float:
    return scores[index] if 0 <= index < len(scores) else 0.0


def _display_proposal_id(payload_id: str) -> str:
    # Hub ids may come back as "{space}/{hash}"
    return payload_id.rsplit("/", 1)[-1]


def transform_snapshot_proposal(
    payload: SnapshotProposalPayload,
    space: str,
    url_template: str = "https://snapshot.org/#/{space}/proposal/{proposal_id}",
) -> ProposalRecord:
    """
    Map a Snapshot hub proposal onto a canonical record.

    Status and timing are left raw here; the pipeline normalizes them.
    """
    choices = payload.choices
    scores = payload.scores

    for_index = _choice_index(choices, FOR_CHOICES)
    against_index = _choice_index(choices, AGAINST_CHOICES)
    abstain_index = _choice_index(choices, ABSTAIN_CHOICES)

    for_votes = _score_at(scores, for_index)
    against_votes = _score_at(scores, against_index)
    abstain_votes = _score_at(scores, abstain_index)
    if for_index < 0 and against_index < 0 and len(scores) >= 2:
        for_votes, against_votes = scores[0], scores[1]

    reported_total = payload.scores_total if payload.scores_total and payload.scores_total > 0 else None
    vote_stats = VoteStats.from_counts(
        for_votes,
        against_votes,
        abstain_votes,
        reported_total=reported_total,
        total_voters=payload.votes,
    )
    total = vote_stats.total or 0

    state = (payload.state or "").lower()
    if state in ("active", "open"):
        status = "active"
    elif state == "closed":
        status = "passed" if for_votes > against_votes and total > 0 else "closed"
    elif state == "pending":
        status = "pending"
    else:
        status = payload.state or "unknown"

    proposal_id = _display_proposal_id(payload.id)
    return ProposalRecord(
        id=payload.id,
        title=payload.title or "Untitled Proposal",
        description=payload.body or "",
        status=status,
        stage=detect_stage(payload.title, payload.body),
        vote_stats=vote_stats,
        quorum=payload.quorum if payload.quorum and payload.quorum > 0 else None,
        end_time=payload.end if payload.end and payload.end > 0 else None,
        url=url_template.format(space=space, proposal_id=proposal_id),
        type="snapshot",
        space=space,
        data_source=DataSource.SNAPSHOT,
    )


class SnapshotFetcher:
    """Fetches Snapshot proposals from the mainnet or testnet hub."""

    def __init__(self, client: ResilientFetchClient, settings: PipelineSettings):
        self.client = client
        self.settings = settings

    async def fetch_payload(self, identifier: SnapshotIdentifier) -> Optional[SnapshotProposalPayload]:
        """Try each id format in turn; None when none resolves or on any failure."""
        endpoint = self.settings.snapshot_testnet_endpoint if identifier.is_testnet else self.settings.snapshot_endpoint
        candidates = snapshot_id_candidates(identifier)
        logger.info(
            f"[Snapshot] Fetching {identifier.space}/{identifier.proposal_id} "
            f"(testnet={identifier.is_testnet}, {len(candidates)} id formats)"
        )

        for index, candidate in enumerate(candidates, start=1):
            try:
                response = await self.client.post_json(
                    endpoint, {"query": SNAPSHOT_PROPOSAL_QUERY, "variables": {"id": candidate}}
                )
            except NetworkError as e:
                logger.warning(f"[Snapshot] Request failed for id format {index} ({candidate}): {e}")
                return None

            if response.status_code != 200:
                logger.warning(f"[Snapshot] HTTP {response.status_code} for id format {index} ({candidate})")
                continue

            try:
                result = response.json()
            except ValueError as e:
                logger.warning(f"[Snapshot] Invalid JSON response: {e}")
                return None

            if result.get("errors"):
                logger.warning(f"[Snapshot] GraphQL errors: {result['errors']}")
                return None

            proposal = (result.get("data") or {}).get("proposal")
            if not proposal:
                logger.debug(f"[Snapshot] No proposal for id format {index} ({candidate})")
                continue

            try:
                payload = SnapshotProposalPayload.model_validate(proposal)
            except ValidationError as e:
                logger.warning(f"[Snapshot] Unexpected proposal shape: {e}")
                return None

            logger.info(f"[Snapshot] Proposal fetched with id format {index}: {candidate}")
            return payload

        logger.warning(f"[Snapshot] All id formats failed for {identifier.space}/{identifier.proposal_id}")
        return None

    async def fetch(self, identifier: SnapshotIdentifier) -> Optional[ProposalRecord]:
        """Fetch and transform a Snapshot proposal."""
        payload = await self.fetch_payload(identifier)
        if payload is None:
            return None
        template = (
            self.settings.snapshot_testnet_url_template if identifier.is_testnet else self.settings.snapshot_url_template
        )
        return transform_snapshot_proposal(payload, identifier.space, template)
