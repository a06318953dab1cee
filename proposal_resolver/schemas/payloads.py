"""
Schemas for raw platform payloads, validated at the fetcher boundary.

Upstream APIs are loose about shapes (vote data as an object or an array,
nulls for missing lists, numbers as strings). Those variations are absorbed
here so the merge and normalization code only sees typed, optional fields.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==================
# Snapshot
# ==================

class SnapshotSpace(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: Optional[str] = None
    name: Optional[str] = None


class SnapshotProposalPayload(BaseModel):
    """`proposal` object returned by the Snapshot hub GraphQL API."""
    model_config = ConfigDict(extra="ignore")

    id: str
    title: Optional[str] = None
    body: Optional[str] = None
    choices: List[str] = Field(default_factory=list)
    scores: List[float] = Field(default_factory=list)
    scores_total: Optional[float] = None
    start: Optional[int] = None
    end: Optional[int] = None
    state: Optional[str] = None
    author: Optional[str] = None
    quorum: Optional[float] = None
    votes: Optional[int] = None
    space: Optional[SnapshotSpace] = None

    @field_validator("choices", "scores", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return value if value is not None else []

    @field_validator("scores", mode="before")
    @classmethod
    def _coerce_scores(cls, value: Any) -> Any:
        if isinstance(value, list):
            coerced = []
            for score in value:
                try:
                    coerced.append(float(score))
                except (TypeError, ValueError):
                    coerced.append(0.0)
            return coerced
        return value


# ==================
# Aave V3 subgraph (indexed source)
# ==================

class SubgraphTimestamp(BaseModel):
    model_config = ConfigDict(extra="ignore")
    timestamp: Optional[int] = None


class SubgraphTransactions(BaseModel):
    model_config = ConfigDict(extra="ignore")
    created: Optional[SubgraphTimestamp] = None
    active: Optional[SubgraphTimestamp] = None


class SubgraphVotingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    cooldown_before_voting_start: Optional[int] = Field(None, alias="cooldownBeforeVotingStart")
    voting_duration: Optional[int] = Field(None, alias="votingDuration")


class SubgraphVotes(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    for_votes: Optional[str] = Field(None, alias="forVotes")
    against_votes: Optional[str] = Field(None, alias="againstVotes")

    @field_validator("for_votes", "against_votes", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if value is not None else None


class SubgraphProposalPayload(BaseModel):
    """One entry of the subgraph `proposals` list."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    proposal_id: str = Field(..., alias="proposalId")
    state: Optional[int] = None
    creator: Optional[str] = None
    ipfs_hash: Optional[str] = Field(None, alias="ipfsHash")
    voting_duration: Optional[int] = Field(None, alias="votingDuration")
    title: Optional[str] = Field(None, alias="proposalMetadata")
    votes: Optional[SubgraphVotes] = None
    transactions: Optional[SubgraphTransactions] = None
    voting_config: Optional[SubgraphVotingConfig] = Field(None, alias="votingConfig")

    @field_validator("proposal_id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @field_validator("title", mode="before")
    @classmethod
    def _metadata_title(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return value.get("title")
        return value

    @field_validator("votes", mode="before")
    @classmethod
    def _votes_shape(cls, value: Any) -> Any:
        # Older deployments expose votes as a list with one aggregate entry
        if isinstance(value, list):
            return value[0] if value else None
        return value


# ==================
# Normalized tier outputs (consumed by the merger)
# ==================

class IndexedProposal(BaseModel):
    """Indexed (subgraph) tier result after unit conversion."""
    proposal_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    status: str = "unknown"
    state_code: Optional[int] = None
    creator: Optional[str] = None
    ipfs_hash: Optional[str] = None
    votes_for: Optional[int] = None
    votes_against: Optional[int] = None
    quorum: Optional[int] = None
    voting_duration: Optional[int] = None
    voting_activation_timestamp: Optional[int] = None
    end_time: Optional[int] = None


class OnChainProposal(BaseModel):
    """On-chain tier result read from the governance contract."""
    proposal_id: str
    status: str = "unknown"
    state_code: Optional[int] = None
    creator: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    votes_for: Optional[int] = None
    votes_against: Optional[int] = None
    quorum: Optional[int] = None
    executed: bool = False
    canceled: bool = False


class DocumentProposal(BaseModel):
    """Document tier result: markdown body with parsed front-matter."""
    title: Optional[str] = None
    description: Optional[str] = None
    markdown: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)


class MergedProposal(BaseModel):
    """Single on-chain-gov proposal after source precedence is applied."""
    proposal_id: str
    title: str
    description: str = ""
    status: str = "unknown"
    state_code: Optional[int] = None
    votes_for: Optional[int] = None
    votes_against: Optional[int] = None
    quorum: Optional[int] = None
    creator: Optional[str] = None
    ipfs_hash: Optional[str] = None
    voting_duration: Optional[int] = None
    voting_activation_timestamp: Optional[int] = None
    end_time: Optional[int] = None
    markdown: Optional[str] = None
    content_source: str = "on-chain"
    data_source: str = "unknown"


# ==================
# Tally
# ==================

class TallyVoteStat(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    type: str
    votes_count: Optional[str] = Field(None, alias="votesCount")
    voters_count: int = Field(0, alias="votersCount")
    percent: Optional[float] = None

    @field_validator("votes_count", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("voters_count", mode="before")
    @classmethod
    def _none_to_zero(cls, value: Any) -> Any:
        return value if value is not None else 0


class TallyProposalPayload(BaseModel):
    """`proposal` object returned by the Tally GraphQL API."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    onchain_id: Optional[str] = Field(None, alias="onchainId")
    status: Optional[str] = None
    quorum: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    vote_stats: List[TallyVoteStat] = Field(default_factory=list, alias="voteStats")
    end_timestamp: Optional[str] = None
    token_decimals: int = 18

    @classmethod
    def from_graphql(cls, node: Dict[str, Any]) -> "TallyProposalPayload":
        metadata = node.get("metadata") or {}
        end = node.get("end") or {}
        governor = node.get("governor") or {}
        token = governor.get("token") or {}
        return cls(
            id=str(node.get("id")),
            onchainId=node.get("onchainId"),
            status=node.get("status"),
            quorum=None if node.get("quorum") is None else str(node.get("quorum")),
            title=metadata.get("title"),
            description=metadata.get("description"),
            voteStats=node.get("voteStats") or [],
            end_timestamp=None if end.get("timestamp") is None else str(end.get("timestamp")),
            token_decimals=token.get("decimals") if token.get("decimals") is not None else 18,
        )


