"""
Pydantic schemas for canonical proposal records and cache entries.
"""
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

Number = Union[int, float]


class ProposalStage(str, Enum):
    """Lifecycle round a proposal belongs to; also the selector's type bucket."""
    FIRST_ROUND = "first-round"    # temp check
    SECOND_ROUND = "second-round"  # ARFC / generic off-chain vote
    FINAL = "final"                # on-chain execution vote


class DataSource(str, Enum):
    ON_CHAIN = "on-chain"
    SUBGRAPH = "subgraph"
    SNAPSHOT = "snapshot"
    TALLY = "tally"
    UNKNOWN = "unknown"


class VoteTally(BaseModel):
    """One side of a vote. `count` is None when the source had no vote data."""
    count: Optional[Number] = Field(None, ge=0)
    voters: int = Field(0, ge=0)
    percent: float = Field(0.0, ge=0)


class VoteStats(BaseModel):
    """For/against/abstain tallies plus totals."""
    votes_for: VoteTally = Field(default_factory=VoteTally)
    votes_against: VoteTally = Field(default_factory=VoteTally)
    votes_abstain: VoteTally = Field(default_factory=VoteTally)
    total: Optional[Number] = Field(None, ge=0)
    reported_total: Optional[Number] = Field(None, ge=0)
    total_voters: Optional[int] = Field(None, ge=0)

    @property
    def available(self) -> bool:
        return self.votes_for.count is not None and self.votes_against.count is not None

    @property
    def counted_total(self) -> Optional[Number]:
        """Sum of counted choices; None when votes are unavailable."""
        if not self.available:
            return None
        return self.votes_for.count + self.votes_against.count + (self.votes_abstain.count or 0)

    @classmethod
    def from_counts(
        cls,
        for_count: Optional[Number],
        against_count: Optional[Number],
        abstain_count: Optional[Number] = 0,
        reported_total: Optional[Number] = None,
        for_voters: int = 0,
        against_voters: int = 0,
        abstain_voters: int = 0,
        total_voters: Optional[int] = None,
    ) -> "VoteStats":
        """Build stats from raw counts; percentages always use the counted sum."""
        if for_count is None or against_count is None:
            return cls(
                votes_for=VoteTally(count=for_count, voters=for_voters),
                votes_against=VoteTally(count=against_count, voters=against_voters),
                votes_abstain=VoteTally(count=abstain_count, voters=abstain_voters),
                total=reported_total,
                reported_total=reported_total,
                total_voters=total_voters,
            )

        abstain_count = abstain_count or 0
        counted = for_count + against_count + abstain_count

        def percent(value: Number) -> float:
            return (value / counted) * 100 if counted > 0 else 0.0

        return cls(
            votes_for=VoteTally(count=for_count, voters=for_voters, percent=percent(for_count)),
            votes_against=VoteTally(count=against_count, voters=against_voters, percent=percent(against_count)),
            votes_abstain=VoteTally(count=abstain_count, voters=abstain_voters, percent=percent(abstain_count)),
            total=reported_total if reported_total else counted,
            reported_total=reported_total,
            total_voters=total_voters,
        )


class ProposalRecord(BaseModel):
    """Canonical, platform-agnostic proposal handed to the renderer."""
    id: str
    title: str
    description: str = ""
    status: str = "unknown"
    canonical_status: str = "unknown"
    display_label: str = "Unknown"
    status_category: str = "inactive"
    stage: ProposalStage = ProposalStage.SECOND_ROUND
    vote_stats: VoteStats = Field(default_factory=VoteStats)
    quorum: Optional[Number] = Field(None, ge=0)
    end_time: Optional[int] = Field(None, description="Voting end, unix seconds")
    days_left: Optional[int] = None
    hours_left: Optional[int] = None
    url: str
    type: str
    space: Optional[str] = None
    cached_at: Optional[int] = Field(None, description="Epoch ms when cached")
    data_source: DataSource = DataSource.UNKNOWN


class CacheEntry(BaseModel):
    """A cached record and the epoch-ms time it was stored."""
    record: ProposalRecord
    cached_at: int
