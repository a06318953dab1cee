"""
Pydantic schemas for classified proposal identifiers.
"""
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

OFF_CHAIN_VOTE = "off-chain-vote"
ON_CHAIN_GOV = "on-chain-gov"
TALLY = "tally"
UNRECOGNIZED = "unrecognized"

APP_AAVE_SOURCE = "app.aave.com"
VOTE_ONAAVE_SOURCE = "vote.onaave.com"


class SnapshotIdentifier(BaseModel):
    """Off-chain (Snapshot) proposal reference."""
    platform: Literal["off-chain-vote"] = OFF_CHAIN_VOTE
    space: str
    proposal_id: str
    is_testnet: bool = False


class AaveIdentifier(BaseModel):
    """On-chain governance (Aave V3) proposal reference."""
    platform: Literal["on-chain-gov"] = ON_CHAIN_GOV
    proposal_id: str
    url_source: Literal["app.aave.com", "vote.onaave.com"] = APP_AAVE_SOURCE


class TallyIdentifier(BaseModel):
    """Tally-hosted governor proposal reference."""
    platform: Literal["tally"] = TALLY
    organization: str
    proposal_id: str
    governor_id: Optional[str] = None


class Unrecognized(BaseModel):
    """Returned instead of raising when a URL cannot be classified."""
    platform: Literal["unrecognized"] = UNRECOGNIZED
    url: str = ""
    reason: str = "unsupported url"


ProposalIdentifier = Union[SnapshotIdentifier, AaveIdentifier, TallyIdentifier, Unrecognized]


class ClassifiedUrl(BaseModel):
    """Wrapper used by the API layer to serialize the identifier union."""
    url: str
    identifier: ProposalIdentifier = Field(..., discriminator="platform")
