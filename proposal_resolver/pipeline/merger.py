"""
Source merging for on-chain-gov proposals.

Precedence:
- title/description: document > indexed > on-chain defaults
- votes, status, state, timing, quorum: on-chain > indexed
"""
from typing import Optional

from proposal_resolver.schemas.payloads import DocumentProposal, IndexedProposal, MergedProposal, OnChainProposal


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def merge_proposal_sources(
    on_chain: Optional[OnChainProposal],
    document: Optional[DocumentProposal],
    indexed: Optional[IndexedProposal],
    proposal_id: Optional[str] = None,
) -> MergedProposal:
    """
    Combine the three tiers into one proposal. Inputs are not modified.

    Args:
        on_chain: Contract read, authoritative for votes and lifecycle
        document: Markdown document, authoritative for content
        indexed: Subgraph data, fallback for both
        proposal_id: Id to use when neither numeric tier is present
    """
    proposal_id = _first(
        on_chain.proposal_id if on_chain else None,
        indexed.proposal_id if indexed else None,
        proposal_id,
    ) or "unknown"

    title = f"Proposal {proposal_id}"
    description = f"Aave Governance Proposal {proposal_id}"
    content_source = "on-chain"
    if indexed is not None:
        title = indexed.title or title
        description = indexed.description or description
        content_source = "subgraph"
    if document is not None:
        title = document.title or title
        description = document.description or description
        content_source = "document"

    def numeric(field: str, indexed_field: Optional[str] = None):
        return _first(
            getattr(on_chain, field) if on_chain else None,
            getattr(indexed, indexed_field or field) if indexed else None,
        )

    status = "unknown"
    if indexed is not None:
        status = indexed.status
    if on_chain is not None and on_chain.status and on_chain.status != "unknown":
        status = on_chain.status

    if on_chain is not None:
        data_source = "on-chain"
    elif indexed is not None:
        data_source = "subgraph"
    else:
        data_source = "unknown"

    return MergedProposal(
        proposal_id=str(proposal_id),
        title=title,
        description=description,
        status=status,
        state_code=numeric("state_code"),
        votes_for=numeric("votes_for"),
        votes_against=numeric("votes_against"),
        quorum=numeric("quorum"),
        creator=numeric("creator"),
        ipfs_hash=indexed.ipfs_hash if indexed else None,
        voting_duration=indexed.voting_duration if indexed else None,
        voting_activation_timestamp=numeric("start_time", "voting_activation_timestamp"),
        end_time=numeric("end_time"),
        markdown=document.markdown if document else None,
        content_source=content_source,
        data_source=data_source,
    )
