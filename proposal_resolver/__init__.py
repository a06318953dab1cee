"""
Proposal resolution and selection pipeline for forum governance widgets.

Turns proposal links found in a discussion thread (Snapshot, Aave governance,
Tally) into canonical, freshness-bounded proposal records and picks the ones
worth displaying.
"""
from proposal_resolver.classifier.url_parser import classify_url, find_proposal_urls
from proposal_resolver.pipeline.resolver import ProposalPipeline
from proposal_resolver.pipeline.selector import select_top

__all__ = [
    "ProposalPipeline",
    "classify_url",
    "find_proposal_urls",
    "select_top",
]
