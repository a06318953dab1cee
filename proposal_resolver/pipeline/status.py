"""
Status normalization.

Upstream platforms report coarse states ("queued", "defeated") that do not
say why a proposal ended up there. `normalize_status` re-derives the more
informative status from vote totals and quorum, then maps it to a display
label and a presentation category.
"""
from typing import NamedTuple, Optional

from proposal_resolver.schemas.proposal import Number, VoteStats

STATUS_LABELS = {
    "defeated": "Defeated",
    "defeat": "Defeated",
    "rejected": "Rejected",
    "failed": "Failed",
    "cancelled": "Cancelled",
    "canceled": "Cancelled",
    "expired": "Expired",
    "executed": "Executed",
    "crosschainexecuted": "Executed",
    "completed": "Completed",
    "passed": "Passed",
    "active": "Active",
    "open": "Active",
    "voting": "Active",
    "created": "Created",
    "pending": "Pending",
    "queued": "Queued",
    "closed": "Closed",
    "ended": "Ended",
    "quorumnotreached": "Quorum Not Reached",
    "pendingexecution": "Pending Execution",
    "null": "Unknown",
    "unknown": "Unknown",
}

QUEUED_FAMILY = frozenset({"queued", "queuing"})
DEFEAT_FAMILY = frozenset({"defeated", "defeat", "rejected", "failed"})

STATUS_CATEGORIES = {
    "active": "active",
    "executed": "executed",
    "completed": "executed",
    "passed": "executed",
    "defeated": "defeated",
    "rejected": "defeated",
    "failed": "defeated",
    "quorum-not-reached": "defeated",
    "cancelled": "cancelled",
    "expired": "expired",
    "queued": "queued",
    "pending-execution": "queued",
    "pending": "pending",
    "created": "pending",
}


class StatusResult(NamedTuple):
    canonical_status: str
    display_label: str
    category: str


def status_key(raw_status: Optional[str]) -> str:
    """Lowercase and drop spaces, underscores and hyphens."""
    if not raw_status:
        return ""
    key = str(raw_status).strip().lower()
    for char in (" ", "_", "-"):
        key = key.replace(char, "")
    return key


def format_status_for_display(raw_status: Optional[str]) -> str:
    """Display label for a raw status; unmapped values are capitalized."""
    if raw_status is None or not str(raw_status).strip():
        return "Unknown"
    label = STATUS_LABELS.get(status_key(raw_status))
    if label:
        return label
    text = str(raw_status).strip()
    return text[0].upper() + text[1:]


def status_category(canonical_status: str) -> str:
    return STATUS_CATEGORIES.get(canonical_status, "inactive")


def _result(label: str) -> StatusResult:
    canonical = label.lower().replace(" ", "-")
    return StatusResult(canonical, label, status_category(canonical))


def normalize_status(
    raw_status: Optional[str],
    vote_stats: Optional[VoteStats] = None,
    quorum: Optional[Number] = None,
) -> StatusResult:
    """
    Derive the canonical status for a proposal.

    Rules, first match wins:
    1. pending execution (direct, or queued with quorum reached and for > against)
    2. quorum not reached (direct, or defeat-family below a defined quorum)
    3. defeated (defeat-family with quorum reached)
    4. lookup table / capitalized raw value

    A quorum of 0 or None, or unavailable vote counts, disables the
    quorum-based rules.
    """
    key = status_key(raw_status)

    total = vote_stats.counted_total if vote_stats is not None else None
    quorum_known = bool(quorum) and quorum > 0 and total is not None
    quorum_reached = quorum_known and total >= quorum
    for_wins = (
        vote_stats is not None
        and vote_stats.available
        and vote_stats.votes_for.count > vote_stats.votes_against.count
    )

    if key == "pendingexecution" or (key in QUEUED_FAMILY and quorum_reached and for_wins):
        return StatusResult("pending-execution", "Pending Execution", "queued")

    if key == "quorumnotreached" or (key in DEFEAT_FAMILY and quorum_known and not quorum_reached):
        return StatusResult("quorum-not-reached", "Quorum Not Reached", "defeated")

    if key in DEFEAT_FAMILY and quorum_reached:
        return StatusResult("defeated", "Defeated", "defeated")

    return _result(format_status_for_display(raw_status))
