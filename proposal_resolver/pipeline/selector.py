"""
Priority selection of proposals to display for a thread.
"""
from typing import Iterable, List, Optional

from proposal_resolver.pipeline.status import status_key
from proposal_resolver.schemas.proposal import ProposalRecord, ProposalStage
from proposal_resolver.utils.logger import logger

MAX_PER_STAGE_MIXED = 2

_PRIORITIES = (
    (1, {"active", "open", "voting"}),
    (2, {"created"}),
    (3, {"pending", "pendingexecution", "queued"}),
    (4, {"executed", "crosschainexecuted", "completed", "passed"}),
    (5, {"closed", "ended", "expired"}),
    (6, {"failed", "defeated", "defeat", "rejected", "quorumnotreached", "cancelled", "canceled"}),
)
DEFAULT_PRIORITY = 7


def get_state_priority(status: Optional[str]) -> int:
    """Lower is shown first: active 1 ... failed/defeated/cancelled 6, other 7."""
    key = status_key(status)
    for priority, statuses in _PRIORITIES:
        if key in statuses:
            return priority
    return DEFAULT_PRIORITY


def _record_priority(record: ProposalRecord) -> int:
    status = record.canonical_status if record.canonical_status and record.canonical_status != "unknown" else record.status
    return get_state_priority(status)


def select_top(candidates: Iterable[ProposalRecord], k: int = 3) -> List[ProposalRecord]:
    """
    Pick up to k proposals by state priority with stage diversity.

    Candidates keep their thread order among equal priorities. When all
    candidates share one stage up to k are taken from it; otherwise each
    stage is capped at 2.
    """
    candidates = list(candidates)
    if k <= 0 or not candidates:
        return []

    ranked = sorted(candidates, key=_record_priority)
    stages = {record.stage for record in ranked}
    cap = k if len(stages) == 1 else MAX_PER_STAGE_MIXED

    counts = {stage: 0 for stage in ProposalStage}
    selected: List[ProposalRecord] = []
    for record in ranked:
        if len(selected) >= k:
            break
        if counts[record.stage] < cap:
            selected.append(record)
            counts[record.stage] += 1

    logger.info(
        f"[Selector] Selected {len(selected)} of {len(candidates)} proposal(s) "
        f"({'single stage' if len(stages) == 1 else f'mixed stages, max {cap} per stage'})"
    )
    return selected
