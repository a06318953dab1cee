"""
URL classification for proposal links.

Maps a raw URL string to a typed identifier for one of the supported
governance platforms. Classification is total: anything that cannot be
recognized comes back as `Unrecognized` instead of raising.

Supported shapes:
- snapshot.org/#/{space}/proposal/{id} and snapshot.org/#/{space}/{id}
- testnet.snapshot.box/#/s-tn:{space}/proposal/{id} (and the direct form)
- app.aave.com/governance/v3/proposal/?proposalId=420
- app.aave.com/governance/?proposalId=420, app.aave.com/governance/{id}
- vote.onaave.com/proposal/?proposalId=420
- governance.aave.com/t/{slug}/{id}, governance.aave.com/aip/{id}
- tally.xyz/gov/{org}/proposal/{id}[?govId=eip155:1:0x...]
"""
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlsplit

from proposal_resolver.schemas.identifiers import (
    APP_AAVE_SOURCE,
    VOTE_ONAAVE_SOURCE,
    AaveIdentifier,
    ProposalIdentifier,
    SnapshotIdentifier,
    TallyIdentifier,
    Unrecognized,
)
from proposal_resolver.utils.logger import logger

# Thread scanning patterns (candidate links inside post text)
SNAPSHOT_URL_REGEX = re.compile(r"https?://(?:www\.)?(?:snapshot\.org|testnet\.snapshot\.box)/#/[^\s<>\"')\]]+", re.I)
AIP_URL_REGEX = re.compile(
    r"https?://(?:www\.)?(?:governance\.aave\.com|app\.aave\.com/governance|vote\.onaave\.com)/?[^\s<>\"')\]]*",
    re.I,
)
TALLY_URL_REGEX = re.compile(r"https?://(?:www\.)?tally\.xyz/gov/[^\s<>\"')\]]+", re.I)

_TESTNET_PROPOSAL = re.compile(r"testnet\.snapshot\.box/#/([^/?#]+)/proposal/([a-zA-Z0-9]+)", re.I)
_TESTNET_DIRECT = re.compile(r"testnet\.snapshot\.box/#/([^/?#]+)/([a-zA-Z0-9]+)", re.I)
_SNAPSHOT_PROPOSAL = re.compile(r"snapshot\.org/#/([^/?#]+)/proposal/([a-zA-Z0-9]+)", re.I)
_SNAPSHOT_DIRECT = re.compile(r"snapshot\.org/#/([^/?#]+)/([a-zA-Z0-9]+)", re.I)

_VOTE_ONAAVE = re.compile(r"vote\.onaave\.com/proposal/\?.*proposalId=(\d+)", re.I)
_APP_V3 = re.compile(r"app\.aave\.com/governance/v3/proposal/\?.*proposalId=(\d+)", re.I)
_AAVE_FORUM = re.compile(r"governance\.aave\.com/t/[^/]+/(\d+)", re.I)
_APP_GOVERNANCE = re.compile(r"app\.aave\.com/governance/(?:proposal/)?(\d+)", re.I)
_AAVE_AIP = re.compile(r"governance\.aave\.com/aip/(\d+)", re.I)

_TALLY_PROPOSAL = re.compile(r"tally\.xyz/gov/([^/?#]+)/proposal/(\d+)", re.I)

_AAVE_HOSTS = ("app.aave.com", "vote.onaave.com", "governance.aave.com")


def _snapshot_identifier(url: str) -> Optional[SnapshotIdentifier]:
    if "testnet.snapshot.box" in url.lower():
        match = _TESTNET_PROPOSAL.search(url)
        if match:
            return SnapshotIdentifier(space=match.group(1), proposal_id=match.group(2), is_testnet=True)
        match = _TESTNET_DIRECT.search(url)
        if match and match.group(2).lower() != "proposal":
            return SnapshotIdentifier(space=match.group(1), proposal_id=match.group(2), is_testnet=True)
        return None

    match = _SNAPSHOT_PROPOSAL.search(url)
    if match:
        return SnapshotIdentifier(space=match.group(1), proposal_id=match.group(2))
    match = _SNAPSHOT_DIRECT.search(url)
    if match and match.group(2).lower() != "proposal":
        return SnapshotIdentifier(space=match.group(1), proposal_id=match.group(2))
    return None


def _aave_url_source(url: str) -> str:
    return VOTE_ONAAVE_SOURCE if "vote.onaave.com" in url.lower() else APP_AAVE_SOURCE


def _aave_identifier(url: str) -> Optional[AaveIdentifier]:
    lowered = url.lower()
    if not any(host in lowered for host in _AAVE_HOSTS):
        return None

    # Query parameter is the most reliable form
    try:
        query = parse_qs(urlsplit(url).query)
    except ValueError:
        query = {}
    raw_id = (query.get("proposalId") or [None])[0]
    if raw_id and raw_id.isdigit() and int(raw_id) > 0:
        return AaveIdentifier(proposal_id=str(int(raw_id)), url_source=_aave_url_source(url))

    match = _VOTE_ONAAVE.search(url)
    if match:
        return AaveIdentifier(proposal_id=match.group(1), url_source=VOTE_ONAAVE_SOURCE)
    for pattern in (_APP_V3, _AAVE_FORUM, _APP_GOVERNANCE, _AAVE_AIP):
        match = pattern.search(url)
        if match:
            return AaveIdentifier(proposal_id=match.group(1), url_source=APP_AAVE_SOURCE)
    return None


def _tally_identifier(url: str) -> Optional[TallyIdentifier]:
    match = _TALLY_PROPOSAL.search(url)
    if not match:
        return None
    try:
        query = parse_qs(urlsplit(url).query)
    except ValueError:
        query = {}
    governor_id = (query.get("govId") or [None])[0]
    return TallyIdentifier(organization=match.group(1), proposal_id=match.group(2), governor_id=governor_id)


def classify_url(url: str) -> ProposalIdentifier:
    """
    Classify a proposal URL.

    Args:
        url: Any string; non-strings and empty values are tolerated

    Returns:
        A platform identifier, or `Unrecognized` when no format matches
    """
    if not isinstance(url, str) or not url.strip():
        return Unrecognized(url="" if not isinstance(url, str) else url, reason="empty url")

    url = url.strip()
    try:
        for extract in (_snapshot_identifier, _aave_identifier, _tally_identifier):
            identifier = extract(url)
            if identifier is not None:
                logger.debug(f"[Classifier] {url} -> {identifier.platform}")
                return identifier
    except Exception as e:
        logger.debug(f"[Classifier] Error classifying {url}: {e}")
        return Unrecognized(url=url, reason=f"malformed url: {e}")

    return Unrecognized(url=url)


def snapshot_id_candidates(identifier: SnapshotIdentifier) -> List[str]:
    """
    Proposal id formats to try against the Snapshot hub, most likely first.

    The hub has accepted `{space}/{id}`, a bare `{id}` and prefixed spaces at
    different times. Testnet ids resolve best as the bare hash.
    """
    space = identifier.space
    proposal_id = identifier.proposal_id

    clean_space = space[2:] if space.startswith("s:") and not identifier.is_testnet else space
    if identifier.is_testnet:
        unprefixed = space[5:] if space.startswith("s-tn:") else space
        ordered = [proposal_id, f"{clean_space}/{proposal_id}", f"{space}/{proposal_id}", f"{unprefixed}/{proposal_id}"]
    else:
        ordered = [f"{clean_space}/{proposal_id}", proposal_id, f"{space}/{proposal_id}"]

    return list(dict.fromkeys(ordered))


def find_proposal_urls(text: str) -> List[str]:
    """Extract supported proposal URLs from thread text, in order of appearance."""
    if not text:
        return []

    found = []
    for pattern in (SNAPSHOT_URL_REGEX, AIP_URL_REGEX, TALLY_URL_REGEX):
        for match in pattern.finditer(text):
            candidate = match.group(0).rstrip(".,;:!?")
            if classify_url(candidate).platform != "unrecognized":
                found.append((match.start(), candidate))

    found.sort(key=lambda item: item[0])
    return list(dict.fromkeys(url for _, url in found))
