"""
Proposal resolution pipeline.

Flow for one URL:
    classify -> cache read (skipped on force_refresh) -> platform fetcher(s)
    -> status normalization -> cache write -> time remaining

`ProposalPipeline` is meant to be created once per page/session. It owns the
cache, the handled-error registry, the in-flight task map and the fetch
client; nothing outside the instance mutates them.
"""
import asyncio
import time
from typing import Callable, Dict, Iterable, List, Optional

from proposal_resolver.classifier.url_parser import classify_url, find_proposal_urls
from proposal_resolver.clients.fetch_client import ErrorObserver, HandledErrors, ResilientFetchClient
from proposal_resolver.config.pipeline_settings import PipelineSettings
from proposal_resolver.exceptions import ResolutionFailedError
from proposal_resolver.fetchers.aave_fetcher import AaveFetcher
from proposal_resolver.fetchers.onchain_client import load_web3
from proposal_resolver.fetchers.snapshot_fetcher import SnapshotFetcher
from proposal_resolver.fetchers.tally_fetcher import TallyFetcher
from proposal_resolver.pipeline.cache import ProposalCache
from proposal_resolver.pipeline.selector import select_top
from proposal_resolver.pipeline.status import normalize_status
from proposal_resolver.pipeline.timing import calculate_time_remaining
from proposal_resolver.schemas.identifiers import (
    OFF_CHAIN_VOTE,
    ON_CHAIN_GOV,
    TALLY,
    VOTE_ONAAVE_SOURCE,
    AaveIdentifier,
    ProposalIdentifier,
)
from proposal_resolver.schemas.payloads import MergedProposal
from proposal_resolver.schemas.proposal import DataSource, ProposalRecord, ProposalStage, VoteStats
from proposal_resolver.utils.logger import logger

_MERGED_DATA_SOURCES = {
    "on-chain": DataSource.ON_CHAIN,
    "subgraph": DataSource.SUBGRAPH,
}


def record_from_merged(
    merged: MergedProposal,
    identifier: AaveIdentifier,
    governance_portal: str = "https://app.aave.com/governance",
) -> ProposalRecord:
    """Build the canonical record for a merged on-chain-gov proposal."""
    votes_known = merged.votes_for is not None and merged.votes_against is not None
    vote_stats = VoteStats.from_counts(
        merged.votes_for,
        merged.votes_against,
        0 if votes_known else None,
    )

    if identifier.url_source == VOTE_ONAAVE_SOURCE:
        url = f"https://vote.onaave.com/proposal/?proposalId={merged.proposal_id}"
    else:
        url = f"{governance_portal.rstrip('/')}/v3/proposal/?proposalId={merged.proposal_id}"

    return ProposalRecord(
        id=merged.proposal_id,
        title=merged.title,
        description=merged.description,
        status=merged.status,
        stage=ProposalStage.FINAL,
        vote_stats=vote_stats,
        quorum=merged.quorum,
        end_time=merged.end_time,
        url=url,
        type="aip",
        data_source=_MERGED_DATA_SOURCES.get(merged.data_source, DataSource.UNKNOWN),
    )


def apply_status(record: ProposalRecord) -> ProposalRecord:
    """Return a copy of the record with the normalized status fields set."""
    result = normalize_status(record.status, record.vote_stats, record.quorum)
    return record.model_copy(
        update={
            "canonical_status": result.canonical_status,
            "display_label": result.display_label,
            "status_category": result.category,
        }
    )


class ProposalPipeline:
    """Resolves proposal URLs into canonical, cached records."""

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        cache: Optional[ProposalCache] = None,
        handled: Optional[HandledErrors] = None,
        client: Optional[ResilientFetchClient] = None,
        snapshot_fetcher: Optional[SnapshotFetcher] = None,
        aave_fetcher: Optional[AaveFetcher] = None,
        tally_fetcher: Optional[TallyFetcher] = None,
        now: Callable[[], float] = time.time,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Runtime settings (from the environment if omitted)
            cache: Proposal cache (TTL from settings if omitted)
            handled: Handled-error registry shared with the fetch client
            client: Fetch client (built from settings if omitted)
            snapshot_fetcher, aave_fetcher, tally_fetcher: Platform fetchers
            now: Wall clock in unix seconds, used for time remaining
        """
        self.settings = settings or PipelineSettings.from_env()
        self.handled = handled if handled is not None else HandledErrors()
        self.cache = cache if cache is not None else ProposalCache(ttl_ms=self.settings.cache_ttl_ms)
        self.client = client or ResilientFetchClient(
            handled=self.handled,
            timeout=self.settings.fetch_timeout_seconds,
            max_attempts=self.settings.fetch_max_attempts,
            base_delay_ms=self.settings.fetch_base_delay_ms,
        )
        self.snapshot_fetcher = snapshot_fetcher or SnapshotFetcher(self.client, self.settings)
        self.aave_fetcher = aave_fetcher or AaveFetcher(self.client, self.settings)
        self.tally_fetcher = tally_fetcher or TallyFetcher(self.client, self.settings)
        self._now = now
        self._in_flight: Dict[str, asyncio.Future] = {}

    @staticmethod
    def classify_url(url: str) -> ProposalIdentifier:
        return classify_url(url)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def onchain_available(self) -> bool:
        """True when the on-chain tier is configured and web3 can be loaded."""
        return bool(self.settings.eth_rpc_url and self.settings.governance_address) and load_web3() is not None

    def install_error_observer(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> ErrorObserver:
        """Install the handled-error observer on a loop (the running one by default)."""
        observer = ErrorObserver(self.handled)
        observer.install(loop or asyncio.get_running_loop())
        return observer

    def _with_time_remaining(self, record: ProposalRecord) -> ProposalRecord:
        days_left, hours_left = calculate_time_remaining(record.end_time, now=self._now())
        return record.model_copy(update={"days_left": days_left, "hours_left": hours_left})

    async def _fetch_record(self, identifier: ProposalIdentifier) -> Optional[ProposalRecord]:
        if identifier.platform == OFF_CHAIN_VOTE:
            return await self.snapshot_fetcher.fetch(identifier)
        if identifier.platform == ON_CHAIN_GOV:
            merged = await self.aave_fetcher.fetch(identifier)
            if merged is None:
                return None
            return record_from_merged(merged, identifier, self.settings.aave_governance_portal)
        if identifier.platform == TALLY:
            return await self.tally_fetcher.fetch(identifier)
        return None

    async def _fetch_and_store(self, key: str, identifier: ProposalIdentifier) -> Optional[ProposalRecord]:
        try:
            record = await self._fetch_record(identifier)
        except Exception as e:
            logger.warning(f"[Pipeline] Fetcher error for {key}: {type(e).__name__}: {e}", exc_info=True)
            record = None

        if record is None:
            logger.warning(f"[Pipeline] ResolutionFailed: {ResolutionFailedError(key).message}")
            return None

        record = apply_status(record)
        entry = self.cache.set(key, record)
        logger.info(
            f"[Pipeline] Resolved {key} -> {entry.record.canonical_status} "
            f"({entry.record.data_source.value})"
        )
        return entry.record

    async def resolve_proposal(self, url: str, force_refresh: bool = False) -> Optional[ProposalRecord]:
        """
        Resolve one proposal URL.

        Args:
            url: Proposal URL in any supported format
            force_refresh: Skip the cache read (the result is still cached)

        Returns:
            The record with fresh days/hours left, or None if it could not be
            resolved. Never raises.
        """
        try:
            identifier = classify_url(url)
            if identifier.platform == "unrecognized":
                logger.debug(f"[Pipeline] Unrecognized URL: {url} ({identifier.reason})")
                return None

            key = url.strip()
            if not force_refresh:
                entry = self.cache.get(key)
                if entry is not None:
                    return self._with_time_remaining(entry.record)

            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._fetch_and_store(key, identifier))
                self._in_flight[key] = task
                task.add_done_callback(lambda _done, k=key: self._in_flight.pop(k, None))
            else:
                logger.debug(f"[Pipeline] Joining in-flight resolution for {key}")

            record = await asyncio.shield(task)
            return self._with_time_remaining(record) if record is not None else None
        except Exception as e:
            logger.warning(f"[Pipeline] ResolutionFailed for {url}: {type(e).__name__}: {e}")
            return None

    async def resolve_many(self, urls: Iterable[str], force_refresh: bool = False) -> List[ProposalRecord]:
        """Resolve several URLs concurrently; failures are dropped, order is kept."""
        unique = list(dict.fromkeys(url.strip() for url in urls if isinstance(url, str) and url.strip()))
        if not unique:
            return []

        results = await asyncio.gather(
            *(self.resolve_proposal(url, force_refresh=force_refresh) for url in unique),
            return_exceptions=True,
        )
        return [result for result in results if isinstance(result, ProposalRecord)]

    async def resolve_thread(self, text: str, k: int = 3, force_refresh: bool = False) -> List[ProposalRecord]:
        """Find proposal links in thread text, resolve them and select the top k."""
        urls = find_proposal_urls(text)
        logger.info(f"[Pipeline] Found {len(urls)} proposal URL(s) in thread")
        records = await self.resolve_many(urls, force_refresh=force_refresh)
        return select_top(records, k)

    async def aclose(self) -> None:
        await self.client.aclose()
