"""
FastAPI router exposing the proposal pipeline.

Endpoints:
- GET  /proposals/classify  - classify a URL
- GET  /proposals/resolve   - resolve one URL to a record (400 unsupported, 404 unresolved)
- POST /proposals/select    - pick the top k of given records
- POST /proposals/thread    - scan thread text, resolve and select
"""
import threading
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from proposal_resolver.classifier.url_parser import classify_url
from proposal_resolver.exceptions import ResolutionFailedError, UnrecognizedUrlError
from proposal_resolver.pipeline.resolver import ProposalPipeline
from proposal_resolver.pipeline.selector import select_top
from proposal_resolver.schemas.identifiers import UNRECOGNIZED, ClassifiedUrl
from proposal_resolver.schemas.proposal import ProposalRecord
from proposal_resolver.utils.logger import logger

router = APIRouter(prefix="/proposals", tags=["proposals"])

# Process-wide pipeline, created on first use
_pipeline: Optional[ProposalPipeline] = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> ProposalPipeline:
    """Get or create the pipeline instance."""
    global _pipeline
    if _pipeline is None:
        with _pipeline_lock:
            if _pipeline is None:
                logger.info("Initializing ProposalPipeline (lazy initialization)")
                try:
                    _pipeline = ProposalPipeline()
                except Exception as e:
                    logger.error(f"Failed to initialize ProposalPipeline: {e}")
                    raise HTTPException(status_code=500, detail=f"Pipeline initialization failed: {e}")
    return _pipeline


async def shutdown_pipeline() -> None:
    """Close the pipeline's HTTP client, if one was created."""
    global _pipeline
    if _pipeline is not None:
        await _pipeline.aclose()
        _pipeline = None


class SelectRequest(BaseModel):
    candidates: List[ProposalRecord]
    k: int = Field(3, ge=1, le=10)


class ThreadRequest(BaseModel):
    text: str
    k: int = Field(3, ge=1, le=10)
    force_refresh: bool = False


@router.get("/classify", response_model=ClassifiedUrl)
def classify(url: str = Query(..., description="Proposal URL")) -> ClassifiedUrl:
    return ClassifiedUrl(url=url, identifier=classify_url(url))


@router.get("/resolve", response_model=ProposalRecord)
async def resolve(
    url: str = Query(..., description="Proposal URL"),
    force_refresh: bool = Query(False),
    pipeline: ProposalPipeline = Depends(get_pipeline),
) -> ProposalRecord:
    identifier = classify_url(url)
    if identifier.platform == UNRECOGNIZED:
        raise HTTPException(status_code=400, detail=UnrecognizedUrlError(url, identifier.reason).to_dict())

    record = await pipeline.resolve_proposal(url, force_refresh=force_refresh)
    if record is None:
        raise HTTPException(status_code=404, detail=ResolutionFailedError(url).to_dict())
    return record


@router.post("/select", response_model=List[ProposalRecord])
def select(request: SelectRequest) -> List[ProposalRecord]:
    return select_top(request.candidates, request.k)


@router.post("/thread", response_model=List[ProposalRecord])
async def thread(request: ThreadRequest, pipeline: ProposalPipeline = Depends(get_pipeline)) -> List[ProposalRecord]:
    return await pipeline.resolve_thread(request.text, k=request.k, force_refresh=request.force_refresh)
