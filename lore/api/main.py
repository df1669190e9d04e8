"""
HTTP API over the knowledge index.
"""

from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .schemas import (
    AboutResponse,
    CaptureIndexRequest,
    CaptureIndexResponse,
    DecisionItem,
    DomainsResponse,
    HealthResponse,
    InfoResponse,
    ListEntryItem,
    ListResponse,
    ProjectsResponse,
    PurgeMatchItem,
    PurgeMatchesResponse,
    PurgeRequest,
    PurgeResponse,
    SearchResponse,
    SearchResultItem,
    SourceCount,
)
from ..core.config import VERSION, debug_enabled, validate_config
from ..core.db import health_check
from ..core.errors import ConfigurationError, GuardrailViolation, StoreNotFoundError
from ..core.purge import delete_entries, find_purge_matches
from ..core.realtime import index_and_embed
from ..core.schema import ListResult
from ..core.search_service import about, info, list_domain, list_domains, list_sources, projects, search
from ..util.logging import logger
from ..vector.hybrid import hybrid_search
from ..vector.semantic import semantic_search

load_dotenv()

# Initialize the FastAPI application
app = FastAPI(
    title="Lore Knowledge Index API",
    version=VERSION,
    description="Keyword, semantic and hybrid retrieval over a local knowledge index",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreNotFoundError)
async def store_not_found_handler(request: Request, exc: StoreNotFoundError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(GuardrailViolation)
async def guardrail_handler(request: Request, exc: GuardrailViolation):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _sources(source: Optional[List[str]]):
    if not source:
        return None
    return source if len(source) > 1 else source[0]


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check store health."""
    report = health_check()
    issues = validate_config()
    healthy = report["exists"] and "search" in report["tables"] and not issues
    return HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=VERSION,
        db_path=report["db_path"],
        tables=report["tables"],
        vector_runtime=report["vector_runtime"],
        embedding_dimension=report["embedding_dimension"],
        dimension_matches=report["dimension_matches"],
        config_issues=issues,
    )


@app.get("/info", response_model=InfoResponse)
def info_endpoint():
    data = info()
    return InfoResponse(
        sources=[SourceCount(**s) for s in data["sources"]],
        topics=data["topics"],
        total_entries=data["total_entries"],
        last_indexed=data["last_indexed"],
    )


@app.get("/sources", response_model=List[SourceCount])
def sources_endpoint():
    return [SourceCount(name=s["source"], count=s["count"]) for s in list_sources()]


def _list_response(result: ListResult) -> ListResponse:
    return ListResponse(
        domain=result.domain,
        entries=[ListEntryItem(**vars(e)) for e in result.entries],
        count=result.count,
    )


@app.get("/domains", response_model=DomainsResponse)
def domains_endpoint():
    return DomainsResponse(domains=list_domains())


@app.get("/list/{domain}", response_model=ListResponse)
def list_endpoint(domain: str, limit: Optional[int] = Query(None, ge=1), project: Optional[str] = None):
    """Browse one domain, newest first."""
    try:
        result = list_domain(domain, limit=limit, project=project)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _list_response(result)


@app.get("/projects", response_model=ProjectsResponse)
def projects_endpoint():
    return ProjectsResponse(projects=projects())


@app.get("/about/{project}", response_model=AboutResponse)
def about_endpoint(project: str, limit: int = Query(10, ge=1, le=500)):
    """Recent entries about one project across commits, captures, tasks and sessions."""
    result = about(project, limit=limit)
    return AboutResponse(
        project=result.project,
        sections={source: _list_response(section) for source, section in result.sections.items()},
        total=result.total,
    )


@app.get("/search", response_model=SearchResponse)
def search_endpoint(
    q: str,
    source: Optional[List[str]] = Query(None),
    type: Optional[List[str]] = Query(None),
    topic: Optional[str] = None,
    since: Optional[str] = None,
    limit: int = Query(20, ge=1, le=500),
):
    """Keyword search ranked by BM25."""
    results = search(q, source=_sources(source), type=_sources(type),
                     topic=topic, since=since, limit=limit)
    return SearchResponse(
        query=q,
        mode="lexical",
        results=[SearchResultItem(**r.to_dict()) for r in results],
    )


@app.get("/search/semantic", response_model=SearchResponse)
def semantic_search_endpoint(
    q: str,
    source: Optional[List[str]] = Query(None),
    type: Optional[str] = None,
    topic: Optional[str] = None,
    limit: int = Query(20, ge=1, le=500),
):
    """Nearest Records by cosine distance."""
    results = semantic_search(q, source=_sources(source), topic=topic, type=type, limit=limit)
    return SearchResponse(
        query=q,
        mode="semantic",
        results=[SearchResultItem(**r.to_dict()) for r in results],
    )


@app.get("/search/hybrid", response_model=SearchResponse)
async def hybrid_search_endpoint(
    q: str,
    source: Optional[List[str]] = Query(None),
    type: Optional[str] = None,
    topic: Optional[str] = None,
    limit: int = Query(20, ge=1, le=500),
    vector_weight: Optional[float] = Query(None, ge=0),
    text_weight: Optional[float] = Query(None, ge=0),
):
    """Weighted fusion of keyword and semantic search."""
    results = await hybrid_search(q, source=_sources(source), topic=topic, type=type, limit=limit,
                                  vector_weight=vector_weight, text_weight=text_weight)
    return SearchResponse(
        query=q,
        mode="hybrid",
        results=[SearchResultItem(**r.to_dict()) for r in results],
    )


@app.post("/captures/index", response_model=CaptureIndexResponse)
def index_captures_endpoint(request: CaptureIndexRequest):
    """Index capture events immediately, with contradiction checks."""
    try:
        decisions = index_and_embed(request.events, check_contradictions=request.check_contradictions)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid capture event: {e.errors()[0]['msg']}")

    return CaptureIndexResponse(decisions=[
        DecisionItem(
            action=d.action.value,
            source=d.source,
            topic=d.topic,
            deleted_row_id=d.deleted_row_id,
            error=d.error,
            checked=d.checked,
            row_ids=d.row_ids,
        )
        for d in decisions
    ])


@app.get("/purge/matches", response_model=PurgeMatchesResponse)
def purge_matches_endpoint(q: str, source: Optional[str] = None):
    """Preview what a purge would delete."""
    try:
        matches = find_purge_matches(q, source=source)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PurgeMatchesResponse(
        query=q,
        matches=[PurgeMatchItem(row_id=m.row_id, source=m.source, title=m.title,
                                content=m.content, type=m.type) for m in matches],
    )


@app.post("/purge", response_model=PurgeResponse)
def purge_endpoint(request: PurgeRequest):
    """Delete matching captured knowledge. row_ids narrows the matches to delete."""
    matches = find_purge_matches(request.query, source=request.source)
    if request.row_ids is not None:
        wanted = set(request.row_ids)
        matches = [m for m in matches if m.row_id in wanted]

    if not matches:
        raise HTTPException(status_code=404, detail="No matching entries to purge")

    result = delete_entries([m.row_id for m in matches], [m.content for m in matches])
    return PurgeResponse(
        deleted=result.deleted,
        row_ids=result.row_ids,
        log_entries_removed=result.log_entries_removed,
    )
