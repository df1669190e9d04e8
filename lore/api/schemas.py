"""
Request and response models for the HTTP API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from ..core.contradiction import PURGEABLE_SOURCES


class HealthResponse(BaseModel):
    status: str
    version: str
    db_path: str
    tables: List[str]
    vector_runtime: bool
    embedding_dimension: Optional[int] = None
    dimension_matches: Optional[bool] = None
    config_issues: List[str] = []


class SourceCount(BaseModel):
    name: str
    count: int


class InfoResponse(BaseModel):
    sources: List[SourceCount]
    topics: List[str]
    total_entries: int
    last_indexed: Optional[str] = None


class SearchResultItem(BaseModel):
    row_id: int
    source: str
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str
    rank: Optional[float] = None
    distance: Optional[float] = None
    text_score: Optional[float] = None
    vector_score: Optional[float] = None
    fused_score: Optional[float] = None


class SearchResponse(BaseModel):
    query: str
    mode: str
    results: List[SearchResultItem]


class CaptureIndexRequest(BaseModel):
    events: List[Dict[str, Any]]
    check_contradictions: Optional[bool] = None

    @field_validator("events")
    @classmethod
    def events_must_not_be_empty(cls, v):
        if not v:
            raise ValueError("events cannot be empty")
        return v


class DecisionItem(BaseModel):
    action: str
    source: str
    topic: str
    deleted_row_id: Optional[int] = None
    error: Optional[str] = None
    checked: bool
    row_ids: List[int]


class CaptureIndexResponse(BaseModel):
    decisions: List[DecisionItem]


class PurgeMatchItem(BaseModel):
    row_id: int
    source: str
    title: str
    content: str
    type: str


class PurgeMatchesResponse(BaseModel):
    query: str
    matches: List[PurgeMatchItem]


class PurgeRequest(BaseModel):
    query: str
    source: Optional[str] = None
    row_ids: Optional[List[int]] = None

    @field_validator("query")
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError("query cannot be empty")
        return v

    @field_validator("source")
    @classmethod
    def source_must_be_purgeable(cls, v):
        if v is not None and v not in PURGEABLE_SOURCES:
            raise ValueError(f"source must be one of: {list(PURGEABLE_SOURCES)}")
        return v


class PurgeResponse(BaseModel):
    deleted: int
    row_ids: List[int]
    log_entries_removed: int


class ListEntryItem(BaseModel):
    row_id: int
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str


class ListResponse(BaseModel):
    domain: str
    entries: List[ListEntryItem]
    count: int


class DomainsResponse(BaseModel):
    domains: List[str]


class ProjectsResponse(BaseModel):
    projects: List[str]


class AboutResponse(BaseModel):
    project: str
    sections: Dict[str, ListResponse]
    total: int
