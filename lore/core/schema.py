"""
Result and decision types shared across search, indexing and purge.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class SearchResult:
    row_id: int
    source: str
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str
    rank: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SemanticResult:
    row_id: int
    source: str
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HybridResult:
    row_id: int
    source: str
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str
    text_score: float
    vector_score: float
    fused_score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ListEntry:
    row_id: int
    title: str
    content: str
    metadata: Dict[str, Any]
    topic: str
    type: str
    timestamp: str


@dataclass
class ListResult:
    domain: str
    entries: List[ListEntry]
    count: int


@dataclass
class AboutResult:
    """Entries about one project, keyed by source."""
    project: str
    sections: Dict[str, ListResult]

    @property
    def total(self) -> int:
        return sum(s.count for s in self.sections.values())


@dataclass
class PurgeMatch:
    row_id: int
    source: str
    title: str
    content: str
    type: str


@dataclass
class PurgeResult:
    deleted: int
    row_ids: List[int]
    log_entries_removed: int = 0


class ContradictionAction(str, Enum):
    ADD = "ADD"
    NOOP = "NOOP"
    DELETE_ADD = "DELETE+ADD"


@dataclass
class ContradictionDecision:
    """Outcome of indexing one capture event."""
    action: ContradictionAction
    source: str
    topic: str
    deleted_row_id: Optional[int] = None
    error: Optional[str] = None
    checked: bool = False
    row_ids: List[int] = field(default_factory=list)
