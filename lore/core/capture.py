"""
Capture events consumed by the real-time indexer.

Each event type is its own pydantic model, discriminated on "type". Each
model knows how to project itself onto an IndexEntry (source, title,
content, type column and metadata).
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .ingest import IndexEntry

DEFAULT_TOPIC = "general"

KnowledgeSubtype = Literal["project", "conversation", "decision", "learning",
                           "gotcha", "preference", "knowledge"]
InsightSubtype = Literal["decision", "pattern", "preference", "problem", "tool", "summary"]
ObservationSubtype = Literal["term", "style", "pattern", "preference", "context"]
ObservationConfidence = Literal["inferred", "stated", "verified"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _topic(value: Optional[str]) -> str:
    value = (value or "").strip()
    return value or DEFAULT_TOPIC


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topic: Optional[str] = None
    content: str = ""

    @field_validator("topic")
    @classmethod
    def strip_topic(cls, v):
        return v.strip() if v else v


class KnowledgeData(EventData):
    subtype: KnowledgeSubtype = "knowledge"

    @field_validator("content")
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError("content cannot be empty")
        return v


class TaskData(EventData):
    name: str
    problem: str
    solution: str
    code: Optional[str] = None
    discoveries: List[str] = Field(default_factory=list)
    deviations: Optional[str] = None
    pattern: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    tech: List[str] = Field(default_factory=list)
    difficulty: Optional[str] = None


class NoteData(EventData):
    tags: List[str] = Field(default_factory=list)


class TeachingData(EventData):
    confidence: str = "medium"
    source: Optional[str] = None


class ObservationData(EventData):
    subtype: ObservationSubtype = "pattern"
    confidence: ObservationConfidence = "inferred"
    source: Optional[str] = None


class InsightData(EventData):
    session_id: str = ""
    subtype: InsightSubtype = "summary"
    source: str = "auto"


class LearningData(EventData):
    persona: str = ""
    session_summary: Optional[str] = None


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str = "captured"
    timestamp: str = Field(default_factory=utc_now_iso)

    def entry_timestamp(self) -> str:
        return self.timestamp or utc_now_iso()


class KnowledgeEvent(BaseEvent):
    type: Literal["knowledge"]
    data: KnowledgeData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        return IndexEntry(
            source="captures",
            title=f"[{self.data.subtype}] {topic}",
            content=self.data.content,
            topic=topic,
            type=self.data.subtype,
            timestamp=self.entry_timestamp(),
            metadata={},
        )


class TaskEvent(BaseEvent):
    type: Literal["task"]
    data: TaskData

    def task_content(self) -> str:
        d = self.data
        lines = [f"Problem: {d.problem}", f"Solution: {d.solution}"]
        if d.code:
            lines.append(f"Code: {d.code}")
        if d.discoveries:
            lines.append(f"Discoveries: {'; '.join(d.discoveries)}")
        if d.deviations:
            lines.append(f"Deviations: {d.deviations}")
        if d.pattern:
            lines.append(f"Pattern: {d.pattern}")
        if d.tech:
            lines.append(f"Tech: {', '.join(d.tech)}")
        if d.tags:
            lines.append(f"Tags: {', '.join(d.tags)}")
        return "\n".join(lines)

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        metadata = {"name": self.data.name}
        if self.data.tags:
            metadata["tags"] = self.data.tags
        if self.data.tech:
            metadata["tech"] = self.data.tech
        if self.data.difficulty:
            metadata["difficulty"] = self.data.difficulty
        return IndexEntry(
            source="flux",
            title=f"[task] {topic}: {self.data.name or 'untitled'}",
            content=self.task_content(),
            topic=topic,
            type="task",
            timestamp=self.entry_timestamp(),
            metadata=metadata,
        )


class NoteEvent(BaseEvent):
    type: Literal["note"]
    data: NoteData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        return IndexEntry(
            source="captures",
            title=f"[note] {topic}",
            content=self.data.content,
            topic=topic,
            type="note",
            timestamp=self.entry_timestamp(),
            metadata={"tags": self.data.tags} if self.data.tags else {},
        )


class TeachingEvent(BaseEvent):
    type: Literal["teaching"]
    data: TeachingData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        metadata = {"confidence": self.data.confidence}
        if self.data.source:
            metadata["origin"] = self.data.source
        return IndexEntry(
            source="teachings",
            title=f"[{topic}] ({self.data.confidence})",
            content=self.data.content,
            topic=topic,
            type="teaching",
            timestamp=self.entry_timestamp(),
            metadata=metadata,
        )


class ObservationEvent(BaseEvent):
    type: Literal["observation"]
    data: ObservationData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        metadata = {"confidence": self.data.confidence}
        if self.data.source:
            metadata["origin"] = self.data.source
        return IndexEntry(
            source="observations",
            title=f"[{self.data.subtype}] {topic}",
            content=self.data.content,
            topic=topic,
            type=self.data.subtype,
            timestamp=self.entry_timestamp(),
            metadata=metadata,
        )


class InsightEvent(BaseEvent):
    type: Literal["insight"]
    data: InsightData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        return IndexEntry(
            source="insights",
            title=f"[{self.data.subtype}] {topic}",
            content=self.data.content,
            topic=topic,
            type=self.data.subtype,
            timestamp=self.entry_timestamp(),
            metadata={"session_id": self.data.session_id},
        )


class LearningEvent(BaseEvent):
    type: Literal["learning"]
    data: LearningData

    def to_entry(self) -> IndexEntry:
        topic = _topic(self.data.topic)
        metadata = {"persona": self.data.persona}
        if self.data.session_summary:
            metadata["session_summary"] = self.data.session_summary
        return IndexEntry(
            source="learnings",
            title=f"[learning] {topic}",
            content=self.data.content,
            topic=topic,
            type="learning",
            timestamp=self.entry_timestamp(),
            metadata=metadata,
        )


CaptureEvent = Annotated[
    Union[KnowledgeEvent, TaskEvent, NoteEvent, TeachingEvent,
          ObservationEvent, InsightEvent, LearningEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(CaptureEvent)


def parse_event(obj) -> BaseEvent:
    """Validate a raw dict into its event model. Models pass through unchanged."""
    if isinstance(obj, BaseEvent):
        return obj
    return _event_adapter.validate_python(obj)


def embedding_text(entry: IndexEntry, chunk: str) -> str:
    """Text embedded for one chunk: topic then content."""
    topic = (entry.topic or "").strip()
    return f"{topic} {chunk}".strip() if topic else chunk
