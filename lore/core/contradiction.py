"""
Write-time contradiction detection.

New captures in purgeable sources are compared against their nearest
neighbours in the same source and topic. A chat-completion classifier
decides whether the new entry is new information (ADD), redundant (NOOP)
or supersedes one candidate (DELETE <rowid>).

Every classifier failure is returned as a ResolverFailure value. The
indexer turns it into ADD, so a capture is never blocked by the classifier.
"""

import json
import re
import sqlite3
from dataclasses import dataclass
from time import monotonic
from typing import List, Optional, Union

import requests

from .config import get_resolver_model, get_resolver_timeout, get_resolver_url
from .ingest import IndexEntry
from .schema import ContradictionAction, SemanticResult
from ..vector.semantic import knn_search

PURGEABLE_SOURCES = ("captures", "observations", "teachings")

CANDIDATE_LIMIT = 5

SYSTEM_PROMPT = """You classify knowledge contradictions. Reply with exactly one word: ADD, NOOP, or DELETE.
  ADD: new information not covered by candidates
  NOOP: duplicate or redundant (already captured)
  DELETE: new information supersedes a candidate (also provide rowid)"""

_DELETE_REPLY = re.compile(r"^DELETE\s+(\d+)\b")


@dataclass(frozen=True)
class Classified:
    action: ContradictionAction
    delete_row_id: Optional[int] = None


@dataclass(frozen=True)
class ResolverFailure:
    reason: str


ResolverOutcome = Union[Classified, ResolverFailure]


def is_contradiction_checkable(source: str) -> bool:
    return source in PURGEABLE_SOURCES


def find_candidates(conn: sqlite3.Connection, entry: IndexEntry, embedding_service,
                    limit: int = CANDIDATE_LIMIT) -> List[SemanticResult]:
    """
    Nearest existing Records in the entry's source and topic.

    Runs on the caller's connection so Records written earlier in the same
    batch are visible.
    """
    if not entry.content.strip():
        return []
    query_vector = embedding_service.embed_query(entry.content)
    return knn_search(conn, query_vector, source=entry.source,
                      topic=entry.topic or None, limit=limit)


def parse_classification(raw: str, candidate_ids: Optional[List[int]] = None) -> ResolverOutcome:
    """
    Parse a classifier reply.

    Accepts "ADD", "NOOP" and "DELETE <rowid>". A DELETE naming a row that is
    not among candidate_ids is rejected.
    """
    normalized = (raw or "").strip().upper().rstrip(".")

    if normalized == "ADD":
        return Classified(ContradictionAction.ADD)
    if normalized == "NOOP":
        return Classified(ContradictionAction.NOOP)

    match = _DELETE_REPLY.match(normalized)
    if match:
        row_id = int(match.group(1))
        if row_id <= 0:
            return ResolverFailure(f"invalid rowid in reply: {raw!r}")
        if candidate_ids is not None and row_id not in candidate_ids:
            return ResolverFailure(f"DELETE names rowid {row_id} which is not a candidate")
        return Classified(ContradictionAction.DELETE_ADD, row_id)

    return ResolverFailure(f"unparseable reply: {raw!r}")


def build_user_prompt(entry: IndexEntry, candidates: List[SemanticResult]) -> str:
    candidate_lines = "\n".join(f"[rowid: {c.row_id}] {c.content}" for c in candidates)
    return (
        f"New entry (source: {entry.source}, topic: {entry.topic}):\n"
        f"{entry.content}\n\n"
        f"Existing entries:\n"
        f"{candidate_lines}\n\n"
        f"If DELETE, reply: DELETE <rowid>\n"
        f"Otherwise reply: ADD or NOOP"
    )


class ContradictionResolver:
    """Client for an OpenAI-compatible chat-completions classifier."""

    def __init__(self, url: str = None, model: str = None, timeout: float = None,
                 session: Optional[requests.Session] = None):
        self.url = url or get_resolver_url()
        self.model = model or get_resolver_model()
        self.timeout = timeout if timeout is not None else get_resolver_timeout()
        self.session = session or requests.Session()

    def classify(self, entry: IndexEntry, candidates: List[SemanticResult]) -> ResolverOutcome:
        if not candidates:
            return Classified(ContradictionAction.ADD)

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(entry, candidates)},
            ],
            "max_tokens": 20,
            "temperature": 0,
        }

        # requests applies timeout per connect and per read, so the body is
        # streamed against one deadline for the whole call
        deadline = monotonic() + self.timeout
        timed_out = ResolverFailure(f"classifier timed out after {self.timeout}s")
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout, stream=True)
            try:
                if not response.ok:
                    return ResolverFailure(f"classifier returned HTTP {response.status_code}")
                content = bytearray()
                for chunk in response.iter_content(chunk_size=1024):
                    content.extend(chunk)
                    if monotonic() > deadline:
                        return timed_out
            finally:
                response.close()
        except requests.Timeout:
            return timed_out
        except requests.RequestException as e:
            return ResolverFailure(f"classifier request failed: {e}")

        try:
            body = json.loads(bytes(content))
            raw = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return ResolverFailure(f"malformed classifier response: {e}")

        return parse_classification(raw, [c.row_id for c in candidates])
